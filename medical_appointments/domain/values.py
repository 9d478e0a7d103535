"""Insured identifier and country value objects."""

import re
from dataclasses import dataclass
from enum import Enum

from medical_appointments.core.exceptions import ValidationError


class CountryCode(str, Enum):
    """Supported ISO 3166-1 alpha-2 codes."""

    PERU = "PE"
    CHILE = "CL"


@dataclass(frozen=True)
class CountryConfig:
    """Static per-country settings used for routing and observability."""

    code: CountryCode
    name: str
    timezone: str
    currency: str
    queue_name: str
    database_name: str


COUNTRY_CONFIGS: dict[CountryCode, CountryConfig] = {
    CountryCode.PERU: CountryConfig(
        code=CountryCode.PERU,
        name="Perú",
        timezone="America/Lima",
        currency="PEN",
        queue_name="appointments-pe-queue",
        database_name="medical_appointments_pe",
    ),
    CountryCode.CHILE: CountryConfig(
        code=CountryCode.CHILE,
        name="Chile",
        timezone="America/Santiago",
        currency="CLP",
        queue_name="appointments-cl-queue",
        database_name="medical_appointments_cl",
    ),
}


@dataclass(frozen=True)
class InsuredId:
    """Five-digit insured identifier, leading zeros preserved."""

    value: str

    PATTERN = re.compile(r"^\d{5}$", re.ASCII)
    LENGTH = 5

    @classmethod
    def create(cls, raw: str | None) -> "InsuredId":
        """
        Validate and build an insured id.

        Args:
            raw: Value as received from the caller

        Returns:
            Validated insured id

        Raises:
            ValidationError: If the trimmed value is not exactly five digits
        """
        value = raw.strip() if isinstance(raw, str) else ""
        if not value:
            raise ValidationError("Insured ID is required", "insuredId", ["required"])
        if len(value) != cls.LENGTH:
            raise ValidationError(
                f"Insured ID must have exactly {cls.LENGTH} digits",
                "insuredId",
                ["length"],
            )
        if not cls.PATTERN.match(value):
            raise ValidationError(
                "Insured ID must contain only digits",
                "insuredId",
                ["pattern"],
            )
        return cls(value)

    @classmethod
    def from_persistence(cls, value: str) -> "InsuredId":
        """Rebuild from trusted storage without validation."""
        return cls(value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Country:
    """Supported country, normalized to upper case."""

    value: CountryCode

    @classmethod
    def create(cls, raw: str | None) -> "Country":
        """
        Validate and build a country.

        Args:
            raw: Country code in any case

        Returns:
            Validated country

        Raises:
            ValidationError: If the code is missing or not supported
        """
        value = raw.strip().upper() if isinstance(raw, str) else ""
        if not value:
            raise ValidationError("Country code is required", "country", ["required"])
        try:
            return cls(CountryCode(value))
        except ValueError as e:
            supported = ", ".join(code.value for code in CountryCode)
            raise ValidationError(
                f"Country '{value}' is not supported. Valid countries: {supported}",
                "country",
                ["unsupported_country"],
            ) from e

    @classmethod
    def from_persistence(cls, value: str) -> "Country":
        """Rebuild from trusted storage without validation."""
        return cls(CountryCode(value))

    @staticmethod
    def is_supported(raw: str | None) -> bool:
        """Check a raw code without raising."""
        if not isinstance(raw, str):
            return False
        return raw.strip().upper() in {code.value for code in CountryCode}

    @staticmethod
    def supported() -> list[CountryConfig]:
        """All configured countries."""
        return list(COUNTRY_CONFIGS.values())

    @property
    def code(self) -> str:
        return self.value.value

    @property
    def config(self) -> CountryConfig:
        return COUNTRY_CONFIGS[self.value]

    def __str__(self) -> str:
        return self.value.value
