"""Appointments table models using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
)

STATUS_CHECK = "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')"
COUNTRY_CHECK = "country IN ('PE', 'CL')"

# Primary store metadata
metadata = MetaData()

# Primary store: every appointment, with a denormalized status copy
appointments = Table(
    "appointments",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("insured_id", String(5), nullable=False),
    Column("schedule_id", Integer, nullable=False),
    Column("country", String(2), nullable=False),
    Column("status", String(20), nullable=False, server_default="pending"),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    # Constraints
    CheckConstraint(STATUS_CHECK, name="appointments_status_check"),
    CheckConstraint(COUNTRY_CHECK, name="appointments_country_check"),
    CheckConstraint("schedule_id > 0", name="appointments_schedule_id_check"),
    Index("ix_appointments_insured_id", "insured_id"),
)

# Country store metadata (created in each per-country database)
country_metadata = MetaData()

country_appointments = Table(
    "country_appointments",
    country_metadata,
    Column("id", String(36), primary_key=True),
    Column("insured_id", String(5), nullable=False),
    Column("schedule_id", Integer, nullable=False),
    Column("country", String(2), nullable=False),
    Column("status", String(20), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    CheckConstraint(STATUS_CHECK, name="country_appointments_status_check"),
    CheckConstraint(COUNTRY_CHECK, name="country_appointments_country_check"),
    Index("ix_country_appointments_insured_id", "insured_id"),
)
