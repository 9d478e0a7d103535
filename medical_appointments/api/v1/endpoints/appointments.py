"""Appointment endpoints."""

from fastapi import APIRouter, Response, status

from medical_appointments.dependencies import AppointmentServiceDep
from medical_appointments.schemas.appointments import (
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentTraceResponse,
    CreateAppointmentResponse,
)

router = APIRouter()


@router.post(
    "/",
    response_model=CreateAppointmentResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Appointments"],
    summary="Schedule appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    service: AppointmentServiceDep,
) -> CreateAppointmentResponse:
    """
    Schedule a new appointment.

    The appointment is stored as pending and routed to its country for
    asynchronous processing.

    Args:
        data: Appointment creation data
        service: Appointment service

    Returns:
        Accepted response with the appointment ID
    """
    return await service.create_appointment(data)


@router.get(
    "/{insured_id}",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments of an insured person",
)
async def list_appointments(
    insured_id: str,
    service: AppointmentServiceDep,
) -> AppointmentListResponse:
    """
    List every appointment of an insured person.

    Args:
        insured_id: Five digit insured ID
        service: Appointment service

    Returns:
        Appointments and their count
    """
    return await service.list_by_insured_id(insured_id)


@router.get(
    "/{appointment_id}/trace",
    response_model=AppointmentTraceResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Trace appointment processing",
)
async def trace_appointment(
    appointment_id: str,
    service: AppointmentServiceDep,
) -> AppointmentTraceResponse:
    """Show how far an appointment has progressed through the pipeline."""
    return await service.get_trace(appointment_id)


@router.patch(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: str,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """Cancel a pending appointment."""
    return await service.cancel_appointment(appointment_id)


@router.patch(
    "/{appointment_id}/retry",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Retry failed appointment",
)
async def retry_appointment(
    appointment_id: str,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """Send a failed appointment through the pipeline again."""
    return await service.retry_appointment(appointment_id)


@router.delete(
    "/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Appointments"],
    summary="Delete appointment",
)
async def delete_appointment(
    appointment_id: str,
    service: AppointmentServiceDep,
) -> Response:
    """Permanently delete an appointment (administrative)."""
    await service.delete_appointment(appointment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
