"""Read-only projection of an appointment's progress through the pipeline."""

from medical_appointments.domain.appointment import Appointment
from medical_appointments.domain.status import AppointmentStatus
from medical_appointments.schemas.appointments import (
    AppointmentTraceResponse,
    FlowStep,
    StepStatus,
)

PENDING = AppointmentStatus.PENDING
PROCESSING = AppointmentStatus.PROCESSING
COMPLETED = AppointmentStatus.COMPLETED


def _queue_step_status(status: AppointmentStatus) -> StepStatus:
    if status == PENDING:
        return "pending"
    if status == PROCESSING:
        return "in_progress"
    return "completed"


def _processor_step_status(status: AppointmentStatus) -> StepStatus:
    if status == PROCESSING:
        return "in_progress"
    if status == COMPLETED:
        return "completed"
    return "pending"


def build_flow_steps(appointment: Appointment) -> list[FlowStep]:
    """Derive the eight pipeline steps from status and country alone."""
    status = appointment.status
    country = appointment.country.code
    config = appointment.country.config
    done: StepStatus = "completed" if status == COMPLETED else "pending"

    steps = [
        FlowStep(
            step=1,
            component="API",
            action="Request received and validated",
            status="completed",
            timestamp=appointment.created_at,
        ),
        FlowStep(
            step=2,
            component="Primary store",
            action='Appointment saved with status "pending"',
            status="completed",
            timestamp=appointment.created_at,
            details={"table": "appointments", "status": "pending"},
        ),
        FlowStep(
            step=3,
            component="Router",
            action=f"Message published with filter country={country}",
            status="in_progress" if status == PENDING else "completed",
            details={"topic": "appointments-topic", "filterAttribute": "country"},
        ),
        FlowStep(
            step=4,
            component=f"Queue ({country})",
            action=f"Message enqueued on {config.queue_name}",
            status=_queue_step_status(status),
            details={"queue": config.queue_name},
        ),
        FlowStep(
            step=5,
            component=f"Country processor ({country})",
            action="Processing appointment for the country store",
            status=_processor_step_status(status),
        ),
        FlowStep(
            step=6,
            component=f"Country store ({country})",
            action=f"Appointment saved in {config.database_name}",
            status=done,
            details={"database": config.database_name},
        ),
        FlowStep(
            step=7,
            component="Event bus",
            action='Event "appointment.completed" emitted',
            status=done,
            details={"eventBus": "appointments-bus", "detailType": "appointment.completed"},
        ),
        FlowStep(
            step=8,
            component="Primary store (update)",
            action='Status updated to "completed"',
            status=done,
            timestamp=appointment.updated_at if status == COMPLETED else None,
            details={"finalStatus": status.value},
        ),
    ]

    if status == AppointmentStatus.FAILED:
        for step in steps:
            if step.status != "completed":
                step.status = "failed"
                step.action += " - ERROR"
                break

    return steps


def summary_message(status: AppointmentStatus, percentage: int) -> str:
    """Human readable summary for the current status."""
    messages = {
        AppointmentStatus.PENDING: (
            f"Appointment queued for processing ({percentage}% complete). "
            "Waiting for country processing."
        ),
        AppointmentStatus.PROCESSING: (
            f"Appointment being processed ({percentage}% complete). "
            "Saving to the country store."
        ),
        AppointmentStatus.COMPLETED: "Appointment processed successfully. Flow complete.",
        AppointmentStatus.FAILED: "Appointment processing failed. Check the logs for details.",
        AppointmentStatus.CANCELLED: "Appointment cancelled.",
    }
    return messages.get(status, f"Status: {status.value}")


def build_trace(appointment: Appointment) -> AppointmentTraceResponse:
    """Full trace view with completion percentage and summary."""
    steps = build_flow_steps(appointment)
    completed = sum(1 for step in steps if step.status == "completed")
    percentage = round(completed / len(steps) * 100)

    return AppointmentTraceResponse(
        appointment_id=appointment.id,
        insured_id=appointment.insured_id.value,
        country=appointment.country.code,
        current_status=appointment.status.value,
        flow_steps=steps,
        completion_percentage=percentage,
        summary=summary_message(appointment.status, percentage),
    )
