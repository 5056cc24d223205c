"""Approval request records for cancellation and reschedule negotiation."""

from datetime import date, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

from app.schemas.enums import AppointmentStatus


class Slot(BaseModel):
    """A doctor's date and time label."""

    appointment_date: date
    appointment_time: str


class ApprovalBase(BaseModel):
    """Fields shared by every approval request state."""

    reason: str | None = None
    requested_at: datetime
    requested_by: str
    initiated_by: Literal["staff", "patient"]
    previous_status: AppointmentStatus
    proposed_slot: Slot | None = None
    original_slot: Slot | None = None


class PendingApproval(ApprovalBase):
    """Awaiting the other party's decision."""

    status: Literal["pending"] = "pending"


class ApprovedApproval(ApprovalBase):
    """Accepted by the reviewing party."""

    status: Literal["approved"] = "approved"
    reviewed_at: datetime
    reviewed_by: str
    admin_notes: str | None = None


class RejectedApproval(ApprovalBase):
    """Declined by the reviewing party."""

    status: Literal["rejected"] = "rejected"
    reviewed_at: datetime
    reviewed_by: str
    admin_notes: str | None = None


ApprovalRequest = Annotated[
    PendingApproval | ApprovedApproval | RejectedApproval,
    Field(discriminator="status"),
]

approval_adapter: TypeAdapter[PendingApproval | ApprovedApproval | RejectedApproval] = TypeAdapter(
    ApprovalRequest
)


class RescheduledFrom(BaseModel):
    """Snapshot of the slot an appointment was moved away from."""

    appointment_date: date
    appointment_time: str
    reason: str | None = None
    rescheduled_at: datetime
    rescheduled_by: str


def load_approval(
    data: dict | None,
) -> PendingApproval | ApprovedApproval | RejectedApproval | None:
    """Rebuild a stored approval request."""
    if not data:
        return None
    return approval_adapter.validate_python(data)


def dump_approval(request: ApprovalBase | None) -> dict | None:
    """Serialize an approval request for a JSON column."""
    if request is None:
        return None
    return request.model_dump(mode="json")
