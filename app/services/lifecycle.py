"""Appointment lifecycle engine.

A pure transition function over an appointment snapshot. Given the current
state, an event and the request context it returns the next state together
with the side effects the caller must apply (patient activation, no-show
strike, slot conflict check and the notification to emit), or raises when the
transition is not allowed. Nothing here touches the database.
"""

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo

from app.core.exceptions import CutoffExceededException, InvalidTransitionException
from app.core.timeslots import within_cutoff
from app.schemas.approvals import (
    ApprovedApproval,
    PendingApproval,
    RejectedApproval,
    RescheduledFrom,
    Slot,
)
from app.schemas.enums import PRE_TERMINAL_STATUSES, AppointmentStatus, BookingSource

Approval = PendingApproval | ApprovedApproval | RejectedApproval

S = AppointmentStatus

# Statuses a patient may raise a cancellation or reschedule request from
REQUESTABLE_STATUSES = frozenset({S.SCHEDULED, S.CONFIRMED, S.RESCHEDULED})


class ConflictTier(str, Enum):
    """Which bookings count as occupying a slot."""

    # Confirmed appointments and appointments held by a pending request
    HELD = "held"
    # Any live booking, overlapping scheduled ones included
    OCCUPIED = "occupied"


HELD_STATUSES = frozenset({S.CONFIRMED, S.CANCELLATION_PENDING, S.RESCHEDULE_PENDING})
OCCUPYING_STATUSES = HELD_STATUSES | {S.SCHEDULED, S.RESCHEDULED}

TIER_STATUSES: dict[ConflictTier, frozenset[AppointmentStatus]] = {
    ConflictTier.HELD: HELD_STATUSES,
    ConflictTier.OCCUPIED: OCCUPYING_STATUSES,
}


@dataclass(frozen=True)
class AppointmentState:
    """Snapshot of the fields the lifecycle reads and writes."""

    appointment_id: str
    status: AppointmentStatus
    booking_source: BookingSource
    has_portal_account: bool
    patient_name: str
    doctor_name: str
    appointment_date: date
    appointment_time: str
    confirmed_by: str | None = None
    cancellation_reason: str | None = None
    cancellation_request: Approval | None = None
    reschedule_request: Approval | None = None
    rescheduled_from: RescheduledFrom | None = None

    @property
    def slot(self) -> Slot:
        return Slot(appointment_date=self.appointment_date, appointment_time=self.appointment_time)

    def at(self, slot: Slot) -> "AppointmentState":
        """Copy of the state moved to another slot."""
        return replace(
            self,
            appointment_date=slot.appointment_date,
            appointment_time=slot.appointment_time,
        )


@dataclass(frozen=True)
class TransitionContext:
    """Who is acting and when."""

    actor: str
    now: datetime
    timezone: ZoneInfo
    cutoff: timedelta = timedelta(hours=2)


@dataclass(frozen=True)
class SlotCheck:
    """Slot the caller must verify before persisting."""

    slot: Slot
    tier: ConflictTier
    check_hours: bool = True


@dataclass(frozen=True)
class NotificationEvent:
    """Patient-facing event emitted after a transition."""

    event_type: str
    title: str
    message: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Transition:
    """Outcome of applying an event."""

    before: AppointmentState
    after: AppointmentState
    activate_patient: bool = False
    record_no_show: bool = False
    slot_check: SlotCheck | None = None
    notification: NotificationEvent | None = None

    @property
    def changed(self) -> bool:
        return self.after != self.before


# Events


@dataclass(frozen=True)
class Confirm:
    pass


@dataclass(frozen=True)
class Cancel:
    reason: str | None = None


@dataclass(frozen=True)
class MarkNoShow:
    pass


@dataclass(frozen=True)
class Complete:
    pass


@dataclass(frozen=True)
class StaffReschedule:
    new_date: date
    new_time: str
    reason: str | None = None


@dataclass(frozen=True)
class RequestCancellation:
    reason: str


@dataclass(frozen=True)
class ApproveCancellation:
    admin_notes: str | None = None


@dataclass(frozen=True)
class RejectCancellation:
    admin_notes: str | None = None


@dataclass(frozen=True)
class RequestReschedule:
    new_date: date
    new_time: str
    reason: str


@dataclass(frozen=True)
class ApproveReschedule:
    admin_notes: str | None = None


@dataclass(frozen=True)
class RejectReschedule:
    admin_notes: str | None = None


@dataclass(frozen=True)
class AcceptReschedule:
    pass


@dataclass(frozen=True)
class DeclineReschedule:
    reason: str | None = None


Event = (
    Confirm
    | Cancel
    | MarkNoShow
    | Complete
    | StaffReschedule
    | RequestCancellation
    | ApproveCancellation
    | RejectCancellation
    | RequestReschedule
    | ApproveReschedule
    | RejectReschedule
    | AcceptReschedule
    | DeclineReschedule
)


# Helpers


def _require(state: AppointmentState, allowed: frozenset[AppointmentStatus], action: str) -> None:
    if state.status not in allowed:
        raise InvalidTransitionException(
            f"Cannot {action} an appointment that is {state.status.value}"
        )


def _require_portal(state: AppointmentState) -> None:
    if state.booking_source != BookingSource.PATIENT_PORTAL:
        raise InvalidTransitionException(
            "Only appointments booked through the portal can be changed by the patient"
        )


def _check_cutoff(state: AppointmentState, ctx: TransitionContext, action: str) -> None:
    if within_cutoff(
        state.appointment_date, state.appointment_time, ctx.now, ctx.cutoff, ctx.timezone
    ):
        hours = int(ctx.cutoff.total_seconds() // 3600)
        raise CutoffExceededException(
            f"Cannot {action} less than {hours} hours before the appointment. "
            "Please contact the clinic directly."
        )


def _pending(request: Approval | None) -> PendingApproval | None:
    return request if isinstance(request, PendingApproval) else None


def _review(
    request: PendingApproval,
    approved: bool,
    ctx: TransitionContext,
    notes: str | None = None,
    **changes: Any,
) -> ApprovedApproval | RejectedApproval:
    fields = request.model_dump(exclude={"status"})
    fields.update(changes)
    model = ApprovedApproval if approved else RejectedApproval
    return model(**fields, reviewed_at=ctx.now, reviewed_by=ctx.actor, admin_notes=notes)


def _moved_from(
    origin: Slot, reason: str | None, ctx: TransitionContext, by: str | None = None
) -> RescheduledFrom:
    return RescheduledFrom(
        appointment_date=origin.appointment_date,
        appointment_time=origin.appointment_time,
        reason=reason,
        rescheduled_at=ctx.now,
        rescheduled_by=by or ctx.actor,
    )


def _notify(
    state: AppointmentState,
    event_type: str,
    title: str,
    message: str,
    **extra: Any,
) -> NotificationEvent | None:
    if not state.has_portal_account:
        return None

    payload: dict[str, Any] = {
        "appointment_id": state.appointment_id,
        "patient_name": state.patient_name,
        "doctor_name": state.doctor_name,
        "appointment_date": state.appointment_date.isoformat(),
        "appointment_time": state.appointment_time,
        "status": state.status.value,
    }
    payload.update({key: value for key, value in extra.items() if value is not None})
    return NotificationEvent(event_type=event_type, title=title, message=message, payload=payload)


def _when(state: AppointmentState) -> str:
    return f"{state.appointment_date.isoformat()} at {state.appointment_time}"


def _slot_payload(slot: Slot | None) -> dict[str, str] | None:
    if slot is None:
        return None
    return {"date": slot.appointment_date.isoformat(), "time": slot.appointment_time}


def _pending_reschedule(state: AppointmentState) -> PendingApproval:
    request = _pending(state.reschedule_request)
    if state.status != S.RESCHEDULE_PENDING or request is None:
        raise InvalidTransitionException("There is no pending reschedule request")
    return request


def _pending_cancellation(state: AppointmentState) -> PendingApproval:
    request = _pending(state.cancellation_request)
    if state.status != S.CANCELLATION_PENDING or request is None:
        raise InvalidTransitionException("There is no pending cancellation request")
    return request


# Staff transitions


def _confirm(state: AppointmentState, event: Confirm, ctx: TransitionContext) -> Transition:
    _require(state, frozenset({S.SCHEDULED, S.RESCHEDULED, S.RESCHEDULE_PENDING}), "confirm")

    after = replace(state, status=S.CONFIRMED, confirmed_by=ctx.actor)
    if state.status == S.RESCHEDULE_PENDING:
        # Confirming as-is turns down the pending move
        request = _pending_reschedule(state)
        after = replace(
            after.at(request.original_slot or state.slot),
            reschedule_request=_review(request, False, ctx, "Confirmed at the original time"),
        )

    return Transition(
        before=state,
        after=after,
        activate_patient=True,
        slot_check=SlotCheck(after.slot, ConflictTier.HELD, check_hours=False),
        notification=_notify(
            after,
            "appointment_confirmed",
            "Appointment confirmed",
            f"Your appointment {after.appointment_id} with {after.doctor_name} on "
            f"{_when(after)} has been confirmed.",
        ),
    )


def _cancel(state: AppointmentState, event: Cancel, ctx: TransitionContext) -> Transition:
    _require(state, PRE_TERMINAL_STATUSES, "cancel")

    after = state
    pending_cancel = _pending(state.cancellation_request)
    pending_move = _pending(state.reschedule_request)
    reason = event.reason or (pending_cancel.reason if pending_cancel else None)

    if pending_move is not None:
        if pending_move.initiated_by == "staff" and pending_move.original_slot:
            after = after.at(pending_move.original_slot)
        after = replace(
            after, reschedule_request=_review(pending_move, False, ctx, "Appointment cancelled")
        )

    if pending_cancel is not None:
        after = replace(
            after, cancellation_request=_review(pending_cancel, True, ctx, event.reason)
        )
    elif state.booking_source == BookingSource.PATIENT_PORTAL:
        after = replace(
            after,
            cancellation_request=ApprovedApproval(
                reason=reason,
                requested_at=ctx.now,
                requested_by=ctx.actor,
                initiated_by="staff",
                previous_status=state.status,
                reviewed_at=ctx.now,
                reviewed_by=ctx.actor,
            ),
        )

    after = replace(after, status=S.CANCELLED, cancellation_reason=reason)
    return Transition(
        before=state,
        after=after,
        notification=_notify(
            after,
            "appointment_cancelled",
            "Appointment cancelled",
            f"Your appointment {after.appointment_id} on {_when(after)} has been cancelled.",
            reason=reason,
        ),
    )


def _mark_no_show(state: AppointmentState, event: MarkNoShow, ctx: TransitionContext) -> Transition:
    if state.status == S.NO_SHOW:
        # Already recorded; a repeat must not add a second strike
        return Transition(before=state, after=state)

    _require(state, frozenset({S.SCHEDULED, S.CONFIRMED, S.RESCHEDULED}), "mark as no-show")

    after = replace(state, status=S.NO_SHOW)
    return Transition(
        before=state,
        after=after,
        record_no_show=True,
        notification=_notify(
            after,
            "appointment_no_show",
            "Missed appointment",
            f"You missed your appointment {after.appointment_id} on {_when(after)}.",
        ),
    )


def _complete(state: AppointmentState, event: Complete, ctx: TransitionContext) -> Transition:
    _require(state, PRE_TERMINAL_STATUSES, "complete")

    after = replace(state, status=S.COMPLETED)
    for attr in ("cancellation_request", "reschedule_request"):
        request = _pending(getattr(state, attr))
        if request is not None:
            after = replace(after, **{attr: _review(request, False, ctx, "Appointment completed")})

    return Transition(
        before=state,
        after=after,
        notification=_notify(
            after,
            "appointment_completed",
            "Appointment completed",
            f"Your appointment {after.appointment_id} with {after.doctor_name} is complete.",
        ),
    )


def _staff_reschedule(
    state: AppointmentState, event: StaffReschedule, ctx: TransitionContext
) -> Transition:
    _require(state, REQUESTABLE_STATUSES | {S.RESCHEDULE_PENDING}, "reschedule")

    target = Slot(appointment_date=event.new_date, appointment_time=event.new_time)
    pending = _pending(state.reschedule_request)
    check = SlotCheck(target, ConflictTier.OCCUPIED)

    if state.status == S.RESCHEDULE_PENDING and pending and pending.initiated_by == "patient":
        # Staff picking a slot answers the patient's request
        origin = pending.original_slot or state.slot
        after = replace(
            state.at(target),
            status=S.CONFIRMED,
            confirmed_by=ctx.actor,
            reschedule_request=_review(pending, True, ctx, event.reason, proposed_slot=target),
            rescheduled_from=_moved_from(origin, pending.reason, ctx),
        )
        return Transition(
            before=state,
            after=after,
            activate_patient=True,
            slot_check=check,
            notification=_notify(
                after,
                "reschedule_approved",
                "Reschedule approved",
                f"Your appointment {after.appointment_id} has been moved to {_when(after)}.",
                previous=_slot_payload(origin),
            ),
        )

    if pending and pending.initiated_by == "staff" and pending.original_slot == target:
        # Proposing the original slot again withdraws the proposal
        after = replace(
            state.at(target),
            status=pending.previous_status,
            reschedule_request=_review(pending, False, ctx, event.reason or "Proposal withdrawn"),
        )
        return Transition(
            before=state,
            after=after,
            notification=_notify(
                after,
                "reschedule_withdrawn",
                "Proposed time withdrawn",
                f"The clinic withdrew its proposed new time. Appointment {after.appointment_id} "
                f"stays on {_when(after)}.",
                reason=event.reason,
            ),
        )

    if target == state.slot:
        raise InvalidTransitionException("The appointment is already at that date and time")

    origin = pending.original_slot if pending and pending.original_slot else state.slot

    if state.booking_source == BookingSource.PATIENT_PORTAL and state.has_portal_account:
        # Portal bookings move only once the patient accepts
        request = PendingApproval(
            reason=event.reason,
            requested_at=ctx.now,
            requested_by=ctx.actor,
            initiated_by="staff",
            previous_status=pending.previous_status if pending else state.status,
            proposed_slot=target,
            original_slot=origin,
        )
        after = replace(state.at(target), status=S.RESCHEDULE_PENDING, reschedule_request=request)
        return Transition(
            before=state,
            after=after,
            slot_check=check,
            notification=_notify(
                after,
                "reschedule_proposed",
                "New appointment time proposed",
                f"The clinic proposed moving appointment {after.appointment_id} to "
                f"{_when(after)}. Please accept or decline.",
                reason=event.reason,
                previous=_slot_payload(origin),
                proposed=_slot_payload(target),
            ),
        )

    after = replace(
        state.at(target),
        status=S.CONFIRMED,
        confirmed_by=ctx.actor,
        rescheduled_from=_moved_from(origin, event.reason, ctx),
        reschedule_request=(
            _review(pending, True, ctx, event.reason, proposed_slot=target)
            if pending
            else state.reschedule_request
        ),
    )
    return Transition(
        before=state,
        after=after,
        activate_patient=state.status != S.CONFIRMED,
        slot_check=check,
        notification=_notify(
            after,
            "appointment_rescheduled",
            "Appointment rescheduled",
            f"Your appointment {after.appointment_id} has been moved to {_when(after)}.",
            reason=event.reason,
            previous=_slot_payload(origin),
        ),
    )


def _approve_cancellation(
    state: AppointmentState, event: ApproveCancellation, ctx: TransitionContext
) -> Transition:
    request = _pending_cancellation(state)
    after = replace(
        state,
        status=S.CANCELLED,
        cancellation_reason=request.reason,
        cancellation_request=_review(request, True, ctx, event.admin_notes),
    )
    return Transition(
        before=state,
        after=after,
        notification=_notify(
            after,
            "cancellation_approved",
            "Cancellation approved",
            f"Your cancellation of appointment {after.appointment_id} on {_when(after)} "
            "has been approved.",
            admin_notes=event.admin_notes,
        ),
    )


def _reject_cancellation(
    state: AppointmentState, event: RejectCancellation, ctx: TransitionContext
) -> Transition:
    request = _pending_cancellation(state)
    after = replace(
        state,
        status=request.previous_status,
        cancellation_request=_review(request, False, ctx, event.admin_notes),
    )
    return Transition(
        before=state,
        after=after,
        notification=_notify(
            after,
            "cancellation_rejected",
            "Cancellation request declined",
            f"Your request to cancel appointment {after.appointment_id} was declined. "
            f"The appointment on {_when(after)} stands.",
            rejection_reason=event.admin_notes,
        ),
    )


def _approve_reschedule(
    state: AppointmentState, event: ApproveReschedule, ctx: TransitionContext
) -> Transition:
    request = _pending_reschedule(state)
    if request.initiated_by != "patient" or request.proposed_slot is None:
        raise InvalidTransitionException("This reschedule is awaiting the patient's response")

    origin = request.original_slot or state.slot
    after = replace(
        state.at(request.proposed_slot),
        status=S.CONFIRMED,
        confirmed_by=ctx.actor,
        reschedule_request=_review(request, True, ctx, event.admin_notes),
        rescheduled_from=_moved_from(origin, request.reason, ctx),
    )
    return Transition(
        before=state,
        after=after,
        activate_patient=True,
        slot_check=SlotCheck(after.slot, ConflictTier.OCCUPIED),
        notification=_notify(
            after,
            "reschedule_approved",
            "Reschedule approved",
            f"Your appointment {after.appointment_id} has been moved to {_when(after)}.",
            previous=_slot_payload(origin),
        ),
    )


def _reject_reschedule(
    state: AppointmentState, event: RejectReschedule, ctx: TransitionContext
) -> Transition:
    request = _pending_reschedule(state)
    if request.initiated_by != "patient":
        raise InvalidTransitionException("This reschedule is awaiting the patient's response")

    after = replace(
        state.at(request.original_slot or state.slot),
        status=request.previous_status,
        reschedule_request=_review(request, False, ctx, event.admin_notes),
    )
    return Transition(
        before=state,
        after=after,
        notification=_notify(
            after,
            "reschedule_rejected",
            "Reschedule request declined",
            f"Your request to move appointment {after.appointment_id} was declined. "
            f"The appointment stays on {_when(after)}.",
            rejection_reason=event.admin_notes,
        ),
    )


# Patient transitions


def _request_cancellation(
    state: AppointmentState, event: RequestCancellation, ctx: TransitionContext
) -> Transition:
    _require_portal(state)
    if state.status == S.CANCELLATION_PENDING:
        raise InvalidTransitionException("A cancellation request is already pending")
    _require(state, REQUESTABLE_STATUSES | {S.RESCHEDULE_PENDING}, "request cancellation of")

    current = state
    previous_status = state.status
    pending_move = _pending(state.reschedule_request)
    if state.status == S.RESCHEDULE_PENDING and pending_move is not None:
        # The pending move is withdrawn; the request stands against the original slot
        if pending_move.initiated_by == "staff" and pending_move.original_slot:
            current = current.at(pending_move.original_slot)
        current = replace(
            current,
            reschedule_request=_review(pending_move, False, ctx, "Cancellation requested"),
        )
        previous_status = pending_move.previous_status

    _check_cutoff(current, ctx, "request a cancellation")

    after = replace(
        current,
        status=S.CANCELLATION_PENDING,
        cancellation_request=PendingApproval(
            reason=event.reason,
            requested_at=ctx.now,
            requested_by=ctx.actor,
            initiated_by="patient",
            previous_status=previous_status,
        ),
    )
    return Transition(
        before=state,
        after=after,
        notification=_notify(
            after,
            "cancellation_requested",
            "Cancellation requested",
            f"Your request to cancel appointment {after.appointment_id} on {_when(after)} "
            "was sent to the clinic.",
            reason=event.reason,
        ),
    )


def _request_reschedule(
    state: AppointmentState, event: RequestReschedule, ctx: TransitionContext
) -> Transition:
    _require_portal(state)
    if state.status == S.RESCHEDULE_PENDING:
        raise InvalidTransitionException("A reschedule request is already pending")
    _require(state, REQUESTABLE_STATUSES, "request a reschedule of")
    _check_cutoff(state, ctx, "request a reschedule")

    target = Slot(appointment_date=event.new_date, appointment_time=event.new_time)
    if target == state.slot:
        raise InvalidTransitionException("The appointment is already at that date and time")

    after = replace(
        state,
        status=S.RESCHEDULE_PENDING,
        reschedule_request=PendingApproval(
            reason=event.reason,
            requested_at=ctx.now,
            requested_by=ctx.actor,
            initiated_by="patient",
            previous_status=state.status,
            proposed_slot=target,
            original_slot=state.slot,
        ),
    )
    return Transition(
        before=state,
        after=after,
        slot_check=SlotCheck(target, ConflictTier.OCCUPIED),
        notification=_notify(
            after,
            "reschedule_requested",
            "Reschedule requested",
            f"Your request to move appointment {after.appointment_id} was sent to the clinic.",
            reason=event.reason,
            proposed=_slot_payload(target),
        ),
    )


def _staff_proposal(state: AppointmentState) -> PendingApproval:
    request = _pending(state.reschedule_request)
    if (
        state.status != S.RESCHEDULE_PENDING
        or request is None
        or request.initiated_by != "staff"
    ):
        raise InvalidTransitionException("There is no proposed reschedule to respond to")
    return request


def _accept_reschedule(
    state: AppointmentState, event: AcceptReschedule, ctx: TransitionContext
) -> Transition:
    request = _staff_proposal(state)
    origin = request.original_slot or state.slot
    target = request.proposed_slot or state.slot

    after = replace(
        state.at(target),
        status=S.CONFIRMED,
        confirmed_by=request.requested_by,
        reschedule_request=_review(request, True, ctx),
        rescheduled_from=_moved_from(origin, request.reason, ctx, by=request.requested_by),
    )
    return Transition(
        before=state,
        after=after,
        activate_patient=True,
        slot_check=SlotCheck(target, ConflictTier.HELD, check_hours=False),
        notification=_notify(
            after,
            "reschedule_accepted",
            "Appointment rescheduled",
            f"You accepted the new time. Appointment {after.appointment_id} is confirmed "
            f"for {_when(after)}.",
            previous=_slot_payload(origin),
        ),
    )


def _decline_reschedule(
    state: AppointmentState, event: DeclineReschedule, ctx: TransitionContext
) -> Transition:
    request = _staff_proposal(state)

    # The appointment returns to where it was before the proposal
    after = replace(
        state.at(request.original_slot or state.slot),
        status=request.previous_status,
        reschedule_request=_review(request, False, ctx, event.reason),
    )
    return Transition(
        before=state,
        after=after,
        notification=_notify(
            after,
            "reschedule_declined",
            "Proposed time declined",
            f"You declined the proposed time. Appointment {after.appointment_id} stays on "
            f"{_when(after)}.",
            reason=event.reason,
        ),
    )


_HANDLERS: dict[type, Callable[[AppointmentState, Any, TransitionContext], Transition]] = {
    Confirm: _confirm,
    Cancel: _cancel,
    MarkNoShow: _mark_no_show,
    Complete: _complete,
    StaffReschedule: _staff_reschedule,
    RequestCancellation: _request_cancellation,
    ApproveCancellation: _approve_cancellation,
    RejectCancellation: _reject_cancellation,
    RequestReschedule: _request_reschedule,
    ApproveReschedule: _approve_reschedule,
    RejectReschedule: _reject_reschedule,
    AcceptReschedule: _accept_reschedule,
    DeclineReschedule: _decline_reschedule,
}


def transition(state: AppointmentState, event: Event, ctx: TransitionContext) -> Transition:
    """
    Apply an event to an appointment.

    Args:
        state: Current appointment snapshot
        event: Requested change
        ctx: Actor, clock and clinic timezone

    Returns:
        Next state and side effects

    Raises:
        InvalidTransitionException: If the event is not allowed from the current status
        CutoffExceededException: If a patient request comes too close to the start time
    """
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise InvalidTransitionException(f"Unsupported event {type(event).__name__}")
    return handler(state, event, ctx)
