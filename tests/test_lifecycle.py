"""Unit tests for the appointment lifecycle engine."""

from dataclasses import replace
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from app.core.exceptions import CutoffExceededException, InvalidTransitionException
from app.schemas.approvals import ApprovedApproval, PendingApproval, RejectedApproval, Slot
from app.schemas.enums import AppointmentStatus, BookingSource
from app.services import lifecycle
from app.services.lifecycle import AppointmentState, ConflictTier, TransitionContext

MANILA = ZoneInfo("Asia/Manila")
DAY = date(2026, 11, 2)
NOW = datetime(2026, 10, 30, 10, 0, tzinfo=MANILA)


def make_state(**overrides) -> AppointmentState:
    values = {
        "appointment_id": "APT20261030001",
        "status": AppointmentStatus.SCHEDULED,
        "booking_source": BookingSource.PATIENT_PORTAL,
        "has_portal_account": True,
        "patient_name": "Ana Santos",
        "doctor_name": "Dr. Maria Sarah L. Manaloto",
        "appointment_date": DAY,
        "appointment_time": "09:00 AM",
    }
    values.update(overrides)
    return AppointmentState(**values)


def ctx(actor: str = "frontdesk", now: datetime = NOW) -> TransitionContext:
    return TransitionContext(actor=actor, now=now, timezone=MANILA)


def test_confirm_from_scheduled():
    """Confirming records the confirming staff and requests a held-tier check."""
    result = lifecycle.transition(make_state(), lifecycle.Confirm(), ctx())

    assert result.after.status == AppointmentStatus.CONFIRMED
    assert result.after.confirmed_by == "frontdesk"
    assert result.activate_patient is True
    assert result.slot_check.tier == ConflictTier.HELD
    assert result.slot_check.check_hours is False
    assert result.notification.event_type == "appointment_confirmed"


@pytest.mark.parametrize(
    "status",
    [AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.CONFIRMED],
)
def test_confirm_rejected_from_other_statuses(status):
    with pytest.raises(InvalidTransitionException):
        lifecycle.transition(make_state(status=status), lifecycle.Confirm(), ctx())


@pytest.mark.parametrize(
    "event",
    [lifecycle.Confirm(), lifecycle.Cancel(), lifecycle.Complete(), lifecycle.MarkNoShow()],
)
def test_terminal_statuses_are_final(event):
    for status in (AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED):
        with pytest.raises(InvalidTransitionException):
            lifecycle.transition(make_state(status=status), event, ctx())


def test_no_show_records_strike_once():
    """A second no-show on the same appointment changes nothing."""
    first = lifecycle.transition(make_state(), lifecycle.MarkNoShow(), ctx())
    assert first.after.status == AppointmentStatus.NO_SHOW
    assert first.record_no_show is True

    repeat = lifecycle.transition(first.after, lifecycle.MarkNoShow(), ctx())
    assert repeat.changed is False
    assert repeat.record_no_show is False
    assert repeat.notification is None


def test_no_show_can_be_cancelled_but_not_confirmed():
    state = make_state(status=AppointmentStatus.NO_SHOW)

    cancelled = lifecycle.transition(state, lifecycle.Cancel(reason="Entered by mistake"), ctx())
    assert cancelled.after.status == AppointmentStatus.CANCELLED

    with pytest.raises(InvalidTransitionException):
        lifecycle.transition(state, lifecycle.Confirm(), ctx())


def test_staff_cancel_of_portal_booking_records_approved_request():
    result = lifecycle.transition(make_state(), lifecycle.Cancel(reason="Doctor on leave"), ctx())

    assert result.after.status == AppointmentStatus.CANCELLED
    assert result.after.cancellation_reason == "Doctor on leave"
    request = result.after.cancellation_request
    assert isinstance(request, ApprovedApproval)
    assert request.initiated_by == "staff"
    assert request.previous_status == AppointmentStatus.SCHEDULED


def test_staff_cancel_of_staff_booking_has_no_request():
    state = make_state(booking_source=BookingSource.STAFF, has_portal_account=False)
    result = lifecycle.transition(state, lifecycle.Cancel(), ctx())

    assert result.after.status == AppointmentStatus.CANCELLED
    assert result.after.cancellation_request is None
    assert result.notification is None


def test_staff_reschedule_of_staff_booking_confirms_new_slot():
    state = make_state(booking_source=BookingSource.STAFF, has_portal_account=False)
    event = lifecycle.StaffReschedule(new_date=DAY, new_time="10:30 AM", reason="Doctor late")
    result = lifecycle.transition(state, event, ctx())

    assert result.after.status == AppointmentStatus.CONFIRMED
    assert result.after.appointment_time == "10:30 AM"
    assert result.after.rescheduled_from.appointment_time == "09:00 AM"
    assert result.after.rescheduled_from.reason == "Doctor late"
    assert result.slot_check.tier == ConflictTier.OCCUPIED
    assert result.slot_check.slot == Slot(appointment_date=DAY, appointment_time="10:30 AM")


def test_staff_reschedule_to_same_slot_is_rejected():
    event = lifecycle.StaffReschedule(new_date=DAY, new_time="09:00 AM")
    with pytest.raises(InvalidTransitionException):
        lifecycle.transition(make_state(), event, ctx())


def test_staff_reschedule_of_portal_booking_waits_for_patient():
    event = lifecycle.StaffReschedule(new_date=DAY, new_time="11:00 AM", reason="Clinic closed")
    result = lifecycle.transition(make_state(), event, ctx())

    after = result.after
    assert after.status == AppointmentStatus.RESCHEDULE_PENDING
    # The proposed slot is shown; the original is kept on the request
    assert after.appointment_time == "11:00 AM"
    request = after.reschedule_request
    assert isinstance(request, PendingApproval)
    assert request.initiated_by == "staff"
    assert request.original_slot.appointment_time == "09:00 AM"
    assert request.proposed_slot.appointment_time == "11:00 AM"
    assert result.notification.event_type == "reschedule_proposed"


def test_accept_staff_proposal_confirms_proposed_slot():
    proposal = lifecycle.transition(
        make_state(),
        lifecycle.StaffReschedule(new_date=DAY, new_time="11:00 AM"),
        ctx(),
    ).after

    result = lifecycle.transition(proposal, lifecycle.AcceptReschedule(), ctx("ana@example.com"))

    assert result.after.status == AppointmentStatus.CONFIRMED
    assert result.after.appointment_time == "11:00 AM"
    assert result.after.confirmed_by == "frontdesk"
    assert result.after.rescheduled_from.appointment_time == "09:00 AM"
    assert result.after.rescheduled_from.rescheduled_by == "frontdesk"
    assert isinstance(result.after.reschedule_request, ApprovedApproval)
    assert result.slot_check.tier == ConflictTier.HELD


def test_decline_staff_proposal_restores_original_slot_and_status():
    state = make_state(status=AppointmentStatus.CONFIRMED)
    proposal = lifecycle.transition(
        state,
        lifecycle.StaffReschedule(new_date=DAY, new_time="11:00 AM"),
        ctx(),
    ).after

    result = lifecycle.transition(
        proposal, lifecycle.DeclineReschedule(reason="Cannot make it"), ctx("ana@example.com")
    )

    assert result.after.status == AppointmentStatus.CONFIRMED
    assert result.after.appointment_time == "09:00 AM"
    assert isinstance(result.after.reschedule_request, RejectedApproval)
    assert result.after.reschedule_request.admin_notes == "Cannot make it"


def test_patient_cannot_answer_own_request():
    pending = lifecycle.transition(
        make_state(),
        lifecycle.RequestReschedule(new_date=DAY, new_time="10:00 AM", reason="Work"),
        ctx("ana@example.com"),
    ).after

    with pytest.raises(InvalidTransitionException):
        lifecycle.transition(pending, lifecycle.AcceptReschedule(), ctx("ana@example.com"))


def test_patient_reschedule_request_keeps_current_slot():
    event = lifecycle.RequestReschedule(new_date=DAY, new_time="10:00 AM", reason="Work")
    result = lifecycle.transition(make_state(), event, ctx("ana@example.com"))

    assert result.after.status == AppointmentStatus.RESCHEDULE_PENDING
    assert result.after.appointment_time == "09:00 AM"
    assert result.after.reschedule_request.proposed_slot.appointment_time == "10:00 AM"
    assert result.slot_check.tier == ConflictTier.OCCUPIED


def test_approve_patient_reschedule_moves_appointment():
    pending = lifecycle.transition(
        make_state(status=AppointmentStatus.CONFIRMED),
        lifecycle.RequestReschedule(new_date=DAY, new_time="10:00 AM", reason="Work"),
        ctx("ana@example.com"),
    ).after

    result = lifecycle.transition(pending, lifecycle.ApproveReschedule(admin_notes="OK"), ctx())

    assert result.after.status == AppointmentStatus.CONFIRMED
    assert result.after.appointment_time == "10:00 AM"
    assert result.after.rescheduled_from.appointment_time == "09:00 AM"
    assert result.after.reschedule_request.reviewed_by == "frontdesk"


def test_reject_patient_reschedule_restores_previous_status():
    pending = lifecycle.transition(
        make_state(status=AppointmentStatus.CONFIRMED),
        lifecycle.RequestReschedule(new_date=DAY, new_time="10:00 AM", reason="Work"),
        ctx("ana@example.com"),
    ).after

    result = lifecycle.transition(pending, lifecycle.RejectReschedule(admin_notes="Full"), ctx())

    assert result.after.status == AppointmentStatus.CONFIRMED
    assert result.after.appointment_time == "09:00 AM"
    assert result.notification.payload["rejection_reason"] == "Full"


def test_staff_cannot_approve_own_proposal():
    proposal = lifecycle.transition(
        make_state(),
        lifecycle.StaffReschedule(new_date=DAY, new_time="11:00 AM"),
        ctx(),
    ).after

    with pytest.raises(InvalidTransitionException):
        lifecycle.transition(proposal, lifecycle.ApproveReschedule(), ctx())


def test_cancellation_request_and_rejection_round_trip():
    state = make_state(status=AppointmentStatus.CONFIRMED)
    pending = lifecycle.transition(
        state, lifecycle.RequestCancellation(reason="Travelling"), ctx("ana@example.com")
    ).after
    assert pending.status == AppointmentStatus.CANCELLATION_PENDING

    with pytest.raises(InvalidTransitionException, match="already pending"):
        lifecycle.transition(
            pending, lifecycle.RequestCancellation(reason="Again"), ctx("ana@example.com")
        )

    rejected = lifecycle.transition(pending, lifecycle.RejectCancellation(), ctx()).after
    assert rejected.status == AppointmentStatus.CONFIRMED
    assert isinstance(rejected.cancellation_request, RejectedApproval)


def test_approve_cancellation_uses_patient_reason():
    pending = lifecycle.transition(
        make_state(), lifecycle.RequestCancellation(reason="Travelling"), ctx("ana@example.com")
    ).after

    result = lifecycle.transition(pending, lifecycle.ApproveCancellation(), ctx())

    assert result.after.status == AppointmentStatus.CANCELLED
    assert result.after.cancellation_reason == "Travelling"


def test_patient_requests_need_portal_booking():
    state = make_state(booking_source=BookingSource.STAFF)
    with pytest.raises(InvalidTransitionException):
        lifecycle.transition(
            state, lifecycle.RequestCancellation(reason="x"), ctx("ana@example.com")
        )


def test_cutoff_boundary():
    """Exactly two hours before the start is allowed; one second less is not."""
    start = datetime(2026, 11, 2, 9, 0, tzinfo=MANILA)
    event = lifecycle.RequestCancellation(reason="Sick")

    at_boundary = lifecycle.transition(make_state(), event, ctx(now=start - timedelta(hours=2)))
    assert at_boundary.after.status == AppointmentStatus.CANCELLATION_PENDING

    with pytest.raises(CutoffExceededException):
        lifecycle.transition(
            make_state(), event, ctx(now=start - timedelta(hours=1, minutes=59, seconds=59))
        )


def test_cutoff_compares_in_clinic_timezone():
    """A UTC clock is converted before comparing with the Manila start time."""
    start_utc = datetime(2026, 11, 2, 1, 0, tzinfo=ZoneInfo("UTC"))
    event = lifecycle.RequestReschedule(new_date=DAY, new_time="10:00 AM", reason="Work")

    with pytest.raises(CutoffExceededException):
        lifecycle.transition(make_state(), event, ctx(now=start_utc - timedelta(hours=1)))


def test_complete_closes_pending_requests():
    pending = lifecycle.transition(
        make_state(), lifecycle.RequestCancellation(reason="Travelling"), ctx("ana@example.com")
    ).after

    result = lifecycle.transition(pending, lifecycle.Complete(), ctx())

    assert result.after.status == AppointmentStatus.COMPLETED
    assert isinstance(result.after.cancellation_request, RejectedApproval)


def test_confirm_pending_staff_proposal_keeps_original_slot():
    proposal = lifecycle.transition(
        make_state(),
        lifecycle.StaffReschedule(new_date=DAY, new_time="11:00 AM"),
        ctx(),
    ).after

    result = lifecycle.transition(proposal, lifecycle.Confirm(), ctx())

    assert result.after.status == AppointmentStatus.CONFIRMED
    assert result.after.appointment_time == "09:00 AM"
    assert isinstance(result.after.reschedule_request, RejectedApproval)


def test_staff_reschedule_answers_patient_request():
    pending = lifecycle.transition(
        make_state(),
        lifecycle.RequestReschedule(new_date=DAY, new_time="10:00 AM", reason="Work"),
        ctx("ana@example.com"),
    ).after

    event = lifecycle.StaffReschedule(new_date=DAY, new_time="10:30 AM", reason="Nearest slot")
    result = lifecycle.transition(pending, event, ctx())

    assert result.after.status == AppointmentStatus.CONFIRMED
    assert result.after.appointment_time == "10:30 AM"
    approved = result.after.reschedule_request
    assert isinstance(approved, ApprovedApproval)
    assert approved.proposed_slot.appointment_time == "10:30 AM"


def test_no_notification_without_portal_account():
    state = make_state(has_portal_account=False)
    result = lifecycle.transition(state, lifecycle.Confirm(), ctx())
    assert result.notification is None


def test_legacy_rescheduled_status_can_be_confirmed():
    state = replace(make_state(), status=AppointmentStatus.RESCHEDULED)
    result = lifecycle.transition(state, lifecycle.Confirm(), ctx())
    assert result.after.status == AppointmentStatus.CONFIRMED


def test_cancellation_request_withdraws_staff_proposal():
    """Asking to cancel during a staff proposal reverts to the original slot first."""
    proposal = lifecycle.transition(
        make_state(status=AppointmentStatus.CONFIRMED),
        lifecycle.StaffReschedule(new_date=DAY, new_time="11:00 AM"),
        ctx(),
    ).after

    result = lifecycle.transition(
        proposal, lifecycle.RequestCancellation(reason="Travelling"), ctx("ana@example.com")
    )

    after = result.after
    assert after.status == AppointmentStatus.CANCELLATION_PENDING
    assert after.appointment_time == "09:00 AM"
    assert isinstance(after.reschedule_request, RejectedApproval)
    assert after.cancellation_request.previous_status == AppointmentStatus.CONFIRMED

    rejected = lifecycle.transition(after, lifecycle.RejectCancellation(), ctx()).after
    assert rejected.status == AppointmentStatus.CONFIRMED
    assert rejected.appointment_time == "09:00 AM"


def test_cancellation_request_withdraws_patient_reschedule_request():
    pending = lifecycle.transition(
        make_state(),
        lifecycle.RequestReschedule(new_date=DAY, new_time="10:00 AM", reason="Work"),
        ctx("ana@example.com"),
    ).after

    result = lifecycle.transition(
        pending, lifecycle.RequestCancellation(reason="Changed plans"), ctx("ana@example.com")
    )

    assert result.after.status == AppointmentStatus.CANCELLATION_PENDING
    assert result.after.appointment_time == "09:00 AM"
    assert result.after.cancellation_request.previous_status == AppointmentStatus.SCHEDULED


def test_staff_reproposing_original_slot_withdraws_proposal():
    proposal = lifecycle.transition(
        make_state(status=AppointmentStatus.CONFIRMED),
        lifecycle.StaffReschedule(new_date=DAY, new_time="11:00 AM"),
        ctx(),
    ).after

    result = lifecycle.transition(
        proposal, lifecycle.StaffReschedule(new_date=DAY, new_time="09:00 AM"), ctx()
    )

    assert result.after.status == AppointmentStatus.CONFIRMED
    assert result.after.appointment_time == "09:00 AM"
    assert result.after.rescheduled_from is None
    assert isinstance(result.after.reschedule_request, RejectedApproval)
    assert result.slot_check is None
    assert result.notification.event_type == "reschedule_withdrawn"
