from datetime import UTC, datetime, timedelta

import pytest

from slotwise.core.errors import ConflictError, InvalidInput, InvalidStateTransition, InvalidTimeZone
from slotwise.models.appointment import (
    ACTIVE_STATUSES,
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    Appointment,
    AppointmentStatus,
)
from slotwise.models.business import BusinessConfig
from slotwise.services.intervals import Interval

START = datetime(2030, 1, 7, 15, 0)


def appointment(status=AppointmentStatus.CONFIRMED, hold_expires_at=None) -> Appointment:
    return Appointment(
        id=1,
        business_id=1,
        service_id=1,
        staff_id=1,
        client_name="Jamie",
        client_email="jamie@example.com",
        start_time=START,
        end_time=START + timedelta(minutes=30),
        buffer_minutes=15,
        blocked_until=START + timedelta(minutes=45),
        status=status,
        hold_expires_at=hold_expires_at,
    )


@pytest.mark.parametrize(
    "source,target",
    [
        (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED),
        (AppointmentStatus.AWAITING_PAYMENT, AppointmentStatus.CONFIRMED),
        (AppointmentStatus.AWAITING_PAYMENT, AppointmentStatus.PAYMENT_FAILED),
        (AppointmentStatus.AWAITING_PAYMENT, AppointmentStatus.CANCELLED),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED),
    ],
)
def test_allowed_transitions(source, target):
    appt = appointment(source)
    appt.transition_to(target)
    assert appt.status == target


@pytest.mark.parametrize(
    "source,target",
    [
        (AppointmentStatus.CANCELLED, AppointmentStatus.CONFIRMED),
        (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED),
        (AppointmentStatus.PAYMENT_FAILED, AppointmentStatus.CONFIRMED),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.AWAITING_PAYMENT),
        (AppointmentStatus.AWAITING_PAYMENT, AppointmentStatus.COMPLETED),
    ],
)
def test_rejected_transitions(source, target):
    appt = appointment(source)
    with pytest.raises(InvalidStateTransition):
        appt.transition_to(target)
    assert appt.status == source


def test_invalid_transition_is_a_conflict():
    assert issubclass(InvalidStateTransition, ConflictError)
    assert InvalidStateTransition.status_code == 409


def test_blocking_interval_includes_buffer():
    appt = appointment()
    assert appt.blocking_interval() == Interval(
        START.replace(tzinfo=UTC), (START + timedelta(minutes=45)).replace(tzinfo=UTC)
    )


def test_hold_blocks_until_expiry():
    expires = datetime(2030, 1, 1, 12, 10)
    appt = appointment(AppointmentStatus.AWAITING_PAYMENT, hold_expires_at=expires)
    assert appt.blocks_slot(datetime(2030, 1, 1, 12, 9, tzinfo=UTC))
    assert not appt.blocks_slot(datetime(2030, 1, 1, 12, 10, tzinfo=UTC))
    assert appointment(AppointmentStatus.CANCELLED).blocks_slot(datetime(2030, 1, 1, tzinfo=UTC)) is False


def test_interval_overlap_is_half_open():
    a = Interval(datetime(2030, 1, 1, 10, tzinfo=UTC), datetime(2030, 1, 1, 11, tzinfo=UTC))
    b = Interval(datetime(2030, 1, 1, 11, tzinfo=UTC), datetime(2030, 1, 1, 12, tzinfo=UTC))
    assert not a.overlaps(b)
    assert a.extended(1).overlaps(b)


def test_business_config_validation():
    assert BusinessConfig("Europe/Berlin", 30).slot_interval_minutes == 30
    with pytest.raises(InvalidTimeZone):
        BusinessConfig("Atlantis/Capital")
    with pytest.raises(InvalidInput):
        BusinessConfig("America/New_York", 0)


def test_terminal_statuses_have_no_exits():
    for status in TERMINAL_STATUSES:
        assert ALLOWED_TRANSITIONS[status] == frozenset()
    assert not set(ACTIVE_STATUSES) & TERMINAL_STATUSES
