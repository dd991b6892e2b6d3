from datetime import UTC, date, datetime, timedelta

import pytest

from slotwise.core.errors import InvalidInput
from slotwise.models.schedule import BreakWindow
from slotwise.models.service import Service
from slotwise.services.intervals import Interval
from slotwise.services.slot_service import MAX_SLOTS_PER_DAY, filter_available, generate_slots

NY = "America/New_York"
MONDAY = date(2030, 1, 7)


def utc(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)


def test_generate_slots_full_day():
    slots = generate_slots(MONDAY, "09:00", "17:00", 15, NY)
    assert len(slots) == 32
    assert slots[0] == utc(14)
    # End is exclusive
    assert slots[-1] == utc(21, 45)


def test_generate_slots_step_not_dividing_window():
    slots = generate_slots(MONDAY, "09:00", "10:00", 25, NY)
    assert slots == [utc(14), utc(14, 25), utc(14, 50)]


def test_generate_slots_empty_when_window_inverted():
    assert generate_slots(MONDAY, "17:00", "09:00", 15, NY) == []


@pytest.mark.parametrize("step", [0, -15])
def test_generate_slots_rejects_non_positive_step(step):
    with pytest.raises(InvalidInput):
        generate_slots(MONDAY, "09:00", "17:00", step, NY)


def test_generate_slots_across_spring_forward():
    slots = generate_slots(date(2030, 3, 10), "01:00", "04:00", 30, NY)
    day = date(2030, 3, 10)
    # Only two real hours elapse between 01:00 EST and 04:00 EDT
    assert slots == [utc(6, 0, day), utc(6, 30, day), utc(7, 0, day), utc(7, 30, day)]
    assert len(set(slots)) == len(slots)


def test_generate_slots_across_fall_back():
    day = date(2030, 11, 3)
    slots = generate_slots(day, "01:00", "03:00", 30, NY)
    assert slots[0] == utc(5, 0, day)
    assert slots[-1] == utc(7, 30, day)
    assert len(slots) == 6
    assert all(b - a == timedelta(minutes=30) for a, b in zip(slots, slots[1:]))


def test_generate_slots_is_capped():
    assert len(generate_slots(MONDAY, "00:00", "23:59", 1, NY)) == MAX_SLOTS_PER_DAY - 1
    assert MAX_SLOTS_PER_DAY == 1440


def service(duration: int, buffer: int = 0) -> Service:
    return Service(id=1, business_id=1, name="Test", duration_minutes=duration, buffer_minutes=buffer)


def test_filter_drops_overlaps_with_busy_interval():
    slots = generate_slots(MONDAY, "09:00", "17:00", 15, NY)
    busy = [Interval(utc(15), utc(16))]  # 10:00-11:00 local
    free = filter_available(slots, service(60), busy, [], MONDAY, NY, work_end="17:00")
    assert utc(14) in free  # 09:00 ends exactly when the booking starts
    assert utc(16) in free  # 11:00 starts exactly when it ends
    for blocked in (utc(14, 15), utc(14, 30), utc(14, 45), utc(15), utc(15, 15), utc(15, 30), utc(15, 45)):
        assert blocked not in free


def test_filter_respects_buffer_of_candidate():
    busy = [Interval(utc(15), utc(15, 30))]
    # 09:30 + 30 min service + 15 min buffer reaches 10:15
    free = filter_available([utc(14, 15), utc(14, 30)], service(30, 15), busy, [], MONDAY, NY)
    assert free == [utc(14, 15)]


def test_filter_drops_slots_touching_breaks():
    slots = generate_slots(MONDAY, "09:00", "17:00", 15, NY)
    breaks = [BreakWindow(start_time="12:00", end_time="13:00")]
    free = filter_available(slots, service(60), [], breaks, MONDAY, NY, work_end="17:00")
    assert utc(16) in free  # 11:00-12:00
    assert utc(18) in free  # 13:00-14:00
    assert utc(16, 15) not in free
    assert utc(17, 45) not in free


def test_filter_drops_slots_running_past_closing():
    slots = generate_slots(MONDAY, "09:00", "17:00", 15, NY)
    free = filter_available(slots, service(60), [], [], MONDAY, NY, work_end="17:00")
    assert free[-1] == utc(21)  # 16:00 local
    assert len(free) == 29


def test_filter_allows_buffer_past_closing():
    slots = generate_slots(MONDAY, "09:00", "17:00", 15, NY)
    free = filter_available(slots, service(30, 15), [], [], MONDAY, NY, work_end="17:00")
    assert free[-1] == utc(21, 30)  # 16:30-17:00 service, buffer runs to 17:15
