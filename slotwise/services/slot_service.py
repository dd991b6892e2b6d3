import logging
from collections.abc import Sequence
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.core.errors import InvalidInput
from slotwise.models.appointment import ACTIVE_STATUSES, Appointment
from slotwise.models.schedule import BreakWindow
from slotwise.models.service import Service
from slotwise.services.catalog_service import resolve_booking_target
from slotwise.services.intervals import Interval, overlaps_any
from slotwise.services.local_time import ensure_utc, to_instant, to_naive_utc, utc_now

logger = logging.getLogger(__name__)

# One slot per minute over a full day; anything beyond is a misconfiguration
MAX_SLOTS_PER_DAY = 24 * 60


def generate_slots(
    day: date, work_start: str, work_end: str, step_minutes: int, timezone: str
) -> list[datetime]:
    """Candidate slot starts (UTC) from work_start, every step_minutes, strictly before work_end."""
    if step_minutes <= 0:
        raise InvalidInput(f"slot step must be positive, got {step_minutes}")
    current = to_instant(day, work_start, timezone)
    end = to_instant(day, work_end, timezone)
    step = timedelta(minutes=step_minutes)
    slots: list[datetime] = []
    while current < end:
        if len(slots) >= MAX_SLOTS_PER_DAY:
            logger.warning(
                "Slot generation truncated at %d slots for %s %s-%s (%s)",
                MAX_SLOTS_PER_DAY, day, work_start, work_end, timezone,
            )
            break
        slots.append(current)
        current += step
    return slots


def break_intervals(breaks: Sequence[BreakWindow], day: date, timezone: str) -> list[Interval]:
    return [
        Interval(to_instant(day, b.start_time, timezone), to_instant(day, b.end_time, timezone))
        for b in breaks
    ]


def filter_available(
    slots: Sequence[datetime],
    service: Service,
    existing_intervals: Sequence[Interval],
    break_windows: Sequence[BreakWindow],
    day: date,
    timezone: str,
    work_end: str | None = None,
) -> list[datetime]:
    """Drop slots that collide with busy intervals, breaks or closing time.

    `existing_intervals` are the [start, end + buffer) spans of the staff
    member's blocking appointments. A slot occupies
    [s, s + duration + buffer); the service portion alone must also stay
    clear of breaks, and must finish by `work_end` when given (the buffer
    may run past closing).
    """
    duration = timedelta(minutes=service.duration_minutes)
    occupied_span = timedelta(minutes=service.duration_minutes + service.buffer_minutes)
    busy = list(existing_intervals)
    breaks = break_intervals(break_windows, day, timezone)
    closing = to_instant(day, work_end, timezone) if work_end else None

    available: list[datetime] = []
    for s in slots:
        occupied = Interval(s, s + occupied_span)
        service_portion = Interval(s, s + duration)
        if overlaps_any(occupied, busy):
            continue
        if overlaps_any(occupied, breaks) or overlaps_any(service_portion, breaks):
            continue
        if closing is not None and service_portion.end > closing:
            continue
        available.append(s)
    return available


async def get_busy_intervals(
    session: AsyncSession,
    staff_id: int,
    window: Interval,
    now: datetime | None = None,
    exclude_appointment_id: int | None = None,
) -> list[Interval]:
    """Blocking intervals of the staff member's appointments overlapping `window`.

    Read-only: AwaitingPayment holds past their expiry are skipped, not cancelled.
    """
    now = now or utc_now()
    appointments = await list_overlapping_appointments(
        session, staff_id, window, exclude_appointment_id=exclude_appointment_id
    )
    return [a.blocking_interval() for a in appointments if a.blocks_slot(now)]


async def list_overlapping_appointments(
    session: AsyncSession,
    staff_id: int,
    window: Interval,
    exclude_appointment_id: int | None = None,
) -> list[Appointment]:
    """Active appointments whose [start, blocked_until) overlaps `window` (half-open)."""
    q = select(Appointment).where(
        Appointment.staff_id == staff_id,
        Appointment.status.in_(ACTIVE_STATUSES),
        Appointment.start_time < to_naive_utc(window.end),
        Appointment.blocked_until > to_naive_utc(window.start),
    )
    if exclude_appointment_id is not None:
        q = q.where(Appointment.id != exclude_appointment_id)
    result = await session.execute(q.order_by(Appointment.start_time))
    return list(result.scalars().all())


async def get_available_slots_for_date(
    session: AsyncSession,
    business_slug: str,
    day: date,
    service_id: int,
    staff_id: int,
    now: datetime | None = None,
) -> list[datetime]:
    """Free slot starts (UTC) for a staff member and service on a local business date."""
    target = await resolve_booking_target(session, business_slug, service_id, staff_id)
    config = target.business.config
    day_schedule = target.staff.weekly_schedule().for_date(day)
    if not day_schedule.is_working:
        return []

    slots = generate_slots(
        day,
        day_schedule.start_time,
        day_schedule.end_time,
        config.slot_interval_minutes,
        config.timezone,
    )
    now = ensure_utc(now or utc_now())
    # Booking rejects starts before now
    slots = [s for s in slots if s >= now]
    if not slots:
        return []
    reach = timedelta(minutes=target.service.duration_minutes + target.service.buffer_minutes)
    window = Interval(slots[0], slots[-1] + reach)
    busy = await get_busy_intervals(session, target.staff.id, window, now=now)
    return filter_available(
        slots,
        target.service,
        busy,
        day_schedule.breaks,
        day,
        config.timezone,
        work_end=day_schedule.end_time,
    )
