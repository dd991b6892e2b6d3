"""Booking transaction manager.

The overlap re-check and the insert run as one unit of work under the
staff member's booking lock, and the unit is committed before the lock is
released. Whatever availability the client saw earlier may be stale; the
check here is the authoritative one.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.core.errors import ConflictError, InvalidInput
from slotwise.models.appointment import (
    Appointment,
    AppointmentStatus,
    ClientContact,
    PaymentStatus,
)
from slotwise.services.catalog_service import BookingTarget, resolve_booking_target
from slotwise.services.intervals import Interval
from slotwise.services.local_time import ensure_utc, to_instant, to_local, to_naive_utc, utc_now
from slotwise.services.locks import staff_booking_lock
from slotwise.services.slot_service import filter_available, list_overlapping_appointments

logger = logging.getLogger(__name__)


def ensure_fits_schedule(target: BookingTarget, start: datetime) -> None:
    """InvalidInput unless the service fits the staff member's working window on that local day."""
    tz = target.business.config.timezone
    local_day, _ = to_local(start, tz)
    day_schedule = target.staff.weekly_schedule().for_date(local_day)
    if not day_schedule.is_working:
        raise InvalidInput("Staff member is not working on that day")
    if start < to_instant(local_day, day_schedule.start_time, tz):
        raise InvalidInput("Requested time is outside the staff member's working hours")
    fits = filter_available(
        [start], target.service, [], day_schedule.breaks, local_day, tz, work_end=day_schedule.end_time
    )
    if not fits:
        raise InvalidInput("Requested time is outside the staff member's working hours")


def expire_hold(appointment: Appointment) -> None:
    appointment.transition_to(AppointmentStatus.CANCELLED)
    appointment.payment_status = PaymentStatus.FAILED


async def release_expired_and_find_blocking(
    session: AsyncSession,
    staff_id: int,
    interval: Interval,
    now: datetime,
    exclude_appointment_id: int | None = None,
) -> list[Appointment]:
    """Appointments blocking `interval`; overlapping stale holds are cancelled on the way.

    Must run under ``staff_booking_lock`` for `staff_id`.
    """
    overlapping = await list_overlapping_appointments(
        session, staff_id, interval, exclude_appointment_id=exclude_appointment_id
    )
    blocking = []
    for existing in overlapping:
        if existing.is_hold_expired(now):
            logger.info("Releasing expired hold %s for staff=%s", existing.id, staff_id)
            expire_hold(existing)
            session.add(existing)
        else:
            blocking.append(existing)
    if len(blocking) < len(overlapping):
        # Released rows must leave the overlap constraint before any insert
        await session.flush()
    return blocking


async def reserve_interval(
    session: AsyncSession,
    target: BookingTarget,
    start_time: datetime,
    client: ClientContact,
    *,
    status: AppointmentStatus = AppointmentStatus.CONFIRMED,
    hold_expires_at: datetime | None = None,
    deposit_percent: float | None = None,
    payment_amount: int | None = None,
    payment_currency: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    """Insert an appointment for `target` unless its blocking interval is taken.

    Raises ConflictError when another Confirmed or unexpired AwaitingPayment
    appointment of the same staff member overlaps
    [start, start + duration + buffer).
    """
    now = ensure_utc(now or utc_now())
    start = ensure_utc(start_time)
    if start < now:
        raise InvalidInput("Start time is in the past")
    ensure_fits_schedule(target, start)

    service = target.service
    end = start + timedelta(minutes=service.duration_minutes)
    requested = Interval(start, end).extended(service.buffer_minutes)

    async with staff_booking_lock(session, target.staff.id):
        try:
            blocking = await release_expired_and_find_blocking(session, target.staff.id, requested, now)
            if blocking:
                logger.info(
                    "Slot unavailable: staff=%s start=%s conflicts with appointment(s) %s",
                    target.staff.id, start.isoformat(), [a.id for a in blocking],
                )
                raise ConflictError()

            appointment = Appointment(
                business_id=target.business.id,
                service_id=service.id,
                staff_id=target.staff.id,
                client_name=client.name,
                client_email=str(client.email),
                client_phone=client.phone,
                start_time=to_naive_utc(start),
                end_time=to_naive_utc(end),
                buffer_minutes=service.buffer_minutes,
                blocked_until=to_naive_utc(requested.end),
                price=service.price,
                status=status,
                hold_expires_at=to_naive_utc(hold_expires_at) if hold_expires_at else None,
                deposit_percent=deposit_percent,
                payment_amount=payment_amount,
                payment_currency=payment_currency,
            )
            session.add(appointment)
            await session.flush()
            await session.commit()
        except ConflictError:
            # Only released stale holds are pending; keep them and end the transaction
            await session.commit()
            raise
        except IntegrityError as e:
            # Exclusion constraint caught an overlap this process could not see
            await session.rollback()
            logger.info("IntegrityError while booking staff=%s start=%s (slot taken): %s", target.staff.id, start, e)
            raise ConflictError() from e

    logger.info(
        "Appointment %s created: staff=%s start=%s status=%s",
        appointment.id, appointment.staff_id, start.isoformat(), appointment.status.value,
    )
    return appointment


async def create_booking(
    session: AsyncSession,
    business_slug: str,
    service_id: int,
    staff_id: int,
    start_time: datetime,
    client: ClientContact,
    now: datetime | None = None,
) -> Appointment:
    """Direct booking path: the appointment is Confirmed on success."""
    target = await resolve_booking_target(session, business_slug, service_id, staff_id)
    if target.business.deposit_required:
        raise InvalidInput("This business requires a deposit; create a payment order instead")
    return await reserve_interval(
        session, target, start_time, client, status=AppointmentStatus.CONFIRMED, now=now
    )
