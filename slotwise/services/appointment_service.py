import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.core.config import settings
from slotwise.core.errors import InvalidStateTransition, NotFound
from slotwise.models.appointment import Appointment, AppointmentStatus
from slotwise.models.business import Business
from slotwise.models.service import Service
from slotwise.models.staff import StaffMember
from slotwise.services.booking_service import expire_hold
from slotwise.services.email_service import BookingSummary
from slotwise.services.local_time import ensure_utc, to_naive_utc, utc_now
from slotwise.services.locks import staff_booking_lock

logger = logging.getLogger(__name__)


async def get_appointment_by_order_id(session: AsyncSession, order_id: str) -> Appointment | None:
    result = await session.execute(select(Appointment).where(Appointment.payment_order_id == order_id))
    return result.scalar_one_or_none()


async def list_business_appointments(
    session: AsyncSession,
    business_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Appointment]:
    q = (
        select(Appointment)
        .where(Appointment.business_id == business_id)
        .order_by(Appointment.start_time)
    )
    if start:
        q = q.where(Appointment.start_time >= to_naive_utc(start))
    if end:
        q = q.where(Appointment.end_time <= to_naive_utc(end))
    result = await session.execute(q)
    return list(result.scalars().all())


async def _get_business_appointment(
    session: AsyncSession, business_id: int, appointment_id: int
) -> Appointment:
    result = await session.execute(
        select(Appointment).where(
            Appointment.id == appointment_id,
            Appointment.business_id == business_id,
        )
    )
    appointment = result.scalar_one_or_none()
    if not appointment:
        raise NotFound("Appointment not found")
    return appointment


async def change_status(
    session: AsyncSession,
    business_id: int,
    appointment_id: int,
    status: AppointmentStatus,
) -> Appointment:
    appointment = await _get_business_appointment(session, business_id, appointment_id)
    async with staff_booking_lock(session, appointment.staff_id):
        await session.refresh(appointment)
        try:
            appointment.transition_to(status)
        except InvalidStateTransition:
            # Nothing changed; ends the transaction holding the advisory lock
            await session.commit()
            raise
        session.add(appointment)
        await session.commit()
    logger.info("Appointment %s marked %s", appointment.id, status.value)
    return appointment


async def cancel_appointment(session: AsyncSession, business_id: int, appointment_id: int) -> Appointment:
    return await change_status(session, business_id, appointment_id, AppointmentStatus.CANCELLED)


async def complete_appointment(session: AsyncSession, business_id: int, appointment_id: int) -> Appointment:
    return await change_status(session, business_id, appointment_id, AppointmentStatus.COMPLETED)


async def expire_stale_holds(session: AsyncSession, now: datetime | None = None) -> int:
    """Cancel AwaitingPayment holds whose expiry passed. Returns count cancelled."""
    now = ensure_utc(now or utc_now())
    result = await session.execute(
        select(Appointment).where(
            Appointment.status == AppointmentStatus.AWAITING_PAYMENT,
            Appointment.hold_expires_at.is_not(None),
            Appointment.hold_expires_at <= to_naive_utc(now),
        )
    )
    candidates = list(result.scalars().all())
    count = 0
    for appointment in candidates:
        async with staff_booking_lock(session, appointment.staff_id):
            # A webhook may have settled it since the query
            await session.refresh(appointment)
            if appointment.is_hold_expired(now):
                expire_hold(appointment)
                session.add(appointment)
                count += 1
            await session.commit()
    if count:
        logger.info("Expired %d payment hold(s)", count)
    return count


async def load_booking_summary(session: AsyncSession, appointment: Appointment) -> BookingSummary:
    business = await session.get(Business, appointment.business_id)
    service = await session.get(Service, appointment.service_id)
    staff = await session.get(StaffMember, appointment.staff_id)
    return BookingSummary(
        client_email=appointment.client_email,
        client_name=appointment.client_name,
        business_name=business.name if business else "",
        service_name=service.name if service else "",
        staff_name=staff.name if staff else "",
        start_utc=ensure_utc(appointment.start_time),
        end_utc=ensure_utc(appointment.end_time),
        timezone=business.timezone if business else settings.default_timezone,
    )
