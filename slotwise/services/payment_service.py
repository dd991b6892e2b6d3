"""Deposit payment holds and gateway callback reconciliation.

AwaitingPayment --captured/authorized--> Confirmed
AwaitingPayment --failed--> PaymentFailed
AwaitingPayment --hold expired--> Cancelled (reaper or lazy expiry)

Webhook deliveries are at-least-once and unordered, so every transition
first re-reads the appointment under the staff lock and only acts on
AwaitingPayment holds; anything else is acknowledged without changes.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.core.config import settings
from slotwise.core.errors import GatewayError, InvalidInput, InvalidSignature
from slotwise.models.appointment import (
    Appointment,
    AppointmentStatus,
    ClientContact,
    PaymentStatus,
)
from slotwise.services.appointment_service import get_appointment_by_order_id
from slotwise.services.booking_service import (
    expire_hold,
    release_expired_and_find_blocking,
    reserve_interval,
)
from slotwise.services.catalog_service import resolve_booking_target
from slotwise.services.local_time import ensure_utc, to_naive_utc, utc_now
from slotwise.services.locks import staff_booking_lock
from slotwise.services.payment_gateway import PaymentEvent, PaymentEventStatus, PaymentGateway

logger = logging.getLogger(__name__)


def clamp_deposit_percent(value: float | None) -> float:
    if value is None:
        value = settings.default_deposit_percent
    return float(min(100, max(0, value)))


def deposit_amount(price: int, percent: float) -> int:
    """Deposit in minor units, rounded half-up."""
    amount = Decimal(price) * Decimal(str(percent)) / Decimal(100)
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PaymentOrderResult:
    appointment: Appointment
    order_id: str
    amount: int
    currency: str
    deposit_percent: float
    gateway_public_key: str


async def create_payment_order(
    session: AsyncSession,
    gateway: PaymentGateway,
    business_slug: str,
    service_id: int,
    staff_id: int,
    start_time: datetime,
    client: ClientContact,
    deposit_percent: float | None = None,
    now: datetime | None = None,
) -> PaymentOrderResult:
    """Place an AwaitingPayment hold and open a gateway order for its deposit."""
    target = await resolve_booking_target(session, business_slug, service_id, staff_id)
    percent = clamp_deposit_percent(deposit_percent)
    amount = deposit_amount(target.service.price, percent)
    if amount <= 0:
        raise InvalidInput("Deposit amount must be greater than zero")
    currency = settings.payment_currency
    now = ensure_utc(now or utc_now())

    # The hold is committed before the gateway call so the slot is blocked
    # without keeping the staff lock across network I/O.
    hold = await reserve_interval(
        session,
        target,
        start_time,
        client,
        status=AppointmentStatus.AWAITING_PAYMENT,
        hold_expires_at=now + timedelta(minutes=settings.payment_hold_minutes),
        deposit_percent=percent,
        payment_amount=amount,
        payment_currency=currency,
        now=now,
    )
    try:
        order = await gateway.create_order(
            amount,
            currency,
            {
                "receipt": f"appointment_{hold.id}",
                "appointment_id": str(hold.id),
                "business": business_slug,
            },
        )
    except GatewayError:
        async with staff_booking_lock(session, hold.staff_id):
            await session.refresh(hold)
            if hold.status == AppointmentStatus.AWAITING_PAYMENT:
                expire_hold(hold)
                session.add(hold)
            await session.commit()
        logger.warning("Released hold %s after payment gateway failure", hold.id)
        raise

    hold.payment_order_id = order.order_id
    session.add(hold)
    await session.commit()
    logger.info(
        "Payment order %s opened for appointment %s: %d %s (%.0f%% deposit)",
        order.order_id, hold.id, order.amount, order.currency, percent,
    )
    return PaymentOrderResult(
        appointment=hold,
        order_id=order.order_id,
        amount=order.amount,
        currency=order.currency,
        deposit_percent=percent,
        gateway_public_key=gateway.public_key,
    )


class CallbackOutcome(str, Enum):
    CONFIRMED = "confirmed"
    PAYMENT_FAILED = "payment_failed"
    # Deposit captured for a hold that can no longer be honoured; needs a refund
    REFUND_REQUIRED = "refund_required"
    IGNORED = "ignored"


@dataclass(frozen=True)
class CallbackResult:
    outcome: CallbackOutcome
    event: PaymentEvent
    appointment: Appointment | None = None

    @property
    def confirmed(self) -> bool:
        return self.outcome == CallbackOutcome.CONFIRMED


def _record_payment(appointment: Appointment, event: PaymentEvent, status: PaymentStatus, now: datetime) -> None:
    appointment.payment_id = event.payment_id or appointment.payment_id
    appointment.payment_method = event.method or appointment.payment_method
    appointment.payment_status = status
    if status == PaymentStatus.PAID:
        appointment.paid_at = to_naive_utc(now)
    appointment.updated_at = to_naive_utc(now)


async def _apply_success(
    session: AsyncSession, appointment: Appointment, event: PaymentEvent, now: datetime
) -> CallbackOutcome:
    if appointment.status == AppointmentStatus.AWAITING_PAYMENT:
        if appointment.is_hold_expired(now):
            blocking = await release_expired_and_find_blocking(
                session,
                appointment.staff_id,
                appointment.blocking_interval(),
                now,
                exclude_appointment_id=appointment.id,
            )
            if blocking:
                expire_hold(appointment)
                _record_payment(appointment, event, PaymentStatus.PAID, now)
                logger.warning(
                    "Deposit captured for expired hold %s whose slot was re-booked; refund required (order=%s)",
                    appointment.id, event.order_id,
                )
                return CallbackOutcome.REFUND_REQUIRED
        appointment.transition_to(AppointmentStatus.CONFIRMED)
        _record_payment(appointment, event, PaymentStatus.PAID, now)
        return CallbackOutcome.CONFIRMED

    if (
        appointment.status in (AppointmentStatus.CANCELLED, AppointmentStatus.PAYMENT_FAILED)
        and appointment.payment_status != PaymentStatus.PAID
    ):
        _record_payment(appointment, event, PaymentStatus.PAID, now)
        logger.warning(
            "Deposit captured for %s appointment %s; refund required (order=%s)",
            appointment.status.value, appointment.id, event.order_id,
        )
        return CallbackOutcome.REFUND_REQUIRED
    return CallbackOutcome.IGNORED


def _apply_failure(appointment: Appointment, event: PaymentEvent, now: datetime) -> CallbackOutcome:
    if appointment.status != AppointmentStatus.AWAITING_PAYMENT:
        return CallbackOutcome.IGNORED
    appointment.transition_to(AppointmentStatus.PAYMENT_FAILED)
    _record_payment(appointment, event, PaymentStatus.FAILED, now)
    return CallbackOutcome.PAYMENT_FAILED


async def handle_gateway_callback(
    session: AsyncSession,
    gateway: PaymentGateway,
    raw_body: bytes,
    signature: str | None,
    now: datetime | None = None,
) -> CallbackResult:
    try:
        event = gateway.verify_and_parse_callback(raw_body, signature)
    except InvalidSignature:
        logger.error("Payment webhook rejected: signature verification failed")
        raise

    if event.status == PaymentEventStatus.OTHER or not event.order_id:
        logger.info("Payment webhook %s ignored (order=%s)", event.event, event.order_id)
        return CallbackResult(CallbackOutcome.IGNORED, event)

    appointment = await get_appointment_by_order_id(session, event.order_id)
    if not appointment:
        # Retrying will not help, so acknowledge
        logger.warning("Payment webhook %s for unknown order %s", event.event, event.order_id)
        return CallbackResult(CallbackOutcome.IGNORED, event)

    now = ensure_utc(now or utc_now())
    async with staff_booking_lock(session, appointment.staff_id):
        await session.refresh(appointment)
        if event.is_success:
            outcome = await _apply_success(session, appointment, event, now)
        else:
            outcome = _apply_failure(appointment, event, now)
        session.add(appointment)
        await session.commit()

    log = logger.info if outcome != CallbackOutcome.IGNORED else logger.debug
    log(
        "Payment webhook %s for order %s: appointment %s -> %s",
        event.event, event.order_id, appointment.id, outcome.value,
    )
    return CallbackResult(outcome, event, appointment)
