import logging
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.api.deps import get_current_business, get_gateway, get_session
from slotwise.api.schemas.booking import (
    AppointmentListResponse,
    AppointmentPublic,
    AppointmentResponse,
    AvailabilityResponse,
    CreateBookingRequest,
    PaymentOrderPublic,
    PaymentOrderRequest,
    PaymentOrderResponse,
)
from slotwise.core.errors import InvalidInput
from slotwise.models.business import Business
from slotwise.services.appointment_service import (
    cancel_appointment,
    complete_appointment,
    list_business_appointments,
    load_booking_summary,
)
from slotwise.services.booking_service import create_booking
from slotwise.services.email_service import send_booking_confirmation_email
from slotwise.services.local_time import ensure_utc, format_instant, parse_date
from slotwise.services.payment_gateway import PaymentGateway
from slotwise.services.payment_service import create_payment_order
from slotwise.services.slot_service import get_available_slots_for_date

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/booking", tags=["booking"])


@router.get("/admin/my-appointments", response_model=AppointmentListResponse)
async def my_appointments(
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    session: AsyncSession = Depends(get_session),
    business: Business = Depends(get_current_business),
) -> AppointmentListResponse:
    """Business admin: appointments starting at/after `start` and ending at/before `end`."""
    appointments = await list_business_appointments(session, business.id, start=start, end=end)
    return AppointmentListResponse(data=[AppointmentPublic.from_model(a) for a in appointments])


@router.post("/admin/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_business_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    business: Business = Depends(get_current_business),
) -> AppointmentResponse:
    appointment = await cancel_appointment(session, business.id, appointment_id)
    return AppointmentResponse(data=AppointmentPublic.from_model(appointment))


@router.post("/admin/appointments/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete_business_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    business: Business = Depends(get_current_business),
) -> AppointmentResponse:
    appointment = await complete_appointment(session, business.id, appointment_id)
    return AppointmentResponse(data=AppointmentPublic.from_model(appointment))


@router.get("/{business_slug}/availability", response_model=AvailabilityResponse)
async def availability(
    business_slug: str,
    date_param: str | None = Query(None, alias="date"),
    service_id: int | None = Query(None, alias="serviceId"),
    staff_id: int | None = Query(None, alias="staffId"),
    session: AsyncSession = Depends(get_session),
) -> AvailabilityResponse:
    """Free slot start instants (UTC, ISO-8601) for the business-local date."""
    if not date_param or service_id is None or staff_id is None:
        raise InvalidInput("Missing required query parameters")
    day = parse_date(date_param)
    slots = await get_available_slots_for_date(session, business_slug, day, service_id, staff_id)
    return AvailabilityResponse(data=[format_instant(s) for s in slots])


@router.post("/{business_slug}/create", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create(
    business_slug: str,
    body: CreateBookingRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
) -> AppointmentResponse:
    appointment = await create_booking(
        session,
        business_slug,
        body.service_id,
        body.staff_id,
        body.start_time,
        body.client,
    )
    summary = await load_booking_summary(session, appointment)
    background_tasks.add_task(send_booking_confirmation_email, summary)
    logger.debug("Queued confirmation email for appointment %s", appointment.id)
    return AppointmentResponse(data=AppointmentPublic.from_model(appointment))


@router.post("/{business_slug}/payment/order", response_model=PaymentOrderResponse)
async def payment_order(
    business_slug: str,
    body: PaymentOrderRequest,
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGateway = Depends(get_gateway),
) -> PaymentOrderResponse:
    result = await create_payment_order(
        session,
        gateway,
        business_slug,
        body.service_id,
        body.staff_id,
        body.start_time,
        body.client,
        deposit_percent=body.deposit_percent,
    )
    hold = result.appointment
    return PaymentOrderResponse(
        data=PaymentOrderPublic(
            order_id=result.order_id,
            amount=result.amount,
            currency=result.currency,
            deposit_percent=result.deposit_percent,
            gateway_public_key=result.gateway_public_key,
            appointment_id=hold.id,
            hold_expires_at=ensure_utc(hold.hold_expires_at) if hold.hold_expires_at else None,
        )
    )
