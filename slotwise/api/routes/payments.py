import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.api.deps import get_gateway, get_session
from slotwise.api.schemas.booking import WebhookAck
from slotwise.services.appointment_service import load_booking_summary
from slotwise.services.email_service import send_booking_confirmation_email
from slotwise.services.payment_gateway import PaymentGateway
from slotwise.services.payment_service import handle_gateway_callback

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGateway = Depends(get_gateway),
) -> WebhookAck:
    """Gateway callback. The raw body is what the signature covers, so it is read before parsing."""
    raw_body = await request.body()
    header = gateway.signature_header
    signature = request.headers.get(header)
    result = await handle_gateway_callback(session, gateway, raw_body, signature)
    if result.confirmed and result.appointment is not None:
        summary = await load_booking_summary(session, result.appointment)
        background_tasks.add_task(send_booking_confirmation_email, summary)
        logger.debug("Queued confirmation email for appointment %s", result.appointment.id)
    return WebhookAck(outcome=result.outcome.value)
