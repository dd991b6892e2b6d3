from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from slotwise.models.appointment import (
    Appointment,
    AppointmentStatus,
    ClientContact,
    PaymentStatus,
)
from slotwise.services.local_time import ensure_utc


class CamelModel(BaseModel):
    """Request/response bodies use camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateBookingRequest(CamelModel):
    service_id: int
    staff_id: int
    start_time: datetime  # ISO-8601; naive values are taken as UTC
    client: ClientContact


class PaymentOrderRequest(CreateBookingRequest):
    deposit_percent: float | None = None


class PaymentPublic(CamelModel):
    order_id: str | None = None
    payment_id: str | None = None
    method: str | None = None
    amount: int | None = None
    currency: str | None = None
    deposit_percent: float | None = None
    status: PaymentStatus
    paid_at: datetime | None = None


class AppointmentPublic(CamelModel):
    id: int
    business_id: int
    service_id: int
    staff_id: int
    client: ClientContact
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    price: int
    hold_expires_at: datetime | None = None
    payment: PaymentPublic
    created_at: datetime

    @classmethod
    def from_model(cls, a: Appointment) -> "AppointmentPublic":
        return cls(
            id=a.id,
            business_id=a.business_id,
            service_id=a.service_id,
            staff_id=a.staff_id,
            client=ClientContact(name=a.client_name, email=a.client_email, phone=a.client_phone),
            start_time=ensure_utc(a.start_time),
            end_time=ensure_utc(a.end_time),
            status=a.status,
            price=a.price,
            hold_expires_at=ensure_utc(a.hold_expires_at) if a.hold_expires_at else None,
            payment=PaymentPublic(
                order_id=a.payment_order_id,
                payment_id=a.payment_id,
                method=a.payment_method,
                amount=a.payment_amount,
                currency=a.payment_currency,
                deposit_percent=a.deposit_percent,
                status=a.payment_status,
                paid_at=ensure_utc(a.paid_at) if a.paid_at else None,
            ),
            created_at=ensure_utc(a.created_at),
        )


class PaymentOrderPublic(CamelModel):
    order_id: str
    amount: int
    currency: str
    deposit_percent: float
    gateway_public_key: str
    appointment_id: int
    hold_expires_at: datetime | None = None


class AvailabilityResponse(BaseModel):
    success: bool = True
    data: list[str]


class AppointmentResponse(BaseModel):
    success: bool = True
    data: AppointmentPublic


class AppointmentListResponse(BaseModel):
    success: bool = True
    data: list[AppointmentPublic]


class PaymentOrderResponse(BaseModel):
    success: bool = True
    data: PaymentOrderPublic


class WebhookAck(BaseModel):
    status: str = "ok"
    outcome: str
