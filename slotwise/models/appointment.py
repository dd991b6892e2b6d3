from datetime import UTC, datetime
from enum import Enum

from pydantic import EmailStr
from sqlalchemy import Column, String
from sqlalchemy import Enum as SAEnum
from sqlmodel import Field, SQLModel

from slotwise.core.errors import InvalidStateTransition
from slotwise.services.intervals import Interval
from slotwise.services.local_time import ensure_utc


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class AppointmentStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"
    AWAITING_PAYMENT = "AwaitingPayment"
    PAYMENT_FAILED = "PaymentFailed"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"
    REFUNDED = "Refunded"


# Statuses whose [start, end + buffer) interval blocks the staff member
ACTIVE_STATUSES = (AppointmentStatus.CONFIRMED, AppointmentStatus.AWAITING_PAYMENT)

TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.PAYMENT_FAILED}
)

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.AWAITING_PAYMENT: frozenset(
        {
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.PAYMENT_FAILED,
            AppointmentStatus.CANCELLED,
        }
    ),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.PAYMENT_FAILED: frozenset(),
}


def _enum_column(enum_cls: type[Enum], name: str, *, nullable: bool = False, index: bool = False) -> Column:
    # Stored as VARCHAR holding the enum value so no database enum type is needed
    return Column(
        SAEnum(
            enum_cls,
            name=name,
            native_enum=False,
            create_constraint=False,
            length=32,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=nullable,
        index=index,
    )


class ClientContact(SQLModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    phone: str | None = Field(default=None, max_length=40)


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: int | None = Field(default=None, primary_key=True)
    business_id: int = Field(foreign_key="businesses.id", index=True)
    service_id: int = Field(foreign_key="services.id")
    staff_id: int = Field(foreign_key="staff_members.id", index=True)

    client_name: str
    client_email: str
    client_phone: str | None = None

    start_time: datetime = Field(index=True)
    end_time: datetime
    # Snapshot of the service buffer; blocked_until = end_time + buffer
    buffer_minutes: int = 0
    blocked_until: datetime
    price: int = 0  # minor units, snapshot of the service price

    status: AppointmentStatus = Field(
        default=AppointmentStatus.CONFIRMED,
        sa_column=_enum_column(AppointmentStatus, "appointment_status", index=True),
    )
    hold_expires_at: datetime | None = None

    payment_order_id: str | None = Field(
        default=None, sa_column=Column(String(64), unique=True, index=True, nullable=True)
    )
    payment_id: str | None = None
    payment_method: str | None = None
    payment_amount: int | None = None
    payment_currency: str | None = None
    deposit_percent: float | None = None
    payment_status: PaymentStatus = Field(
        default=PaymentStatus.PENDING,
        sa_column=_enum_column(PaymentStatus, "payment_status"),
    )
    paid_at: datetime | None = None

    created_at: datetime = Field(default_factory=_utc_naive_now)
    updated_at: datetime = Field(default_factory=_utc_naive_now)

    def blocking_interval(self) -> Interval:
        return Interval(ensure_utc(self.start_time), ensure_utc(self.blocked_until))

    def is_hold_expired(self, now: datetime) -> bool:
        return (
            self.status == AppointmentStatus.AWAITING_PAYMENT
            and self.hold_expires_at is not None
            and ensure_utc(self.hold_expires_at) <= ensure_utc(now)
        )

    def blocks_slot(self, now: datetime) -> bool:
        return self.status in ACTIVE_STATUSES and not self.is_hold_expired(now)

    def can_transition_to(self, status: AppointmentStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[AppointmentStatus(self.status)]

    def transition_to(self, status: AppointmentStatus) -> None:
        if not self.can_transition_to(status):
            raise InvalidStateTransition(
                f"Appointment {self.id} cannot move from {AppointmentStatus(self.status).value} to {status.value}"
            )
        self.status = status
        self.updated_at = _utc_naive_now()
