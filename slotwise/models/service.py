from datetime import UTC, datetime

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class Service(SQLModel, table=True):
    __tablename__ = "services"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_services_duration_positive"),
        CheckConstraint("buffer_minutes >= 0", name="ck_services_buffer_non_negative"),
        CheckConstraint("price >= 0", name="ck_services_price_non_negative"),
    )
    id: int | None = Field(default=None, primary_key=True)
    business_id: int = Field(foreign_key="businesses.id", index=True)
    name: str
    duration_minutes: int
    # Reserved after the service before the same staff member can start another booking
    buffer_minutes: int = 0
    price: int = 0  # minor currency units
    created_at: datetime = Field(default_factory=_utc_naive_now)
