from dataclasses import dataclass
from datetime import UTC, datetime

from sqlmodel import Field, SQLModel

from slotwise.core.config import settings
from slotwise.core.errors import InvalidInput
from slotwise.services.local_time import resolve_zone


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


@dataclass(frozen=True)
class BusinessConfig:
    """Per-business scheduling configuration passed explicitly into the engine."""

    timezone: str
    slot_interval_minutes: int = 15

    def __post_init__(self) -> None:
        resolve_zone(self.timezone)
        if self.slot_interval_minutes <= 0:
            raise InvalidInput("slot interval must be a positive number of minutes")


class Business(SQLModel, table=True):
    __tablename__ = "businesses"
    id: int | None = Field(default=None, primary_key=True)
    name: str
    slug: str = Field(unique=True, index=True)
    timezone: str = Field(default_factory=lambda: settings.default_timezone)
    slot_interval_minutes: int = Field(default_factory=lambda: settings.default_slot_interval_minutes)
    # When set, clients must go through the deposit payment hold
    deposit_required: bool = False
    notification_email: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now)

    @property
    def config(self) -> BusinessConfig:
        return BusinessConfig(
            timezone=self.timezone,
            slot_interval_minutes=self.slot_interval_minutes,
        )
