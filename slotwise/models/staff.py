from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from slotwise.core.errors import InvalidSchedule
from slotwise.models.schedule import WeeklySchedule


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class StaffServiceLink(SQLModel, table=True):
    __tablename__ = "staff_services"
    staff_id: int = Field(foreign_key="staff_members.id", primary_key=True)
    service_id: int = Field(foreign_key="services.id", primary_key=True)


class StaffMember(SQLModel, table=True):
    __tablename__ = "staff_members"
    id: int | None = Field(default=None, primary_key=True)
    business_id: int = Field(foreign_key="businesses.id", index=True)
    name: str
    email: str | None = None
    schedule: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utc_naive_now)

    def weekly_schedule(self) -> WeeklySchedule:
        try:
            return WeeklySchedule.model_validate(self.schedule or {})
        except ValidationError as e:
            raise InvalidSchedule(f"Staff {self.id} has an invalid schedule: {e}") from e
