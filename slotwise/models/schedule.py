"""Typed weekly working schedule stored as JSON on a staff member.

The stored shape mirrors what the admin schedule editor sends::

    {"monday": {"isWorking": true, "startTime": "09:00", "endTime": "17:00",
                "breaks": [{"startTime": "12:00", "endTime": "13:00"}]},
     ...}

Missing days default to "not working".
"""

from datetime import date
from enum import Enum
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from slotwise.core.errors import InvalidTimeFormat
from slotwise.services.local_time import parse_hhmm


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def for_date(cls, d: date) -> "Weekday":
        return list(cls)[d.weekday()]


def _check_hhmm(value: str) -> str:
    try:
        parse_hhmm(value)
    except InvalidTimeFormat as e:
        raise ValueError(e.message) from e
    return value


HHMM = Annotated[str, AfterValidator(_check_hhmm)]


class _ScheduleModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BreakWindow(_ScheduleModel):
    start_time: HHMM
    end_time: HHMM

    @model_validator(mode="after")
    def _start_before_end(self) -> "BreakWindow":
        if parse_hhmm(self.start_time) >= parse_hhmm(self.end_time):
            raise ValueError(f"break {self.start_time}-{self.end_time} must end after it starts")
        return self


class DaySchedule(_ScheduleModel):
    is_working: bool = False
    # Only checked on working days; a day off may carry placeholder values
    start_time: str = "09:00"
    end_time: str = "17:00"
    breaks: list[BreakWindow] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_working_day(self) -> "DaySchedule":
        if not self.is_working:
            return self
        start = parse_hhmm(_check_hhmm(self.start_time))
        end = parse_hhmm(_check_hhmm(self.end_time))
        if start >= end:
            raise ValueError(f"working window {self.start_time}-{self.end_time} must end after it starts")
        ordered = sorted(self.breaks, key=lambda b: parse_hhmm(b.start_time))
        previous_end = None
        for b in ordered:
            b_start, b_end = parse_hhmm(b.start_time), parse_hhmm(b.end_time)
            if b_start < start or b_end > end:
                raise ValueError(f"break {b.start_time}-{b.end_time} is outside the working window")
            if previous_end is not None and b_start < previous_end:
                raise ValueError(f"break {b.start_time}-{b.end_time} overlaps another break")
            previous_end = b_end
        self.breaks = ordered
        return self


class WeeklySchedule(_ScheduleModel):
    monday: DaySchedule = Field(default_factory=DaySchedule)
    tuesday: DaySchedule = Field(default_factory=DaySchedule)
    wednesday: DaySchedule = Field(default_factory=DaySchedule)
    thursday: DaySchedule = Field(default_factory=DaySchedule)
    friday: DaySchedule = Field(default_factory=DaySchedule)
    saturday: DaySchedule = Field(default_factory=DaySchedule)
    sunday: DaySchedule = Field(default_factory=DaySchedule)

    def for_day(self, weekday: Weekday) -> DaySchedule:
        return getattr(self, weekday.value)

    def for_date(self, d: date) -> DaySchedule:
        return self.for_day(Weekday.for_date(d))
