from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class Interval:
    """Half-open [start, end) span of absolute time."""

    start: datetime
    end: datetime

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    def extended(self, minutes: int) -> "Interval":
        return Interval(self.start, self.end + timedelta(minutes=minutes))


def overlaps_any(interval: Interval, others: list[Interval]) -> bool:
    return any(interval.overlaps(o) for o in others)
