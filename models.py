from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


class ConfigError(ValueError):
    """Invalid configuration, detected before any day is computed."""


class RangeError(ValueError):
    """Invalid date range or work day bounds."""


@dataclass(frozen=True)
class WallClockParts:
    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int

    def to_naive(self) -> datetime:
        return datetime(self.year, self.month, self.day, self.hour, self.minute, self.second)


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class BusyInstance:
    start: datetime
    end: datetime
    label: str = 'Busy'


@dataclass(frozen=True)
class FreeSlot:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class ExclusionWindow:
    start: time
    end: time


# ===== Raw calendar entries =====

@dataclass
class RawEvent:
    """A VEVENT as handed over by the ICS layer.

    `rrule` is any object with a dateutil-style ``between(after, before, inc)``.
    `exdate` and `recurrences` are keyed by occurrence in whatever textual
    encoding the source calendar used.
    """
    start: Optional[datetime]
    end: Optional[datetime] = None
    duration: Optional[timedelta] = None
    rrule: Any = None
    rdate: Any = None
    exdate: Optional[Dict[str, Any]] = None
    recurrences: Optional[Dict[str, 'RawEvent']] = None
    status: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    uid: Optional[str] = None
    tzid: Optional[str] = None


@dataclass
class FreeBusyBlock:
    start: Optional[datetime]
    end: Optional[datetime]
    type: Optional[str] = None


@dataclass
class RawFreeBusy:
    blocks: List[FreeBusyBlock] = field(default_factory=list)


# ===== Configuration =====

@dataclass(frozen=True)
class AvailabilityConfig:
    time_zone: Optional[str] = None
    work_day_start: time = time(8, 0)
    work_day_end: time = time(16, 0)
    time_grid_minutes: int = 30
    exclude_time: Tuple[ExclusionWindow, ...] = ()
    exclude_time_weekly: Dict[str, Tuple[ExclusionWindow, ...]] = field(default_factory=dict)
    ignore_summaries: FrozenSet[str] = frozenset({'vapaa'})


@dataclass(frozen=True)
class CalendarSource:
    config_dir: str
    ics_file: Optional[str] = None
    ics_url: Optional[str] = None
    cache_file: Optional[str] = None
    cache_max_age_minutes: int = 5


@dataclass
class DayAvailability:
    date: date
    label: str
    slots: List[FreeSlot]
