"""Wall-clock arithmetic in named time zones.

Instants are timezone-aware datetimes; everything produced here is in UTC.
A zone name of ``None`` means the process local zone.
"""
from datetime import datetime, time, timedelta

import pytz
from dateutil.tz import tzlocal

from models import ConfigError, WallClockParts

WINDOWS_TIMEZONE_MAP = {
    'FLE Standard Time': 'Europe/Helsinki',
    'E. Europe Standard Time': 'Europe/Bucharest',
    'GTB Standard Time': 'Europe/Athens',
    'Central Europe Standard Time': 'Europe/Budapest',
    'W. Europe Standard Time': 'Europe/Berlin',
    'Pacific Standard Time': 'America/Los_Angeles',
    'Eastern Standard Time': 'America/New_York',
    'Central Standard Time': 'America/Chicago',
}
IANA_TIMEZONE_ALIASES = {
    'Europe/Kiev': 'Europe/Kyiv',
}
WEEKDAY_KEYS = ['MON', 'TUE', 'WED', 'THU', 'FRI', 'SAT', 'SUN']


def normalize_timezone(raw_value):
    """Map a configured zone name to a validated IANA name, or None for local."""
    if raw_value is None:
        return None
    value = str(raw_value).strip()
    if not value:
        return None
    mapped = WINDOWS_TIMEZONE_MAP.get(value) or IANA_TIMEZONE_ALIASES.get(value) or value
    for candidate in (mapped, value):
        try:
            pytz.timezone(candidate)
        except pytz.UnknownTimeZoneError:
            continue
        return candidate
    raise ConfigError(f"Unsupported timeZone value: {value}")


def zone_name_of(tzinfo):
    """Best-effort IANA name of a tzinfo (pytz, zoneinfo or dateutil)."""
    if tzinfo is None:
        return None
    for attr in ('zone', 'key'):
        name = getattr(tzinfo, attr, None)
        if isinstance(name, str) and name:
            return name
    return None


class TimezoneCache:
    """Read-through cache of tzinfo objects keyed by zone name."""

    def __init__(self):
        self._zones = {}

    def get(self, name):
        key = name or 'local'
        if key not in self._zones:
            self._zones[key] = pytz.timezone(name) if name else tzlocal()
        return self._zones[key]

    def __len__(self):
        return len(self._zones)


class ZoneCalendar:
    """Civil calendar of one zone: wall clock readings, grid alignment, weekdays."""

    def __init__(self, zone=None, cache=None):
        self.zone = zone
        self.cache = cache if cache is not None else TimezoneCache()

    @property
    def tzinfo(self):
        return self.cache.get(self.zone)

    def local_datetime(self, instant):
        """Naive wall-clock datetime of `instant` in this zone."""
        return instant.astimezone(self.tzinfo).replace(tzinfo=None)

    def wall_clock(self, instant):
        local = self.local_datetime(instant)
        return WallClockParts(local.year, local.month, local.day,
                              local.hour, local.minute, local.second)

    def utc_offset(self, instant):
        naive_utc = instant.astimezone(pytz.utc).replace(tzinfo=None, microsecond=0)
        return self.wall_clock(instant).to_naive() - naive_utc

    def make_instant(self, year, month, day, hour=0, minute=0, second=0):
        """Instant whose wall clock in this zone reads the given fields."""
        naive = datetime(year, month, day, hour, minute, second)
        guess = pytz.utc.localize(naive)
        instant = guess - self.utc_offset(guess)
        # guess and target sit on different sides of a transition
        offset = self.utc_offset(instant)
        if instant + offset != guess:
            instant = guess - offset
        return instant

    def from_local(self, naive):
        return self.make_instant(naive.year, naive.month, naive.day,
                                 naive.hour, naive.minute, naive.second)

    def at_time_of_day(self, day, time_of_day):
        return self.make_instant(day.year, day.month, day.day,
                                 time_of_day.hour, time_of_day.minute, 0)

    def start_of_day(self, day):
        return self.at_time_of_day(day, time(0, 0))

    def end_of_day(self, day):
        return self.make_instant(day.year, day.month, day.day, 23, 59, 59)

    def ceil_to_grid(self, instant, grid_minutes):
        """Smallest instant >= `instant` on the grid counted from local midnight."""
        local = self.local_datetime(instant)
        minutes = local.hour * 60 + local.minute
        if local.second or local.microsecond:
            minutes += 1
        remainder = minutes % grid_minutes
        if remainder:
            minutes += grid_minutes - remainder
        midnight = datetime.combine(local.date(), time(0, 0))
        result = self.from_local(midnight + timedelta(minutes=minutes))
        if result < instant:
            result = self._later_reading(result, instant)
        return result

    def floor_to_grid(self, instant, grid_minutes):
        """Largest instant <= `instant` on the grid counted from local midnight."""
        local = self.local_datetime(instant)
        minutes = local.hour * 60 + local.minute
        minutes -= minutes % grid_minutes
        midnight = datetime.combine(local.date(), time(0, 0))
        result = self.from_local(midnight + timedelta(minutes=minutes))
        later = self._later_reading(result, instant)
        return later if later <= instant else result

    def _later_reading(self, candidate, reference):
        """Second reading of `candidate`'s wall clock when a fall-back repeats it."""
        shift = self.utc_offset(candidate) - self.utc_offset(reference)
        if shift > timedelta(0):
            later = candidate + shift
            if self.local_datetime(later) == self.local_datetime(candidate):
                return later
        return candidate

    def weekday_key(self, instant):
        return WEEKDAY_KEYS[self.local_datetime(instant).weekday()]

    def align_to_wall_time(self, instant, reference):
        """Move `instant` to the wall-clock time of day of `reference`, keeping its local date."""
        base = self.wall_clock(reference)
        occurrence = self.wall_clock(instant)
        return self.make_instant(occurrence.year, occurrence.month, occurrence.day,
                                 base.hour, base.minute, base.second)


def iterate_days(start_date, end_date):
    cursor = start_date
    while cursor <= end_date:
        yield cursor
        cursor = cursor + timedelta(days=1)

