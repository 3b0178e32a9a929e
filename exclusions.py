"""Daily and weekly blackout windows.

Raw config entries are validated once by the normalize_* functions; the
per-day materialization only ever sees ExclusionWindow values.
"""
import re
from datetime import time

from models import BusyInstance, ConfigError, ExclusionWindow

TIME_OF_DAY_PATTERN = re.compile(r'^([01]?\d|2[0-3]):([0-5]\d)$')
TWO_LETTER_WEEKDAYS = {
    'MO': 'MON',
    'TU': 'TUE',
    'WE': 'WED',
    'TH': 'THU',
    'FR': 'FRI',
    'SA': 'SAT',
    'SU': 'SUN',
}
WEEKDAY_PREFIXES = [
    ('MON', 'MON'),
    ('TUE', 'TUE'),
    ('WED', 'WED'),
    ('THU', 'THU'),
    ('THR', 'THU'),
    ('FRI', 'FRI'),
    ('SAT', 'SAT'),
    ('SUN', 'SUN'),
]
# Noon is never inside a DST gap, so its weekday is the day's weekday.
WEEKDAY_PROBE = time(12, 0)


def parse_time_of_day(value):
    """Parse 'HH:MM' (24h) into a time."""
    text = '' if value is None else str(value).strip()
    match = TIME_OF_DAY_PATTERN.match(text)
    if not match:
        raise ConfigError(f"Invalid time value: {value}")
    return time(int(match.group(1)), int(match.group(2)))


def normalize_weekday_key(raw_key):
    """Accept MO / Mon / monday / THR ... and return MON..SUN, or None."""
    if not raw_key:
        return None
    value = str(raw_key).strip().upper()
    if not value:
        return None
    if len(value) == 2:
        return TWO_LETTER_WEEKDAYS.get(value)
    for prefix, key in WEEKDAY_PREFIXES:
        if value.startswith(prefix):
            return key
    return None


def _as_list(raw):
    return list(raw) if isinstance(raw, (list, tuple)) else [raw]


def _parse_window(item, context, index):
    if not isinstance(item, dict):
        raise ConfigError(f"{context} entry {index} must be an object")
    if not item.get('start') or not item.get('end'):
        raise ConfigError(f"{context} entry {index} must include start and end")
    start = parse_time_of_day(item['start'])
    end = parse_time_of_day(item['end'])
    if end <= start:
        raise ConfigError(f"{context} entry {index} end must be after start")
    return ExclusionWindow(start=start, end=end)


def normalize_exclude_time(raw_exclude, context='excludeTime'):
    if not raw_exclude:
        return ()
    return tuple(_parse_window(item, context, index)
                 for index, item in enumerate(_as_list(raw_exclude), start=1))


def normalize_weekly_exclude_time(raw_exclude):
    if not raw_exclude:
        return {}
    if not isinstance(raw_exclude, dict):
        raise ConfigError('excludeTimeWeekly must be an object keyed by weekday')
    result = {}
    for raw_key, raw_value in raw_exclude.items():
        weekday_key = normalize_weekday_key(raw_key)
        if not weekday_key:
            raise ConfigError(f"Invalid excludeTimeWeekly weekday: {raw_key}")
        windows = normalize_exclude_time(_as_list(raw_value), f"excludeTimeWeekly {weekday_key}")
        result[weekday_key] = result.get(weekday_key, ()) + windows
    return result


def exclusion_intervals_for_day(day, exclude_time, exclude_time_weekly, calendar):
    """Materialize the windows that apply on `day` as busy instances."""
    weekday_key = calendar.weekday_key(calendar.at_time_of_day(day, WEEKDAY_PROBE))
    intervals = [
        BusyInstance(calendar.at_time_of_day(day, window.start),
                     calendar.at_time_of_day(day, window.end),
                     'excludeTime')
        for window in exclude_time
    ]
    for window in exclude_time_weekly.get(weekday_key, ()):
        intervals.append(BusyInstance(calendar.at_time_of_day(day, window.start),
                                      calendar.at_time_of_day(day, window.end),
                                      f"excludeTimeWeekly:{weekday_key}"))
    return intervals
