import json
import os
import re
from datetime import date

import yaml

from exclusions import normalize_exclude_time, normalize_weekly_exclude_time, parse_time_of_day
from models import AvailabilityConfig, CalendarSource, ConfigError
from timezones import normalize_timezone

# Constants
DEFAULT_CONFIG_FILE = 'config.json'
HOME_CONFIG_FILE = '.free-slots.json'
CONFIG_ENV_VAR = 'FREE_SLOTS_CONFIG'
DEFAULT_CACHE_FILE = os.path.join('.cache', 'calendar.ics')
DEFAULT_IGNORE_SUMMARIES = ('vapaa',)
OUTPUT_FORMATS = ('text', 'list', 'block', 'json')
ISO_DATE_PATTERN = re.compile(r'^(\d{4})-(\d{1,2})-(\d{1,2})$')
DOT_DATE_PATTERN = re.compile(r'^(\d{1,2})\.(\d{1,2})(?:\.(\d{4}))?$')

# ===== File I/O Utilities =====

def load_config_file(path):
    """Load a JSON or YAML config file into a dict."""
    with open(path, 'r', encoding='utf-8') as f:
        if path.lower().endswith(('.yaml', '.yml')):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain an object")
    return data

def resolve_default_config_path():
    """Find the config file when none was given on the command line."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return os.path.abspath(env_path)
    cwd_config = os.path.abspath(DEFAULT_CONFIG_FILE)
    if os.path.exists(cwd_config):
        return cwd_config
    home = os.path.expanduser('~')
    if home and home != '~':
        home_config = os.path.join(home, HOME_CONFIG_FILE)
        if os.path.exists(home_config):
            return home_config
    return cwd_config

def read_config(config_path):
    """Read the config file and remember where it lives."""
    resolved = os.path.abspath(config_path)
    if not os.path.exists(resolved):
        raise ConfigError(f"Config not found at {resolved}. Use --config or set {CONFIG_ENV_VAR}.")
    raw = load_config_file(resolved)
    return raw, os.path.dirname(resolved)

# ===== Value Normalization =====

def parse_date_input(value, today=None):
    """Parse YYYY-MM-DD, DD.MM.YYYY or DD.M (current year) into a date."""
    text = str(value or '').strip()
    if not text:
        raise ConfigError('Date value is required')
    iso_match = ISO_DATE_PATTERN.match(text)
    if iso_match:
        year, month, day = (int(g) for g in iso_match.groups())
        return _build_date(year, month, day)
    dot_match = DOT_DATE_PATTERN.match(text)
    if dot_match:
        day, month = int(dot_match.group(1)), int(dot_match.group(2))
        year = int(dot_match.group(3)) if dot_match.group(3) else (today or date.today()).year
        return _build_date(year, month, day)
    raise ConfigError(f"Unsupported date format: {text}")

def _build_date(year, month, day):
    try:
        return date(year, month, day)
    except ValueError:
        raise ConfigError(f"Invalid date: {day}.{month}.{year}")

def _positive_int(raw_value, default, name):
    if raw_value is None or raw_value == '':
        return default
    try:
        parsed = int(raw_value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a positive integer")
    if parsed <= 0:
        raise ConfigError(f"{name} must be a positive integer")
    return parsed

def normalize_time_grid_minutes(raw_value):
    return _positive_int(raw_value, 30, 'timeGridMinutes')

def normalize_cache_max_age_minutes(raw_value):
    return _positive_int(raw_value, 5, 'cacheMaxAgeMinutes')

def normalize_ignore_summaries(raw_ignore):
    """Lowercased, trimmed summaries to ignore; always includes the defaults."""
    normalized = set(DEFAULT_IGNORE_SUMMARIES)
    if not raw_ignore:
        return frozenset(normalized)
    items = raw_ignore if isinstance(raw_ignore, (list, tuple)) else [raw_ignore]
    for item in items:
        value = str(item or '').strip().lower()
        if value:
            normalized.add(value)
    return frozenset(normalized)

def normalize_output_format(raw_format):
    value = str(raw_format or 'text').strip().lower()
    if value not in OUTPUT_FORMATS:
        raise ConfigError(f"format must be one of: {', '.join(OUTPUT_FORMATS)}")
    return value

# ===== Configuration Management =====

def build_availability_config(raw):
    """Validate the raw config dict into an AvailabilityConfig."""
    return AvailabilityConfig(
        time_zone=normalize_timezone(raw.get('timeZone')),
        work_day_start=parse_time_of_day(raw.get('workDayStart') or '08:00'),
        work_day_end=parse_time_of_day(raw.get('workDayEnd') or '16:00'),
        time_grid_minutes=normalize_time_grid_minutes(raw.get('timeGridMinutes')),
        exclude_time=normalize_exclude_time(raw.get('excludeTime')),
        exclude_time_weekly=normalize_weekly_exclude_time(raw.get('excludeTimeWeekly')),
        ignore_summaries=normalize_ignore_summaries(raw.get('ignoreSummaries')),
    )

def build_calendar_source(raw, config_dir):
    """Where to read the ICS calendar from."""
    ics_file = raw.get('icsFile')
    ics_url = raw.get('icsUrl')
    if not ics_file and not ics_url:
        raise ConfigError('config must include icsUrl or icsFile')
    cache_file = os.path.join(config_dir, raw.get('icsCacheFile') or DEFAULT_CACHE_FILE)
    return CalendarSource(
        config_dir=config_dir,
        ics_file=os.path.join(config_dir, ics_file) if ics_file else None,
        ics_url=ics_url or None,
        cache_file=cache_file,
        cache_max_age_minutes=normalize_cache_max_age_minutes(raw.get('cacheMaxAgeMinutes')),
    )

# ===== Output Formatting =====

def format_time(instant, calendar):
    return calendar.local_datetime(instant).strftime('%H:%M')

def slot_times(day_result, calendar):
    return [(format_time(slot.start, calendar), format_time(slot.end, calendar))
            for slot in day_result.slots]

def format_results(results, output_format, calendar):
    """Render per-day availability as text, list, block or json."""
    if output_format == 'json':
        payload = [
            {
                'date': result.date.isoformat(),
                'label': result.label,
                'slots': [{'start': start, 'end': end} for start, end in slot_times(result, calendar)],
            }
            for result in results
        ]
        return json.dumps(payload, indent=2)
    lines = []
    for result in results:
        slots = slot_times(result, calendar)
        if output_format == 'block':
            lines.append(f"{result.label}:")
            if not slots:
                lines.append('  (no availability)')
            lines.extend(f"  {start}-{end}" for start, end in slots)
        elif not slots:
            lines.append(f"{result.label}: (no availability)")
        elif output_format == 'list':
            lines.extend(f"{result.label} {start}-{end}" for start, end in slots)
        else:
            lines.append(f"{result.label}: " + ' & '.join(f"{start}-{end}" for start, end in slots))
    return '\n'.join(lines)

def format_busy(day_label, busy_intervals, calendar):
    """Debug listing of a day's busy intervals."""
    lines = [f"{day_label} busy:"]
    if not busy_intervals:
        lines.append('  (none)')
    for interval in busy_intervals:
        suffix = f" {interval.label}" if interval.label else ''
        lines.append(f"  {format_time(interval.start, calendar)}-{format_time(interval.end, calendar)}{suffix}")
    return '\n'.join(lines)
