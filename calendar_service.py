"""ICS acquisition: local file or cached download, parsed into raw entries."""
import logging
import os
import re
import time
from datetime import date, datetime, timedelta

import pytz
import requests
from dateutil.rrule import rrulestr
from icalendar import Calendar

from models import ConfigError, FreeBusyBlock, RawEvent, RawFreeBusy
from timezones import ZoneCalendar, normalize_timezone, zone_name_of

log = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds
UNTIL_PATTERN = re.compile(r'UNTIL=[^;]*', re.IGNORECASE)


# ===== Download & cache =====

def is_cache_fresh(path, max_age_minutes, now=None):
    try:
        mtime = os.path.getmtime(path)
    except OSError:
        return False
    age = (time.time() if now is None else now) - mtime
    return 0 <= age < max_age_minutes * 60


def download_ics(url, path, session=None):
    """Download `url` into `path` via a temp file so readers never see a partial file."""
    response = (session or requests).get(url, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    temp_path = f"{path}.tmp"
    try:
        with open(temp_path, 'wb') as f:
            f.write(response.content)
        os.replace(temp_path, path)
    except OSError:
        if os.path.exists(temp_path):
            os.remove(temp_path)
        raise


def ensure_cached_ics(source, session=None):
    if is_cache_fresh(source.cache_file, source.cache_max_age_minutes):
        log.info("Using cached calendar %s", source.cache_file)
        return source.cache_file
    log.info("Downloading calendar to %s", source.cache_file)
    download_ics(source.ics_url, source.cache_file, session)
    return source.cache_file


def load_calendar(source, calendar, session=None):
    """Raw calendar entries from the configured file or URL."""
    path = source.ics_file if source.ics_file else ensure_cached_ics(source, session)
    with open(path, 'rb') as f:
        return parse_ics(f.read(), calendar)


# ===== Parsing =====

def _as_list(value):
    if value is None:
        return []
    return list(value) if isinstance(value, list) else [value]


def _to_instant(value, calendar):
    """Aware datetimes pass through; floating times and dates are read in `calendar`'s zone."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value
        return calendar.from_local(value)
    if isinstance(value, date):
        return calendar.start_of_day(value)
    return None


def _is_floating(value):
    return not isinstance(value, datetime) or value.tzinfo is None


def _date_values(component, name):
    values = []
    for prop in _as_list(component.get(name)):
        dts = getattr(prop, 'dts', None)
        if dts is None:
            values.append(getattr(prop, 'dt', None))
        else:
            values.extend(d.dt for d in dts)
    return [v for v in values if isinstance(v, (date, datetime))]


def occurrence_key(value, calendar):
    """Key an occurrence the way override and exclusion maps are keyed."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value.strftime('%Y-%m-%d')
    instant = _to_instant(value, calendar).astimezone(pytz.utc)
    return instant.strftime('%Y-%m-%dT%H:%M:%SZ')


def _series_calendar(tzid, calendar):
    if tzid:
        try:
            return ZoneCalendar(normalize_timezone(tzid), calendar.cache)
        except ConfigError:
            log.debug("Unknown series timezone %r, using %s", tzid, calendar.zone or 'local')
    return calendar


def rule_text(recur, calendar):
    """RRULE text with UNTIL restated in UTC, as dateutil requires for aware starts.

    A floating UNTIL is read in `calendar`'s zone; a date UNTIL covers that whole day.
    """
    text = recur.to_ical().decode('utf-8')
    until = _as_list(recur.get('UNTIL'))
    if not until:
        return text
    value = until[0]
    if isinstance(value, datetime):
        instant = value if value.tzinfo is not None else calendar.from_local(value)
    elif isinstance(value, date):
        instant = calendar.end_of_day(value)
    else:
        return text
    stamp = instant.astimezone(pytz.utc).strftime('%Y%m%dT%H%M%SZ')
    return UNTIL_PATTERN.sub(f"UNTIL={stamp}", text)


def _text(component, name):
    value = component.get(name)
    return str(value) if value is not None else None


def parse_event(component, calendar):
    """RawEvent for one VEVENT plus its RECURRENCE-ID key, if it is an override."""
    dtstart = component.get('DTSTART')
    raw_start = dtstart.dt if dtstart is not None else None
    start = _to_instant(raw_start, calendar)
    tzid = dtstart.params.get('TZID') if dtstart is not None else None
    if tzid is None and raw_start is not None and _is_floating(raw_start):
        tzid = calendar.zone

    dtend = component.get('DTEND')
    end = _to_instant(dtend.dt, calendar) if dtend is not None else None
    duration = component.get('DURATION')
    duration = duration.dt if duration is not None and isinstance(duration.dt, timedelta) else None
    if end is None and duration is None and isinstance(raw_start, date) and not isinstance(raw_start, datetime):
        duration = timedelta(days=1)

    rrule = None
    if component.get('RRULE') is not None and start is not None:
        series_zone = tzid or zone_name_of(getattr(raw_start, 'tzinfo', None))
        series_calendar = _series_calendar(series_zone, calendar)
        rrule = rrulestr(rule_text(component.get('RRULE'), series_calendar), dtstart=start)

    event = RawEvent(
        start=start,
        end=end,
        duration=duration,
        rrule=rrule,
        rdate=[_to_instant(v, calendar) for v in _date_values(component, 'RDATE')] or None,
        exdate={occurrence_key(v, calendar): v for v in _date_values(component, 'EXDATE')} or None,
        status=_text(component, 'STATUS'),
        summary=_text(component, 'SUMMARY'),
        description=_text(component, 'DESCRIPTION'),
        uid=_text(component, 'UID'),
        tzid=tzid,
    )
    recurrence_id = component.get('RECURRENCE-ID')
    key = occurrence_key(recurrence_id.dt, calendar) if recurrence_id is not None else None
    return event, key


def parse_freebusy(component, calendar):
    blocks = []
    for prop in _as_list(component.get('FREEBUSY')):
        start = getattr(prop, 'start', None)
        end = getattr(prop, 'end', None)
        if start is None or end is None:
            continue
        params = getattr(prop, 'params', {}) or {}
        blocks.append(FreeBusyBlock(_to_instant(start, calendar), _to_instant(end, calendar),
                                    params.get('FBTYPE')))
    return RawFreeBusy(blocks)


def parse_ics(data, calendar):
    """Parse ICS text into RawEvent / RawFreeBusy entries.

    Overrides (VEVENTs with RECURRENCE-ID) are attached to their series by
    UID; an override whose series is missing is kept as a standalone event.
    """
    parsed = Calendar.from_ical(data)
    entries = []
    series_by_uid = {}
    overrides = []
    for component in parsed.walk():
        if component.name == 'VFREEBUSY':
            entries.append(parse_freebusy(component, calendar))
            continue
        if component.name != 'VEVENT':
            continue
        try:
            event, recurrence_key = parse_event(component, calendar)
        except (TypeError, ValueError) as e:
            log.warning("Skipping event %s: %s", component.get('SUMMARY', '?'), e)
            continue
        if recurrence_key is not None:
            overrides.append((event.uid, recurrence_key, event))
            continue
        entries.append(event)
        if event.uid:
            series_by_uid[event.uid] = event

    for uid, key, override in overrides:
        series = series_by_uid.get(uid)
        if series is None:
            entries.append(override)
            continue
        if series.recurrences is None:
            series.recurrences = {}
        series.recurrences[key] = override
    log.debug("Parsed %d calendar entries", len(entries))
    return entries
