"""Expansion of raw calendar entries into concrete busy instances."""
import logging
import re
from collections.abc import Mapping
from datetime import datetime, timedelta

import pytz

from models import BusyInstance, ConfigError, RawEvent, RawFreeBusy
from timezones import ZoneCalendar, normalize_timezone, zone_name_of

log = logging.getLogger(__name__)

NON_DIGITS = re.compile(r'\D')


# ===== Occurrence key matching =====

def build_key_candidates(instant, calendar):
    """Exact textual encodings an occurrence may be keyed under."""
    utc = instant.astimezone(pytz.utc)
    utc_date_only = utc.strftime('%Y-%m-%d')
    utc_iso_no_ms = utc.strftime('%Y-%m-%dT%H:%M:%SZ')
    utc_iso = f"{utc.strftime('%Y-%m-%dT%H:%M:%S')}.{utc.microsecond // 1000:03d}Z"
    local = calendar.local_datetime(instant)
    return [
        utc_iso,
        utc_iso_no_ms,
        utc_date_only,
        utc.strftime('%Y%m%dT%H%M%SZ'),
        local.strftime('%Y-%m-%d'),
        local.strftime('%Y-%m-%dT%H:%M:%S'),
        local.strftime('%Y%m%dT%H%M%S'),
    ]


def key_signature(value):
    """Digit-only signature: 8 digits for a date, 12 or 14 for a date-time."""
    if not value:
        return ''
    text = str(value)
    digits = NON_DIGITS.sub('', text)
    if not digits:
        return ''
    if 'T' in text or len(digits) > 8:
        if len(digits) >= 14:
            return digits[:14]
        if len(digits) >= 12:
            return digits[:12]
    if len(digits) >= 8:
        return digits[:8]
    return digits


def candidate_signatures(instant, calendar):
    signatures = set()
    for candidate in build_key_candidates(instant, calendar):
        digits = key_signature(candidate)
        if not digits:
            continue
        signatures.add(digits)
        if len(digits) == 14 and digits.endswith('00'):
            signatures.add(digits[:12])
        elif len(digits) == 12:
            signatures.add(digits + '00')
    return signatures


class OccurrenceKeyMap:
    """Override / exclusion-date map with tolerant occurrence lookup.

    Lookups first try every exact key encoding of the instant, then fall
    back to comparing digit signatures of the stored keys.
    """

    def __init__(self, entries=None, calendar=None):
        self._entries = dict(entries or {})
        self._calendar = calendar or ZoneCalendar()

    def __len__(self):
        return len(self._entries)

    def find(self, instant):
        for key in build_key_candidates(instant, self._calendar):
            if self._entries.get(key) is not None:
                return self._entries[key]
        signatures = candidate_signatures(instant, self._calendar)
        for key, value in self._entries.items():
            digits = key_signature(key)
            if value is not None and digits and digits in signatures:
                return value
        return None

    def find_any(self, *instants):
        for instant in instants:
            value = self.find(instant)
            if value is not None:
                return value
        return None

    def __contains__(self, instant):
        return self.find(instant) is not None


# ===== Event helpers =====

def extract_rdates(rdate):
    """Flatten RDATE values (single, list, nested lists or dict) into datetimes."""
    if not rdate:
        return []
    if isinstance(rdate, Mapping):
        values = list(rdate.values())
    elif isinstance(rdate, (list, tuple, set)):
        values = list(rdate)
    else:
        values = [rdate]
    dates = []
    for value in values:
        nested = value if isinstance(value, (list, tuple, set)) else [value]
        dates.extend(item for item in nested if isinstance(item, datetime))
    return dates


def event_duration(event):
    if isinstance(event.start, datetime) and isinstance(event.end, datetime):
        return event.end - event.start
    if isinstance(event.duration, timedelta):
        return event.duration
    return timedelta(0)


def resolve_event_time(event):
    """(start, end) of a single event, or None when no end can be derived."""
    if event is None or not isinstance(event.start, datetime):
        return None
    end = event.end if isinstance(event.end, datetime) else None
    if end is None:
        duration = event_duration(event)
        if duration > timedelta(0):
            end = event.start + duration
    if end is None:
        return None
    return event.start, end


def event_label(event, default='Busy'):
    return event.summary or event.description or event.uid or default


def is_ignored_summary(summary, ignore_summaries):
    if not ignore_summaries:
        return False
    value = str(summary or '').strip().lower()
    return bool(value) and value in ignore_summaries


def resolve_event_timezone(event):
    """Zone the series was authored in, if one can be recovered."""
    start_tzinfo = event.start.tzinfo if isinstance(event.start, datetime) else None
    candidates = [
        zone_name_of(start_tzinfo),
        getattr(event.rrule, 'tzid', None),
        event.tzid,
    ]
    for raw in candidates:
        if not raw:
            continue
        try:
            return normalize_timezone(raw)
        except ConfigError:
            log.debug("Ignoring unknown event timezone %r", raw)
    return None


def _to_utc(instant):
    return instant.astimezone(pytz.utc)


# ===== Expansion =====

def expand_recurring(event, range_start, range_end, cache=None):
    duration = event_duration(event)
    if duration <= timedelta(0):
        log.debug("Skipping series %r without a positive duration", event_label(event))
        return []
    dates = []
    if event.rrule is not None:
        try:
            dates = list(event.rrule.between(range_start, range_end, inc=True))
        except (TypeError, ValueError) as e:
            log.debug("Skipping series %r, recurrence rule failed: %s", event_label(event), e)
            return []
    dates.extend(extract_rdates(event.rdate))

    label = event_label(event)
    event_zone = resolve_event_timezone(event)
    zone_calendar = ZoneCalendar(event_zone, cache) if event_zone else None
    key_calendar = zone_calendar or ZoneCalendar(None, cache)
    recurrences = OccurrenceKeyMap(event.recurrences, key_calendar)
    exdates = OccurrenceKeyMap(event.exdate, key_calendar)

    instances = []
    seen = set()
    for occurrence in dates:
        if not isinstance(occurrence, datetime) or occurrence.tzinfo is None:
            continue
        if occurrence in seen:
            continue
        seen.add(occurrence)
        adjusted = occurrence
        if zone_calendar is not None and isinstance(event.start, datetime):
            adjusted = zone_calendar.align_to_wall_time(occurrence, event.start)

        override = recurrences.find_any(adjusted, occurrence)
        if override is not None:
            if (override.status or '').upper() == 'CANCELLED':
                continue
            override_range = resolve_event_time(override)
            if override_range:
                start, end = override_range
                instances.append(BusyInstance(_to_utc(start), _to_utc(end),
                                              event_label(override, label)))
            continue
        if adjusted in exdates or occurrence in exdates:
            continue
        start = _to_utc(adjusted)
        instances.append(BusyInstance(start, start + duration, label))
    instances.sort(key=lambda i: (i.start, i.end))
    return instances


def _iter_entries(entries):
    if entries is None:
        return []
    if isinstance(entries, Mapping):
        return list(entries.values())
    return list(entries)


def _free_busy_instances(entry, range_start, range_end):
    for block in entry.blocks or []:
        if block is None or block.start is None or block.end is None:
            continue
        block_type = str(block.type or '').upper()
        if block_type and 'BUSY' not in block_type:
            continue
        if block.end <= range_start or block.start >= range_end:
            continue
        label = f"VFREEBUSY:{block_type}" if block_type else 'VFREEBUSY'
        yield BusyInstance(_to_utc(block.start), _to_utc(block.end), label)


def collect_event_instances(entries, range_start, range_end, ignore_summaries=frozenset(),
                            cache=None):
    """Busy instances intersecting [range_start, range_end) for every usable entry."""
    instances = []
    for entry in _iter_entries(entries):
        if isinstance(entry, RawFreeBusy):
            instances.extend(_free_busy_instances(entry, range_start, range_end))
            continue
        if not isinstance(entry, RawEvent):
            continue
        if (entry.status or '').upper() == 'CANCELLED':
            continue
        if is_ignored_summary(entry.summary, ignore_summaries):
            continue

        if entry.rrule is not None or entry.rdate:
            event_instances = expand_recurring(entry, range_start, range_end, cache)
        else:
            base_range = resolve_event_time(entry)
            if base_range is None:
                log.debug("Skipping event %r without a derivable end", event_label(entry))
                continue
            start, end = base_range
            event_instances = [BusyInstance(_to_utc(start), _to_utc(end), event_label(entry))]

        for instance in event_instances:
            if instance.end <= range_start or instance.start >= range_end:
                continue
            instances.append(instance)
    instances.sort(key=lambda i: (i.start, i.end, i.label))
    return instances
