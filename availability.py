"""Per-day free slot computation over a date range."""
import logging
from datetime import timedelta

from exclusions import exclusion_intervals_for_day
from expander import collect_event_instances
from intervals import align_to_grid, clip_busy_intervals, free_slots_for_day
from models import ConfigError, DayAvailability, RangeError
from timezones import TimezoneCache, ZoneCalendar, iterate_days

log = logging.getLogger(__name__)


def day_label(day):
    return f"{day.day}.{day.month}"


def query_window(start_date, end_date, calendar):
    """00:00:00 of the first day through 23:59:59 of the last, in the operative zone."""
    if start_date > end_date:
        raise RangeError('Start date must be before or equal to end date')
    return calendar.start_of_day(start_date), calendar.end_of_day(end_date)


def work_day_bounds(day, config, calendar):
    day_start = calendar.at_time_of_day(day, config.work_day_start)
    day_end = calendar.at_time_of_day(day, config.work_day_end)
    if day_end <= day_start:
        raise RangeError('workDayEnd must be after workDayStart')
    return day_start, day_end


def _day_context(day, config, calendar):
    day_start, day_end = work_day_bounds(day, config, calendar)
    exclusions = exclusion_intervals_for_day(
        day, config.exclude_time, config.exclude_time_weekly, calendar)
    return day_start, day_end, exclusions


def busy_intervals_for_day(instances, day, config, calendar):
    """Clipped, labelled busy intervals of one work day, sorted by start."""
    day_start, day_end, exclusions = _day_context(day, config, calendar)
    busy = clip_busy_intervals(instances, day_start, day_end, exclusions)
    return sorted(busy, key=lambda b: (b.start, b.end, b.label))


def free_slots_on_day(instances, day, config, calendar, meeting_length):
    day_start, day_end, exclusions = _day_context(day, config, calendar)
    free = free_slots_for_day(instances, day_start, day_end, meeting_length, exclusions)
    return align_to_grid(free, meeting_length, config.time_grid_minutes, calendar)


class AvailabilityPlanner:
    """Computes free slots for a calendar snapshot under one configuration."""

    def __init__(self, config, entries, cache=None):
        self.config = config
        self.entries = entries
        self.cache = cache if cache is not None else TimezoneCache()
        self.calendar = ZoneCalendar(config.time_zone, self.cache)

    def days(self, start_date, end_date):
        if start_date > end_date:
            raise RangeError('Start date must be before or equal to end date')
        days = list(iterate_days(start_date, end_date))
        for day in days:
            work_day_bounds(day, self.config, self.calendar)
        return days

    def instances(self, start_date, end_date):
        range_start, range_end = query_window(start_date, end_date, self.calendar)
        instances = collect_event_instances(
            self.entries, range_start, range_end, self.config.ignore_summaries, self.cache)
        log.debug("Collected %d busy instances between %s and %s",
                  len(instances), range_start, range_end)
        return instances

    def compute(self, start_date, end_date, meeting_length_minutes):
        if not meeting_length_minutes or meeting_length_minutes <= 0:
            raise ConfigError('Meeting length must be a positive number of minutes')
        meeting_length = timedelta(minutes=meeting_length_minutes)
        days = self.days(start_date, end_date)
        instances = self.instances(start_date, end_date)
        return [
            DayAvailability(date=day, label=day_label(day),
                            slots=free_slots_on_day(instances, day, self.config,
                                                    self.calendar, meeting_length))
            for day in days
        ]

    def busy(self, start_date, end_date):
        """Debug view: busy intervals per day, same clipping as `compute`."""
        days = self.days(start_date, end_date)
        instances = self.instances(start_date, end_date)
        return [(day, busy_intervals_for_day(instances, day, self.config, self.calendar))
                for day in days]


def compute_availability(entries, config, start_date, end_date, meeting_length_minutes,
                         cache=None):
    planner = AvailabilityPlanner(config, entries, cache)
    return planner.compute(start_date, end_date, meeting_length_minutes)
