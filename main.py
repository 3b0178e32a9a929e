import argparse
import logging
import sys

import requests

from availability import AvailabilityPlanner, day_label
from calendar_service import load_calendar
from models import ConfigError, RangeError
from timezones import TimezoneCache, ZoneCalendar
from utils import (
    build_availability_config, build_calendar_source, format_busy, format_results,
    normalize_output_format, parse_date_input, read_config, resolve_default_config_path
)


def build_parser():
    parser = argparse.ArgumentParser(
        prog='free-slots',
        description='Find free meeting slots in an ICS calendar',
        epilog='Example: free-slots --length 30 --start 14.1 --end 16.1',
    )
    parser.add_argument('--length', '-l', type=int, required=True, help='Meeting length in minutes')
    parser.add_argument('--start', '-s', required=True, help='Start date (DD.M, DD.MM.YYYY, or YYYY-MM-DD)')
    parser.add_argument('--end', '-e', required=True, help='End date (DD.M, DD.MM.YYYY, or YYYY-MM-DD)')
    parser.add_argument('--config', '-c', default=None,
                        help='Path to config file (default: config.json or FREE_SLOTS_CONFIG)')
    parser.add_argument('--format', '-f', default='text', help='Output format: text, list, block, json')
    parser.add_argument('--debug', '-d', nargs='?', const=True, default=None, metavar='DATE',
                        help='Print busy intervals for each day (optionally only DATE)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    return parser


def run(args):
    """Compute availability for the parsed arguments and return the output text."""
    if args.length <= 0:
        raise ConfigError('Meeting length must be a positive number of minutes')
    output_format = normalize_output_format(args.format)
    config_path = args.config or resolve_default_config_path()
    raw_config, config_dir = read_config(config_path)
    config = build_availability_config(raw_config)
    source = build_calendar_source(raw_config, config_dir)
    start_date = parse_date_input(args.start)
    end_date = parse_date_input(args.end)
    if start_date > end_date:
        raise RangeError('Start date must be before or equal to end date')
    debug_date = parse_date_input(args.debug) if args.debug not in (None, True) else None

    cache = TimezoneCache()
    entries = load_calendar(source, ZoneCalendar(config.time_zone, cache))
    planner = AvailabilityPlanner(config, entries, cache)

    if args.debug:
        for day, busy in planner.busy(start_date, end_date):
            if debug_date is None or day == debug_date:
                print(format_busy(day_label(day), busy, planner.calendar))
    results = planner.compute(start_date, end_date, args.length)
    return format_results(results, output_format, planner.calendar)


def main(argv=None):
    """Main entry point for the free-slots CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )
    try:
        print(run(args))
    except (ConfigError, RangeError, OSError, requests.RequestException) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
