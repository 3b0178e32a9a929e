from datetime import datetime

import pytest
import pytz

from timezones import TimezoneCache, ZoneCalendar


def utc(*fields):
    return pytz.utc.localize(datetime(*fields))


@pytest.fixture
def cache():
    return TimezoneCache()


@pytest.fixture
def helsinki(cache):
    return ZoneCalendar('Europe/Helsinki', cache)


@pytest.fixture
def new_york(cache):
    return ZoneCalendar('America/New_York', cache)


@pytest.fixture
def utc_calendar(cache):
    return ZoneCalendar('UTC', cache)


@pytest.fixture
def local_calendar(cache):
    return ZoneCalendar(None, cache)
