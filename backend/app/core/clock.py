"""
Wall-clock access for booking rules.

Class start times are stored as a time of day in the gym's local timezone,
so "now" must be evaluated in that same zone.
"""

from datetime import datetime, tzinfo
from functools import lru_cache
from typing import Callable
from zoneinfo import ZoneInfo

from app.core.config import get_settings

Clock = Callable[[], datetime]


@lru_cache()
def gym_timezone() -> tzinfo:
    return ZoneInfo(get_settings().GYM_TIMEZONE)


def system_clock() -> datetime:
    return datetime.now(gym_timezone())


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a frozen clock."""
    return system_clock
