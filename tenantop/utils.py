"""
Common utilities shared across the library
"""

# Standard
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
import re
import time

# Third Party
from dateutil import parser as date_parser

# First Party
import alog

log = alog.use_channel("TOUTL")

## Dicts #######################################################################


def merge_configs(base, overrides) -> dict:
    """Helper to perform a deep merge of the overrides into the base. The merge
    is done in place, but the resulting dict is also returned for convenience.

    If both the base and overrides have a key and the type of the key for both
    is a dict, recursively merge, otherwise set the base value to the override
    value.
    """
    for key, value in overrides.items():
        if (
            key not in base
            or not isinstance(base[key], dict)
            or not isinstance(value, dict)
        ):
            base[key] = value
        else:
            base[key] = merge_configs(base[key], value)
    return base


## Time ########################################################################

# Durations in config are written as 1hr2m3s
_duration_regex = re.compile(
    r"^((?P<hours>\d+?)hr)?((?P<minutes>\d+?)m)?((?P<seconds>\d*\.?\d+?)s)?$"
)


def parse_time_delta(time_str: str) -> Optional[timedelta]:
    """Parse a string into a timedelta. Accepts values in the following
    formats: 1hr, 5m, 10s, 1hr30m, etc

    Args:
        time_str: str
            The string representation of a timedelta

    Returns:
        result: Optional[timedelta]
            The parsed timedelta if one could be found
    """
    parts = _duration_regex.match(time_str or "")
    if not parts or all(part is None for part in parts.groupdict().values()):
        return None
    return timedelta(
        **{name: float(param) for name, param in parts.groupdict().items() if param}
    )


def format_timestamp(timestamp: datetime) -> str:
    """Render a datetime as the RFC 3339 UTC string used in manifests"""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(timestamp: Optional[str]) -> Optional[datetime]:
    """Parse a manifest timestamp into an aware datetime. Naive values are
    treated as UTC.
    """
    if not timestamp:
        return None
    parsed = date_parser.isoparse(timestamp)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Clock:
    """Wall clock used by everything that makes time based decisions. Tests
    inject a fake with the same interface.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def sleep(self, seconds: float):
        time.sleep(seconds)


def wait_for_condition(
    condition: Callable[[], bool],
    timeout: float,
    interval: float,
    clock: Optional[Clock] = None,
    stop_check: Optional[Callable[[], bool]] = None,
) -> bool:
    """Poll a condition until it holds or the timeout elapses. This is a
    bounded loop: the condition is checked at most timeout/interval + 1 times.

    Args:
        condition:  Callable[[], bool]
            The condition to poll
        timeout:  float
            Seconds to keep polling
        interval:  float
            Seconds between polls
        clock:  Optional[Clock]
            The clock used for sleeping and deadline computation
        stop_check:  Optional[Callable[[], bool]]
            If given and it returns True, polling stops early

    Returns:
        met:  bool
            Whether the condition held before the deadline
    """
    clock = clock or Clock()
    deadline = clock.now() + timedelta(seconds=timeout)
    interval = max(interval, 0.001)
    max_attempts = int(timeout / interval) + 1
    for attempt in range(max_attempts + 1):
        if condition():
            log.debug3("Condition met after %d attempts", attempt + 1)
            return True
        if stop_check is not None and stop_check():
            log.debug2("Stopped waiting for condition")
            return False
        if clock.now() >= deadline:
            break
        clock.sleep(interval)
    return False
