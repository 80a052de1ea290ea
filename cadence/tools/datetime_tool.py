"""
Date/time capability - answers date, time, weekday and timezone queries.
"""
from datetime import datetime
from typing import Callable, Optional

from cadence.core.intents import IntentKind
from cadence.core.values import Parameters, require_str
from cadence.tools.tool_base import Capability, ExecutionResult


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _clock_time(now: datetime) -> str:
    """12-hour clock without a leading zero, e.g. '3:05 PM'."""
    return now.strftime("%I:%M %p").lstrip("0")


def _long_date(now: datetime) -> str:
    return f"{now.strftime('%B')} {now.day}, {now.year}"


class DateTimeCapability(Capability):
    """Handler for the get-datetime intent."""

    kind = IntentKind.GET_DATETIME
    description = "Tell the current date, time, weekday or timezone"

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or _local_now

    def handle(self, parameters: Parameters) -> ExecutionResult:
        query = require_str(parameters, "query").lower()
        now = self._clock()

        if query == "date":
            return ExecutionResult.ok(f"Today is {_long_date(now)}")
        if query == "time":
            return ExecutionResult.ok(f"The time is {_clock_time(now)}")
        if query == "day":
            return ExecutionResult.ok(f"Today is {now.strftime('%A')}")
        if query == "timezone":
            return ExecutionResult.ok(f"Your timezone is {now.tzname() or 'unknown'}")
        return ExecutionResult.ok(f"{_long_date(now)} at {_clock_time(now)}")
