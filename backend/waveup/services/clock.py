"""Wall-clock helpers and daily bucket keys."""

from collections.abc import Callable
from datetime import UTC, datetime

NowProvider = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


def date_key(now: datetime) -> str:
    """Return the "YYYY-MM-DD" bucket for a timestamp.

    Aware timestamps are bucketed by their UTC calendar date so that a device
    changing time zone does not split or merge a day's usage. Naive
    timestamps are taken as already being UTC.
    """
    if now.tzinfo is not None:
        now = now.astimezone(UTC)
    return now.date().isoformat()
