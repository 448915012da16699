"""Relative time-window resolution.

A window token names a time range relative to a reference instant:

- ``"2026-01-01T10:00:00Z|2026-01-01T11:00:00Z"``: explicit ``[start, end)``
- ``"2026-01-01T10:00:00Z"``: one hour starting at that instant
- ``prev_day_same_hour`` / ``yesterday_same_hour``: one hour, one day earlier
- ``prev_week_same_hour`` / ``same_day_last_week``: one hour, seven days earlier
- ``prev_24_hours``: the rolling 24 hours ending at the reference
- ``avg_prev_N_days_same_hour``: the N days before the reference, restricted
  to the reference's hour of day and averaged over N periods
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from rcaflow.core.exceptions import UnknownWindowError

DEFAULT_BASELINE_WINDOW = "avg_prev_3_days_same_hour"

ONE_HOUR = timedelta(hours=1)

_AVG_PREV_DAYS = re.compile(r"^avg_prev_(\d+)_days_same_hour$")

_SHIFTED_HOUR_TOKENS = {
    "prev_day_same_hour": timedelta(days=1),
    "yesterday_same_hour": timedelta(days=1),
    "prev_week_same_hour": timedelta(days=7),
    "same_day_last_week": timedelta(days=7),
}


@dataclass(frozen=True)
class TimeWindow:
    """Concrete half-open interval ``[start, end)``.

    ``periods`` is the number of slices the query layer aggregates for the
    window; volume counts fetched for it are divided by ``periods`` to get a
    per-slice average. ``hour_of_day`` restricts aggregation to a single hour
    of each day.
    """

    start: datetime
    end: datetime
    periods: int = 1
    hour_of_day: Optional[int] = None

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def duration_minutes(self) -> float:
        return self.duration.total_seconds() / 60

    def as_params(self) -> tuple[str, str]:
        """Query parameters for the window bounds."""
        return (format_instant(self.start), format_instant(self.end))


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_instant(value: datetime) -> str:
    """Format an instant the way stored timestamps are written (UTC, seconds)."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def resolve_window(token: str, reference: Optional[datetime] = None) -> TimeWindow:
    """Resolve a window token against a reference instant.

    Args:
        token: The symbolic window token.
        reference: Anchor instant; defaults to now (UTC).

    Returns:
        The concrete TimeWindow.

    Raises:
        UnknownWindowError: If the token is not recognised.
    """
    if not isinstance(token, str) or not token.strip():
        raise UnknownWindowError(f"Unknown window definition: {token!r}")
    token = token.strip()

    if reference is None:
        reference = datetime.now(timezone.utc)
    elif reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)

    match = _AVG_PREV_DAYS.match(token)
    if match:
        days = int(match.group(1))
        if days < 1:
            raise UnknownWindowError(f"Unknown window definition: {token}")
        return TimeWindow(
            start=reference - timedelta(days=days),
            end=reference,
            periods=days,
            hour_of_day=reference.astimezone(timezone.utc).hour,
        )

    if token in _SHIFTED_HOUR_TOKENS:
        start = reference - _SHIFTED_HOUR_TOKENS[token]
        return TimeWindow(start=start, end=start + ONE_HOUR)

    if token == "prev_24_hours":
        return TimeWindow(start=reference - timedelta(hours=24), end=reference)

    if "|" in token:
        start_text, _, end_text = token.partition("|")
        try:
            return TimeWindow(start=parse_instant(start_text), end=parse_instant(end_text))
        except ValueError as e:
            raise UnknownWindowError(f"Unknown window definition: {token}") from e

    try:
        start = parse_instant(token)
    except ValueError as e:
        raise UnknownWindowError(f"Unknown window definition: {token}") from e
    return TimeWindow(start=start, end=start + ONE_HOUR)
