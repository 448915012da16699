"""Tests for relative time-window resolution."""

from datetime import datetime, timedelta, timezone

import pytest

from rcaflow.core.exceptions import UnknownWindowError
from rcaflow.core.windows import TimeWindow, format_instant, parse_instant, resolve_window

REFERENCE = datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)


# -----------------------------------------------------------------------------
# Explicit windows
# -----------------------------------------------------------------------------


class TestExplicitWindows:
    def test_pair_round_trips_exactly(self):
        window = resolve_window("2026-01-01T10:00:00Z|2026-01-01T11:30:00Z", REFERENCE)
        assert window.start == datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)
        assert window.end == datetime(2026, 1, 1, 11, 30, tzinfo=timezone.utc)
        assert window.periods == 1
        assert window.hour_of_day is None

    def test_bare_instant_is_one_hour(self):
        window = resolve_window("2026-01-01T10:00:00Z", REFERENCE)
        assert window.duration == timedelta(hours=1)
        assert window.start.hour == 10

    def test_offset_instants_normalise_to_utc(self):
        window = resolve_window("2026-01-01T15:30:00+05:30", REFERENCE)
        assert format_instant(window.start) == "2026-01-01 10:00:00"

    def test_naive_instants_are_utc(self):
        assert parse_instant("2026-01-01T10:00:00").tzinfo == timezone.utc


# -----------------------------------------------------------------------------
# Relative tokens
# -----------------------------------------------------------------------------


class TestRelativeTokens:
    @pytest.mark.parametrize("token", ["prev_day_same_hour", "yesterday_same_hour"])
    def test_previous_day(self, token):
        window = resolve_window(token, REFERENCE)
        assert window.start == REFERENCE - timedelta(days=1)
        assert window.duration == timedelta(hours=1)

    @pytest.mark.parametrize("token", ["prev_week_same_hour", "same_day_last_week"])
    def test_previous_week(self, token):
        window = resolve_window(token, REFERENCE)
        assert window.start == REFERENCE - timedelta(days=7)
        assert window.end == REFERENCE - timedelta(days=7) + timedelta(hours=1)

    def test_prev_24_hours_ends_at_reference(self):
        window = resolve_window("prev_24_hours", REFERENCE)
        assert window.end == REFERENCE
        assert window.duration == timedelta(hours=24)

    def test_averaged_window_keeps_span_and_hour(self):
        window = resolve_window("avg_prev_3_days_same_hour", REFERENCE)
        assert window.start == REFERENCE - timedelta(days=3)
        assert window.end == REFERENCE
        assert window.periods == 3
        assert window.hour_of_day == 14

    def test_reference_defaults_to_now(self):
        window = resolve_window("prev_24_hours")
        assert abs((datetime.now(timezone.utc) - window.end).total_seconds()) < 5


# -----------------------------------------------------------------------------
# Rejections
# -----------------------------------------------------------------------------


class TestUnknownTokens:
    @pytest.mark.parametrize(
        "token",
        ["", "last_tuesday", "avg_prev_0_days_same_hour", "2026-13-01T00:00:00Z", "a|b"],
    )
    def test_unknown_token_raises(self, token):
        with pytest.raises(UnknownWindowError):
            resolve_window(token, REFERENCE)


def test_window_params_use_storage_format():
    window = TimeWindow(
        start=datetime(2026, 1, 1, 10, tzinfo=timezone.utc),
        end=datetime(2026, 1, 1, 11, tzinfo=timezone.utc),
    )
    assert window.as_params() == ("2026-01-01 10:00:00", "2026-01-01 11:00:00")
    assert window.duration_minutes == 60
