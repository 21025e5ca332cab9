# tests/test_formatter.py
"""
Formatter Tests - Unit Tests for Notification and Keypad Text

This module contains unit tests for number formatting, flag emojis, trend
labels, the pinned-rate summary, rate-alert content and reminder copy.

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- fxpad.adapters.formatting.formatter (all formatter functions for testing)
- fxpad.domain.models (PinnedRateConfig, RateAlert for test data)
- pytest (testing framework)
"""
import pytest  # Testing framework for writing and running tests

from datetime import datetime, timedelta, timezone  # Date/time utilities for test data

from fxpad.adapters.formatting.formatter import (
    UNKNOWN_FLAG_EMOJI,
    build_pinned_summary,
    build_rate_alert_content,
    compact_trend_label,
    currency_flag_emoji,
    format_display_number,
    format_last_updated,
    format_number,
    format_rate,
    format_time_label,
    pick_reminder_template,
    to_flag_emoji,
    tracked_pair_label,
    trend_label,
)
from fxpad.domain.models import (
    PinnedRateConfig,
    RateAlert,
    RateAlertCondition,
    TrendDirection,
)

US = to_flag_emoji("US")
KE = to_flag_emoji("KE")


class TestNumberFormatting:
    def test_format_number_three_decimals(self):
        assert format_number(1234.5) == "1,234.500"
        assert format_number(0.0004) == "0.000"
        assert format_number(-2.5) == "-2.500"

    def test_format_number_rounds_half_up(self):
        assert format_number(1.0005) == "1.001"

    def test_display_number_precision_by_magnitude(self):
        assert format_display_number(12950) == "12,950"
        assert format_display_number(129.456) == "129.46"
        assert format_display_number(1.23456) == "1.2346"
        assert format_display_number(100) == "100"

    def test_format_rate(self):
        assert format_rate(129.5) == "129.5"
        assert format_rate(0.00123456789) == "0.001235"

    def test_time_label(self):
        assert format_time_label(8, 5) == "08:05"


class TestFormatLastUpdated:
    def test_unavailable(self):
        assert format_last_updated(None) == "Last updated unavailable"

    def test_relative_labels(self):
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert format_last_updated(now - timedelta(seconds=30), now) == "Last updated just now"
        assert format_last_updated(now - timedelta(minutes=5), now) == "Last updated 5 min ago"
        assert format_last_updated(now - timedelta(hours=3), now) == "Last updated 3 hr ago"
        assert format_last_updated(now - timedelta(days=1), now) == "Last updated 1 day ago"
        assert format_last_updated(now - timedelta(days=4), now) == "Last updated 4 days ago"


class TestFlags:
    def test_country_flag(self):
        assert to_flag_emoji("us") == "\U0001F1FA\U0001F1F8"
        assert to_flag_emoji("USA") is None

    def test_currency_flag_from_code_prefix(self):
        assert currency_flag_emoji("USD") == US

    def test_currency_flag_from_cached_map(self):
        assert currency_flag_emoji("EUR", {"EUR": "EU"}) == to_flag_emoji("EU")

    def test_special_and_unknown_flags(self):
        assert currency_flag_emoji("XDR", {"XDR": "IMF"}) == "🏦"
        assert currency_flag_emoji("") == UNKNOWN_FLAG_EMOJI


class TestTrendLabels:
    def test_compact(self):
        assert compact_trend_label(TrendDirection.UP, 1.234) == "+1.23%"
        assert compact_trend_label(TrendDirection.DOWN, -0.5) == "-0.50%"
        assert compact_trend_label(TrendDirection.FLAT, 0.0) == "0.00%"
        assert compact_trend_label(TrendDirection.FLAT, None) == "new"
        assert compact_trend_label(TrendDirection.NONE, 3.0) == "new"

    def test_long(self):
        assert trend_label(TrendDirection.UP, 5.0) == "+ Up 5.00% vs previous update."
        assert trend_label(TrendDirection.DOWN, -2.0) == "- Down 2.00% vs previous update."
        assert trend_label(TrendDirection.FLAT, 0.0) == "= Unchanged vs previous update."
        assert trend_label(TrendDirection.FLAT, None).startswith("Baseline saved")


class TestPinnedSummary:
    def _config(self, **overrides):
        values = dict(
            enabled=True,
            base_currency_code="USD",
            quote_currency_code="KES",
            amount=100.0,
            last_rate=129.5,
            last_updated_at=datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc),
            last_trend_direction=TrendDirection.UP,
            last_trend_percent=1.234,
        )
        values.update(overrides)
        return PinnedRateConfig(**values)

    def test_summary_text(self):
        config = self._config()
        summary = build_pinned_summary(config)
        updated = config.last_updated_at.astimezone().strftime("%H:%M")

        assert summary.title == f"{US} 100 USD -> {KE} 12,950 KES"
        assert summary.subtitle == "USD/KES daily"
        assert summary.body == f"{US} 1 USD = {KE} 129.5 KES | +1.23% | {updated}"
        assert summary.converted_amount == pytest.approx(12950)
        assert summary.trend_direction is TrendDirection.UP

    def test_no_summary_without_rate(self):
        assert build_pinned_summary(self._config(last_rate=None)) is None
        assert build_pinned_summary(self._config(last_rate=-1.0)) is None

    def test_pending_time_and_new_trend(self):
        summary = build_pinned_summary(
            self._config(last_updated_at=None, last_trend_direction=None, last_trend_percent=None)
        )
        assert summary.body.endswith("| new | pending")
        assert summary.trend_direction is TrendDirection.NONE


class TestRateAlertContent:
    def test_content(self):
        alert = RateAlert(
            id="1-abc",
            enabled=True,
            base_currency_code="USD",
            quote_currency_code="KES",
            target_rate=130.0,
            condition=RateAlertCondition.AT_OR_ABOVE,
            created_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        )
        content = build_rate_alert_content(alert, 131.25)

        assert content.title == "Rate alert hit: USD/KES"
        assert content.subtitle == "Target at or above 130"
        assert content.body.splitlines() == [
            "1 USD = 131.25 KES",
            "Target: at or above 130",
            "Alert disabled after trigger to avoid duplicate notifications.",
        ]
        assert content.data["screen"] == "rate-alerts"
        assert content.data["alertId"] == "1-abc"
        assert content.sound is True


class TestReminderCopy:
    def test_pair_label(self):
        assert tracked_pair_label(["USD", "KES", "EUR"]) == "USD/KES"
        assert tracked_pair_label(["USD"]) == "USD rates"
        assert tracked_pair_label([]) == "your currencies"

    def test_template_depends_on_day_and_stage(self):
        day = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        first = pick_reminder_template(0, "USD/KES", day)
        same_day = pick_reminder_template(0, "USD/KES", day + timedelta(hours=5))
        next_day = pick_reminder_template(0, "USD/KES", day + timedelta(days=1))

        assert first == same_day
        assert first != next_day
        assert "USD/KES" in first[1]
