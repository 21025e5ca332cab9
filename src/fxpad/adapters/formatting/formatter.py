# src/fxpad/adapters/formatting/formatter.py
"""
Message Formatter - Text Formatting and Presentation

This module handles all user-facing text: number formatting for keypad rows
and notifications, flag emojis, trend labels, the pinned-rate notification
summary, rate-alert notification content and the retention reminder copy.

Files that USE this module:
- fxpad.application.pinned_rate_service (build_pinned_summary, format_time_label)
- fxpad.application.rate_alert_service (build_rate_alert_content)
- fxpad.application.retention_service (pick_reminder_template, tracked_pair_label)
- fxpad.application.calculator (format_number for converted row values)
- tests.test_formatter (unit tests)

Files that this module USES:
- fxpad.domain.models (PinnedRateConfig, RateAlert, summaries, NotificationContent)
"""
from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation
from typing import Mapping, Optional, Sequence

from fxpad.domain.models import (
    NotificationContent,
    PinnedRateConfig,
    PinnedRateSummary,
    RateAlert,
    RateAlertCondition,
    TrendDirection,
)

UNKNOWN_FLAG_EMOJI = "💱"
SPECIAL_FLAG_EMOJIS = {"IMF": "🏦"}

_REGIONAL_INDICATOR_OFFSET = 127397
_COUNTRY_RE = re.compile(r"^[A-Z]{2}$")
_WIDE_CONTEXT = Context(prec=400)


def _format_grouped(value: float, decimals: int, strip_zeros: bool) -> str:
    """Round half-up to `decimals` places and group thousands with ','."""
    if not math.isfinite(value):
        return "—"
    try:
        rounded = Decimal(repr(value)).quantize(
            Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP, context=_WIDE_CONTEXT
        )
    except InvalidOperation:
        return "—"
    text = f"{rounded:,f}"
    if strip_zeros and "." in text:
        text = text.rstrip("0").rstrip(".")
    if text.lstrip("-").strip("0.,") == "":
        text = text.lstrip("-")
    return text


def format_number(value: float) -> str:
    """Format a converted amount with exactly 3 decimals: 1234.5 -> '1,234.500'."""
    return _format_grouped(value, 3, strip_zeros=False)


def format_display_number(value: float) -> str:
    """
    Format a number for notification titles.

    Precision shrinks as magnitude grows: no decimals from 1,000 up, two from
    10 up, four below that. Trailing zeros are dropped.
    """
    absolute = abs(value)
    decimals = 0 if absolute >= 1000 else 2 if absolute >= 10 else 4
    return _format_grouped(value, decimals, strip_zeros=True)


def format_rate(value: float) -> str:
    """Format a pair rate with up to 6 decimals."""
    return _format_grouped(value, 6, strip_zeros=True)


def format_time_label(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def to_local_time(value: datetime) -> datetime:
    """Convert an aware timestamp to local time; naive values are assumed local."""
    return value.astimezone() if value.tzinfo else value


def format_compact_updated_time(updated_at: Optional[datetime]) -> str:
    if not updated_at:
        return "pending"
    return to_local_time(updated_at).strftime("%H:%M")


def format_last_updated(updated_at: Optional[datetime], now: Optional[datetime] = None) -> str:
    """
    Relative "last updated" label for the cached rate table.

    Args:
        updated_at: When rates were last fetched
        now: Reference time (defaults to current UTC time)

    Returns:
        Strings like 'Last updated just now', 'Last updated 5 min ago'
    """
    if not updated_at:
        return "Last updated unavailable"

    now = now or datetime.now(timezone.utc)
    if updated_at.tzinfo is None:
        updated_at = updated_at.astimezone()
    if now.tzinfo is None:
        now = now.astimezone()

    diff_seconds = (now - updated_at).total_seconds()
    if diff_seconds < 60:
        return "Last updated just now"

    minutes = int(diff_seconds // 60)
    if minutes < 60:
        return f"Last updated {minutes} min ago"

    hours = minutes // 60
    if hours < 24:
        return f"Last updated {hours} hr ago"

    days = hours // 24
    return f"Last updated {days} day{'' if days == 1 else 's'} ago"


# -------- flags --------

def to_flag_emoji(country_code: str) -> Optional[str]:
    """Two-letter country code to regional-indicator flag, None otherwise."""
    normalized = (country_code or "").upper().strip()
    if not _COUNTRY_RE.match(normalized):
        return None
    return "".join(chr(_REGIONAL_INDICATOR_OFFSET + ord(ch)) for ch in normalized)


def currency_flag_emoji(currency_code: str, flag_iso_by_code: Optional[Mapping[str, str]] = None) -> str:
    """
    Flag emoji for a currency.

    Uses the country code from the cached currency list when known, otherwise
    the first two letters of the currency code.
    """
    normalized = (currency_code or "").upper().strip()
    iso_code = (flag_iso_by_code or {}).get(normalized) or normalized[:2]

    special = SPECIAL_FLAG_EMOJIS.get(iso_code)
    if special:
        return special
    return to_flag_emoji(iso_code) or UNKNOWN_FLAG_EMOJI


# -------- trends --------

def trend_label(direction: TrendDirection, percent: Optional[float]) -> str:
    """Long trend sentence shown on the pinned-rate screen."""
    if percent is None or direction is TrendDirection.NONE:
        return "Baseline saved. Trend starts from the next update."

    abs_percent = f"{abs(percent):.2f}"
    if direction is TrendDirection.UP:
        return f"+ Up {abs_percent}% vs previous update."
    if direction is TrendDirection.DOWN:
        return f"- Down {abs_percent}% vs previous update."
    return "= Unchanged vs previous update."


def compact_trend_label(direction: TrendDirection, percent: Optional[float]) -> str:
    if percent is None or direction is TrendDirection.NONE:
        return "new"

    abs_percent = f"{abs(percent):.2f}"
    if direction is TrendDirection.UP:
        return f"+{abs_percent}%"
    if direction is TrendDirection.DOWN:
        return f"-{abs_percent}%"
    return "0.00%"


# -------- pinned rate --------

def build_pinned_summary(
    config: PinnedRateConfig,
    flag_iso_by_code: Optional[Mapping[str, str]] = None,
) -> Optional[PinnedRateSummary]:
    """
    Render the sticky notification for a pinned pair.

    Args:
        config: Pinned-rate config with a captured rate
        flag_iso_by_code: Currency code -> country code map from the cached currency list

    Returns:
        PinnedRateSummary, or None when the config has no valid rate yet
    """
    rate = config.last_rate
    if rate is None or not math.isfinite(rate) or rate <= 0:
        return None

    base, quote = config.base_currency_code, config.quote_currency_code
    base_flag = currency_flag_emoji(base, flag_iso_by_code)
    quote_flag = currency_flag_emoji(quote, flag_iso_by_code)
    converted_amount = config.amount * rate
    direction = config.last_trend_direction or TrendDirection.NONE
    compact_trend = compact_trend_label(direction, config.last_trend_percent)
    updated_label = format_compact_updated_time(config.last_updated_at)

    return PinnedRateSummary(
        title=(
            f"{base_flag} {format_display_number(config.amount)} {base} -> "
            f"{quote_flag} {format_display_number(converted_amount)} {quote}"
        ),
        subtitle=f"{base}/{quote} daily",
        body=(
            f"{base_flag} 1 {base} = {quote_flag} {format_display_number(rate)} {quote}"
            f" | {compact_trend} | {updated_label}"
        ),
        converted_amount=converted_amount,
        pair_rate=rate,
        trend_direction=direction,
        trend_percent=config.last_trend_percent,
        base_flag_emoji=base_flag,
        quote_flag_emoji=quote_flag,
    )


# -------- rate alerts --------

def condition_label(condition: RateAlertCondition) -> str:
    return condition.label


def build_rate_alert_content(alert: RateAlert, current_rate: float) -> NotificationContent:
    """Detailed notification for a triggered rate alert."""
    pair = f"{alert.base_currency_code}/{alert.quote_currency_code}"
    target = f"{condition_label(alert.condition)} {format_rate(alert.target_rate)}"
    body = "\n".join([
        f"1 {alert.base_currency_code} = {format_rate(current_rate)} {alert.quote_currency_code}",
        f"Target: {target}",
        "Alert disabled after trigger to avoid duplicate notifications.",
    ])
    return NotificationContent(
        title=f"Rate alert hit: {pair}",
        subtitle=f"Target {target}",
        body=body,
        sound=True,
        data={
            "screen": "rate-alerts",
            "alertId": alert.id,
            "baseCurrencyCode": alert.base_currency_code,
            "quoteCurrencyCode": alert.quote_currency_code,
        },
    )


# -------- retention reminders --------

def tracked_pair_label(selected_codes: Sequence[str]) -> str:
    """'USD/KES' for two or more codes, 'USD rates' for one, else a generic label."""
    if len(selected_codes) >= 2:
        return f"{selected_codes[0]}/{selected_codes[1]}"
    if len(selected_codes) == 1:
        return f"{selected_codes[0]} rates"
    return "your currencies"


def build_reminder_templates(pair_label: str, stage_index: int) -> list[tuple[str, str]]:
    """(title, body) variants for one reminder stage."""
    if stage_index == 0:
        return [
            ("Quick currency check?",
             f"You have not checked {pair_label} recently. Open the app for a quick update."),
            ("Your rates are waiting",
             f"Take 10 seconds to check {pair_label} and stay in sync with the latest moves."),
            ("Do not miss rate changes",
             f"A quick look at {pair_label} now can help with your next transfer."),
        ]

    if stage_index == 1:
        return [
            ("Markets move fast",
             f"It has been a few days since you checked {pair_label}. See where rates are now."),
            ("Stay ahead of currency swings",
             f"Check {pair_label} today to avoid surprises on your next conversion."),
            ("Fresh currency snapshot",
             f"Open the app for a quick {pair_label} update and compare the latest rate."),
        ]

    return [
        ("Still tracking currencies?",
         f"Come back for a fresh {pair_label} check and keep your rates under control."),
        ("Your converter misses you",
         f"Rates can shift week to week. Check {pair_label} before your next exchange."),
        ("Time for a weekly rate check",
         f"Open the app and get a quick pulse on {pair_label} in under a minute."),
    ]


def pick_reminder_template(
    stage_index: int, pair_label: str, last_currency_check_at: datetime
) -> tuple[str, str]:
    """
    Pick a template variant for a stage.

    The variant depends on the UTC day of the last activity, so a reschedule
    within the same day keeps the same copy.
    """
    templates = build_reminder_templates(pair_label, stage_index)
    day_seed = math.floor(last_currency_check_at.timestamp() / 86400)
    return templates[abs(day_seed + stage_index) % len(templates)]
