# src/fxpad/adapters/formatting/__init__.py
"""
Formatting Adapters - Output Formatting

This package contains formatters for notification and keypad text.
"""

from fxpad.adapters.formatting.formatter import (
    build_pinned_summary,
    build_rate_alert_content,
    compact_trend_label,
    currency_flag_emoji,
    format_display_number,
    format_last_updated,
    format_number,
    format_rate,
    pick_reminder_template,
    trend_label,
)

__all__ = [
    "build_pinned_summary",
    "build_rate_alert_content",
    "compact_trend_label",
    "currency_flag_emoji",
    "format_display_number",
    "format_last_updated",
    "format_number",
    "format_rate",
    "pick_reminder_template",
    "trend_label",
]
