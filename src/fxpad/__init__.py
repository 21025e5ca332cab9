# src/fxpad/__init__.py
"""
fxpad - Currency Keypad and Rate Tracking Core

Expression engine for a currency-converter keypad plus a local rate-tracking
scheduler (pinned daily rate, rate alerts, retention reminders) that drives
notifications from background tasks.
"""

__version__ = "1.0.0"
