# src/fxpad/adapters/providers/__init__.py
"""
Provider Adapters - External API Clients

This package contains adapters for external exchange rate APIs.
All providers implement the RatesProvider interface.
"""

from fxpad.adapters.providers.base import RatesProvider, country_code_for
from fxpad.adapters.providers.exchangerate_api import ExchangeRateApiProvider
from fxpad.adapters.providers.frankfurter import FrankfurterProvider

__all__ = [
    "RatesProvider",
    "country_code_for",
    "ExchangeRateApiProvider",
    "FrankfurterProvider",
]
