# src/fxpad/adapters/providers/base.py
"""
Base Provider Interface for Exchange Rate Providers

This module defines the abstract base class for all exchange rate providers.
Every provider returns USD-relative rate tables and the list of currencies it
supports, and raises RuntimeError when the upstream API cannot deliver them.

Files that USE this module:
- fxpad.adapters.providers.frankfurter (FrankfurterProvider implements RatesProvider)
- fxpad.adapters.providers.exchangerate_api (ExchangeRateApiProvider implements RatesProvider)
- fxpad.application.rates_service (uses RatesProvider)
- tests.test_providers (unit tests)

Files that this module USES:
- fxpad.domain.models (Currency)
"""
from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any

from fxpad.domain.models import Currency

BASE_CURRENCY = "USD"

# Currencies whose flag is not the first two letters of the code
_COUNTRY_OVERRIDES = {
    "ANG": "CW",
    "XAF": "CM",
    "XCD": "AG",
    "XCG": "CW",
    "XDR": "IMF",
    "XOF": "SN",
    "XPF": "PF",
}


def country_code_for(currency_code: str) -> str:
    """Country code used to render the flag of a currency."""
    code = currency_code.upper()
    return _COUNTRY_OVERRIDES.get(code, code[:2])


def make_currency(code: str, name: str) -> Currency:
    normalized = code.upper()
    return Currency(code=normalized, name=name, flag=country_code_for(normalized))


def usable_rates(raw: dict[str, Any]) -> dict[str, float]:
    """Keep finite numeric rates, upper-casing codes."""
    rates: dict[str, float] = {}
    for code, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if math.isfinite(value):
            rates[str(code).upper()] = float(value)
    return rates


class RatesProvider(ABC):
    name: str = ""

    @abstractmethod
    def fetch_rates(self) -> dict[str, float]:
        """Return rates relative to 1 USD, keyed by currency code."""
        raise NotImplementedError

    @abstractmethod
    def fetch_currencies(self) -> list[Currency]:
        """Return supported currencies sorted by code."""
        raise NotImplementedError
