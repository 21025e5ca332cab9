# src/fxpad/adapters/providers/frankfurter.py
"""
Frankfurter API Provider for Global Exchange Rates

This module implements the Frankfurter API client (ECB reference rates, no API
key). It fetches the USD-relative rate table and the list of supported
currencies, translating every failure into RuntimeError.

Files that USE this module:
- fxpad.application.rates_service (ExchangeRatesService uses FrankfurterProvider)
- tests.test_providers (unit tests)

Files that this module USES:
- fxpad.adapters.providers.base (RatesProvider interface and helpers)
- fxpad.config (settings for API configuration)
"""
import logging
from typing import Any, Optional

import requests

from fxpad.adapters.providers.base import (
    BASE_CURRENCY,
    RatesProvider,
    make_currency,
    usable_rates,
)
from fxpad.config import settings
from fxpad.config.settings import PROVIDER_FRANKFURTER
from fxpad.domain.models import Currency

log = logging.getLogger(__name__)


class FrankfurterProvider(RatesProvider):
    name = PROVIDER_FRANKFURTER

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None):
        """
        Initialize Frankfurter API provider.

        Args:
            base_url: Optional custom API root (defaults to settings.frankfurter_api_url)
            timeout: Optional HTTP timeout in seconds (defaults to settings.http_timeout_seconds)
        """
        self.base_url = (base_url or settings.frankfurter_api_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds

    def _get_json(self, path: str, params: Optional[dict] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = requests.get(url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.exceptions.Timeout as e:
            log.warning("Frankfurter API timeout after %d seconds", self.timeout)
            raise RuntimeError(f"Frankfurter API timeout after {self.timeout}s") from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            log.error("Frankfurter API HTTP error %s: %s", status, e)
            raise RuntimeError(f"Frankfurter API HTTP error: {status}") from e
        except requests.exceptions.RequestException as e:
            log.warning("Frankfurter API request failed: %s", e)
            raise RuntimeError(f"Frankfurter API request failed: {e}") from e
        except ValueError as e:
            log.error("Frankfurter API returned invalid JSON: %s", e)
            raise RuntimeError(f"Frankfurter API returned invalid JSON: {e}") from e

    def fetch_rates(self) -> dict[str, float]:
        """
        Get the latest rates relative to USD.

        Frankfurter omits the base currency from its table, so USD: 1.0 is
        added explicitly.

        Raises:
            RuntimeError: If the request fails or the payload has no usable rates
        """
        log.info("Fetching exchange rates from Frankfurter")
        data = self._get_json("/latest", params={"from": BASE_CURRENCY})

        # Expect: {"base":"USD","date":"...","rates":{"EUR":0.92,...}}
        if not isinstance(data, dict) or not isinstance(data.get("rates"), dict):
            log.error("Frankfurter unexpected response structure: %s", data)
            raise RuntimeError("Rates field missing in Frankfurter response")

        rates = {BASE_CURRENCY: 1.0}
        rates.update(usable_rates(data["rates"]))
        if len(rates) <= 1:
            raise RuntimeError("Frankfurter returned no usable exchange rates")

        log.info("Frankfurter rates updated: %d currencies", len(rates))
        return rates

    def fetch_currencies(self) -> list[Currency]:
        """
        Get supported currencies.

        Raises:
            RuntimeError: If the request fails or the list is empty
        """
        data = self._get_json("/currencies")
        if not isinstance(data, dict):
            raise RuntimeError("Unexpected currencies payload from Frankfurter")

        currencies = sorted(
            (
                make_currency(code, name)
                for code, name in data.items()
                if isinstance(code, str) and isinstance(name, str)
            ),
            key=lambda currency: currency.code,
        )
        if not currencies:
            raise RuntimeError("Frankfurter returned an empty currencies list")
        return currencies
