# src/fxpad/adapters/providers/exchangerate_api.py
"""
ExchangeRate-API Provider for Global Exchange Rates

This module implements the ExchangeRate-API v6 client. The provider needs an
API key; constructing it without one raises ValueError so the rates service
simply leaves it out of the provider order.

Files that USE this module:
- fxpad.application.rates_service (ExchangeRatesService uses ExchangeRateApiProvider)
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
from fxpad.config.settings import PROVIDER_EXCHANGERATE_API
from fxpad.domain.models import Currency

log = logging.getLogger(__name__)


class ExchangeRateApiProvider(RatesProvider):
    name = PROVIDER_EXCHANGERATE_API

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        """
        Initialize ExchangeRate-API provider.

        Args:
            api_key: Optional API key (defaults to settings.exchangerate_api_key)
            base_url: Optional custom API root (defaults to settings.exchangerate_api_url)
            timeout: Optional HTTP timeout in seconds (defaults to settings.http_timeout_seconds)

        Raises:
            ValueError: If the API key is missing or empty
        """
        self.api_key = (api_key if api_key is not None else settings.exchangerate_api_key).strip()
        if not self.api_key:
            raise ValueError("EXCHANGERATE_API_KEY is empty or missing.")
        self.base_url = (base_url or settings.exchangerate_api_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds

    def _get_json(self, path: str) -> dict:
        url = f"{self.base_url}/{self.api_key}{path}"
        try:
            resp = requests.get(url, timeout=self.timeout)
            resp.raise_for_status()
            data: Any = resp.json()
        except requests.exceptions.Timeout as e:
            log.warning("ExchangeRate-API timeout after %d seconds", self.timeout)
            raise RuntimeError(f"ExchangeRate-API timeout after {self.timeout}s") from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            log.error("ExchangeRate-API HTTP error %s", status)
            raise RuntimeError(f"ExchangeRate-API HTTP error: {status}") from e
        except requests.exceptions.RequestException as e:
            # The URL embeds the key, so only the exception type is logged
            log.warning("ExchangeRate-API request failed: %s", type(e).__name__)
            raise RuntimeError("ExchangeRate-API request failed") from e
        except ValueError as e:
            log.error("ExchangeRate-API returned invalid JSON: %s", e)
            raise RuntimeError(f"ExchangeRate-API returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise RuntimeError("Unexpected payload from ExchangeRate-API")

        result = data.get("result")
        if isinstance(result, str) and result != "success":
            error_type = data.get("error-type", "unknown")
            log.error("ExchangeRate-API unsuccessful result: %s (%s)", result, error_type)
            raise RuntimeError(f"ExchangeRate-API returned unsuccessful result: {error_type}")
        return data

    def fetch_rates(self) -> dict[str, float]:
        """
        Get the latest rates relative to USD.

        Raises:
            RuntimeError: If the request fails or conversion_rates is missing/empty
        """
        log.info("Fetching exchange rates from ExchangeRate-API")
        data = self._get_json(f"/latest/{BASE_CURRENCY}")

        conversion_rates = data.get("conversion_rates")
        if not isinstance(conversion_rates, dict):
            raise RuntimeError("ExchangeRate-API response is missing conversion_rates")

        rates = usable_rates(conversion_rates)
        if not rates.get(BASE_CURRENCY):
            rates[BASE_CURRENCY] = 1.0
        if len(rates) <= 1:
            raise RuntimeError("ExchangeRate-API returned no usable exchange rates")

        log.info("ExchangeRate-API rates updated: %d currencies", len(rates))
        return rates

    def fetch_currencies(self) -> list[Currency]:
        """
        Get supported currencies ("supported_codes": [["AED", "UAE Dirham"], ...]).

        Raises:
            RuntimeError: If the request fails or the list is empty
        """
        data = self._get_json("/codes")
        supported = data.get("supported_codes")
        if not isinstance(supported, list):
            raise RuntimeError("ExchangeRate-API currencies response is missing codes")

        currencies = sorted(
            (
                make_currency(entry[0], entry[1])
                for entry in supported
                if isinstance(entry, (list, tuple))
                and len(entry) >= 2
                and isinstance(entry[0], str)
                and isinstance(entry[1], str)
            ),
            key=lambda currency: currency.code,
        )
        if not currencies:
            raise RuntimeError("ExchangeRate-API returned an empty currencies list")
        return currencies
