# src/fxpad/application/rates_service.py
"""
Exchange Rates Service - Cached, Fault-Tolerant Rate Fetching

This module contains the rate-fetch collaborator used by the keypad and the
notification schedulers:
- fetch_global_exchange_rates(): USD-relative rate table or None
- fetch_currencies(): supported currency list or None

Both cache their result once per local calendar day (per requested
provider), try providers in priority order with exponential-backoff
retries, and fall back to the last cached value of any age when every
provider fails. Neither raises.

Blocking HTTP calls run in a worker thread; one whole fetch (all providers
and retries) is bounded by RATE_FETCH_TIMEOUT_SECONDS.

Files that USE this module:
- fxpad.application.pinned_rate_service (daily pair rate)
- fxpad.application.rate_alert_service (shared fetch per evaluation)
- fxpad.app (composition root)
- tests.test_rates_service (unit tests)

Files that this module USES:
- fxpad.adapters.providers (FrankfurterProvider, ExchangeRateApiProvider)
- fxpad.adapters.persistence (cache records)
- fxpad.config (provider choice, retry and timeout policy)
"""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

from fxpad.adapters.persistence import KeyValueStore, read_json
from fxpad.adapters.providers import (
    ExchangeRateApiProvider,
    FrankfurterProvider,
    RatesProvider,
)
from fxpad.config import settings
from fxpad.config.settings import (
    PROVIDER_EXCHANGERATE_API,
    PROVIDER_FRANKFURTER,
    SUPPORTED_PROVIDERS,
)
from fxpad.domain.models import Currency
from fxpad.shared.validators import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

T = TypeVar("T")

CURRENCY_DATA_PROVIDER_KEY = "currencyDataProvider"
CURRENCY_DATA_PROVIDER_REQUESTED_KEY = "currencyDataProviderRequested"
CURRENCY_API_PROVIDER_OVERRIDE_KEY = "currencyApiProviderOverride"
CURRENCIES_CACHE_KEY = "currencies"
EXCHANGE_RATES_CACHE_KEY = "exchangeRates"
LAST_CURRENCIES_FETCH_KEY = "lastCurrenciesFetch"
LAST_EXCHANGE_RATES_FETCH_KEY = "lastExchangeRatesFetch"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_provider(value: Any) -> Optional[str]:
    """Normalize a provider name, None for unknown values."""
    normalized = str(value or "").lower().strip()
    return normalized if normalized in SUPPORTED_PROVIDERS else None


def is_same_local_day(first: datetime, second: datetime) -> bool:
    if abs(first - second) >= timedelta(days=1):
        return False
    return first.astimezone().date() == second.astimezone().date()


def pair_rate(rates: Optional[Mapping[str, float]], base: str, quote: str) -> Optional[float]:
    """Quote units per 1 base unit, None when either side is missing or not positive."""
    if not rates:
        return None
    from_rate = rates.get(base)
    to_rate = rates.get(quote)
    if not from_rate or not to_rate or from_rate <= 0 or to_rate <= 0:
        return None
    return to_rate / from_rate


def _default_providers() -> dict[str, RatesProvider]:
    providers: dict[str, RatesProvider] = {PROVIDER_FRANKFURTER: FrankfurterProvider()}
    try:
        providers[PROVIDER_EXCHANGERATE_API] = ExchangeRateApiProvider()
    except ValueError:
        logger.info("EXCHANGERATE_API_KEY not set, ExchangeRate-API fallback disabled")
    return providers


class ExchangeRatesService:
    """
    Rate-fetch collaborator with daily cache, provider fallback and retries.
    """

    def __init__(
        self,
        store: KeyValueStore,
        providers: Optional[Mapping[str, RatesProvider]] = None,
        configured_provider: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            store: Key-value store holding the caches
            providers: Provider instances keyed by name (defaults built from settings;
                ExchangeRate-API is only included when an API key is configured)
            configured_provider: Preferred provider (defaults to settings.rates_provider)
            max_retries: Retries per provider after the first attempt
            retry_delay: First retry delay in seconds, doubled per retry
            timeout: Bound in seconds on one whole fetch
            clock: Returns the current aware datetime
        """
        self.store = store
        self.providers = dict(providers) if providers is not None else _default_providers()
        self.configured_provider = parse_provider(configured_provider) or settings.rates_provider
        self.max_retries = settings.rate_fetch_max_retries if max_retries is None else max_retries
        self.retry_delay = (
            settings.rate_fetch_retry_delay_seconds if retry_delay is None else retry_delay
        )
        self.timeout = settings.rate_fetch_timeout_seconds if timeout is None else timeout
        self.clock = clock

    # ----- provider selection -----

    def _override(self) -> Optional[str]:
        return parse_provider(self.store.get_one(CURRENCY_API_PROVIDER_OVERRIDE_KEY))

    def preferred_provider(self) -> str:
        """Override from the store, else the configured provider; unavailable ones fall back to Frankfurter."""
        provider = self._override() or self.configured_provider
        if provider not in self.providers:
            return PROVIDER_FRANKFURTER
        return provider

    def set_provider_override(self, provider: Optional[str]) -> str:
        """Persist (or clear with None) a provider override; returns the effective provider."""
        self.store.set({CURRENCY_API_PROVIDER_OVERRIDE_KEY: parse_provider(provider) or ""})
        return self.preferred_provider()

    def provider_priority(self, preferred: str) -> list[str]:
        order = [preferred] + [name for name in SUPPORTED_PROVIDERS if name != preferred]
        return [name for name in order if name in self.providers]

    # ----- caching -----

    def _read_fresh_daily_cache(self, data_key: str, last_fetch_key: str, requested: str) -> Any:
        stored = self.store.get([data_key, last_fetch_key, CURRENCY_DATA_PROVIDER_REQUESTED_KEY])
        if stored[CURRENCY_DATA_PROVIDER_REQUESTED_KEY] != requested:
            return None

        cached = read_json(self.store, data_key)
        if not cached:
            return None

        last_fetched_at = parse_timestamp(stored[last_fetch_key])
        if last_fetched_at is None or not is_same_local_day(last_fetched_at, self.clock()):
            return None
        return cached

    def _save_cache(self, data_key: str, last_fetch_key: str, data: Any, requested: str, resolved: str) -> None:
        try:
            encoded = json.dumps(data, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error("Unable to encode %s cache: %s", data_key, e)
            return
        self.store.set({
            data_key: encoded,
            last_fetch_key: format_timestamp(self.clock()) or "",
            CURRENCY_DATA_PROVIDER_KEY: resolved,
            CURRENCY_DATA_PROVIDER_REQUESTED_KEY: requested,
        })

    # ----- fetching -----

    async def _retry_with_backoff(self, operation: Callable[[], T], label: str) -> Optional[T]:
        delay = self.retry_delay
        for attempt in range(self.max_retries + 1):
            try:
                return await asyncio.to_thread(operation)
            except Exception as e:
                if attempt == self.max_retries:
                    logger.error("%s: max retries reached: %s", label, e)
                    return None
                logger.warning(
                    "%s failed (%s), retrying in %.1fs (%d attempts left)",
                    label, e, delay, self.max_retries - attempt,
                )
                await asyncio.sleep(delay)
                delay *= 2
        return None

    async def _fetch_first(
        self,
        preferred: str,
        fetch: Callable[[RatesProvider], Callable[[], T]],
        label: str,
    ) -> tuple[Optional[T], Optional[str]]:
        for name in self.provider_priority(preferred):
            result = await self._retry_with_backoff(fetch(self.providers[name]), f"{label} ({name})")
            if result:
                return result, name
        return None, None

    async def _bounded(self, coro: Awaitable[tuple[Optional[T], Optional[str]]], label: str):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %.0fs", label, self.timeout)
            return None, None

    async def fetch_global_exchange_rates(self) -> Optional[dict[str, float]]:
        """
        Fetch USD-relative exchange rates.

        Returns:
            Today's cached table for the requested provider, else a fresh
            table, else the last cached table of any age, else None
        """
        preferred = self.preferred_provider()
        cached = self._read_fresh_daily_cache(
            EXCHANGE_RATES_CACHE_KEY, LAST_EXCHANGE_RATES_FETCH_KEY, preferred
        )
        if isinstance(cached, dict) and cached:
            try:
                table = {str(code): float(value) for code, value in cached.items()}
            except (TypeError, ValueError):
                logger.error("Today's cached exchange rates are malformed, fetching again")
            else:
                logger.debug("Using today's cached exchange rates")
                return table

        rates, provider = await self._bounded(
            self._fetch_first(preferred, lambda p: p.fetch_rates, "Exchange rates fetch"),
            "Exchange rates fetch",
        )
        if rates and provider:
            self._save_cache(
                EXCHANGE_RATES_CACHE_KEY, LAST_EXCHANGE_RATES_FETCH_KEY, rates, preferred, provider
            )
            return rates

        stale = read_json(self.store, EXCHANGE_RATES_CACHE_KEY)
        if isinstance(stale, dict) and stale:
            logger.warning("All rate providers failed, using cached rates")
            try:
                return {str(code): float(value) for code, value in stale.items()}
            except (TypeError, ValueError):
                logger.error("Cached exchange rates are malformed")
        return None

    async def fetch_currencies(self) -> Optional[list[Currency]]:
        """Fetch the supported currencies with the same cache and fallback policy as rates."""
        preferred = self.preferred_provider()
        cached = self._read_fresh_daily_cache(
            CURRENCIES_CACHE_KEY, LAST_CURRENCIES_FETCH_KEY, preferred
        )
        if isinstance(cached, list) and cached:
            return _currencies_from_json(cached)

        currencies, provider = await self._bounded(
            self._fetch_first(preferred, lambda p: p.fetch_currencies, "Currencies fetch"),
            "Currencies fetch",
        )
        if currencies and provider:
            self._save_cache(
                CURRENCIES_CACHE_KEY,
                LAST_CURRENCIES_FETCH_KEY,
                [currency.to_json() for currency in currencies],
                preferred,
                provider,
            )
            return currencies

        stale = read_json(self.store, CURRENCIES_CACHE_KEY)
        if isinstance(stale, list) and stale:
            return _currencies_from_json(stale)
        return None

    def last_updated_at(self) -> Optional[datetime]:
        """When rates were last fetched from a provider."""
        return parse_timestamp(self.store.get_one(LAST_EXCHANGE_RATES_FETCH_KEY))


def _currencies_from_json(entries: list) -> list[Currency]:
    currencies = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        code = str(entry.get("code") or "").upper().strip()
        if len(code) != 3:
            continue
        currencies.append(
            Currency(code=code, name=str(entry.get("name") or code), flag=str(entry.get("flag") or code[:2]))
        )
    return currencies


def cached_flag_iso_map(store: KeyValueStore) -> dict[str, str]:
    """Currency code -> country code from the cached currency list."""
    cached = read_json(store, CURRENCIES_CACHE_KEY)
    if not isinstance(cached, list):
        return {}
    return {currency.code: currency.flag.upper() for currency in _currencies_from_json(cached) if currency.flag}
