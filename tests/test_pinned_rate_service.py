# tests/test_pinned_rate_service.py
"""
Pinned Rate Service Tests - Trend, Daily Refresh and Sticky Notification

This module tests the pure helpers (trend calculation, refresh due check,
config normalization) and the PinnedRateService lifecycle against an
in-memory store, a local notification center and a fake rate source.

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- fxpad.application.pinned_rate_service (service and helpers)
- tests.conftest (store, notifications, clock, registry, rates fixtures)
- pytest, pytest-asyncio (testing framework)
"""
from datetime import timedelta  # Shifting captured timestamps

import pytest  # Testing framework for writing and running tests

from fxpad.adapters.notifications import LocalNotificationCenter, PermissionStatus
from fxpad.adapters.persistence import read_json
from fxpad.application.pinned_rate_service import (
    BACKGROUND_TASK_NAME,
    MSG_DISABLED,
    MSG_PERMISSION_REQUIRED,
    MSG_RATES_UNAVAILABLE,
    MSG_REFRESH_FAILED,
    MSG_STALE_SNAPSHOT,
    MSG_UPDATED,
    PINNED_NOTIFICATION_ID,
    STORAGE_KEY,
    PinnedRateService,
    calculate_trend,
    normalize_pinned_config,
    should_run_daily_refresh,
    to_local_day_key,
)
from fxpad.domain.models import BackgroundTaskResult, PinnedRateConfig, TrendDirection

DEFAULT_CODES = ("USD", "KES")


@pytest.fixture
def service(store, rates, notifications, registry, clock):
    return PinnedRateService(store, rates, notifications, registry, default_codes=DEFAULT_CODES, clock=clock)


def captured(clock, **overrides):
    values = dict(
        enabled=True,
        base_currency_code="USD",
        quote_currency_code="KES",
        last_rate=130.0,
        last_updated_at=clock() - timedelta(days=1),
        last_updated_day_key=to_local_day_key(clock() - timedelta(days=1)),
    )
    values.update(overrides)
    return PinnedRateConfig(**values)


class TestCalculateTrend:
    def test_up(self):
        trend = calculate_trend(100, 105)
        assert trend.direction is TrendDirection.UP
        assert trend.percent == pytest.approx(5.0)

    def test_down(self):
        trend = calculate_trend(100, 90)
        assert trend.direction is TrendDirection.DOWN
        assert trend.percent == pytest.approx(-10.0)

    def test_equal_is_flat_zero(self):
        trend = calculate_trend(100, 100)
        assert trend.direction is TrendDirection.FLAT
        assert trend.percent == 0.0

    def test_tiny_change_is_flat(self):
        assert calculate_trend(100, 100.00000001).percent == 0.0

    @pytest.mark.parametrize("previous", [None, 0, -5])
    def test_no_baseline(self, previous):
        trend = calculate_trend(previous, 105)
        assert trend.direction is TrendDirection.FLAT
        assert trend.percent is None


class TestShouldRunDailyRefresh:
    def test_due_without_rate_or_day_key(self, clock):
        assert should_run_daily_refresh(captured(clock, last_rate=None), clock())
        assert should_run_daily_refresh(captured(clock, last_updated_day_key=None), clock())

    def test_not_due_same_day(self, clock):
        config = captured(clock, last_updated_day_key=to_local_day_key(clock()))
        assert not should_run_daily_refresh(config, clock(), respect_refresh_time=False)

    def test_new_day_after_refresh_time(self, clock):
        # clock is 09:30 local
        assert should_run_daily_refresh(captured(clock, refresh_hour=8), clock())
        assert should_run_daily_refresh(captured(clock, refresh_hour=9, refresh_minute=30), clock())

    def test_new_day_before_refresh_time(self, clock):
        config = captured(clock, refresh_hour=10)
        assert not should_run_daily_refresh(config, clock())
        assert should_run_daily_refresh(config, clock(), respect_refresh_time=False)


class TestNormalizePinnedConfig:
    def fallback(self, base="USD", quote="KES"):
        return PinnedRateConfig(enabled=False, base_currency_code=base, quote_currency_code=quote)

    def test_invalid_fields_take_fallback(self):
        config = normalize_pinned_config(
            {"enabled": 1, "baseCurrencyCode": "eu", "amount": -3, "refreshHour": 30, "refreshMinute": "x"},
            self.fallback(),
            DEFAULT_CODES,
        )
        assert config.enabled is True
        assert config.base_currency_code == "USD"
        assert config.amount == 100.0
        assert config.refresh_hour == 23
        assert config.refresh_minute == 0

    def test_collision_uses_fallback_quote(self):
        config = normalize_pinned_config(
            {"baseCurrencyCode": "EUR", "quoteCurrencyCode": "EUR"}, self.fallback(), DEFAULT_CODES
        )
        assert (config.base_currency_code, config.quote_currency_code) == ("EUR", "KES")

    def test_collision_with_fallback_quote_uses_default(self):
        config = normalize_pinned_config(
            {"baseCurrencyCode": "USD", "quoteCurrencyCode": "USD"}, self.fallback("EUR", "USD"), DEFAULT_CODES
        )
        assert (config.base_currency_code, config.quote_currency_code) == ("USD", "KES")

    def test_non_positive_rate_is_dropped(self):
        config = normalize_pinned_config({"lastRate": 0}, self.fallback(), DEFAULT_CODES)
        assert config.last_rate is None

    def test_stored_record_round_trip(self, clock):
        original = captured(clock, last_trend_direction=TrendDirection.DOWN, last_trend_percent=-1.5)
        assert normalize_pinned_config(original.to_json(), self.fallback(), DEFAULT_CODES) == original


class TestConfig:
    def test_defaults(self, service):
        config = service.get_config()
        assert config.enabled is False
        assert (config.base_currency_code, config.quote_currency_code) == DEFAULT_CODES
        assert config.amount == 100.0
        assert (config.refresh_hour, config.refresh_minute) == (8, 0)

    def test_defaults_follow_selected_currencies(self, service, store):
        store.set({"selectedCurrencyCodes": '["EUR", "GBP", "USD"]'})
        config = service.get_config()
        assert (config.base_currency_code, config.quote_currency_code) == ("EUR", "GBP")

    def test_garbage_record_gives_defaults(self, service, store):
        store.set({STORAGE_KEY: "[1, 2"})
        assert service.get_config().enabled is False

    def test_update_draft_normalizes(self, service, notifications):
        config = service.update_draft(amount="250", refresh_minute=75)
        assert config.amount == 250.0
        assert config.refresh_minute == 59
        assert service.get_config() == config
        assert notifications.presented == {}

    def test_update_draft_rejects_unknown_setting(self, service):
        with pytest.raises(TypeError):
            service.update_draft(colour="blue")


class TestEnable:
    @pytest.mark.asyncio
    async def test_enable_publishes_sticky_notification(self, service, notifications, registry, clock):
        result = await service.enable(amount=100)

        assert result.success is True
        assert result.message == MSG_UPDATED
        assert result.config.last_rate == pytest.approx(130.0)
        assert result.config.last_updated_day_key == to_local_day_key(clock())
        assert result.config.last_trend_percent is None
        assert registry.is_task_registered(BACKGROUND_TASK_NAME)

        content = notifications.presented[PINNED_NOTIFICATION_ID]
        assert content.sticky is True
        assert content.sound is False
        assert "13,000 KES" in content.title
        assert content.data["screen"] == "pinned-rate-notification"

    @pytest.mark.asyncio
    async def test_enable_while_rates_unavailable(self, service, rates, store):
        rates.rates = None

        result = await service.enable()

        assert result.success is False
        assert result.message == MSG_RATES_UNAVAILABLE
        stored = read_json(store, STORAGE_KEY)
        assert stored["enabled"] is True
        assert stored["lastRate"] is None

    @pytest.mark.asyncio
    async def test_enable_with_missing_pair(self, service):
        result = await service.enable(quote_currency_code="JPY")
        assert result.success is False
        assert result.message == MSG_RATES_UNAVAILABLE

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "changes, message",
        [
            ({"amount": 0}, "Amount must be a positive number."),
            ({"amount": "abc"}, "Amount must be a positive number."),
            ({"base_currency_code": "US"}, "Currency codes must be 3-letter codes like USD."),
            ({"base_currency_code": "KES"}, "Choose two different currencies to track."),
        ],
    )
    async def test_invalid_settings_are_not_saved(self, service, store, changes, message):
        result = await service.enable(**changes)

        assert result.success is False
        assert result.message == message
        assert store.get_one(STORAGE_KEY) is None

    @pytest.mark.asyncio
    async def test_permission_denied(self, store, rates, registry, clock):
        notifications = LocalNotificationCenter(PermissionStatus.DENIED, can_ask_again=False)
        service = PinnedRateService(store, rates, notifications, registry, DEFAULT_CODES, clock)

        result = await service.enable()

        assert result.success is False
        assert result.message == MSG_PERMISSION_REQUIRED
        assert notifications.permission_requests == 1
        assert rates.calls == 0

    @pytest.mark.asyncio
    async def test_permission_prompt_granted(self, store, rates, registry, clock):
        notifications = LocalNotificationCenter(PermissionStatus.UNDETERMINED)
        service = PinnedRateService(store, rates, notifications, registry, DEFAULT_CODES, clock)

        assert (await service.enable()).success is True


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_records_trend(self, service, rates):
        await service.enable()
        rates.rates = dict(rates.rates, KES=136.5)

        result = await service.refresh_now()

        assert result.config.last_trend_direction is TrendDirection.UP
        assert result.config.last_trend_percent == pytest.approx(5.0)
        assert "+5.00%" in result.summary.body

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_snapshot(self, service, rates, notifications):
        await service.enable()
        rates.rates = None

        result = await service.refresh_now()

        assert result.success is True
        assert result.message == MSG_STALE_SNAPSHOT
        assert result.config.last_rate == pytest.approx(130.0)
        assert PINNED_NOTIFICATION_ID in notifications.presented

    @pytest.mark.asyncio
    async def test_refresh_when_disabled(self, service):
        result = await service.refresh_now()
        assert result.success is False
        assert result.message == MSG_DISABLED

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failure_result(self, service, rates):
        await service.enable()
        rates.error = ValueError("could not convert string to float")

        result = await service.refresh_now()

        assert result.success is False
        assert result.message == MSG_REFRESH_FAILED
        assert result.config.enabled is True
        assert result.config.last_rate == pytest.approx(130.0)


class TestBackgroundRefresh:
    @pytest.mark.asyncio
    async def test_not_due_on_same_day(self, service, rates):
        await service.enable()
        assert await service.run_background_refresh() is BackgroundTaskResult.SUCCESS
        assert rates.calls == 1

    @pytest.mark.asyncio
    async def test_refreshes_on_next_day(self, service, rates, clock):
        await service.enable()
        clock.advance(days=1)

        assert await service.run_background_refresh() is BackgroundTaskResult.SUCCESS
        assert rates.calls == 2

    @pytest.mark.asyncio
    async def test_failure_is_reported(self, service, rates, store):
        rates.rates = None
        await service.enable()
        assert await service.run_background_refresh() is BackgroundTaskResult.FAILED

    @pytest.mark.asyncio
    async def test_skips_while_operation_in_flight(self, service, rates):
        async with service._lock:
            assert await service.run_background_refresh() is BackgroundTaskResult.SUCCESS
        assert rates.calls == 0

    @pytest.mark.asyncio
    async def test_runs_through_registry(self, service, registry, rates, clock):
        await service.enable()
        clock.advance(days=1, hours=1)

        results = await registry.run_due_tasks()

        assert results == {BACKGROUND_TASK_NAME: BackgroundTaskResult.SUCCESS}
        assert rates.calls == 2


class TestDisableAndInitialize:
    @pytest.mark.asyncio
    async def test_disable_keeps_snapshot(self, service, notifications, registry):
        await service.enable()

        config = await service.disable()

        assert config.enabled is False
        assert config.last_rate == pytest.approx(130.0)
        assert PINNED_NOTIFICATION_ID not in notifications.presented
        assert not registry.is_task_registered(BACKGROUND_TASK_NAME)

    @pytest.mark.asyncio
    async def test_initialize_republishes(self, store, rates, registry, clock, service):
        await service.enable()
        fresh_center = LocalNotificationCenter()
        restarted = PinnedRateService(store, rates, fresh_center, registry, DEFAULT_CODES, clock)

        await restarted.initialize()

        assert PINNED_NOTIFICATION_ID in fresh_center.presented
        assert rates.calls == 1

    @pytest.mark.asyncio
    async def test_initialize_when_disabled_does_nothing(self, service, notifications, rates):
        await service.initialize()
        assert notifications.presented == {}
        assert rates.calls == 0


class TestTrendLabel:
    def test_static_label(self):
        assert PinnedRateService.trend_label(TrendDirection.DOWN, -1.0) == "- Down 1.00% vs previous update."
