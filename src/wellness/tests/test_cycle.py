"""Tests for WellnessService fetch cycles."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from src.wellness.base import AuthorizationError, MetricType, ProviderUnavailableError
from src.wellness.config_loader import ScoringConfig
from src.wellness.cycle import WellnessService
from src.wellness.providers.memory import InMemoryHealthStore
from src.wellness.score_engine import ScoreEngine, ScoreMode
from src.wellness.tests.conftest import NOON, TEST_DATE, populate_day


class FakeClock:
    """Settable replacement for datetime.now."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOON)


def _service(store: InMemoryHealthStore, config: ScoringConfig, clock: FakeClock) -> WellnessService:
    return WellnessService(store, config=config, clock=clock)


class TestAccessChecks:
    @pytest.mark.asyncio
    async def test_unauthorized_raises_before_queries(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        populated_store.authorized = False
        populated_store.query_samples = AsyncMock(return_value=[])
        service = _service(populated_store, scoring_config, clock)

        with pytest.raises(AuthorizationError):
            await service.fetch()
        populated_store.query_samples.assert_not_awaited()
        assert service.latest is None

    @pytest.mark.asyncio
    async def test_unavailable_raises(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        populated_store.available = False
        service = _service(populated_store, scoring_config, clock)
        with pytest.raises(ProviderUnavailableError, match="memory"):
            await service.fetch()

    @pytest.mark.asyncio
    async def test_failed_cycle_keeps_previous_result(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        service = _service(populated_store, scoring_config, clock)
        first = await service.fetch()
        populated_store.authorized = False
        with pytest.raises(AuthorizationError):
            await service.fetch(force_refresh=True)
        assert service.latest is first


class TestCycleResult:
    @pytest.mark.asyncio
    async def test_today_with_data(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        result = await _service(populated_store, scoring_config, clock).fetch()

        assert result.today.date == TEST_DATE
        assert result.current is result.today
        assert not result.substituted
        assert result.score.mode == ScoreMode.TIME_AWARE
        assert result.score.progress == pytest.approx(0.5)
        assert 0 <= result.score.score <= 100
        assert result.recovery is not None
        assert result.sleep is not None
        assert len(result.insights) <= 4
        assert result.has_data

    @pytest.mark.asyncio
    async def test_week_scores(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        result = await _service(populated_store, scoring_config, clock).fetch()

        assert len(result.week) == 7
        assert result.week[-1].date == TEST_DATE
        # the night starting 23:00 on the 22nd also lands in that day's widened window
        scored = dict(result.weekly_scores)
        assert set(scored) == {TEST_DATE - timedelta(days=1), TEST_DATE}
        assert all(d.score is None for d in result.week if not d.has_data)
        assert result.yesterday_score == scored[TEST_DATE - timedelta(days=1)]
        assert result.weekly_average == sum(scored.values()) // 2

    @pytest.mark.asyncio
    async def test_week_scores_are_absolute(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        result = await _service(populated_store, scoring_config, clock).fetch()
        engine = ScoreEngine(scoring_config)
        assert result.week[-1].score == engine.final_score(result.today)
        assert result.week[-1].score <= result.score.score
        assert result.today.score is None

    @pytest.mark.asyncio
    async def test_substitutes_latest_non_empty_day(
        self, store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        populate_day(store, TEST_DATE - timedelta(days=2), steps=4000)
        result = await _service(store, scoring_config, clock).fetch()

        assert not result.today.has_data
        assert result.substituted
        assert result.current.date == TEST_DATE - timedelta(days=2)
        assert result.current.value(MetricType.STEPS) == 4000
        assert result.score.mode == ScoreMode.ABSOLUTE
        assert result.score.progress == 1.0
        assert result.yesterday_score is None

    @pytest.mark.asyncio
    async def test_no_data_anywhere(
        self, store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        result = await _service(store, scoring_config, clock).fetch()
        assert not result.has_data
        assert not result.substituted
        assert result.score.score == 0
        assert result.recovery is None
        assert result.sleep is None
        assert result.insights == ()
        assert result.weekly_average is None
        assert result.weekly_scores == []


class TestCaching:
    @pytest.mark.asyncio
    async def test_fresh_result_is_reused(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        service = _service(populated_store, scoring_config, clock)
        first = await service.fetch()
        clock.advance(299)
        assert service.is_fresh()
        assert await service.fetch() is first

    @pytest.mark.asyncio
    async def test_stale_result_is_reloaded(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        service = _service(populated_store, scoring_config, clock)
        first = await service.fetch()
        clock.advance(300)
        assert not service.is_fresh()
        second = await service.fetch()
        assert second is not first
        assert second.started_at == NOON + timedelta(seconds=300)

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_cache(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        service = _service(populated_store, scoring_config, clock)
        first = await service.fetch()
        assert await service.fetch(force_refresh=True) is not first

    @pytest.mark.asyncio
    async def test_new_data_visible_after_refresh(
        self, store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        service = _service(store, scoring_config, clock)
        first = await service.fetch()
        assert not first.today.has_data

        populate_day(store)
        assert (await service.fetch()) is first
        refreshed = await service.fetch(force_refresh=True)
        assert refreshed.today.value(MetricType.STEPS) == 8000

    def test_not_fresh_before_first_cycle(
        self, store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        service = _service(store, scoring_config, clock)
        assert not service.is_fresh()
        assert not service.in_progress


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_fetches_share_one_cycle(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        service = _service(populated_store, scoring_config, clock)
        listener = AsyncMock()
        service.subscribe(listener)

        first, second = await asyncio.gather(service.fetch(), service.fetch())

        assert first is second
        listener.assert_awaited_once_with(first)

    @pytest.mark.asyncio
    async def test_forced_fetches_run_in_order(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        service = _service(populated_store, scoring_config, clock)
        published = []
        calls = 0

        async def slow_on_first_call(result):
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(0.05)

        async def record(result):
            published.append(result)

        service.subscribe(slow_on_first_call)
        service.subscribe(record)
        first, second = await asyncio.gather(
            service.fetch(force_refresh=True), service.fetch(force_refresh=True)
        )

        assert first is not second
        # Cycles under a fixed clock compare equal field by field.
        assert [id(r) for r in published] == [id(first), id(second)]
        assert service.latest is second


class TestListeners:
    @pytest.mark.asyncio
    async def test_listener_receives_result(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        service = _service(populated_store, scoring_config, clock)
        listener = AsyncMock()
        service.subscribe(listener)
        result = await service.fetch()
        listener.assert_awaited_once_with(result)

    @pytest.mark.asyncio
    async def test_unsubscribe(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig, clock: FakeClock
    ) -> None:
        service = _service(populated_store, scoring_config, clock)
        listener = AsyncMock()
        unsubscribe = service.subscribe(listener)
        unsubscribe()
        await service.fetch()
        listener.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_listener_is_logged(
        self,
        populated_store: InMemoryHealthStore,
        scoring_config: ScoringConfig,
        clock: FakeClock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        service = _service(populated_store, scoring_config, clock)
        healthy = AsyncMock()
        service.subscribe(AsyncMock(side_effect=RuntimeError("widget crashed")))
        service.subscribe(healthy)

        with caplog.at_level("WARNING", logger="lifeindex.wellness.cycle"):
            result = await service.fetch()

        assert "widget crashed" in caplog.text
        healthy.assert_awaited_once_with(result)
