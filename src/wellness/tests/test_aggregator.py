"""Tests for MetricAggregator fallback chains and the day join."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from src.wellness.aggregator import (
    FallbackChain,
    MetricAggregator,
    build_registry,
    latest_sample,
    provider_statistic,
    sample_sum,
)
from src.wellness.base import (
    AggregationKind,
    MetricType,
    ProviderUnavailableError,
    SleepLabel,
    TimeWindow,
)
from src.wellness.config_loader import ScoringConfig
from src.wellness.providers.memory import InMemoryHealthStore
from src.wellness.tests.conftest import (
    TEST_DATE,
    CountingHealthStore,
    at,
    night_of_sleep,
    populate_day,
    sample,
    sleep_interval,
    workout,
)

DAY = TimeWindow.for_day(TEST_DATE)


class TestRegistry:
    def test_every_metric_is_registered(self) -> None:
        registry = build_registry()
        assert set(registry) == set(MetricType)

    def test_kinds_follow_metric_types(self) -> None:
        registry = build_registry()
        assert registry[MetricType.STEPS].kind == AggregationKind.CUMULATIVE_SUM
        assert registry[MetricType.RESTING_HEART_RATE].kind == AggregationKind.LATEST_SAMPLE
        assert registry[MetricType.SLEEP_DURATION].kind == AggregationKind.INTERVAL_CLASSIFIED

    def test_only_sleep_is_widened(self) -> None:
        registry = build_registry(sleep_lookback_hours=12)
        widened = {t for t, spec in registry.items() if spec.lookback_hours}
        assert widened == {MetricType.SLEEP_DURATION}
        assert registry[MetricType.SLEEP_DURATION].window_for(DAY).start == DAY.start - timedelta(hours=12)

    def test_only_active_calories_is_derived(self) -> None:
        registry = build_registry()
        derived = {t for t, spec in registry.items() if spec.derived is not None}
        assert derived == {MetricType.ACTIVE_CALORIES}


class TestFallbackChain:
    @pytest.mark.asyncio
    async def test_first_value_wins(self, store: InMemoryHealthStore) -> None:
        first = AsyncMock(return_value=12.0)
        second = AsyncMock(return_value=99.0)
        chain = FallbackChain.of(first).or_else(second)
        assert await chain.resolve(store, MetricType.STEPS, DAY) == 12.0
        second.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_falls_through_on_none(self, store: InMemoryHealthStore) -> None:
        chain = FallbackChain.of(AsyncMock(return_value=None)).or_else(AsyncMock(return_value=5.0))
        assert await chain.resolve(store, MetricType.STEPS, DAY) == 5.0

    @pytest.mark.asyncio
    async def test_zero_is_a_value(self, store: InMemoryHealthStore) -> None:
        second = AsyncMock(return_value=5.0)
        chain = FallbackChain.of(AsyncMock(return_value=0.0)).or_else(second)
        assert await chain.resolve(store, MetricType.STEPS, DAY) == 0.0
        second.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_step_is_absorbed(
        self, store: InMemoryHealthStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        failing = AsyncMock(side_effect=RuntimeError("query timed out"))
        chain = FallbackChain.of(failing).or_else(AsyncMock(return_value=7.0))
        with caplog.at_level("WARNING", logger="lifeindex.wellness.aggregator"):
            assert await chain.resolve(store, MetricType.STEPS, DAY) == 7.0
        assert "query timed out" in caplog.text

    @pytest.mark.asyncio
    async def test_provider_unavailable_escapes(self, store: InMemoryHealthStore) -> None:
        chain = FallbackChain.of(AsyncMock(side_effect=ProviderUnavailableError("gone")))
        with pytest.raises(ProviderUnavailableError):
            await chain.resolve(store, MetricType.STEPS, DAY)

    def test_or_else_returns_new_chain(self) -> None:
        base = FallbackChain.of(provider_statistic)
        extended = base.or_else(sample_sum)
        assert base.steps == (provider_statistic,)
        assert extended.steps == (provider_statistic, sample_sum)


class TestResolve:
    """Single-metric resolution against the in-memory store."""

    @pytest.mark.asyncio
    async def test_statistic_and_raw_paths_agree(
        self, store: InMemoryHealthStore, raw_only_store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        populate_day(store)
        populate_day(raw_only_store)
        with_stats = MetricAggregator(store, config=scoring_config)
        raw_only = MetricAggregator(raw_only_store, config=scoring_config)
        for metric_type in (MetricType.STEPS, MetricType.HEART_RATE, MetricType.ACTIVE_CALORIES):
            expected = await with_stats.resolve(metric_type, DAY.start, DAY.end)
            assert await raw_only.resolve(metric_type, DAY.start, DAY.end) == pytest.approx(expected)

    @pytest.mark.asyncio
    async def test_cumulative_sum(self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig) -> None:
        aggregator = MetricAggregator(populated_store, config=scoring_config)
        assert await aggregator.resolve(MetricType.STEPS, DAY.start, DAY.end) == 8000

    @pytest.mark.asyncio
    async def test_representative_average(
        self, raw_only_store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        populate_day(raw_only_store)
        aggregator = MetricAggregator(raw_only_store, config=scoring_config)
        assert await aggregator.resolve(MetricType.HEART_RATE, DAY.start, DAY.end) == 66

    @pytest.mark.asyncio
    async def test_latest_sample_on_raw_path(
        self, raw_only_store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        raw_only_store.add_samples([
            sample(MetricType.RESTING_HEART_RATE, 61, at(7)),
            sample(MetricType.RESTING_HEART_RATE, 57, at(21)),
            sample(MetricType.RESTING_HEART_RATE, 59, at(12)),
        ])
        aggregator = MetricAggregator(raw_only_store, config=scoring_config)
        assert await aggregator.resolve(MetricType.RESTING_HEART_RATE, DAY.start, DAY.end) == 57

    @pytest.mark.asyncio
    async def test_latest_sample_step_directly(self, store: InMemoryHealthStore) -> None:
        store.add_samples([
            sample(MetricType.BLOOD_OXYGEN, 0.95, at(1)),
            sample(MetricType.BLOOD_OXYGEN, 0.98, at(4)),
        ])
        assert await latest_sample(store, MetricType.BLOOD_OXYGEN, DAY) == 0.98

    @pytest.mark.asyncio
    async def test_no_data_is_none_not_zero(
        self, store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        aggregator = MetricAggregator(store, config=scoring_config)
        for metric_type in MetricType:
            assert await aggregator.resolve(metric_type, DAY.start, DAY.end) is None

    @pytest.mark.asyncio
    async def test_window_is_strict_start(
        self, store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        store.add_samples([
            # starts before midnight, ends after: belongs to the previous day
            sample(MetricType.STEPS, 500, at(23, 50, TEST_DATE - timedelta(days=1)), 20),
            sample(MetricType.STEPS, 300, at(0)),
            # starts exactly at the window end: excluded
            sample(MetricType.STEPS, 900, DAY.end),
        ])
        aggregator = MetricAggregator(store, config=scoring_config)
        assert await aggregator.resolve(MetricType.STEPS, DAY.start, DAY.end) == 300


class TestSleepResolution:
    @pytest.mark.asyncio
    async def test_asleep_minutes_with_lookback(
        self, store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        store.add_intervals(night_of_sleep())
        aggregator = MetricAggregator(store, config=scoring_config)
        # the night began at 23:00 on the previous day
        assert await aggregator.resolve(MetricType.SLEEP_DURATION, DAY.start, DAY.end) == 450

    @pytest.mark.asyncio
    async def test_in_bed_fallback(self, store: InMemoryHealthStore, scoring_config: ScoringConfig) -> None:
        store.add_intervals([
            sleep_interval(SleepLabel.IN_BED, at(22, 30, TEST_DATE - timedelta(days=1)), 470),
            sleep_interval(SleepLabel.AWAKE, at(2), 15),
        ])
        aggregator = MetricAggregator(store, config=scoring_config)
        assert await aggregator.resolve(MetricType.SLEEP_DURATION, DAY.start, DAY.end) == 470

    @pytest.mark.asyncio
    async def test_awake_only_is_none(self, store: InMemoryHealthStore, scoring_config: ScoringConfig) -> None:
        store.add_intervals([sleep_interval(SleepLabel.AWAKE, at(2), 15)])
        aggregator = MetricAggregator(store, config=scoring_config)
        assert await aggregator.resolve(MetricType.SLEEP_DURATION, DAY.start, DAY.end) is None

    @pytest.mark.asyncio
    async def test_sleep_before_lookback_is_ignored(
        self, store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        store.add_intervals([sleep_interval(SleepLabel.CORE, at(10, 0, TEST_DATE - timedelta(days=1)), 60)])
        aggregator = MetricAggregator(store, config=scoring_config)
        assert await aggregator.resolve(MetricType.SLEEP_DURATION, DAY.start, DAY.end) is None

    @pytest.mark.asyncio
    async def test_sleep_stages(self, store: InMemoryHealthStore, scoring_config: ScoringConfig) -> None:
        store.add_intervals(night_of_sleep())
        aggregator = MetricAggregator(store, config=scoring_config)
        stages = await aggregator.resolve_sleep_stages(DAY)
        assert stages is not None
        assert stages.deep_minutes == 90
        assert stages.core_minutes == 270

    @pytest.mark.asyncio
    async def test_no_stages_without_asleep_data(
        self, store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        store.add_intervals([sleep_interval(SleepLabel.IN_BED, at(1), 400)])
        aggregator = MetricAggregator(store, config=scoring_config)
        assert await aggregator.resolve_sleep_stages(DAY) is None


class TestDerivedMetrics:
    @pytest.mark.asyncio
    async def test_active_calories_from_workouts(
        self, store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        store.add_workouts([workout(at(7), 30, energy_kcal=250), workout(at(18), 20, energy_kcal=130)])
        aggregator = MetricAggregator(store, config=scoring_config)
        assert await aggregator.resolve(MetricType.ACTIVE_CALORIES, DAY.start, DAY.end) == 380

    @pytest.mark.asyncio
    async def test_sampled_calories_beat_workouts(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        aggregator = MetricAggregator(populated_store, config=scoring_config)
        assert await aggregator.resolve(MetricType.ACTIVE_CALORIES, DAY.start, DAY.end) == 350

    @pytest.mark.asyncio
    async def test_workouts_without_energy(
        self, store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        store.add_workouts([workout(at(7), 30)])
        aggregator = MetricAggregator(store, config=scoring_config)
        assert await aggregator.resolve(MetricType.ACTIVE_CALORIES, DAY.start, DAY.end) is None
        assert await aggregator.resolve(MetricType.WORKOUT_MINUTES, DAY.start, DAY.end) == 30

    @pytest.mark.asyncio
    async def test_heart_rate_never_derived(
        self, store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        store.add_workouts([workout(at(7), 30, energy_kcal=250)])
        aggregator = MetricAggregator(store, config=scoring_config)
        assert await aggregator.resolve(MetricType.HEART_RATE, DAY.start, DAY.end) is None


class TestResolveDay:
    @pytest.mark.asyncio
    async def test_full_day(self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig) -> None:
        aggregator = MetricAggregator(populated_store, config=scoring_config)
        day = await aggregator.resolve_day(DAY)
        assert day.metrics == {
            MetricType.STEPS: 8000,
            MetricType.HEART_RATE: 66,
            MetricType.HEART_RATE_VARIABILITY: 42,
            MetricType.RESTING_HEART_RATE: 58,
            MetricType.BLOOD_OXYGEN: 0.97,
            MetricType.ACTIVE_CALORIES: 350,
            MetricType.SLEEP_DURATION: 450,
            MetricType.MINDFUL_MINUTES: 10,
            MetricType.WORKOUT_MINUTES: 45,
        }
        assert day.sleep_stages is not None
        assert day.sleep_stages.total_asleep_minutes == 450

    @pytest.mark.asyncio
    async def test_missing_metrics_are_absent(
        self, store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        store.add_samples([sample(MetricType.STEPS, 1200, at(9))])
        aggregator = MetricAggregator(store, config=scoring_config)
        day = await aggregator.resolve_day(DAY)
        assert day.metrics == {MetricType.STEPS: 1200}
        assert day.sleep_stages is None

    @pytest.mark.asyncio
    async def test_derived_calories_in_day_join(
        self, store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        store.add_workouts([workout(at(17), 45, energy_kcal=400)])
        aggregator = MetricAggregator(store, config=scoring_config)
        day = await aggregator.resolve_day(DAY)
        assert day.metrics[MetricType.ACTIVE_CALORIES] == 400
        assert day.metrics[MetricType.WORKOUT_MINUTES] == 45

    @pytest.mark.asyncio
    async def test_subset_of_types(self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig) -> None:
        aggregator = MetricAggregator(populated_store, config=scoring_config)
        day = await aggregator.resolve_day(DAY, types=[MetricType.STEPS, MetricType.HEART_RATE])
        assert set(day.metrics) == {MetricType.STEPS, MetricType.HEART_RATE}
        assert day.sleep_stages is None

    @pytest.mark.asyncio
    async def test_one_failing_query_does_not_sink_the_day(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        populated_store.query_workout_sessions = AsyncMock(side_effect=RuntimeError("db locked"))
        aggregator = MetricAggregator(populated_store, config=scoring_config)
        day = await aggregator.resolve_day(DAY)
        assert MetricType.WORKOUT_MINUTES not in day.metrics
        assert day.metrics[MetricType.STEPS] == 8000

    @pytest.mark.asyncio
    async def test_provider_unavailable_propagates(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        populated_store.query_samples = AsyncMock(side_effect=ProviderUnavailableError("store closed"))
        populated_store.statistics_types = frozenset()
        aggregator = MetricAggregator(populated_store, config=scoring_config)
        with pytest.raises(ProviderUnavailableError):
            await aggregator.resolve_day(DAY)


class TestResolveDayConcurrency:
    @pytest.mark.asyncio
    async def test_queries_overlap_and_merge_by_type(
        self, populated_store: InMemoryHealthStore, scoring_config: ScoringConfig
    ) -> None:
        counting = CountingHealthStore()
        populate_day(counting)

        day = await MetricAggregator(counting, config=scoring_config).resolve_day(DAY)
        expected = await MetricAggregator(populated_store, config=scoring_config).resolve_day(DAY)

        assert counting.max_in_flight > 1
        assert counting.max_days_in_flight == 1
        assert day.metrics == expected.metrics
        assert day.sleep_stages == expected.sleep_stages
