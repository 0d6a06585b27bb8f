"""Per-metric resolution with explicit primary/fallback query chains.

Each MetricType maps to a MetricSpec in a data-driven registry.  A spec holds
the metric's aggregation kind and a FallbackChain: an ordered tuple of
resolution steps tried until one yields a value.

Resolution table:
    cumulative_sum          provider sum       → sum of raw samples
    representative_average  provider average   → mean of raw samples
    latest_sample           provider average   → most recent raw sample
    interval_classified     asleep-like total  → in-bed total (window widened 12h)
    duration_accumulation   session durations  (no fallback)

After the table, active calories may be derived from workout energy.  Heart
rate is never derived from workouts: exercise HR is a different signal.

Failure policy: any exception inside a step is logged and treated as "no
value" for that step.  ProviderUnavailableError is the only exception that
escapes, since it means no other query can succeed either.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Iterable

from src.wellness.base import (
    ASLEEP_LABELS,
    AggregationKind,
    HealthDataProvider,
    IntervalCategory,
    MetricType,
    ProviderUnavailableError,
    SleepLabel,
    SleepStages,
    TimeWindow,
)
from src.wellness.config_loader import ScoringConfig, get_scoring_config
from src.wellness.sleep_stages import SleepStageClassifier

logger = logging.getLogger("lifeindex.wellness.aggregator")

#: A single resolution step: (provider, metric_type, window) → value or None.
ResolveStep = Callable[[HealthDataProvider, MetricType, TimeWindow], Awaitable["float | None"]]


# ---------------------------------------------------------------------------
# Fallback chain
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FallbackChain:
    """Ordered resolution steps, tried until one returns a value.

    Build with ``FallbackChain.of(primary).or_else(fallback)``.
    """

    steps: tuple[ResolveStep, ...] = ()

    @classmethod
    def of(cls, step: ResolveStep) -> FallbackChain:
        return cls(steps=(step,))

    def or_else(self, step: ResolveStep) -> FallbackChain:
        """Return a new chain with ``step`` appended as the next fallback."""
        return FallbackChain(steps=self.steps + (step,))

    async def resolve(
        self,
        provider: HealthDataProvider,
        metric_type: MetricType,
        window: TimeWindow,
    ) -> float | None:
        for step in self.steps:
            value = await _run_step(step, provider, metric_type, window)
            if value is not None:
                return value
        return None


async def _run_step(
    step: ResolveStep,
    provider: HealthDataProvider,
    metric_type: MetricType,
    window: TimeWindow,
) -> float | None:
    try:
        return await step(provider, metric_type, window)
    except ProviderUnavailableError:
        raise
    except Exception as exc:
        logger.warning(
            "Query step %s failed for %s: %s",
            getattr(step, "__name__", repr(step)),
            metric_type.value,
            exc,
        )
        return None


# ---------------------------------------------------------------------------
# Resolution steps
# ---------------------------------------------------------------------------


async def provider_statistic(
    provider: HealthDataProvider, metric_type: MetricType, window: TimeWindow
) -> float | None:
    """Provider's pre-aggregated value (sum for cumulative kinds, else average)."""
    return await provider.query_statistic(metric_type, window, metric_type.aggregation_kind)


async def sample_sum(
    provider: HealthDataProvider, metric_type: MetricType, window: TimeWindow
) -> float | None:
    samples = await provider.query_samples(metric_type, window)
    if not samples:
        return None
    return sum(s.value for s in samples)


async def sample_mean(
    provider: HealthDataProvider, metric_type: MetricType, window: TimeWindow
) -> float | None:
    samples = await provider.query_samples(metric_type, window)
    if not samples:
        return None
    return sum(s.value for s in samples) / len(samples)


async def latest_sample(
    provider: HealthDataProvider, metric_type: MetricType, window: TimeWindow
) -> float | None:
    """Most recent raw sample by start time."""
    samples = await provider.query_samples(metric_type, window)
    if not samples:
        return None
    return max(samples, key=lambda s: s.start).value


async def _labelled_sleep_minutes(
    provider: HealthDataProvider, window: TimeWindow, labels: frozenset[SleepLabel]
) -> float | None:
    intervals = await provider.query_intervals(IntervalCategory.SLEEP_ANALYSIS, window)
    total = sum(i.minutes for i in intervals if i.label in labels)
    return total if total > 0 else None


async def asleep_minutes(
    provider: HealthDataProvider, metric_type: MetricType, window: TimeWindow
) -> float | None:
    """Total of asleep-like intervals (unspecified, core, deep, rem)."""
    return await _labelled_sleep_minutes(provider, window, ASLEEP_LABELS)


async def in_bed_minutes(
    provider: HealthDataProvider, metric_type: MetricType, window: TimeWindow
) -> float | None:
    return await _labelled_sleep_minutes(provider, window, frozenset({SleepLabel.IN_BED}))


async def mindful_session_minutes(
    provider: HealthDataProvider, metric_type: MetricType, window: TimeWindow
) -> float | None:
    intervals = await provider.query_intervals(IntervalCategory.MINDFUL_SESSION, window)
    total = sum(i.minutes for i in intervals)
    return total if total > 0 else None


async def workout_session_minutes(
    provider: HealthDataProvider, metric_type: MetricType, window: TimeWindow
) -> float | None:
    sessions = await provider.query_workout_sessions(window)
    total = sum(s.minutes for s in sessions)
    return total if total > 0 else None


async def workout_energy(
    provider: HealthDataProvider, metric_type: MetricType, window: TimeWindow
) -> float | None:
    """Sum of energy recorded on workout sessions (active-calorie derivation)."""
    sessions = await provider.query_workout_sessions(window)
    total = sum(s.energy_kcal for s in sessions if s.energy_kcal is not None)
    return total if total > 0 else None


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MetricSpec:
    """Registry entry describing how one metric type is resolved.

    Attributes:
        kind:          Aggregation kind.
        chain:         Primary chain from the resolution table.
        derived:       Cross-metric chain tried after ``chain`` comes up empty.
        lookback_hours: Hours the window start is moved earlier before querying.
    """

    kind: AggregationKind
    chain: FallbackChain
    derived: FallbackChain | None = None
    lookback_hours: float = 0.0

    def window_for(self, window: TimeWindow) -> TimeWindow:
        return window.widened(self.lookback_hours) if self.lookback_hours else window


_KIND_CHAINS: dict[AggregationKind, FallbackChain] = {
    AggregationKind.CUMULATIVE_SUM: FallbackChain.of(provider_statistic).or_else(sample_sum),
    AggregationKind.REPRESENTATIVE_AVERAGE: FallbackChain.of(provider_statistic).or_else(sample_mean),
    AggregationKind.LATEST_SAMPLE: FallbackChain.of(provider_statistic).or_else(latest_sample),
    AggregationKind.INTERVAL_CLASSIFIED: FallbackChain.of(asleep_minutes).or_else(in_bed_minutes),
}

_DURATION_CHAINS: dict[MetricType, FallbackChain] = {
    MetricType.MINDFUL_MINUTES: FallbackChain.of(mindful_session_minutes),
    MetricType.WORKOUT_MINUTES: FallbackChain.of(workout_session_minutes),
}

_DERIVED_CHAINS: dict[MetricType, FallbackChain] = {
    MetricType.ACTIVE_CALORIES: FallbackChain.of(workout_energy),
}


def build_registry(sleep_lookback_hours: float = 12.0) -> dict[MetricType, MetricSpec]:
    """Build the MetricType → MetricSpec registry.

    Args:
        sleep_lookback_hours: Widening applied to interval-classified queries.

    Returns:
        A spec for every MetricType.
    """
    registry: dict[MetricType, MetricSpec] = {}
    for metric_type in MetricType:
        kind = metric_type.aggregation_kind
        if kind == AggregationKind.DURATION_ACCUMULATION:
            chain = _DURATION_CHAINS[metric_type]
        else:
            chain = _KIND_CHAINS[kind]
        registry[metric_type] = MetricSpec(
            kind=kind,
            chain=chain,
            derived=_DERIVED_CHAINS.get(metric_type),
            lookback_hours=(
                sleep_lookback_hours if kind == AggregationKind.INTERVAL_CLASSIFIED else 0.0
            ),
        )
    return registry


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DayResolution:
    """Joined result of resolving a set of metrics over one day window."""

    metrics: dict[MetricType, float] = field(default_factory=dict)
    sleep_stages: SleepStages | None = None


class MetricAggregator:
    """Resolve daily metric values from a HealthDataProvider.

    Usage::

        aggregator = MetricAggregator(provider)
        steps = await aggregator.resolve(MetricType.STEPS, start, end)
        day = await aggregator.resolve_day(TimeWindow.for_day(date.today()))
    """

    def __init__(
        self,
        provider: HealthDataProvider,
        config: ScoringConfig | None = None,
        registry: dict[MetricType, MetricSpec] | None = None,
        classifier: SleepStageClassifier | None = None,
    ) -> None:
        self._provider = provider
        self._config = config or get_scoring_config()
        self._lookback_hours = self._config.aggregation.sleep_lookback_hours
        self._registry = registry or build_registry(self._lookback_hours)
        self._classifier = classifier or SleepStageClassifier()

    @property
    def registry(self) -> dict[MetricType, MetricSpec]:
        return self._registry

    async def resolve(
        self, metric_type: MetricType, window_start: datetime, window_end: datetime
    ) -> float | None:
        """Resolve one metric over ``[window_start, window_end)``.

        Runs the metric's fallback chain, then its derived chain if any.

        Returns:
            The resolved value, or None if every step came up empty.
        """
        window = TimeWindow(start=window_start, end=window_end)
        value = await self._resolve_primary(metric_type, window)
        if value is None:
            value = await self._resolve_derived(metric_type, window)
        return value

    async def resolve_day(
        self, window: TimeWindow, types: Iterable[MetricType] | None = None
    ) -> DayResolution:
        """Resolve every requested metric for one day window concurrently.

        Results are joined by metric type, derived fallbacks run for the
        metrics still missing, and the sleep stage breakdown is attached
        when stage data exists.

        Raises:
            ProviderUnavailableError: If the provider disappears mid-query.
        """
        requested = list(types) if types is not None else list(MetricType)
        tasks = {
            metric_type: asyncio.ensure_future(self._resolve_primary(metric_type, window))
            for metric_type in requested
        }
        stages_task = (
            asyncio.ensure_future(self.resolve_sleep_stages(window))
            if MetricType.SLEEP_DURATION in requested
            else None
        )
        pending = [*tasks.values()]
        if stages_task is not None:
            pending.append(stages_task)

        try:
            await asyncio.gather(*pending)
        except BaseException:
            for task in pending:
                task.cancel()
            raise

        metrics = {
            metric_type: task.result()
            for metric_type, task in tasks.items()
            if task.result() is not None
        }

        for metric_type in requested:
            if metric_type in metrics:
                continue
            derived = await self._resolve_derived(metric_type, window)
            if derived is not None:
                logger.debug("Derived %s = %.1f from workouts", metric_type.value, derived)
                metrics[metric_type] = derived

        stages = stages_task.result() if stages_task is not None else None
        logger.debug(
            "Resolved %d/%d metrics for %s",
            len(metrics),
            len(requested),
            window.start.date(),
        )
        return DayResolution(metrics=metrics, sleep_stages=stages)

    async def resolve_sleep_stages(self, window: TimeWindow) -> SleepStages | None:
        """Classify the night's sleep intervals; None without real stage data."""
        sleep_window = window.widened(self._lookback_hours)
        try:
            intervals = await self._provider.query_intervals(
                IntervalCategory.SLEEP_ANALYSIS, sleep_window
            )
        except ProviderUnavailableError:
            raise
        except Exception as exc:
            logger.warning("Sleep stage query failed: %s", exc)
            return None

        stages = self._classifier.classify(intervals)
        return stages if stages.has_stage_data else None

    async def _resolve_primary(self, metric_type: MetricType, window: TimeWindow) -> float | None:
        spec = self._registry.get(metric_type)
        if spec is None:
            logger.debug("No resolution spec registered for %s", metric_type.value)
            return None
        return await spec.chain.resolve(self._provider, metric_type, spec.window_for(window))

    async def _resolve_derived(self, metric_type: MetricType, window: TimeWindow) -> float | None:
        spec = self._registry.get(metric_type)
        if spec is None or spec.derived is None:
            return None
        return await spec.derived.resolve(self._provider, metric_type, window)
