"""In-memory health data store.

Reference HealthDataProvider that holds raw records in process memory.  It is
the backing store for file-based imports (see apple_health.py) and the
provider used throughout the test suite.

Window membership is strict-start: a record belongs to ``[start, end)`` iff
its own start falls inside the window, regardless of where it ends.
"""

from __future__ import annotations

import logging
from typing import Iterable

from src.wellness.base import (
    AggregationKind,
    HealthDataProvider,
    IntervalCategory,
    LabelledInterval,
    MetricSample,
    MetricType,
    TimeWindow,
    WorkoutSession,
)
from src.wellness.providers.dedup import (
    InMemoryDedupCache,
    interval_key,
    sample_key,
    workout_key,
)

logger = logging.getLogger("lifeindex.wellness.providers.memory")


class InMemoryHealthStore(HealthDataProvider):
    """Health data provider backed by plain Python lists.

    Args:
        available:        Whether the store reports itself as present.
        authorized:       Whether read access is reported as granted.
        statistics_types: Metric types for which the store answers pre-aggregated
                          statistic queries.  Types outside this set return None
                          from ``query_statistic``, forcing the raw-sample path.
                          Defaults to every metric type.
    """

    SOURCE_ID = "memory"
    DISPLAY_NAME = "In-Memory Store"

    def __init__(
        self,
        available: bool = True,
        authorized: bool = True,
        statistics_types: Iterable[MetricType] | None = None,
    ) -> None:
        self.available = available
        self.authorized = authorized
        self.statistics_types = (
            frozenset(statistics_types) if statistics_types is not None else frozenset(MetricType)
        )
        self._samples: list[MetricSample] = []
        self._intervals: list[LabelledInterval] = []
        self._workouts: list[WorkoutSession] = []
        self._dedup = InMemoryDedupCache()
        self.duplicates_dropped = 0

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def add_samples(self, samples: Iterable[MetricSample]) -> int:
        """Store quantity samples, dropping exact duplicates.

        Returns:
            Number of samples actually stored.
        """
        return self._ingest(samples, self._samples, sample_key)

    def add_intervals(self, intervals: Iterable[LabelledInterval]) -> int:
        return self._ingest(intervals, self._intervals, interval_key)

    def add_workouts(self, sessions: Iterable[WorkoutSession]) -> int:
        return self._ingest(sessions, self._workouts, workout_key)

    def _ingest(self, records: Iterable, target: list, key_fn) -> int:
        added = 0
        for record in records:
            if not self._dedup.check_and_mark(key_fn(record)):
                self.duplicates_dropped += 1
                continue
            target.append(record)
            added += 1
        return added

    def clear(self) -> None:
        self._samples.clear()
        self._intervals.clear()
        self._workouts.clear()
        self._dedup.clear()
        self.duplicates_dropped = 0

    @property
    def record_counts(self) -> dict[str, int]:
        return {
            "samples": len(self._samples),
            "intervals": len(self._intervals),
            "workouts": len(self._workouts),
        }

    # ------------------------------------------------------------------
    # HealthDataProvider
    # ------------------------------------------------------------------

    def is_available(self) -> bool:
        return self.available

    async def is_authorized(self) -> bool:
        return self.authorized

    async def query_statistic(
        self,
        metric_type: MetricType,
        window: TimeWindow,
        aggregation_kind: AggregationKind,
    ) -> float | None:
        if metric_type not in self.statistics_types:
            return None
        values = [s.value for s in self._samples_in(metric_type, window)]
        if not values:
            return None
        if aggregation_kind == AggregationKind.CUMULATIVE_SUM:
            return sum(values)
        return sum(values) / len(values)

    async def query_samples(
        self, metric_type: MetricType, window: TimeWindow
    ) -> list[MetricSample]:
        return self._samples_in(metric_type, window)

    async def query_intervals(
        self, category: IntervalCategory, window: TimeWindow
    ) -> list[LabelledInterval]:
        return [
            i for i in self._intervals
            if i.category == category and window.contains(i.start)
        ]

    async def query_workout_sessions(self, window: TimeWindow) -> list[WorkoutSession]:
        return [w for w in self._workouts if window.contains(w.start)]

    def _samples_in(self, metric_type: MetricType, window: TimeWindow) -> list[MetricSample]:
        return [
            s for s in self._samples
            if s.type == metric_type and window.contains(s.start)
        ]
