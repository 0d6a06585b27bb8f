"""Base classes and canonical data models for the LifeIndex wellness core.

Every health data provider must subclass HealthDataProvider and answer the
four query shapes below.  The models here are the single source of truth
consumed by the aggregator, summary builder, score engines and API layer.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Mapping

logger = logging.getLogger("lifeindex.wellness")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class WellnessError(Exception):
    """Base class for errors that cross the wellness core boundary."""


class AuthorizationError(WellnessError):
    """The caller has not granted read access to the health data provider."""


class ProviderUnavailableError(WellnessError):
    """The health data store does not exist on this device or platform."""


# ---------------------------------------------------------------------------
# Metric taxonomy
# ---------------------------------------------------------------------------


class AggregationKind(str, Enum):
    """How a metric's daily value is reduced from provider records."""

    CUMULATIVE_SUM = "cumulative_sum"
    REPRESENTATIVE_AVERAGE = "representative_average"
    LATEST_SAMPLE = "latest_sample"
    INTERVAL_CLASSIFIED = "interval_classified"
    DURATION_ACCUMULATION = "duration_accumulation"


class MetricType(str, Enum):
    """Closed set of tracked daily metrics."""

    STEPS = "steps"
    HEART_RATE = "heart_rate"
    HEART_RATE_VARIABILITY = "heart_rate_variability"
    RESTING_HEART_RATE = "resting_heart_rate"
    BLOOD_OXYGEN = "blood_oxygen"
    ACTIVE_CALORIES = "active_calories"
    SLEEP_DURATION = "sleep_duration"
    MINDFUL_MINUTES = "mindful_minutes"
    WORKOUT_MINUTES = "workout_minutes"

    @property
    def unit(self) -> str:
        return _METRIC_UNITS[self]

    @property
    def display_name(self) -> str:
        return _METRIC_DISPLAY_NAMES[self]

    @property
    def aggregation_kind(self) -> AggregationKind:
        return _METRIC_AGGREGATION[self]


_METRIC_UNITS: dict[MetricType, str] = {
    MetricType.STEPS: "steps",
    MetricType.HEART_RATE: "bpm",
    MetricType.HEART_RATE_VARIABILITY: "ms",
    MetricType.RESTING_HEART_RATE: "bpm",
    MetricType.BLOOD_OXYGEN: "%",
    MetricType.ACTIVE_CALORIES: "kcal",
    MetricType.SLEEP_DURATION: "min",
    MetricType.MINDFUL_MINUTES: "min",
    MetricType.WORKOUT_MINUTES: "min",
}

_METRIC_DISPLAY_NAMES: dict[MetricType, str] = {
    MetricType.STEPS: "Steps",
    MetricType.HEART_RATE: "Heart Rate",
    MetricType.HEART_RATE_VARIABILITY: "HRV",
    MetricType.RESTING_HEART_RATE: "Resting HR",
    MetricType.BLOOD_OXYGEN: "Blood Oxygen",
    MetricType.ACTIVE_CALORIES: "Active Calories",
    MetricType.SLEEP_DURATION: "Sleep",
    MetricType.MINDFUL_MINUTES: "Mindfulness",
    MetricType.WORKOUT_MINUTES: "Workouts",
}

_METRIC_AGGREGATION: dict[MetricType, AggregationKind] = {
    MetricType.STEPS: AggregationKind.CUMULATIVE_SUM,
    MetricType.ACTIVE_CALORIES: AggregationKind.CUMULATIVE_SUM,
    MetricType.HEART_RATE: AggregationKind.REPRESENTATIVE_AVERAGE,
    MetricType.HEART_RATE_VARIABILITY: AggregationKind.LATEST_SAMPLE,
    MetricType.RESTING_HEART_RATE: AggregationKind.LATEST_SAMPLE,
    MetricType.BLOOD_OXYGEN: AggregationKind.LATEST_SAMPLE,
    MetricType.SLEEP_DURATION: AggregationKind.INTERVAL_CLASSIFIED,
    MetricType.MINDFUL_MINUTES: AggregationKind.DURATION_ACCUMULATION,
    MetricType.WORKOUT_MINUTES: AggregationKind.DURATION_ACCUMULATION,
}


class IntervalCategory(str, Enum):
    """Category-typed interval streams exposed by a provider."""

    SLEEP_ANALYSIS = "sleep_analysis"
    MINDFUL_SESSION = "mindful_session"


class SleepLabel(str, Enum):
    """Labels a provider attaches to sleep-analysis intervals."""

    AWAKE = "awake"
    REM = "rem"
    CORE = "core"
    DEEP = "deep"
    UNSPECIFIED = "unspecified"
    IN_BED = "in_bed"


#: Labels that count as time asleep for the sleep-duration metric.
ASLEEP_LABELS: frozenset[SleepLabel] = frozenset(
    {SleepLabel.UNSPECIFIED, SleepLabel.CORE, SleepLabel.DEEP, SleepLabel.REM}
)


# ---------------------------------------------------------------------------
# Raw provider records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimeWindow:
    """Half-open query window ``[start, end)`` in local wall-clock time."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def widened(self, hours: float) -> TimeWindow:
        """Return a copy whose start is moved ``hours`` earlier."""
        return TimeWindow(start=self.start - timedelta(hours=hours), end=self.end)

    @classmethod
    def for_day(cls, day: date) -> TimeWindow:
        start = datetime.combine(day, datetime.min.time())
        return cls(start=start, end=start + timedelta(days=1))


@dataclass(frozen=True)
class MetricSample:
    """A single raw quantity sample, owned by the provider.

    Attributes:
        type:      Metric the sample measures.
        value:     Value in the metric's canonical unit.
        start:     Sample start time.
        end:       Sample end time (equal to start for point samples).
        source_id: Identifier of the app or device that wrote the sample.
    """

    type: MetricType
    value: float
    start: datetime
    end: datetime
    source_id: str = "unknown"


@dataclass(frozen=True)
class LabelledInterval:
    """A category-typed time interval (sleep stage, mindful session)."""

    category: IntervalCategory
    start: datetime
    end: datetime
    label: SleepLabel | None = None
    source_id: str = "unknown"

    @property
    def minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60.0


@dataclass(frozen=True)
class WorkoutSession:
    """A recorded workout.

    Attributes:
        start:         Session start.
        end:           Session end.
        energy_kcal:   Total energy burned, if the source recorded it.
        distance_m:    Total distance, if the source recorded it.
        activity_type: Provider activity slug.
        source_id:     Writing app or device.
    """

    start: datetime
    end: datetime
    energy_kcal: float | None = None
    distance_m: float | None = None
    activity_type: str = "other"
    source_id: str = "unknown"

    @property
    def minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60.0


# ---------------------------------------------------------------------------
# Derived / canonical models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SleepStages:
    """Stage-duration breakdown for one night, in minutes."""

    awake_minutes: float = 0.0
    rem_minutes: float = 0.0
    core_minutes: float = 0.0
    deep_minutes: float = 0.0

    @property
    def total_asleep_minutes(self) -> float:
        return self.rem_minutes + self.core_minutes + self.deep_minutes

    @property
    def total_minutes(self) -> float:
        return self.awake_minutes + self.total_asleep_minutes

    @property
    def has_stage_data(self) -> bool:
        """True when a real stage breakdown exists, not just a total."""
        return self.total_asleep_minutes > 0

    def percent_of_total(self, minutes: float) -> int:
        if self.total_minutes <= 0:
            return 0
        return int(minutes / self.total_minutes * 100)

    @property
    def awake_percent(self) -> int:
        return self.percent_of_total(self.awake_minutes)

    @property
    def rem_percent(self) -> int:
        return self.percent_of_total(self.rem_minutes)

    @property
    def core_percent(self) -> int:
        return self.percent_of_total(self.core_minutes)

    @property
    def deep_percent(self) -> int:
        return self.percent_of_total(self.deep_minutes)


@dataclass(frozen=True)
class DailyHealthSummary:
    """Canonical per-day summary produced once per fetch cycle.

    A metric the provider could not resolve is absent from ``metrics``;
    zero is never used as a "no data" marker.

    Attributes:
        date:         Calendar date (local).
        metrics:      Read-only mapping of metric type to resolved value.
        sleep_stages: Stage breakdown, only when stage data exists.
        score:        Absolute composite score, attached for past days.
    """

    date: date
    metrics: Mapping[MetricType, float] = field(default_factory=dict)
    sleep_stages: SleepStages | None = None
    score: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "metrics", MappingProxyType(dict(self.metrics)))

    def __hash__(self) -> int:
        return hash((self.date, frozenset(self.metrics.items()), self.sleep_stages, self.score))

    @property
    def has_data(self) -> bool:
        return bool(self.metrics)

    def value(self, metric: MetricType) -> float | None:
        return self.metrics.get(metric)


@dataclass(frozen=True)
class ScoreBreakdownEntry:
    """Contribution of one metric to a composite score."""

    type: MetricType
    normalized_score: float
    raw_value: float


@dataclass(frozen=True)
class HealthInsight:
    """A short ranked observation about the day."""

    icon: str
    text: str
    color: str
    priority: int


# ---------------------------------------------------------------------------
# Abstract provider
# ---------------------------------------------------------------------------


class HealthDataProvider(ABC):
    """Abstract base class for health data providers.

    Each provider exposes a uniform async query surface to the aggregator.
    Authorization is owned by the caller; the core only checks it.

    Subclasses must implement:
        - is_available()
        - is_authorized()
        - query_statistic()
        - query_samples()
        - query_intervals()
        - query_workout_sessions()
    """

    #: Unique slug used by the provider registry.
    SOURCE_ID: str = ""

    #: Human-readable provider name.
    DISPLAY_NAME: str = ""

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if the underlying data store exists on this platform."""

    @abstractmethod
    async def is_authorized(self) -> bool:
        """Return True if read access to the provider has been granted."""

    @abstractmethod
    async def query_statistic(
        self,
        metric_type: MetricType,
        window: TimeWindow,
        aggregation_kind: AggregationKind,
    ) -> float | None:
        """Return the provider's pre-aggregated value for a window.

        Cumulative kinds ask for a sum; every other kind asks for a discrete
        average.  Returns None when the provider has no statistic.

        Args:
            metric_type:      Metric to aggregate.
            window:           Query window.
            aggregation_kind: Aggregation kind of the metric.

        Returns:
            Aggregated value or None.
        """

    @abstractmethod
    async def query_samples(
        self, metric_type: MetricType, window: TimeWindow
    ) -> list[MetricSample]:
        """Return raw samples whose start falls inside the window."""

    @abstractmethod
    async def query_intervals(
        self, category: IntervalCategory, window: TimeWindow
    ) -> list[LabelledInterval]:
        """Return labelled intervals of a category starting inside the window."""

    @abstractmethod
    async def query_workout_sessions(self, window: TimeWindow) -> list[WorkoutSession]:
        """Return workout sessions starting inside the window."""
