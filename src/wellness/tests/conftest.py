"""Shared fixtures and synthetic provider data for wellness core tests."""

from __future__ import annotations

import asyncio
from collections import Counter
from datetime import date, datetime, timedelta

import pytest

from src.wellness.base import (
    DailyHealthSummary,
    IntervalCategory,
    LabelledInterval,
    MetricSample,
    MetricType,
    SleepLabel,
    TimeWindow,
    WorkoutSession,
)
from src.wellness.config_loader import ScoringConfig, load_scoring_config
from src.wellness.providers.memory import InMemoryHealthStore

# Canonical test day (a Monday)
TEST_DATE = date(2026, 2, 23)
NOON = datetime(2026, 2, 23, 12, 0)


# ---------------------------------------------------------------------------
# Record builders
# ---------------------------------------------------------------------------


def at(hour: int, minute: int = 0, day: date = TEST_DATE) -> datetime:
    return datetime.combine(day, datetime.min.time()) + timedelta(hours=hour, minutes=minute)


def sample(
    metric_type: MetricType,
    value: float,
    start: datetime,
    minutes: float = 0,
    source_id: str = "apple_watch",
) -> MetricSample:
    return MetricSample(
        type=metric_type,
        value=value,
        start=start,
        end=start + timedelta(minutes=minutes),
        source_id=source_id,
    )


def sleep_interval(
    label: SleepLabel, start: datetime, minutes: float, source_id: str = "apple_watch"
) -> LabelledInterval:
    return LabelledInterval(
        category=IntervalCategory.SLEEP_ANALYSIS,
        start=start,
        end=start + timedelta(minutes=minutes),
        label=label,
        source_id=source_id,
    )


def mindful_session(start: datetime, minutes: float) -> LabelledInterval:
    return LabelledInterval(
        category=IntervalCategory.MINDFUL_SESSION,
        start=start,
        end=start + timedelta(minutes=minutes),
        source_id="breathe",
    )


def workout(
    start: datetime, minutes: float, energy_kcal: float | None = None
) -> WorkoutSession:
    return WorkoutSession(
        start=start,
        end=start + timedelta(minutes=minutes),
        energy_kcal=energy_kcal,
        activity_type="running",
        source_id="apple_watch",
    )


def make_summary(day: date = TEST_DATE, **metrics: float) -> DailyHealthSummary:
    """Build a summary from keyword metrics, e.g. make_summary(steps=4000)."""
    return DailyHealthSummary(
        date=day,
        metrics={MetricType(name): value for name, value in metrics.items()},
    )


def night_of_sleep(day: date = TEST_DATE) -> list[LabelledInterval]:
    """A 7h30m night starting 23:00 the evening before ``day``.

    Stages: 30 awake, 90 rem, 240 core + 30 unspecified, 90 deep (450 asleep),
    inside a 480 minute in-bed span.
    """
    bedtime = at(23, 0, day - timedelta(days=1))
    return [
        sleep_interval(SleepLabel.IN_BED, bedtime - timedelta(minutes=10), 480),
        sleep_interval(SleepLabel.CORE, bedtime, 120),
        sleep_interval(SleepLabel.DEEP, bedtime + timedelta(minutes=120), 90),
        sleep_interval(SleepLabel.AWAKE, bedtime + timedelta(minutes=210), 30),
        sleep_interval(SleepLabel.REM, bedtime + timedelta(minutes=240), 90),
        sleep_interval(SleepLabel.CORE, bedtime + timedelta(minutes=330), 120),
        sleep_interval(SleepLabel.UNSPECIFIED, bedtime + timedelta(minutes=450), 30),
    ]


def populate_day(store: InMemoryHealthStore, day: date = TEST_DATE, steps: float = 8000) -> None:
    """Load one realistic day of data into ``store``."""
    store.add_samples([
        sample(MetricType.STEPS, steps / 2, at(9, 0, day), 30),
        sample(MetricType.STEPS, steps / 2, at(11, 0, day), 30),
        sample(MetricType.HEART_RATE, 62, at(8, 0, day)),
        sample(MetricType.HEART_RATE, 70, at(10, 0, day)),
        sample(MetricType.HEART_RATE_VARIABILITY, 42, at(6, 30, day)),
        sample(MetricType.RESTING_HEART_RATE, 58, at(7, 0, day)),
        sample(MetricType.BLOOD_OXYGEN, 0.97, at(5, 0, day)),
        sample(MetricType.ACTIVE_CALORIES, 150, at(9, 0, day), 60),
        sample(MetricType.ACTIVE_CALORIES, 200, at(11, 0, day), 60),
    ])
    store.add_intervals(night_of_sleep(day))
    store.add_intervals([mindful_session(at(7, 30, day), 10)])
    store.add_workouts([workout(at(17, 0, day), 45, energy_kcal=400)])


# -{75}
# Instrumented provider
# -{75}


class CountingHealthStore(InMemoryHealthStore):
    """InMemoryHealthStore that records query overlap and answers in reverse order.

    Each query sleeps for less time than the one issued before it on the same
    day, so the last query of a day completes first.  Overlap is tracked per
    day, keyed by the end of the queried window.
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.in_flight: Counter = Counter()
        self.issued: Counter = Counter()
        self.max_in_flight = 0
        self.max_days_in_flight = 0

    async def _counted(self, window: TimeWindow, query):
        day_key = window.end
        order = self.issued[day_key]
        self.issued[day_key] += 1
        self.in_flight[day_key] += 1
        self.max_in_flight = max(self.max_in_flight, sum(self.in_flight.values()))
        self.max_days_in_flight = max(
            self.max_days_in_flight, sum(1 for n in self.in_flight.values() if n)
        )
        try:
            await asyncio.sleep(0.002 * max(1, 20 - order))
            return await query
        finally:
            self.in_flight[day_key] -= 1

    async def query_statistic(self, metric_type, window, aggregation_kind):
        return await self._counted(
            window, super().query_statistic(metric_type, window, aggregation_kind)
        )

    async def query_samples(self, metric_type, window):
        return await self._counted(window, super().query_samples(metric_type, window))

    async def query_intervals(self, category, window):
        return await self._counted(window, super().query_intervals(category, window))

    async def query_workout_sessions(self, window):
        return await self._counted(window, super().query_workout_sessions(window))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def scoring_config() -> ScoringConfig:
    """Load the real scoring config for tests."""
    return load_scoring_config()


@pytest.fixture
def store() -> InMemoryHealthStore:
    """Empty store that answers statistic queries for every metric."""
    return InMemoryHealthStore()


@pytest.fixture
def raw_only_store() -> InMemoryHealthStore:
    """Empty store with no pre-aggregated statistics (raw-sample paths only)."""
    return InMemoryHealthStore(statistics_types=())


@pytest.fixture
def populated_store() -> InMemoryHealthStore:
    """Store holding one realistic day on TEST_DATE."""
    s = InMemoryHealthStore()
    populate_day(s)
    return s
