"""Fetch cycle: build, score and publish one immutable wellness snapshot.

A cycle runs only when a caller asks for one (initial load, manual refresh,
app foreground).  It:
1. Checks provider availability, then authorization
2. Builds today's summary and the trailing week
3. Substitutes the latest non-empty day when today is still empty
4. Scores the effective summary (time-aware unless substituted)
5. Computes recovery and sleep scores and the ranked insights
6. Attaches absolute scores to every non-empty day of the week
7. Publishes the CycleResult and notifies subscribers

Concurrency: cycles are serialized by an asyncio.Lock.  A call that arrives
while a cycle is in flight waits for it; once it holds the lock, a normal
call returns the just-published result if it is still fresh, and a forced
call runs a new cycle.  Subscribers are notified before the lock is
released, so results reach them in start order.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable

from src.wellness.aggregator import MetricAggregator
from src.wellness.base import (
    AuthorizationError,
    DailyHealthSummary,
    HealthDataProvider,
    HealthInsight,
    ProviderUnavailableError,
)
from src.wellness.config_loader import ScoringConfig, get_scoring_config
from src.wellness.insights import InsightEngine
from src.wellness.recovery_score import RecoveryScore, RecoveryScoreEngine
from src.wellness.score_engine import CompositeScore, ScoreEngine, ScoreMode
from src.wellness.sleep_score import SleepScore, SleepScoreEngine
from src.wellness.summary_builder import DailySummaryBuilder, select_current

logger = logging.getLogger("lifeindex.wellness.cycle")

CycleListener = Callable[["CycleResult"], Awaitable[None]]


@dataclass(frozen=True)
class CycleResult:
    """Everything one fetch cycle produced.  Replaced wholesale by the next cycle.

    Attributes:
        today:           Summary built for today (possibly empty).
        current:         Effective summary: today, or the substitute day.
        substituted:     True when ``current`` is a past day standing in for today.
        week:            Trailing days oldest → newest, non-empty days carrying
                         their absolute score.
        score:           Composite score of ``current``.
        recovery:        Recovery score of ``current``, if any input was present.
        sleep:           Sleep score of ``current``, if sleep was recorded.
        insights:        Ranked insights, at most four.
        weekly_average:  Integer mean of the week's absolute scores.
        yesterday_score: Absolute score for yesterday, if it had data.
        started_at:      Cycle start (local time).
        completed_at:    Cycle completion (local time).
    """

    today: DailyHealthSummary
    current: DailyHealthSummary
    substituted: bool
    week: tuple[DailyHealthSummary, ...]
    score: CompositeScore
    recovery: RecoveryScore | None = None
    sleep: SleepScore | None = None
    insights: tuple[HealthInsight, ...] = ()
    weekly_average: int | None = None
    yesterday_score: int | None = None
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime = field(default_factory=datetime.now)

    @property
    def has_data(self) -> bool:
        return self.current.has_data or any(d.has_data for d in self.week)

    @property
    def weekly_scores(self) -> list[tuple[date, int]]:
        return [(d.date, d.score) for d in self.week if d.score is not None]


class WellnessService:
    """Run fetch cycles against a HealthDataProvider.

    Usage::

        service = WellnessService(provider)
        service.subscribe(on_new_result)
        result = await service.fetch()
        result = await service.fetch(force_refresh=True)
    """

    def __init__(
        self,
        provider: HealthDataProvider,
        config: ScoringConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the service.

        Args:
            provider: Health data provider to query.
            config:   Scoring config (defaults to the global singleton).
            clock:    Returns the current local time; injectable for tests.
        """
        self._provider = provider
        self._config = config or get_scoring_config()
        self._clock = clock
        self._aggregator = MetricAggregator(provider, self._config)
        self._builder = DailySummaryBuilder(self._aggregator, self._config)
        self._score_engine = ScoreEngine(self._config)
        self._recovery_engine = RecoveryScoreEngine(self._config)
        self._sleep_engine = SleepScoreEngine(self._config)
        self._insight_engine = InsightEngine()

        self._lock = asyncio.Lock()
        self._latest: CycleResult | None = None
        self._last_completed_at: datetime | None = None
        self._listeners: list[CycleListener] = []

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def provider(self) -> HealthDataProvider:
        return self._provider

    @property
    def latest(self) -> CycleResult | None:
        """The last published result, or None before the first cycle."""
        return self._latest

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    def is_fresh(self) -> bool:
        if self._latest is None or self._last_completed_at is None:
            return False
        age = (self._clock() - self._last_completed_at).total_seconds()
        return 0 <= age < self._config.fetch_cycle.cache_ttl_seconds

    def subscribe(self, listener: CycleListener) -> Callable[[], None]:
        """Register an async callback invoked after each published cycle.

        Listeners run while the cycle lock is held, so a listener must not
        await a forced fetch.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def fetch(self, force_refresh: bool = False) -> CycleResult:
        """Return a fresh result, running a cycle unless the cache is still valid.

        Args:
            force_refresh: Bypass the freshness cache.

        Raises:
            ProviderUnavailableError: The data store does not exist here.
            AuthorizationError:       Read access has not been granted.
        """
        if not force_refresh and self.is_fresh():
            logger.debug("Cycle result is fresh, skipping reload")
            return self._latest

        if self._lock.locked():
            logger.info("Fetch cycle already in progress, waiting for it")

        async with self._lock:
            if not force_refresh and self.is_fresh():
                return self._latest
            result = await self._run_cycle()
            self._latest = result
            self._last_completed_at = result.completed_at
            await self._notify(result)

        return result

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def _run_cycle(self) -> CycleResult:
        if not self._provider.is_available():
            raise ProviderUnavailableError(
                f"Health data provider '{self._provider.SOURCE_ID}' is not available"
            )
        if not await self._provider.is_authorized():
            raise AuthorizationError(
                f"Read access to '{self._provider.SOURCE_ID}' has not been granted"
            )

        started_at = self._clock()
        logger.info("Fetch cycle started at %s", started_at.isoformat(timespec="seconds"))

        today = await self._builder.build_today(started_at)
        week = await self._builder.build_week(started_at.date(), today_summary=today)
        current, substituted = select_current(today, week)

        mode = ScoreMode.ABSOLUTE if substituted else ScoreMode.TIME_AWARE
        score = self._score_engine.score(current, mode, now=started_at)
        recovery = self._recovery_engine.compute_for(current)
        sleep = self._sleep_engine.compute_for(current)
        insights = self._insight_engine.generate(
            current, week, recovery.score if recovery else None
        )

        scored_week = tuple(
            replace(day, score=self._score_engine.final_score(day)) if day.has_data else day
            for day in week
        )
        day_scores = [d.score for d in scored_week if d.score is not None]
        weekly_average = sum(day_scores) // len(day_scores) if day_scores else None
        yesterday = started_at.date() - timedelta(days=1)
        yesterday_score = next(
            (d.score for d in scored_week if d.date == yesterday and d.score is not None),
            None,
        )

        result = CycleResult(
            today=today,
            current=current,
            substituted=substituted,
            week=scored_week,
            score=score,
            recovery=recovery,
            sleep=sleep,
            insights=tuple(insights),
            weekly_average=weekly_average,
            yesterday_score=yesterday_score,
            started_at=started_at,
            completed_at=self._clock(),
        )
        logger.info(
            "Fetch cycle complete: score=%d (%s, %s), %d insights%s",
            score.score,
            score.label,
            mode.value,
            len(insights),
            f", substituted {current.date.isoformat()}" if substituted else "",
        )
        return result

    async def _notify(self, result: CycleResult) -> None:
        for listener in list(self._listeners):
            try:
                await listener(result)
            except Exception as exc:
                logger.warning("Cycle listener %r failed: %s", listener, exc)
