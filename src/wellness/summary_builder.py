"""Assemble immutable DailyHealthSummary objects from aggregated metrics.

One summary per calendar day.  Metric queries within a day run concurrently
(see MetricAggregator.resolve_day); days in the trailing week are built one
after another to bound total query fan-out.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Sequence

from src.wellness.aggregator import MetricAggregator
from src.wellness.base import DailyHealthSummary, MetricType, TimeWindow
from src.wellness.config_loader import ScoringConfig, get_scoring_config

logger = logging.getLogger("lifeindex.wellness.summary_builder")


class DailySummaryBuilder:
    """Build single-day and trailing-week summaries.

    Usage::

        builder = DailySummaryBuilder(MetricAggregator(provider))
        today = await builder.build_today()
        week = await builder.build_week(date.today(), today_summary=today)
        current, substituted = select_current(today, week)
    """

    def __init__(
        self,
        aggregator: MetricAggregator,
        config: ScoringConfig | None = None,
        types: Iterable[MetricType] | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._config = config or get_scoring_config()
        self._types = list(types) if types is not None else list(MetricType)

    @property
    def trailing_days(self) -> int:
        return self._config.aggregation.trailing_days

    async def build_day(self, day: date) -> DailyHealthSummary:
        """Resolve every tracked metric for ``day`` and build its summary.

        A day with no resolvable metrics still yields a summary, with an
        empty metrics map.
        """
        resolution = await self._aggregator.resolve_day(TimeWindow.for_day(day), self._types)
        summary = DailyHealthSummary(
            date=day,
            metrics=resolution.metrics,
            sleep_stages=resolution.sleep_stages,
        )
        logger.debug(
            "Built summary for %s: %d metrics%s",
            day.isoformat(),
            len(summary.metrics),
            ", with sleep stages" if summary.sleep_stages else "",
        )
        return summary

    async def build_today(self, now: datetime | None = None) -> DailyHealthSummary:
        now = now or datetime.now()
        return await self.build_day(now.date())

    async def build_week(
        self,
        today: date,
        today_summary: DailyHealthSummary | None = None,
    ) -> list[DailyHealthSummary]:
        """Build the trailing window ending on ``today``, oldest first.

        Args:
            today:         Last day of the window.
            today_summary: Already-built summary for ``today``; reused instead
                           of querying that day a second time.

        Returns:
            Exactly ``trailing_days`` summaries, oldest → newest.  Empty days
            are kept as empty summaries, never dropped.
        """
        week: list[DailyHealthSummary] = []
        for offset in range(self.trailing_days - 1, -1, -1):
            day = today - timedelta(days=offset)
            if today_summary is not None and today_summary.date == day:
                week.append(today_summary)
                continue
            week.append(await self.build_day(day))

        logger.info(
            "Built trailing week %s → %s (%d/%d days with data)",
            week[0].date.isoformat(),
            week[-1].date.isoformat(),
            sum(1 for d in week if d.has_data),
            len(week),
        )
        return week


def select_current(
    today_summary: DailyHealthSummary,
    week: Sequence[DailyHealthSummary],
) -> tuple[DailyHealthSummary, bool]:
    """Pick the effective "current" summary.

    If today resolved to nothing (typically sync lag from a wearable), fall
    back to the most recent non-empty day of the week.

    Args:
        today_summary: Summary for today.
        week:          Trailing week, oldest → newest.

    Returns:
        (summary, substituted) where ``substituted`` is True when a past day
        stands in for today.
    """
    if today_summary.has_data:
        return today_summary, False

    for day in reversed(week):
        if day.has_data and day.date != today_summary.date:
            logger.info(
                "Today (%s) has no data, using %s instead",
                today_summary.date.isoformat(),
                day.date.isoformat(),
            )
            return day, True

    return today_summary, False
