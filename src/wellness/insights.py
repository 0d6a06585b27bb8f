"""Rule-based, priority-ranked insights for the current day.

Every rule independently proposes at most one candidate.  Warnings carry
high priorities (60–95) and praise low ones (15–30), so when both qualify
the warnings surface first.  Candidates are sorted by priority, highest
first (ties keep rule order), and the top four are returned.

Priorities:
    95  short sleep and elevated resting HR together
    90  sleep under 6h
    88  recovery score under 40
    85  resting HR above 80
    75  steps under 5k
    65  weekly step decline
    60  sleep under 7h
    50  steps 5k–10k
    30  sleep over 9h / resting HR 56–65
    25  resting HR 55 or below
    20  sleep 7–9h / steps 10k–15k
    15  steps 15k+ / steady weekly average
"""

from __future__ import annotations

import logging
from typing import Sequence

from src.wellness.base import DailyHealthSummary, HealthInsight, MetricType

logger = logging.getLogger("lifeindex.wellness.insights")

MAX_INSIGHTS = 4

_STEP_GOAL = 10000

# Color tokens resolved by the presentation layer
COLOR_RED = "red"
COLOR_ORANGE = "orange"
COLOR_GREEN = "green"
COLOR_SLEEP = "sleep"
COLOR_STEPS = "steps"
COLOR_HEART_RATE = "heart_rate"
COLOR_ACTIVITY = "activity"


def _hours_minutes(minutes: float) -> tuple[int, int]:
    return int(minutes // 60), int(minutes) % 60


def sleep_insight(sleep: float | None) -> HealthInsight | None:
    if sleep is None:
        return None
    hours, mins = _hours_minutes(sleep)
    if sleep < 360:
        return HealthInsight(
            icon="exclamationmark.triangle.fill",
            text=f"Only {hours}h {mins}m of sleep. This significantly impacts recovery and focus.",
            color=COLOR_RED,
            priority=90,
        )
    if sleep < 420:
        return HealthInsight(
            icon="moon.zzz.fill",
            text=f"You slept {hours}h {mins}m, under the 7hr minimum. Aim for 7+ tonight.",
            color=COLOR_ORANGE,
            priority=60,
        )
    if sleep <= 540:
        return HealthInsight(
            icon="checkmark.circle.fill",
            text=f"Great sleep: {hours}h {mins}m is in the ideal 7-9hr range.",
            color=COLOR_GREEN,
            priority=20,
        )
    return HealthInsight(
        icon="bed.double.fill",
        text=f"You slept {hours}h {mins}m, a bit over the 9hr mark.",
        color=COLOR_SLEEP,
        priority=30,
    )


def steps_insight(steps: float | None) -> HealthInsight | None:
    if steps is None or steps <= 0:
        return None
    pct = int(steps / _STEP_GOAL * 100)
    if steps < 5000:
        return HealthInsight(
            icon="figure.walk",
            text=f"Only {int(steps)} steps ({pct}%). Try to get moving, every step counts.",
            color=COLOR_ORANGE,
            priority=75,
        )
    if steps < _STEP_GOAL:
        return HealthInsight(
            icon="figure.walk",
            text=f"{pct}% to your 10k goal. {int(_STEP_GOAL - steps)} steps to go!",
            color=COLOR_STEPS,
            priority=50,
        )
    if steps < 15000:
        return HealthInsight(
            icon="star.fill",
            text=f"{int(steps)} steps. 10k goal smashed!",
            color=COLOR_GREEN,
            priority=20,
        )
    return HealthInsight(
        icon="star.circle.fill",
        text=f"{int(steps)} steps. Exceptional day!",
        color=COLOR_GREEN,
        priority=15,
    )


def resting_hr_insight(rhr: float | None) -> HealthInsight | None:
    if rhr is None:
        return None
    if rhr > 80:
        return HealthInsight(
            icon="heart.circle",
            text=f"Resting HR {int(rhr)} bpm is elevated. Stay hydrated and manage stress.",
            color=COLOR_ORANGE,
            priority=85,
        )
    if rhr <= 55:
        return HealthInsight(
            icon="heart.circle",
            text=f"Resting HR {int(rhr)} bpm shows strong cardiovascular fitness.",
            color=COLOR_HEART_RATE,
            priority=25,
        )
    if rhr <= 65:
        return HealthInsight(
            icon="heart.circle",
            text=f"Resting HR {int(rhr)} bpm is in a healthy range.",
            color=COLOR_HEART_RATE,
            priority=30,
        )
    return None


def compound_insight(sleep: float | None, rhr: float | None) -> HealthInsight | None:
    """Short sleep and elevated resting HR compound each other."""
    if sleep is None or rhr is None:
        return None
    if sleep < 420 and rhr > 70:
        return HealthInsight(
            icon="exclamationmark.circle.fill",
            text=(
                "Poor sleep combined with elevated heart rate. "
                "Your body may need extra recovery today."
            ),
            color=COLOR_RED,
            priority=95,
        )
    return None


def recovery_insight(recovery_score: int | None) -> HealthInsight | None:
    if recovery_score is None or recovery_score >= 40:
        return None
    return HealthInsight(
        icon="arrow.counterclockwise.circle.fill",
        text=f"Recovery score is {recovery_score}/100. Consider a lighter workout or rest day.",
        color=COLOR_ORANGE,
        priority=88,
    )


def _steady_average(values: Sequence[float]) -> HealthInsight:
    avg = sum(values) / len(values)
    return HealthInsight(
        icon="chart.line.uptrend.xyaxis",
        text=f"7-day step avg: {int(avg)}. Consistency is key.",
        color=COLOR_ACTIVITY,
        priority=15,
    )


def weekly_steps_insight(week: Sequence[DailyHealthSummary]) -> HealthInsight | None:
    """Compare the last three days with the earlier days of the week.

    Needs at least three days with steps; the decline check needs five.
    """
    values = [v for v in (d.value(MetricType.STEPS) for d in week) if v is not None]
    if len(values) < 3:
        return None
    if len(values) < 5:
        return _steady_average(values)

    recent, earlier = values[-3:], values[:-3]
    recent_avg = sum(recent) / len(recent)
    earlier_avg = sum(earlier) / len(earlier)
    if recent_avg < earlier_avg * 0.8:
        return HealthInsight(
            icon="chart.line.downtrend.xyaxis",
            text=(
                f"Step count declining this week. Your recent avg ({int(recent_avg)}) "
                f"is below your earlier avg ({int(earlier_avg)})."
            ),
            color=COLOR_ORANGE,
            priority=65,
        )
    return _steady_average(values)


class InsightEngine:
    """Generate the ranked insight list for a fetch cycle.

    Usage::

        insights = InsightEngine().generate(current, week, recovery_score=72)
    """

    def __init__(self, limit: int = MAX_INSIGHTS) -> None:
        self._limit = limit

    def candidates(
        self,
        summary: DailyHealthSummary,
        week: Sequence[DailyHealthSummary],
        recovery_score: int | None = None,
    ) -> list[HealthInsight]:
        """Every insight whose rule fires, in rule order (unranked)."""
        sleep = summary.value(MetricType.SLEEP_DURATION)
        rhr = summary.value(MetricType.RESTING_HEART_RATE)
        proposals = [
            sleep_insight(sleep),
            steps_insight(summary.value(MetricType.STEPS)),
            resting_hr_insight(rhr),
            compound_insight(sleep, rhr),
            recovery_insight(recovery_score),
            weekly_steps_insight(week),
        ]
        return [p for p in proposals if p is not None]

    def generate(
        self,
        summary: DailyHealthSummary,
        week: Sequence[DailyHealthSummary],
        recovery_score: int | None = None,
    ) -> list[HealthInsight]:
        """Return the top insights, highest priority first."""
        ranked = sorted(
            self.candidates(summary, week, recovery_score),
            key=lambda i: i.priority,
            reverse=True,
        )
        logger.debug(
            "Insights: %d candidates, keeping %d", len(ranked), min(len(ranked), self._limit)
        )
        return ranked[: self._limit]
