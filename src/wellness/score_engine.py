"""LifeIndex composite wellness score.

Maps a DailyHealthSummary to a 0–100 score, a qualitative label, a sorted
per-metric breakdown and a short explanation.

Per-metric normalization (targets and weights from scoring_config.yaml):
    ramp        below target → value / lower bound, at or above → 1.0
    goldilocks  inside target → 1.0, outside → exp(-distance / span)

Modes:
    TIME_AWARE  today, not substituted: cumulative targets (steps, active
                calories, workout and mindful minutes) scale by how much of
                the reference day has elapsed.
    ABSOLUTE    past days and substituted "today": full-day targets.

Score = round(100 × Σ wᵢ·sᵢ / Σ wᵢ) over metrics that are both present in
the summary and configured.  Absent metrics contribute neither score nor
weight, so the remaining weights are renormalized linearly.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from src.wellness.base import DailyHealthSummary, MetricType, ScoreBreakdownEntry
from src.wellness.config_loader import (
    CURVE_GOLDILOCKS,
    MetricScoringConfig,
    ScoringConfig,
    TargetRange,
    get_scoring_config,
)

logger = logging.getLogger("lifeindex.wellness.score_engine")


class ScoreMode(str, Enum):
    TIME_AWARE = "time_aware"
    ABSOLUTE = "absolute"


@dataclass(frozen=True)
class CompositeScore:
    """Result of scoring one summary.

    Attributes:
        score:       Final 0–100 score.
        label:       Band label ("Excellent" … "Just Starting").
        mode:        Mode the score was computed in.
        breakdown:   Per-metric entries, best first.
        explanation: One-sentence prose for the score band.
        progress:    Day-progress factor applied to cumulative targets.
    """

    score: int
    label: str
    mode: ScoreMode
    breakdown: tuple[ScoreBreakdownEntry, ...] = ()
    explanation: str = ""
    progress: float = 1.0

    @property
    def top_contributor(self) -> ScoreBreakdownEntry | None:
        return self.breakdown[0] if self.breakdown else None

    @property
    def weakest_area(self) -> ScoreBreakdownEntry | None:
        """Lowest-scoring metric; only meaningful with two or more metrics."""
        return self.breakdown[-1] if len(self.breakdown) > 1 else None


# ---------------------------------------------------------------------------
# Normalization curves
# ---------------------------------------------------------------------------


def ramp_score(value: float, target: TargetRange) -> float:
    """Score an activity-style metric: more is fine, less ramps down linearly."""
    if value >= target.lower:
        return 1.0
    if target.lower <= 0:
        return 1.0
    return min(max(value / target.lower, 0.0), 1.0)


def goldilocks_score(value: float, target: TargetRange) -> float:
    """Score a two-sided metric: deviation in either direction decays exponentially."""
    if target.contains(value):
        return 1.0
    upper = target.upper if target.upper is not None else target.lower
    span = upper - target.lower
    if span <= 0:
        return 1.0
    distance = target.lower - value if value < target.lower else value - upper
    return min(max(math.exp(-distance / span), 0.0), 1.0)


# ---------------------------------------------------------------------------
# Explanation prose
# ---------------------------------------------------------------------------

# (min score, afternoon text, morning text)
_EXPLANATIONS: list[tuple[int, str, str]] = [
    (
        90,
        "Outstanding day. All your metrics are in excellent shape.",
        "Outstanding day. All your metrics are in excellent shape.",
    ),
    (
        80,
        "Most metrics are on track. A small push could get you to Excellent.",
        "Most metrics are on track. A small push could get you to Excellent.",
    ),
    (
        70,
        "Solid effort today. Focus on your weaker areas to level up.",
        "Solid effort today. Focus on your weaker areas to level up.",
    ),
    (
        60,
        "A decent day, but a couple areas could use a boost.",
        "Your day is shaping up. Sleep and vitals look decent, keep building.",
    ),
    (
        40,
        "Some metrics are off today. Prioritize what you can still control.",
        "Still early. Your sleep and vitals set the foundation; activity will build through the day.",
    ),
    (
        20,
        "Your body may need extra care today. Rest and recover.",
        "Your day is just getting started. Focus on what's ahead, not what's missing yet.",
    ),
    (
        0,
        "Take it easy. Focus on the basics: sleep, hydration, movement.",
        "Good morning. Your score will build as the day progresses.",
    ),
]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ScoreEngine:
    """Compute the LifeIndex composite score.

    Deterministic: the same (summary, mode, now) always yields the same result.

    Usage::

        engine = ScoreEngine()
        result = engine.score(summary, ScoreMode.TIME_AWARE, now=datetime.now())
        print(result.score, result.label)
    """

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self._config = config or get_scoring_config()

    # ------------------------------------------------------------------
    # Time-of-day scaling
    # ------------------------------------------------------------------

    def day_progress_factor(self, now: datetime) -> float:
        """Fraction of the reference waking day elapsed at ``now``, in (0, 1].

        Before the day starts a small baseline applies; from the end hour on,
        full-day targets apply.
        """
        dp = self._config.day_progress
        minutes = now.hour * 60 + now.minute
        start = dp.start_hour * 60
        end = dp.end_hour * 60

        if minutes <= start:
            return dp.before_start_factor
        if minutes >= end:
            return 1.0
        return max(dp.min_factor, (minutes - start) / (end - start))

    def scaled_target(self, metric: MetricScoringConfig, factor: float) -> TargetRange:
        """Scale a cumulative metric's target; settled metrics are returned as-is."""
        if not metric.cumulative or factor >= 1.0:
            return metric.target
        return metric.target.scaled(factor)

    # ------------------------------------------------------------------
    # Per-metric scoring
    # ------------------------------------------------------------------

    def score_metric(
        self, metric_type: MetricType, value: float, factor: float = 1.0
    ) -> float | None:
        """Normalize one metric value to [0, 1].

        Args:
            metric_type: Metric being scored.
            value:       Raw value in the metric's unit.
            factor:      Day-progress factor (1.0 in absolute mode).

        Returns:
            Normalized score, or None if the metric has no scoring config.
        """
        metric = self._config.metric(metric_type)
        if metric is None:
            return None
        target = self.scaled_target(metric, factor)
        if metric.curve == CURVE_GOLDILOCKS:
            return goldilocks_score(value, target)
        return ramp_score(value, target)

    def breakdown(
        self, summary: DailyHealthSummary, factor: float = 1.0
    ) -> list[ScoreBreakdownEntry]:
        """Per-metric breakdown, sorted by normalized score descending."""
        entries: list[ScoreBreakdownEntry] = []
        for metric_type in MetricType:
            value = summary.value(metric_type)
            if value is None:
                continue
            normalized = self.score_metric(metric_type, value, factor)
            if normalized is None:
                continue
            entries.append(
                ScoreBreakdownEntry(type=metric_type, normalized_score=normalized, raw_value=value)
            )
        entries.sort(key=lambda e: e.normalized_score, reverse=True)
        return entries

    # ------------------------------------------------------------------
    # Composite
    # ------------------------------------------------------------------

    def score(
        self,
        summary: DailyHealthSummary,
        mode: ScoreMode = ScoreMode.TIME_AWARE,
        now: datetime | None = None,
    ) -> CompositeScore:
        """Compute the composite score for a summary.

        Args:
            summary: Day summary to score.
            mode:    TIME_AWARE for an unsubstituted today, ABSOLUTE otherwise.
            now:     Reference time for scaling, labels and prose.

        Returns:
            CompositeScore.  A summary with no scorable metrics scores 0.
        """
        now = now or datetime.now()
        factor = self.day_progress_factor(now) if mode == ScoreMode.TIME_AWARE else 1.0
        entries = self.breakdown(summary, factor)

        total_score = 0.0
        total_weight = 0.0
        for entry in entries:
            weight = self._config.metrics[entry.type].weight
            total_score += entry.normalized_score * weight
            total_weight += weight

        if total_weight > 0:
            score = int(round(total_score / total_weight * 100))
            score = min(max(score, 0), 100)
        else:
            score = 0

        logger.debug(
            "Score for %s (%s, factor=%.2f): %d from %d metrics",
            summary.date.isoformat(), mode.value, factor, score, len(entries),
        )

        return CompositeScore(
            score=score,
            label=self.label(score, now),
            mode=mode,
            breakdown=tuple(entries),
            explanation=self.explanation(score, now),
            progress=factor,
        )

    def final_score(self, summary: DailyHealthSummary) -> int:
        """Absolute-mode score, used for past days."""
        return self.score(summary, ScoreMode.ABSOLUTE).score

    # ------------------------------------------------------------------
    # Labels & prose
    # ------------------------------------------------------------------

    def label(self, score: int, now: datetime | None = None) -> str:
        """Band label for a score.

        With ``now`` before the morning cutoff, low bands soften to a single
        encouraging label.
        """
        labels = self._config.score_labels
        if (
            now is not None
            and now.hour < labels.morning_cutoff_hour
            and score < labels.morning_floor_below
        ):
            return labels.morning_floor_label
        for band in labels.bands:
            if score >= band.min_score:
                return band.label
        return labels.bands[-1].label

    def explanation(self, score: int, now: datetime | None = None) -> str:
        is_morning = now is not None and now.hour < self._config.score_labels.morning_cutoff_hour
        for min_score, afternoon, morning in _EXPLANATIONS:
            if score >= min_score:
                return morning if is_morning else afternoon
        return _EXPLANATIONS[-1][2] if is_morning else _EXPLANATIONS[-1][1]
