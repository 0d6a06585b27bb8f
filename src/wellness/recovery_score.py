"""Recovery score: a small secondary composite over HRV, resting HR and sleep.

Components (weights from scoring_config.yaml):
    - HRV           (0.4)  min(1, hrv / 50ms)
    - Resting HR    (0.3)  min(1, 62bpm / rhr), lower is better
    - Sleep         (0.3)  1.0 inside 7–9h, linear below, gentle decay above

Weights are renormalized over the inputs actually present, so a missing HRV
reading never counts as zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from src.wellness.base import DailyHealthSummary, MetricType
from src.wellness.config_loader import RecoveryConfig, ScoringConfig, get_scoring_config

logger = logging.getLogger("lifeindex.wellness.recovery")


@dataclass
class RecoveryComponentScore:
    """Score for a single recovery input.

    Attributes:
        type:      Metric the component is computed from.
        raw_score: Normalized 0.0–1.0 score.
        weight:    Configured weight.
        value:     Raw input value.
    """

    type: MetricType
    raw_score: float
    weight: float
    value: float

    @property
    def weighted(self) -> float:
        return self.raw_score * self.weight


@dataclass
class RecoveryScore:
    score: int
    label: str
    should_rest: bool
    components: list[RecoveryComponentScore] = field(default_factory=list)


class RecoveryScoreEngine:
    """Compute the recovery score.

    Usage::

        engine = RecoveryScoreEngine()
        result = engine.compute(hrv=48.0, resting_heart_rate=58.0, sleep_minutes=450.0)
        if result and result.should_rest:
            ...
    """

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self._config = config or get_scoring_config()

    @property
    def _rc(self) -> RecoveryConfig:
        return self._config.recovery

    # ------------------------------------------------------------------
    # Component curves
    # ------------------------------------------------------------------

    def hrv_component(self, hrv: float) -> float:
        return min(1.0, max(hrv, 0.0) / self._rc.hrv_baseline_ms)

    def resting_hr_component(self, rhr: float) -> float:
        if rhr <= 0:
            return 0.0
        return min(1.0, self._rc.resting_hr_baseline_bpm / rhr)

    def sleep_component(self, minutes: float) -> float:
        ideal = self._rc.sleep_ideal
        if ideal.contains(minutes):
            return 1.0
        if minutes < ideal.lower:
            return max(minutes, 0.0) / ideal.lower
        excess = minutes - (ideal.upper or ideal.lower)
        return max(self._rc.oversleep_floor, 1.0 - excess / self._rc.oversleep_decay_minutes)

    # ------------------------------------------------------------------
    # Composite
    # ------------------------------------------------------------------

    def compute(
        self,
        hrv: float | None = None,
        resting_heart_rate: float | None = None,
        sleep_minutes: float | None = None,
    ) -> RecoveryScore | None:
        """Compute the recovery score from whichever inputs are present.

        Returns:
            RecoveryScore, or None when no input is present.
        """
        inputs: list[tuple[MetricType, float | None, Callable[[float], float]]] = [
            (MetricType.HEART_RATE_VARIABILITY, hrv, self.hrv_component),
            (MetricType.RESTING_HEART_RATE, resting_heart_rate, self.resting_hr_component),
            (MetricType.SLEEP_DURATION, sleep_minutes, self.sleep_component),
        ]

        components: list[RecoveryComponentScore] = []
        for metric_type, value, curve in inputs:
            weight = self._rc.weights.get(metric_type)
            if value is None or weight is None:
                continue
            components.append(
                RecoveryComponentScore(
                    type=metric_type, raw_score=curve(value), weight=weight, value=value
                )
            )

        total_weight = sum(c.weight for c in components)
        if not components or total_weight <= 0:
            return None

        raw = sum(c.weighted for c in components) / total_weight
        score = min(max(int(round(raw * 100)), 0), 100)

        logger.debug(
            "Recovery score %d from %s",
            score, ", ".join(f"{c.type.value}={c.raw_score:.2f}" for c in components),
        )
        return RecoveryScore(
            score=score,
            label=self.label(score),
            should_rest=self.should_rest(score),
            components=components,
        )

    def compute_for(self, summary: DailyHealthSummary) -> RecoveryScore | None:
        return self.compute(
            hrv=summary.value(MetricType.HEART_RATE_VARIABILITY),
            resting_heart_rate=summary.value(MetricType.RESTING_HEART_RATE),
            sleep_minutes=summary.value(MetricType.SLEEP_DURATION),
        )

    def should_rest(self, score: int) -> bool:
        return score < self._rc.rest_threshold

    def label(self, score: int) -> str:
        for band in self._rc.bands:
            if score >= band.min_score:
                return band.label
        return self._rc.bands[-1].label
