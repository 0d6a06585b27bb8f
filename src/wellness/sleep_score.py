"""Sleep score (0–100) from total sleep and the stage breakdown.

Components (weights from scoring_config.yaml):
    - Duration       (0.5)  full marks from 7h; non-linear penalty below
    - Stage quality  (0.3)  deep 12–20% and REM 15–25% of time asleep
    - Interruptions  (0.2)  share of the night spent awake

Quality and interruptions need a real stage breakdown.  Without one,
duration is the only component and the weights renormalize to it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from src.wellness.base import DailyHealthSummary, MetricType, SleepStages
from src.wellness.config_loader import (
    ScoringConfig,
    SleepScoreConfig,
    TargetRange,
    get_scoring_config,
)

logger = logging.getLogger("lifeindex.wellness.sleep_score")


@dataclass(frozen=True)
class SleepScore:
    score: int
    label: str
    duration_score: float
    quality_score: float | None = None
    interruptions_score: float | None = None


class SleepScoreEngine:
    """Compute the nightly sleep score.

    Usage::

        result = SleepScoreEngine().compute(sleep_minutes=455, stages=stages)
    """

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self._config = config or get_scoring_config()

    @property
    def _sc(self) -> SleepScoreConfig:
        return self._config.sleep_score

    # ------------------------------------------------------------------
    # Component curves
    # ------------------------------------------------------------------

    def duration_score(self, minutes: float) -> float:
        """1.0 at or above the ideal; below, penalty = (deficit_hours × scale)^exponent."""
        if minutes >= self._sc.ideal_minutes:
            return 1.0
        deficit_hours = (self._sc.ideal_minutes - minutes) / 60.0
        penalty = (deficit_hours * self._sc.deficit_penalty_scale) ** self._sc.deficit_penalty_exponent
        return max(0.0, 1.0 - penalty)

    def _stage_share_score(self, share: float, target: TargetRange) -> float:
        if target.contains(share):
            return 1.0
        if target.upper is not None and share > target.upper:
            return self._sc.above_target_score
        return max(self._sc.below_target_floor, share / target.lower)

    def quality_score(self, stages: SleepStages) -> float:
        """Weighted deep and REM stage-share score."""
        sc = self._sc
        asleep = stages.total_asleep_minutes
        if asleep <= 0:
            return sc.no_asleep_quality
        deep = self._stage_share_score(stages.deep_minutes / asleep, sc.deep_target)
        rem = self._stage_share_score(stages.rem_minutes / asleep, sc.rem_target)
        mix = sc.deep_share_weight + sc.rem_share_weight
        return (deep * sc.deep_share_weight + rem * sc.rem_share_weight) / mix

    def interruptions_score(self, stages: SleepStages) -> float:
        if stages.total_minutes <= 0:
            return 1.0
        awake_share = stages.awake_minutes / stages.total_minutes
        for band in self._sc.awake_bands:
            if awake_share <= band.max_share:
                return band.score
        return max(self._sc.awake_floor, 1.0 - awake_share)

    # ------------------------------------------------------------------
    # Composite
    # ------------------------------------------------------------------

    def compute(
        self, sleep_minutes: float | None, stages: SleepStages | None = None
    ) -> SleepScore | None:
        """Score one night.

        Args:
            sleep_minutes: Total minutes asleep.
            stages:        Stage breakdown, if the provider recorded one.

        Returns:
            SleepScore, or None without any sleep minutes.
        """
        if sleep_minutes is None or sleep_minutes <= 0:
            return None

        sc = self._sc
        dur = self.duration_score(sleep_minutes)
        total = dur * sc.duration_weight
        weight = sc.duration_weight

        quality = interruptions = None
        if stages is not None and stages.has_stage_data:
            quality = self.quality_score(stages)
            interruptions = self.interruptions_score(stages)
            total += quality * sc.quality_weight + interruptions * sc.interruptions_weight
            weight += sc.quality_weight + sc.interruptions_weight

        score = min(max(int(round(total / weight * 100)), 0), 100)
        return SleepScore(
            score=score,
            label=self.label(score),
            duration_score=dur,
            quality_score=quality,
            interruptions_score=interruptions,
        )

    def compute_for(self, summary: DailyHealthSummary) -> SleepScore | None:
        return self.compute(summary.value(MetricType.SLEEP_DURATION), summary.sleep_stages)

    def label(self, score: int) -> str:
        for band in self._sc.bands:
            if score >= band.min_score:
                return band.label
        return self._sc.bands[-1].label
