"""Reduce labelled sleep-analysis intervals to a stage breakdown."""

from __future__ import annotations

import logging
from typing import Iterable

from src.wellness.base import IntervalCategory, LabelledInterval, SleepLabel, SleepStages

logger = logging.getLogger("lifeindex.wellness.sleep_stages")

# Label → SleepStages field.  IN_BED is deliberately absent: it only feeds the
# coarse duration fallback in the aggregator, never the stage percentages.
_STAGE_BUCKETS: dict[SleepLabel, str] = {
    SleepLabel.AWAKE: "awake_minutes",
    SleepLabel.REM: "rem_minutes",
    SleepLabel.CORE: "core_minutes",
    SleepLabel.DEEP: "deep_minutes",
    # Ambiguous asleep state counts as light sleep
    SleepLabel.UNSPECIFIED: "core_minutes",
}


class SleepStageClassifier:
    """Accumulate per-stage minutes from raw sleep-analysis intervals.

    Usage::

        stages = SleepStageClassifier().classify(intervals)
        if stages.has_stage_data:
            summary_stages = stages
    """

    def classify(self, intervals: Iterable[LabelledInterval]) -> SleepStages:
        """Sum ``end - start`` minutes into awake / rem / core / deep buckets.

        Args:
            intervals: Sleep-analysis intervals.  Other categories, unlabelled
                       intervals and in-bed intervals are ignored.

        Returns:
            SleepStages.  May be all zeros; check ``has_stage_data``.
        """
        totals = {bucket: 0.0 for bucket in set(_STAGE_BUCKETS.values())}
        skipped = 0

        for interval in intervals:
            if interval.category != IntervalCategory.SLEEP_ANALYSIS or interval.label is None:
                skipped += 1
                continue
            bucket = _STAGE_BUCKETS.get(interval.label)
            if bucket is None:
                continue
            totals[bucket] += max(interval.minutes, 0.0)

        if skipped:
            logger.debug("SleepStageClassifier: skipped %d non-sleep intervals", skipped)

        return SleepStages(**totals)
