"""Apple Health export provider.

Apple Health has no server-side API; users export ``export.xml`` from the
Health app on their phone.  This provider parses that file into an
InMemoryHealthStore so the aggregator can query it like a live data store.

Extracted records:
    - Quantity <Record> elements for the tracked metric types
    - Sleep-analysis and mindful-session category records
    - <Workout> elements (duration, energy, distance)

Timestamps in the export carry a UTC offset ("2026-02-23 07:15:00 -0800");
the offset is dropped and the local wall-clock time kept, matching how the
Health app itself buckets days.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable
from xml.etree import ElementTree as ET

from src.wellness.base import (
    IntervalCategory,
    LabelledInterval,
    MetricSample,
    MetricType,
    SleepLabel,
    WorkoutSession,
)
from src.wellness.providers.memory import InMemoryHealthStore

logger = logging.getLogger("lifeindex.wellness.providers.apple_health")

_HK_SLEEP_ANALYSIS = "HKCategoryTypeIdentifierSleepAnalysis"
_HK_MINDFUL_SESSION = "HKCategoryTypeIdentifierMindfulSession"

# HKQuantityTypeIdentifier → tracked metric
_QUANTITY_TYPE_MAP: dict[str, MetricType] = {
    "HKQuantityTypeIdentifierStepCount": MetricType.STEPS,
    "HKQuantityTypeIdentifierHeartRate": MetricType.HEART_RATE,
    "HKQuantityTypeIdentifierHeartRateVariabilitySDNN": MetricType.HEART_RATE_VARIABILITY,
    "HKQuantityTypeIdentifierRestingHeartRate": MetricType.RESTING_HEART_RATE,
    "HKQuantityTypeIdentifierOxygenSaturation": MetricType.BLOOD_OXYGEN,
    "HKQuantityTypeIdentifierActiveEnergyBurned": MetricType.ACTIVE_CALORIES,
}

# Sleep stage values from HealthKit
_SLEEP_LABEL_MAP: dict[str, SleepLabel] = {
    "HKCategoryValueSleepAnalysisAsleepUnspecified": SleepLabel.UNSPECIFIED,
    "HKCategoryValueSleepAnalysisAsleep": SleepLabel.UNSPECIFIED,
    "HKCategoryValueSleepAnalysisAsleepCore": SleepLabel.CORE,
    "HKCategoryValueSleepAnalysisAsleepDeep": SleepLabel.DEEP,
    "HKCategoryValueSleepAnalysisAsleepREM": SleepLabel.REM,
    "HKCategoryValueSleepAnalysisAwake": SleepLabel.AWAKE,
    "HKCategoryValueSleepAnalysisInBed": SleepLabel.IN_BED,
}

# Energy units → kcal
_ENERGY_TO_KCAL: dict[str, float] = {
    "kcal": 1.0,
    "Cal": 1.0,
    "kJ": 1.0 / 4.184,
}

# Distance units → metres
_DISTANCE_TO_M: dict[str, float] = {
    "m": 1.0,
    "km": 1000.0,
    "mi": 1609.344,
}


def _parse_hk_datetime(value: str) -> datetime | None:
    """Parse an export timestamp, dropping the trailing UTC offset."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace(" ", "T")[:19])
    except ValueError:
        return None


def _as_float(value: str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _activity_slug(hk_type: str) -> str:
    """HKWorkoutActivityTypeTraditionalStrengthTraining → traditional_strength_training."""
    name = hk_type.removeprefix("HKWorkoutActivityType")
    if not name:
        return "other"
    chars: list[str] = []
    for i, ch in enumerate(name):
        if ch.isupper() and i > 0:
            chars.append("_")
        chars.append(ch.lower())
    return "".join(chars)


class AppleHealthExportProvider(InMemoryHealthStore):
    """HealthDataProvider backed by an Apple Health ``export.xml``.

    Usage::

        provider = AppleHealthExportProvider.from_file("~/Downloads/export.xml")
        aggregator = MetricAggregator(provider)
    """

    SOURCE_ID = "apple_health"
    DISPLAY_NAME = "Apple Health"

    def __init__(
        self,
        export_path: str | Path | None = None,
        statistics_types: Iterable[MetricType] | None = None,
    ) -> None:
        super().__init__(statistics_types=statistics_types)
        self.export_path = Path(export_path).expanduser() if export_path else None
        if self.export_path is not None and self.export_path.exists():
            self.load_xml(self.export_path.read_bytes())

    @classmethod
    def from_file(cls, path: str | Path) -> AppleHealthExportProvider:
        """Load an export file, raising if it does not exist."""
        export_path = Path(path).expanduser()
        if not export_path.exists():
            raise FileNotFoundError(f"Apple Health export not found: {export_path}")
        return cls(export_path=export_path)

    def is_available(self) -> bool:
        return self.export_path is None or self.export_path.exists()

    # ------------------------------------------------------------------
    # XML export parsing
    # ------------------------------------------------------------------

    def load_xml(self, xml_bytes: bytes) -> int:
        """Parse an Apple Health export and ingest its records.

        Args:
            xml_bytes: Contents of export.xml.

        Returns:
            Number of records stored (after dedup).

        Raises:
            ValueError: If the XML cannot be parsed.
        """
        try:
            root = ET.fromstring(xml_bytes)
        except ET.ParseError as exc:
            logger.error("Apple Health XML parse error: %s", exc)
            raise ValueError(f"Invalid Apple Health XML: {exc}") from exc

        samples: list[MetricSample] = []
        intervals: list[LabelledInterval] = []
        workouts: list[WorkoutSession] = []
        skipped = 0

        for record in root.findall("Record"):
            rec_type = record.get("type", "")
            start = _parse_hk_datetime(record.get("startDate", ""))
            end = _parse_hk_datetime(record.get("endDate", "")) or start
            source = record.get("sourceName", "unknown")
            if start is None:
                skipped += 1
                continue

            if rec_type == _HK_SLEEP_ANALYSIS:
                label = _SLEEP_LABEL_MAP.get(record.get("value", ""))
                if label is None:
                    skipped += 1
                    continue
                intervals.append(
                    LabelledInterval(
                        category=IntervalCategory.SLEEP_ANALYSIS,
                        start=start, end=end, label=label, source_id=source,
                    )
                )
            elif rec_type == _HK_MINDFUL_SESSION:
                intervals.append(
                    LabelledInterval(
                        category=IntervalCategory.MINDFUL_SESSION,
                        start=start, end=end, source_id=source,
                    )
                )
            elif rec_type in _QUANTITY_TYPE_MAP:
                metric_type = _QUANTITY_TYPE_MAP[rec_type]
                value = self._quantity_value(metric_type, record)
                if value is None:
                    skipped += 1
                    continue
                samples.append(
                    MetricSample(
                        type=metric_type, value=value,
                        start=start, end=end, source_id=source,
                    )
                )

        for workout in root.findall("Workout"):
            session = self._parse_workout(workout)
            if session is None:
                skipped += 1
                continue
            workouts.append(session)

        stored = (
            self.add_samples(samples)
            + self.add_intervals(intervals)
            + self.add_workouts(workouts)
        )
        logger.info(
            "Apple Health XML: stored %d records (%d samples, %d intervals, %d workouts), "
            "%d duplicates dropped, %d skipped",
            stored, len(samples), len(intervals), len(workouts),
            self.duplicates_dropped, skipped,
        )
        return stored

    @staticmethod
    def _quantity_value(metric_type: MetricType, record: ET.Element) -> float | None:
        value = _as_float(record.get("value"))
        if value is None:
            return None
        unit = record.get("unit", "")
        if metric_type == MetricType.BLOOD_OXYGEN and (unit == "%" and value > 1.0):
            # Some exporters write 97 rather than 0.97
            value /= 100.0
        elif metric_type == MetricType.ACTIVE_CALORIES:
            value *= _ENERGY_TO_KCAL.get(unit, 1.0)
        return value

    @staticmethod
    def _parse_workout(workout: ET.Element) -> WorkoutSession | None:
        start = _parse_hk_datetime(workout.get("startDate", ""))
        end = _parse_hk_datetime(workout.get("endDate", ""))
        if start is None or end is None or end < start:
            return None

        energy = _as_float(workout.get("totalEnergyBurned"))
        if energy is not None:
            energy *= _ENERGY_TO_KCAL.get(workout.get("totalEnergyBurnedUnit", "kcal"), 1.0)
        else:
            # Newer exports carry energy as a WorkoutStatistics child
            for stat in workout.findall("WorkoutStatistics"):
                if stat.get("type") == "HKQuantityTypeIdentifierActiveEnergyBurned":
                    energy = _as_float(stat.get("sum"))
                    if energy is not None:
                        energy *= _ENERGY_TO_KCAL.get(stat.get("unit", "kcal"), 1.0)
                    break

        distance = _as_float(workout.get("totalDistance"))
        if distance is not None:
            distance *= _DISTANCE_TO_M.get(workout.get("totalDistanceUnit", "km"), 1000.0)

        return WorkoutSession(
            start=start,
            end=end,
            energy_kcal=energy if energy else None,
            distance_m=distance if distance else None,
            activity_type=_activity_slug(workout.get("workoutActivityType", "")),
            source_id=workout.get("sourceName", "unknown"),
        )
