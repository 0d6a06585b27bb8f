"""Load, validate, and hot-reload the LifeIndex scoring configuration.

The config lives in ``scoring_config.yaml`` alongside this module.  At startup
it is loaded once and cached.  Call ``reload_scoring_config()`` to re-read from
disk after an edit, no restart required.

Usage::

    from src.wellness.config_loader import get_scoring_config

    config = get_scoring_config()
    steps = config.metric(MetricType.STEPS)     # MetricScoringConfig
    steps.weight                                # 0.15
    config.recovery.rest_threshold              # 40
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from src.wellness.base import MetricType

logger = logging.getLogger("lifeindex.wellness.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "scoring_config.yaml"

CURVE_RAMP = "ramp"
CURVE_GOLDILOCKS = "goldilocks"
_CURVES = {CURVE_RAMP, CURVE_GOLDILOCKS}

_DEFAULT_AWAKE_BANDS = [
    {"max_share": 0.05, "score": 1.0},
    {"max_share": 0.10, "score": 0.90},
    {"max_share": 0.15, "score": 0.75},
    {"max_share": 0.20, "score": 0.60},
]
_DEFAULT_SLEEP_BANDS = [
    {"min": 96, "label": "Excellent"},
    {"min": 81, "label": "Great"},
    {"min": 61, "label": "Good"},
    {"min": 41, "label": "Fair"},
    {"min": 0, "label": "Poor"},
]


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TargetRange:
    """Ideal range for a metric; ``upper`` is None for half-open targets."""

    lower: float
    upper: float | None = None

    def contains(self, value: float) -> bool:
        if value < self.lower:
            return False
        return self.upper is None or value <= self.upper

    def scaled(self, factor: float) -> TargetRange:
        lower = self.lower * factor
        upper = None if self.upper is None else max(lower, self.upper * factor)
        return TargetRange(lower=lower, upper=upper)


@dataclass(frozen=True)
class MetricScoringConfig:
    """Scoring registry entry for one metric type."""

    type: MetricType
    weight: float
    target: TargetRange
    curve: str
    cumulative: bool = False


@dataclass(frozen=True)
class DayProgressConfig:
    """Reference waking day for scaling cumulative targets."""

    start_hour: int
    end_hour: int
    before_start_factor: float
    min_factor: float


@dataclass(frozen=True)
class LabelBand:
    min_score: int
    label: str


@dataclass(frozen=True)
class ScoreLabelConfig:
    bands: list[LabelBand]
    morning_cutoff_hour: int
    morning_floor_label: str
    morning_floor_below: int


@dataclass(frozen=True)
class RecoveryConfig:
    """Recovery score computation settings."""

    weights: dict[MetricType, float]
    hrv_baseline_ms: float
    resting_hr_baseline_bpm: float
    sleep_ideal: TargetRange
    oversleep_decay_minutes: float
    oversleep_floor: float
    rest_threshold: int
    bands: list[LabelBand]


@dataclass(frozen=True)
class AwakeBand:
    max_share: float
    score: float


@dataclass(frozen=True)
class SleepScoreConfig:
    """Sleep score component weights and curves.

    Stage targets are shares of time asleep; awake bands are checked in
    ascending ``max_share`` order against the share of the night spent awake.
    """

    duration_weight: float
    quality_weight: float
    interruptions_weight: float
    ideal_minutes: float
    deficit_penalty_scale: float
    deficit_penalty_exponent: float
    deep_target: TargetRange
    rem_target: TargetRange
    deep_share_weight: float
    rem_share_weight: float
    above_target_score: float
    below_target_floor: float
    no_asleep_quality: float
    awake_bands: list[AwakeBand]
    awake_floor: float
    bands: list[LabelBand]


@dataclass(frozen=True)
class AggregationConfig:
    sleep_lookback_hours: float
    trailing_days: int


@dataclass(frozen=True)
class FetchCycleConfig:
    cache_ttl_seconds: float


@dataclass
class ScoringConfig:
    """Complete, validated scoring configuration.

    This is the single in-memory representation of scoring_config.yaml.
    The aggregator, summary builder, score engines and fetch cycle all read
    from this object.

    Attributes:
        version:      Config schema version string.
        metrics:      Metric type → scoring registry entry.
        day_progress: Reference-day window for time-aware scoring.
        score_labels: Composite score label bands.
        recovery:     Recovery score settings.
        sleep_score:  Sleep score settings.
        aggregation:  Aggregation constants.
        fetch_cycle:  Freshness cache settings.
    """

    version: str
    metrics: dict[MetricType, MetricScoringConfig]
    day_progress: DayProgressConfig
    score_labels: ScoreLabelConfig
    recovery: RecoveryConfig
    sleep_score: SleepScoreConfig
    aggregation: AggregationConfig
    fetch_cycle: FetchCycleConfig
    _raw: dict = field(default_factory=dict, repr=False)

    # ------------------------------------------------------------------
    # Convenience accessors
    # ------------------------------------------------------------------

    def metric(self, metric_type: MetricType) -> MetricScoringConfig | None:
        """Return the scoring entry for a metric, or None if unconfigured.

        Unconfigured metrics are excluded from scoring entirely.
        """
        return self.metrics.get(metric_type)

    @property
    def total_weight(self) -> float:
        return sum(m.weight for m in self.metrics.values())

    @property
    def cumulative_metrics(self) -> frozenset[MetricType]:
        return frozenset(t for t, m in self.metrics.items() if m.cumulative)


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when scoring_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError:     If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Scoring config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _parse_bands(raw_bands: Any, section: str, errors: list[str]) -> list[LabelBand]:
    bands: list[LabelBand] = []
    for i, band in enumerate(raw_bands or []):
        if not isinstance(band, dict) or "min" not in band or "label" not in band:
            errors.append(f"{section}.bands[{i}] must have 'min' and 'label'")
            continue
        bands.append(LabelBand(min_score=int(band["min"]), label=str(band["label"])))
    if not bands:
        errors.append(f"{section}.bands is missing or empty")
    return sorted(bands, key=lambda b: b.min_score, reverse=True)


def _parse_metric_type(key: str, section: str, errors: list[str]) -> MetricType | None:
    try:
        return MetricType(key)
    except ValueError:
        errors.append(f"{section}: unknown metric type '{key}'")
        return None


def _parse_share_target(
    raw_target: Any, default: tuple[float, float], name: str, errors: list[str]
) -> TargetRange:
    raw_target = raw_target or {}
    lower = float(raw_target.get("min", default[0]))
    upper = float(raw_target.get("max", default[1]))
    if not (0.0 < lower <= upper <= 1.0):
        errors.append(f"sleep_score.stage_targets.{name}: require 0 < min <= max <= 1")
    return TargetRange(lower=lower, upper=upper)


def _validate_and_build(raw: dict) -> ScoringConfig:
    """Validate the raw YAML dict and construct a ScoringConfig.

    Performs structural validation and applies defaults for optional fields.

    Raises:
        ConfigValidationError: If required fields are missing or invalid.
    """
    errors: list[str] = []

    version = str(raw.get("version", "1.0"))

    # ── Metric registry ──
    metrics_raw = raw.get("metrics", {})
    if not metrics_raw:
        errors.append("'metrics' section is missing or empty")

    metrics: dict[MetricType, MetricScoringConfig] = {}
    for key, cfg in (metrics_raw or {}).items():
        metric_type = _parse_metric_type(key, "metrics", errors)
        if metric_type is None:
            continue
        if not isinstance(cfg, dict):
            errors.append(f"metrics.{key} must be a mapping")
            continue

        try:
            weight = float(cfg.get("weight", 0.0))
        except (TypeError, ValueError):
            errors.append(f"metrics.{key}.weight must be a number, got {cfg.get('weight')!r}")
            continue
        if not (0.0 <= weight <= 1.0):
            errors.append(f"metrics.{key}.weight = {weight} is out of range [0.0, 1.0]")

        target_raw = cfg.get("target") or {}
        if "min" not in target_raw:
            errors.append(f"metrics.{key}.target.min is required")
            continue
        lower = float(target_raw["min"])
        upper = float(target_raw["max"]) if target_raw.get("max") is not None else None
        if upper is not None and upper < lower:
            errors.append(f"metrics.{key}.target.max must be >= min")

        curve = cfg.get("curve", CURVE_RAMP)
        cumulative = bool(cfg.get("cumulative", False))
        if curve not in _CURVES:
            errors.append(f"metrics.{key}.curve must be one of {sorted(_CURVES)}, got {curve!r}")
        elif curve == CURVE_GOLDILOCKS and (upper is None or upper <= lower):
            errors.append(f"metrics.{key}: goldilocks curve needs a closed target with max > min")
        if cumulative and curve != CURVE_RAMP:
            errors.append(f"metrics.{key}: cumulative metrics must use the '{CURVE_RAMP}' curve")
        if curve == CURVE_RAMP and lower <= 0:
            errors.append(f"metrics.{key}: ramp curve needs target.min > 0")

        metrics[metric_type] = MetricScoringConfig(
            type=metric_type,
            weight=weight,
            target=TargetRange(lower=lower, upper=upper),
            curve=curve,
            cumulative=cumulative,
        )

    # Validate total weight sums to ~1.0 (warn only)
    total_w = sum(m.weight for m in metrics.values())
    if metrics and not (0.95 <= total_w <= 1.05):
        logger.warning(
            "Metric weights sum to %.3f (expected ~1.0). "
            "Scores are normalized over present metrics at runtime.",
            total_w,
        )

    # ── Day progress ──
    dp_raw = raw.get("day_progress", {})
    day_progress = DayProgressConfig(
        start_hour=int(dp_raw.get("start_hour", 6)),
        end_hour=int(dp_raw.get("end_hour", 18)),
        before_start_factor=float(dp_raw.get("before_start_factor", 0.05)),
        min_factor=float(dp_raw.get("min_factor", 0.1)),
    )
    if not (0 <= day_progress.start_hour < day_progress.end_hour <= 24):
        errors.append("day_progress: require 0 <= start_hour < end_hour <= 24")
    for name in ("before_start_factor", "min_factor"):
        if not (0.0 < getattr(day_progress, name) <= 1.0):
            errors.append(f"day_progress.{name} must be in (0.0, 1.0]")

    # ── Score labels ──
    sl_raw = raw.get("score_labels", {})
    score_labels = ScoreLabelConfig(
        bands=_parse_bands(sl_raw.get("bands"), "score_labels", errors),
        morning_cutoff_hour=int(sl_raw.get("morning_cutoff_hour", 12)),
        morning_floor_label=str(sl_raw.get("morning_floor_label", "Getting Started")),
        morning_floor_below=int(sl_raw.get("morning_floor_below", 40)),
    )

    # ── Recovery score ──
    rs_raw = raw.get("recovery_score", {})
    recovery_weights: dict[MetricType, float] = {}
    for key, w in (rs_raw.get("weights") or {}).items():
        metric_type = _parse_metric_type(key, "recovery_score.weights", errors)
        if metric_type is not None:
            recovery_weights[metric_type] = float(w)
    if not recovery_weights:
        errors.append("recovery_score.weights is missing or empty")
    sleep_ideal_raw = rs_raw.get("sleep_ideal_minutes", {})
    recovery = RecoveryConfig(
        weights=recovery_weights,
        hrv_baseline_ms=float(rs_raw.get("hrv_baseline_ms", 50)),
        resting_hr_baseline_bpm=float(rs_raw.get("resting_hr_baseline_bpm", 62)),
        sleep_ideal=TargetRange(
            lower=float(sleep_ideal_raw.get("min", 420)),
            upper=float(sleep_ideal_raw.get("max", 540)),
        ),
        oversleep_decay_minutes=float(rs_raw.get("oversleep_decay_minutes", 180)),
        oversleep_floor=float(rs_raw.get("oversleep_floor", 0.5)),
        rest_threshold=int(rs_raw.get("rest_threshold", 40)),
        bands=_parse_bands(rs_raw.get("bands"), "recovery_score", errors),
    )
    if recovery.hrv_baseline_ms <= 0 or recovery.sleep_ideal.lower <= 0:
        errors.append("recovery_score baselines must be positive")

    # ── Sleep score ──
    ss_raw = raw.get("sleep_score", {})
    ss_weights = ss_raw.get("weights") or {}
    penalty_raw = ss_raw.get("deficit_penalty") or {}
    targets_raw = ss_raw.get("stage_targets") or {}
    mix_raw = ss_raw.get("stage_mix") or {}
    awake_bands: list[AwakeBand] = []
    for i, band in enumerate(ss_raw.get("awake_bands") or _DEFAULT_AWAKE_BANDS):
        if not isinstance(band, dict) or "max_share" not in band or "score" not in band:
            errors.append(f"sleep_score.awake_bands[{i}] must have 'max_share' and 'score'")
            continue
        awake_bands.append(AwakeBand(max_share=float(band["max_share"]), score=float(band["score"])))
    sleep_score = SleepScoreConfig(
        duration_weight=float(ss_weights.get("duration", 0.5)),
        quality_weight=float(ss_weights.get("quality", 0.3)),
        interruptions_weight=float(ss_weights.get("interruptions", 0.2)),
        ideal_minutes=float(ss_raw.get("ideal_minutes", 420)),
        deficit_penalty_scale=float(penalty_raw.get("scale", 0.35)),
        deficit_penalty_exponent=float(penalty_raw.get("exponent", 1.3)),
        deep_target=_parse_share_target(targets_raw.get("deep"), (0.12, 0.20), "deep", errors),
        rem_target=_parse_share_target(targets_raw.get("rem"), (0.15, 0.25), "rem", errors),
        deep_share_weight=float(mix_raw.get("deep", 0.6)),
        rem_share_weight=float(mix_raw.get("rem", 0.4)),
        above_target_score=float(ss_raw.get("above_target_score", 0.95)),
        below_target_floor=float(ss_raw.get("below_target_floor", 0.4)),
        no_asleep_quality=float(ss_raw.get("no_asleep_quality", 0.5)),
        awake_bands=sorted(awake_bands, key=lambda b: b.max_share),
        awake_floor=float(ss_raw.get("awake_floor", 0.3)),
        bands=_parse_bands(ss_raw.get("bands") or _DEFAULT_SLEEP_BANDS, "sleep_score", errors),
    )
    if sleep_score.duration_weight <= 0:
        errors.append("sleep_score.weights.duration must be > 0")
    if sleep_score.quality_weight < 0 or sleep_score.interruptions_weight < 0:
        errors.append("sleep_score.weights must not be negative")
    if sleep_score.ideal_minutes <= 0:
        errors.append("sleep_score.ideal_minutes must be > 0")
    if sleep_score.deep_share_weight + sleep_score.rem_share_weight <= 0:
        errors.append("sleep_score.stage_mix must have a positive total")
    for name in ("above_target_score", "below_target_floor", "no_asleep_quality", "awake_floor"):
        if not (0.0 <= getattr(sleep_score, name) <= 1.0):
            errors.append(f"sleep_score.{name} must be in [0.0, 1.0]")
    if any(not (0.0 <= b.score <= 1.0) for b in sleep_score.awake_bands):
        errors.append("sleep_score.awake_bands scores must be in [0.0, 1.0]")

    # ── Aggregation ──
    ag_raw = raw.get("aggregation", {})
    aggregation = AggregationConfig(
        sleep_lookback_hours=float(ag_raw.get("sleep_lookback_hours", 12)),
        trailing_days=int(ag_raw.get("trailing_days", 7)),
    )
    if aggregation.trailing_days < 1:
        errors.append("aggregation.trailing_days must be >= 1")

    # ── Fetch cycle ──
    fc_raw = raw.get("fetch_cycle", {})
    fetch_cycle = FetchCycleConfig(
        cache_ttl_seconds=float(fc_raw.get("cache_ttl_seconds", 300)),
    )

    if errors:
        raise ConfigValidationError(
            f"scoring_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return ScoringConfig(
        version=version,
        metrics=metrics,
        day_progress=day_progress,
        score_labels=score_labels,
        recovery=recovery,
        sleep_score=sleep_score,
        aggregation=aggregation,
        fetch_cycle=fetch_cycle,
        _raw=raw,
    )


def load_scoring_config(path: Path | None = None) -> ScoringConfig:
    """Load and validate the scoring config from disk.

    Args:
        path: Override path to YAML. Uses the bundled scoring_config.yaml by default.

    Returns:
        Validated ScoringConfig instance.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded scoring config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: ScoringConfig | None = None
_config_lock = threading.Lock()


def get_scoring_config() -> ScoringConfig:
    """Return the global ScoringConfig singleton, loading it on first call.

    Thread-safe.  Use ``reload_scoring_config()`` to refresh after YAML changes.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_scoring_config()
    return _config


def reload_scoring_config(path: Path | None = None) -> ScoringConfig:
    """Reload the scoring config from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_scoring_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded scoring config: %s → %s", old_version, new_config.version)
    return new_config
