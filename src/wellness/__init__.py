"""LifeIndex wellness core.

This package reconciles partial, multi-source daily health data into
immutable day summaries, then reduces them to a composite 0–100 wellness
score, a recovery score, a sleep score and a short list of ranked insights.

Subpackages:
    providers/ — HealthDataProvider implementations (in-memory, Apple Health export)

Core modules:
    base            — HealthDataProvider ABC, canonical data models, errors
    config_loader   — Load/validate/hot-reload scoring_config.yaml
    aggregator      — Per-metric primary/fallback resolution
    sleep_stages    — Sleep stage classification
    summary_builder — Day and trailing-week summaries, staleness substitution
    score_engine    — Composite wellness score
    recovery_score  — Recovery score
    sleep_score     — Sleep score
    insights        — Priority-ranked insights
    cycle           — Fetch cycle service
"""

from src.wellness.base import (
    AuthorizationError,
    DailyHealthSummary,
    HealthDataProvider,
    HealthInsight,
    MetricType,
    ProviderUnavailableError,
    SleepStages,
    WellnessError,
)
from src.wellness.config_loader import ScoringConfig, get_scoring_config

__all__ = [
    "HealthDataProvider",
    "DailyHealthSummary",
    "HealthInsight",
    "MetricType",
    "SleepStages",
    "WellnessError",
    "AuthorizationError",
    "ProviderUnavailableError",
    "ScoringConfig",
    "get_scoring_config",
]
