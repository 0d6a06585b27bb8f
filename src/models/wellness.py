"""Pydantic response models for the wellness API: summaries, scores, insights."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import Field

from src.models.base import LifeIndexBase
from src.wellness.base import DailyHealthSummary, MetricType
from src.wellness.cycle import CycleResult
from src.wellness.score_engine import CompositeScore


# ---------- Summaries ----------

class SleepStagesRead(LifeIndexBase):
    awake_minutes: float
    rem_minutes: float
    core_minutes: float
    deep_minutes: float
    total_asleep_minutes: float
    total_minutes: float
    awake_percent: int
    rem_percent: int
    core_percent: int
    deep_percent: int


class DailySummaryRead(LifeIndexBase):
    date: date
    metrics: dict[MetricType, float] = Field(default_factory=dict)
    sleep_stages: SleepStagesRead | None = None
    score: int | None = Field(default=None, ge=0, le=100)
    has_data: bool = False

    @classmethod
    def from_summary(cls, summary: DailyHealthSummary) -> DailySummaryRead:
        return cls(
            date=summary.date,
            metrics=dict(summary.metrics),
            sleep_stages=(
                SleepStagesRead.model_validate(summary.sleep_stages)
                if summary.sleep_stages is not None
                else None
            ),
            score=summary.score,
            has_data=summary.has_data,
        )


# ---------- Scores ----------

class BreakdownEntryRead(LifeIndexBase):
    type: MetricType
    display_name: str
    normalized_score: float = Field(ge=0, le=1)
    raw_value: float
    unit: str


class ContributorRead(LifeIndexBase):
    name: str
    percentage: float


class CompositeScoreRead(LifeIndexBase):
    score: int = Field(ge=0, le=100)
    label: str
    mode: str
    explanation: str
    progress: float
    breakdown: list[BreakdownEntryRead] = Field(default_factory=list)
    top_contributor: ContributorRead | None = None
    weakest_area: ContributorRead | None = None

    @classmethod
    def from_score(cls, result: CompositeScore) -> CompositeScoreRead:
        def contributor(entry) -> ContributorRead | None:
            if entry is None:
                return None
            return ContributorRead(
                name=entry.type.display_name, percentage=entry.normalized_score * 100
            )

        return cls(
            score=result.score,
            label=result.label,
            mode=result.mode.value,
            explanation=result.explanation,
            progress=result.progress,
            breakdown=[
                BreakdownEntryRead(
                    type=e.type,
                    display_name=e.type.display_name,
                    normalized_score=e.normalized_score,
                    raw_value=e.raw_value,
                    unit=e.type.unit,
                )
                for e in result.breakdown
            ],
            top_contributor=contributor(result.top_contributor),
            weakest_area=contributor(result.weakest_area),
        )


class RecoveryRead(LifeIndexBase):
    score: int = Field(ge=0, le=100)
    label: str
    should_rest: bool


class SleepScoreRead(LifeIndexBase):
    score: int = Field(ge=0, le=100)
    label: str


class InsightRead(LifeIndexBase):
    icon: str
    text: str
    color: str
    priority: int


# ---------- Responses ----------

class TodayResponse(LifeIndexBase):
    current: DailySummaryRead
    substituted: bool
    score: CompositeScoreRead
    recovery: RecoveryRead | None = None
    sleep: SleepScoreRead | None = None
    insights: list[InsightRead] = Field(default_factory=list)
    yesterday_score: int | None = None
    weekly_average: int | None = None
    completed_at: datetime

    @classmethod
    def from_cycle(cls, result: CycleResult) -> TodayResponse:
        return cls(
            current=DailySummaryRead.from_summary(result.current),
            substituted=result.substituted,
            score=CompositeScoreRead.from_score(result.score),
            recovery=RecoveryRead.model_validate(result.recovery) if result.recovery else None,
            sleep=SleepScoreRead.model_validate(result.sleep) if result.sleep else None,
            insights=[InsightRead.model_validate(i) for i in result.insights],
            yesterday_score=result.yesterday_score,
            weekly_average=result.weekly_average,
            completed_at=result.completed_at,
        )


class WeekResponse(LifeIndexBase):
    days: list[DailySummaryRead]
    weekly_average: int | None = None

    @classmethod
    def from_cycle(cls, result: CycleResult) -> WeekResponse:
        return cls(
            days=[DailySummaryRead.from_summary(d) for d in result.week],
            weekly_average=result.weekly_average,
        )
