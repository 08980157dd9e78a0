from datetime import date, datetime

from pydantic import BaseModel, Field


class MetricTrendResponse(BaseModel):
    direction: str  # up | down | stable | new
    change: float = 0.0


class TrendResponse(BaseModel):
    visibility: MetricTrendResponse
    sentiment: MetricTrendResponse
    position: MetricTrendResponse


class CompetitiveStatResponse(BaseModel):
    entity_type: str
    entity_name: str
    competitor_id: int | None = None
    provider_id: int | None = None  # None = all providers
    entity_url: str | None = None
    visibility: float
    sentiment: float | None = None
    sentiment_level: str | None = None
    position: float | None = None
    position_formatted: str | None = None
    analyzed_at: datetime
    trend: TrendResponse


class CompetitiveStatsListResponse(BaseModel):
    brand_id: int
    stats: list[CompetitiveStatResponse]


class DailyEntityVisibility(BaseModel):
    entity_name: str
    entity_type: str
    visibility: float
    prompts_mentioned: int
    total_prompts: int


class VisibilityHistoryResponse(BaseModel):
    brand_id: int
    days: dict[date, dict[str, DailyEntityVisibility]] = Field(default_factory=dict)
