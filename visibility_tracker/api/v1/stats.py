"""Read side of competitive visibility: latest snapshots and daily history."""

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from visibility_tracker.core.exceptions import NotFoundError
from visibility_tracker.db.postgres import get_db
from visibility_tracker.models.brand import Brand
from visibility_tracker.schemas.stats import (
    CompetitiveStatResponse,
    CompetitiveStatsListResponse,
    MetricTrendResponse,
    TrendResponse,
    VisibilityHistoryResponse,
)
from visibility_tracker.services.statistics import (
    StatSnapshot,
    historical_visibility,
    latest_stats_with_trends,
    position_formatted,
    sentiment_level,
)

router = APIRouter(prefix="/brands/{brand_id}", tags=["stats"])


async def _get_brand(brand_id: int, db: AsyncSession) -> Brand:
    brand = await db.get(Brand, brand_id)
    if brand is None:
        raise NotFoundError(f"Brand {brand_id} not found")
    return brand


def _to_response(snapshot: StatSnapshot) -> CompetitiveStatResponse:
    stat, trend = snapshot.stat, snapshot.trend
    return CompetitiveStatResponse(
        entity_type=stat.entity_type,
        entity_name=stat.entity_name,
        competitor_id=stat.competitor_id,
        provider_id=stat.provider_id,
        entity_url=stat.entity_url,
        visibility=stat.visibility,
        sentiment=stat.sentiment,
        sentiment_level=sentiment_level(stat.sentiment),
        position=stat.position,
        position_formatted=position_formatted(stat.position),
        analyzed_at=stat.analyzed_at,
        trend=TrendResponse(
            visibility=MetricTrendResponse(direction=trend.visibility.direction, change=trend.visibility.change),
            sentiment=MetricTrendResponse(direction=trend.sentiment.direction, change=trend.sentiment.change),
            position=MetricTrendResponse(direction=trend.position.direction, change=trend.position.change),
        ),
    )


@router.get("/competitive-stats", response_model=CompetitiveStatsListResponse)
async def get_competitive_stats(
    brand_id: int,
    provider_id: int | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    """Current stat per entity with its trend against the previous snapshot."""
    await _get_brand(brand_id, db)
    snapshots = await latest_stats_with_trends(db, brand_id, provider_id)
    return CompetitiveStatsListResponse(brand_id=brand_id, stats=[_to_response(s) for s in snapshots])


@router.get("/visibility-history", response_model=VisibilityHistoryResponse)
async def get_visibility_history(
    brand_id: int,
    days: int = Query(default=30, ge=1, le=365),
    provider_id: int | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    await _get_brand(brand_id, db)
    end = datetime.now(timezone.utc)
    history = await historical_visibility(db, brand_id, end - timedelta(days=days), end, provider_id)
    return VisibilityHistoryResponse(brand_id=brand_id, days=history)
