"""Statistics Aggregator: competitive visibility snapshots and trends.

Per tracked entity (brand + accepted competitors), optionally scoped to one
provider, over prompts analyzed in [window_start, window_end]:

    visibility = prompts mentioning the entity / prompts in window × 100   (2 dp)
    sentiment  = mean of non-null mention sentiments                      (2 dp)
    position   = mean ordinal position of the entity's mentions           (1 dp)

Snapshots are append-only: every recalculation writes new CompetitiveStat
rows and the "current" stat is the newest row per entity. Entities with no
mentions in the window get no row.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from visibility_tracker.core.config import settings
from visibility_tracker.core.exceptions import NotFoundError, VisibilityTrackerError
from visibility_tracker.core.metrics import VISIBILITY_RECALCULATIONS
from visibility_tracker.models.brand import Brand
from visibility_tracker.models.competitive_stat import CompetitiveStat
from visibility_tracker.models.mention import Mention
from visibility_tracker.models.prompt import BrandPrompt
from visibility_tracker.services.citation_extractor import normalize_domain
from visibility_tracker.services.mention_extractor import TrackedEntity, tracked_entities

logger = logging.getLogger(__name__)

TREND_UP = "up"
TREND_DOWN = "down"
TREND_STABLE = "stable"
TREND_NEW = "new"


@dataclass(frozen=True)
class MetricTrend:
    direction: str
    change: float = 0.0


@dataclass(frozen=True)
class Trend:
    visibility: MetricTrend
    sentiment: MetricTrend
    position: MetricTrend

    @classmethod
    def new(cls) -> Trend:
        return cls(MetricTrend(TREND_NEW), MetricTrend(TREND_NEW), MetricTrend(TREND_NEW))


@dataclass
class StatSnapshot:
    stat: CompetitiveStat
    trend: Trend


# ---------------------------------------------------------------------------
# Trend maths
# ---------------------------------------------------------------------------


def _direction(delta: float) -> str:
    if delta > 0:
        return TREND_UP
    if delta < 0:
        return TREND_DOWN
    return TREND_STABLE


def compute_trend(current, previous) -> Trend:
    """Compare two stats (anything with visibility/sentiment/position).

    Position is inverted: a lower position is an improvement, reported as
    "up" with a positive change.
    """
    if previous is None:
        return Trend.new()

    visibility_delta = round(current.visibility - previous.visibility, 2)
    visibility = MetricTrend(_direction(visibility_delta), visibility_delta)

    if current.sentiment is None or previous.sentiment is None:
        sentiment = MetricTrend(TREND_NEW)
    else:
        sentiment_delta = round(current.sentiment - previous.sentiment, 2)
        sentiment = MetricTrend(_direction(sentiment_delta), sentiment_delta)

    if current.position is None or previous.position is None:
        position = MetricTrend(TREND_NEW)
    else:
        position_delta = round(previous.position - current.position, 1)
        position = MetricTrend(_direction(position_delta), position_delta)

    return Trend(visibility=visibility, sentiment=sentiment, position=position)


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


def sentiment_level(sentiment: float | None) -> str | None:
    if sentiment is None:
        return None
    if sentiment >= 80:
        return "Excellent"
    if sentiment >= 70:
        return "Good"
    if sentiment >= 60:
        return "Fair"
    if sentiment >= 50:
        return "Poor"
    return "Very Poor"


def position_formatted(position: float | None) -> str | None:
    """1.0 -> "1st", 2.0 -> "2nd", 2.5 -> "2.5"."""
    if position is None:
        return None
    if position != int(position):
        return f"{position:.1f}"

    rank = int(position)
    if rank % 100 in (11, 12, 13):
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(rank % 10, "th")
    return f"{rank}{suffix}"


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def _entity_key(entity_type: str, competitor_id: int | None) -> tuple[str, int | None]:
    return (entity_type, competitor_id)


def _scope_clause(column, value):
    return column.is_(None) if value is None else column == value


async def _previous_stat(
    db: AsyncSession,
    brand_id: int,
    entity: TrackedEntity,
    provider_id: int | None,
    before: datetime,
) -> CompetitiveStat | None:
    result = await db.execute(
        select(CompetitiveStat)
        .where(
            CompetitiveStat.brand_id == brand_id,
            CompetitiveStat.entity_type == entity.entity_type,
            _scope_clause(CompetitiveStat.competitor_id, entity.competitor_id),
            _scope_clause(CompetitiveStat.provider_id, provider_id),
            CompetitiveStat.analyzed_at < before,
        )
        .order_by(CompetitiveStat.analyzed_at.desc(), CompetitiveStat.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


def _window_prompts_query(brand_id: int, window_start: datetime, window_end: datetime, provider_id: int | None):
    query = select(BrandPrompt.id).where(
        BrandPrompt.brand_id == brand_id,
        BrandPrompt.analysis_completed_at.is_not(None),
        BrandPrompt.analysis_completed_at >= window_start,
        BrandPrompt.analysis_completed_at <= window_end,
    )
    if provider_id is not None:
        query = query.where(BrandPrompt.provider_id == provider_id)
    return query


async def recalculate(
    db: AsyncSession,
    brand_id: int,
    window_start: datetime,
    window_end: datetime,
    provider_id: int | None = None,
    *,
    session_id: str | None = None,
    analyzed_at: datetime | None = None,
) -> list[StatSnapshot]:
    """Write one new CompetitiveStat per mentioned entity and return them with trends.

    The brand row stays locked until the commit at the end, so recalculations
    of the same brand run one at a time.
    """
    session_id = session_id or uuid.uuid4().hex
    analyzed_at = analyzed_at or datetime.now(timezone.utc)

    brand = (
        await db.execute(select(Brand).where(Brand.id == brand_id).with_for_update())
    ).scalar_one_or_none()
    if brand is None:
        raise NotFoundError(f"Brand {brand_id} not found")

    entities = await tracked_entities(db, brand_id)

    window_prompts = _window_prompts_query(brand_id, window_start, window_end, provider_id)
    prompt_ids = set((await db.execute(window_prompts)).scalars().all())
    total_prompts = len(prompt_ids)

    mention_query = select(Mention).where(
        Mention.brand_id == brand_id,
        Mention.brand_prompt_id.in_(window_prompts),
        Mention.analyzed_at >= window_start,
        Mention.analyzed_at <= window_end,
    )
    if provider_id is not None:
        mention_query = mention_query.where(Mention.provider_id == provider_id)
    mentions = (await db.execute(mention_query)).scalars().all()

    by_entity: dict[tuple[str, int | None], list[Mention]] = defaultdict(list)
    for mention in mentions:
        by_entity[_entity_key(mention.entity_type, mention.competitor_id)].append(mention)

    snapshots: list[StatSnapshot] = []
    for entity in entities:
        entity_mentions = by_entity.get(entity.key)
        if not entity_mentions:
            continue

        mentioned_prompts = len({m.brand_prompt_id for m in entity_mentions})
        visibility = round(mentioned_prompts / total_prompts * 100, 2) if total_prompts else 0.0

        sentiments = [m.sentiment for m in entity_mentions if m.sentiment is not None]
        sentiment = round(sum(sentiments) / len(sentiments), 2) if sentiments else None
        position = round(sum(m.position for m in entity_mentions) / len(entity_mentions), 1)

        previous = await _previous_stat(db, brand_id, entity, provider_id, analyzed_at)

        domain = normalize_domain(entity.domain)
        stat = CompetitiveStat(
            brand_id=brand_id,
            entity_type=entity.entity_type,
            competitor_id=entity.competitor_id,
            provider_id=provider_id,
            entity_name=entity.name,
            entity_url=f"https://{domain}" if domain else None,
            visibility=visibility,
            sentiment=sentiment,
            position=position,
            raw_data={
                "prompts_mentioned": mentioned_prompts,
                "total_prompts": total_prompts,
                "total_mentions": sum(m.mention_count for m in entity_mentions),
                "calculation_method": "presence_based",
            },
            window_start=window_start,
            window_end=window_end,
            analysis_session_id=session_id,
            analyzed_at=analyzed_at,
        )
        db.add(stat)
        snapshots.append(StatSnapshot(stat=stat, trend=compute_trend(stat, previous)))

    await db.commit()

    logger.info(
        "Recalculated visibility for brand %d: %d entities, %d prompts in window (provider=%s, session=%s)",
        brand_id,
        len(snapshots),
        total_prompts,
        provider_id,
        session_id[:8],
        extra={"session_id": session_id, "brand_id": brand_id},
    )
    return snapshots


async def recalculate_all(
    db: AsyncSession,
    brand_ids: list[int] | None = None,
    window_days: int | None = None,
    provider_id: int | None = None,
    *,
    now: datetime | None = None,
) -> dict[int, list[StatSnapshot]]:
    """Recalculate every given brand (all brands when None) over the last window_days."""
    now = now or datetime.now(timezone.utc)
    window_days = window_days or settings.recalculation_window_days
    window_start = now - timedelta(days=window_days)
    session_id = uuid.uuid4().hex

    if brand_ids is None:
        brand_ids = list((await db.execute(select(Brand.id).order_by(Brand.id))).scalars().all())

    results: dict[int, list[StatSnapshot]] = {}
    for brand_id in brand_ids:
        try:
            results[brand_id] = await recalculate(
                db,
                brand_id,
                window_start,
                now,
                provider_id,
                session_id=session_id,
                analyzed_at=now,
            )
            VISIBILITY_RECALCULATIONS.labels(status="success").inc()
        except (VisibilityTrackerError, SQLAlchemyError) as e:
            await db.rollback()
            VISIBILITY_RECALCULATIONS.labels(status="error").inc()
            logger.error(
                "Visibility recalculation failed for brand %d: %s",
                brand_id,
                e,
                extra={"session_id": session_id, "brand_id": brand_id},
            )
    return results


async def latest_stats_with_trends(
    db: AsyncSession,
    brand_id: int,
    provider_id: int | None = None,
) -> list[StatSnapshot]:
    """Newest snapshot per entity in the given provider scope, ordered by visibility."""
    result = await db.execute(
        select(CompetitiveStat)
        .where(
            CompetitiveStat.brand_id == brand_id,
            _scope_clause(CompetitiveStat.provider_id, provider_id),
        )
        .order_by(CompetitiveStat.analyzed_at.desc(), CompetitiveStat.id.desc())
    )

    history: dict[tuple[str, int | None], list[CompetitiveStat]] = defaultdict(list)
    for stat in result.scalars().all():
        rows = history[_entity_key(stat.entity_type, stat.competitor_id)]
        if len(rows) < 2:
            rows.append(stat)

    snapshots = [
        StatSnapshot(stat=rows[0], trend=compute_trend(rows[0], rows[1] if len(rows) > 1 else None))
        for rows in history.values()
    ]
    snapshots.sort(key=lambda s: -s.stat.visibility)
    return snapshots


async def historical_visibility(
    db: AsyncSession,
    brand_id: int,
    start: datetime,
    end: datetime,
    provider_id: int | None = None,
) -> dict[date, dict[str, dict]]:
    """Daily visibility per entity, from mention rows.

    Returns {day: {entity label: {visibility, entity_name, entity_type,
    prompts_mentioned, total_prompts}}} ordered by day.
    """
    query = select(
        Mention.analyzed_at,
        Mention.brand_prompt_id,
        Mention.entity_type,
        Mention.entity_name,
        Mention.entity_domain,
    ).where(
        Mention.brand_id == brand_id,
        Mention.analyzed_at >= start,
        Mention.analyzed_at <= end,
    )
    if provider_id is not None:
        query = query.where(Mention.provider_id == provider_id)

    daily_prompts: dict[date, set[int]] = defaultdict(set)
    daily_entities: dict[date, dict[str, dict]] = defaultdict(dict)

    for analyzed_at, prompt_id, entity_type, entity_name, entity_domain in (await db.execute(query)).all():
        day = analyzed_at.date()
        daily_prompts[day].add(prompt_id)
        label = entity_domain or entity_name
        entry = daily_entities[day].setdefault(
            label,
            {"entity_name": entity_name, "entity_type": entity_type, "prompt_ids": set()},
        )
        entry["prompt_ids"].add(prompt_id)

    history: dict[date, dict[str, dict]] = {}
    for day in sorted(daily_entities):
        total = len(daily_prompts[day])
        history[day] = {
            label: {
                "visibility": round(len(entry["prompt_ids"]) / total * 100, 2),
                "entity_name": entry["entity_name"],
                "entity_type": entry["entity_type"],
                "prompts_mentioned": len(entry["prompt_ids"]),
                "total_prompts": total,
            }
            for label, entry in daily_entities[day].items()
        }
    return history
