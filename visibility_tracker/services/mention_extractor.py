"""Mention Extractor: finds the brand and its competitors in AI responses.

For every tracked entity (brand first, then accepted competitors by id):
  - case-insensitive search for its name and, separately, its domain
  - mention_count = number of distinct matches
  - position = ordinal rank of the entity's earliest match among all
    entities found in the text (1 = mentioned first)
  - context = text around the first match, whitespace collapsed

Entities with no match produce no Mention row. The result depends only on
the text and the ordered entity list.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from visibility_tracker.core.config import settings
from visibility_tracker.core.exceptions import ExtractionError, NotFoundError
from visibility_tracker.models.brand import COMPETITOR_ACCEPTED, Brand, Competitor
from visibility_tracker.models.mention import ENTITY_BRAND, ENTITY_COMPETITOR, Mention
from visibility_tracker.models.prompt import BrandPrompt
from visibility_tracker.services.citation_extractor import normalize_domain

logger = logging.getLogger(__name__)

DEFAULT_BRAND_SENTIMENT = 50.0
_MAX_CONTEXT_CHARS = 300
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


@dataclass(frozen=True)
class TrackedEntity:
    """The brand or one accepted competitor, as matched against text."""

    entity_type: str  # brand | competitor
    name: str
    domain: str | None = None
    competitor_id: int | None = None

    @property
    def key(self) -> tuple[str, int | None]:
        return (self.entity_type, self.competitor_id)


@dataclass
class EntityMatch:
    entity: TrackedEntity
    offsets: list[int]
    position: int
    context: str

    @property
    def mention_count(self) -> int:
        return len(self.offsets)

    @property
    def first_offset(self) -> int:
        return self.offsets[0]


# ---------------------------------------------------------------------------
# Pure matching
# ---------------------------------------------------------------------------


def _build_pattern(term: str) -> re.Pattern:
    """Case-insensitive match that does not start or end inside a word."""
    return re.compile(rf"(?<!\w){re.escape(term)}(?!\w)", re.IGNORECASE)


def _find_spans(text: str, term: str) -> list[tuple[int, int]]:
    if not term:
        return []
    return [(m.start(), m.end()) for m in _build_pattern(term).finditer(text)]


def _overlaps(span: tuple[int, int], others: list[tuple[int, int]]) -> bool:
    return any(span[0] < end and start < span[1] for start, end in others)


def _entity_spans(text: str, entity: TrackedEntity) -> list[tuple[int, int]]:
    """Name matches plus domain matches that don't overlap a name match."""
    spans = _find_spans(text, entity.name.strip())

    domain = normalize_domain(entity.domain)
    if domain and domain.lower() != entity.name.strip().lower():
        for span in _find_spans(text, domain):
            if not _overlaps(span, spans):
                spans.append(span)

    return sorted(spans)


def _extract_context(text: str, span: tuple[int, int], radius: int) -> str:
    start = max(0, span[0] - radius)
    end = min(len(text), span[1] + radius)
    fragment = _CONTROL_CHARS.sub("", text[start:end])
    return " ".join(fragment.split())[:_MAX_CONTEXT_CHARS]


def find_mentions(
    text: str,
    entities: list[TrackedEntity],
    context_radius: int | None = None,
) -> list[EntityMatch]:
    """Locate every tracked entity in the text.

    Returns matches in entity order. Ties on earliest offset are ranked by
    entity order.
    """
    if not isinstance(text, str) or not text.strip():
        raise ExtractionError("response text is empty")
    if not entities:
        raise ExtractionError("no tracked entities")

    radius = settings.mention_context_radius if context_radius is None else context_radius

    found: list[tuple[int, TrackedEntity, list[tuple[int, int]]]] = []
    for order, entity in enumerate(entities):
        spans = _entity_spans(text, entity)
        if spans:
            found.append((order, entity, spans))

    ranking = sorted(found, key=lambda item: (item[2][0][0], item[0]))
    positions = {order: rank for rank, (order, _, _) in enumerate(ranking, start=1)}

    return [
        EntityMatch(
            entity=entity,
            offsets=[s[0] for s in spans],
            position=positions[order],
            context=_extract_context(text, spans[0], radius),
        )
        for order, entity, spans in found
    ]


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


async def tracked_entities(db: AsyncSession, brand_id: int) -> list[TrackedEntity]:
    """The brand followed by its accepted competitors ordered by id."""
    brand = await db.get(Brand, brand_id)
    if brand is None:
        raise NotFoundError(f"Brand {brand_id} not found")

    entities = [TrackedEntity(entity_type=ENTITY_BRAND, name=brand.name, domain=brand.website)]

    result = await db.execute(
        select(Competitor)
        .where(Competitor.brand_id == brand_id, Competitor.status == COMPETITOR_ACCEPTED)
        .order_by(Competitor.id)
    )
    for competitor in result.scalars().all():
        entities.append(
            TrackedEntity(
                entity_type=ENTITY_COMPETITOR,
                name=competitor.name,
                domain=competitor.domain,
                competitor_id=competitor.id,
            )
        )
    return entities


def _mention_sentiment(
    entity: TrackedEntity,
    prompt_sentiment: float | None,
    competitor_sentiments: dict | None,
) -> float | None:
    if entity.entity_type == ENTITY_BRAND:
        return prompt_sentiment if prompt_sentiment is not None else DEFAULT_BRAND_SENTIMENT

    value = (competitor_sentiments or {}).get(entity.name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return max(0.0, min(100.0, float(value)))


def extract(
    db: AsyncSession,
    *,
    prompt: BrandPrompt,
    text: str,
    entities: list[TrackedEntity],
    session_id: str,
    provider_id: int | None,
    competitor_sentiments: dict | None = None,
    analyzed_at: datetime | None = None,
) -> list[Mention]:
    """Find mentions in one response and stage a Mention row per matched entity.

    Rows are added to the session; the caller commits.
    """
    matches = find_mentions(text, entities)
    analyzed_at = analyzed_at or datetime.now(timezone.utc)

    mentions: list[Mention] = []
    for match in matches:
        entity = match.entity
        mention = Mention(
            brand_prompt_id=prompt.id,
            brand_id=prompt.brand_id,
            provider_id=provider_id,
            entity_type=entity.entity_type,
            competitor_id=entity.competitor_id,
            entity_name=entity.name,
            entity_domain=normalize_domain(entity.domain) or None,
            mention_count=match.mention_count,
            position=match.position,
            context=match.context,
            sentiment=_mention_sentiment(entity, prompt.sentiment, competitor_sentiments),
            session_id=session_id,
            analyzed_at=analyzed_at,
        )
        db.add(mention)
        mentions.append(mention)

    logger.info(
        "Extracted %d mentions for prompt %d (session=%s, brand_mentioned=%s)",
        len(mentions),
        prompt.id,
        session_id[:8],
        any(m.entity_type == ENTITY_BRAND for m in mentions),
    )
    return mentions


async def regenerate_mentions(
    db: AsyncSession,
    brand_id: int,
    days: int,
    now: datetime | None = None,
) -> int:
    """Re-extract mentions from stored responses of recently analyzed prompts.

    Each prompt gets a fresh session id; earlier mention rows are kept.
    Returns the number of prompts processed.
    """
    now = now or datetime.now(timezone.utc)
    entities = await tracked_entities(db, brand_id)

    result = await db.execute(
        select(BrandPrompt)
        .where(
            BrandPrompt.brand_id == brand_id,
            BrandPrompt.ai_response.is_not(None),
            BrandPrompt.analysis_completed_at >= now - timedelta(days=days),
        )
        .order_by(BrandPrompt.id)
    )

    processed = 0
    for prompt in result.scalars().all():
        try:
            extract(
                db,
                prompt=prompt,
                text=prompt.ai_response,
                entities=entities,
                session_id=uuid.uuid4().hex,
                provider_id=prompt.provider_id,
                competitor_sentiments=prompt.competitor_sentiments,
                analyzed_at=now,
            )
            processed += 1
        except ExtractionError as e:
            logger.warning("Skipping mention regeneration for prompt %d: %s", prompt.id, e)

    await db.flush()
    logger.info("Regenerated mentions for %d prompts of brand %d", processed, brand_id)
    return processed
