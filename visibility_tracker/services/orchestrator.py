"""Analysis Orchestrator: runs one analysis batch for a brand.

A batch:
  1. selects eligible prompts (active, matching the filter, and not yet
     analyzed unless force_reanalyze)
  2. assigns a provider to every prompt once, via weighted apportionment
  3. runs one independent unit per prompt (gateway call with its own
     timeout) under a concurrency limit
  4. applies each outcome to its own prompt only

A failing unit never affects another prompt. Only batch-level setup errors
(no providers, bad weights, unknown brand) propagate.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from visibility_tracker.core.config import settings
from visibility_tracker.core.exceptions import ConfigurationError, ExtractionError, NotFoundError
from visibility_tracker.core.metrics import ANALYSIS_BATCHES, ANALYSIS_UNITS
from visibility_tracker.gateway.gateway import bounded_call
from visibility_tracker.gateway.types import GatewayResult, ProviderGateway, ProviderRef
from visibility_tracker.models.brand import Brand
from visibility_tracker.models.mention import ENTITY_COMPETITOR
from visibility_tracker.models.prompt import PROMPT_ACTIVE, BrandPrompt, PromptResource
from visibility_tracker.services import mention_extractor
from visibility_tracker.services.apportionment import Shuffler, allocate, validate_weights
from visibility_tracker.services.citation_extractor import extract_resources
from visibility_tracker.services.mention_extractor import TrackedEntity
from visibility_tracker.services.provider_registry import ProviderRegistry

logger = logging.getLogger(__name__)

_MAX_ERROR_LENGTH = 2000


@dataclass(frozen=True)
class PromptFilter:
    """Narrows a batch to specific prompts and/or to prompts whose last run failed."""

    prompt_ids: frozenset[int] | None = None
    only_failed: bool = False

    @classmethod
    def for_ids(cls, prompt_ids, only_failed: bool = False) -> PromptFilter:
        return cls(prompt_ids=frozenset(prompt_ids), only_failed=only_failed)


@dataclass
class BatchResult:
    brand_id: int
    session_id: str
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    provider_counts: dict[int, int] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "brand_id": self.brand_id,
            "session_id": self.session_id,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "provider_counts": self.provider_counts,
            "error": self.error,
        }


@dataclass
class _Unit:
    prompt_id: int
    prompt_text: str
    provider: ProviderRef


@dataclass
class _UnitOutcome:
    unit: _Unit
    result: GatewayResult | None = None
    error: str | None = None
    started: bool = True


class AnalysisOrchestrator:
    def __init__(
        self,
        db: AsyncSession,
        gateway: ProviderGateway,
        *,
        registry: ProviderRegistry | None = None,
        unit_timeout: float | None = None,
        max_concurrency: int | None = None,
        rng: Shuffler | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.registry = registry or ProviderRegistry(db)
        self.unit_timeout = unit_timeout or settings.analysis_unit_timeout_seconds
        self.max_concurrency = max(1, max_concurrency or settings.analysis_max_concurrency)
        self.rng = rng or random.Random()
        self._now = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def _select_prompts(
        self, brand_id: int, prompt_filter: PromptFilter, force_reanalyze: bool
    ) -> tuple[list[BrandPrompt], int]:
        """Returns (eligible prompts ordered by id, number skipped as already analyzed)."""
        query = select(BrandPrompt).where(
            BrandPrompt.brand_id == brand_id,
            BrandPrompt.status == PROMPT_ACTIVE,
        )
        if prompt_filter.prompt_ids is not None:
            query = query.where(BrandPrompt.id.in_(sorted(prompt_filter.prompt_ids)))
        if prompt_filter.only_failed:
            query = query.where(BrandPrompt.analysis_failed_at.is_not(None))

        result = await self.db.execute(query.order_by(BrandPrompt.id))
        candidates = list(result.scalars().unique().all())

        eligible = [p for p in candidates if force_reanalyze or p.analysis_completed_at is None]
        return eligible, len(candidates) - len(eligible)

    # ------------------------------------------------------------------
    # Units
    # ------------------------------------------------------------------

    async def _run_unit(
        self, unit: _Unit, semaphore: asyncio.Semaphore, stop_event: asyncio.Event | None
    ) -> _UnitOutcome:
        if stop_event is not None and stop_event.is_set():
            return _UnitOutcome(unit=unit, started=False)

        async with semaphore:
            if stop_event is not None and stop_event.is_set():
                return _UnitOutcome(unit=unit, started=False)
            try:
                result = await bounded_call(
                    self.gateway.analyze(unit.provider, unit.prompt_text),
                    timeout=self.unit_timeout,
                )
                return _UnitOutcome(unit=unit, result=result)
            except Exception as e:
                message = str(e) or type(e).__name__
                logger.warning(
                    "Prompt %d failed on provider %s: %s",
                    unit.prompt_id,
                    unit.provider.name,
                    message,
                )
                return _UnitOutcome(unit=unit, error=message[:_MAX_ERROR_LENGTH])

    # ------------------------------------------------------------------
    # Applying outcomes
    # ------------------------------------------------------------------

    async def _apply_success(
        self,
        prompt: BrandPrompt,
        outcome: _UnitOutcome,
        session_id: str,
        entities: list[TrackedEntity],
        competitor_domains: list[str],
    ) -> None:
        result = outcome.result
        stats = result.stats
        now = self._now()

        prompt.sentiment = stats.sentiment if stats else None
        prompt.position = stats.position if stats else None
        prompt.visibility = stats.visibility if stats else None
        prompt.volume = stats.volume if stats else None
        prompt.ai_response = result.text
        prompt.competitor_sentiments = dict(result.competitor_sentiments) or None
        prompt.provider_id = outcome.unit.provider.id
        prompt.session_id = session_id
        prompt.analysis_completed_at = now
        prompt.analysis_failed_at = None
        prompt.analysis_error = None

        # Resources always describe the latest response only
        await self.db.execute(delete(PromptResource).where(PromptResource.brand_prompt_id == prompt.id))
        for resource in extract_resources(result.text or "", result.cited_urls, competitor_domains):
            self.db.add(
                PromptResource(
                    brand_prompt_id=prompt.id,
                    url=resource.url[:2000],
                    domain=resource.domain[:255],
                    anchor_text=resource.anchor_text[:500] if resource.anchor_text else None,
                    is_competitor=resource.is_competitor,
                    session_id=session_id,
                )
            )

        if not result.text:
            logger.info("Prompt %d returned stats only; no mentions to extract", prompt.id)
            return

        try:
            mention_extractor.extract(
                self.db,
                prompt=prompt,
                text=result.text,
                entities=entities,
                session_id=session_id,
                provider_id=outcome.unit.provider.id,
                competitor_sentiments=prompt.competitor_sentiments,
                analyzed_at=now,
            )
        except ExtractionError as e:
            logger.warning("Mention extraction skipped for prompt %d: %s", prompt.id, e)

    def _apply_failure(self, prompt: BrandPrompt, outcome: _UnitOutcome) -> None:
        prompt.analysis_failed_at = self._now()
        prompt.analysis_error = outcome.error
        prompt.analysis_completed_at = None

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def run_batch(
        self,
        brand_id: int,
        prompt_filter: PromptFilter | None = None,
        force_reanalyze: bool = False,
        session_id: str | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> BatchResult:
        """Analyze the brand's eligible prompts and return aggregate counts.

        Raises:
            NotFoundError: brand does not exist.
            ConfigurationError: no enabled providers or an invalid weight.
        """
        session_id = session_id or uuid.uuid4().hex
        prompt_filter = prompt_filter or PromptFilter()
        log_context = {"session_id": session_id, "brand_id": brand_id}

        if await self.db.get(Brand, brand_id) is None:
            raise NotFoundError(f"Brand {brand_id} not found")

        prompts, skipped = await self._select_prompts(brand_id, prompt_filter, force_reanalyze)

        providers = await self.registry.enabled_providers()
        try:
            validate_weights(providers)
            assignments = allocate(len(prompts), providers, rng=self.rng)
        except ConfigurationError:
            ANALYSIS_BATCHES.labels(status="config_error").inc()
            raise

        batch = BatchResult(brand_id=brand_id, session_id=session_id, skipped=skipped)
        if not prompts:
            logger.info(
                "Brand %d: nothing to analyze (%d already analyzed)", brand_id, skipped, extra=log_context
            )
            ANALYSIS_BATCHES.labels(status="empty").inc()
            return batch

        by_id = {p.id: p for p in providers}
        units = [
            _Unit(prompt_id=p.id, prompt_text=p.prompt, provider=by_id[provider_id])
            for p, provider_id in zip(prompts, assignments)
        ]
        batch.provider_counts = dict(Counter(u.provider.id for u in units))

        entities = await mention_extractor.tracked_entities(self.db, brand_id)
        competitor_domains = [
            e.domain for e in entities if e.entity_type == ENTITY_COMPETITOR and e.domain
        ]

        logger.info(
            "Brand %d: dispatching %d units (session=%s, skipped=%d, providers=%s)",
            brand_id,
            len(units),
            session_id[:8],
            skipped,
            batch.provider_counts,
            extra=log_context,
        )

        semaphore = asyncio.Semaphore(self.max_concurrency)
        outcomes = await asyncio.gather(*(self._run_unit(u, semaphore, stop_event) for u in units))

        prompts_by_id = {p.id: p for p in prompts}
        for outcome in outcomes:
            prompt = prompts_by_id[outcome.unit.prompt_id]
            provider_name = outcome.unit.provider.name

            if not outcome.started:
                batch.skipped += 1
            elif outcome.error is None:
                try:
                    async with self.db.begin_nested():
                        await self._apply_success(prompt, outcome, session_id, entities, competitor_domains)
                except Exception as e:
                    message = str(e) or type(e).__name__
                    logger.warning(
                        "Prompt %d: could not save result from %s: %s",
                        outcome.unit.prompt_id,
                        provider_name,
                        message,
                        extra=log_context,
                    )
                    # The savepoint rollback expired the prompt's pending changes
                    await self.db.refresh(prompt)
                    outcome.error = message[:_MAX_ERROR_LENGTH]
                    self._apply_failure(prompt, outcome)
                    batch.failed += 1
                    ANALYSIS_UNITS.labels(provider=provider_name, status="failure").inc()
                else:
                    batch.succeeded += 1
                    ANALYSIS_UNITS.labels(provider=provider_name, status="success").inc()
            else:
                self._apply_failure(prompt, outcome)
                batch.failed += 1
                ANALYSIS_UNITS.labels(provider=provider_name, status="failure").inc()

        await self.db.commit()

        ANALYSIS_BATCHES.labels(status="completed").inc()
        logger.info(
            "Brand %d batch done (session=%s): %d succeeded, %d failed, %d skipped",
            brand_id,
            session_id[:8],
            batch.succeeded,
            batch.failed,
            batch.skipped,
            extra=log_context,
        )
        return batch

    async def run_batches(
        self,
        brand_ids: list[int] | None = None,
        prompt_filter: PromptFilter | None = None,
        force_reanalyze: bool = False,
        session_id: str | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> list[BatchResult]:
        """One batch per brand (all brands when brand_ids is None), sharing a session id.

        A brand whose batch cannot be set up gets its error recorded and the
        remaining brands still run.
        """
        session_id = session_id or uuid.uuid4().hex
        if brand_ids is None:
            result = await self.db.execute(select(Brand.id).order_by(Brand.id))
            brand_ids = list(result.scalars().all())

        results: list[BatchResult] = []
        for brand_id in brand_ids:
            if stop_event is not None and stop_event.is_set():
                break
            try:
                results.append(
                    await self.run_batch(
                        brand_id,
                        prompt_filter=prompt_filter,
                        force_reanalyze=force_reanalyze,
                        session_id=session_id,
                        stop_event=stop_event,
                    )
                )
            except (ConfigurationError, NotFoundError) as e:
                logger.error(
                    "Brand %d batch not started: %s",
                    brand_id,
                    e,
                    extra={"session_id": session_id, "brand_id": brand_id},
                )
                results.append(BatchResult(brand_id=brand_id, session_id=session_id, error=str(e)))
        return results
