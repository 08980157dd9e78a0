"""Celery tasks: the trigger surface for batches, recalculation and health checks.

Each task runs its coroutine in a fresh event loop with its own engine, and
returns a JSON-serializable dict. Errors are logged and returned as
{"error": ...} rather than raised, so Celery never retries a batch.
"""

import asyncio
import logging

from visibility_tracker.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Run an async coroutine from sync Celery task context.

    Creates a fresh event loop each time to avoid conflicts with
    the module-level SQLAlchemy engine (which may be bound to a
    different loop created by uvicorn).
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _make_session_factory():
    """Create a fresh async engine + session factory bound to the current loop."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

    from visibility_tracker.core.config import settings

    engine = create_async_engine(
        settings.postgres_url,
        echo=False,
        pool_size=5,
        max_overflow=5,
        pool_pre_ping=True,
    )
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False), engine


# ---------------------------------------------------------------------------
# Analysis batches
# ---------------------------------------------------------------------------


async def _run_analysis_batch_async(
    brand_ids: list[int] | None,
    force_reanalyze: bool,
    session_id: str | None,
    only_failed: bool,
    prompt_ids: list[int] | None = None,
) -> dict:
    from visibility_tracker.gateway.gateway import load_gateway
    from visibility_tracker.services.orchestrator import AnalysisOrchestrator, PromptFilter

    gateway = load_gateway()
    prompt_filter = PromptFilter(
        prompt_ids=frozenset(prompt_ids) if prompt_ids is not None else None,
        only_failed=only_failed,
    )

    session_factory, engine = _make_session_factory()
    try:
        async with session_factory() as db:
            orchestrator = AnalysisOrchestrator(db, gateway)
            results = await orchestrator.run_batches(
                brand_ids,
                prompt_filter=prompt_filter,
                force_reanalyze=force_reanalyze,
                session_id=session_id,
            )
    finally:
        await engine.dispose()

    return {
        "brands": [r.to_dict() for r in results],
        "succeeded": sum(r.succeeded for r in results),
        "failed": sum(r.failed for r in results),
        "skipped": sum(r.skipped for r in results),
    }


@celery_app.task(bind=True, name="run_analysis_batch", max_retries=0)
def run_analysis_batch(
    self,
    brand_ids: list[int] | None = None,
    force_reanalyze: bool = False,
    session_id: str | None = None,
    only_failed: bool = False,
    prompt_ids: list[int] | None = None,
):
    """Analyze eligible prompts of the given brands (all brands when None)."""
    logger.info(
        "Starting analysis batch brands=%s force=%s only_failed=%s",
        brand_ids if brand_ids is not None else "all",
        force_reanalyze,
        only_failed,
    )
    try:
        result = _run_async(
            _run_analysis_batch_async(brand_ids, force_reanalyze, session_id, only_failed, prompt_ids)
        )
        logger.info(
            "Analysis batch done: %d succeeded, %d failed, %d skipped",
            result["succeeded"],
            result["failed"],
            result["skipped"],
        )
        return result
    except Exception as exc:
        logger.error("Analysis batch failed: %s", exc)
        return {"error": str(exc), "brand_ids": brand_ids}


# ---------------------------------------------------------------------------
# Visibility recalculation
# ---------------------------------------------------------------------------


async def _recalculate_visibility_async(
    brand_id: int | None,
    window_days: int | None,
    provider_id: int | None,
    regenerate: bool,
) -> dict:
    from sqlalchemy import select

    from visibility_tracker.core.config import settings
    from visibility_tracker.models.brand import Brand
    from visibility_tracker.services.mention_extractor import regenerate_mentions
    from visibility_tracker.services.statistics import recalculate_all

    window_days = window_days or settings.recalculation_window_days

    session_factory, engine = _make_session_factory()
    try:
        async with session_factory() as db:
            if brand_id is not None:
                brand_ids = [brand_id]
            else:
                brand_ids = list((await db.execute(select(Brand.id).order_by(Brand.id))).scalars().all())

            regenerated = 0
            if regenerate:
                for bid in brand_ids:
                    regenerated += await regenerate_mentions(db, bid, window_days)
                await db.commit()

            results = await recalculate_all(db, brand_ids, window_days, provider_id)
    finally:
        await engine.dispose()

    return {
        "brands": len(results),
        "stats_written": sum(len(snapshots) for snapshots in results.values()),
        "prompts_regenerated": regenerated,
    }


@celery_app.task(bind=True, name="recalculate_visibility", max_retries=0)
def recalculate_visibility(
    self,
    brand_id: int | None = None,
    window_days: int | None = None,
    provider_id: int | None = None,
    regenerate: bool = False,
):
    """Write fresh competitive stat snapshots for one brand or all brands."""
    logger.info("Starting visibility recalculation brand=%s provider=%s", brand_id or "all", provider_id)
    try:
        result = _run_async(_recalculate_visibility_async(brand_id, window_days, provider_id, regenerate))
        logger.info("Visibility recalculation done: %s", result)
        return result
    except Exception as exc:
        logger.error("Visibility recalculation failed: %s", exc)
        return {"error": str(exc), "brand_id": brand_id}


# ---------------------------------------------------------------------------
# Provider health
# ---------------------------------------------------------------------------


async def _check_provider_health_async() -> dict:
    from visibility_tracker.gateway.gateway import load_gateway
    from visibility_tracker.notifications import get_notification_sink
    from visibility_tracker.services.health_monitor import ProviderHealthMonitor

    gateway = load_gateway()
    sink = get_notification_sink()

    session_factory, engine = _make_session_factory()
    try:
        async with session_factory() as db:
            report = await ProviderHealthMonitor(db, gateway, sink).check_all()
    finally:
        await engine.dispose()
    return report.to_dict()


@celery_app.task(bind=True, name="check_provider_health", max_retries=0)
def check_provider_health(self):
    """Probe all enabled providers; failing ones are disabled and reported."""
    try:
        result = _run_async(_check_provider_health_async())
        logger.info("Provider health check: %s", result)
        return result
    except Exception as exc:
        logger.error("Provider health check failed: %s", exc)
        return {"error": str(exc)}
