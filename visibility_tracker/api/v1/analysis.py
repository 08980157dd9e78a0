"""Trigger endpoints: enqueue analysis batches and health checks on Celery."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from visibility_tracker.core.exceptions import NotFoundError
from visibility_tracker.db.postgres import get_db
from visibility_tracker.models.brand import Brand
from visibility_tracker.schemas.analysis import AnalysisRequest, TaskAcceptedResponse

router = APIRouter(tags=["analysis"])


@router.post("/brands/{brand_id}/analysis", response_model=TaskAcceptedResponse, status_code=202)
async def trigger_brand_analysis(
    brand_id: int,
    body: AnalysisRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Start an analysis batch for one brand via Celery."""
    if await db.get(Brand, brand_id) is None:
        raise NotFoundError(f"Brand {brand_id} not found")

    body = body or AnalysisRequest()

    from visibility_tracker.tasks.analysis_tasks import run_analysis_batch

    task = run_analysis_batch.delay(
        [brand_id],
        body.force_reanalyze,
        body.session_id,
        body.only_failed,
        body.prompt_ids,
    )
    return TaskAcceptedResponse(message="Analysis started", task_id=task.id)


@router.post("/providers/health-check", response_model=TaskAcceptedResponse, status_code=202)
async def trigger_provider_health_check():
    from visibility_tracker.tasks.analysis_tasks import check_provider_health

    task = check_provider_health.delay()
    return TaskAcceptedResponse(message="Provider health check started", task_id=task.id)
