"""Tests for the HTTP surface: stats reads and task triggers."""

from datetime import datetime, timedelta, timezone

from httpx import AsyncClient

from visibility_tracker.models import Mention
from visibility_tracker.models.mention import ENTITY_BRAND
from visibility_tracker.services.statistics import recalculate


class _FakeAsyncResult:
    id = "task-123"


async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_metrics(client: AsyncClient):
    resp = await client.get("/metrics")
    assert resp.status_code == 200
    assert "analysis_units_total" in resp.text


async def test_competitive_stats_unknown_brand(client: AsyncClient):
    resp = await client.get("/api/v1/brands/999/competitive-stats")
    assert resp.status_code == 404


async def test_competitive_stats(client: AsyncClient, db, brand, make_prompt):
    now = datetime.now(timezone.utc)
    prompt = await make_prompt(brand, "p", analysis_completed_at=now - timedelta(hours=1))
    await make_prompt(brand, "q", analysis_completed_at=now - timedelta(hours=1))
    db.add(
        Mention(
            brand_prompt_id=prompt.id,
            brand_id=brand.id,
            entity_type=ENTITY_BRAND,
            entity_name="Acme",
            position=1,
            sentiment=72.0,
            session_id="s",
            analyzed_at=now - timedelta(hours=1),
        )
    )
    await db.commit()
    await recalculate(db, brand.id, now - timedelta(days=1), now)

    resp = await client.get(f"/api/v1/brands/{brand.id}/competitive-stats")

    assert resp.status_code == 200
    stats = resp.json()["stats"]
    assert len(stats) == 1
    assert stats[0]["entity_name"] == "Acme"
    assert stats[0]["visibility"] == 50.0
    assert stats[0]["sentiment_level"] == "Good"
    assert stats[0]["position_formatted"] == "1st"
    assert stats[0]["trend"]["visibility"]["direction"] == "new"


async def test_visibility_history(client: AsyncClient, brand):
    resp = await client.get(f"/api/v1/brands/{brand.id}/visibility-history", params={"days": 7})
    assert resp.status_code == 200
    assert resp.json() == {"brand_id": brand.id, "days": {}}


async def test_trigger_analysis(client: AsyncClient, brand, monkeypatch):
    from visibility_tracker.tasks import analysis_tasks

    sent = []

    def fake_delay(*args):
        sent.append(args)
        return _FakeAsyncResult()

    monkeypatch.setattr(analysis_tasks.run_analysis_batch, "delay", fake_delay)

    resp = await client.post(f"/api/v1/brands/{brand.id}/analysis", json={"force_reanalyze": True})

    assert resp.status_code == 202
    assert resp.json()["task_id"] == "task-123"
    assert sent == [([brand.id], True, None, False, None)]


async def test_trigger_analysis_unknown_brand(client: AsyncClient):
    resp = await client.post("/api/v1/brands/999/analysis")
    assert resp.status_code == 404


async def test_trigger_health_check(client: AsyncClient, monkeypatch):
    from visibility_tracker.tasks import analysis_tasks

    monkeypatch.setattr(analysis_tasks.check_provider_health, "delay", lambda: _FakeAsyncResult())

    resp = await client.post("/api/v1/providers/health-check")

    assert resp.status_code == 202
    assert resp.json()["task_id"] == "task-123"
