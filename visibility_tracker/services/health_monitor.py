"""Provider Health Monitor: probes enabled providers and disables failures.

Policy is fail-fast: one failed probe disables the provider. Retrying is the
scheduler's job (the next periodic run). All failures of one run are sent as
a single batched notification.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from visibility_tracker.core.config import settings
from visibility_tracker.core.exceptions import NotFoundError
from visibility_tracker.core.metrics import PROVIDER_HEALTH_CHECKS
from visibility_tracker.gateway.types import ProviderGateway, ProviderRef
from visibility_tracker.notifications.base import NotificationSink, ProviderFailure
from visibility_tracker.services.provider_registry import ProviderRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealthCheckOutcome:
    provider_id: int
    provider_name: str
    ok: bool
    message: str


@dataclass
class HealthReport:
    healthy: list[HealthCheckOutcome] = field(default_factory=list)
    failed: list[HealthCheckOutcome] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "healthy": [o.provider_name for o in self.healthy],
            "failed": {o.provider_name: o.message for o in self.failed},
        }


class ProviderHealthMonitor:
    def __init__(
        self,
        db: AsyncSession,
        gateway: ProviderGateway,
        sink: NotificationSink,
        *,
        registry: ProviderRegistry | None = None,
        probe_timeout: float | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.sink = sink
        self.registry = registry or ProviderRegistry(db)
        self.probe_timeout = probe_timeout or settings.analysis_unit_timeout_seconds

    async def _probe(self, provider: ProviderRef) -> HealthCheckOutcome:
        if not str(provider.api_config.get("api_key") or "").strip():
            return HealthCheckOutcome(provider.id, provider.name, False, "API key not configured")

        try:
            await asyncio.wait_for(self.gateway.probe(provider), timeout=self.probe_timeout)
        except asyncio.TimeoutError:
            message = f"probe timed out after {self.probe_timeout:.0f}s"
            return HealthCheckOutcome(provider.id, provider.name, False, message)
        except Exception as e:
            return HealthCheckOutcome(provider.id, provider.name, False, str(e) or type(e).__name__)

        return HealthCheckOutcome(provider.id, provider.name, True, "OK")

    async def check_one(self, provider_id: int) -> HealthCheckOutcome:
        """Probe a single provider. No state is changed."""
        provider = await self.registry.get(provider_id)
        if provider is None:
            raise NotFoundError(f"Provider {provider_id} not found")

        outcome = await self._probe(provider)
        PROVIDER_HEALTH_CHECKS.labels(status="ok" if outcome.ok else "failed").inc()
        return outcome

    async def check_all(self) -> HealthReport:
        """Probe every enabled provider, disable the failures and notify once."""
        providers = await self.registry.enabled_providers()
        outcomes = await asyncio.gather(*(self._probe(p) for p in providers))

        report = HealthReport()
        for outcome in outcomes:
            PROVIDER_HEALTH_CHECKS.labels(status="ok" if outcome.ok else "failed").inc()
            if outcome.ok:
                report.healthy.append(outcome)
                continue

            report.failed.append(outcome)
            logger.warning("Provider %s failed health check: %s", outcome.provider_name, outcome.message)
            await self.registry.disable(outcome.provider_id)

        await self.db.commit()

        if report.failed:
            failures = [ProviderFailure(o.provider_id, o.provider_name, o.message) for o in report.failed]
            try:
                await self.sink.notify_providers_failed(failures)
            except Exception:
                logger.exception("Failed to send provider failure notification")

        logger.info(
            "Provider health check done: %d healthy, %d failed",
            len(report.healthy),
            len(report.failed),
        )
        return report
