"""Provider registry: read-mostly view of configured AI providers.

Shared by the orchestrator (reads enabled providers and weights) and the
health monitor (the only writer, via disable()).
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from visibility_tracker.gateway.types import ProviderRef
from visibility_tracker.models.provider import Provider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def enabled_providers(self) -> list[ProviderRef]:
        """Enabled providers ordered by id."""
        result = await self.db.execute(
            select(Provider).where(Provider.is_enabled.is_(True)).order_by(Provider.id)
        )
        return [ProviderRef.from_model(p) for p in result.scalars().all()]

    async def get(self, provider_id: int) -> ProviderRef | None:
        provider = await self.db.get(Provider, provider_id)
        return ProviderRef.from_model(provider) if provider else None

    async def disable(self, provider_id: int) -> bool:
        """Disable a provider. Returns True if it was enabled before."""
        result = await self.db.execute(
            update(Provider)
            .where(Provider.id == provider_id, Provider.is_enabled.is_(True))
            .values(is_enabled=False)
            .execution_options(synchronize_session="fetch")
        )
        changed = result.rowcount > 0
        if changed:
            logger.warning("Provider %d disabled", provider_id)
        return changed
