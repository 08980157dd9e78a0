"""Notification sink contract and the batched failure report."""

import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderFailure:
    provider_id: int
    provider_name: str
    message: str


class NotificationSink(Protocol):
    async def notify_providers_failed(self, failures: list[ProviderFailure]) -> None: ...


def failure_subject(count: int) -> str:
    if count == 1:
        return "AI Provider Health Check: 1 Provider Failed"
    return f"AI Provider Health Check: {count} Providers Failed"


def format_failure_report(failures: list[ProviderFailure]) -> str:
    """Plain-text report listing every failed provider once."""
    lines = [failure_subject(len(failures)), "The following providers were disabled:"]
    for f in failures:
        lines.append(f"- {f.provider_name} (#{f.provider_id}): {f.message[:200]}")
    return "\n".join(lines)


class LogNotificationSink:
    """Fallback sink that writes the report to the log."""

    async def notify_providers_failed(self, failures: list[ProviderFailure]) -> None:
        if not failures:
            return
        logger.warning("%s", format_failure_report(failures))
