"""Core types and DTOs for the AI Provider Gateway contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, field_validator


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class GatewayError(Exception):
    """Any failure of a single provider call."""


class GatewayTimeoutError(GatewayError):
    """The provider did not answer within the unit's time budget."""


class MalformedResponseError(GatewayError):
    """The provider answered, but with nothing usable."""


# ---------------------------------------------------------------------------
# Provider handle: the part of a Provider row a gateway needs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProviderRef:
    """Immutable snapshot of a provider's identity and configuration."""

    id: int
    name: str
    display_name: str = ""
    weight: int = 1
    api_config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, provider) -> ProviderRef:
        return cls(
            id=provider.id,
            name=provider.name,
            display_name=provider.display_name or provider.name,
            weight=provider.weight,
            api_config=dict(provider.api_config or {}),
        )


# ---------------------------------------------------------------------------
# Gateway result: unified DTO
# ---------------------------------------------------------------------------


def _clamp(value: float, low: float, high: float | None = None) -> float:
    value = max(low, value)
    if high is not None:
        value = min(high, value)
    return value


class ProviderStats(BaseModel):
    """Structured metrics some providers return alongside (or instead of) text."""

    visibility: float | None = None  # 0-100
    position: float | None = None  # lower is better
    sentiment: float | None = None  # 0-100
    volume: float | None = None

    @field_validator("visibility", "sentiment")
    @classmethod
    def _percentage(cls, v: float | None) -> float | None:
        return None if v is None else _clamp(float(v), 0.0, 100.0)

    @field_validator("position", "volume")
    @classmethod
    def _non_negative(cls, v: float | None) -> float | None:
        return None if v is None else _clamp(float(v), 0.0)


@dataclass
class GatewayResult:
    """What a provider produced for one prompt."""

    text: str | None = None
    stats: ProviderStats | None = None
    cited_urls: list[str] = field(default_factory=list)
    competitor_sentiments: dict[str, float] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.text and self.text.strip()) and self.stats is None


# ---------------------------------------------------------------------------
# Gateway protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ProviderGateway(Protocol):
    """External collaborator that talks to AI providers."""

    async def analyze(self, provider: ProviderRef, prompt_text: str) -> GatewayResult:
        """Send one prompt to one provider. Raises GatewayError (or anything) on failure."""
        ...

    async def probe(self, provider: ProviderRef) -> None:
        """Lightweight liveness request. Raises on failure."""
        ...
