"""Gateway helpers: bounded calls and gateway loading.

Usage:
    gateway = load_gateway()
    result = await bounded_call(gateway.analyze(provider, text), timeout=60)
"""

from __future__ import annotations

import asyncio
import importlib
import logging
from collections.abc import Awaitable

from visibility_tracker.core.config import settings
from visibility_tracker.core.exceptions import ConfigurationError
from visibility_tracker.gateway.types import (
    GatewayResult,
    GatewayTimeoutError,
    MalformedResponseError,
    ProviderGateway,
)

logger = logging.getLogger(__name__)


async def bounded_call(call: Awaitable[GatewayResult], timeout: float) -> GatewayResult:
    """Await a gateway call with a hard time limit and validate the result.

    A timeout becomes GatewayTimeoutError; a result with neither text nor
    stats becomes MalformedResponseError.
    """
    try:
        result = await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise GatewayTimeoutError(f"provider call timed out after {timeout:.0f}s") from e

    if not isinstance(result, GatewayResult):
        raise MalformedResponseError(f"unexpected gateway result type {type(result).__name__}")
    if result.is_empty:
        raise MalformedResponseError("provider returned neither text nor stats")
    return result


def load_gateway(dotted_path: str | None = None, **kwargs) -> ProviderGateway:
    """Instantiate the gateway class named by GATEWAY_CLASS (module:Class or module.Class)."""
    path = dotted_path or settings.gateway_class
    if not path:
        raise ConfigurationError("GATEWAY_CLASS is not configured")

    if ":" in path:
        module_path, class_name = path.split(":", 1)
    else:
        module_path, _, class_name = path.rpartition(".")

    try:
        module = importlib.import_module(module_path)
        gateway_cls = getattr(module, class_name)
    except (ImportError, AttributeError, ValueError) as e:
        raise ConfigurationError(f"cannot load gateway {path!r}: {e}") from e

    gateway = gateway_cls(**kwargs)
    if not isinstance(gateway, ProviderGateway):
        raise ConfigurationError(f"{path!r} does not implement analyze()/probe()")

    logger.info("Loaded provider gateway %s", path)
    return gateway
