"""Tests for gateway contract helpers: bounded calls, result DTOs, loading."""

import asyncio

import pytest

from visibility_tracker.core.exceptions import ConfigurationError
from visibility_tracker.gateway.gateway import bounded_call, load_gateway
from visibility_tracker.gateway.types import (
    GatewayResult,
    GatewayTimeoutError,
    MalformedResponseError,
    ProviderGateway,
    ProviderRef,
    ProviderStats,
)


class EchoGateway:
    def __init__(self, prefix: str = ""):
        self.prefix = prefix

    async def analyze(self, provider, prompt_text):
        return GatewayResult(text=f"{self.prefix}{prompt_text}")

    async def probe(self, provider):
        return None


class NotAGateway:
    pass


class TestProviderStats:
    def test_clamps_out_of_range_values(self):
        stats = ProviderStats(visibility=130, sentiment=-5, position=-1, volume=-10)
        assert stats.visibility == 100.0
        assert stats.sentiment == 0.0
        assert stats.position == 0.0
        assert stats.volume == 0.0

    def test_none_stays_none(self):
        assert ProviderStats().visibility is None


class TestGatewayResult:
    def test_is_empty(self):
        assert GatewayResult().is_empty
        assert GatewayResult(text="   ").is_empty
        assert not GatewayResult(text="hi").is_empty
        assert not GatewayResult(stats=ProviderStats(visibility=10)).is_empty


class TestBoundedCall:
    async def test_returns_result(self):
        result = await bounded_call(EchoGateway().analyze(None, "hello"), timeout=1)
        assert result.text == "hello"

    async def test_timeout(self):
        with pytest.raises(GatewayTimeoutError):
            await bounded_call(asyncio.sleep(10), timeout=0.01)

    async def test_empty_result(self):
        async def empty():
            return GatewayResult(text="")

        with pytest.raises(MalformedResponseError):
            await bounded_call(empty(), timeout=1)

    async def test_wrong_type(self):
        async def raw():
            return {"text": "hi"}

        with pytest.raises(MalformedResponseError):
            await bounded_call(raw(), timeout=1)


class TestLoadGateway:
    def test_colon_path_with_kwargs(self):
        gateway = load_gateway("tests.test_gateway:EchoGateway", prefix=">")
        assert isinstance(gateway, ProviderGateway)
        assert gateway.prefix == ">"

    def test_dotted_path(self):
        assert isinstance(load_gateway("tests.test_gateway.EchoGateway"), ProviderGateway)

    def test_not_configured(self, monkeypatch):
        from visibility_tracker.core.config import settings

        monkeypatch.setattr(settings, "gateway_class", "")
        with pytest.raises(ConfigurationError):
            load_gateway()

    @pytest.mark.parametrize("path", ["no.such.module:Gateway", "tests.test_gateway:Missing"])
    def test_bad_path(self, path):
        with pytest.raises(ConfigurationError):
            load_gateway(path)

    def test_wrong_interface(self):
        with pytest.raises(ConfigurationError):
            load_gateway("tests.test_gateway:NotAGateway")


def test_provider_ref_from_model():
    from visibility_tracker.models import Provider

    ref = ProviderRef.from_model(Provider(id=3, name="openai", display_name="", weight=2, api_config=None))
    assert ref.display_name == "openai"
    assert ref.api_config == {}
    assert ref.weight == 2
