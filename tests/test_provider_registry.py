"""Tests for the provider registry and the HTTP provider."""

import json

import httpx
import pytest
from helpers import EchoProvider

from pipeflow.exceptions import PipelineStepError, ProviderNotFoundError
from pipeflow.services.pipeline.registry import (
    HttpProvider,
    Provider,
    ProviderRegistry,
    build_registry,
)
from pipeflow.settings import Settings


class TestProviderRegistry:
    def test_register_and_get(self):
        registry = ProviderRegistry()
        provider = EchoProvider()
        registry.register_provider("echo", provider)

        assert registry.get_provider("echo", "any-ref") is provider
        assert registry.is_registered("echo")

    def test_factory_receives_provider_ref(self):
        registry = ProviderRegistry()
        registry.register_factory("echo", lambda ref: EchoProvider(name=ref))

        provider = registry.get_provider("echo", "model-x")

        assert isinstance(provider, EchoProvider)
        assert provider.name == "model-x"

    def test_unknown_type_raises(self):
        registry = ProviderRegistry()
        with pytest.raises(ProviderNotFoundError, match="'missing'") as exc_info:
            registry.get_provider("missing", "ref-1")

        assert exc_info.value.provider_type == "missing"
        assert exc_info.value.provider_ref == "ref-1"

    def test_reregistering_replaces_factory(self):
        registry = ProviderRegistry()
        instance = EchoProvider()
        registry.register_factory("echo", lambda ref: EchoProvider(name=ref))
        registry.register_provider("echo", instance)

        assert registry.get_provider("echo", "ref") is instance
        assert registry.registered_types == ["echo"]

    def test_registered_types_sorted(self):
        registry = ProviderRegistry()
        registry.register_provider("b", EchoProvider())
        registry.register_factory("a", lambda ref: EchoProvider())

        assert registry.registered_types == ["a", "b"]
        assert not registry.is_registered("c")

    def test_fake_providers_satisfy_protocol(self):
        assert isinstance(EchoProvider(), Provider)


class TestHttpProvider:
    @pytest.mark.asyncio
    async def test_posts_payload_and_returns_json(self):
        received = {}

        def handler(request: httpx.Request) -> httpx.Response:
            received["url"] = str(request.url)
            received["body"] = json.loads(request.content)
            return httpx.Response(200, json={"summary": "short"})

        provider = HttpProvider(
            "http://provider.test/run", provider_ref="gpt", transport=httpx.MockTransport(handler)
        )

        output = await provider.execute({"text": "long"}, "task-1")

        assert output == {"summary": "short"}
        assert received["url"] == "http://provider.test/run"
        assert received["body"] == {"taskId": "task-1", "providerRef": "gpt", "input": {"text": "long"}}

    @pytest.mark.asyncio
    async def test_non_object_body_is_wrapped(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=[1, 2]))
        provider = HttpProvider("http://provider.test/run", transport=transport)

        assert await provider.execute({}, "task-1") == {"result": [1, 2]}

    @pytest.mark.asyncio
    async def test_http_error_raises_step_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        provider = HttpProvider("http://provider.test/run", transport=transport)

        with pytest.raises(PipelineStepError, match="503"):
            await provider.execute({}, "task-1")

    @pytest.mark.asyncio
    async def test_transport_error_raises_step_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = HttpProvider("http://provider.test/run", transport=httpx.MockTransport(handler))

        with pytest.raises(PipelineStepError, match="unreachable"):
            await provider.execute({}, "task-1")


def test_build_registry_from_settings():
    settings = Settings(http_providers={"summarize": "http://provider.test/summarize"})

    registry = build_registry(settings)
    provider = registry.get_provider("summarize", "gpt")

    assert isinstance(provider, HttpProvider)
    assert provider.url == "http://provider.test/summarize"
    assert provider.provider_ref == "gpt"
