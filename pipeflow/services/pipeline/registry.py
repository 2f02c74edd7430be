"""
Provider registry: maps a step type to the implementation that executes it.

The registry is built once at startup and handed to the engine; it is not a
module-level singleton, so tests build their own with fake providers.

Example:
    registry = ProviderRegistry()
    registry.register_provider("echo", EchoProvider())
    registry.register_factory("llm", lambda ref: LlmProvider(model=ref))

    provider = registry.get_provider("llm", "gpt-small")
    output = await provider.execute({"text": "hi"}, task_id)
"""

from collections.abc import Callable, Mapping
from typing import Any, Protocol, TypeAlias, runtime_checkable

import httpx

from pipeflow.exceptions.domain import PipelineStepError, ProviderNotFoundError
from pipeflow.settings import Settings
from pipeflow.utils.logger import logger

ProviderOutput: TypeAlias = dict[str, Any] | str


@runtime_checkable
class Provider(Protocol):
    """Single-method capability executing one pipeline step."""

    async def execute(self, input_data: dict[str, Any], task_id: str) -> ProviderOutput: ...


ProviderFactory: TypeAlias = Callable[[str], Provider]


class ProviderRegistry:
    """Type-keyed provider lookup, read-only once the application has started."""

    def __init__(self) -> None:
        self._providers: dict[str, Provider] = {}
        self._factories: dict[str, ProviderFactory] = {}

    def register_provider(self, provider_type: str, provider: Provider) -> None:
        """Register one provider instance for every ``provider_ref`` of a type."""
        if provider_type in self._providers or provider_type in self._factories:
            logger.warning(f"Provider type '{provider_type}' re-registered")
        self._factories.pop(provider_type, None)
        self._providers[provider_type] = provider

    def register_factory(self, provider_type: str, factory: ProviderFactory) -> None:
        """Register a factory that builds a provider from the step's ``provider_ref``."""
        if provider_type in self._providers or provider_type in self._factories:
            logger.warning(f"Provider type '{provider_type}' re-registered")
        self._providers.pop(provider_type, None)
        self._factories[provider_type] = factory

    def get_provider(self, provider_type: str, provider_ref: str = "") -> Provider:
        """Resolve the provider for a step.

        Raises:
            ProviderNotFoundError: If nothing is registered under ``provider_type``.
        """
        if provider_type in self._providers:
            return self._providers[provider_type]
        if provider_type in self._factories:
            return self._factories[provider_type](provider_ref)
        raise ProviderNotFoundError(provider_type, provider_ref or None)

    def is_registered(self, provider_type: str) -> bool:
        return provider_type in self._providers or provider_type in self._factories

    @property
    def registered_types(self) -> list[str]:
        return sorted({*self._providers, *self._factories})

    def __repr__(self) -> str:
        return f"ProviderRegistry(types={self.registered_types})"


class HttpProvider:
    """Provider that delegates a step to an HTTP endpoint.

    Posts ``{"taskId", "providerRef", "input"}`` as JSON and returns the JSON
    response body. Non-2xx responses and transport errors raise
    :class:`PipelineStepError`, which the engine treats as a retryable failure.

    Args:
        url: Endpoint receiving the step payload.
        provider_ref: Provider-specific target forwarded in the payload.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport, used in tests.
    """

    def __init__(
        self,
        url: str,
        provider_ref: str = "",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.provider_ref = provider_ref
        self.timeout = timeout
        self._transport = transport

    async def execute(self, input_data: dict[str, Any], task_id: str) -> ProviderOutput:
        payload = {"taskId": task_id, "providerRef": self.provider_ref, "input": input_data}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PipelineStepError(
                f"Provider at {self.url} returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise PipelineStepError(f"Provider at {self.url} unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError:
            return response.text
        if isinstance(body, dict):
            return body
        return {"result": body}

    def __repr__(self) -> str:
        return f"HttpProvider(url={self.url!r}, provider_ref={self.provider_ref!r})"


def register_http_providers(
    registry: ProviderRegistry, endpoints: Mapping[str, str], timeout: float = 60.0
) -> None:
    """Register an :class:`HttpProvider` factory per ``{type: url}`` entry."""
    for provider_type, url in endpoints.items():
        registry.register_factory(
            provider_type,
            lambda ref, url=url: HttpProvider(url, provider_ref=ref, timeout=timeout),
        )
        logger.info(f"Registered HTTP provider '{provider_type}' -> {url}")


def build_registry(settings: Settings) -> ProviderRegistry:
    """Build the process-wide registry from configuration."""
    registry = ProviderRegistry()
    register_http_providers(registry, settings.http_providers, settings.http_provider_timeout)
    return registry
