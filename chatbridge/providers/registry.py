"""
Provider registry: maps a provider id to its adapter.

Supported providers:
  v0            → V0Adapter (pass-through, v0 Platform API)
  ollama        → OllamaAdapter (local, no key needed)
  ollama-cloud  → OllamaAdapter with the cloud profile (ollama.com, key required)
  lmstudio      → OpenAICompatAdapter (localhost:1234)
  llama         → OpenAICompatAdapter (api.llama-api.com, key required)

The registry is an ordinary object built by the app factory, so tests can
register substitute adapters.
"""
from __future__ import annotations

from typing import Iterable, Optional

import httpx

from chatbridge.errors import ProviderNotFoundError
from chatbridge.providers.base import BaseProviderAdapter, ModelInfo, ProviderConfig, ProviderInfo
from chatbridge.providers.ollama import OLLAMA_CLOUD_PROFILE, OLLAMA_PROFILE, OllamaAdapter
from chatbridge.providers.openai_compat import LLAMA_PROFILE, LMSTUDIO_PROFILE, OpenAICompatAdapter
from chatbridge.providers.v0 import V0_PROFILE, V0Adapter


class ProviderRegistry:
    def __init__(self, adapters: Iterable[BaseProviderAdapter] = ()):
        self._adapters: dict[str, BaseProviderAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: BaseProviderAdapter) -> None:
        self._adapters[adapter.name] = adapter

    def resolve(self, provider_id: str) -> BaseProviderAdapter:
        adapter = self._adapters.get(provider_id)
        if adapter is None:
            raise ProviderNotFoundError(provider_id)
        return adapter

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._adapters

    def providers(self) -> list[ProviderInfo]:
        """Catalogue entry for every registered provider, in registration order."""
        return [a.profile.info() for a in self._adapters.values()]

    async def available_models(self, provider_id: str, config: ProviderConfig) -> list[ModelInfo]:
        adapter = self.resolve(provider_id)
        names = await adapter.list_models(config)
        return [ModelInfo(id=name, name=name, provider=provider_id) for name in names]


def build_default_registry(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: float = 60.0,
) -> ProviderRegistry:
    return ProviderRegistry([
        V0Adapter(V0_PROFILE, transport=transport, timeout=timeout),
        OllamaAdapter(OLLAMA_PROFILE, transport=transport, timeout=timeout),
        OllamaAdapter(OLLAMA_CLOUD_PROFILE, transport=transport, timeout=timeout),
        OpenAICompatAdapter(LMSTUDIO_PROFILE, transport=transport, timeout=timeout),
        OpenAICompatAdapter(LLAMA_PROFILE, transport=transport, timeout=timeout),
    ])
