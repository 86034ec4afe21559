"""
Ollama adapter (local daemon and ollama.com).

  POST {base}/api/chat  → {model, messages, stream, options}
  stream                → one JSON object per line: {model, message: {role, content}, done}
  GET  {base}/api/tags  → installed models

The cloud deployment is the same adapter with OLLAMA_CLOUD_PROFILE: other
default host, credential mandatory.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from chatbridge.providers.base import ProviderConfig, ProviderProfile
from chatbridge.providers.normalizing import NormalizingAdapter
from chatbridge.streaming.framing import JsonLinesFraming

logger = logging.getLogger(__name__)

_FALLBACK_MODELS = ("llama3.2", "llama3.1", "mistral", "codellama")

OLLAMA_PROFILE = ProviderProfile(
    id="ollama",
    name="Ollama (Local)",
    description="Run Llama models locally on your machine",
    default_base_url="http://localhost:11434",
    requires_api_key=False,
    default_model="llama3.2",
    fallback_models=_FALLBACK_MODELS,
)

OLLAMA_CLOUD_PROFILE = ProviderProfile(
    id="ollama-cloud",
    name="Ollama Cloud",
    description="Ollama hosted in the cloud",
    default_base_url="https://ollama.com",
    requires_api_key=True,
    default_model="llama3.2",
    fallback_models=_FALLBACK_MODELS,
)


class OllamaAdapter(NormalizingAdapter):
    chat_path = "/api/chat"
    framing_class = JsonLinesFraming

    def build_payload(
        self, model: str, messages: list[dict], config: ProviderConfig, stream: bool
    ) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if config.temperature is not None:
            options["temperature"] = config.temperature
        if config.max_tokens is not None:
            options["num_predict"] = config.max_tokens
        return {
            "model":    model,
            "messages": messages,
            "stream":   stream,
            "options":  options,
        }

    def extract_text(self, data: dict[str, Any]) -> Optional[str]:
        message = data.get("message")
        if not isinstance(message, dict):
            return None
        content = message.get("content") or ""
        return content if isinstance(content, str) else None

    def extract_delta(self, data: dict[str, Any]) -> Optional[str]:
        message = data.get("message")
        if not isinstance(message, dict):
            return None
        content = message.get("content")
        return content if isinstance(content, str) else None

    async def list_models(self, config: ProviderConfig) -> list[str]:
        try:
            async with self.client() as client:
                resp = await client.get(
                    f"{self.base_url(config)}/api/tags",
                    headers=self.auth_headers(config),
                )
                resp.raise_for_status()
                data = resp.json()
            return [m["name"] for m in data.get("models") or [] if m.get("name")]
        except Exception as exc:
            logger.warning("Failed to fetch %s models, using fallback list: %s", self.name, exc)
            return list(self.profile.fallback_models)
