"""
OpenAI-compatible adapter.
Works with LM Studio (http://localhost:1234) and the Meta Llama API; any
endpoint speaking /v1/chat/completions can get its own profile.

  POST {base}/v1/chat/completions → {model, messages, temperature, max_tokens, stream}
  stream                          → "data: {choices: [{delta: {content}}]}" ... "data: [DONE]"
  GET  {base}/v1/models           → via the openai SDK
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from openai import AsyncOpenAI, Omit

from chatbridge.providers.base import ProviderConfig, ProviderProfile
from chatbridge.providers.normalizing import NormalizingAdapter
from chatbridge.streaming.framing import SSEFraming

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000

LMSTUDIO_PROFILE = ProviderProfile(
    id="lmstudio",
    name="LM Studio",
    description="Local LLM inference with LM Studio",
    default_base_url="http://localhost:1234",
    requires_api_key=False,
    default_model="local-model",
    fallback_models=("local-model",),
)

LLAMA_PROFILE = ProviderProfile(
    id="llama",
    name="Meta Llama API",
    description="Official Meta Llama API",
    default_base_url="https://api.llama-api.com",
    requires_api_key=True,
    default_model="llama3.2-1b",
    fallback_models=(
        "llama3.2-1b",
        "llama3.2-3b",
        "llama3.1-8b",
        "llama3.1-70b",
        "llama3.1-405b",
    ),
)


def _first_choice(data: dict[str, Any]) -> dict[str, Any]:
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return {}
    return choices[0]


class OpenAICompatAdapter(NormalizingAdapter):
    chat_path = "/v1/chat/completions"
    framing_class = SSEFraming

    def build_payload(
        self, model: str, messages: list[dict], config: ProviderConfig, stream: bool
    ) -> dict[str, Any]:
        return {
            "model":       model,
            "messages":    messages,
            "temperature": DEFAULT_TEMPERATURE if config.temperature is None else config.temperature,
            "max_tokens":  config.max_tokens or DEFAULT_MAX_TOKENS,
            "stream":      stream,
        }

    def extract_text(self, data: dict[str, Any]) -> Optional[str]:
        message = _first_choice(data).get("message")
        if not isinstance(message, dict):
            return None
        content = message.get("content") or ""
        return content if isinstance(content, str) else None

    def extract_delta(self, data: dict[str, Any]) -> Optional[str]:
        delta = _first_choice(data).get("delta")
        if not isinstance(delta, dict):
            return None
        content = delta.get("content")
        return content if isinstance(content, str) else None

    async def list_models(self, config: ProviderConfig) -> list[str]:
        try:
            async with self.client() as http_client:
                # no key configured: the SDK still wants one, so drop its header
                client = AsyncOpenAI(
                    base_url=f"{self.base_url(config)}/v1",
                    api_key=config.api_key or "unused",
                    default_headers=None if config.api_key else {"Authorization": Omit()},
                    http_client=http_client,
                    max_retries=0,
                )
                page = await client.models.list()
            return [m.id for m in page.data]
        except Exception as exc:
            logger.warning("Failed to fetch %s models, using fallback list: %s", self.name, exc)
            return list(self.profile.fallback_models)
