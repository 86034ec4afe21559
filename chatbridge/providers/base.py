"""
Shared chat data model and the adapter interface.
All adapters implement `create_chat`, `continue_chat` and `list_models`.
"""
from __future__ import annotations

import random
import string
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Literal, Optional, Union

import httpx
from pydantic import BaseModel as PydanticModel, ConfigDict, Field

from chatbridge.errors import ConfigurationError

Role = Literal["user", "assistant", "system"]


# ── Request side ─────────────────────────────────────────────────────────────

class ChatTurn(PydanticModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class Attachment(PydanticModel):
    model_config = ConfigDict(frozen=True)

    url: str


class ChatRequest(PydanticModel):
    """One caller request. `chat_id` set ⇒ continuation of an upstream chat."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str
    chat_id: Optional[str] = Field(default=None, alias="chatId")
    prior_turns: list[ChatTurn] = Field(default_factory=list, alias="messages")
    streaming: bool = False
    attachments: list[Attachment] = Field(default_factory=list)


class ProviderConfig(PydanticModel):
    """Recognised keys plus any provider-specific extras (kept as-is)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", protected_namespaces=())

    base_url: Optional[str] = Field(default=None, alias="baseUrl")
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    model_name: Optional[str] = Field(default=None, alias="modelName")
    temperature: Optional[float] = None
    max_tokens: Optional[int] = Field(default=None, alias="maxTokens")

    def merged(self, **overrides: Any) -> ProviderConfig:
        """Copy with every non-None override applied."""
        updates = {k: v for k, v in overrides.items() if v is not None}
        return self.model_copy(update=updates)


# ── Response side ────────────────────────────────────────────────────────────

class ResponseMessage(PydanticModel):
    model_config = ConfigDict(extra="allow")

    id: str
    role: str
    content: str
    experimental_content: Any = None  # Document for normalised providers


class ChatResponse(PydanticModel):
    id: str
    demo: Optional[dict[str, Any]] = None
    messages: Optional[list[ResponseMessage]] = None


class StreamEvent(PydanticModel):
    """Events emitted on the outbound chat stream."""
    type: str  # "metadata" | "delta" | "done" | "error"
    data: Any = None


class ModelInfo(PydanticModel):
    id: str
    name: str
    provider: str
    description: Optional[str] = None


class ProviderInfo(PydanticModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    description: str
    requires_api_key: bool = Field(alias="requiresApiKey")
    default_base_url: Optional[str] = Field(default=None, alias="defaultBaseUrl")


# Streaming results are the outbound SSE byte frames, ready to hand to a response.
ChatStream = AsyncIterator[bytes]
ChatResult = Union[ChatResponse, ChatStream]


@dataclass(frozen=True)
class ProviderProfile:
    """
    Everything that distinguishes two deployments of the same wire protocol:
    where it lives, whether it needs a key, what to fall back to.
    """
    id: str
    name: str
    description: str
    default_base_url: Optional[str]
    requires_api_key: bool = False
    default_model: str = ""
    fallback_models: tuple[str, ...] = ()

    def info(self) -> ProviderInfo:
        return ProviderInfo(
            id=self.id,
            name=self.name,
            description=self.description,
            requires_api_key=self.requires_api_key,
            default_base_url=self.default_base_url,
        )


def new_chat_id(prefix: str) -> str:
    """Timestamp plus random suffix; unique enough, not cryptographic."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ── Adapter interface ────────────────────────────────────────────────────────

class BaseProviderAdapter(ABC):
    """Unified interface for all chat providers."""

    def __init__(
        self,
        profile: ProviderProfile,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 60.0,
    ):
        self.profile = profile
        self._transport = transport
        self._timeout = timeout

    @property
    def name(self) -> str:
        return self.profile.id

    @abstractmethod
    async def create_chat(self, request: ChatRequest, config: ProviderConfig) -> ChatResult:
        """Start a new upstream conversation from `request.message`."""

    @abstractmethod
    async def continue_chat(self, request: ChatRequest, config: ProviderConfig) -> ChatResult:
        """Continue a conversation; `request.prior_turns` precede the new message."""

    @abstractmethod
    async def list_models(self, config: ProviderConfig) -> list[str]:
        """Best effort. Never raises; falls back to the profile's list."""

    # ── helpers shared by the HTTP adapters ─────────────────────────────────

    def base_url(self, config: ProviderConfig) -> str:
        base = config.base_url or self.profile.default_base_url or ""
        return base.rstrip("/")

    def model(self, config: ProviderConfig) -> str:
        return config.model_name or self.profile.default_model

    def require_credential(self, config: ProviderConfig) -> None:
        if self.profile.requires_api_key and not config.api_key:
            raise ConfigurationError(
                f"{self.profile.name} requires an API key. Please configure your API key in settings."
            )

    def auth_headers(self, config: ProviderConfig) -> dict[str, str]:
        if config.api_key:
            return {"Authorization": f"Bearer {config.api_key}"}
        return {}

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
