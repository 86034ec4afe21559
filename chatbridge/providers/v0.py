"""
v0 Platform API adapter (pass-through).

v0 already streams the outbound frame shape (`{object: "chat"}`, `{delta}`,
`[DONE]`), so streamed bodies are forwarded byte for byte. Sync replies only
get their message list reshaped.

  POST {base}/chats                   → new chat
  POST {base}/chats/{chatId}/messages → continue chat
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator

from chatbridge.errors import ConfigurationError, UpstreamError
from chatbridge.providers.base import (
    BaseProviderAdapter,
    ChatRequest,
    ChatResponse,
    ChatResult,
    ProviderConfig,
    ProviderProfile,
    ResponseMessage,
    StreamEvent,
)
from chatbridge.streaming.sse import encode_event

logger = logging.getLogger(__name__)

V0_PROFILE = ProviderProfile(
    id="v0",
    name="v0.dev",
    description="Vercel v0 - AI-powered React component generator",
    default_base_url="https://api.v0.dev/v1",
    requires_api_key=True,
    fallback_models=("v0-default",),
)


class V0Adapter(BaseProviderAdapter):
    async def create_chat(self, request: ChatRequest, config: ProviderConfig) -> ChatResult:
        self.require_credential(config)
        body: dict[str, Any] = {
            "message": request.message,
            "responseMode": "experimental_stream" if request.streaming else "sync",
        }
        if request.attachments:
            body["attachments"] = [a.model_dump() for a in request.attachments]
        return await self._send(f"{self.base_url(config)}/chats", body, config, request.streaming)

    async def continue_chat(self, request: ChatRequest, config: ProviderConfig) -> ChatResult:
        if not request.chat_id:
            raise ConfigurationError("Chat ID is required for continuing chat")
        self.require_credential(config)
        body: dict[str, Any] = {"message": request.message}
        if request.streaming:
            body["responseMode"] = "experimental_stream"
        if request.attachments:
            body["attachments"] = [a.model_dump() for a in request.attachments]
        url = f"{self.base_url(config)}/chats/{request.chat_id}/messages"
        return await self._send(url, body, config, request.streaming)

    async def list_models(self, config: ProviderConfig) -> list[str]:
        # v0 doesn't expose model selection
        return list(self.profile.fallback_models)

    async def _send(
        self, url: str, body: dict, config: ProviderConfig, streaming: bool
    ) -> ChatResult:
        headers = {"Content-Type": "application/json", **self.auth_headers(config)}
        if streaming:
            return self._forward_stream(url, body, headers)

        try:
            async with self.client() as client:
                resp = await client.post(url, json=body, headers=headers)
        except Exception as exc:
            raise UpstreamError(f"v0 request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise UpstreamError(
                f"v0 API error: {resp.status_code} {resp.reason_phrase} - {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )
        try:
            return self._map_response(resp.json())
        except ValueError as exc:
            raise UpstreamError(f"v0 returned an unexpected payload: {exc}") from exc

    async def _forward_stream(self, url: str, body: dict, headers: dict) -> AsyncIterator[bytes]:
        try:
            async with self.client() as client:
                async with client.stream("POST", url, json=body, headers=headers) as resp:
                    if resp.status_code >= 400:
                        text = (await resp.aread()).decode("utf-8", errors="replace")
                        raise UpstreamError(
                            f"v0 API error: {resp.status_code} {resp.reason_phrase} - {text}",
                            status_code=resp.status_code,
                            body=text,
                        )
                    async for chunk in resp.aiter_bytes():
                        yield chunk
        except Exception as exc:
            logger.error("v0 stream failed: %s", exc)
            yield encode_event(StreamEvent(type="error", data={"message": str(exc)}))

    @staticmethod
    def _map_response(data: dict[str, Any]) -> ChatResponse:
        if not isinstance(data, dict) or not data.get("id"):
            raise ValueError("response carried no chat id")
        messages = data.get("messages")
        if messages is not None and (
            not isinstance(messages, list) or not all(isinstance(m, dict) for m in messages)
        ):
            raise ValueError("messages must be a list of objects")
        return ChatResponse(
            id=data["id"],
            demo=data.get("demo"),
            messages=(
                [
                    ResponseMessage.model_validate(
                        {**msg, "experimental_content": msg.get("experimental_content")}
                    )
                    for msg in messages
                ]
                if messages is not None
                else None
            ),
        )
