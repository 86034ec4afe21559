"""
Request/response pipeline shared by adapters whose upstream speaks its own
chat wire format and has to be normalised.

Subclasses only describe the wire format:
  chat_path      → endpoint appended to the base URL
  framing_class  → how the streamed body is split into JSON payloads
  build_payload  → request body
  extract_text   → assistant text of a non-streamed reply
  extract_delta  → incremental text of one streamed payload
"""
from __future__ import annotations

import logging
from abc import abstractmethod
from contextlib import aclosing
from typing import Any, AsyncIterator, Optional

from chatbridge.errors import UpstreamError
from chatbridge.providers.base import (
    BaseProviderAdapter,
    ChatRequest,
    ChatResponse,
    ChatResult,
    ChatTurn,
    ProviderConfig,
    ResponseMessage,
    StreamEvent,
    new_chat_id,
    utc_now_iso,
)
from chatbridge.streaming.formatter import format_document
from chatbridge.streaming.framing import JsonLinesFraming
from chatbridge.streaming.sse import encode_events

logger = logging.getLogger(__name__)


class NormalizingAdapter(BaseProviderAdapter):
    chat_path: str
    framing_class: type[JsonLinesFraming] = JsonLinesFraming

    @abstractmethod
    def build_payload(
        self, model: str, messages: list[dict], config: ProviderConfig, stream: bool
    ) -> dict[str, Any]:
        ...

    @abstractmethod
    def extract_text(self, data: dict[str, Any]) -> Optional[str]:
        ...

    @abstractmethod
    def extract_delta(self, data: dict[str, Any]) -> Optional[str]:
        ...

    async def create_chat(self, request: ChatRequest, config: ProviderConfig) -> ChatResult:
        turns = [ChatTurn(role="user", content=request.message)]
        return await self._chat(turns, request, config)

    async def continue_chat(self, request: ChatRequest, config: ProviderConfig) -> ChatResult:
        # The whole history is resent, so no upstream chat id is needed.
        turns = [*request.prior_turns, ChatTurn(role="user", content=request.message)]
        return await self._chat(turns, request, config)

    async def _chat(
        self, turns: list[ChatTurn], request: ChatRequest, config: ProviderConfig
    ) -> ChatResult:
        self.require_credential(config)

        url = f"{self.base_url(config)}{self.chat_path}"
        messages = [{"role": t.role, "content": t.content} for t in turns]
        payload = self.build_payload(self.model(config), messages, config, request.streaming)
        headers = {"Content-Type": "application/json", **self.auth_headers(config)}

        if request.streaming:
            return encode_events(self._stream_events(url, payload, headers))
        return await self._sync_chat(url, payload, headers, messages)

    # ── sync ────────────────────────────────────────────────────────────────

    async def _sync_chat(
        self, url: str, payload: dict, headers: dict, messages: list[dict]
    ) -> ChatResponse:
        try:
            async with self.client() as client:
                resp = await client.post(url, json=payload, headers=headers)
        except Exception as exc:
            raise UpstreamError(f"{self.profile.name} request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise UpstreamError(
                f"{self.profile.name} API error: {resp.status_code} {resp.reason_phrase} - {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamError(f"{self.profile.name} returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise UpstreamError(
                f"{self.profile.name} returned an unexpected payload: {type(data).__name__}"
            )

        text = self.extract_text(data)
        if text is None:
            raise UpstreamError(f"{self.profile.name} response carried no assistant message")

        return ChatResponse(
            id=new_chat_id(self.name),
            messages=[
                *(
                    ResponseMessage(id=f"msg-{idx}", role=m["role"], content=m["content"])
                    for idx, m in enumerate(messages)
                ),
                ResponseMessage(
                    id=f"msg-{len(messages)}",
                    role="assistant",
                    content=text,
                    experimental_content=format_document(text),
                ),
            ],
        )

    # ── streaming ───────────────────────────────────────────────────────────

    async def _stream_events(
        self, url: str, payload: dict, headers: dict
    ) -> AsyncIterator[StreamEvent]:
        """
        metadata first, then one delta per text increment carrying the whole
        Document so far, then done. Any failure ends the stream with error.
        """
        yield StreamEvent(
            type="metadata",
            data={"object": "chat", "id": new_chat_id(self.name), "createdAt": utc_now_iso()},
        )

        full_text = ""
        framing = self.framing_class(source=self.name)
        try:
            async with self.client() as client:
                async with client.stream("POST", url, json=payload, headers=headers) as resp:
                    if resp.status_code >= 400:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        raise UpstreamError(
                            f"{self.profile.name} API error: {resp.status_code} {resp.reason_phrase} - {body}",
                            status_code=resp.status_code,
                            body=body,
                        )

                    async with aclosing(framing.iter_payloads(resp.aiter_bytes())) as payloads:
                        async for data in payloads:
                            text = self.extract_delta(data)
                            if not text:
                                continue
                            full_text += text
                            yield StreamEvent(type="delta", data=format_document(full_text))
        except Exception as exc:
            logger.error("%s stream failed after %d chars: %s", self.name, len(full_text), exc)
            yield StreamEvent(type="error", data={"message": str(exc)})
            return

        yield StreamEvent(type="done")
