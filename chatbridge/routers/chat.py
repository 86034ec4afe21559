"""
Chat API router.
POST /chat: create or continue a chat (JSON reply, or SSE stream when streaming=true)

Persisting who owns the returned chat id is left to the caller's store; this
route only logs it.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from chatbridge.config import get_config, resolve_provider_config
from chatbridge.errors import ConfigurationError, ProviderNotFoundError, UpstreamError
from chatbridge.providers.base import Attachment, ChatRequest, ChatResponse, ChatTurn
from chatbridge.providers.registry import ProviderRegistry
from chatbridge.routers.deps import get_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


class SendMessageRequest(BaseModel):
    message: Optional[str] = None
    chatId: Optional[str] = None
    streaming: bool = False
    attachments: Optional[list[Attachment]] = None
    messages: Optional[list[ChatTurn]] = None
    provider: Optional[str] = None  # override the stored preference for this call
    model: Optional[str] = None


def _failure(status_code: int, details: str) -> JSONResponse:
    return JSONResponse(
        {"error": "Failed to process request", "details": details},
        status_code=status_code,
    )


@router.post("/chat")
async def send_message(body: SendMessageRequest, registry: ProviderRegistry = Depends(get_registry)):
    if not body.message:
        return JSONResponse({"error": "Message is required"}, status_code=400)

    cfg = get_config()
    provider_id = body.provider or cfg.default_provider

    try:
        adapter = registry.resolve(provider_id)
        provider_config = resolve_provider_config(provider_id, body.model, cfg)

        logger.info(
            "API request: provider=%s model=%s chat_id=%s streaming=%s has_api_key=%s",
            provider_id,
            provider_config.model_name,
            body.chatId,
            body.streaming,
            bool(provider_config.api_key),
        )

        request = ChatRequest(
            message=body.message,
            chat_id=body.chatId,
            prior_turns=body.messages or [],
            streaming=body.streaming,
            attachments=body.attachments or [],
        )
        if body.chatId:
            result = await adapter.continue_chat(request, provider_config)
        else:
            result = await adapter.create_chat(request, provider_config)

    except ProviderNotFoundError as e:
        return _failure(404, e.message)
    except ConfigurationError as e:
        return _failure(400, e.message)
    except UpstreamError as e:
        logger.error("Upstream error from %s: %s", provider_id, e.message)
        return _failure(502, e.message)
    except Exception as e:
        logger.exception("API error")
        return _failure(500, str(e))

    if isinstance(result, ChatResponse):
        if not body.chatId:
            logger.info("Chat created: %s (provider=%s)", result.id, provider_id)
        return JSONResponse(result.model_dump(mode="json", exclude_none=True))

    return StreamingResponse(result, media_type="text/event-stream", headers=SSE_HEADERS)
