"""
Preferences API router.
GET /preferences: selected provider, model and provider config (key masked)
PUT /preferences: update them and persist to chatbridge.json
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from chatbridge.config import ChatBridgeConfig, get_config, save_config
from chatbridge.providers.base import ProviderConfig
from chatbridge.providers.registry import ProviderRegistry
from chatbridge.routers.deps import get_registry

router = APIRouter(prefix="/preferences", tags=["preferences"])

MASK = "***"


class UpdatePreferencesRequest(BaseModel):
    provider: Optional[str] = None
    modelName: Optional[str] = None
    providerConfig: Optional[dict[str, Any]] = None


def _serialize(cfg: ChatBridgeConfig) -> dict:
    stored = cfg.providers.get(cfg.default_provider)
    provider_config = None
    if stored is not None:
        provider_config = stored.model_dump(by_alias=True, exclude_none=True)
        if provider_config.get("apiKey"):
            provider_config["apiKey"] = MASK
    return {
        "provider": cfg.default_provider,
        "modelName": cfg.default_model,
        "providerConfig": provider_config,
    }


@router.get("")
async def read_preferences():
    return _serialize(get_config())


@router.put("")
async def update_preferences(
    body: UpdatePreferencesRequest,
    registry: ProviderRegistry = Depends(get_registry),
):
    if not body.provider:
        return JSONResponse({"error": "Provider is required"}, status_code=400)
    if body.provider not in registry:
        return JSONResponse(
            {"error": "Failed to update preferences", "details": f"Provider {body.provider} not found"},
            status_code=404,
        )

    incoming = None
    if body.providerConfig is not None:
        try:
            incoming = ProviderConfig.model_validate(body.providerConfig)
        except ValidationError as e:
            return JSONResponse(
                {"error": "Failed to update preferences", "details": str(e)},
                status_code=400,
            )

    # edit a copy; save_config swaps it into the cache once the file is written
    cfg = get_config().model_copy(deep=True)
    cfg.default_provider = body.provider
    cfg.default_model = body.modelName or None

    if incoming is not None:
        # The masked key echoed back by GET means "keep the stored one"
        if incoming.api_key == MASK:
            incoming = incoming.model_copy(
                update={"api_key": cfg.get_provider_config(body.provider).api_key}
            )
        cfg.providers[body.provider] = incoming

    save_config(cfg)
    return _serialize(cfg)
