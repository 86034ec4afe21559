"""
Providers API router.
GET /providers                  : provider catalogue
GET /providers/{provider}/models: models offered by one provider (best effort)
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from chatbridge.errors import ProviderNotFoundError
from chatbridge.providers.base import ProviderConfig
from chatbridge.providers.registry import ProviderRegistry
from chatbridge.routers.deps import get_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/providers", tags=["providers"])


@router.get("")
async def list_providers(registry: ProviderRegistry = Depends(get_registry)):
    return {"providers": [p.model_dump(by_alias=True) for p in registry.providers()]}


@router.get("/{provider}/models")
async def list_models(
    provider: str,
    baseUrl: Optional[str] = None,
    apiKey: Optional[str] = None,
    registry: ProviderRegistry = Depends(get_registry),
):
    try:
        models = await registry.available_models(
            provider, ProviderConfig(base_url=baseUrl or None, api_key=apiKey or None)
        )
    except ProviderNotFoundError as e:
        logger.warning("Failed to fetch models: %s", e.message)
        return JSONResponse(
            {"error": "Failed to fetch models", "details": e.message},
            status_code=404,
        )
    return {"models": [m.model_dump(exclude_none=True) for m in models]}
