"""
FastAPI dependencies shared by the routers.
"""
from __future__ import annotations

from fastapi import Request

from chatbridge.providers.registry import ProviderRegistry


def get_registry(request: Request) -> ProviderRegistry:
    return request.app.state.registry
