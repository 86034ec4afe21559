"""
ChatBridge: FastAPI entrypoint.
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env before anything else
load_dotenv()

from chatbridge.config import get_settings, load_config
from chatbridge.providers.registry import ProviderRegistry, build_default_registry
from chatbridge.routers.chat import router as chat_router
from chatbridge.routers.preferences import router as preferences_router
from chatbridge.routers.providers import router as providers_router

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    load_config()
    yield


def create_app(registry: Optional[ProviderRegistry] = None) -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="ChatBridge",
        description="One streaming chat contract over several upstream chat providers",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.registry = registry or build_default_registry(timeout=settings.http_timeout)

    # CORS_ORIGINS env var: comma-separated list of allowed origins.
    # Default: localhost only (development).
    raw_origins = os.getenv("CORS_ORIGINS", "")
    cors_origins: list[str] = (
        [o.strip() for o in raw_origins.split(",") if o.strip()]
        if raw_origins
        else ["http://localhost:3000", "http://127.0.0.1:3000"]
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router, prefix="/api")
    app.include_router(providers_router, prefix="/api")
    app.include_router(preferences_router, prefix="/api")

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "version": VERSION}

    return app


app = create_app()


def start():
    import uvicorn
    settings = get_settings()
    uvicorn.run("chatbridge.main:app", host=settings.host, port=settings.port, reload=True)


if __name__ == "__main__":
    start()
