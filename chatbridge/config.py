"""
Configuration system: reads chatbridge.json + .env
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from chatbridge.providers.base import ProviderConfig


# ── JSON schema models ───────────────────────────────────────────────────────

class ChatBridgeConfig(BaseModel):
    version: str = "1.0"
    default_provider: str = "v0"
    default_model: Optional[str] = None
    providers: dict[str, ProviderConfig] = Field(default_factory=dict)

    def get_provider_config(self, provider_id: str) -> ProviderConfig:
        return self.providers.get(provider_id) or ProviderConfig()


# ── App settings (from .env) ─────────────────────────────────────────────────

class AppSettings(BaseSettings):
    host: str = "127.0.0.1"
    port: int = 8000
    config_path: str = "./chatbridge.json"
    http_timeout: float = 60.0
    log_level: str = "INFO"

    model_config = {"env_prefix": "CHATBRIDGE_", "env_file": ".env", "extra": "ignore"}


# ── Singleton loaders ─────────────────────────────────────────────────────────

_config: Optional[ChatBridgeConfig] = None
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def _config_file(path: Optional[str]) -> Path:
    return Path(path or get_settings().config_path)


def load_config(path: Optional[str] = None) -> ChatBridgeConfig:
    global _config
    config_file = _config_file(path)

    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            data = json.load(f)
        _config = ChatBridgeConfig(**data)
    else:
        _config = ChatBridgeConfig()

    return _config


def get_config() -> ChatBridgeConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def save_config(config: ChatBridgeConfig, path: Optional[str] = None) -> None:
    global _config
    with open(_config_file(path), "w", encoding="utf-8") as f:
        json.dump(config.model_dump(by_alias=True, exclude_none=True), f, indent=2)
    _config = config


# ── Per-call provider config ──────────────────────────────────────────────────

def resolve_provider_config(
    provider_id: str,
    model_name: Optional[str] = None,
    config: Optional[ChatBridgeConfig] = None,
) -> ProviderConfig:
    """
    Stored provider config + environment defaults + model override.

    For v0, V0_API_KEY always wins over a stored key and V0_API_URL is used
    only when no base URL is stored.
    """
    cfg = config or get_config()
    provider_cfg = cfg.get_provider_config(provider_id)

    if provider_id == "v0":
        env_key = os.environ.get("V0_API_KEY")
        env_url = os.environ.get("V0_API_URL")
        if env_key:
            provider_cfg = provider_cfg.merged(api_key=env_key)
        if env_url and not provider_cfg.base_url:
            provider_cfg = provider_cfg.merged(base_url=env_url)

    if not model_name and provider_id == cfg.default_provider:
        model_name = cfg.default_model
    return provider_cfg.merged(model_name=model_name)
