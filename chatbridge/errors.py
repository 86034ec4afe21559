"""
Error taxonomy shared by adapters, the registry and the HTTP layer.

  ConfigurationError    → caller-side problem, raised before any network call
  ProviderNotFoundError → unknown provider id
  UpstreamError         → the upstream answered badly or not at all

Nothing here is retried.
"""
from __future__ import annotations

from typing import Optional


class ChatBridgeError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(ChatBridgeError):
    """Missing credential, missing continuation id, bad provider config."""


class ProviderNotFoundError(ConfigurationError):
    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"Provider {provider_id} not found")


class UpstreamError(ChatBridgeError):
    """
    Non-success status, network failure or unreadable payload from an upstream.
    `status_code` is None when no HTTP response was received.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)
