"""Shared pytest fixtures: fake upstreams served through httpx.MockTransport."""

import asyncio
import json
from typing import Callable

import httpx
import pytest

from chatbridge import config as config_module
from chatbridge.config import AppSettings, ChatBridgeConfig
from chatbridge.streaming.sse import parse_events


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered in the exact chunks given; records reads and close."""

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.reads = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            self.reads += 1
            yield chunk

    async def aclose(self):
        self.closed = True


class TakingTurns:
    """
    Several upstream bodies that hand out one chunk each in strict rotation,
    so concurrent streams are forced to interleave. `log` records who yielded.
    """

    def __init__(self, *names):
        self.order = list(names)
        self.log: list[str] = []

    def body(self, name, chunks) -> httpx.AsyncByteStream:
        return _TurnStream(self, name, chunks)


class _TurnStream(httpx.AsyncByteStream):
    def __init__(self, turns, name, chunks):
        self.turns = turns
        self.name = name
        self.chunks = list(chunks)

    async def __aiter__(self):
        for chunk in self.chunks:
            while self.turns.order[0] != self.name:
                await asyncio.sleep(0)
            self.turns.order.append(self.turns.order.pop(0))
            self.turns.log.append(self.name)
            yield chunk


class FakeUpstream:
    """Callable MockTransport handler that keeps every request it saw."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def upstream():
    """Factory: upstream(handler) -> FakeUpstream."""
    return FakeUpstream


@pytest.fixture
def chunked():
    """Factory: chunked([b"...", ...], status=200) -> (Response, ChunkedStream)."""
    def _make(chunks, status: int = 200):
        stream = ChunkedStream(chunks)
        return httpx.Response(status, stream=stream), stream
    return _make


@pytest.fixture
def collect_events():
    async def _collect(stream):
        return [event async for event in parse_events(stream)]
    return _collect


@pytest.fixture
def collect_bytes():
    async def _collect(stream):
        return b"".join([chunk async for chunk in stream])
    return _collect


@pytest.fixture
def app_config(tmp_path, monkeypatch):
    """Isolated config file and cache; V0_* env vars cleared."""
    monkeypatch.delenv("V0_API_KEY", raising=False)
    monkeypatch.delenv("V0_API_URL", raising=False)
    settings = AppSettings(config_path=str(tmp_path / "chatbridge.json"))
    cfg = ChatBridgeConfig()
    monkeypatch.setattr(config_module, "_settings", settings)
    monkeypatch.setattr(config_module, "_config", cfg)
    return cfg


@pytest.fixture
def taking_turns():
    """Factory: taking_turns("A", "B") -> TakingTurns."""
    return TakingTurns
