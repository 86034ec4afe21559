"""Tests for the Ollama (newline-delimited JSON) adapter, local and cloud profiles."""

import asyncio
import json

import httpx
import pytest

from chatbridge.errors import ConfigurationError, UpstreamError
from chatbridge.providers.base import ChatRequest, ChatResponse, ChatTurn, ProviderConfig
from chatbridge.providers.ollama import OLLAMA_CLOUD_PROFILE, OLLAMA_PROFILE, OllamaAdapter
from chatbridge.streaming.formatter import format_document


def _line(content, done=False):
    return (json.dumps({
        "model": "llama3.2",
        "message": {"role": "assistant", "content": content},
        "done": done,
    }) + "\n").encode("utf-8")


def _reply(content):
    return httpx.Response(200, json={
        "model": "llama3.2",
        "message": {"role": "assistant", "content": content},
        "done": True,
    })


class TestSyncChat:
    @pytest.mark.asyncio
    async def test_hello_world_document(self, upstream):
        fake = upstream(lambda req: _reply("Hello\n\nWorld"))
        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=fake.transport)

        result = await adapter.create_chat(ChatRequest(message="hi"), ProviderConfig())

        assert isinstance(result, ChatResponse)
        assert result.id.startswith("ollama-")
        assert [m.id for m in result.messages] == ["msg-0", "msg-1"]
        assert result.messages[0].role == "user" and result.messages[0].content == "hi"
        assistant = result.messages[-1]
        assert assistant.role == "assistant"
        assert assistant.content == "Hello\n\nWorld"
        assert assistant.experimental_content == [[0, "Hello"], [0, "World"]]

    @pytest.mark.asyncio
    async def test_request_shape_uses_defaults(self, upstream):
        fake = upstream(lambda req: _reply("ok"))
        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=fake.transport)

        await adapter.create_chat(ChatRequest(message="hi"), ProviderConfig())

        request = fake.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://localhost:11434/api/chat"
        assert "authorization" not in request.headers
        assert fake.body() == {
            "model": "llama3.2",
            "messages": [{"role": "user", "content": "hi"}],
            "stream": False,
            "options": {},
        }

    @pytest.mark.asyncio
    async def test_config_overrides(self, upstream):
        fake = upstream(lambda req: _reply("ok"))
        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=fake.transport)
        config = ProviderConfig(
            baseUrl="http://gpu-box:11434/",
            apiKey="secret",
            modelName="mistral",
            temperature=0.2,
            maxTokens=128,
        )

        await adapter.create_chat(ChatRequest(message="hi"), config)

        request = fake.requests[0]
        assert str(request.url) == "http://gpu-box:11434/api/chat"
        assert request.headers["authorization"] == "Bearer secret"
        body = fake.body()
        assert body["model"] == "mistral"
        assert body["options"] == {"temperature": 0.2, "num_predict": 128}

    @pytest.mark.asyncio
    async def test_continue_sends_history_in_order(self, upstream):
        fake = upstream(lambda req: _reply("D"))
        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=fake.transport)
        request = ChatRequest(
            message="C",
            chat_id="ollama-1-x",
            prior_turns=[ChatTurn(role="user", content="A"), ChatTurn(role="assistant", content="B")],
        )

        result = await adapter.continue_chat(request, ProviderConfig())

        assert [m["content"] for m in fake.body()["messages"]] == ["A", "B", "C"]
        assert [m["role"] for m in fake.body()["messages"]] == ["user", "assistant", "user"]
        assert [m.content for m in result.messages] == ["A", "B", "C", "D"]
        assert [m.id for m in result.messages] == ["msg-0", "msg-1", "msg-2", "msg-3"]

    @pytest.mark.asyncio
    async def test_continue_without_chat_id_is_allowed(self, upstream):
        fake = upstream(lambda req: _reply("fine"))
        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=fake.transport)
        result = await adapter.continue_chat(ChatRequest(message="x"), ProviderConfig())
        assert result.messages[-1].content == "fine"

    @pytest.mark.asyncio
    async def test_http_error_is_raised_with_status(self, upstream):
        fake = upstream(lambda req: httpx.Response(404, text="model 'nope' not found"))
        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=fake.transport)

        with pytest.raises(UpstreamError) as exc_info:
            await adapter.create_chat(ChatRequest(message="hi"), ProviderConfig())

        assert exc_info.value.status_code == 404
        assert "model 'nope' not found" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_network_error_is_raised(self, upstream):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=upstream(refuse).transport)
        with pytest.raises(UpstreamError) as exc_info:
            await adapter.create_chat(ChatRequest(message="hi"), ProviderConfig())
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [[], "oops", 3, {"message": {"content": ["not", "text"]}}])
    async def test_reply_that_is_not_a_chat_object(self, upstream, payload):
        fake = upstream(lambda req: httpx.Response(200, json=payload))
        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=fake.transport)

        with pytest.raises(UpstreamError):
            await adapter.create_chat(ChatRequest(message="x"), ProviderConfig())


class TestStreamingChat:
    @pytest.mark.asyncio
    async def test_event_sequence(self, upstream, chunked, collect_events):
        response, _ = chunked([_line("Hello"), _line("\n\nWor"), _line("ld"), _line("", done=True)])
        fake = upstream(lambda req: response)
        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=fake.transport)

        stream = await adapter.create_chat(ChatRequest(message="hi", streaming=True), ProviderConfig())
        events = await collect_events(stream)

        assert [e.type for e in events] == ["metadata", "delta", "delta", "delta", "done"]
        assert events[0].data["object"] == "chat"
        assert events[0].data["id"].startswith("ollama-")
        assert events[0].data["createdAt"]
        assert events[1].data == [[0, "Hello"]]
        assert events[2].data == [[0, "Hello"], [0, "Wor"]]
        assert events[3].data == [[0, "Hello"], [0, "World"]]
        assert fake.body()["stream"] is True

    @pytest.mark.asyncio
    async def test_no_network_call_until_consumed(self, upstream, chunked):
        response, _ = chunked([_line("x")])
        fake = upstream(lambda req: response)
        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=fake.transport)

        stream = await adapter.create_chat(ChatRequest(message="hi", streaming=True), ProviderConfig())
        assert fake.requests == []
        first = await stream.__anext__()
        assert first.startswith(b'data: {"object": "chat"')
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_split_chunks_give_same_final_document(self, upstream, chunked, collect_events):
        raw = _line("Olá ") + _line("mundo ✓") + _line("\n\nfim") + _line("", done=True)
        final_docs = set()
        for size in (1, 2, 5, 17, len(raw)):
            chunks = [raw[i:i + size] for i in range(0, len(raw), size)]
            response, _ = chunked(chunks)
            adapter = OllamaAdapter(OLLAMA_PROFILE, transport=upstream(lambda req: response).transport)
            stream = await adapter.create_chat(ChatRequest(message="hi", streaming=True), ProviderConfig())
            events = await collect_events(stream)
            assert events[-1].type == "done"
            final_docs.add(json.dumps(events[-2].data))

        assert final_docs == {json.dumps([[0, "Olá mundo ✓"], [0, "fim"]])}

    @pytest.mark.asyncio
    async def test_streaming_matches_sync_document(self, upstream, chunked, collect_events):
        text = "First part.\n\nSecond  part.\n\n"
        pieces = ["First", " part.", "\n\nSecond ", " part.\n\n"]

        sync_adapter = OllamaAdapter(OLLAMA_PROFILE, transport=upstream(lambda req: _reply(text)).transport)
        sync_result = await sync_adapter.create_chat(ChatRequest(message="q"), ProviderConfig())

        response, _ = chunked([_line(p) for p in pieces])
        stream_adapter = OllamaAdapter(OLLAMA_PROFILE, transport=upstream(lambda req: response).transport)
        stream = await stream_adapter.create_chat(ChatRequest(message="q", streaming=True), ProviderConfig())
        events = await collect_events(stream)

        assert events[-2].data == sync_result.messages[-1].experimental_content == format_document(text)

    @pytest.mark.asyncio
    async def test_malformed_line_does_not_abort(self, upstream, chunked, collect_events):
        response, _ = chunked([_line("A"), b'{"message": {"content": "B"\n', _line("C")])
        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=upstream(lambda req: response).transport)

        stream = await adapter.create_chat(ChatRequest(message="hi", streaming=True), ProviderConfig())
        events = await collect_events(stream)

        assert [e.type for e in events] == ["metadata", "delta", "delta", "done"]
        assert events[-2].data == [[0, "AC"]]

    @pytest.mark.asyncio
    async def test_http_error_becomes_terminal_error_event(self, upstream, collect_events):
        fake = upstream(lambda req: httpx.Response(500, text="out of memory"))
        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=fake.transport)

        stream = await adapter.create_chat(ChatRequest(message="hi", streaming=True), ProviderConfig())
        events = await collect_events(stream)

        assert [e.type for e in events] == ["metadata", "error"]
        assert "500" in events[-1].data["message"]
        assert "out of memory" in events[-1].data["message"]

    @pytest.mark.asyncio
    async def test_network_error_becomes_terminal_error_event(self, upstream, collect_events):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=upstream(refuse).transport)
        stream = await adapter.create_chat(ChatRequest(message="hi", streaming=True), ProviderConfig())
        events = await collect_events(stream)

        assert [e.type for e in events] == ["metadata", "error"]
        assert "connection refused" in events[-1].data["message"]

    @pytest.mark.asyncio
    async def test_consumer_cancel_releases_upstream(self, upstream, chunked):
        response, body = chunked([_line(str(i)) for i in range(50)])
        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=upstream(lambda req: response).transport)

        stream = await adapter.create_chat(ChatRequest(message="hi", streaming=True), ProviderConfig())
        await stream.__anext__()  # metadata
        await stream.__anext__()  # first delta
        await stream.aclose()

        assert body.closed is True
        assert body.reads < 50

    @pytest.mark.asyncio
    async def test_concurrent_streams_keep_separate_state(self, upstream, taking_turns, collect_events):
        turns = taking_turns("A", "B")

        def handler(request):
            name = json.loads(request.content)["messages"][-1]["content"]
            chunks = [_line(f"{name}0"), _line(f"{name}1"), _line(f"{name}2", done=True)]
            return httpx.Response(200, stream=turns.body(name, chunks))

        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=upstream(handler).transport)

        async def run(name):
            stream = await adapter.create_chat(ChatRequest(message=name, streaming=True), ProviderConfig())
            return await collect_events(stream)

        events_a, events_b = await asyncio.gather(run("A"), run("B"))

        assert turns.log == ["A", "B", "A", "B", "A", "B"]
        assert events_a[-2].data == [[0, "A0A1A2"]]
        assert events_b[-2].data == [[0, "B0B1B2"]]
        assert events_a[0].data["id"] != events_b[0].data["id"]
        assert events_a[-1].type == events_b[-1].type == "done"


class TestCloudProfile:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("streaming", [False, True])
    async def test_missing_key_fails_before_network(self, upstream, streaming):
        fake = upstream(lambda req: _reply("never"))
        adapter = OllamaAdapter(OLLAMA_CLOUD_PROFILE, transport=fake.transport)

        with pytest.raises(ConfigurationError, match="requires an API key"):
            await adapter.create_chat(ChatRequest(message="hi", streaming=streaming), ProviderConfig())
        with pytest.raises(ConfigurationError):
            await adapter.continue_chat(ChatRequest(message="hi", streaming=streaming), ProviderConfig())
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_uses_cloud_host_and_bearer(self, upstream):
        fake = upstream(lambda req: _reply("cloudy"))
        adapter = OllamaAdapter(OLLAMA_CLOUD_PROFILE, transport=fake.transport)

        result = await adapter.create_chat(ChatRequest(message="hi"), ProviderConfig(apiKey="k"))

        assert str(fake.requests[0].url) == "https://ollama.com/api/chat"
        assert fake.requests[0].headers["authorization"] == "Bearer k"
        assert result.id.startswith("ollama-cloud-")


class TestListModels:
    @pytest.mark.asyncio
    async def test_reads_tags(self, upstream):
        fake = upstream(lambda req: httpx.Response(200, json={
            "models": [{"name": "llama3.2:latest"}, {"name": "qwen2.5:7b"}],
        }))
        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=fake.transport)

        assert await adapter.list_models(ProviderConfig()) == ["llama3.2:latest", "qwen2.5:7b"]
        assert str(fake.requests[0].url) == "http://localhost:11434/api/tags"

    @pytest.mark.asyncio
    async def test_cloud_lists_from_cloud_host_with_key(self, upstream):
        fake = upstream(lambda req: httpx.Response(200, json={"models": [{"name": "gpt-oss:120b"}]}))
        adapter = OllamaAdapter(OLLAMA_CLOUD_PROFILE, transport=fake.transport)

        assert await adapter.list_models(ProviderConfig(apiKey="k")) == ["gpt-oss:120b"]
        assert str(fake.requests[0].url) == "https://ollama.com/api/tags"
        assert fake.requests[0].headers["authorization"] == "Bearer k"

    @pytest.mark.asyncio
    async def test_failure_falls_back(self, upstream):
        fake = upstream(lambda req: httpx.Response(503, text="down"))
        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=fake.transport)

        assert await adapter.list_models(ProviderConfig()) == ["llama3.2", "llama3.1", "mistral", "codellama"]

    @pytest.mark.asyncio
    async def test_unreachable_falls_back(self, upstream):
        def refuse(request):
            raise httpx.ConnectError("nope", request=request)

        adapter = OllamaAdapter(OLLAMA_PROFILE, transport=upstream(refuse).transport)
        assert await adapter.list_models(ProviderConfig()) == list(OLLAMA_PROFILE.fallback_models)
