"""Unit tests for ChatRelay."""
import sys
sys.path.insert(0, 'backend')

import asyncio
import json
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from models.registry import ChatServer, ModelInfo, ServerKind
from services.chat_storage import ChatStorage
from services.registry import ModelRegistry, ServerGroup
from services.relay import (
    ChatRelay,
    DownstreamError,
    NO_CONTENT_REPLY,
    NoBackendAvailableError,
    NoModelAvailableError,
)
from services.storage_base import StorageIOError


def _completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class FakeBackend:
    """Records downstream requests and answers with a canned response."""

    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self.payload = payload
        self.text = text
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text)
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def last_body(self):
        return json.loads(self.requests[-1].content)


async def _build_relay(handler, storage=None, models=("llama-3",), servers=(ChatServer(url="http://backend/v1/"),)):
    storage = storage or ChatStorage.memory_only()
    registry = ModelRegistry()
    for model_id in models:
        await registry.register(ServerKind.CHAT, ModelInfo(id=model_id))
    groups = {ServerKind.CHAT: ServerGroup(ServerKind.CHAT, servers)} if servers is not None else {}
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ChatRelay(storage, registry, groups, http_client=client), storage


class TestChatRelay:
    """Test suite for relaying chat turns."""

    def test_successful_turn_is_recorded(self):
        """Test a reply is returned and stored for the session."""
        backend = FakeBackend(payload=_completion("hello"))

        async def scenario():
            relay, storage = await _build_relay(backend)
            reply = await relay.send("s1", "hi")
            pairs = await storage.history_pairs("s1")
            await relay.http_client.aclose()
            return reply, pairs

        reply, pairs = asyncio.run(scenario())

        assert reply == "hello"
        assert pairs == [("hi", "hello")]
        request = backend.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://backend/v1/chat/completions"
        assert backend.last_body["model"] == "llama-3"
        assert backend.last_body["stream"] is False
        assert [m["role"] for m in backend.last_body["messages"]] == ["system", "user"]

    def test_history_is_replayed_on_next_turn(self):
        """Test a second turn carries the first exchange."""
        backend = FakeBackend(payload=_completion("fine"))

        async def scenario():
            relay, storage = await _build_relay(backend)
            await storage.record_turn("s1", "hi", "hello")
            await relay.send("s1", "how are you?")
            await relay.http_client.aclose()
            return await storage.history_pairs("s1")

        pairs = asyncio.run(scenario())

        assert [(m["role"], m["content"]) for m in backend.last_body["messages"][1:]] == [
            ("user", "hi"),
            ("assistant", "hello"),
            ("user", "how are you?"),
        ]
        assert pairs == [("hi", "hello"), ("how are you?", "fine")]

    def test_explicit_model_wins(self):
        """Test a requested model is used even when none is registered."""
        backend = FakeBackend(payload=_completion("ok"))

        async def scenario():
            relay, _ = await _build_relay(backend, models=())
            await relay.send("s1", "hi", model="mistral")
            await relay.http_client.aclose()

        asyncio.run(scenario())

        assert backend.last_body["model"] == "mistral"

    def test_no_model_available(self):
        """Test no requested and no registered model fails without recording."""
        backend = FakeBackend(payload=_completion("unused"))

        async def scenario():
            relay, storage = await _build_relay(backend, models=())
            try:
                await relay.send("s1", "hi")
            finally:
                await relay.http_client.aclose()

        with pytest.raises(NoModelAvailableError) as exc_info:
            asyncio.run(scenario())

        assert exc_info.value.error.code == "NO_MODEL_AVAILABLE"
        assert backend.requests == []

    @pytest.mark.parametrize("servers", [None, ()])
    def test_no_backend_available(self, servers):
        """Test a missing or empty chat group fails with NoBackendAvailableError."""
        backend = FakeBackend(payload=_completion("unused"))
        storage = ChatStorage.memory_only()

        async def scenario():
            relay, _ = await _build_relay(backend, storage=storage, servers=servers)
            try:
                await relay.send("s1", "hi")
            finally:
                await relay.http_client.aclose()

        with pytest.raises(NoBackendAvailableError):
            asyncio.run(scenario())

        assert asyncio.run(storage.all_sessions()) == []

    def test_downstream_error_status(self):
        """Test a 500 response surfaces status and body and records nothing."""
        backend = FakeBackend(status_code=500, text="model crashed")
        storage = ChatStorage.memory_only()

        async def scenario():
            relay, _ = await _build_relay(backend, storage=storage)
            try:
                await relay.send("s1", "hi")
            finally:
                await relay.http_client.aclose()

        with pytest.raises(DownstreamError) as exc_info:
            asyncio.run(scenario())

        assert exc_info.value.status_code == 500
        assert exc_info.value.body == "model crashed"
        assert exc_info.value.error.details == {"status": 500, "body": "model crashed"}
        assert asyncio.run(storage.history_pairs("s1")) == []

    def test_transport_failure(self):
        """Test an unreachable backend raises DownstreamError without a status."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async def scenario():
            relay, _ = await _build_relay(handler)
            try:
                await relay.send("s1", "hi")
            finally:
                await relay.http_client.aclose()

        with pytest.raises(DownstreamError) as exc_info:
            asyncio.run(scenario())

        assert exc_info.value.status_code is None

    def test_unparseable_body(self):
        """Test a non-JSON success body raises DownstreamError."""
        backend = FakeBackend(status_code=200, text="<html>oops</html>")

        async def scenario():
            relay, _ = await _build_relay(backend)
            try:
                await relay.send("s1", "hi")
            finally:
                await relay.http_client.aclose()

        with pytest.raises(DownstreamError) as exc_info:
            asyncio.run(scenario())

        assert exc_info.value.status_code == 200

    def test_missing_content_uses_placeholder(self):
        """Test an incomplete reply shape is replaced, not treated as failure."""
        backend = FakeBackend(payload={"choices": []})

        async def scenario():
            relay, storage = await _build_relay(backend)
            reply = await relay.send("s1", "hi")
            await relay.http_client.aclose()
            return reply, await storage.history_pairs("s1")

        reply, pairs = asyncio.run(scenario())

        assert reply == NO_CONTENT_REPLY
        assert pairs == [("hi", NO_CONTENT_REPLY)]

    def test_persistence_failure_does_not_fail_reply(self):
        """Test a failed save after a reply is swallowed."""
        backend = FakeBackend(payload=_completion("hello"))
        storage = Mock(spec=ChatStorage)
        storage.history_pairs = AsyncMock(return_value=[])
        storage.record_turn = AsyncMock(side_effect=StorageIOError("disk full"))

        async def scenario():
            relay, _ = await _build_relay(backend, storage=storage)
            reply = await relay.send("s1", "hi")
            await relay.http_client.aclose()
            return reply

        assert asyncio.run(scenario()) == "hello"
        storage.record_turn.assert_awaited_once_with("s1", "hi", "hello")


class TestCredentials:
    """Test suite for Authorization forwarding."""

    def _authorization_sent(self, server, inbound):
        backend = FakeBackend(payload=_completion("ok"))

        async def scenario():
            relay, _ = await _build_relay(backend, servers=(server,))
            await relay.send("s1", "hi", authorization=inbound)
            await relay.http_client.aclose()

        asyncio.run(scenario())
        return backend.requests[0].headers.get("authorization")

    def test_endpoint_key_takes_precedence(self):
        """Test the endpoint's key replaces the caller's header."""
        server = ChatServer(url="http://backend", api_key="Bearer endpoint-key")

        assert self._authorization_sent(server, "Bearer caller") == "Bearer endpoint-key"

    def test_inbound_header_forwarded(self):
        """Test the caller's header is forwarded verbatim without an endpoint key."""
        assert self._authorization_sent(ChatServer(url="http://backend"), "Bearer caller") == "Bearer caller"

    def test_empty_endpoint_key_falls_back_to_inbound(self):
        """Test an empty endpoint key counts as absent."""
        server = ChatServer(url="http://backend", api_key="")

        assert self._authorization_sent(server, "Bearer caller") == "Bearer caller"

    def test_no_credentials(self):
        """Test no Authorization header is sent when none is available."""
        assert self._authorization_sent(ChatServer(url="http://backend"), None) is None


class TestExtractReply:
    """Test suite for reply extraction."""

    @pytest.mark.parametrize("payload", [
        {},
        {"choices": None},
        {"choices": [{}]},
        {"choices": [{"message": {}}]},
        {"choices": [{"message": {"content": None}}]},
        {"choices": [{"message": {"content": 42}}]},
        ["not", "a", "dict"],
    ])
    def test_placeholder_for_incomplete_shapes(self, payload):
        """Test structurally incomplete bodies produce the placeholder."""
        assert ChatRelay.extract_reply(payload) == NO_CONTENT_REPLY

    def test_first_choice_content(self):
        """Test the first choice's content is used."""
        payload = {"choices": [{"message": {"content": "first"}}, {"message": {"content": "second"}}]}

        assert ChatRelay.extract_reply(payload) == "first"
