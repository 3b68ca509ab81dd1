import asyncio
import json

import pytest

from command_chat.api import service
from command_chat.api.service import new_conversation
from command_chat.domain.conversation import ChatConversation
from command_chat.domain.exceptions import ApiError
from command_chat.domain.models import ChatMessage, build_context


def _data(text):
    return f"data: {json.dumps({'choices': [{'delta': {'content': text}}]})}\n\n".encode("utf-8")


class Reader:
    def __init__(self, chunks, error=None):
        self._chunks = list(chunks)
        self._error = error
        self.release_count = 0

    async def aiter_bytes(self):
        for c in self._chunks:
            yield c
        if self._error is not None:
            raise self._error

    async def release(self):
        self.release_count += 1


class Transport:
    name = "fake"

    def __init__(self, *results):
        self._results = list(results)
        self.requests = []

    async def open_stream(self, req):
        self.requests.append(req)
        result = self._results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _send(conv, content, context=None):
    async def run():
        return [f async for f in conv.send(content, context)]

    return asyncio.run(run())


def test_assistant_message_grows_in_place():
    transport = Transport(Reader([_data("You owe "), _data("$120."), b"data: [DONE]\n\n"]))
    conv = ChatConversation(transport, max_context_messages=20)
    snapshots = []

    async def run():
        async for _ in conv.send("  What's overdue?  ", {"page": "/bills"}):
            snapshots.append(list(conv.messages))

    asyncio.run(run())
    assert [len(s) for s in snapshots] == [2, 2]
    assert snapshots[0][-1] == ChatMessage(role="assistant", content="You owe ")
    assert conv.messages == [
        ChatMessage(role="user", content="What's overdue?"),
        ChatMessage(role="assistant", content="You owe $120."),
    ]
    # 发送给后端的是不含空助手消息的历史
    assert transport.requests[0].messages == (ChatMessage(role="user", content="What's overdue?"),)
    assert transport.requests[0].context == {"page": "/bills"}
    assert not conv.streaming


def test_blank_input_sends_nothing():
    transport = Transport()
    conv = ChatConversation(transport)
    assert _send(conv, "   ") == []
    assert conv.messages == []
    assert transport.requests == []


def test_transport_failure_replaces_assistant_content():
    transport = Transport(ApiError(code="API_ERROR", message="AI gateway error", http_status=502))
    conv = ChatConversation(transport)
    assert _send(conv, "hi") == []
    assert conv.messages[-1] == ChatMessage(role="assistant", content="Error: AI gateway error")


def test_in_band_error_is_appended_to_partial_content():
    transport = Transport(Reader([_data("Partial"), b'data: {"error":{"message":"boom"}}\n\n']))
    conv = ChatConversation(transport)
    frags = _send(conv, "hi")
    assert frags == ["Partial", "\n\n[Error: boom]"]
    assert conv.messages[-1].content == "Partial\n\n[Error: boom]"


def test_history_is_trimmed_to_context_window():
    transport = Transport(
        Reader([_data("one"), b"data: [DONE]\n\n"]),
        Reader([_data("two"), b"data: [DONE]\n\n"]),
    )
    conv = ChatConversation(transport, max_context_messages=2)
    _send(conv, "first")
    _send(conv, "second")
    sent = transport.requests[1].messages
    assert [m.content for m in sent] == ["one", "second"]
    assert len(conv.messages) == 4


def test_stop_leaves_partial_message():
    transport = Transport(Reader([_data("a"), _data("b"), b"data: [DONE]\n\n"]))
    conv = ChatConversation(transport)

    async def run():
        got = []
        async for f in conv.send("hi"):
            got.append(f)
            conv.stop()
        return got

    assert asyncio.run(run()) == ["a"]
    assert conv.messages[-1].content == "a"
    assert not conv.streaming


def test_build_context_drops_missing_values():
    assert build_context(page="/queue", item_id=None) == {"page": "/queue"}
    assert build_context(page="/bills", item_id="ob-1", tab="due") == {
        "page": "/bills",
        "item_id": "ob-1",
        "tab": "due",
    }


def test_connection_loss_mid_stream_replaces_partial_content():
    reader = Reader([_data("Partial")], error=OSError("connection reset by peer"))
    conv = ChatConversation(Transport(reader))
    frags = _send(conv, "hi")
    assert frags == ["Partial"]
    assert conv.messages[-1] == ChatMessage(
        role="assistant", content="Error: Connection to AI service lost. connection reset by peer"
    )
    assert reader.release_count == 1
    assert not conv.streaming


def test_unexpected_failure_writes_notice_and_propagates():
    conv = ChatConversation(Transport(RuntimeError("transport misconfigured")))

    with pytest.raises(RuntimeError):
        _send(conv, "hi")
    assert conv.messages[-1] == ChatMessage(role="assistant", content="Error: transport misconfigured")
    assert not conv.streaming


def test_second_send_supersedes_running_send():
    reader_a = Reader([_data("a1"), _data("a2"), b"data: [DONE]\n\n"])
    reader_b = Reader([_data("b1"), b"data: [DONE]\n\n"])
    transport = Transport(reader_a, reader_b)
    conv = ChatConversation(transport)

    async def run():
        first = conv.send("first")
        assert await first.__anext__() == "a1"
        assert conv.streaming
        second = [f async for f in conv.send("second")]
        rest = [f async for f in first]
        return second, rest

    second, rest = asyncio.run(run())
    assert second == ["b1"]
    assert rest == []
    assert transport.requests[0].token.cancelled
    assert [m.content for m in transport.requests[1].messages] == ["first", "a1", "second"]
    # 被取代的发送不再改写自己的助手消息
    assert conv.messages == [
        ChatMessage(role="user", content="first"),
        ChatMessage(role="assistant", content="a1"),
        ChatMessage(role="user", content="second"),
        ChatMessage(role="assistant", content="b1"),
    ]
    assert reader_a.release_count == 1
    assert reader_b.release_count == 1
    assert not conv.streaming


def test_new_conversation_uses_default_transport(monkeypatch):
    transport = Transport(Reader([_data("ok"), b"data: [DONE]\n\n"]))
    monkeypatch.setattr(service, "_transport", transport)

    conv = new_conversation()
    assert isinstance(conv, ChatConversation)
    assert _send(conv, "ping", {"page": "/"}) == ["ok"]
    assert conv.messages[-1].content == "ok"
    assert transport.requests[0].context == {"page": "/"}


def test_new_conversations_do_not_supersede_each_other():
    transport = Transport(
        Reader([_data("a1"), _data("a2"), b"data: [DONE]\n\n"]),
        Reader([_data("b1"), b"data: [DONE]\n\n"]),
    )
    conv_a = new_conversation(transport)
    conv_b = new_conversation(transport)
    assert conv_a.handle is not conv_b.handle

    async def run():
        stream_a = conv_a.send("a")
        first = await stream_a.__anext__()
        b = [f async for f in conv_b.send("b")]
        rest = [f async for f in stream_a]
        return [first, *rest], b

    a, b = asyncio.run(run())
    assert a == ["a1", "a2"]
    assert b == ["b1"]
    assert not transport.requests[0].token.cancelled
    assert conv_a.messages[-1].content == "a1a2"
