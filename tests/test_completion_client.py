"""
补全客户端单元测试（httpx.MockTransport 模拟补全服务）
"""

import asyncio
import json

import httpx
import pytest

from chatrelay.models.completion import (
    CompletionRejected,
    CompletionSuccess,
    MalformedResponse,
    TransportFailure,
)
from chatrelay.models.conversation import Message
from chatrelay.services.completion_client import CompletionClient, decode_response, resolve_outcome
from chatrelay.services.errors import (
    BackendRejected,
    BackendUnavailable,
    EmptyCompletion,
    MalformedCompletion,
)


def make_client(handler, **kwargs) -> CompletionClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    params = {
        "api_key": "sk-test",
        "model": "gpt-test",
        "max_tokens": 256,
        "temperature": 0.5,
        "base_url": "https://llm.example/v1/",
        "http_client": http_client,
    }
    params.update(kwargs)
    return CompletionClient(**params)


def completion_body(*contents):
    return {
        "id": "chatcmpl-1",
        "choices": [
            {"index": i, "message": {"role": "assistant", "content": c}, "finish_reason": "stop"}
            for i, c in enumerate(contents)
        ],
    }


class TestRequestShape:
    """请求构造"""

    @pytest.mark.asyncio
    async def test_history_is_sent_verbatim(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion_body("fine"))

        client = make_client(handler)
        history = [
            Message.user("hello"),
            Message.assistant("hi there"),
            Message.user("how are you?"),
        ]

        assert await client.complete(history) == "fine"
        assert seen["url"] == "https://llm.example/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"] == {
            "model": "gpt-test",
            "messages": [
                {"role": "user", "content": "hello"},
                {"role": "assistant", "content": "hi there"},
                {"role": "user", "content": "how are you?"},
            ],
            "max_tokens": 256,
            "temperature": 0.5,
        }

    @pytest.mark.asyncio
    async def test_image_request_uses_content_blocks(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion_body("a cat"))

        client = make_client(handler)
        reply = await client.complete_with_image("what is this?", "https://files.example/cat.jpg")

        assert reply == "a cat"
        messages = seen["body"]["messages"]
        assert len(messages) == 1
        assert messages[0]["role"] == "user"
        assert messages[0]["content"] == [
            {"type": "text", "text": "what is this?"},
            {"type": "image_url", "image_url": {"url": "https://files.example/cat.jpg"}},
        ]


class TestOutcomes:
    """响应映射"""

    @pytest.mark.asyncio
    async def test_first_choice_wins(self):
        client = make_client(lambda r: httpx.Response(200, json=completion_body("one", "two")))
        assert await client.complete([Message.user("q")]) == "one"

    @pytest.mark.asyncio
    async def test_empty_choices_raise_empty_completion(self):
        client = make_client(lambda r: httpx.Response(200, json={"choices": []}))
        with pytest.raises(EmptyCompletion):
            await client.complete([Message.user("q")])

    @pytest.mark.asyncio
    async def test_error_payload_is_surfaced(self):
        body = {"error": {"message": "Rate limit reached", "type": "rate_limit_error"}}
        client = make_client(lambda r: httpx.Response(429, json=body))

        with pytest.raises(BackendRejected) as exc_info:
            await client.complete([Message.user("q")])

        error = exc_info.value
        assert error.kind == "rate_limit_error"
        assert error.message == "Rate limit reached"
        assert error.status_code == 429
        assert "Rate limit reached" in error.user_message

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        client = make_client(lambda r: httpx.Response(502, text="Bad Gateway"))

        outcome = await client.request([Message.user("q")])

        assert isinstance(outcome, CompletionRejected)
        assert outcome.error_type == "http_error"
        assert outcome.message == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_invalid_success_body(self):
        client = make_client(lambda r: httpx.Response(200, text="not json"))

        outcome = await client.request([Message.user("q")])
        assert isinstance(outcome, MalformedResponse)
        assert outcome.status_code == 200

        with pytest.raises(MalformedCompletion) as exc_info:
            await client.complete([Message.user("q")])
        assert "rejected" not in exc_info.value.user_message
        assert exc_info.value.kind == "invalid_response"

    @pytest.mark.asyncio
    async def test_unexpected_success_shape(self):
        client = make_client(lambda r: httpx.Response(200, json={"choices": "nope"}))
        with pytest.raises(MalformedCompletion):
            await client.complete([Message.user("q")])

    @pytest.mark.asyncio
    async def test_null_content_is_empty_completion(self):
        """content 为 null（拒答、工具调用）不能当作成功回复"""
        body = {"choices": [{"message": {"role": "assistant", "content": None, "tool_calls": []}}]}
        client = make_client(lambda r: httpx.Response(200, json=body))
        with pytest.raises(EmptyCompletion):
            await client.complete([Message.user("q")])

    @pytest.mark.asyncio
    async def test_connection_error_is_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        outcome = await client.request([Message.user("q")])
        assert isinstance(outcome, TransportFailure)
        assert "ConnectError" in outcome.reason

        with pytest.raises(BackendUnavailable):
            await client.complete([Message.user("q")])

    @pytest.mark.asyncio
    async def test_timeout_is_transport_failure(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json=completion_body("late"))

        client = make_client(handler, timeout=0.05)

        with pytest.raises(BackendUnavailable):
            await client.complete([Message.user("q")])


class TestDecode:
    """纯函数解码"""

    def test_null_content_decodes_to_blank_choice(self):
        response = httpx.Response(200, json={"choices": [{"message": {"content": None}}]})
        outcome = decode_response(response)
        assert isinstance(outcome, CompletionSuccess)
        assert outcome.choices == [""]

    def test_blank_first_choice_is_empty_completion(self):
        for text in ("", "   \n"):
            with pytest.raises(EmptyCompletion):
                resolve_outcome(CompletionSuccess(choices=[text, "second"]))

    def test_resolve_success(self):
        assert resolve_outcome(CompletionSuccess(choices=["x", "y"])) == "x"

    def test_resolve_transport_failure(self):
        with pytest.raises(BackendUnavailable):
            resolve_outcome(TransportFailure(reason="boom"))
