import json

import httpx
import pytest

from chat_client.exceptions import TransportError
from chat_client.request_id import REQUEST_ID_HEADER, set_request_id
from chat_client.transport import CompletionTransport

from .utils import DONE, chunk, msg, sse

pytestmark = pytest.mark.asyncio


def _transport(settings, handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CompletionTransport(settings, client=client, **kwargs)


async def _collect(transport, body):
    buffers = []
    async for buffer in transport.stream(body):
        buffers.append(buffer)
    return buffers


async def test_stream_yields_growing_buffer(settings):
    parts = [sse(chunk("Hel")), sse(chunk("lo")), sse(DONE)]
    captured = {}

    async def body_iter():
        for part in parts:
            yield part.encode()

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, content=body_iter())

    transport = _transport(settings, handler)
    buffers = await _collect(transport, {"model": "local", "messages": [{"role": "user", "content": "hi"}]})

    assert buffers[-1] == "".join(parts)
    for earlier, later in zip(buffers, buffers[1:]):
        assert later.startswith(earlier)
    assert captured["url"] == "http://localhost:8080/v1/chat/completions"
    assert captured["headers"]["content-type"] == "application/json"
    assert captured["body"]["stream"] is True
    assert captured["body"]["model"] == "local"


async def test_stream_forwards_request_id(settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["request_id"] = request.headers.get(REQUEST_ID_HEADER)
        return httpx.Response(200, text=sse(DONE))

    set_request_id("req-123")
    await _collect(_transport(settings, handler), {"messages": []})
    assert seen["request_id"] == "req-123"


async def test_base_url_override(settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        return httpx.Response(200, text=sse(DONE))

    transport = _transport(settings, handler, base_url="http://llm.internal:9000/")
    await _collect(transport, {"messages": []})
    assert seen["url"] == "http://llm.internal:9000/v1/chat/completions"


async def test_stream_status_error_is_normalized(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            429,
            json={"error": {"message": "rate limit", "type": "rate_limit_error", "code": "rate_limit"}},
        )

    with pytest.raises(TransportError) as excinfo:
        await _collect(_transport(settings, handler), {"messages": []})
    exc = excinfo.value
    assert exc.status_code == 429
    assert exc.code == "rate_limit"
    assert exc.err_type == "rate_limit_error"
    assert exc.message == "rate limit"
    assert exc.retryable is True


async def test_stream_non_json_error(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, text="bad request")

    with pytest.raises(TransportError) as excinfo:
        await _collect(_transport(settings, handler), {"messages": []})
    assert excinfo.value.code == "upstream_error"
    assert excinfo.value.retryable is False


async def test_connection_error(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransportError) as excinfo:
        await _collect(_transport(settings, handler), {"messages": []})
    assert excinfo.value.code == "upstream_unavailable"


async def test_timeout_error(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(TransportError) as excinfo:
        await _collect(_transport(settings, handler), {"messages": []})
    assert excinfo.value.code == "upstream_timeout"


async def test_timeout_defaults_to_settings(settings):
    assert CompletionTransport(settings).timeout is None
    assert CompletionTransport(settings, timeout=5).timeout == 5


async def test_complete_returns_stripped_content(settings):
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": "  answer \n"}}]})

    transport = _transport(settings, handler)
    text = await transport.complete([msg("user", "q")], body={"model": "local"})

    assert text == "answer"
    body = captured["body"]
    assert body["model"] == "local"
    assert body["temperature"] == 0.35
    assert "max_tokens" not in body
    assert "stream" not in body
    assert body["messages"][0]["content"] == "q"


async def test_complete_passes_explicit_options(settings):
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

    transport = _transport(settings, handler)
    await transport.complete([{"role": "user", "content": "q"}], max_tokens=64, temperature=0)
    assert captured["body"]["max_tokens"] == 64
    assert captured["body"]["temperature"] == 0


@pytest.mark.parametrize(
    ("payload", "code"),
    [
        ({"choices": []}, "empty_response"),
        ({"choices": [{"message": {}}]}, "missing_content"),
        ({"choices": "nope"}, "malformed_response"),
    ],
)
async def test_complete_rejects_unusable_payload(settings, payload, code):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    with pytest.raises(TransportError) as excinfo:
        await _transport(settings, handler).complete([msg("user", "q")])
    assert excinfo.value.code == code


async def test_complete_status_error(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": {"message": "down", "type": "server_error"}})

    with pytest.raises(TransportError) as excinfo:
        await _transport(settings, handler).complete([msg("user", "q")])
    assert excinfo.value.status_code == 503
    assert excinfo.value.code == "server_error"
    assert excinfo.value.retryable is True
