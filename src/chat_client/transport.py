import json
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

import httpx
from pydantic import ValidationError

from .exceptions import TransportError, extract_error, retryable_for_status
from .request_id import get_request_id_header
from .schemas import ChatCompletionResponse, ChatMessage
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


def serialize_messages(messages: Iterable[ChatMessage | dict]) -> list[dict]:
    out = []
    for message in messages:
        if isinstance(message, ChatMessage):
            out.append(message.model_dump(mode="json", exclude_none=True))
        else:
            out.append(dict(message))
    return out


def _status_error(status_code: int, raw: bytes) -> TransportError:
    err_message = "upstream error"
    err_type = "upstream_error"
    err_code = "upstream_error"
    try:
        payload = json.loads(raw)
        err_type, err_code, message = extract_error(payload)
        err_message = message or err_message
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("non-json upstream error: %s", raw[:200])
    return TransportError(
        status_code=status_code,
        message=err_message,
        code=err_code or err_type,
        retryable=retryable_for_status(status_code),
        err_type=err_type,
    )


def _timeout_error() -> TransportError:
    return TransportError(
        status_code=502,
        message="upstream timeout",
        code="upstream_timeout",
        retryable=True,
        err_type="upstream_error",
    )


def _connection_error() -> TransportError:
    return TransportError(
        status_code=502,
        message="upstream connection error",
        code="upstream_unavailable",
        retryable=True,
        err_type="upstream_error",
    )


class CompletionTransport:
    """HTTP side of a chat completion: one streaming and one one-shot call.

    A client passed in is used as is and never closed here; otherwise a
    short-lived ``httpx.AsyncClient`` is opened per request.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.url = self.settings.completions_url(base_url)
        self.timeout = timeout if timeout is not None else self.settings.chat_timeout_seconds
        self._client = client

    @asynccontextmanager
    async def _open_client(self):
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
            yield client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        headers.update(get_request_id_header())
        return headers

    async def stream(self, body: dict) -> AsyncIterator[str]:
        """Yield the cumulative response text each time more of it arrives."""
        payload = {**body, "stream": True}
        try:
            async with self._open_client() as client:
                async with client.stream("POST", self.url, json=payload, headers=self._headers()) as resp:
                    if resp.status_code != 200:
                        raw = await resp.aread()
                        raise _status_error(resp.status_code, raw)
                    buffer = ""
                    async for text in resp.aiter_text():
                        if not text:
                            continue
                        buffer += text
                        yield buffer
        except httpx.TimeoutException:
            raise _timeout_error()
        except httpx.RequestError:
            raise _connection_error()

    async def complete(
        self,
        messages: Iterable[ChatMessage | dict],
        max_tokens: int | None = None,
        temperature: float | None = None,
        body: dict | None = None,
    ) -> str:
        payload = {
            **(body or {}),
            "messages": serialize_messages(messages),
            "temperature": self.settings.chat_temperature if temperature is None else temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        try:
            async with self._open_client() as client:
                resp = await client.post(self.url, json=payload, headers=self._headers())
        except httpx.TimeoutException:
            raise _timeout_error()
        except httpx.RequestError:
            raise _connection_error()

        if resp.status_code != 200:
            raise _status_error(resp.status_code, resp.content)

        try:
            data = ChatCompletionResponse.model_validate_json(resp.content)
        except ValidationError:
            logger.warning("unexpected completion payload status=%s", resp.status_code)
            raise TransportError(
                status_code=502,
                message="malformed response",
                code="malformed_response",
                retryable=True,
                err_type="upstream_error",
            )
        if not data.choices:
            raise TransportError(
                status_code=502,
                message="empty response",
                code="empty_response",
                retryable=True,
                err_type="upstream_error",
            )
        text = data.choices[0].message.content
        if text is None:
            raise TransportError(
                status_code=502,
                message="missing content",
                code="missing_content",
                retryable=True,
                err_type="upstream_error",
            )
        return text.strip()
