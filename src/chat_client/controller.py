import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from .decoder import StreamDecoder
from .exceptions import DecodeError, InvalidOperation, TransportError
from .request_id import new_request_id, set_request_id
from .schemas import ChatMessage, RequestState, assistant_placeholder
from .settings import Settings, get_settings
from .store import MessageStore
from .transport import CompletionTransport, serialize_messages

logger = logging.getLogger(__name__)

FinishCallback = Callable[[list[ChatMessage]], Any]
ErrorCallback = Callable[[Exception], Any]


@dataclass
class StreamRequest:
    generation: int
    request_id: str
    placeholder: ChatMessage
    state: RequestState = RequestState.SENDING
    error: Exception | None = None
    stopped: bool = False
    task: asyncio.Task | None = field(default=None, repr=False)


class ConversationController:
    """Drives one conversation against a streaming completion endpoint.

    History mutations happen synchronously at the start of ``submit``,
    ``reload`` and ``append``; the coroutines then wait for the request to
    reach a terminal state. Only one request may be in flight at a time.
    """

    def __init__(
        self,
        initial_messages: Iterable[ChatMessage] | None = None,
        body: dict | None = None,
        on_finish: FinishCallback | None = None,
        on_error: ErrorCallback | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport=None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = MessageStore(initial_messages)
        self.body = dict(body or {})
        self.on_finish = on_finish
        self.on_error = on_error
        self.transport = transport or CompletionTransport(
            self.settings, base_url=base_url, timeout=timeout
        )
        self.input = ""
        self.loading = False
        self.last_request: StreamRequest | None = None
        self._generation = 0
        self._inflight: StreamRequest | None = None

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return self.store.messages

    @property
    def visible_messages(self) -> tuple[ChatMessage, ...]:
        return self.store.visible_view

    @property
    def system_prompt(self) -> str | None:
        return self.store.system_prompt

    @system_prompt.setter
    def system_prompt(self, value: str) -> None:
        self.store.system_prompt = value

    @property
    def state(self) -> RequestState:
        if self.last_request is None:
            return RequestState.IDLE
        return self.last_request.state

    def set_messages(self, messages: Iterable[ChatMessage]) -> None:
        self.store.set_all(messages)

    async def submit(self, text: str | None = None, skip_user_append: bool = False) -> StreamRequest:
        self._ensure_idle()
        request = self._begin(text, skip_user_append)
        return await self._wait(request)

    async def reload(self, message: ChatMessage) -> StreamRequest:
        if message.role != "assistant":
            raise InvalidOperation("can only reload assistant messages")
        index = self.store.find_index_by_id(message.id)
        if index is None:
            raise InvalidOperation("message not found")
        self._ensure_idle()

        trailing = self.store.truncate(index)[1:]
        request = self._begin(None, skip_user_append=True)
        self.store.extend(trailing)
        return await self._wait(request)

    async def append(self, message: ChatMessage) -> StreamRequest:
        self._ensure_idle()
        self.store.append(message)
        request = self._begin(None, skip_user_append=True)
        return await self._wait(request)

    def stop(self) -> None:
        request = self._inflight
        if request is None or request.state.terminal:
            return
        request.stopped = True
        self._settle(request, RequestState.ABORTED)
        logger.info("chat request stopped generation=%s", request.generation)
        if request.task is not None and not request.task.done():
            request.task.cancel()

    def delete_message(self, message: ChatMessage) -> list[ChatMessage]:
        index = self.store.find_index_by_id(message.id)
        if index is None:
            raise InvalidOperation("message not found")
        target = self.store.get(index)
        if target.role == "system":
            raise InvalidOperation("cannot delete system message")

        removed = [self.store.splice_out(index)]
        if target.role == "user":
            following = self.store.get(index)
            if following is not None and following.role == "assistant":
                removed.append(self.store.splice_out(index))
        elif target.role == "assistant" and index > 0:
            preceding = self.store.get(index - 1)
            if preceding is not None and preceding.role == "user":
                removed.insert(0, self.store.splice_out(index - 1))
        return removed

    def edit_message(self, message_id: str, new_content: str) -> ChatMessage:
        message = self.store.find_by_id(message_id)
        if message is None:
            raise InvalidOperation("message not found")
        if message.role == "system":
            raise InvalidOperation("cannot edit system message")
        self.store.set_content(message_id, new_content)
        return message

    def _ensure_idle(self) -> None:
        if self.loading or self._inflight is not None:
            raise InvalidOperation("a request is already in flight")

    def _is_current(self, request: StreamRequest) -> bool:
        return self._inflight is not None and self._inflight.generation == request.generation

    def _begin(self, text: str | None, skip_user_append: bool) -> StreamRequest:
        if not skip_user_append:
            content = self.input if text is None else text
            self.store.append(ChatMessage(role="user", content=content))
        self.input = ""

        self.loading = True
        placeholder = self.store.append(assistant_placeholder())
        body = {**self.body, "messages": serialize_messages(self.store)}

        self._generation += 1
        request = StreamRequest(
            generation=self._generation,
            request_id=new_request_id(),
            placeholder=placeholder,
        )
        self._inflight = request
        self.last_request = request
        request.task = asyncio.create_task(self._run(request, body))
        return request

    async def _wait(self, request: StreamRequest) -> StreamRequest:
        try:
            await request.task
        except asyncio.CancelledError:
            if not request.stopped:
                raise
        if request.state is RequestState.ERRORED and self.on_error is None:
            raise request.error
        return request

    async def _run(self, request: StreamRequest, body: dict) -> None:
        set_request_id(request.request_id)
        decoder = StreamDecoder(self.settings.stream_delimiter)
        logger.info(
            "chat request generation=%s messages=%s", request.generation, len(body["messages"])
        )
        try:
            async with aclosing(self.transport.stream(body)) as stream:
                async for buffer in stream:
                    if not self._is_current(request):
                        return
                    request.state = RequestState.STREAMING
                    result = decoder.feed(buffer)
                    self._write(request, result.content)
                    if result.finished:
                        break
            if not self._is_current(request):
                return
            if not decoder.finished:
                decoder.close()
                raise TransportError(
                    status_code=502,
                    message="stream closed before end-of-stream signal",
                    code="incomplete_stream",
                    retryable=True,
                    err_type="upstream_error",
                )
        except asyncio.CancelledError:
            if self._is_current(request):
                self._settle(request, RequestState.ABORTED)
            raise
        except DecodeError as exc:
            logger.warning("chat stream decode error generation=%s: %s", request.generation, exc)
            self._write(request, exc.partial_content)
            await self._fail(request, exc)
            return
        except TransportError as exc:
            logger.warning(
                "chat transport error generation=%s code=%s status=%s",
                request.generation,
                exc.code,
                exc.status_code,
            )
            await self._fail(request, exc)
            return
        except Exception as exc:
            logger.exception("chat request failed generation=%s", request.generation)
            await self._fail(request, exc)
            return

        self._settle(request, RequestState.COMPLETED)
        logger.info(
            "chat request completed generation=%s chars=%s",
            request.generation,
            len(request.placeholder.content),
        )
        if self.on_finish is not None:
            await _maybe_await(self.on_finish(self.store.snapshot()))

    def _write(self, request: StreamRequest, content: str) -> None:
        if not self._is_current(request):
            return
        content = content.strip()
        if not self.store.set_content(request.placeholder.id, content):
            # placeholder was deleted mid-stream
            request.placeholder.content = content

    async def _fail(self, request: StreamRequest, exc: Exception) -> None:
        if not self._is_current(request):
            return
        request.error = exc
        self._settle(request, RequestState.ERRORED)
        if self.on_error is not None:
            await _maybe_await(self.on_error(exc))

    def _settle(self, request: StreamRequest, state: RequestState) -> None:
        request.state = state
        if self._inflight is request:
            self._inflight = None
        self.loading = False


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result
