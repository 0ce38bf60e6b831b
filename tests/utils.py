import asyncio
import json

from chat_client.schemas import ChatMessage

DONE = "[DONE]"


def chunk(text: str | None = None, usage: dict | None = None) -> str:
    payload: dict = {"choices": [{"index": 0, "delta": {}}]}
    if text is not None:
        payload["choices"][0]["delta"]["content"] = text
    if usage is not None:
        payload = {"choices": [], "usage": usage}
    return json.dumps(payload)


def sse(*records: str) -> str:
    return "".join(f"data: {record}\n\n" for record in records)


def msg(role: str, content: str) -> ChatMessage:
    return ChatMessage(role=role, content=content)


async def drain(ticks: int = 10) -> None:
    for _ in range(ticks):
        await asyncio.sleep(0)


class ScriptedTransport:
    """Stands in for CompletionTransport; the test decides when the buffer grows."""

    def __init__(self) -> None:
        self.bodies: list[dict] = []
        self._queue: asyncio.Queue = asyncio.Queue()

    def push(self, text: str) -> None:
        self._queue.put_nowait(("data", text))

    def fail(self, exc: Exception) -> None:
        self._queue.put_nowait(("error", exc))

    def end(self) -> None:
        self._queue.put_nowait(("end", None))

    async def stream(self, body: dict):
        self.bodies.append(body)
        buffer = ""
        while True:
            kind, value = await self._queue.get()
            if kind == "end":
                return
            if kind == "error":
                raise value
            buffer += value
            yield buffer
