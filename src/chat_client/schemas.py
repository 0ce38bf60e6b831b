import time
import uuid
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant"]


def new_message_id() -> str:
    return uuid.uuid4().hex


def epoch_millis() -> int:
    return int(time.time() * 1000)


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="allow", validate_assignment=True)

    id: str = Field(default_factory=new_message_id, frozen=True)
    role: Role = Field(frozen=True)
    content: str = ""
    created: int | None = None
    updated: int | None = None
    thread_id: str | None = None
    thread_index: int | None = None
    image: Any = None
    tts: Any = None


def assistant_placeholder() -> ChatMessage:
    return ChatMessage(
        role="assistant",
        content="",
        created=epoch_millis(),
        thread_id="",
        thread_index=0,
    )


class ChunkDelta(BaseModel):
    content: str | None = None
    role: str | None = None


class ChunkChoice(BaseModel):
    index: int = 0
    delta: ChunkDelta = Field(default_factory=ChunkDelta)
    finish_reason: str | None = None


class ChatCompletionChunk(BaseModel):
    model_config = ConfigDict(extra="allow")

    choices: list[ChunkChoice] = Field(default_factory=list)
    usage: dict | None = None
    error: dict | None = None

    @property
    def delta_text(self) -> str:
        if not self.choices:
            return ""
        return self.choices[0].delta.content or ""


class CompletionMessage(BaseModel):
    role: str | None = None
    content: str | None = None


class CompletionChoice(BaseModel):
    index: int = 0
    message: CompletionMessage = Field(default_factory=CompletionMessage)
    finish_reason: str | None = None


class ChatCompletionResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    choices: list[CompletionChoice] = Field(default_factory=list)
    usage: dict | None = None


class RequestState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"
    ERRORED = "errored"

    @property
    def terminal(self) -> bool:
        return self in (RequestState.COMPLETED, RequestState.ABORTED, RequestState.ERRORED)
