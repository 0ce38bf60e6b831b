import logging
from collections.abc import Iterable, Iterator

from .exceptions import InvalidOperation
from .schemas import ChatMessage, new_message_id

logger = logging.getLogger(__name__)


class MessageStore:
    """Ordered conversation history.

    Only index 0 may hold the ``system`` prompt. Every mutation bumps
    ``version``; the visible view is cached against it.
    """

    def __init__(self, messages: Iterable[ChatMessage] | None = None) -> None:
        self._messages: list[ChatMessage] = []
        self._version = 0
        self._visible: tuple[ChatMessage, ...] = ()
        self._visible_version = -1
        if messages is not None:
            self.set_all(messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(tuple(self._messages))

    @property
    def version(self) -> int:
        return self._version

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def _touch(self) -> None:
        self._version += 1

    @staticmethod
    def _ensure_id(message: ChatMessage) -> ChatMessage:
        if message.id:
            return message
        return message.model_copy(update={"id": new_message_id()})

    def _check_system_position(self, message: ChatMessage, index: int) -> None:
        if message.role == "system" and index != 0:
            raise InvalidOperation("system message is only allowed at index 0")

    def append(self, message: ChatMessage) -> ChatMessage:
        message = self._ensure_id(message)
        self._check_system_position(message, len(self._messages))
        self._messages.append(message)
        self._touch()
        return message

    def extend(self, messages: Iterable[ChatMessage]) -> None:
        for message in messages:
            self.append(message)

    def set_all(self, messages: Iterable[ChatMessage]) -> None:
        new_messages = [self._ensure_id(m) for m in messages]
        for index, message in enumerate(new_messages):
            self._check_system_position(message, index)
        self._messages = new_messages
        self._touch()
        logger.debug("history replaced count=%s", len(new_messages))

    def get(self, index: int) -> ChatMessage | None:
        if 0 <= index < len(self._messages):
            return self._messages[index]
        return None

    def find_index_by_id(self, message_id: str) -> int | None:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                return index
        return None

    def find_by_id(self, message_id: str) -> ChatMessage | None:
        index = self.find_index_by_id(message_id)
        if index is None:
            return None
        return self._messages[index]

    def splice_out(self, index: int) -> ChatMessage:
        if not 0 <= index < len(self._messages):
            raise InvalidOperation(f"no message at index {index}")
        removed = self._messages.pop(index)
        self._touch()
        return removed

    def truncate(self, index: int) -> list[ChatMessage]:
        """Keep ``[0, index)`` and return everything that was cut off."""
        tail = self._messages[index:]
        del self._messages[index:]
        self._touch()
        return tail

    def set_content(self, message_id: str, content: str) -> bool:
        message = self.find_by_id(message_id)
        if message is None:
            return False
        message.content = content
        self._touch()
        return True

    @property
    def system_prompt(self) -> str | None:
        first = self.get(0)
        if first is None or first.role != "system":
            return None
        return first.content

    @system_prompt.setter
    def system_prompt(self, value: str) -> None:
        first = self.get(0)
        if first is None or first.role != "system":
            raise InvalidOperation("history has no system message at index 0")
        first.content = value
        self._touch()

    @property
    def visible_view(self) -> tuple[ChatMessage, ...]:
        if self._visible_version != self._version:
            self._visible = tuple(m for m in self._messages if m.role != "system")
            self._visible_version = self._version
        return self._visible

    def snapshot(self) -> list[ChatMessage]:
        return [m.model_copy(deep=True) for m in self._messages]
