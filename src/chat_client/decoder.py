from dataclasses import dataclass

from pydantic import ValidationError

from .exceptions import DecodeError, TransportError, extract_error
from .schemas import ChatCompletionChunk

DATA_DELIMITER = "data:"
DONE_MARKER = "[DONE]"


@dataclass(frozen=True)
class DecodeResult:
    content: str
    finished: bool


@dataclass
class _Record:
    text: str = ""
    done: bool = False
    usage: dict | None = None


class StreamDecoder:
    """Turns a growing stream buffer into the assistant text decoded so far.

    ``feed`` always takes the *whole* buffer received so far and returns the
    whole decoded content, never just the new delta. Records followed by a
    delimiter are closed and consumed once; the trailing record may still be
    arriving, so it is parsed tentatively and re-read on the next feed.
    """

    def __init__(self, delimiter: str = DATA_DELIMITER) -> None:
        if not delimiter:
            raise ValueError("delimiter must not be empty")
        self.delimiter = delimiter
        self.reset()

    def reset(self) -> None:
        self._cursor = 0
        self._content = ""
        self._usage: dict | None = None
        self._sealed = False
        self._pending_tail = ""
        self._result = DecodeResult("", False)

    @property
    def finished(self) -> bool:
        return self._result.finished

    @property
    def usage(self) -> dict | None:
        return self._usage

    @property
    def result(self) -> DecodeResult:
        return self._result

    def feed(self, buffer: str) -> DecodeResult:
        if self._sealed:
            return self._result
        if len(buffer) < self._cursor:
            raise ValueError("buffer shrank between feeds")

        pieces = buffer[self._cursor :].split(self.delimiter)
        closed, tail = pieces[:-1], pieces[-1]

        for piece in closed:
            record = self._parse(piece, self._content)
            self._cursor += len(piece) + len(self.delimiter)
            if record is None:
                continue
            if record.done:
                return self._seal()
            self._content += record.text
            if record.usage is not None:
                self._usage = record.usage

        content = self._content
        finished = self._usage is not None
        self._pending_tail = ""
        stripped = tail.strip()
        if stripped:
            record = self._parse_tail(tail)
            if record is None:
                # Incomplete tail record, re-read once more of it has arrived.
                self._pending_tail = stripped
            else:
                if record.done:
                    return self._seal()
                content += record.text
                if record.usage is not None:
                    finished = True

        self._result = DecodeResult(content, finished)
        return self._result

    def close(self) -> DecodeResult:
        """Mark the stream as ended. A tail that never became parseable is fatal."""
        if self._pending_tail and not self._sealed:
            raise DecodeError(
                "stream ended inside an unparseable record",
                record=self._pending_tail,
                partial_content=self._result.content,
            )
        return self._result

    def _parse_tail(self, tail: str) -> _Record | None:
        try:
            return self._parse(tail, self._content)
        except DecodeError:
            pass
        # The next delimiter may have started arriving right after a complete record.
        trimmed = _strip_partial_delimiter(tail.rstrip(), self.delimiter)
        if trimmed == tail.rstrip():
            return None
        try:
            return self._parse(trimmed, self._content)
        except DecodeError:
            return None

    def _seal(self) -> DecodeResult:
        self._sealed = True
        self._pending_tail = ""
        self._result = DecodeResult(self._content, True)
        return self._result

    def _parse(self, raw: str, partial_content: str) -> _Record | None:
        text = raw.strip()
        if not text:
            return None
        if text == DONE_MARKER:
            return _Record(done=True)
        try:
            chunk = ChatCompletionChunk.model_validate_json(text)
        except ValidationError as exc:
            raise DecodeError(
                f"malformed stream record: {exc.error_count()} error(s)",
                record=text,
                partial_content=partial_content,
            ) from exc
        if chunk.error is not None:
            err_type, err_code, err_message = extract_error({"error": chunk.error})
            raise TransportError(
                status_code=502,
                message=err_message or "upstream error",
                code=err_code,
                retryable=True,
                err_type=err_type,
            )
        return _Record(text=chunk.delta_text, usage=chunk.usage)


def _strip_partial_delimiter(text: str, delimiter: str) -> str:
    for size in range(len(delimiter) - 1, 0, -1):
        if text.endswith(delimiter[:size]):
            return text[:-size]
    return text


def decode_buffer(buffer: str, delimiter: str = DATA_DELIMITER, final: bool = False) -> DecodeResult:
    """Decode a complete buffer from scratch."""
    decoder = StreamDecoder(delimiter)
    result = decoder.feed(buffer)
    if final:
        result = decoder.close()
    return result
