class ChatClientError(Exception):
    pass


class InvalidOperation(ChatClientError):
    pass


class TransportError(ChatClientError):
    def __init__(
        self,
        status_code: int,
        message: str,
        code: str,
        retryable: bool,
        err_type: str,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code
        self.retryable = retryable
        self.err_type = err_type


class DecodeError(ChatClientError):
    def __init__(self, message: str, record: str, partial_content: str = "") -> None:
        super().__init__(message)
        self.record = record
        self.partial_content = partial_content


def retryable_for_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def extract_error(payload: dict) -> tuple[str, str, str | None]:
    # OpenAI error format: {"error": {"message": "...", "type": "...", "code": "..."}}
    err = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(err, dict):
        return ("upstream_error", "upstream_error", None)
    err_type = err.get("type") or "upstream_error"
    err_code = err.get("code") or err_type
    return (str(err_type), str(err_code), err.get("message"))
