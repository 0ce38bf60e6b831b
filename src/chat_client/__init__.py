from .controller import ConversationController, StreamRequest
from .decoder import DecodeResult, StreamDecoder, decode_buffer
from .exceptions import ChatClientError, DecodeError, InvalidOperation, TransportError
from .logging_config import configure_logging
from .schemas import ChatMessage, RequestState
from .store import MessageStore
from .transport import CompletionTransport

__all__ = [
    "ChatClientError",
    "ChatMessage",
    "CompletionTransport",
    "ConversationController",
    "DecodeError",
    "DecodeResult",
    "InvalidOperation",
    "MessageStore",
    "RequestState",
    "StreamDecoder",
    "StreamRequest",
    "TransportError",
    "configure_logging",
    "decode_buffer",
]
