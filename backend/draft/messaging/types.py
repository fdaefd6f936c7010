from enum import StrEnum

from pydantic import BaseModel


class ClientMessageType(StrEnum):
    PING = "ping"


class FeedMessageType(StrEnum):
    """Frame types sent on the push feed besides the engine's own event types."""

    CONNECTED = "connected"
    HEARTBEAT = "heartbeat"
    PONG = "pong"
    ERROR = "feed_error"


class FeedErrorCode(StrEnum):
    INVALID_MESSAGE = "invalid_message"
    UNKNOWN_MESSAGE = "unknown_message"


class FeedErrorMessage(BaseModel):
    code: FeedErrorCode
    message: str


class HeartbeatMessage(BaseModel):
    server_time: str
