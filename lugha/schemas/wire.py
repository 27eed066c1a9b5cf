"""
Socket wire protocol shared by the relay and the client socket manager.

Every frame is a JSON object with a `type` discriminator.

Inbound (client -> server):
    {"type": "message", "conversationId": int, "content": str, "userId": int, "language": str}
    {"type": "subscribe", "conversationId": int}

Outbound (server -> client):
    {"type": "message", "message": Message}
    {"type": "error", "error": str}
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter, ValidationError, field_validator

from lugha.core.config import settings
from lugha.schemas.chat import CamelModel, Message

MESSAGE = "message"
ERROR = "error"
SUBSCRIBE = "subscribe"


class ProtocolError(ValueError):
    """An inbound frame that cannot be processed. The text is safe to send to the client."""


class InboundMessageEvent(CamelModel):
    type: Literal["message"] = MESSAGE
    conversation_id: int = Field(..., gt=0, strict=True)
    content: str = Field(..., max_length=settings.MAX_MESSAGE_LENGTH)
    user_id: int | None = Field(None, gt=0, strict=True)
    language: str = Field(..., min_length=1, max_length=20)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v


class SubscribeEvent(CamelModel):
    type: Literal["subscribe"] = SUBSCRIBE
    conversation_id: int = Field(..., gt=0, strict=True)


InboundEvent = Annotated[InboundMessageEvent | SubscribeEvent, Field(discriminator="type")]

_inbound_adapter: TypeAdapter[InboundMessageEvent | SubscribeEvent] = TypeAdapter(InboundEvent)
_INBOUND_TYPES = {MESSAGE, SUBSCRIBE}


class MessageEvent(CamelModel):
    type: Literal["message"] = MESSAGE
    message: Message


class ErrorEvent(CamelModel):
    type: Literal["error"] = ERROR
    error: str


def decode_frame(raw: str | bytes) -> dict[str, Any]:
    """Decode a JSON frame into a dict, raising ProtocolError on anything else."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError("Invalid message format") from e
    if not isinstance(data, dict):
        raise ProtocolError("Invalid message format")
    return data


def parse_inbound(raw: str | bytes) -> InboundMessageEvent | SubscribeEvent:
    """
    Parse and validate an inbound frame.

    Raises:
        ProtocolError: malformed JSON, unknown type, or invalid fields.
    """
    data = decode_frame(raw)
    event_type = data.get("type")
    if event_type not in _INBOUND_TYPES:
        raise ProtocolError(f"Unsupported event type: {event_type!r}")

    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError as e:
        raise ProtocolError(_describe(e)) from e


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"] if part not in _INBOUND_TYPES)
    if field:
        return f"Invalid {field}: {first['msg']}"
    return f"Invalid message: {first['msg']}"


def message_frame(message: Message) -> str:
    return MessageEvent(message=message).model_dump_json(by_alias=True)


def error_frame(error: str) -> str:
    return ErrorEvent(error=error).model_dump_json(by_alias=True)
