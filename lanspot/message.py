"""
Message Envelope
----------------
Binds a command type and payload to a message id and a response flag,
and serializes the result with the binary codec.
"""

import random
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from . import codec
from .codec import DecodeError
from .types import Payload


class CommandType(str, Enum):
    """Commands understood by the discovery engine."""
    SEARCH = "search"  # Look for points of a kind
    ALIVE = "alive"  # Periodic presence advertisement
    BYE = "bye"  # Departure announcement
    DATA = "data"  # Addressed application payload


class IdCounter:
    """
    Monotonic message id source.
    Seeded randomly so ids are unlikely to repeat across restarts.
    """

    def __init__(self, seed: Optional[int] = None):
        self._next = seed if seed is not None else random.randint(1, 100000)

    def issue(self) -> int:
        value = self._next
        self._next += 1
        return value

    def peek(self) -> int:
        return self._next


class Message(BaseModel):
    """
    Envelope for every lanspot datagram.

    ``type`` is kept as free text so that commands this version does not
    know about still decode and can be reported.
    """
    id: int = 0
    type: str = CommandType.DATA.value
    is_response: bool = False
    fields: Dict[str, Any] = Field(default_factory=dict)

    @property
    def command(self) -> Optional[CommandType]:
        """The command type, or None when it is not one this version handles."""
        try:
            return CommandType(self.type)
        except ValueError:
            return None

    def to_bytes(self) -> bytes:
        """Serialize the envelope; the response flag is written only when set."""
        pack: Dict[str, Any] = {"id": self.id, "type": self.type, "fields": self.fields}
        if self.is_response:
            pack["isr"] = True
        return codec.encode(pack)

    @classmethod
    def from_bytes(cls, data: codec.Buffer,
                   type: Union[CommandType, str] = CommandType.DATA) -> "Message":
        """
        Parse an envelope from a received buffer.

        Keys missing from the buffer keep their defaults; ``type`` is the
        command assumed when the buffer names none. Payload fields are not
        validated here.

        Raises:
            DecodeError: if the buffer is malformed or is not an envelope mapping
        """
        pack = codec.decode(data)
        if not isinstance(pack, dict):
            raise DecodeError(f"Envelope must be a mapping, got {_type_name(pack)}")

        merged: Dict[str, Any] = {"type": _command_text(type)}
        if pack.get("id"):
            merged["id"] = pack["id"]
        if pack.get("type"):
            merged["type"] = pack["type"]
        if pack.get("isr"):
            merged["is_response"] = pack["isr"]
        if pack.get("fields"):
            merged["fields"] = pack["fields"]

        try:
            return cls.model_validate(merged)
        except ValidationError as e:
            raise DecodeError(f"Malformed envelope: {e}") from e


def _type_name(value: Any) -> str:
    return type(value).__name__


def _command_text(command: Union[CommandType, str]) -> str:
    return command.value if isinstance(command, CommandType) else str(command)


def create_message(command: Union[CommandType, str],
                   fields: Union[Payload, Mapping[str, Any]],
                   ids: IdCounter,
                   is_response: bool = False) -> Message:
    """Create an envelope with the next id from ``ids``; fields are shallow-copied."""
    if isinstance(fields, Payload):
        fields = fields.to_wire()
    return Message(
        id=ids.issue(),
        type=_command_text(command),
        is_response=is_response,
        fields=dict(fields),
    )
