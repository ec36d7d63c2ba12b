"""
Core type definitions for lanspot.
These types are shared by the envelope, the engine and the tests and don't
import from other lanspot modules apart from constants.
"""
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import ANY_KIND, CODE_OK, DATA_PORT


class PointKind(str, Enum):
    """Role of a protocol participant."""
    HOST = "host"  # Advertises presence and channels
    CONTROLLER = "cp"  # Searches for hosts


KindFilter = Union[PointKind, Literal["*"]]

# Long names accepted for kinds whose wire value is abbreviated
KIND_ALIASES = {"controller": PointKind.CONTROLLER}


def resolve_kind(value: Any) -> Any:
    """Map a long kind name to its PointKind, leaving anything else unchanged."""
    if isinstance(value, str) and not isinstance(value, PointKind):
        return KIND_ALIASES.get(value, value)
    return value


class Identity(BaseModel):
    """Address record of a point, as carried in the ``from`` field of every payload."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    uuid: str
    kind: PointKind = Field(default=PointKind.HOST, alias="type")
    host: str = ""  # Filled from the observed sender address on receipt
    port: int = DATA_PORT
    name: str = ""

    @field_validator("kind", mode="before")
    @classmethod
    def accept_kind_alias(cls, value: Any) -> Any:
        return resolve_kind(value)

    @property
    def address(self):
        return self.host, self.port

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class HostEntry(Identity):
    """Host-table entry: a peer identity plus the time it was last seen alive."""
    active: float


class Channel(BaseModel):
    """Application-level sub-endpoint advertised by a host."""
    model_config = ConfigDict(extra="allow", frozen=True)

    id: int
    name: str = ""

    def summary(self) -> Dict[str, Any]:
        """Fields carried in advertisements; other metadata stays local."""
        return {"id": self.id, "name": self.name}


class Payload(BaseModel):
    """Base for command payloads; every one names its sender."""
    model_config = ConfigDict(populate_by_name=True)

    from_: Identity = Field(alias="from")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class SearchRequest(Payload):
    target: KindFilter = Field(default=ANY_KIND, alias="type")

    @field_validator("target", mode="before")
    @classmethod
    def accept_kind_alias(cls, value: Any) -> Any:
        return resolve_kind(value)


class SearchResponse(Payload):
    code: int = CODE_OK
    error: Optional[str] = Field(default=None, alias="err")


class AlivePayload(Payload):
    channels: List[Channel] = Field(default_factory=list)


class ByePayload(Payload):
    pass


class DataPayload(Payload):
    channel: int = Field(alias="chnn")
    payload: Union[bytes, str] = Field(alias="data")
