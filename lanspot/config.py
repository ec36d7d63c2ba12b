"""Runtime settings for lanspot points, read from ``LANSPOT_*`` environment variables."""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import constants
from .types import PointKind, resolve_kind


class SpotSettings(BaseSettings):
    """Configuration for a discovery engine and its sockets."""

    model_config = SettingsConfigDict(env_prefix="LANSPOT_", env_file=".env", extra="ignore")

    # Network Configuration
    BROADCAST_PORT: int = Field(
        default=constants.BROADCAST_PORT,
        description="Shared port for alive/bye/search broadcasts"
    )
    DATA_PORT: int = Field(
        default=constants.DATA_PORT,
        description="Port for addressed data and search responses"
    )
    BROADCAST_ADDRESS: str = Field(
        default=constants.BROADCAST_ADDRESS,
        description="Destination address of broadcasts"
    )
    BIND_HOST: str = Field(
        default=constants.BIND_HOST,
        description="Local address both sockets bind to"
    )

    # Protocol Configuration
    ADVERTISE_INTERVAL: float = Field(
        default=constants.ADVERTISE_INTERVAL,
        gt=0,
        description="Seconds between alive advertisements"
    )
    KIND: PointKind = Field(
        default=PointKind.HOST,
        description="Role of this point (host or cp)"
    )
    NAME: Optional[str] = Field(
        default=None,
        description="Advertised point name, defaults to lanspot/<version>"
    )

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Log level used when create_spot sets up logging"
    )

    @field_validator("KIND", mode="before")
    @classmethod
    def accept_kind_alias(cls, value):
        return resolve_kind(value)
