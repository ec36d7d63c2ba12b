"""
Datagram Transport
------------------
Socket contract consumed by the discovery engine, and its asyncio UDP
implementation.
"""

import asyncio
import socket
from abc import ABC, abstractmethod
from typing import NamedTuple, Optional, Tuple

import structlog

from .constants import BIND_HOST
from .events import EventEmitter
from .logging_config import log_error

logger = structlog.get_logger()


class Datagram(NamedTuple):
    """One received datagram and the address it was observed from."""
    data: bytes
    address: str
    port: int


class DatagramSocket(EventEmitter, ABC):
    """
    Datagram endpoint used by the engine.

    Events:
        listening: the socket is ready to receive (payload None)
        message: a datagram arrived (payload :class:`Datagram`)
        error: the socket reported an error (payload the exception)
    """

    @abstractmethod
    def bind(self, port: int) -> int:
        """Bind to ``port`` and return the port actually bound."""
        raise NotImplementedError

    @abstractmethod
    def set_broadcast(self, flag: bool) -> None:
        raise NotImplementedError

    @abstractmethod
    def send(self, data: bytes, address: str, port: int) -> None:
        """Send one datagram without waiting for delivery."""
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError


class _UDPProtocol(asyncio.DatagramProtocol):
    """Asyncio protocol feeding received datagrams to a :class:`UDPSocket`."""

    def __init__(self, owner: "UDPSocket"):
        self.owner = owner

    def connection_made(self, transport: asyncio.DatagramTransport) -> None:
        self.owner._transport = transport
        self.owner.emit("listening")

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        try:
            self.owner.emit("message", Datagram(data, addr[0], addr[1]))
        except Exception as e:
            # A bad datagram must not affect the ones after it
            log_error(logger, e, {"event_context": "datagram_received",
                                  "address": f"{addr[0]}:{addr[1]}"})

    def error_received(self, exc: Exception) -> None:
        logger.warning("UDP socket error", error=str(exc))
        self.owner.emit("error", exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc:
            logger.error("UDP connection lost", error=str(exc))


class UDPSocket(DatagramSocket):
    """
    IPv4 UDP socket served by the running asyncio event loop.

    The socket is bound synchronously so the bound port is known right away;
    receiving starts once the loop has set up the datagram endpoint.
    """

    def __init__(self, host: str = BIND_HOST, loop: Optional[asyncio.AbstractEventLoop] = None):
        super().__init__()
        self.host = host
        self._loop = loop
        self._sock: Optional[socket.socket] = None
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._endpoint_task: Optional[asyncio.Future] = None

    @property
    def port(self) -> Optional[int]:
        if self._sock is None:
            return None
        return self._sock.getsockname()[1]

    @property
    def is_listening(self) -> bool:
        return self._transport is not None and not self._transport.is_closing()

    def bind(self, port: int) -> int:
        """
        Bind the socket; must be called while an event loop is running
        unless one was passed to the constructor.
        """
        if self._sock is not None:
            raise RuntimeError(f"Socket already bound to port {self.port}")

        loop = self._loop or asyncio.get_running_loop()
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setblocking(False)
            sock.bind((self.host, port))
        except OSError:
            sock.close()
            raise

        self._sock = sock
        self._endpoint_task = loop.create_task(
            loop.create_datagram_endpoint(lambda: _UDPProtocol(self), sock=sock)
        )
        logger.debug("UDP socket bound", host=self.host, port=self.port)
        return self.port

    def set_broadcast(self, flag: bool) -> None:
        if self._sock is None:
            raise RuntimeError("Socket is not bound")
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1 if flag else 0)

    def send(self, data: bytes, address: str, port: int) -> None:
        if self._sock is None:
            raise RuntimeError("Socket is not bound")
        try:
            if self._transport is not None:
                self._transport.sendto(data, (address, port))
            else:
                self._sock.sendto(data, (address, port))
        except OSError as e:
            # At-most-once delivery, a failed send is only reported
            log_error(logger, e, {"event_context": "send", "to": f"{address}:{port}"})

    async def wait_listening(self) -> None:
        """Wait until the datagram endpoint is receiving."""
        if self._endpoint_task is None:
            raise RuntimeError("Socket is not bound")
        await self._endpoint_task

    def close(self) -> None:
        if self._endpoint_task is not None and not self._endpoint_task.done():
            self._endpoint_task.cancel()
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        elif self._sock is not None:
            self._sock.close()
        self._sock = None
        self._endpoint_task = None
        self.clear_listeners()
        logger.debug("UDP socket closed", host=self.host)
