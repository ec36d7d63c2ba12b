"""
Discovery Engine
----------------
Presence protocol over two datagram sockets: a broadcast socket for
alive/bye/search traffic and a data socket for addressed messages and
search responses.
"""

import asyncio
import random
import time
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import structlog
from pydantic import ValidationError

from . import __version__
from .config import SpotSettings
from .constants import ANY_KIND, CODE_OK
from .events import EventEmitter
from .logging_config import configure_logging, log_error
from .message import CommandType, IdCounter, Message, create_message
from .transport import Datagram, DatagramSocket, UDPSocket
from .types import (
    AlivePayload,
    ByePayload,
    Channel,
    DataPayload,
    HostEntry,
    Identity,
    PointKind,
    SearchRequest,
    SearchResponse,
)

logger = structlog.get_logger()

Target = Union[Identity, Mapping[str, Any], Tuple[str, int]]

HEX_CHARS = "0123456789abcdef"


def random_hex(length: int) -> str:
    return "".join(random.choice(HEX_CHARS) for _ in range(length))


def gen_uuid() -> str:
    """Random 8-4-4-4-12 hex id; unique per process, not cryptographically strong."""
    return "-".join(random_hex(n) for n in (8, 4, 4, 4, 12))


def _address_of(target: Target) -> Tuple[str, int]:
    if isinstance(target, tuple):
        return target[0], int(target[1])
    if isinstance(target, Mapping):
        return target["host"], int(target["port"])
    return target.host, int(target.port)


class Spot(EventEmitter):
    """
    A point taking part in the presence protocol.

    Events:
        alive: a host advertised itself (payload :class:`AlivePayload`)
        bye: a host announced its departure (payload :class:`ByePayload`)
        found: a point answered our search (payload :class:`Identity`)
        data: addressed data arrived (payload :class:`DataPayload`)
    """

    def __init__(self,
                 sigso: DatagramSocket,
                 datso: DatagramSocket,
                 options: Optional[Mapping[str, Any]] = None,
                 *,
                 settings: Optional[SpotSettings] = None,
                 log: Optional[Any] = None):
        super().__init__()
        self.settings = settings or SpotSettings()
        self.sigso = sigso
        self.datso = datso
        self.sigport = self.settings.BROADCAST_PORT

        identity = {
            "uuid": gen_uuid(),
            "kind": self.settings.KIND,
            "port": self.settings.DATA_PORT,
            "name": self.settings.NAME or f"lanspot/{__version__}",
        }
        if options:
            identity.update(options)
        identity["host"] = ""
        self._options = Identity.model_validate(identity)
        self.log = log or logger.bind(spot=self._options.name)

        self._hosts: Dict[str, HostEntry] = {}
        self._channels: List[Channel] = []
        self._ids = IdCounter()
        self._started = False
        self._ad_task: Optional[asyncio.Task] = None

        self.sigso.bind(self.sigport)
        self.sigso.set_broadcast(True)
        self.datso.bind(self._options.port)

    @property
    def options(self) -> Identity:
        """This point's own identity."""
        return self._options

    @property
    def uuid(self) -> str:
        return self._options.uuid

    @property
    def started(self) -> bool:
        return self._started

    @property
    def hosts(self) -> Dict[str, HostEntry]:
        """Snapshot of the host table keyed by uuid."""
        return dict(self._hosts)

    @property
    def channels(self) -> Tuple[Channel, ...]:
        return tuple(self._channels)

    def start(self) -> bool:
        """
        Attach the inbound handlers and start the advertisement timer.
        Must be called from a running event loop.

        Returns:
            True if started, False if already running
        """
        if self._started:
            return False

        loop = asyncio.get_running_loop()
        self._started = True
        self.sigso.on("message", self.handle_signal)
        self.datso.on("message", self.handle_data)
        self._ad_task = loop.create_task(self._advertise_loop())

        self.log.info("Spot started",
                      ports=[self._options.port, self.sigport],
                      uuid=self._options.uuid,
                      kind=self._options.kind.value)
        return True

    def stop(self) -> None:
        """Cancel advertising, broadcast a bye and detach the inbound handlers."""
        if not self._started:
            return

        self._started = False
        if self._ad_task:
            self._ad_task.cancel()
            self._ad_task = None

        self.advertise(False)
        self.sigso.remove_listener("message", self.handle_signal)
        self.datso.remove_listener("message", self.handle_data)
        self.log.info("Spot stopped")

    def close(self) -> None:
        """Stop and release both sockets."""
        self.stop()
        self.sigso.close()
        self.datso.close()

    def add_channel(self, channel: Union[Channel, Mapping[str, Any]]) -> bool:
        """
        Register a channel and advertise it right away.

        Returns:
            True if added, False if a channel with the same id exists
        """
        if not isinstance(channel, Channel):
            channel = Channel.model_validate(channel)

        if any(c.id == channel.id for c in self._channels):
            self.log.warning("Channel exists", channel=channel.id)
            return False

        self._channels.append(channel)
        self.advertise(True)
        return True

    def remove_channel(self, channel_id: int) -> None:
        for index, channel in enumerate(self._channels):
            if channel.id == channel_id:
                del self._channels[index]
                self.advertise(True)
                return

    def send(self, message: Message, target: Target) -> None:
        """Send an envelope to an address over the data socket."""
        host, port = _address_of(target)
        self.datso.send(message.to_bytes(), host, port)

    def send_data(self, data: Union[str, bytes], target: Target, channel: int) -> None:
        payload = DataPayload(from_=self._options, channel=channel, payload=data)
        self.send(create_message(CommandType.DATA, payload, self._ids), target)

    def search(self, kind: Union[PointKind, str] = ANY_KIND) -> None:
        """
        Broadcast a search for points of ``kind`` ('*' for any).
        "controller" is accepted for :attr:`PointKind.CONTROLLER` (wire value "cp").
        """
        request = SearchRequest(from_=self._options, target=kind or ANY_KIND)
        self._broadcast(create_message(CommandType.SEARCH, request, self._ids))

    def advertise(self, alive: bool = True) -> None:
        """Broadcast an alive advertisement with our channels, or a bye."""
        if alive:
            channels = [Channel(**c.summary()) for c in self._channels]
            message = create_message(
                CommandType.ALIVE, AlivePayload(from_=self._options, channels=channels), self._ids)
        else:
            message = create_message(CommandType.BYE, ByePayload(from_=self._options), self._ids)

        self._broadcast(message)

    def handle_signal(self, datagram: Datagram) -> None:
        """
        Route one datagram received on the broadcast socket.

        Raises:
            DecodeError: if the datagram is not a valid envelope
        """
        message = Message.from_bytes(datagram.data)
        sender = self._accept_sender(message, datagram)
        if sender is None:
            return

        if message.is_response:
            self._handle_response(message, sender)
        else:
            self._handle_command(message, sender, datagram)

    def handle_data(self, datagram: Datagram) -> None:
        """
        Route one datagram received on the data socket.

        Raises:
            DecodeError: if the datagram is not a valid envelope
        """
        message = Message.from_bytes(datagram.data)

        # Is it a response to our search?
        if message.is_response:
            sender = self._accept_sender(message, datagram)
            if sender is not None:
                self._handle_response(message, sender)
            return

        payload = self._parse(DataPayload, message, datagram, loopback=False)
        if payload is not None:
            self.emit("data", payload)

    def _accept_sender(self, message: Message, datagram: Datagram,
                       loopback: bool = True) -> Optional[Identity]:
        """
        Validate the sender of a message, taking its host from the observed
        address. Returns None for our own messages and malformed senders.
        """
        claimed = message.fields.get("from")
        if not isinstance(claimed, Mapping):
            self.log.warning("Message without sender",
                             command=message.type,
                             address=f"{datagram.address}:{datagram.port}")
            return None

        # Is it from me?
        if loopback and claimed.get("uuid") == self._options.uuid:
            return None

        try:
            return Identity.model_validate({**claimed, "host": datagram.address})
        except ValidationError as e:
            self.log.warning("Invalid sender",
                             address=f"{datagram.address}:{datagram.port}",
                             error=str(e))
            return None

    def _parse(self, model, message: Message, datagram: Datagram,
               sender: Optional[Identity] = None, loopback: bool = True):
        if sender is None:
            sender = self._accept_sender(message, datagram, loopback=loopback)
            if sender is None:
                return None
        try:
            return model.model_validate({**message.fields, "from": sender})
        except ValidationError as e:
            self.log.warning("Invalid payload",
                             command=message.type,
                             address=f"{datagram.address}:{datagram.port}",
                             error=str(e))
            return None

    def _handle_command(self, message: Message, sender: Identity, datagram: Datagram) -> None:
        command = message.command

        if command == CommandType.ALIVE:
            payload = self._parse(AlivePayload, message, datagram, sender)
            if payload is not None:
                self._handle_alive(payload)
        elif command == CommandType.BYE:
            payload = self._parse(ByePayload, message, datagram, sender)
            if payload is not None:
                self._handle_bye(payload)
        elif command == CommandType.SEARCH:
            request = self._parse(SearchRequest, message, datagram, sender)
            if request is not None:
                self._handle_search(request)
        else:
            self.log.warning("Unhandled command",
                             command=message.type,
                             address=f"{datagram.address}:{datagram.port}")

    def _handle_alive(self, payload: AlivePayload) -> None:
        peer = payload.from_
        if peer.kind != PointKind.HOST:
            return

        self._hosts[peer.uuid] = HostEntry(**peer.model_dump(), active=time.time())
        self.emit("alive", payload)
        self.log.info("Alive message", host=peer.host, port=peer.port, name=peer.name)

    def _handle_bye(self, payload: ByePayload) -> None:
        peer = payload.from_
        if peer.kind != PointKind.HOST:
            return

        self._hosts.pop(peer.uuid, None)
        self.emit("bye", payload)
        self.log.info("Bye message", host=peer.host, port=peer.port, name=peer.name)

    def _handle_search(self, request: SearchRequest) -> None:
        if request.target != ANY_KIND and request.target != self._options.kind:
            return

        peer = request.from_
        self.log.info("Search message", host=peer.host, port=peer.port, name=peer.name)
        response = SearchResponse(from_=self._options, code=CODE_OK)
        self.send(create_message(CommandType.SEARCH, response, self._ids, is_response=True), peer)

    def _handle_response(self, message: Message, sender: Identity) -> None:
        self.log.info("Response message",
                      command=message.type,
                      host=sender.host,
                      port=sender.port,
                      name=sender.name)

        if message.command == CommandType.SEARCH:
            self.emit("found", sender)

    async def _advertise_loop(self) -> None:
        """Periodically broadcast alive advertisements."""
        while True:
            try:
                await asyncio.sleep(self.settings.ADVERTISE_INTERVAL)
                self.advertise(True)
            except asyncio.CancelledError:
                break
            except Exception as e:
                log_error(self.log, e, {"event_context": "advertise"})

    def _broadcast(self, message: Message) -> None:
        self.sigso.send(message.to_bytes(), self.settings.BROADCAST_ADDRESS, self.sigport)


def create_spot(options: Optional[Mapping[str, Any]] = None,
                settings: Optional[SpotSettings] = None,
                setup_logging: bool = False) -> Spot:
    """
    Create a Spot on two fresh UDP sockets; call from a running event loop.

    With ``setup_logging`` the process-wide structlog configuration is
    installed first, at ``settings.LOG_LEVEL``.
    """
    settings = settings or SpotSettings()
    if setup_logging:
        configure_logging(settings.LOG_LEVEL)
    return Spot(
        UDPSocket(settings.BIND_HOST),
        UDPSocket(settings.BIND_HOST),
        options,
        settings=settings,
    )
