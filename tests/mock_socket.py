"""
In-memory datagram sockets for engine tests
"""
from typing import List, Optional, Tuple

from lanspot.constants import BROADCAST_ADDRESS
from lanspot.message import Message
from lanspot.transport import Datagram, DatagramSocket


class MockNetwork:
    """
    Delivers datagrams between MockSockets synchronously.
    Broadcasts reach every socket bound to the destination port, the sender included.
    """

    def __init__(self, broadcast_address: str = BROADCAST_ADDRESS):
        self.broadcast_address = broadcast_address
        self.sockets: List["MockSocket"] = []

    def socket(self, ip: str) -> "MockSocket":
        sock = MockSocket(ip, self)
        self.sockets.append(sock)
        return sock

    def deliver(self, sender: "MockSocket", data: bytes, address: str, port: int) -> None:
        for sock in list(self.sockets):
            if sock.closed or sock.bound_port != port:
                continue
            if address == self.broadcast_address or address == sock.ip:
                sock.receive(data, sender.ip, sender.bound_port)


class MockSocket(DatagramSocket):
    """
    Mock implementation of a DatagramSocket for testing.
    Records every send and hands datagrams to an optional MockNetwork.
    """

    def __init__(self, ip: str = "127.0.0.1", network: Optional[MockNetwork] = None):
        super().__init__()
        self.ip = ip
        self.network = network
        self.bound_port: Optional[int] = None
        self.broadcast = False
        self.closed = False
        self.sent: List[Tuple[bytes, str, int]] = []

    def bind(self, port: int) -> int:
        self.bound_port = port
        self.emit("listening")
        return port

    def set_broadcast(self, flag: bool) -> None:
        self.broadcast = flag

    def send(self, data: bytes, address: str, port: int) -> None:
        self.sent.append((data, address, port))
        if self.network is not None:
            self.network.deliver(self, data, address, port)

    def close(self) -> None:
        self.closed = True
        self.clear_listeners()

    def receive(self, data: bytes, address: str, port: int) -> None:
        """Simulate a datagram arriving from ``address:port``."""
        self.emit("message", Datagram(data, address, port))

    def sent_messages(self) -> List[Message]:
        return [Message.from_bytes(data) for data, _, _ in self.sent]
