"""
lanspot
-------
Presence discovery over UDP broadcast. Points advertise themselves,
announce departure, can be searched for by kind and exchange small
payloads once discovered. Every message is an envelope encoded with a
tagged binary codec.
"""

__version__ = "0.1.0"

from .codec import UNDEFINED, DecodeError, decode, encode
from .config import SpotSettings
from .events import EventEmitter
from .message import CommandType, IdCounter, Message, create_message
from .spot import Spot, create_spot
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

__all__ = [
    'Spot', 'create_spot', 'SpotSettings',
    'Message', 'CommandType', 'IdCounter', 'create_message',
    'encode', 'decode', 'DecodeError', 'UNDEFINED',
    'EventEmitter', 'Datagram', 'DatagramSocket', 'UDPSocket',
    'Identity', 'HostEntry', 'Channel', 'PointKind',
    'SearchRequest', 'SearchResponse', 'AlivePayload', 'ByePayload', 'DataPayload',
]
