"""
Binary Codec
------------
Tagged, length-prefixed serialization used for every lanspot wire message.

Every value starts with one tag byte:

    u               absence (``UNDEFINED``)
    n               null (``None``)
    b0 / b1         boolean
    i<number>e      integer within the signed 64-bit range, or float
    I<number>e      integer outside the signed 64-bit range
    B<len>:<raw>    byte string
    s<len>:<raw>    text, packed to bytes first
    a<count>:...    sequence of encoded elements
    d<count>:...    mapping of encoded (key, value) pairs
"""

import math
import re
from enum import Enum, IntEnum
from typing import Any, Mapping, Tuple, Union


class Tag(IntEnum):
    """Leading byte identifying the kind of an encoded value."""
    UNDEFINED = ord("u")
    NULL = ord("n")
    BOOLEAN = ord("b")
    BYTES = ord("B")
    NUMBER = ord("i")
    BIGINT = ord("I")
    STRING = ord("s")
    DICT = ord("d")
    ARRAY = ord("a")


END = ord("e")
COLON = ord(":")
ONE = ord("1")

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

_INTEGER = re.compile(rb"^[+-]?[0-9]+$")
_FLOAT_NAMES = {
    b"Infinity": math.inf,
    b"+Infinity": math.inf,
    b"-Infinity": -math.inf,
    b"NaN": math.nan,
}

Buffer = Union[bytes, bytearray, memoryview]


class DecodeError(ValueError):
    """Raised when a buffer is malformed, truncated or carries an unknown tag."""
    pass


class Undefined:
    """Marker for an absent value, distinct from ``None``."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return (Undefined, ())


UNDEFINED = Undefined()

_SCALARS = (bool, int, float, bytes, bytearray, memoryview, str, list, tuple, Enum)


def pack_text(text: str) -> bytes:
    """Transcode text into the byte form carried on the wire."""
    return text.encode("utf-8", "surrogatepass")


def unpack_text(data: Buffer) -> str:
    """Inverse of :func:`pack_text`."""
    try:
        return bytes(data).decode("utf-8", "surrogatepass")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Invalid packed text: {e}") from e


def is_encodable(value: Any) -> bool:
    """Check whether a value has a wire representation."""
    if value is None or value is UNDEFINED:
        return True
    return isinstance(value, _SCALARS) or isinstance(value, Mapping)


def _key_text(key: Any) -> str:
    if isinstance(key, Enum):
        key = key.value
    return str(key)


def _format_float(value: float) -> bytes:
    if math.isnan(value):
        return b"NaN"
    if math.isinf(value):
        return b"Infinity" if value > 0 else b"-Infinity"
    # Upper-case exponent, a lower-case 'e' is the number terminator
    return repr(value).upper().encode("ascii")


class Encoder:
    """Growable output buffer that values are appended to."""

    def __init__(self):
        self.buffer = bytearray()

    def encode(self, value: Any) -> "Encoder":
        out = self.buffer
        if value is UNDEFINED:
            out.append(Tag.UNDEFINED)
        elif value is None:
            out.append(Tag.NULL)
        elif isinstance(value, Enum):
            self.encode(value.value)
        elif isinstance(value, bool):
            out += b"b1" if value else b"b0"
        elif isinstance(value, int):
            tag = Tag.NUMBER if INT64_MIN <= value <= INT64_MAX else Tag.BIGINT
            out.append(tag)
            out += str(value).encode("ascii")
            out.append(END)
        elif isinstance(value, float):
            out.append(Tag.NUMBER)
            out += _format_float(value)
            out.append(END)
        elif isinstance(value, (bytes, bytearray, memoryview)):
            data = bytes(value)
            out += b"B%d:" % len(data)
            out += data
        elif isinstance(value, str):
            data = pack_text(value)
            out += b"s%d:" % len(data)
            out += data
        elif isinstance(value, Mapping):
            # Keys colliding as text collapse to one pair, as they decode
            pairs = {_key_text(k): v for k, v in value.items() if is_encodable(v)}
            out += b"d%d:" % len(pairs)
            for key, item in pairs.items():
                self.encode(key)
                self.encode(item)
        elif isinstance(value, (list, tuple)):
            items = [v for v in value if is_encodable(v)]
            out += b"a%d:" % len(items)
            for item in items:
                self.encode(item)
        # Anything else (functions, arbitrary objects) has no wire form and is dropped.
        return self

    def final(self) -> bytes:
        return bytes(self.buffer)


class Decoder:
    """Reads encoded values from a buffer, advancing a shared cursor."""

    def __init__(self, buffer: Buffer, pos: int = 0):
        self.buffer = bytes(buffer)
        self.pos = pos

    def decode(self) -> Any:
        tag = self._next_byte()

        if tag == Tag.ARRAY:
            size = self._read_size()
            return [self.decode() for _ in range(size)]
        if tag == Tag.BOOLEAN:
            return self._next_byte() == ONE
        if tag == Tag.DICT:
            size = self._read_size()
            result = {}
            for _ in range(size):
                key = self.decode()
                if not isinstance(key, str):
                    raise DecodeError(f"Mapping key must be text, got {type(key).__name__}")
                result[key] = self.decode()
            return result
        if tag == Tag.NUMBER:
            return self._parse_number(self._read_until(END))
        if tag == Tag.BIGINT:
            raw = self._read_until(END)
            if not _INTEGER.match(raw):
                raise DecodeError(f"Invalid big integer {raw!r}")
            return int(raw)
        if tag == Tag.NULL:
            return None
        if tag == Tag.STRING:
            return unpack_text(self._read_exact(self._read_size()))
        if tag == Tag.BYTES:
            return self._read_exact(self._read_size())
        if tag == Tag.UNDEFINED:
            return UNDEFINED

        raise DecodeError(f"Unknown tag byte 0x{tag:02x} at offset {self.pos - 1}")

    def _next_byte(self) -> int:
        if self.pos >= len(self.buffer):
            raise DecodeError(f"Unexpected end of buffer at offset {self.pos}")
        b = self.buffer[self.pos]
        self.pos += 1
        return b

    def _read_until(self, terminator: int) -> bytes:
        end = self.buffer.find(bytes((terminator,)), self.pos)
        if end < 0:
            raise DecodeError(f"Missing {chr(terminator)!r} terminator after offset {self.pos}")
        chunk = self.buffer[self.pos:end]
        self.pos = end + 1
        return chunk

    def _read_size(self) -> int:
        raw = self._read_until(COLON)
        if not raw.isdigit():
            raise DecodeError(f"Invalid length prefix {raw!r}")
        return int(raw)

    def _read_exact(self, size: int) -> bytes:
        end = self.pos + size
        if end > len(self.buffer):
            raise DecodeError(
                f"Truncated buffer: need {size} bytes at offset {self.pos}, "
                f"have {len(self.buffer) - self.pos}"
            )
        chunk = self.buffer[self.pos:end]
        self.pos = end
        return chunk

    @staticmethod
    def _parse_number(raw: bytes) -> Union[int, float]:
        if _INTEGER.match(raw):
            return int(raw)
        if raw in _FLOAT_NAMES:
            return _FLOAT_NAMES[raw]
        try:
            return float(raw)
        except ValueError as e:
            raise DecodeError(f"Invalid number {raw!r}") from e


def encode(value: Any) -> bytes:
    """Encode a value into its tagged byte form."""
    return Encoder().encode(value).final()


def decode(buffer: Buffer) -> Any:
    """Decode the first value in a buffer."""
    return Decoder(buffer).decode()


def decode_from(buffer: Buffer, offset: int = 0) -> Tuple[Any, int]:
    """Decode one value starting at ``offset``; returns the value and the next offset."""
    decoder = Decoder(buffer, offset)
    value = decoder.decode()
    return value, decoder.pos

