"""Tagged binary wire primitives: varints, tags and fixed-width values.

Every field on the wire is a ``(field_number << 3) | wire_type`` varint tag
followed by a payload whose shape depends on the wire type.
"""

from __future__ import annotations

import struct
from enum import IntEnum

from transit_rt.errors import MalformedInput


class WireType(IntEnum):
    VARINT = 0
    FIXED64 = 1
    LENGTH_DELIMITED = 2
    START_GROUP = 3  # obsolete
    END_GROUP = 4  # obsolete
    FIXED32 = 5


SUPPORTED_WIRE_TYPES = frozenset(
    {WireType.VARINT, WireType.FIXED64, WireType.LENGTH_DELIMITED, WireType.FIXED32}
)

MAX_VARINT_BYTES = 10
UINT64_MASK = (1 << 64) - 1
UINT32_MASK = (1 << 32) - 1

_FIXED32 = struct.Struct("<I")
_FIXED64 = struct.Struct("<Q")
_FLOAT = struct.Struct("<f")
_DOUBLE = struct.Struct("<d")


# ---------------------------------------------------------------------------
# Integer transforms
# ---------------------------------------------------------------------------


def zigzag_encode(value: int, bits: int = 64) -> int:
    return ((value << 1) ^ (value >> (bits - 1))) & ((1 << bits) - 1)


def zigzag_decode(value: int) -> int:
    return (value >> 1) ^ -(value & 1)


def to_signed(value: int, bits: int) -> int:
    """Interpret the low ``bits`` of ``value`` as a two's-complement integer."""
    value &= (1 << bits) - 1
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


def encode_varint(value: int) -> bytes:
    """Encode an unsigned integer (negative values are taken modulo 2**64)."""
    value &= UINT64_MASK
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def encode_tag(number: int, wire_type: WireType) -> bytes:
    return encode_varint((number << 3) | int(wire_type))


def encode_length_delimited(payload: bytes) -> bytes:
    return encode_varint(len(payload)) + payload


def pack_fixed32(value: int) -> bytes:
    return _FIXED32.pack(value & UINT32_MASK)


def pack_fixed64(value: int) -> bytes:
    return _FIXED64.pack(value & UINT64_MASK)


def pack_float(value: float) -> bytes:
    return _FLOAT.pack(value)


def pack_double(value: float) -> bytes:
    return _DOUBLE.pack(value)


def unpack_fixed32(data: bytes) -> int:
    return _FIXED32.unpack(data)[0]


def unpack_fixed64(data: bytes) -> int:
    return _FIXED64.unpack(data)[0]


def unpack_float(data: bytes) -> float:
    return _FLOAT.unpack(data)[0]


def unpack_double(data: bytes) -> float:
    return _DOUBLE.unpack(data)[0]


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


class Reader:
    """Cursor over a byte buffer that reports absolute offsets on failure.

    ``base_offset`` is the position of ``data[0]`` within the outermost
    buffer, so errors raised while reading a nested message still point at
    the right byte of the original input.
    """

    def __init__(self, data: bytes, base_offset: int = 0, path: str | None = None) -> None:
        self._data = memoryview(data)
        self._pos = 0
        self._base = base_offset
        self.path = path

    @property
    def offset(self) -> int:
        return self._base + self._pos

    @property
    def position(self) -> int:
        return self._pos

    def at_end(self) -> bool:
        return self._pos >= len(self._data)

    def fail(self, message: str, offset: int | None = None) -> MalformedInput:
        at = self.offset if offset is None else offset
        return MalformedInput(message, offset=at, path=self.path)

    def slice(self, start: int, end: int) -> bytes:
        return bytes(self._data[start:end])

    def read_varint(self) -> int:
        start = self.offset
        result = 0
        shift = 0
        for i in range(MAX_VARINT_BYTES):
            if self._pos >= len(self._data):
                raise self.fail("Truncated varint", start)
            byte = self._data[self._pos]
            self._pos += 1
            if i == MAX_VARINT_BYTES - 1 and byte > 0x01:
                raise self.fail("Varint exceeds 64 bits", start)
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result
            shift += 7
        raise self.fail("Varint longer than 10 bytes", start)

    def read_tag(self) -> tuple[int, int]:
        """Read a tag, returning ``(field_number, wire_type)``."""
        start = self.offset
        key = self.read_varint()
        number = key >> 3
        wire_type = key & 0x07
        if number == 0:
            raise self.fail("Field number 0 is invalid", start)
        if wire_type not in SUPPORTED_WIRE_TYPES:
            raise self.fail(f"Unsupported wire type {wire_type} for field {number}", start)
        return number, wire_type

    def read_bytes(self, length: int) -> bytes:
        start = self.offset
        if self._pos + length > len(self._data):
            raise self.fail(
                f"Truncated payload: need {length} bytes, "
                f"{len(self._data) - self._pos} available",
                start,
            )
        chunk = bytes(self._data[self._pos : self._pos + length])
        self._pos += length
        return chunk

    def read_length_delimited(self) -> tuple[bytes, int]:
        """Return the payload and the absolute offset at which it starts."""
        length = self.read_varint()
        payload_offset = self.offset
        return self.read_bytes(length), payload_offset

    def skip(self, wire_type: int) -> None:
        if wire_type == WireType.VARINT:
            self.read_varint()
        elif wire_type == WireType.FIXED64:
            self.read_bytes(8)
        elif wire_type == WireType.LENGTH_DELIMITED:
            self.read_length_delimited()
        elif wire_type == WireType.FIXED32:
            self.read_bytes(4)
        else:
            raise self.fail(f"Cannot skip wire type {wire_type}")
