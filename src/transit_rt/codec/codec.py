"""Schema-driven encoder and decoder for the tagged binary format."""

from __future__ import annotations

from typing import Any

from transit_rt.codec.message import Message, UnknownField
from transit_rt.codec.wire import (
    Reader,
    WireType,
    encode_length_delimited,
    encode_tag,
    encode_varint,
    pack_double,
    pack_fixed32,
    pack_fixed64,
    pack_float,
    to_signed,
    unpack_double,
    unpack_fixed32,
    unpack_fixed64,
    unpack_float,
    zigzag_decode,
    zigzag_encode,
)
from transit_rt.errors import MalformedInput
from transit_rt.schema.descriptors import (
    FieldDescriptor,
    FieldType,
    MessageDescriptor,
    SchemaRegistry,
)
from transit_rt.schema.gtfs_realtime import GTFS_REALTIME

DEFAULT_MAX_DEPTH = 100

WIRE_TYPES: dict[FieldType, WireType] = {
    FieldType.INT32: WireType.VARINT,
    FieldType.INT64: WireType.VARINT,
    FieldType.UINT32: WireType.VARINT,
    FieldType.UINT64: WireType.VARINT,
    FieldType.SINT32: WireType.VARINT,
    FieldType.SINT64: WireType.VARINT,
    FieldType.BOOL: WireType.VARINT,
    FieldType.ENUM: WireType.VARINT,
    FieldType.FIXED64: WireType.FIXED64,
    FieldType.SFIXED64: WireType.FIXED64,
    FieldType.DOUBLE: WireType.FIXED64,
    FieldType.FIXED32: WireType.FIXED32,
    FieldType.SFIXED32: WireType.FIXED32,
    FieldType.FLOAT: WireType.FIXED32,
    FieldType.STRING: WireType.LENGTH_DELIMITED,
    FieldType.BYTES: WireType.LENGTH_DELIMITED,
    FieldType.MESSAGE: WireType.LENGTH_DELIMITED,
}


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def decode(
    data: bytes,
    descriptor: MessageDescriptor | str,
    registry: SchemaRegistry = GTFS_REALTIME,
    *,
    enforce_required: bool = False,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Message:
    """Decode ``data`` as a message of type ``descriptor``.

    Fields the descriptor does not know (including extension-range numbers
    and known numbers carrying an unexpected wire type) are kept verbatim on
    the message that contains them.

    Raises:
        MalformedInput: On malformed varints, truncated payloads, unsupported
            wire types, invalid UTF-8, excessive nesting, or (when
            ``enforce_required`` is set) a missing required field.
    """
    if isinstance(descriptor, str):
        descriptor = registry.message(descriptor)
    decoder = _Decoder(registry, enforce_required=enforce_required, max_depth=max_depth)
    return decoder.message(Reader(data, 0, descriptor.short_name), descriptor, depth=1)


class _Decoder:
    def __init__(self, registry: SchemaRegistry, *, enforce_required: bool, max_depth: int) -> None:
        self._registry = registry
        self._enforce_required = enforce_required
        self._max_depth = max_depth

    def message(self, reader: Reader, md: MessageDescriptor, depth: int) -> Message:
        if depth > self._max_depth:
            raise reader.fail(f"Message nesting exceeds {self._max_depth} levels")

        start_offset = reader.offset
        values: dict[str, Any] = {}
        repeated: dict[str, list[Any]] = {}
        unknown: list[UnknownField] = []

        while not reader.at_end():
            tag_start = reader.position
            number, wire_type = reader.read_tag()
            fd = md.field_by_number(number)

            if fd is None or not _accepts(fd, wire_type):
                reader.skip(wire_type)
                unknown.append(
                    UnknownField(number, wire_type, reader.slice(tag_start, reader.position))
                )
                continue

            if fd.is_repeated:
                bucket = repeated.setdefault(fd.name, [])
                if wire_type == WireType.LENGTH_DELIMITED and fd.type.is_packable:
                    payload, payload_offset = reader.read_length_delimited()
                    packed = Reader(payload, payload_offset, reader.path)
                    while not packed.at_end():
                        bucket.append(self.value(packed, fd, WIRE_TYPES[fd.type], depth))
                else:
                    bucket.append(self.value(reader, fd, wire_type, depth))
                continue

            value = self.value(reader, fd, wire_type, depth)
            if fd.is_message and fd.name in values:
                value = _merge(values[fd.name], value)
            values[fd.name] = value

        for name, items in repeated.items():
            values[name] = tuple(items)

        if self._enforce_required:
            for fd in md.fields:
                if fd.is_required and fd.name not in values:
                    raise MalformedInput(
                        f"Missing required field {md.short_name}.{fd.name}",
                        offset=start_offset,
                        path=reader.path,
                    )

        return Message(md, values, tuple(unknown))

    def value(self, reader: Reader, fd: FieldDescriptor, wire_type: int, depth: int) -> Any:
        ftype = fd.type

        if wire_type == WireType.VARINT:
            raw = reader.read_varint()
            if ftype in (FieldType.INT32, FieldType.ENUM):
                return to_signed(raw, 32)
            if ftype is FieldType.INT64:
                return to_signed(raw, 64)
            if ftype is FieldType.UINT32:
                return raw & 0xFFFFFFFF
            if ftype is FieldType.SINT32:
                return zigzag_decode(raw & 0xFFFFFFFF)
            if ftype is FieldType.SINT64:
                return zigzag_decode(raw)
            if ftype is FieldType.BOOL:
                return raw != 0
            return raw

        if wire_type == WireType.FIXED32:
            chunk = reader.read_bytes(4)
            if ftype is FieldType.FLOAT:
                return unpack_float(chunk)
            raw = unpack_fixed32(chunk)
            return to_signed(raw, 32) if ftype is FieldType.SFIXED32 else raw

        if wire_type == WireType.FIXED64:
            chunk = reader.read_bytes(8)
            if ftype is FieldType.DOUBLE:
                return unpack_double(chunk)
            raw = unpack_fixed64(chunk)
            return to_signed(raw, 64) if ftype is FieldType.SFIXED64 else raw

        payload, payload_offset = reader.read_length_delimited()
        if ftype is FieldType.STRING:
            try:
                return payload.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise MalformedInput(
                    f"Invalid UTF-8 in string field {fd.name}",
                    offset=payload_offset + exc.start,
                    path=reader.path,
                ) from exc
        if ftype is FieldType.BYTES:
            return payload

        child = self._registry.message(fd.type_name or "")
        path = f"{reader.path}.{fd.name}" if reader.path else fd.name
        return self.message(Reader(payload, payload_offset, path), child, depth + 1)


def _accepts(fd: FieldDescriptor, wire_type: int) -> bool:
    expected = WIRE_TYPES[fd.type]
    if wire_type == expected:
        return True
    return fd.is_repeated and fd.type.is_packable and wire_type == WireType.LENGTH_DELIMITED


def _merge(first: Message, second: Message) -> Message:
    """Merge a singular message that appeared twice: later scalars win."""
    values = dict(first.fields)
    for fd in second.descriptor.fields:
        if fd.name not in second.fields:
            continue
        incoming = second.fields[fd.name]
        if fd.is_repeated:
            values[fd.name] = tuple(values.get(fd.name, ())) + tuple(incoming)
        elif fd.is_message and fd.name in values:
            values[fd.name] = _merge(values[fd.name], incoming)
        else:
            values[fd.name] = incoming
    return Message(first.descriptor, values, first.unknown_fields + second.unknown_fields)


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode(message: Message) -> bytes:
    """Encode ``message``: known fields by ascending number, then unknown fields verbatim."""
    out = bytearray()
    for fd in sorted(message.descriptor.fields, key=lambda f: f.number):
        if fd.name not in message.fields:
            continue
        value = message.fields[fd.name]
        if not fd.is_repeated:
            out += encode_field(fd, value)
        elif fd.packed:
            if value:
                payload = b"".join(_encode_payload(fd, item) for item in value)
                out += encode_tag(fd.number, WireType.LENGTH_DELIMITED)
                out += encode_length_delimited(payload)
        else:
            for item in value:
                out += encode_field(fd, item)
    for unknown in message.unknown_fields:
        out += unknown.raw
    return bytes(out)


def encode_field(fd: FieldDescriptor, value: Any) -> bytes:
    return encode_tag(fd.number, WIRE_TYPES[fd.type]) + _encode_payload(fd, value)


def _encode_payload(fd: FieldDescriptor, value: Any) -> bytes:
    ftype = fd.type
    if ftype is FieldType.MESSAGE:
        if not isinstance(value, Message):
            msg = f"Field {fd.name} expects a Message, got {type(value).__name__}"
            raise TypeError(msg)
        return encode_length_delimited(encode(value))
    if ftype is FieldType.STRING:
        return encode_length_delimited(value.encode("utf-8"))
    if ftype is FieldType.BYTES:
        return encode_length_delimited(bytes(value))
    if ftype is FieldType.BOOL:
        return encode_varint(1 if value else 0)
    if ftype in (FieldType.UINT32, FieldType.UINT64) and value < 0:
        msg = f"Field {fd.name} is unsigned, got {value}"
        raise ValueError(msg)
    if ftype is FieldType.SINT32:
        return encode_varint(zigzag_encode(int(value), 32))
    if ftype is FieldType.SINT64:
        return encode_varint(zigzag_encode(int(value), 64))
    if ftype is FieldType.FLOAT:
        return pack_float(value)
    if ftype is FieldType.DOUBLE:
        return pack_double(value)
    if ftype in (FieldType.FIXED32, FieldType.SFIXED32):
        return pack_fixed32(int(value))
    if ftype in (FieldType.FIXED64, FieldType.SFIXED64):
        return pack_fixed64(int(value))
    return encode_varint(int(value))
