"""Decoded message tree nodes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterator, Mapping

from transit_rt.codec.wire import Reader, WireType

if TYPE_CHECKING:
    from transit_rt.schema.descriptors import MessageDescriptor


@dataclass(frozen=True)
class UnknownField:
    """A field the schema does not describe, kept exactly as it was read.

    ``raw`` holds the tag and payload bytes verbatim so re-encoding emits
    the same bytes.
    """

    number: int
    wire_type: int
    raw: bytes

    @property
    def payload(self) -> bytes:
        """Payload bytes without the tag (and without the length prefix)."""
        reader = Reader(self.raw)
        reader.read_tag()
        if self.wire_type == WireType.LENGTH_DELIMITED:
            data, _ = reader.read_length_delimited()
            return data
        start = reader.position
        reader.skip(self.wire_type)
        return reader.slice(start, reader.position)


@dataclass(frozen=True, eq=False)
class Message:
    """An immutable decoded message.

    ``fields`` maps field names to values for fields present on the wire
    (repeated fields as tuples, nested messages as ``Message``).
    """

    descriptor: MessageDescriptor
    fields: Mapping[str, Any] = field(default_factory=dict)
    unknown_fields: tuple[UnknownField, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", dict(self.fields))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Message):
            return NotImplemented
        return (
            self.descriptor.name == other.descriptor.name
            and self.fields == other.fields
            and self.unknown_fields == other.unknown_fields
        )

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    def __getitem__(self, name: str) -> Any:
        return self.fields[name]

    def has(self, name: str) -> bool:
        return name in self.fields

    def get(self, name: str, default: Any = None) -> Any:
        """Return the value of ``name``, falling back to the declared default."""
        if name in self.fields:
            return self.fields[name]
        fd = self.descriptor.field_by_name(name)
        if fd is None:
            msg = f"{self.descriptor.name} has no field {name!r}"
            raise KeyError(msg)
        if fd.is_repeated:
            return ()
        return fd.default if default is None else default

    def messages(self) -> Iterator[tuple[str, Message]]:
        """Yield ``(field_name, child)`` for every nested message, in field order."""
        for fd in self.descriptor.fields:
            if not fd.is_message or fd.name not in self.fields:
                continue
            value = self.fields[fd.name]
            if fd.is_repeated:
                for index, child in enumerate(value):
                    yield f"{fd.name}[{index}]", child
            else:
                yield fd.name, value

    def replace(self, **changes: Any) -> Message:
        """Return a copy with the given fields set (``None`` clears a field)."""
        values = dict(self.fields)
        for name, value in changes.items():
            if value is None:
                values.pop(name, None)
            else:
                values[name] = tuple(value) if isinstance(value, list) else value
        return Message(self.descriptor, values, self.unknown_fields)
