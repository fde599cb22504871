"""Descriptor types for the schema registry.

A registry is a read-only set of message and enum descriptors keyed by fully
qualified name (e.g. ``transit_realtime.FeedHeader``). The codec, normalizer
and validator all consult the same registry.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping

MAX_FIELD_NUMBER = (1 << 29) - 1
RESERVED_FIELD_NUMBERS = range(19000, 20000)


class Cardinality(str, Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"
    REPEATED = "repeated"


class FieldType(str, Enum):
    DOUBLE = "double"
    FLOAT = "float"
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    SINT32 = "sint32"
    SINT64 = "sint64"
    FIXED32 = "fixed32"
    FIXED64 = "fixed64"
    SFIXED32 = "sfixed32"
    SFIXED64 = "sfixed64"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"
    ENUM = "enum"
    MESSAGE = "message"

    @property
    def is_packable(self) -> bool:
        return self not in (FieldType.STRING, FieldType.BYTES, FieldType.MESSAGE)


class SchemaError(Exception):
    """Raised when a descriptor set is inconsistent."""


@dataclass(frozen=True)
class FieldDescriptor:
    """A single field of a message."""

    number: int
    name: str
    type: FieldType
    cardinality: Cardinality = Cardinality.OPTIONAL
    type_name: str | None = None
    default: Any = None
    packed: bool = False

    @property
    def is_repeated(self) -> bool:
        return self.cardinality is Cardinality.REPEATED

    @property
    def is_required(self) -> bool:
        return self.cardinality is Cardinality.REQUIRED

    @property
    def is_message(self) -> bool:
        return self.type is FieldType.MESSAGE

    @property
    def is_enum(self) -> bool:
        return self.type is FieldType.ENUM


@dataclass(frozen=True)
class EnumDescriptor:
    """Symbolic names mapped to integer values, with the declared default."""

    name: str
    values: Mapping[str, int]
    default: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))
        if self.default is None and self.values:
            object.__setattr__(self, "default", next(iter(self.values.values())))

    def __contains__(self, number: object) -> bool:
        return number in self.values.values()

    def name_of(self, number: int) -> str | None:
        for symbol, value in self.values.items():
            if value == number:
                return symbol
        return None


@dataclass(frozen=True)
class MessageDescriptor:
    """Ordered field descriptors plus declared extension ranges.

    ``extension_ranges`` are inclusive ``(start, end)`` pairs.
    ``exclusive_groups`` name sets of fields of which at most one may be set.
    """

    name: str
    fields: tuple[FieldDescriptor, ...]
    extension_ranges: tuple[tuple[int, int], ...] = ()
    exclusive_groups: tuple[tuple[str, ...], ...] = ()
    _by_number: Mapping[int, FieldDescriptor] = field(
        init=False, repr=False, compare=False
    )
    _by_name: Mapping[str, FieldDescriptor] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        by_number: dict[int, FieldDescriptor] = {}
        by_name: dict[str, FieldDescriptor] = {}
        for fd in self.fields:
            if not 1 <= fd.number <= MAX_FIELD_NUMBER or fd.number in RESERVED_FIELD_NUMBERS:
                msg = f"{self.name}.{fd.name}: invalid field number {fd.number}"
                raise SchemaError(msg)
            if fd.number in by_number:
                msg = f"{self.name}: field number {fd.number} used twice"
                raise SchemaError(msg)
            if fd.name in by_name:
                msg = f"{self.name}: field name {fd.name!r} used twice"
                raise SchemaError(msg)
            if fd.type in (FieldType.MESSAGE, FieldType.ENUM) and not fd.type_name:
                msg = f"{self.name}.{fd.name}: {fd.type.value} field needs a type_name"
                raise SchemaError(msg)
            if fd.packed and not (fd.is_repeated and fd.type.is_packable):
                msg = f"{self.name}.{fd.name}: only repeated scalar fields can be packed"
                raise SchemaError(msg)
            by_number[fd.number] = fd
            by_name[fd.name] = fd
        for group in self.exclusive_groups:
            unknown = [name for name in group if name not in by_name]
            if unknown:
                msg = f"{self.name}: exclusive group names unknown fields {unknown}"
                raise SchemaError(msg)
        object.__setattr__(self, "_by_number", MappingProxyType(by_number))
        object.__setattr__(self, "_by_name", MappingProxyType(by_name))

    def field_by_number(self, number: int) -> FieldDescriptor | None:
        return self._by_number.get(number)

    def field_by_name(self, name: str) -> FieldDescriptor | None:
        return self._by_name.get(name)

    def in_extension_range(self, number: int) -> bool:
        return any(start <= number <= end for start, end in self.extension_ranges)

    @property
    def short_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]


class SchemaRegistry:
    """Immutable lookup of message and enum descriptors."""

    def __init__(
        self,
        messages: Iterable[MessageDescriptor],
        enums: Iterable[EnumDescriptor] = (),
        *,
        extensions: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        self._messages = {md.name: md for md in messages}
        self._enums = {ed.name: ed for ed in enums}
        self._extensions = {name: frozenset(v) for name, v in (extensions or {}).items()}
        self._check()

    def _check(self) -> None:
        for md in self._messages.values():
            for fd in md.fields:
                if fd.is_message and fd.type_name not in self._messages:
                    msg = f"{md.name}.{fd.name}: unknown message type {fd.type_name}"
                    raise SchemaError(msg)
                if fd.is_enum and fd.type_name not in self._enums:
                    msg = f"{md.name}.{fd.name}: unknown enum type {fd.type_name}"
                    raise SchemaError(msg)
                extension_names = self._extensions.get(md.name, frozenset())
                if md.in_extension_range(fd.number) and fd.name not in extension_names:
                    msg = f"{md.name}.{fd.name}: field {fd.number} lies in an extension range"
                    raise SchemaError(msg)

    def message(self, name: str) -> MessageDescriptor:
        try:
            return self._messages[name]
        except KeyError:
            msg = f"Unknown message type {name}"
            raise SchemaError(msg) from None

    def enum(self, name: str) -> EnumDescriptor:
        try:
            return self._enums[name]
        except KeyError:
            msg = f"Unknown enum type {name}"
            raise SchemaError(msg) from None

    @property
    def messages(self) -> Mapping[str, MessageDescriptor]:
        return MappingProxyType(self._messages)

    @property
    def enums(self) -> Mapping[str, EnumDescriptor]:
        return MappingProxyType(self._enums)

    def with_extension(self, message_name: str, extension: FieldDescriptor) -> SchemaRegistry:
        """Return a new registry in which ``extension`` is a known field.

        The field number must fall inside one of the message's declared
        extension ranges.
        """
        md = self.message(message_name)
        if not md.in_extension_range(extension.number):
            msg = (
                f"{message_name}: extension number {extension.number} is outside "
                f"the declared ranges {list(md.extension_ranges)}"
            )
            raise SchemaError(msg)
        extended = replace(md, fields=(*md.fields, extension))
        messages = {**self._messages, message_name: extended}
        extensions = {name: set(v) for name, v in self._extensions.items()}
        extensions.setdefault(message_name, set()).add(extension.name)
        return SchemaRegistry(messages.values(), self._enums.values(), extensions=extensions)
