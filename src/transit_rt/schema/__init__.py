"""Schema model: descriptors and the GTFS-realtime descriptor set."""

from transit_rt.schema.descriptors import (
    Cardinality,
    EnumDescriptor,
    FieldDescriptor,
    FieldType,
    MessageDescriptor,
    SchemaError,
    SchemaRegistry,
)
from transit_rt.schema.gtfs_realtime import GTFS_REALTIME

__all__ = [
    "GTFS_REALTIME",
    "Cardinality",
    "EnumDescriptor",
    "FieldDescriptor",
    "FieldType",
    "MessageDescriptor",
    "SchemaError",
    "SchemaRegistry",
]
