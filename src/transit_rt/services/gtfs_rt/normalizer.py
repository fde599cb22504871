"""GTFS-RT normalizer: decoded message trees to typed models and back."""

from __future__ import annotations

from typing import Any

from transit_rt.codec.codec import WIRE_TYPES, encode_field
from transit_rt.codec.message import Message, UnknownField
from transit_rt.errors import SchemaViolation
from transit_rt.logging import get_logger
from transit_rt.models.realtime import (
    ENUM_TYPES,
    MODEL_TYPES,
    EntityKind,
    FeedEntity,
    FeedNode,
    coerce_enum,
)
from transit_rt.schema.descriptors import FieldDescriptor, SchemaRegistry
from transit_rt.schema.gtfs_realtime import GTFS_REALTIME
from transit_rt.services.validation.validator import Severity, Violation

logger = get_logger(__name__)


def _convert_scalar(fd: FieldDescriptor, value: Any) -> Any:
    if fd.is_enum and value is not None:
        enum_type = ENUM_TYPES.get(fd.type_name or "")
        return coerce_enum(enum_type, value) if enum_type else value
    return value


class GtfsRtNormalizer:
    """Converts between ``Message`` trees and the typed realtime models."""

    @staticmethod
    def to_model(message: Message, *, entity_id: str | None = None, path: str = "") -> Any:
        """Build the typed model for ``message``.

        Consumer-registered extension fields are folded back into
        ``unknown_fields`` so they survive a later ``to_message``.

        Raises:
            SchemaViolation: If a required field is missing or the values
                cannot form a valid model.
        """
        md = message.descriptor
        model_type = MODEL_TYPES.get(md.name)
        if model_type is None:
            msg = f"No model type registered for {md.name}"
            raise TypeError(msg)

        path = path or md.short_name
        if md.name == FeedEntity.__message__ and message.get("id"):
            entity_id = message["id"]

        values: dict[str, Any] = {}
        extensions: list[UnknownField] = []
        for fd in md.fields:
            if md.in_extension_range(fd.number):
                if message.has(fd.name):
                    extensions.extend(_as_unknown(fd, message[fd.name]))
                continue

            child_path = f"{path}.{fd.name}"
            if fd.is_repeated:
                values[fd.name] = tuple(
                    GtfsRtNormalizer._child(fd, item, entity_id, f"{child_path}[{i}]")
                    for i, item in enumerate(message.get(fd.name))
                )
            elif message.has(fd.name):
                values[fd.name] = GtfsRtNormalizer._child(
                    fd, message[fd.name], entity_id, child_path
                )
            elif fd.is_required:
                raise _violation(
                    f"Required field {md.short_name}.{fd.name} is missing",
                    "missing_required",
                    entity_id,
                    child_path,
                )
            else:
                values[fd.name] = _convert_scalar(fd, fd.default)

        try:
            return model_type.from_fields(values, message.unknown_fields + tuple(extensions))
        except (TypeError, ValueError) as exc:
            raise _violation(str(exc), "unconvertible", entity_id, path) from exc

    @staticmethod
    def _child(fd: FieldDescriptor, value: Any, entity_id: str | None, path: str) -> Any:
        if fd.is_message:
            return GtfsRtNormalizer.to_model(value, entity_id=entity_id, path=path)
        return _convert_scalar(fd, value)

    @staticmethod
    def to_message(model: FeedNode, registry: SchemaRegistry = GTFS_REALTIME) -> Message:
        """Build the ``Message`` tree for ``model``, omitting declared defaults."""
        md = registry.message(model.__message__)
        values: dict[str, Any] = {}
        for name, value in model.to_fields().items():
            fd = md.field_by_name(name)
            if fd is None:
                msg = f"{md.name} has no field {name!r}"
                raise TypeError(msg)
            if value is None:
                continue
            if fd.is_repeated:
                if value:
                    values[name] = tuple(
                        GtfsRtNormalizer._field_value(fd, item, registry) for item in value
                    )
                continue
            if not fd.is_message and fd.default is not None and value == fd.default:
                continue
            values[name] = GtfsRtNormalizer._field_value(fd, value, registry)
        return Message(md, values, tuple(model.unknown_fields))  # type: ignore[attr-defined]

    @staticmethod
    def _field_value(fd: FieldDescriptor, value: Any, registry: SchemaRegistry) -> Any:
        if fd.is_message:
            return GtfsRtNormalizer.to_message(value, registry)
        if fd.is_enum:
            return int(value)
        return value

    @staticmethod
    def entity_row(entity: FeedEntity) -> dict[str, Any]:
        """Flatten an entity into a summary dict for listings."""
        row: dict[str, Any] = {
            "entity_id": entity.id,
            "kind": entity.kind.value if entity.kind else None,
            "trip_id": None,
            "route_id": None,
            "vehicle_id": None,
            "timestamp": None,
        }
        payload = entity.payload
        if entity.kind is EntityKind.TRIP_UPDATE:
            row["trip_id"] = payload.trip.trip_id
            row["route_id"] = payload.trip.route_id
            row["vehicle_id"] = payload.vehicle.id if payload.vehicle else None
            row["timestamp"] = payload.timestamp
            row["stop_time_update_count"] = len(payload.stop_time_update)
        elif entity.kind is EntityKind.VEHICLE:
            if payload.trip is not None:
                row["trip_id"] = payload.trip.trip_id
                row["route_id"] = payload.trip.route_id
            row["vehicle_id"] = payload.vehicle.id if payload.vehicle else None
            row["timestamp"] = payload.timestamp
            if payload.position is not None:
                row["latitude"] = payload.position.latitude
                row["longitude"] = payload.position.longitude
            row["current_status"] = _enum_name(payload.current_status)
        elif entity.kind is EntityKind.ALERT:
            row["cause"] = _enum_name(payload.cause)
            row["effect"] = _enum_name(payload.effect)
            row["informed_entity_count"] = len(payload.informed_entity)
        return row


def _enum_name(value: int) -> str:
    name = getattr(value, "name", None)
    return name if name else str(int(value))


def _as_unknown(fd: FieldDescriptor, value: Any) -> list[UnknownField]:
    wire_type = int(WIRE_TYPES[fd.type])
    items = value if fd.is_repeated else (value,)
    return [UnknownField(fd.number, wire_type, encode_field(fd, item)) for item in items]


def _violation(message: str, code: str, entity_id: str | None, path: str) -> SchemaViolation:
    logger.warning("Model conversion failed", entity_id=entity_id, path=path, code=code)
    return SchemaViolation(Violation(Severity.FATAL, code, message, entity_id, None, path))
