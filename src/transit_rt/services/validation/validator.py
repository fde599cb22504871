"""Structural validation of decoded feed messages.

Violations are either Fatal (the entity, or the whole message when raised
outside any entity, cannot be interpreted) or Advisory (questionable but
processable). Enum values outside the declared enumerants are accepted as
unknown future values and only reported as advisories.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from transit_rt.codec.message import Message
from transit_rt.errors import SchemaViolation
from transit_rt.logging import get_logger
from transit_rt.schema import gtfs_realtime as schema
from transit_rt.schema.descriptors import SchemaRegistry
from transit_rt.services.translation.resolver import untagged_count

logger = get_logger(__name__)

PAYLOAD_FIELDS = ("trip_update", "vehicle", "alert")

_SCHEDULED = 0
_NO_DATA = 2


class Severity(str, Enum):
    FATAL = "fatal"
    ADVISORY = "advisory"


@dataclass(frozen=True)
class Violation:
    """One broken rule, attributed to an entity when it occurs inside one."""

    severity: Severity
    code: str
    message: str
    entity_id: str | None = None
    entity_index: int | None = None
    path: str = ""

    @property
    def is_fatal(self) -> bool:
        return self.severity is Severity.FATAL

    @property
    def is_message_level(self) -> bool:
        return self.entity_index is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "entity_id": self.entity_id,
            "path": self.path,
        }


@dataclass
class ValidationReport:
    """All violations found in one feed message."""

    violations: list[Violation] = field(default_factory=list)

    @property
    def fatal(self) -> list[Violation]:
        return [v for v in self.violations if v.is_fatal]

    @property
    def advisory(self) -> list[Violation]:
        return [v for v in self.violations if not v.is_fatal]

    @property
    def is_valid(self) -> bool:
        return not self.fatal

    @property
    def message_fatal(self) -> list[Violation]:
        return [v for v in self.fatal if v.is_message_level]

    def rejected_indices(self) -> set[int]:
        return {v.entity_index for v in self.fatal if v.entity_index is not None}

    def for_entity(self, entity_id: str) -> list[Violation]:
        return [v for v in self.violations if v.entity_id == entity_id]

    def raise_for_message(self) -> None:
        """Raise the first message-level Fatal violation, if any."""
        if self.message_fatal:
            raise SchemaViolation(self.message_fatal[0])


@dataclass
class _Context:
    report: ValidationReport
    entity_id: str | None = None
    entity_index: int | None = None

    def add(self, severity: Severity, path: str, code: str, message: str) -> None:
        self.report.violations.append(
            Violation(severity, code, message, self.entity_id, self.entity_index, path)
        )

    def fatal(self, path: str, code: str, message: str) -> None:
        self.add(Severity.FATAL, path, code, message)

    def advisory(self, path: str, code: str, message: str) -> None:
        self.add(Severity.ADVISORY, path, code, message)


Check = Callable[[Message, str, _Context], None]


class FeedValidator:
    """Validates a decoded ``FeedMessage`` tree against its descriptors."""

    def __init__(self, registry: SchemaRegistry = schema.GTFS_REALTIME) -> None:
        self._registry = registry
        self._checks: dict[str, Check] = {
            schema.TRIP_UPDATE: _check_trip_update,
            schema.STOP_TIME_UPDATE: _check_stop_time_update,
            schema.STOP_TIME_EVENT: _check_stop_time_event,
            schema.TRIP_DESCRIPTOR: _check_trip_descriptor,
            schema.VEHICLE_POSITION: _check_vehicle_position,
            schema.POSITION: _check_position,
            schema.ALERT: _check_alert,
            schema.ENTITY_SELECTOR: _check_entity_selector,
            schema.TIME_RANGE: _check_time_range,
            schema.TRANSLATED_STRING: _check_translated_string,
        }

    def validate(self, message: Message) -> ValidationReport:
        report = ValidationReport()
        ctx = _Context(report)

        header = message.fields.get("header")
        if header is None:
            ctx.fatal("header", "missing_header", "FeedMessage has no header")
        else:
            if not header.get("gtfs_realtime_version"):
                ctx.fatal(
                    "header.gtfs_realtime_version",
                    "missing_version",
                    "Feed header has an empty protocol version",
                )
            self._walk(header, "header", ctx)

        self._check_unknown_fields(message, "", ctx)

        seen: dict[str, int] = {}
        for index, entity in enumerate(message.get("entity")):
            self._validate_entity(entity, index, seen, report)

        if report.violations:
            logger.debug(
                "Feed validation finished",
                fatal=len(report.fatal),
                advisory=len(report.advisory),
            )
        return report

    def _validate_entity(
        self, entity: Message, index: int, seen: dict[str, int], report: ValidationReport
    ) -> None:
        entity_id = entity.get("id") or None
        ctx = _Context(report, entity_id, index)
        path = f"entity[{index}]"

        if entity_id is None:
            ctx.fatal(f"{path}.id", "missing_id", "Entity has no id")
        elif entity_id in seen:
            ctx.fatal(
                f"{path}.id",
                "duplicate_id",
                f"Entity id {entity_id!r} already used by entity[{seen[entity_id]}]",
            )
        else:
            seen[entity_id] = index

        payloads = [name for name in PAYLOAD_FIELDS if entity.has(name)]
        if entity.get("is_deleted"):
            if payloads:
                ctx.advisory(path, "deleted_with_payload", "Deleted entity carries a payload")
        elif not payloads:
            ctx.fatal(path, "missing_payload", "Entity has no trip_update, vehicle or alert")

        self._walk(entity, path, ctx)

    def _walk(self, message: Message, path: str, ctx: _Context) -> None:
        md = message.descriptor
        for fd in md.fields:
            if fd.is_required and not message.has(fd.name):
                ctx.fatal(
                    _join(path, fd.name),
                    "missing_required",
                    f"Required field {md.short_name}.{fd.name} is missing",
                )
            if fd.is_enum and message.has(fd.name):
                enum = self._registry.enum(fd.type_name or "")
                raw = message[fd.name]
                for value in raw if fd.is_repeated else (raw,):
                    if value not in enum:
                        ctx.advisory(
                            _join(path, fd.name),
                            "unknown_enum_value",
                            f"{value} is not a declared {enum.name.rsplit('.', 1)[-1]} value",
                        )

        for group in md.exclusive_groups:
            present = [name for name in group if message.has(name)]
            if len(present) > 1:
                ctx.fatal(
                    path,
                    "exclusive_fields",
                    f"Only one of {list(group)} may be set, found {present}",
                )

        self._check_unknown_fields(message, path, ctx)

        check = self._checks.get(md.name)
        if check is not None:
            check(message, path, ctx)

        for name, child in message.messages():
            self._walk(child, _join(path, name), ctx)

    @staticmethod
    def _check_unknown_fields(message: Message, path: str, ctx: _Context) -> None:
        md = message.descriptor
        for unknown in message.unknown_fields:
            if not md.in_extension_range(unknown.number):
                ctx.advisory(
                    path or md.short_name,
                    "unknown_field",
                    f"Field {unknown.number} is not part of {md.short_name}",
                )


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


# ---------------------------------------------------------------------------
# Per-message rules
# ---------------------------------------------------------------------------


def _check_trip_update(message: Message, path: str, ctx: _Context) -> None:
    trip = message.fields.get("trip")
    route_only = trip is not None and not trip.get("trip_id")

    previous: int | None = None
    for index, update in enumerate(message.get("stop_time_update")):
        update_path = f"{path}.stop_time_update[{index}]"
        if route_only and not update.get("stop_id"):
            ctx.advisory(
                update_path,
                "route_only_requires_stop_id",
                "Trip is identified by route only; stop updates need a stop_id",
            )
        if not update.has("stop_sequence"):
            continue
        sequence = update["stop_sequence"]
        if previous is not None and sequence < previous:
            ctx.fatal(
                update_path,
                "stop_sequence_order",
                f"stop_sequence {sequence} follows {previous}",
            )
        elif previous is not None and sequence == previous:
            ctx.advisory(
                update_path,
                "duplicate_stop_sequence",
                f"stop_sequence {sequence} appears twice",
            )
        previous = sequence if previous is None else max(previous, sequence)


def _check_stop_time_update(message: Message, path: str, ctx: _Context) -> None:
    if not message.has("stop_sequence") and not message.get("stop_id"):
        ctx.fatal(
            path,
            "missing_stop_reference",
            "Stop time update has no stop_sequence or stop_id",
        )

    relationship = message.get("schedule_relationship")
    has_event = message.has("arrival") or message.has("departure")
    if relationship == _SCHEDULED and not has_event:
        ctx.advisory(
            path,
            "missing_stop_time_event",
            "SCHEDULED update has no arrival or departure",
        )
    elif relationship == _NO_DATA and has_event:
        ctx.advisory(path, "no_data_with_event", "NO_DATA update carries arrival or departure")


def _check_stop_time_event(message: Message, path: str, ctx: _Context) -> None:
    if not message.has("uncertainty"):
        return
    if message["uncertainty"] < 0:
        ctx.advisory(path, "negative_uncertainty", "Uncertainty must not be negative")
    if not message.has("delay") and not message.has("time"):
        ctx.advisory(
            path,
            "uncertainty_without_prediction",
            "Uncertainty is ignored without delay or time",
        )


def _check_trip_descriptor(message: Message, path: str, ctx: _Context) -> None:
    if not message.get("trip_id") and not message.get("route_id"):
        ctx.advisory(path, "unidentified_trip", "Trip descriptor has neither trip_id nor route_id")


def _check_vehicle_position(message: Message, path: str, ctx: _Context) -> None:
    if message.has("current_status") and not (
        message.has("current_stop_sequence") or message.get("stop_id")
    ):
        ctx.advisory(
            path,
            "status_without_stop",
            "current_status is ignored without a current stop",
        )


def _check_position(message: Message, path: str, ctx: _Context) -> None:
    latitude = message.get("latitude")
    longitude = message.get("longitude")
    if latitude is not None and not -90.0 <= latitude <= 90.0:
        ctx.advisory(path, "latitude_range", f"Latitude {latitude} outside [-90, 90]")
    if longitude is not None and not -180.0 <= longitude <= 180.0:
        ctx.advisory(path, "longitude_range", f"Longitude {longitude} outside [-180, 180]")
    if message.has("bearing") and not 0.0 <= message["bearing"] < 360.0:
        ctx.advisory(path, "bearing_range", f"Bearing {message['bearing']} outside [0, 360)")
    if message.has("speed") and not message["speed"] >= 0.0:
        ctx.advisory(path, "negative_speed", f"Speed {message['speed']} is negative")


def _check_alert(message: Message, path: str, ctx: _Context) -> None:
    if not message.get("informed_entity"):
        ctx.advisory(path, "no_informed_entity", "Alert informs no entity")


def _check_entity_selector(message: Message, path: str, ctx: _Context) -> None:
    if not message.fields:
        ctx.advisory(path, "empty_selector", "Entity selector has no specifier")


def _check_time_range(message: Message, path: str, ctx: _Context) -> None:
    start, end = message.get("start"), message.get("end")
    if start is not None and end is not None and start > end:
        ctx.advisory(
            path,
            "inverted_time_range",
            f"Time range starts ({start}) after it ends ({end})",
        )


def _check_translated_string(message: Message, path: str, ctx: _Context) -> None:
    translations = message.get("translation")
    if not translations:
        ctx.advisory(path, "no_translation", "Translated string has no translation")
        return
    untagged = untagged_count(t.get("language") for t in translations)
    if untagged > 1:
        ctx.advisory(
            path,
            "multiple_untagged_translations",
            f"{untagged} translations have no language; the first one is used",
        )
