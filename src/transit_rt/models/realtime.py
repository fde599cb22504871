"""Immutable typed view of decoded GTFS-realtime feeds.

Each dataclass mirrors one message of the ``transit_realtime`` schema and
keeps the message's unrecognised fields (extensions included) in
``unknown_fields`` so a model can be re-encoded without losing them.
Enum classes are built from the schema's enum descriptors.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, ClassVar, Optional, Union

from transit_rt.codec.message import UnknownField
from transit_rt.schema import gtfs_realtime as schema


def _int_enum(name: str, descriptor_name: str) -> type[IntEnum]:
    values = schema.GTFS_REALTIME.enum(descriptor_name).values
    return IntEnum(name, dict(values), module=__name__)  # type: ignore[return-value]


Incrementality = _int_enum("Incrementality", schema.INCREMENTALITY)
StopTimeScheduleRelationship = _int_enum(
    "StopTimeScheduleRelationship", schema.STOP_TIME_SCHEDULE_RELATIONSHIP
)
TripScheduleRelationship = _int_enum("TripScheduleRelationship", schema.TRIP_SCHEDULE_RELATIONSHIP)
VehicleStopStatus = _int_enum("VehicleStopStatus", schema.VEHICLE_STOP_STATUS)
CongestionLevel = _int_enum("CongestionLevel", schema.CONGESTION_LEVEL)
Cause = _int_enum("Cause", schema.CAUSE)
Effect = _int_enum("Effect", schema.EFFECT)

# Enum classes by descriptor name, for the normalizer.
ENUM_TYPES: dict[str, type[IntEnum]] = {
    schema.INCREMENTALITY: Incrementality,
    schema.STOP_TIME_SCHEDULE_RELATIONSHIP: StopTimeScheduleRelationship,
    schema.TRIP_SCHEDULE_RELATIONSHIP: TripScheduleRelationship,
    schema.VEHICLE_STOP_STATUS: VehicleStopStatus,
    schema.CONGESTION_LEVEL: CongestionLevel,
    schema.CAUSE: Cause,
    schema.EFFECT: Effect,
}


def coerce_enum(enum_type: type[IntEnum], value: int) -> int:
    """Return the enum member for ``value``, or the bare int for unknown future values."""
    try:
        return enum_type(value)
    except ValueError:
        return int(value)


class EntityKind(str, Enum):
    TRIP_UPDATE = "trip_update"
    VEHICLE = "vehicle"
    ALERT = "alert"


class FeedNode:
    """Hooks mapping between dataclass attributes and schema field values."""

    __message__: ClassVar[str]

    @classmethod
    def from_fields(cls, values: dict[str, Any], unknown_fields: tuple[UnknownField, ...]) -> Any:
        return cls(**values, unknown_fields=unknown_fields)

    def to_fields(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in dataclasses.fields(self)  # type: ignore[arg-type]
            if f.name != "unknown_fields"
        }


# ---------------------------------------------------------------------------
# Low-level structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimeRange(FeedNode):
    """Interval that is active at ``t`` iff ``start <= t < end``; missing bounds are open."""

    __message__: ClassVar[str] = schema.TIME_RANGE

    start: Optional[int] = None
    end: Optional[int] = None
    unknown_fields: tuple[UnknownField, ...] = ()

    def is_active(self, t: int) -> bool:
        if self.start is not None and t < self.start:
            return False
        return self.end is None or t < self.end


@dataclass(frozen=True)
class Position(FeedNode):
    __message__: ClassVar[str] = schema.POSITION

    latitude: float
    longitude: float
    bearing: Optional[float] = None
    odometer: Optional[float] = None
    speed: Optional[float] = None
    unknown_fields: tuple[UnknownField, ...] = ()


@dataclass(frozen=True)
class TripDescriptor(FeedNode):
    """Identifies one trip instance (``trip_id``) or all trips of a route (``route_id``)."""

    __message__: ClassVar[str] = schema.TRIP_DESCRIPTOR

    trip_id: Optional[str] = None
    route_id: Optional[str] = None
    start_time: Optional[str] = None
    start_date: Optional[str] = None
    schedule_relationship: Optional[int] = None
    unknown_fields: tuple[UnknownField, ...] = ()

    @property
    def identifies_single_trip(self) -> bool:
        return bool(self.trip_id)

    @property
    def is_canceled(self) -> bool:
        return self.schedule_relationship == TripScheduleRelationship.CANCELED


@dataclass(frozen=True)
class VehicleDescriptor(FeedNode):
    __message__: ClassVar[str] = schema.VEHICLE_DESCRIPTOR

    id: Optional[str] = None
    label: Optional[str] = None
    license_plate: Optional[str] = None
    unknown_fields: tuple[UnknownField, ...] = ()


@dataclass(frozen=True)
class EntitySelector(FeedNode):
    """Selects GTFS entities; every specifier that is set must match."""

    __message__: ClassVar[str] = schema.ENTITY_SELECTOR

    agency_id: Optional[str] = None
    route_id: Optional[str] = None
    route_type: Optional[int] = None
    trip: Optional[TripDescriptor] = None
    stop_id: Optional[str] = None
    unknown_fields: tuple[UnknownField, ...] = ()

    @property
    def is_empty(self) -> bool:
        return (
            self.agency_id is None
            and self.route_id is None
            and self.route_type is None
            and self.trip is None
            and self.stop_id is None
        )

    def matches(
        self,
        *,
        agency_id: str | None = None,
        route_id: str | None = None,
        route_type: int | None = None,
        trip_id: str | None = None,
        stop_id: str | None = None,
    ) -> bool:
        if self.is_empty:
            return False
        if self.agency_id is not None and self.agency_id != agency_id:
            return False
        if self.route_id is not None and self.route_id != route_id:
            return False
        if self.route_type is not None and self.route_type != route_type:
            return False
        if self.stop_id is not None and self.stop_id != stop_id:
            return False
        if self.trip is not None:
            if self.trip.trip_id is not None and self.trip.trip_id != trip_id:
                return False
            if self.trip.route_id is not None and self.trip.route_id != route_id:
                return False
        return True


@dataclass(frozen=True)
class Translation(FeedNode):
    __message__: ClassVar[str] = schema.TRANSLATION

    text: str
    language: Optional[str] = None
    unknown_fields: tuple[UnknownField, ...] = ()


@dataclass(frozen=True)
class TranslatedString(FeedNode):
    __message__: ClassVar[str] = schema.TRANSLATED_STRING

    translation: tuple[Translation, ...] = ()
    unknown_fields: tuple[UnknownField, ...] = ()

    @classmethod
    def of(cls, *pairs: tuple[str, str | None]) -> TranslatedString:
        """Build from ``(text, language)`` pairs."""
        return cls(tuple(Translation(text, language) for text, language in pairs))


# ---------------------------------------------------------------------------
# Trip updates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StopTimeEvent(FeedNode):
    """Predicted timing of one arrival or departure.

    ``time`` takes precedence over ``delay`` when both are set. A missing
    ``uncertainty`` means unknown.
    """

    __message__: ClassVar[str] = schema.STOP_TIME_EVENT

    delay: Optional[int] = None
    time: Optional[int] = None
    uncertainty: Optional[int] = None
    unknown_fields: tuple[UnknownField, ...] = ()

    @property
    def has_prediction(self) -> bool:
        return self.delay is not None or self.time is not None


@dataclass(frozen=True)
class StopRef:
    """Stop identified by sequence number, stop id, or both."""

    stop_sequence: Optional[int] = None
    stop_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.stop_sequence is None and not self.stop_id:
            msg = "A stop reference needs a stop_sequence or a stop_id"
            raise ValueError(msg)


@dataclass(frozen=True)
class StopTimeUpdate(FeedNode):
    __message__: ClassVar[str] = schema.STOP_TIME_UPDATE

    stop: StopRef
    arrival: Optional[StopTimeEvent] = None
    departure: Optional[StopTimeEvent] = None
    schedule_relationship: int = StopTimeScheduleRelationship.SCHEDULED
    unknown_fields: tuple[UnknownField, ...] = ()

    @property
    def stop_sequence(self) -> int | None:
        return self.stop.stop_sequence

    @property
    def stop_id(self) -> str | None:
        return self.stop.stop_id

    @classmethod
    def from_fields(
        cls, values: dict[str, Any], unknown_fields: tuple[UnknownField, ...]
    ) -> StopTimeUpdate:
        stop = StopRef(values.pop("stop_sequence"), values.pop("stop_id"))
        return cls(stop=stop, **values, unknown_fields=unknown_fields)

    def to_fields(self) -> dict[str, Any]:
        return {
            "stop_sequence": self.stop.stop_sequence,
            "stop_id": self.stop.stop_id,
            "arrival": self.arrival,
            "departure": self.departure,
            "schedule_relationship": self.schedule_relationship,
        }


@dataclass(frozen=True)
class TripUpdate(FeedNode):
    __message__: ClassVar[str] = schema.TRIP_UPDATE

    trip: TripDescriptor
    stop_time_update: tuple[StopTimeUpdate, ...] = ()
    vehicle: Optional[VehicleDescriptor] = None
    timestamp: Optional[int] = None
    unknown_fields: tuple[UnknownField, ...] = ()


# ---------------------------------------------------------------------------
# Vehicle positions and alerts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VehiclePosition(FeedNode):
    """Position of a vehicle; ``current_status`` reads IN_TRANSIT_TO when absent."""

    __message__: ClassVar[str] = schema.VEHICLE_POSITION

    trip: Optional[TripDescriptor] = None
    vehicle: Optional[VehicleDescriptor] = None
    position: Optional[Position] = None
    current_stop_sequence: Optional[int] = None
    stop_id: Optional[str] = None
    current_status: int = VehicleStopStatus.IN_TRANSIT_TO
    timestamp: Optional[int] = None
    congestion_level: Optional[int] = None
    unknown_fields: tuple[UnknownField, ...] = ()


@dataclass(frozen=True)
class Alert(FeedNode):
    __message__: ClassVar[str] = schema.ALERT

    active_period: tuple[TimeRange, ...] = ()
    informed_entity: tuple[EntitySelector, ...] = ()
    cause: int = Cause.UNKNOWN_CAUSE
    effect: int = Effect.UNKNOWN_EFFECT
    url: Optional[TranslatedString] = None
    header_text: Optional[TranslatedString] = None
    description_text: Optional[TranslatedString] = None
    unknown_fields: tuple[UnknownField, ...] = ()

    def is_active(self, t: int) -> bool:
        """Alerts without active periods are active for as long as they are in the feed."""
        if not self.active_period:
            return True
        return any(period.is_active(t) for period in self.active_period)

    def affects(self, **candidate: Any) -> bool:
        return any(selector.matches(**candidate) for selector in self.informed_entity)


# ---------------------------------------------------------------------------
# Feed envelope
# ---------------------------------------------------------------------------

EntityPayload = Union[TripUpdate, VehiclePosition, Alert]

_PAYLOAD_FIELDS: dict[EntityKind, type] = {
    EntityKind.TRIP_UPDATE: TripUpdate,
    EntityKind.VEHICLE: VehiclePosition,
    EntityKind.ALERT: Alert,
}


@dataclass(frozen=True)
class FeedEntity(FeedNode):
    """One addressable entity; ``payload`` holds at most one of the three variants."""

    __message__: ClassVar[str] = schema.FEED_ENTITY

    id: str
    is_deleted: bool = False
    payload: Optional[EntityPayload] = None
    unknown_fields: tuple[UnknownField, ...] = ()

    @property
    def kind(self) -> EntityKind | None:
        for kind, payload_type in _PAYLOAD_FIELDS.items():
            if isinstance(self.payload, payload_type):
                return kind
        return None

    @property
    def trip_update(self) -> TripUpdate | None:
        return self.payload if isinstance(self.payload, TripUpdate) else None

    @property
    def vehicle(self) -> VehiclePosition | None:
        return self.payload if isinstance(self.payload, VehiclePosition) else None

    @property
    def alert(self) -> Alert | None:
        return self.payload if isinstance(self.payload, Alert) else None

    @classmethod
    def from_fields(
        cls, values: dict[str, Any], unknown_fields: tuple[UnknownField, ...]
    ) -> FeedEntity:
        present = [values.pop(kind.value) for kind in EntityKind]
        payloads = [p for p in present if p is not None]
        if len(payloads) > 1:
            msg = "FeedEntity carries more than one payload"
            raise ValueError(msg)
        payload = payloads[0] if payloads else None
        return cls(**values, payload=payload, unknown_fields=unknown_fields)

    def to_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"id": self.id, "is_deleted": self.is_deleted}
        for kind in EntityKind:
            fields[kind.value] = self.payload if self.kind is kind else None
        return fields


@dataclass(frozen=True)
class FeedHeader(FeedNode):
    __message__: ClassVar[str] = schema.FEED_HEADER

    gtfs_realtime_version: str
    incrementality: int = Incrementality.FULL_DATASET
    timestamp: Optional[int] = None
    unknown_fields: tuple[UnknownField, ...] = ()

    @property
    def is_differential(self) -> bool:
        return self.incrementality == Incrementality.DIFFERENTIAL


@dataclass(frozen=True)
class FeedMessage(FeedNode):
    __message__: ClassVar[str] = schema.FEED_MESSAGE

    header: FeedHeader
    entity: tuple[FeedEntity, ...] = ()
    unknown_fields: tuple[UnknownField, ...] = ()


MODEL_TYPES: dict[str, type[FeedNode]] = {
    cls.__message__: cls
    for cls in (
        FeedMessage,
        FeedHeader,
        FeedEntity,
        TripUpdate,
        StopTimeEvent,
        StopTimeUpdate,
        VehiclePosition,
        Alert,
        TimeRange,
        Position,
        TripDescriptor,
        VehicleDescriptor,
        EntitySelector,
        TranslatedString,
        Translation,
    )
}
