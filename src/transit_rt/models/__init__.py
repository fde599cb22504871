"""Typed feed models."""

from transit_rt.models.realtime import (
    Alert,
    Cause,
    CongestionLevel,
    Effect,
    EntityKind,
    EntitySelector,
    FeedEntity,
    FeedHeader,
    FeedMessage,
    Incrementality,
    Position,
    StopRef,
    StopTimeEvent,
    StopTimeScheduleRelationship,
    StopTimeUpdate,
    TimeRange,
    TranslatedString,
    Translation,
    TripDescriptor,
    TripScheduleRelationship,
    TripUpdate,
    VehicleDescriptor,
    VehiclePosition,
    VehicleStopStatus,
)

__all__ = [
    "Alert",
    "Cause",
    "CongestionLevel",
    "Effect",
    "EntityKind",
    "EntitySelector",
    "FeedEntity",
    "FeedHeader",
    "FeedMessage",
    "Incrementality",
    "Position",
    "StopRef",
    "StopTimeEvent",
    "StopTimeScheduleRelationship",
    "StopTimeUpdate",
    "TimeRange",
    "TranslatedString",
    "Translation",
    "TripDescriptor",
    "TripScheduleRelationship",
    "TripUpdate",
    "VehicleDescriptor",
    "VehiclePosition",
    "VehicleStopStatus",
]
