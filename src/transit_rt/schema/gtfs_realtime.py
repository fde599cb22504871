"""GTFS-realtime descriptor set (package ``transit_realtime``).

Field numbers are stable and never reused. Numbers 1000-1999 on every
extensible message are reserved for third-party extensions.
"""

from __future__ import annotations

from transit_rt.schema.descriptors import (
    Cardinality,
    EnumDescriptor,
    FieldDescriptor,
    FieldType,
    MessageDescriptor,
    SchemaRegistry,
)

PACKAGE = "transit_realtime"
EXTENSION_RANGE = (1000, 1999)

REQUIRED = Cardinality.REQUIRED
REPEATED = Cardinality.REPEATED


def _name(short: str) -> str:
    return f"{PACKAGE}.{short}"


def _msg(name: str, type_name: str, number: int, **kwargs: object) -> FieldDescriptor:
    return FieldDescriptor(number, name, FieldType.MESSAGE, type_name=_name(type_name), **kwargs)


def _enum(name: str, type_name: str, number: int, **kwargs: object) -> FieldDescriptor:
    return FieldDescriptor(number, name, FieldType.ENUM, type_name=_name(type_name), **kwargs)


FEED_MESSAGE = _name("FeedMessage")
FEED_HEADER = _name("FeedHeader")
FEED_ENTITY = _name("FeedEntity")
TRIP_UPDATE = _name("TripUpdate")
STOP_TIME_EVENT = _name("TripUpdate.StopTimeEvent")
STOP_TIME_UPDATE = _name("TripUpdate.StopTimeUpdate")
VEHICLE_POSITION = _name("VehiclePosition")
ALERT = _name("Alert")
TIME_RANGE = _name("TimeRange")
POSITION = _name("Position")
TRIP_DESCRIPTOR = _name("TripDescriptor")
VEHICLE_DESCRIPTOR = _name("VehicleDescriptor")
ENTITY_SELECTOR = _name("EntitySelector")
TRANSLATED_STRING = _name("TranslatedString")
TRANSLATION = _name("TranslatedString.Translation")

INCREMENTALITY = _name("FeedHeader.Incrementality")
STOP_TIME_SCHEDULE_RELATIONSHIP = _name("TripUpdate.StopTimeUpdate.ScheduleRelationship")
VEHICLE_STOP_STATUS = _name("VehiclePosition.VehicleStopStatus")
CONGESTION_LEVEL = _name("VehiclePosition.CongestionLevel")
CAUSE = _name("Alert.Cause")
EFFECT = _name("Alert.Effect")
TRIP_SCHEDULE_RELATIONSHIP = _name("TripDescriptor.ScheduleRelationship")

ENUMS = (
    EnumDescriptor(INCREMENTALITY, {"FULL_DATASET": 0, "DIFFERENTIAL": 1}, default=0),
    EnumDescriptor(
        STOP_TIME_SCHEDULE_RELATIONSHIP,
        {"SCHEDULED": 0, "SKIPPED": 1, "NO_DATA": 2},
        default=0,
    ),
    EnumDescriptor(
        VEHICLE_STOP_STATUS,
        {"INCOMING_AT": 0, "STOPPED_AT": 1, "IN_TRANSIT_TO": 2},
        default=2,
    ),
    EnumDescriptor(
        CONGESTION_LEVEL,
        {
            "UNKNOWN_CONGESTION_LEVEL": 0,
            "RUNNING_SMOOTHLY": 1,
            "STOP_AND_GO": 2,
            "CONGESTION": 3,
            "SEVERE_CONGESTION": 4,
        },
    ),
    EnumDescriptor(
        CAUSE,
        {
            "UNKNOWN_CAUSE": 1,
            "OTHER_CAUSE": 2,
            "TECHNICAL_PROBLEM": 3,
            "STRIKE": 4,
            "DEMONSTRATION": 5,
            "ACCIDENT": 6,
            "HOLIDAY": 7,
            "WEATHER": 8,
            "MAINTENANCE": 9,
            "CONSTRUCTION": 10,
            "POLICE_ACTIVITY": 11,
            "MEDICAL_EMERGENCY": 12,
        },
        default=1,
    ),
    EnumDescriptor(
        EFFECT,
        {
            "NO_SERVICE": 1,
            "REDUCED_SERVICE": 2,
            "SIGNIFICANT_DELAYS": 3,
            "DETOUR": 4,
            "ADDITIONAL_SERVICE": 5,
            "MODIFIED_SERVICE": 6,
            "OTHER_EFFECT": 7,
            "UNKNOWN_EFFECT": 8,
            "STOP_MOVED": 9,
        },
        default=8,
    ),
    EnumDescriptor(
        TRIP_SCHEDULE_RELATIONSHIP,
        {"SCHEDULED": 0, "ADDED": 1, "UNSCHEDULED": 2, "CANCELED": 3},
    ),
)

MESSAGES = (
    MessageDescriptor(
        FEED_MESSAGE,
        (
            _msg("header", "FeedHeader", 1, cardinality=REQUIRED),
            _msg("entity", "FeedEntity", 2, cardinality=REPEATED),
        ),
    ),
    MessageDescriptor(
        FEED_HEADER,
        (
            FieldDescriptor(1, "gtfs_realtime_version", FieldType.STRING, REQUIRED),
            _enum("incrementality", "FeedHeader.Incrementality", 2, default=0),
            FieldDescriptor(3, "timestamp", FieldType.UINT64),
        ),
        extension_ranges=(EXTENSION_RANGE,),
    ),
    MessageDescriptor(
        FEED_ENTITY,
        (
            FieldDescriptor(1, "id", FieldType.STRING, REQUIRED),
            FieldDescriptor(2, "is_deleted", FieldType.BOOL, default=False),
            _msg("trip_update", "TripUpdate", 3),
            _msg("vehicle", "VehiclePosition", 4),
            _msg("alert", "Alert", 5),
        ),
        exclusive_groups=(("trip_update", "vehicle", "alert"),),
    ),
    MessageDescriptor(
        TRIP_UPDATE,
        (
            _msg("trip", "TripDescriptor", 1, cardinality=REQUIRED),
            _msg("stop_time_update", "TripUpdate.StopTimeUpdate", 2, cardinality=REPEATED),
            _msg("vehicle", "VehicleDescriptor", 3),
            FieldDescriptor(4, "timestamp", FieldType.UINT64),
        ),
        extension_ranges=(EXTENSION_RANGE,),
    ),
    MessageDescriptor(
        STOP_TIME_EVENT,
        (
            FieldDescriptor(1, "delay", FieldType.INT32),
            FieldDescriptor(2, "time", FieldType.INT64),
            FieldDescriptor(3, "uncertainty", FieldType.INT32),
        ),
        extension_ranges=(EXTENSION_RANGE,),
    ),
    MessageDescriptor(
        STOP_TIME_UPDATE,
        (
            FieldDescriptor(1, "stop_sequence", FieldType.UINT32),
            _msg("arrival", "TripUpdate.StopTimeEvent", 2),
            _msg("departure", "TripUpdate.StopTimeEvent", 3),
            FieldDescriptor(4, "stop_id", FieldType.STRING),
            _enum(
                "schedule_relationship",
                "TripUpdate.StopTimeUpdate.ScheduleRelationship",
                5,
                default=0,
            ),
        ),
        extension_ranges=(EXTENSION_RANGE,),
    ),
    MessageDescriptor(
        VEHICLE_POSITION,
        (
            _msg("trip", "TripDescriptor", 1),
            _msg("position", "Position", 2),
            FieldDescriptor(3, "current_stop_sequence", FieldType.UINT32),
            _enum("current_status", "VehiclePosition.VehicleStopStatus", 4, default=2),
            FieldDescriptor(5, "timestamp", FieldType.UINT64),
            _enum("congestion_level", "VehiclePosition.CongestionLevel", 6),
            FieldDescriptor(7, "stop_id", FieldType.STRING),
            _msg("vehicle", "VehicleDescriptor", 8),
        ),
        extension_ranges=(EXTENSION_RANGE,),
    ),
    MessageDescriptor(
        ALERT,
        (
            _msg("active_period", "TimeRange", 1, cardinality=REPEATED),
            _msg("informed_entity", "EntitySelector", 5, cardinality=REPEATED),
            _enum("cause", "Alert.Cause", 6, default=1),
            _enum("effect", "Alert.Effect", 7, default=8),
            _msg("url", "TranslatedString", 8),
            _msg("header_text", "TranslatedString", 10),
            _msg("description_text", "TranslatedString", 11),
        ),
        extension_ranges=(EXTENSION_RANGE,),
    ),
    MessageDescriptor(
        TIME_RANGE,
        (
            FieldDescriptor(1, "start", FieldType.UINT64),
            FieldDescriptor(2, "end", FieldType.UINT64),
        ),
    ),
    MessageDescriptor(
        POSITION,
        (
            FieldDescriptor(1, "latitude", FieldType.FLOAT, REQUIRED),
            FieldDescriptor(2, "longitude", FieldType.FLOAT, REQUIRED),
            FieldDescriptor(3, "bearing", FieldType.FLOAT),
            FieldDescriptor(4, "odometer", FieldType.DOUBLE),
            FieldDescriptor(5, "speed", FieldType.FLOAT),
        ),
        extension_ranges=(EXTENSION_RANGE,),
    ),
    MessageDescriptor(
        TRIP_DESCRIPTOR,
        (
            FieldDescriptor(1, "trip_id", FieldType.STRING),
            FieldDescriptor(2, "start_time", FieldType.STRING),
            FieldDescriptor(3, "start_date", FieldType.STRING),
            _enum("schedule_relationship", "TripDescriptor.ScheduleRelationship", 4),
            FieldDescriptor(5, "route_id", FieldType.STRING),
        ),
        extension_ranges=(EXTENSION_RANGE,),
    ),
    MessageDescriptor(
        VEHICLE_DESCRIPTOR,
        (
            FieldDescriptor(1, "id", FieldType.STRING),
            FieldDescriptor(2, "label", FieldType.STRING),
            FieldDescriptor(3, "license_plate", FieldType.STRING),
        ),
        extension_ranges=(EXTENSION_RANGE,),
    ),
    MessageDescriptor(
        ENTITY_SELECTOR,
        (
            FieldDescriptor(1, "agency_id", FieldType.STRING),
            FieldDescriptor(2, "route_id", FieldType.STRING),
            FieldDescriptor(3, "route_type", FieldType.INT32),
            _msg("trip", "TripDescriptor", 4),
            FieldDescriptor(5, "stop_id", FieldType.STRING),
        ),
        extension_ranges=(EXTENSION_RANGE,),
    ),
    MessageDescriptor(
        TRANSLATED_STRING,
        (_msg("translation", "TranslatedString.Translation", 1, cardinality=REPEATED),),
    ),
    MessageDescriptor(
        TRANSLATION,
        (
            FieldDescriptor(1, "text", FieldType.STRING, REQUIRED),
            FieldDescriptor(2, "language", FieldType.STRING),
        ),
    ),
)

GTFS_REALTIME = SchemaRegistry(MESSAGES, ENUMS)
