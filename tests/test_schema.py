"""Tests for the schema descriptors and the GTFS-realtime descriptor set."""

import pytest

from transit_rt.schema import (
    GTFS_REALTIME,
    Cardinality,
    EnumDescriptor,
    FieldDescriptor,
    FieldType,
    MessageDescriptor,
    SchemaError,
    SchemaRegistry,
)
from transit_rt.schema import gtfs_realtime as schema


class TestGtfsRealtimeDescriptors:
    def test_field_numbers_follow_protocol(self) -> None:
        alert = GTFS_REALTIME.message(schema.ALERT)
        assert alert.field_by_name("header_text").number == 10
        assert alert.field_by_name("description_text").number == 11
        assert alert.field_by_number(5).name == "informed_entity"

        vp = GTFS_REALTIME.message(schema.VEHICLE_POSITION)
        assert vp.field_by_number(8).name == "vehicle"
        assert vp.field_by_name("stop_id").number == 7

    def test_required_fields(self) -> None:
        header = GTFS_REALTIME.message(schema.FEED_HEADER)
        assert header.field_by_name("gtfs_realtime_version").is_required
        assert GTFS_REALTIME.message(schema.TRIP_UPDATE).field_by_name("trip").is_required
        assert GTFS_REALTIME.message(schema.POSITION).field_by_name("latitude").is_required

    def test_declared_defaults(self) -> None:
        vp = GTFS_REALTIME.message(schema.VEHICLE_POSITION)
        assert vp.field_by_name("current_status").default == 2
        alert = GTFS_REALTIME.message(schema.ALERT)
        assert alert.field_by_name("cause").default == 1
        assert alert.field_by_name("effect").default == 8
        assert GTFS_REALTIME.enum(schema.INCREMENTALITY).default == 0

    def test_enums(self) -> None:
        status = GTFS_REALTIME.enum(schema.VEHICLE_STOP_STATUS)
        assert status.name_of(2) == "IN_TRANSIT_TO"
        assert 1 in status
        assert 7 not in status
        assert GTFS_REALTIME.enum(schema.CAUSE).values["MEDICAL_EMERGENCY"] == 12
        assert GTFS_REALTIME.enum(schema.CONGESTION_LEVEL).default == 0

    def test_extension_ranges(self) -> None:
        for name in (
            schema.FEED_HEADER,
            schema.TRIP_UPDATE,
            schema.STOP_TIME_EVENT,
            schema.STOP_TIME_UPDATE,
            schema.VEHICLE_POSITION,
            schema.ALERT,
            schema.POSITION,
            schema.TRIP_DESCRIPTOR,
            schema.VEHICLE_DESCRIPTOR,
            schema.ENTITY_SELECTOR,
        ):
            md = GTFS_REALTIME.message(name)
            assert md.in_extension_range(1000), name
            assert md.in_extension_range(1999), name
            assert not md.in_extension_range(2000), name
        assert not GTFS_REALTIME.message(schema.TIME_RANGE).in_extension_range(1000)

    def test_entity_payload_is_exclusive(self) -> None:
        entity = GTFS_REALTIME.message(schema.FEED_ENTITY)
        assert entity.exclusive_groups == (("trip_update", "vehicle", "alert"),)

    def test_short_name(self) -> None:
        assert GTFS_REALTIME.message(schema.STOP_TIME_EVENT).short_name == "StopTimeEvent"

    def test_unknown_names_raise(self) -> None:
        with pytest.raises(SchemaError):
            GTFS_REALTIME.message("transit_realtime.Nope")
        with pytest.raises(SchemaError):
            GTFS_REALTIME.enum("transit_realtime.Nope")


class TestDescriptorChecks:
    def test_duplicate_number(self) -> None:
        with pytest.raises(SchemaError, match="used twice"):
            MessageDescriptor(
                "test.M",
                (
                    FieldDescriptor(1, "a", FieldType.INT32),
                    FieldDescriptor(1, "b", FieldType.INT32),
                ),
            )

    def test_reserved_number(self) -> None:
        with pytest.raises(SchemaError, match="invalid field number"):
            MessageDescriptor("test.M", (FieldDescriptor(19001, "a", FieldType.INT32),))

    def test_packed_string_rejected(self) -> None:
        with pytest.raises(SchemaError, match="packed"):
            MessageDescriptor(
                "test.M",
                (FieldDescriptor(1, "a", FieldType.STRING, Cardinality.REPEATED, packed=True),),
            )

    def test_message_field_needs_type_name(self) -> None:
        with pytest.raises(SchemaError, match="type_name"):
            MessageDescriptor("test.M", (FieldDescriptor(1, "a", FieldType.MESSAGE),))

    def test_exclusive_group_names_known_fields(self) -> None:
        with pytest.raises(SchemaError, match="exclusive group"):
            MessageDescriptor(
                "test.M",
                (FieldDescriptor(1, "a", FieldType.INT32),),
                exclusive_groups=(("a", "b"),),
            )

    def test_enum_default_falls_back_to_first_value(self) -> None:
        enum = EnumDescriptor("test.E", {"FIRST": 4, "SECOND": 5})
        assert enum.default == 4


class TestRegistry:
    def test_unknown_type_reference(self) -> None:
        md = MessageDescriptor(
            "test.M", (FieldDescriptor(1, "child", FieldType.MESSAGE, type_name="test.Missing"),)
        )
        with pytest.raises(SchemaError, match="unknown message type"):
            SchemaRegistry([md])

    def test_regular_field_inside_extension_range(self) -> None:
        md = MessageDescriptor(
            "test.M",
            (FieldDescriptor(1000, "a", FieldType.INT32),),
            extension_ranges=((1000, 1999),),
        )
        with pytest.raises(SchemaError, match="extension range"):
            SchemaRegistry([md])

    def test_with_extension_returns_new_registry(self) -> None:
        extension = FieldDescriptor(1005, "occupancy", FieldType.UINT32)
        registry = GTFS_REALTIME.with_extension(schema.VEHICLE_POSITION, extension)

        assert registry.message(schema.VEHICLE_POSITION).field_by_number(1005) == extension
        assert GTFS_REALTIME.message(schema.VEHICLE_POSITION).field_by_number(1005) is None
        assert registry.message(schema.ALERT) is GTFS_REALTIME.message(schema.ALERT)

    def test_extensions_can_stack(self) -> None:
        registry = GTFS_REALTIME.with_extension(
            schema.VEHICLE_POSITION, FieldDescriptor(1005, "occupancy", FieldType.UINT32)
        ).with_extension(
            schema.VEHICLE_POSITION, FieldDescriptor(1006, "crowding", FieldType.STRING)
        )
        md = registry.message(schema.VEHICLE_POSITION)
        assert md.field_by_name("occupancy").number == 1005
        assert md.field_by_name("crowding").number == 1006

    def test_with_extension_outside_range(self) -> None:
        with pytest.raises(SchemaError, match="outside"):
            GTFS_REALTIME.with_extension(
                schema.VEHICLE_POSITION, FieldDescriptor(999, "x", FieldType.UINT32)
            )

    def test_with_extension_on_message_without_ranges(self) -> None:
        with pytest.raises(SchemaError):
            GTFS_REALTIME.with_extension(
                schema.TIME_RANGE, FieldDescriptor(1001, "x", FieldType.UINT32)
            )
