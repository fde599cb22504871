"""Tests for the GTFS-RT decoder."""

import pytest

from transit_rt.errors import MalformedInput
from transit_rt.schema import GTFS_REALTIME, FieldDescriptor, FieldType
from transit_rt.schema import gtfs_realtime as schema
from transit_rt.services.gtfs_rt.decoder import GtfsRtDecoder

from .fixtures.gtfs_rt_fixture import (
    build_alert_feed,
    build_empty_feed,
    build_multi_entity_trip_update_feed,
    build_trip_update_feed,
    build_vehicle_position_feed,
)

# FeedMessage{header{gtfs_realtime_version: "2.0"}}
HEADER_WITHOUT_TIMESTAMP = b"\x0a\x05\x0a\x032.0"


class TestGtfsRtDecoder:
    """Unit tests for GtfsRtDecoder."""

    def test_decode_trip_update_feed(self) -> None:
        data = build_trip_update_feed(feed_timestamp=1700000000)
        feed = GtfsRtDecoder.decode(data, "trip_updates", "ingest-1")
        assert feed["header"]["timestamp"] == 1700000000
        assert len(feed["entity"]) == 1
        assert feed["entity"][0]["trip_update"]["trip"]["trip_id"] == "trip_001"

    def test_decode_vehicle_position_feed(self) -> None:
        data = build_vehicle_position_feed(feed_timestamp=1700000000)
        feed = GtfsRtDecoder.decode(data, "vehicle_positions", "ingest-1")
        assert len(feed["entity"]) == 1
        vp = feed["entity"][0]["vehicle"]
        assert vp["vehicle"]["id"] == "veh_001"
        assert vp["position"]["latitude"] == pytest.approx(49.2827, abs=0.001)

    def test_decode_alert_feed(self) -> None:
        data = build_alert_feed(feed_timestamp=1700000000)
        feed = GtfsRtDecoder.decode(data, "service_alerts", "ingest-1")
        assert len(feed["entity"]) == 1
        assert feed["entity"][0]["alert"]["cause"] == 3

    def test_decode_empty_feed(self) -> None:
        data = build_empty_feed(feed_timestamp=1700000000)
        feed = GtfsRtDecoder.decode(data, "trip_updates", "ingest-1")
        assert len(feed.get("entity")) == 0

    def test_decode_multi_entity(self) -> None:
        data = build_multi_entity_trip_update_feed(count=10, feed_timestamp=1700000000)
        feed = GtfsRtDecoder.decode(data, "trip_updates", "ingest-1")
        assert len(feed["entity"]) == 10

    def test_decode_invalid_bytes_raises(self) -> None:
        with pytest.raises(MalformedInput):
            GtfsRtDecoder.decode(b"not a protobuf", "trip_updates", "ingest-1")

    def test_decode_empty_bytes_succeeds(self) -> None:
        # Zero bytes is a valid message with every field absent
        feed = GtfsRtDecoder.decode(b"", "trip_updates", "ingest-1")
        assert len(feed.get("entity")) == 0
        assert not feed.has("header")

    def test_decode_enforcing_required_fields(self) -> None:
        with pytest.raises(MalformedInput, match="Missing required field"):
            GtfsRtDecoder.decode(b"", "trip_updates", "ingest-1", enforce_required=True)

    def test_decode_with_extension_registry(self) -> None:
        registry = GTFS_REALTIME.with_extension(
            schema.FEED_HEADER, FieldDescriptor(1001, "feed_version", FieldType.STRING)
        )
        # header{gtfs_realtime_version: "2.0", 1001: "v"}
        data = b"\x0a\x09\x0a\x032.0\xca\x3e\x01v"
        feed = GtfsRtDecoder.decode(data, "trip_updates", "ingest-1", registry=registry)
        assert feed["header"]["feed_version"] == "v"

    def test_get_feed_timestamp(self) -> None:
        data = build_trip_update_feed(feed_timestamp=1700000000)
        feed = GtfsRtDecoder.decode(data, "trip_updates", "ingest-1")
        assert GtfsRtDecoder.get_feed_timestamp(feed) == 1700000000

    def test_get_feed_timestamp_unset(self) -> None:
        feed = GtfsRtDecoder.decode(HEADER_WITHOUT_TIMESTAMP, "trip_updates", "ingest-1")
        assert GtfsRtDecoder.get_feed_timestamp(feed) == 0

    def test_get_entity_count(self) -> None:
        data = build_multi_entity_trip_update_feed(count=7, feed_timestamp=1700000000)
        feed = GtfsRtDecoder.decode(data, "trip_updates", "ingest-1")
        assert GtfsRtDecoder.get_entity_count(feed) == 7
