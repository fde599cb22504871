"""Tests for the feed ingest pipeline."""

import asyncio
import time
from collections.abc import Iterable

import pytest
import structlog
from google.transit import gtfs_realtime_pb2

from transit_rt.models import FeedMessage
from transit_rt.services.gtfs_rt.pipeline import (
    STATUS_ERROR,
    STATUS_OK,
    STATUS_PARTIAL,
    STATUS_REJECTED,
    FeedIngestor,
    get_ingestor,
)
from transit_rt.services.merge import ApplyResult, FeedStateStore

from .fixtures.gtfs_rt_fixture import (
    add_trip_update,
    build_deletion_feed,
    build_differential_trip_update_feed,
    build_multi_entity_trip_update_feed,
    build_trip_update_feed,
    build_vehicle_position_feed,
)


def _pb_feed(feed_timestamp: int | None = None) -> gtfs_realtime_pb2.FeedMessage:
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.header.gtfs_realtime_version = "2.0"
    feed.header.timestamp = feed_timestamp or int(time.time())
    return feed


@pytest.fixture
def ingestor() -> FeedIngestor:
    return FeedIngestor(store=FeedStateStore("experimental"))


class TestIngest:
    def test_valid_feed(self, ingestor: FeedIngestor) -> None:
        report = ingestor.ingest("agency", build_trip_update_feed())

        assert report["status"] == STATUS_OK
        assert report["entity_count"] == 1
        assert report["applied"] == 1
        assert report["generation"] == 1
        assert report["rejected"] == []
        assert report["error"] is None
        assert report["merge"]["inserted"] == 1
        assert "tu_trip_001" in ingestor.store.snapshot("agency")

    def test_malformed_bytes(self, ingestor: FeedIngestor) -> None:
        report = ingestor.ingest("agency", b"\x0a\x05\x0a")

        assert report["status"] == STATUS_ERROR
        assert "at byte" in report["error"]
        assert report["generation"] is None
        assert ingestor.store.snapshot("agency") is None

    def test_message_level_violation_rejects_message(self, ingestor: FeedIngestor) -> None:
        feed = _pb_feed()
        feed.header.gtfs_realtime_version = ""
        add_trip_update(feed, "T1", stop_updates=[{"stop_sequence": 1, "arrival_delay": 0}])

        report = ingestor.ingest("agency", feed.SerializeToString())

        assert report["status"] == STATUS_REJECTED
        assert report["rejected"][0]["codes"] == ["missing_version"]
        assert report["applied"] == 0
        assert ingestor.store.snapshot("agency") is None

    def test_bad_entity_rejects_only_that_entity(self, ingestor: FeedIngestor) -> None:
        feed = _pb_feed()
        stops = [{"stop_sequence": 1, "arrival_delay": 0}]
        add_trip_update(feed, "T1", stop_updates=stops)
        bad = add_trip_update(feed, "T2", stop_updates=stops)
        bad.vehicle.vehicle.id = "bus-7"

        report = ingestor.ingest("agency", feed.SerializeToString())

        assert report["status"] == STATUS_PARTIAL
        assert report["applied"] == 1
        [rejected] = report["rejected"]
        assert rejected["entity_id"] == "tu_T2"
        assert rejected["entity_index"] == 1
        assert rejected["codes"] == ["exclusive_fields"]
        snapshot = ingestor.store.snapshot("agency")
        assert "tu_T1" in snapshot
        assert "tu_T2" not in snapshot

    def test_rejected_entity_keeps_previous_state(self, ingestor: FeedIngestor) -> None:
        ingestor.ingest("agency", build_multi_entity_trip_update_feed(count=2))

        feed = _pb_feed()
        add_trip_update(
            feed, "trip_000", stop_updates=[{"stop_sequence": 1, "arrival_delay": 5}]
        )
        broken = add_trip_update(feed, "trip_001", stop_updates=[{"arrival_delay": 5}])
        assert broken.id == "tu_trip_001"

        report = ingestor.ingest("agency", feed.SerializeToString())

        assert report["status"] == STATUS_PARTIAL
        assert report["merge"]["retained"] == 1
        snapshot = ingestor.store.snapshot("agency")
        kept = snapshot.get("tu_trip_001").trip_update.stop_time_update[0]
        assert kept.arrival.delay == 30

    def test_advisories_are_reported(self, ingestor: FeedIngestor) -> None:
        feed = _pb_feed()
        add_trip_update(feed, "T1", stop_updates=[{"stop_sequence": 1}])

        report = ingestor.ingest("agency", feed.SerializeToString())

        assert report["status"] == STATUS_OK
        assert [a["code"] for a in report["advisories"]] == ["missing_stop_time_event"]
        assert report["advisories"][0]["severity"] == "advisory"

    def test_empty_message_clears_source(self, ingestor: FeedIngestor) -> None:
        ingestor.ingest("agency", build_trip_update_feed())
        report = ingestor.ingest("agency", _pb_feed().SerializeToString())

        assert report["status"] == STATUS_OK
        assert report["merge"]["removed"] == 1
        assert len(ingestor.store.snapshot("agency")) == 0

    def test_sources_are_separate(self, ingestor: FeedIngestor) -> None:
        ingestor.ingest("trips", build_trip_update_feed())
        ingestor.ingest("vehicles", build_vehicle_position_feed())

        assert ingestor.store.snapshot("trips").ids() == ["tu_trip_001"]
        assert ingestor.store.snapshot("vehicles").ids() == ["vp_veh_001"]

    def test_entity_kinds_of_one_source_coexist(self, ingestor: FeedIngestor) -> None:
        ingestor.ingest("agency", build_trip_update_feed())
        report = ingestor.ingest("agency", build_vehicle_position_feed())

        assert report["merge"]["kinds"] == ["vehicle"]
        assert report["merge"]["removed"] == 0
        assert ingestor.store.snapshot("agency").ids() == ["tu_trip_001", "vp_veh_001"]


class TestStaleness:
    def test_fresh_feed(self, ingestor: FeedIngestor) -> None:
        report = ingestor.ingest("agency", build_trip_update_feed(feed_timestamp=int(time.time())))
        assert report["stale"] is False

    def test_old_feed_is_stale_but_applied(self, ingestor: FeedIngestor) -> None:
        old = int(time.time()) - 3600
        report = ingestor.ingest("agency", build_trip_update_feed(feed_timestamp=old))
        assert report["stale"] is True
        assert report["applied"] == 1

    @pytest.mark.parametrize("timestamp", [1760000000000, 2**63])
    def test_timestamp_far_in_the_future(self, ingestor: FeedIngestor, timestamp: int) -> None:
        report = ingestor.ingest("agency", build_vehicle_position_feed(feed_timestamp=timestamp))

        assert report["status"] == STATUS_OK
        assert report["applied"] == 1
        assert report["stale"] is False
        assert [a["code"] for a in report["advisories"]] == ["future_timestamp"]
        assert report["advisories"][0]["path"] == "header.timestamp"
        assert "vp_veh_001" in ingestor.store.snapshot("agency")


class TestDifferential:
    def test_experimental_mode_applies_with_warning(self, ingestor: FeedIngestor) -> None:
        ingestor.ingest("agency", build_multi_entity_trip_update_feed(count=3))
        report = ingestor.ingest("agency", build_deletion_feed(["tu_trip_001"]))

        assert report["status"] == STATUS_OK
        assert len(report["warnings"]) == 1
        assert "DIFFERENTIAL" in report["warnings"][0]
        assert sorted(ingestor.store.snapshot("agency").ids()) == ["tu_trip_000", "tu_trip_002"]

    def test_differential_upsert(self, ingestor: FeedIngestor) -> None:
        ingestor.ingest("agency", build_multi_entity_trip_update_feed(count=2))
        ingestor.ingest("agency", build_differential_trip_update_feed(["trip_000"], delay=240))

        snapshot = ingestor.store.snapshot("agency")
        assert len(snapshot) == 2
        delay = snapshot.get("tu_trip_000").trip_update.stop_time_update[0].arrival.delay
        assert delay == 240

    def test_reject_mode_leaves_state(self) -> None:
        ingestor = FeedIngestor(store=FeedStateStore("reject"))
        ingestor.ingest("agency", build_trip_update_feed())
        report = ingestor.ingest("agency", build_deletion_feed(["tu_trip_001"]))

        assert report["applied"] == 0
        assert report["merge"]["applied"] is False
        assert report["generation"] == 1
        assert "tu_trip_001" in ingestor.store.snapshot("agency")


class _ContextRecordingStore(FeedStateStore):
    def __init__(self) -> None:
        super().__init__("experimental")
        self.contexts: list[dict] = []

    def apply(
        self, source_id: str, message: FeedMessage, rejected_ids: Iterable[str] = ()
    ) -> ApplyResult:
        self.contexts.append(structlog.contextvars.get_contextvars())
        return super().apply(source_id, message, rejected_ids)


class TestLogContext:
    def test_ingest_binds_source_and_ingest_id(self) -> None:
        store = _ContextRecordingStore()
        report = FeedIngestor(store=store).ingest("agency", build_trip_update_feed())

        [context] = store.contexts
        assert context["source_id"] == "agency"
        assert context["ingest_id"] == report["ingest_id"]
        assert "ingest_id" not in structlog.contextvars.get_contextvars()


class TestIngestAsync:
    @pytest.mark.asyncio
    async def test_runs_ingest(self, ingestor: FeedIngestor) -> None:
        report = await ingestor.ingest_async("agency", build_trip_update_feed())
        assert report["status"] == STATUS_OK
        assert "tu_trip_001" in ingestor.store.snapshot("agency")

    @pytest.mark.asyncio
    async def test_keeps_receipt_order_per_source(self, ingestor: FeedIngestor) -> None:
        feeds = [build_trip_update_feed(trip_id=f"trip_{n}") for n in range(5)]
        reports = await asyncio.gather(*(ingestor.ingest_async("agency", d) for d in feeds))

        assert [r["generation"] for r in reports] == [1, 2, 3, 4, 5]
        assert ingestor.store.snapshot("agency").ids() == ["tu_trip_4"]


class TestStatus:
    def test_get_status(self, ingestor: FeedIngestor) -> None:
        assert ingestor.get_status()["ingest_count"] == 0
        ingestor.ingest("agency", build_trip_update_feed())
        ingestor.ingest("agency", b"\xff")

        status = ingestor.get_status()
        assert status["ingest_count"] == 2
        assert status["last_ingest_at"] is not None
        assert status["sources"] == ["agency"]

    def test_singleton(self) -> None:
        assert get_ingestor() is get_ingestor()
