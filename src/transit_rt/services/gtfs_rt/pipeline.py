"""Feed ingestion: decode, validate, normalize and merge one feed message."""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from transit_rt.codec import Message
from transit_rt.config import get_settings
from transit_rt.errors import MalformedInput, SchemaViolation
from transit_rt.logging import bound_ingest_context, get_logger
from transit_rt.models.realtime import FeedEntity, FeedHeader, FeedMessage
from transit_rt.schema.descriptors import SchemaRegistry
from transit_rt.schema.gtfs_realtime import GTFS_REALTIME
from transit_rt.services.gtfs_rt.decoder import GtfsRtDecoder
from transit_rt.services.gtfs_rt.normalizer import GtfsRtNormalizer
from transit_rt.services.merge.engine import FeedStateStore, get_store
from transit_rt.services.validation.validator import (
    FeedValidator,
    Severity,
    ValidationReport,
    Violation,
)

logger = get_logger(__name__)

STATUS_OK = "ok"
STATUS_PARTIAL = "partial"
STATUS_REJECTED = "rejected"
STATUS_ERROR = "error"


class FeedIngestor:
    """Runs feed messages through the decode/validate/merge pipeline.

    Usage:
        ingestor = FeedIngestor()
        report = ingestor.ingest("vehicle_positions", data)

    Fatal problems abort only what they affect: malformed bytes or a broken
    header reject the message, a broken entity rejects that entity.
    """

    def __init__(
        self,
        store: FeedStateStore | None = None,
        registry: SchemaRegistry = GTFS_REALTIME,
    ) -> None:
        settings = get_settings()
        self._store = store if store is not None else get_store()
        self._registry = registry
        self._validator = FeedValidator(registry)
        self._decoder = GtfsRtDecoder()
        self._normalizer = GtfsRtNormalizer()
        self._enforce_required = settings.enforce_required_fields
        self._max_depth = settings.max_message_depth
        self._stale_threshold = settings.stale_feed_threshold_sec

        self._ingest_count = 0
        self._last_ingest_at: datetime | None = None
        self._status_lock = threading.Lock()
        self._source_locks: dict[str, asyncio.Lock] = {}

    @property
    def store(self) -> FeedStateStore:
        return self._store

    async def ingest_async(self, source_id: str, data: bytes) -> dict[str, Any]:
        """Run ``ingest`` in a worker thread, keeping the event loop free.

        Messages for one source wait on a FIFO lock, so they are merged in
        the order they were received.
        """
        lock = self._source_locks.setdefault(source_id, asyncio.Lock())
        async with lock:
            return await asyncio.to_thread(self.ingest, source_id, data)

    def ingest(self, source_id: str, data: bytes) -> dict[str, Any]:
        """Ingest one feed message for ``source_id``.

        Returns:
            Report dict; ``status`` is ``ok``, ``partial`` (some entities
            rejected), ``rejected`` (message-level Fatal violation) or
            ``error`` (malformed bytes).
        """
        ingest_id = str(uuid.uuid4())[:8]
        with self._status_lock:
            self._ingest_count += 1
            self._last_ingest_at = datetime.now(timezone.utc)

        with bound_ingest_context(source_id=source_id, ingest_id=ingest_id):
            return self._ingest(source_id, ingest_id, data)

    def _ingest(self, source_id: str, ingest_id: str, data: bytes) -> dict[str, Any]:
        report: dict[str, Any] = {
            "ingest_id": ingest_id,
            "source_id": source_id,
            "status": STATUS_ERROR,
            "entity_count": 0,
            "applied": 0,
            "rejected": [],
            "advisories": [],
            "warnings": [],
            "stale": False,
            "generation": None,
            "error": None,
        }

        try:
            feed = self._decoder.decode(
                data,
                source_id,
                ingest_id,
                registry=self._registry,
                enforce_required=self._enforce_required,
                max_depth=self._max_depth,
            )
        except MalformedInput as exc:
            report["error"] = str(exc)
            return report

        report["entity_count"] = self._decoder.get_entity_count(feed)
        validation = self._validator.validate(feed)
        report["advisories"] = [v.to_dict() for v in validation.advisory]

        try:
            validation.raise_for_message()
            header = self._normalizer.to_model(feed["header"])
        except SchemaViolation as exc:
            report["status"] = STATUS_REJECTED
            report["error"] = str(exc)
            report["rejected"] = [_rejection(exc.violation)]
            logger.error("Feed message rejected", code=exc.violation.code, error=str(exc))
            return report

        accepted, rejected = self._convert_entities(feed, validation)
        report["rejected"] = rejected
        report["stale"] = self._check_age(header, report)

        message = FeedMessage(header=header, entity=tuple(accepted))
        rejected_ids = [r["entity_id"] for r in rejected if r["entity_id"]]
        result = self._store.apply(source_id, message, rejected_ids)

        report["applied"] = len(accepted) if result.applied else 0
        report["generation"] = result.generation
        report["warnings"] = [str(w) for w in result.warnings]
        report["merge"] = result.to_dict()
        report["status"] = STATUS_PARTIAL if rejected else STATUS_OK
        return report

    def _convert_entities(
        self, feed: Message, validation: ValidationReport
    ) -> tuple[list[FeedEntity], list[dict[str, Any]]]:
        rejected_indices = validation.rejected_indices()
        accepted: list[FeedEntity] = []
        rejected: list[dict[str, Any]] = []

        for index, entity in enumerate(feed.get("entity")):
            entity_id = entity.get("id") or None
            if index in rejected_indices:
                violations = [v for v in validation.fatal if v.entity_index == index]
                rejected.append(
                    {
                        "entity_id": entity_id,
                        "entity_index": index,
                        "codes": [v.code for v in violations],
                        "messages": [v.message for v in violations],
                    }
                )
                for violation in violations:
                    logger.warning(
                        "Entity rejected",
                        entity_id=entity_id,
                        entity_index=index,
                        code=violation.code,
                        path=violation.path,
                    )
                continue

            try:
                model = self._normalizer.to_model(entity, path=f"entity[{index}]")
            except SchemaViolation as exc:
                rejected.append(
                    {
                        "entity_id": entity_id,
                        "entity_index": index,
                        "codes": [exc.violation.code],
                        "messages": [exc.violation.message],
                    }
                )
                continue
            accepted.append(model)

        return accepted, rejected

    def _check_age(self, header: FeedHeader, report: dict[str, Any]) -> bool:
        """Flag a stale feed; a timestamp ahead of the clock becomes an advisory.

        Header timestamps are arbitrary uint64 values, so the age is computed
        in plain integer seconds.
        """
        if not header.timestamp:
            return False
        age_sec = int(time.time()) - header.timestamp
        if age_sec < -self._stale_threshold:
            advisory = Violation(
                Severity.ADVISORY,
                "future_timestamp",
                f"Feed timestamp {header.timestamp} is {-age_sec}s ahead of the clock",
                path="header.timestamp",
            )
            report["advisories"].append(advisory.to_dict())
            logger.warning("GTFS-RT feed timestamp in the future", feed_age_sec=age_sec)
            return False
        if age_sec <= self._stale_threshold:
            return False
        logger.warning(
            "Stale GTFS-RT feed detected",
            feed_age_sec=age_sec,
            threshold_sec=self._stale_threshold,
        )
        return True

    def get_status(self) -> dict[str, Any]:
        """Get ingest counters for the health endpoint."""
        with self._status_lock:
            ingest_count, last_ingest_at = self._ingest_count, self._last_ingest_at
        return {
            "ingest_count": ingest_count,
            "last_ingest_at": last_ingest_at.isoformat() if last_ingest_at else None,
            "sources": self._store.sources(),
        }


def _rejection(violation: Violation) -> dict[str, Any]:
    return {
        "entity_id": violation.entity_id,
        "entity_index": violation.entity_index,
        "codes": [violation.code],
        "messages": [violation.message],
    }


# Singleton instance for the app lifecycle
_ingestor_instance: FeedIngestor | None = None


def get_ingestor() -> FeedIngestor:
    """Get or create the singleton ingestor instance."""
    global _ingestor_instance
    if _ingestor_instance is None:
        _ingestor_instance = FeedIngestor()
    return _ingestor_instance


def reset_ingestor() -> None:
    """Reset the singleton (for testing)."""
    global _ingestor_instance
    _ingestor_instance = None
