"""Feed ingest, entity state, alert and stop time endpoints.

Endpoints
---------
POST /feeds/{source_id}/messages                 – ingest one raw feed message
GET  /feeds/{source_id}/entities                 – current entities, optionally by kind
GET  /feeds/{source_id}/entities/{entity_id}     – one entity
GET  /feeds/{source_id}/alerts                   – active alerts with resolved text
POST /feeds/{source_id}/trips/{trip_id}/stop-times – effective stop times of a trip
GET  /feeds/{source_id}/feed.pb                  – current state as a FULL_DATASET message
"""

from __future__ import annotations

import time
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from transit_rt.codec import encode
from transit_rt.config import get_settings
from transit_rt.errors import SchemaViolation
from transit_rt.logging import get_logger
from transit_rt.models.realtime import Alert, EntityKind, EntitySelector, FeedEntity
from transit_rt.services.gtfs_rt.normalizer import GtfsRtNormalizer
from transit_rt.services.gtfs_rt.pipeline import STATUS_ERROR, STATUS_REJECTED, get_ingestor
from transit_rt.services.merge.engine import FeedSnapshot
from transit_rt.services.propagation.resolver import (
    StopPatternEntry,
    resolve_trip_update,
    trip_completed,
)
from transit_rt.services.translation.resolver import resolve_or

logger = get_logger(__name__)

router = APIRouter(prefix="/feeds", tags=["feeds"])

PROTOBUF_MEDIA_TYPE = "application/x-protobuf"

# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class IngestReport(BaseModel):
    """Outcome of ingesting one feed message."""

    ingest_id: str
    source_id: str
    status: str
    entity_count: int = 0
    applied: int = 0
    rejected: List[Dict[str, Any]] = []
    advisories: List[Dict[str, Any]] = []
    warnings: List[str] = []
    stale: bool = False
    generation: Optional[int] = None
    error: Optional[str] = None
    merge: Optional[Dict[str, Any]] = None


class EntityListResponse(BaseModel):
    source_id: str
    generation: int
    count: int
    entities: List[Dict[str, Any]]


class ActiveAlert(BaseModel):
    entity_id: str
    cause: str
    effect: str
    header_text: str = ""
    description_text: str = ""
    url: str = ""
    active_period: List[Dict[str, Optional[int]]] = []
    informed_entity: List[Dict[str, Any]] = []


class AlertListResponse(BaseModel):
    source_id: str
    language: str
    at: int
    alerts: List[ActiveAlert]


class StopPatternStop(BaseModel):
    stop_sequence: int = Field(ge=0)
    stop_id: Optional[str] = None
    arrival_time: Optional[int] = None
    departure_time: Optional[int] = None


class StopPatternRequest(BaseModel):
    """Static stop pattern of the trip, in stop_sequence order."""

    stops: List[StopPatternStop] = Field(min_length=1)
    now: Optional[int] = None


class StopTimesResponse(BaseModel):
    source_id: str
    trip_id: Optional[str] = None
    state: str
    fully_described: bool
    completed: bool
    stop_times: List[Dict[str, Any]]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _snapshot_or_404(source_id: str) -> FeedSnapshot:
    snapshot = get_ingestor().store.snapshot(source_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"Unknown feed source {source_id!r}")
    return snapshot


def _selector_dict(selector: EntitySelector) -> dict[str, Any]:
    return {
        "agency_id": selector.agency_id,
        "route_id": selector.route_id,
        "route_type": selector.route_type,
        "trip_id": selector.trip.trip_id if selector.trip else None,
        "stop_id": selector.stop_id,
    }


def _active_alert(entity: FeedEntity, alert: Alert, lang: str, default: str) -> dict[str, Any]:
    row = GtfsRtNormalizer.entity_row(entity)
    return {
        "entity_id": entity.id,
        "cause": row["cause"],
        "effect": row["effect"],
        "header_text": resolve_or(alert.header_text, lang, default),
        "description_text": resolve_or(alert.description_text, lang, default),
        "url": resolve_or(alert.url, lang, default),
        "active_period": [{"start": p.start, "end": p.end} for p in alert.active_period],
        "informed_entity": [_selector_dict(s) for s in alert.informed_entity],
    }


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/{source_id}/messages",
    response_model=IngestReport,
    summary="Ingest one feed message",
    description=(
        "Decode, validate and merge one binary GTFS-realtime FeedMessage. "
        "Rejected entities are reported; the rest of the message is applied."
    ),
)
async def ingest_message(source_id: str, request: Request) -> dict[str, Any]:
    settings = get_settings()
    data = await request.body()
    if len(data) > settings.max_feed_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"Feed message exceeds {settings.max_feed_bytes} bytes",
        )

    report = await get_ingestor().ingest_async(source_id, data)
    if report["status"] in (STATUS_ERROR, STATUS_REJECTED):
        raise HTTPException(status_code=422, detail=report)
    return report


@router.get(
    "/{source_id}/entities",
    response_model=EntityListResponse,
    summary="List current entities of a feed source",
)
async def list_entities(
    source_id: str,
    kind: Annotated[Optional[EntityKind], Query()] = None,
) -> dict[str, Any]:
    snapshot = _snapshot_or_404(source_id)
    rows = [GtfsRtNormalizer.entity_row(e) for e in snapshot.entities(kind)]
    return {
        "source_id": source_id,
        "generation": snapshot.generation,
        "count": len(rows),
        "entities": rows,
    }


@router.get("/{source_id}/entities/{entity_id}", summary="Get one entity")
async def get_entity(
    source_id: str,
    entity_id: str,
    kind: Annotated[Optional[EntityKind], Query()] = None,
) -> dict[str, Any]:
    snapshot = _snapshot_or_404(source_id)
    entity = snapshot.get(entity_id, kind)
    if entity is None:
        raise HTTPException(status_code=404, detail=f"Unknown entity {entity_id!r}")

    row = GtfsRtNormalizer.entity_row(entity)
    row["generation"] = snapshot.generation
    row["unknown_field_numbers"] = [f.number for f in entity.unknown_fields]
    if entity.payload is not None:
        row["payload_unknown_field_numbers"] = [f.number for f in entity.payload.unknown_fields]
    return row


@router.get(
    "/{source_id}/alerts",
    response_model=AlertListResponse,
    summary="List active alerts with resolved text",
)
async def list_alerts(
    source_id: str,
    lang: Annotated[Optional[str], Query(max_length=35)] = None,
    at: Annotated[Optional[int], Query(ge=0)] = None,
) -> dict[str, Any]:
    settings = get_settings()
    snapshot = _snapshot_or_404(source_id)
    language = lang or settings.default_language
    moment = at if at is not None else int(time.time())

    alerts = [
        _active_alert(entity, entity.alert, language, settings.default_language)
        for entity in snapshot.entities(EntityKind.ALERT)
        if entity.alert is not None and entity.alert.is_active(moment)
    ]
    return {"source_id": source_id, "language": language, "at": moment, "alerts": alerts}


@router.post(
    "/{source_id}/trips/{trip_id}/stop-times",
    response_model=StopTimesResponse,
    summary="Resolve effective stop times of a trip",
    description=(
        "Propagate the trip's current stop time updates over the supplied "
        "static stop pattern."
    ),
)
async def get_trip_stop_times(
    source_id: str, trip_id: str, body: StopPatternRequest
) -> dict[str, Any]:
    snapshot = _snapshot_or_404(source_id)
    match = next(
        (
            e
            for e in snapshot.entities(EntityKind.TRIP_UPDATE)
            if e.trip_update is not None and e.trip_update.trip.trip_id == trip_id
        ),
        None,
    )
    pattern = [
        StopPatternEntry(s.stop_sequence, s.stop_id, s.arrival_time, s.departure_time)
        for s in body.stops
    ]

    try:
        resolution = resolve_trip_update(
            match.trip_update if match else None,
            pattern,
            entity_id=match.id if match else None,
        )
    except SchemaViolation as exc:
        raise HTTPException(status_code=422, detail=exc.violation.to_dict()) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    now = body.now if body.now is not None else int(time.time())
    result = resolution.to_dict()
    result["source_id"] = source_id
    result["trip_id"] = trip_id
    result["completed"] = trip_completed(resolution, now)
    return result


@router.get(
    "/{source_id}/feed.pb",
    summary="Current state as a FULL_DATASET feed message",
    response_class=Response,
)
async def get_feed(source_id: str) -> Response:
    snapshot = _snapshot_or_404(source_id)
    message = GtfsRtNormalizer.to_message(snapshot.to_feed_message())
    return Response(
        content=encode(message),
        media_type=PROTOBUF_MEDIA_TYPE,
        headers={"X-Feed-Generation": str(snapshot.generation)},
    )
