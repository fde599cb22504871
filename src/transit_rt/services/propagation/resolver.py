"""Stop time propagation for one trip.

A trip update lists explicit predictions for some stops only. Walking the
trip's stop pattern in order, every stop without an explicit update
inherits the delay of the most recent explicit one, except that:

- a ``SKIPPED`` update applies to its own stop only and leaves the carried
  delay untouched;
- a ``NO_DATA`` update stops propagation until the next explicit update;
- stops before the first explicit update have no prediction.

The stop pattern comes from the static schedule and is supplied by the
caller.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from transit_rt.errors import SchemaViolation
from transit_rt.logging import get_logger
from transit_rt.models.realtime import (
    StopTimeEvent,
    StopTimeScheduleRelationship,
    StopTimeUpdate,
    TripDescriptor,
    TripUpdate,
)
from transit_rt.services.validation.validator import Severity, Violation

logger = get_logger(__name__)


class PredictionStatus(str, Enum):
    PREDICTED = "predicted"
    PROPAGATED = "propagated"
    SKIPPED = "skipped"
    NO_DATA = "no_data"
    UNKNOWN = "unknown"


class ResolutionState(str, Enum):
    UPDATED = "updated"
    EMPTY = "empty"
    HELD = "held"
    UNTRACKED = "untracked"
    CANCELED = "canceled"


@dataclass(frozen=True)
class StopPatternEntry:
    """One stop of the trip's static pattern; scheduled times in POSIX seconds."""

    stop_sequence: int
    stop_id: str | None = None
    arrival_time: int | None = None
    departure_time: int | None = None


@dataclass(frozen=True)
class ResolvedEvent:
    delay: int | None = None
    time: int | None = None
    uncertainty: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"delay": self.delay, "time": self.time, "uncertainty": self.uncertainty}


@dataclass(frozen=True)
class ResolvedStopTime:
    stop_sequence: int
    stop_id: str | None
    status: PredictionStatus
    schedule_relationship: int | None = None
    arrival: ResolvedEvent | None = None
    departure: ResolvedEvent | None = None
    explicit: bool = False

    @property
    def has_prediction(self) -> bool:
        return self.status in (PredictionStatus.PREDICTED, PredictionStatus.PROPAGATED)

    @property
    def delay(self) -> int | None:
        """Arrival delay, falling back to the departure delay."""
        for event in (self.arrival, self.departure):
            if event is not None and event.delay is not None:
                return event.delay
        return None

    def to_dict(self) -> dict[str, Any]:
        relationship = self.schedule_relationship
        return {
            "stop_sequence": self.stop_sequence,
            "stop_id": self.stop_id,
            "status": self.status.value,
            "schedule_relationship": getattr(relationship, "name", relationship),
            "explicit": self.explicit,
            "arrival": self.arrival.to_dict() if self.arrival else None,
            "departure": self.departure.to_dict() if self.departure else None,
        }


@dataclass(frozen=True)
class TripResolution:
    """Effective stop times for every stop of one trip."""

    state: ResolutionState
    stop_times: tuple[ResolvedStopTime, ...] = ()
    fully_described: bool = False
    trip: TripDescriptor | None = None

    def at(self, stop_sequence: int) -> ResolvedStopTime | None:
        for stop_time in self.stop_times:
            if stop_time.stop_sequence == stop_sequence:
                return stop_time
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "trip_id": self.trip.trip_id if self.trip else None,
            "fully_described": self.fully_described,
            "stop_times": [s.to_dict() for s in self.stop_times],
        }


@dataclass(frozen=True)
class _Carry:
    delay: int
    uncertainty: int | None


def _check_pattern(pattern: Sequence[StopPatternEntry]) -> None:
    for before, after in zip(pattern, pattern[1:]):
        if after.stop_sequence <= before.stop_sequence:
            msg = (
                f"Stop pattern must be strictly increasing by stop_sequence "
                f"({before.stop_sequence} then {after.stop_sequence})"
            )
            raise ValueError(msg)


def _anchor(
    updates: Sequence[StopTimeUpdate],
    pattern: Sequence[StopPatternEntry],
    entity_id: str | None,
) -> dict[int, StopTimeUpdate]:
    """Map pattern index to its explicit update."""
    index_by_sequence = {entry.stop_sequence: i for i, entry in enumerate(pattern)}
    anchored: dict[int, StopTimeUpdate] = {}
    previous = -1
    for position, update in enumerate(updates):
        path = f"stop_time_update[{position}]"
        if update.stop_sequence is not None:
            index = index_by_sequence.get(update.stop_sequence)
            if index is None:
                raise _violation(
                    "unknown_stop_sequence",
                    f"stop_sequence {update.stop_sequence} is not part of the trip",
                    entity_id,
                    path,
                )
        else:
            index = next(
                (
                    i
                    for i in range(previous + 1, len(pattern))
                    if pattern[i].stop_id == update.stop_id
                ),
                None,
            )
            if index is None:
                raise _violation(
                    "unresolved_stop_id",
                    f"stop_id {update.stop_id!r} does not follow the previous update",
                    entity_id,
                    path,
                )
        if index < previous:
            raise _violation(
                "stop_order",
                f"Update for stop_sequence {pattern[index].stop_sequence} is out of order",
                entity_id,
                path,
            )
        anchored[index] = update
        previous = index
    return anchored


def _explicit_event(
    event: StopTimeEvent | None, scheduled: int | None, inherited: _Carry | None
) -> tuple[ResolvedEvent | None, int | None]:
    """Resolve one explicit event; returns the event and the delay it propagates."""
    if event is None or not event.has_prediction:
        if inherited is None:
            return None, None
        time = scheduled + inherited.delay if scheduled is not None else None
        return ResolvedEvent(inherited.delay, time, inherited.uncertainty), None

    if event.time is not None:
        delay = event.time - scheduled if scheduled is not None else event.delay
        return ResolvedEvent(delay, event.time, event.uncertainty), delay

    time = scheduled + event.delay if scheduled is not None else None
    return ResolvedEvent(event.delay, time, event.uncertainty), event.delay


def _propagated_event(carry: _Carry, scheduled: int | None) -> ResolvedEvent:
    time = scheduled + carry.delay if scheduled is not None else None
    return ResolvedEvent(carry.delay, time, carry.uncertainty)


def resolve_stop_times(
    updates: Sequence[StopTimeUpdate],
    pattern: Sequence[StopPatternEntry],
    *,
    trip: TripDescriptor | None = None,
    entity_id: str | None = None,
) -> TripResolution:
    """Compute effective stop times for every stop of ``pattern``.

    Raises:
        SchemaViolation: If an update cannot be anchored to the pattern or
            updates are out of pattern order.
        ValueError: If the pattern is not strictly increasing.
    """
    _check_pattern(pattern)
    if not updates:
        stop_times = tuple(
            ResolvedStopTime(entry.stop_sequence, entry.stop_id, PredictionStatus.UNKNOWN)
            for entry in pattern
        )
        return TripResolution(ResolutionState.EMPTY, stop_times, trip=trip)

    anchored = _anchor(updates, pattern, entity_id)

    carry: _Carry | None = None
    no_data = False
    resolved: list[ResolvedStopTime] = []
    for index, entry in enumerate(pattern):
        update = anchored.get(index)
        if update is None:
            resolved.append(_inherited(entry, carry, no_data))
            continue

        relationship = update.schedule_relationship
        if relationship == StopTimeScheduleRelationship.SKIPPED:
            resolved.append(
                ResolvedStopTime(
                    entry.stop_sequence,
                    entry.stop_id,
                    PredictionStatus.SKIPPED,
                    relationship,
                    explicit=True,
                )
            )
            continue
        if relationship == StopTimeScheduleRelationship.NO_DATA:
            carry, no_data = None, True
            resolved.append(
                ResolvedStopTime(
                    entry.stop_sequence,
                    entry.stop_id,
                    PredictionStatus.NO_DATA,
                    relationship,
                    explicit=True,
                )
            )
            continue

        no_data = False
        inherited = carry
        arrival, arrival_delay = _explicit_event(update.arrival, entry.arrival_time, inherited)
        stop_carry = inherited
        if arrival is not None and arrival.delay is not None:
            stop_carry = _Carry(arrival.delay, arrival.uncertainty)
        departure, departure_delay = _explicit_event(
            update.departure, entry.departure_time, stop_carry
        )

        if departure_delay is not None:
            carry = _Carry(departure_delay, departure.uncertainty if departure else None)
        elif arrival_delay is not None:
            carry = _Carry(arrival_delay, arrival.uncertainty if arrival else None)

        predicted = any(e is not None for e in (arrival, departure))
        resolved.append(
            ResolvedStopTime(
                entry.stop_sequence,
                entry.stop_id,
                PredictionStatus.PREDICTED if predicted else PredictionStatus.UNKNOWN,
                relationship,
                arrival,
                departure,
                explicit=True,
            )
        )

    return TripResolution(
        ResolutionState.UPDATED,
        tuple(resolved),
        fully_described=(len(pattern) - 1) in anchored,
        trip=trip,
    )


def _inherited(
    entry: StopPatternEntry, carry: _Carry | None, no_data: bool
) -> ResolvedStopTime:
    if no_data:
        return ResolvedStopTime(
            entry.stop_sequence,
            entry.stop_id,
            PredictionStatus.NO_DATA,
            StopTimeScheduleRelationship.NO_DATA,
        )
    if carry is None:
        return ResolvedStopTime(entry.stop_sequence, entry.stop_id, PredictionStatus.UNKNOWN)
    return ResolvedStopTime(
        entry.stop_sequence,
        entry.stop_id,
        PredictionStatus.PROPAGATED,
        StopTimeScheduleRelationship.SCHEDULED,
        _propagated_event(carry, entry.arrival_time),
        _propagated_event(carry, entry.departure_time),
    )


def resolve_trip_update(
    trip_update: TripUpdate | None,
    pattern: Sequence[StopPatternEntry],
    previous: TripResolution | None = None,
    *,
    entity_id: str | None = None,
) -> TripResolution:
    """Resolve a trip for one snapshot.

    ``trip_update`` is None when the snapshot carries no update for the trip:
    the previous resolution is held, or the trip is untracked if there is
    none. An update with an empty stop list means the schedule is unknown.
    """
    if trip_update is None:
        if previous is not None:
            return replace(previous, state=ResolutionState.HELD)
        stop_times = tuple(
            ResolvedStopTime(entry.stop_sequence, entry.stop_id, PredictionStatus.UNKNOWN)
            for entry in pattern
        )
        return TripResolution(ResolutionState.UNTRACKED, stop_times)

    if trip_update.trip.is_canceled:
        _check_pattern(pattern)
        stop_times = tuple(
            ResolvedStopTime(
                entry.stop_sequence,
                entry.stop_id,
                PredictionStatus.SKIPPED,
                StopTimeScheduleRelationship.SKIPPED,
            )
            for entry in pattern
        )
        return TripResolution(ResolutionState.CANCELED, stop_times, trip=trip_update.trip)

    return resolve_stop_times(
        trip_update.stop_time_update, pattern, trip=trip_update.trip, entity_id=entity_id
    )


def trip_completed(resolution: TripResolution, now: int) -> bool:
    """True once a fully described trip's last stop event lies in the past with no uncertainty."""
    if not resolution.fully_described or not resolution.stop_times:
        return False
    last = resolution.stop_times[-1]
    event = last.arrival or last.departure
    if event is None or event.time is None:
        return False
    return event.time < now and not event.uncertainty


def _violation(code: str, message: str, entity_id: str | None, path: str) -> SchemaViolation:
    logger.warning("Stop time update not anchored", entity_id=entity_id, path=path, code=code)
    return SchemaViolation(Violation(Severity.FATAL, code, message, entity_id, None, path))
