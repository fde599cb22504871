"""Stop time propagation across a trip's stop pattern."""

from transit_rt.services.propagation.resolver import (
    PredictionStatus,
    ResolutionState,
    ResolvedEvent,
    ResolvedStopTime,
    StopPatternEntry,
    TripResolution,
    resolve_stop_times,
    resolve_trip_update,
    trip_completed,
)

__all__ = [
    "PredictionStatus",
    "ResolutionState",
    "ResolvedEvent",
    "ResolvedStopTime",
    "StopPatternEntry",
    "TripResolution",
    "resolve_stop_times",
    "resolve_trip_update",
    "trip_completed",
]
