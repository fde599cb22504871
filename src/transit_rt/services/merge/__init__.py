"""Per-source entity tables fed by FULL_DATASET and DIFFERENTIAL messages."""

from transit_rt.services.merge.engine import (
    ApplyResult,
    FeedSnapshot,
    FeedStateStore,
    SourceTable,
    get_store,
    reset_store,
)

__all__ = [
    "ApplyResult",
    "FeedSnapshot",
    "FeedStateStore",
    "SourceTable",
    "get_store",
    "reset_store",
]
