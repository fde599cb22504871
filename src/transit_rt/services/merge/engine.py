"""Differential merge engine: entity tables per feed source and entity kind.

Each feed source owns a ``SourceTable`` holding one id -> entity map per
entity kind, so a trip update, a vehicle and an alert may share an id.
``apply`` calls for one source run one at a time under that table's lock and
publish a new immutable ``FeedSnapshot``; readers take the current snapshot
without locking. Unrelated sources never contend.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Literal

from transit_rt.config import get_settings
from transit_rt.errors import UnsupportedIncrementality
from transit_rt.logging import get_logger
from transit_rt.models.realtime import (
    EntityKind,
    FeedEntity,
    FeedHeader,
    FeedMessage,
    Incrementality,
)

logger = get_logger(__name__)

DifferentialMode = Literal["experimental", "reject"]
KindTables = dict[EntityKind, dict[str, FeedEntity]]

DEFAULT_GTFS_RT_VERSION = "2.0"


def _empty_tables() -> KindTables:
    return {kind: {} for kind in EntityKind}


@dataclass(frozen=True)
class FeedSnapshot:
    """Consistent, read-only view of one source's entity tables."""

    source_id: str
    generation: int = 0
    tables: Mapping[EntityKind, Mapping[str, FeedEntity]] = field(default_factory=dict)
    header: FeedHeader | None = None
    applied_at: datetime | None = None

    def __post_init__(self) -> None:
        frozen = {
            kind: MappingProxyType(dict(self.tables.get(kind, {}))) for kind in EntityKind
        }
        object.__setattr__(self, "tables", MappingProxyType(frozen))

    @classmethod
    def of(cls, source_id: str, entities: Iterable[FeedEntity], **kwargs: Any) -> FeedSnapshot:
        """Build a snapshot from payload-carrying entities."""
        tables = _empty_tables()
        for entity in entities:
            if entity.kind is not None:
                tables[entity.kind][entity.id] = entity
        return cls(source_id, tables=tables, **kwargs)

    def __len__(self) -> int:
        return sum(len(table) for table in self.tables.values())

    def __contains__(self, entity_id: object) -> bool:
        return any(entity_id in table for table in self.tables.values())

    def table(self, kind: EntityKind) -> Mapping[str, FeedEntity]:
        return self.tables[kind]

    def ids(self, kind: EntityKind | None = None) -> list[str]:
        return [e.id for e in self.entities(kind)]

    def entities(self, kind: EntityKind | None = None) -> list[FeedEntity]:
        """Entities grouped by kind, each kind in table order."""
        kinds = list(EntityKind) if kind is None else [kind]
        return [entity for k in kinds for entity in self.tables[k].values()]

    def get(self, entity_id: str, kind: EntityKind | None = None) -> FeedEntity | None:
        """Entity with ``entity_id``; without ``kind`` the first kind holding it wins."""
        kinds = list(EntityKind) if kind is None else [kind]
        for k in kinds:
            entity = self.tables[k].get(entity_id)
            if entity is not None:
                return entity
        return None

    def counts(self) -> dict[str, int]:
        return {kind.value: len(self.tables[kind]) for kind in EntityKind}

    def to_feed_message(self) -> FeedMessage:
        """Current state as a FULL_DATASET message, extension data included."""
        version = DEFAULT_GTFS_RT_VERSION
        timestamp = None
        if self.header is not None:
            version = self.header.gtfs_realtime_version or version
            timestamp = self.header.timestamp
        header = FeedHeader(
            gtfs_realtime_version=version,
            incrementality=Incrementality.FULL_DATASET,
            timestamp=timestamp,
        )
        return FeedMessage(header=header, entity=tuple(self.entities()))


@dataclass
class ApplyResult:
    """Outcome of applying one message to a source table."""

    source_id: str
    generation: int
    incrementality: str
    applied: bool = True
    kinds: list[str] = field(default_factory=list)
    inserted: int = 0
    replaced: int = 0
    removed: int = 0
    deleted: int = 0
    retained: int = 0
    warnings: list[UnsupportedIncrementality] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "generation": self.generation,
            "incrementality": self.incrementality,
            "applied": self.applied,
            "kinds": list(self.kinds),
            "inserted": self.inserted,
            "replaced": self.replaced,
            "removed": self.removed,
            "deleted": self.deleted,
            "retained": self.retained,
            "warnings": [str(w) for w in self.warnings],
        }


class SourceTable:
    """Entity tables of one feed source, one per entity kind."""

    def __init__(self, source_id: str) -> None:
        self._source_id = source_id
        self._lock = threading.Lock()
        self._snapshot = FeedSnapshot(source_id)

    @property
    def source_id(self) -> str:
        return self._source_id

    @property
    def snapshot(self) -> FeedSnapshot:
        return self._snapshot

    def apply(
        self,
        message: FeedMessage,
        rejected_ids: Iterable[str] = (),
        differential_mode: DifferentialMode = "experimental",
    ) -> ApplyResult:
        """Merge ``message`` into the tables and publish a new snapshot.

        A FULL_DATASET message replaces the table of every kind it carries and
        leaves the other kinds alone. A message with no payload-carrying
        entities and no rejected ids replaces every kind, i.e. clears the source.

        Args:
            message: Message holding the entities accepted by validation.
            rejected_ids: Ids whose entities failed validation; their previous
                entries are kept unless an accepted entity of the same kind
                carries the same id.
            differential_mode: ``experimental`` applies DIFFERENTIAL messages
                as replace/delete by id; ``reject`` leaves the tables untouched.
        """
        rejected = set(rejected_ids)
        with self._lock:
            previous = self._snapshot
            if message.header.is_differential:
                result, tables = self._apply_differential(
                    previous, message, rejected, differential_mode
                )
            else:
                result, tables = self._apply_full_dataset(previous, message, rejected)

            if result.applied:
                self._snapshot = FeedSnapshot(
                    source_id=self._source_id,
                    generation=result.generation,
                    tables=tables,
                    header=message.header,
                    applied_at=datetime.now(timezone.utc),
                )

        for warning in result.warnings:
            logger.warning(
                "Unsupported incrementality",
                source_id=self._source_id,
                mode=warning.mode,
                applied=warning.applied,
            )
        logger.info(
            "Feed message applied" if result.applied else "Feed message not applied",
            source_id=self._source_id,
            generation=result.generation,
            incrementality=result.incrementality,
            kinds=result.kinds,
            inserted=result.inserted,
            replaced=result.replaced,
            removed=result.removed,
            retained=result.retained,
            entity_counts=self._snapshot.counts(),
        )
        return result

    def _apply_full_dataset(
        self, previous: FeedSnapshot, message: FeedMessage, rejected: set[str]
    ) -> tuple[ApplyResult, KindTables]:
        result = ApplyResult(
            self._source_id, previous.generation + 1, Incrementality.FULL_DATASET.name
        )
        incoming = _empty_tables()
        scope: set[EntityKind] = set()
        for entity in message.entity:
            if entity.kind is not None:
                scope.add(entity.kind)
            if entity.is_deleted:
                result.deleted += 1
            elif entity.kind is not None:
                incoming[entity.kind][entity.id] = entity
        if not scope and not rejected:
            scope = set(EntityKind)

        tables = _empty_tables()
        for kind in EntityKind:
            before = previous.tables[kind]
            if kind not in scope:
                tables[kind] = dict(before)
                result.retained += sum(1 for entity_id in rejected if entity_id in before)
                continue

            table = incoming[kind]
            for entity_id in rejected:
                if entity_id not in table and entity_id in before:
                    table[entity_id] = before[entity_id]
                    result.retained += 1
            for entity_id, entity in table.items():
                if entity_id not in before:
                    result.inserted += 1
                elif entity is not before[entity_id]:
                    result.replaced += 1
            result.removed += sum(1 for entity_id in before if entity_id not in table)
            tables[kind] = table

        result.kinds = [kind.value for kind in EntityKind if kind in scope]
        return result, tables

    def _apply_differential(
        self,
        previous: FeedSnapshot,
        message: FeedMessage,
        rejected: set[str],
        mode: DifferentialMode,
    ) -> tuple[ApplyResult, KindTables]:
        name = Incrementality.DIFFERENTIAL.name
        tables = {kind: dict(previous.tables[kind]) for kind in EntityKind}
        if mode == "reject":
            result = ApplyResult(self._source_id, previous.generation, name, applied=False)
            result.warnings.append(UnsupportedIncrementality(name, applied=False))
            return result, tables

        result = ApplyResult(self._source_id, previous.generation + 1, name)
        result.warnings.append(UnsupportedIncrementality(name, applied=True))
        touched: set[EntityKind] = set()
        for entity in message.entity:
            if entity.is_deleted:
                result.deleted += 1
                # A deletion without a payload names no kind
                kinds = [entity.kind] if entity.kind is not None else list(EntityKind)
                for kind in kinds:
                    if tables[kind].pop(entity.id, None) is not None:
                        result.removed += 1
                        touched.add(kind)
                continue
            if entity.kind is None:
                continue
            table = tables[entity.kind]
            if entity.id in table:
                result.replaced += 1
            else:
                result.inserted += 1
            table[entity.id] = entity
            touched.add(entity.kind)

        result.retained = sum(
            1 for kind in EntityKind for entity_id in rejected if entity_id in previous.tables[kind]
        )
        result.kinds = [kind.value for kind in EntityKind if kind in touched]
        return result, tables


class FeedStateStore:
    """Entity tables for every feed source seen so far."""

    def __init__(self, differential_mode: DifferentialMode | None = None) -> None:
        self._differential_mode = differential_mode or get_settings().differential_mode
        self._tables: dict[str, SourceTable] = {}
        self._lock = threading.Lock()

    @property
    def differential_mode(self) -> DifferentialMode:
        return self._differential_mode

    def table(self, source_id: str) -> SourceTable:
        """Get or create the table for ``source_id``."""
        with self._lock:
            table = self._tables.get(source_id)
            if table is None:
                table = SourceTable(source_id)
                self._tables[source_id] = table
            return table

    def apply(
        self, source_id: str, message: FeedMessage, rejected_ids: Iterable[str] = ()
    ) -> ApplyResult:
        return self.table(source_id).apply(message, rejected_ids, self._differential_mode)

    def snapshot(self, source_id: str) -> FeedSnapshot | None:
        """Current snapshot of ``source_id``, or None for a source never applied."""
        table = self._tables.get(source_id)
        return table.snapshot if table is not None else None

    def sources(self) -> list[str]:
        return sorted(self._tables)


# Singleton store instance
_store_instance: FeedStateStore | None = None


def get_store() -> FeedStateStore:
    """Get or create the singleton store instance."""
    global _store_instance
    if _store_instance is None:
        _store_instance = FeedStateStore()
    return _store_instance


def reset_store() -> None:
    """Reset the singleton (for testing)."""
    global _store_instance
    _store_instance = None
