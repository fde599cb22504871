"""Error kinds raised while decoding, validating, merging and resolving feeds.

Every error can be attributed to an entity id (when one is known) so callers
can log or alert per entity.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from transit_rt.services.validation.validator import Violation


class FeedError(Exception):
    """Base class for feed processing errors."""

    def __init__(self, message: str, *, entity_id: str | None = None) -> None:
        super().__init__(message)
        self.entity_id = entity_id


class MalformedInput(FeedError):
    """Raised when bytes cannot be parsed as the wire format."""

    def __init__(
        self,
        message: str,
        *,
        offset: int,
        path: str | None = None,
        entity_id: str | None = None,
    ) -> None:
        detail = f"{message} at byte {offset}"
        if path:
            detail = f"{detail} ({path})"
        super().__init__(detail, entity_id=entity_id)
        self.offset = offset
        self.path = path


class SchemaViolation(FeedError):
    """Raised when a decoded message breaks a structural rule."""

    def __init__(self, violation: Violation) -> None:
        super().__init__(violation.message, entity_id=violation.entity_id)
        self.violation = violation

    @property
    def fatal(self) -> bool:
        return self.violation.is_fatal


class UnsupportedIncrementality(FeedError):
    """Capability warning: the feed asked for an unspecified incrementality mode."""

    def __init__(self, mode: str, *, applied: bool) -> None:
        action = "applied experimentally" if applied else "ignored"
        super().__init__(f"{mode} incrementality is unspecified; message {action}")
        self.mode = mode
        self.applied = applied


class NoTranslationAvailable(FeedError):
    """Raised when no translation matches the requested or default language."""

    def __init__(self, requested: str | None, default: str | None) -> None:
        super().__init__(
            f"No translation for requested={requested!r} default={default!r} "
            "and no untagged translation"
        )
        self.requested = requested
        self.default = default
