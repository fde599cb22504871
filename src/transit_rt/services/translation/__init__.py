"""Multilingual text resolution."""

from transit_rt.services.translation.resolver import (
    is_untagged,
    resolve,
    resolve_or,
    untagged_count,
)

__all__ = ["is_untagged", "resolve", "resolve_or", "untagged_count"]
