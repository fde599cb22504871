"""Structural validation of decoded feeds."""

from transit_rt.services.validation.validator import (
    FeedValidator,
    Severity,
    ValidationReport,
    Violation,
)

__all__ = ["FeedValidator", "Severity", "ValidationReport", "Violation"]
