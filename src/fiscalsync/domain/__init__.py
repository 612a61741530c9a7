"""Domain layer - core business logic."""

from .models import (
    DocumentCategory,
    DocumentOutcome,
    ExtractedFields,
    FetchPage,
    RunSummary,
    Subscriber,
    TaxIdentifier,
)

__all__ = [
    "DocumentCategory",
    "DocumentOutcome",
    "ExtractedFields",
    "FetchPage",
    "RunSummary",
    "Subscriber",
    "TaxIdentifier",
]
