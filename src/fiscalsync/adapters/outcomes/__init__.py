"""Outcome store adapters."""

from .sqlite import SQLiteOutcomeStore

__all__ = ["SQLiteOutcomeStore"]
