"""Ports - interfaces for external dependencies."""

from .directory import SubscriberDirectoryPort
from .outcomes import OutcomeStorePort
from .source import DocumentSourcePort
from .storage import ArchiveStoragePort

__all__ = [
    "ArchiveStoragePort",
    "DocumentSourcePort",
    "OutcomeStorePort",
    "SubscriberDirectoryPort",
]
