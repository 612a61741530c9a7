"""Storage port - interface for the document archive."""

from abc import ABC, abstractmethod
from pathlib import Path


class ArchiveStoragePort(ABC):
    """Interface for writing and removing archived documents."""

    @abstractmethod
    def write(self, path: Path, content: bytes) -> int:
        """Write content, creating parent directories.

        Returns number of bytes written. Raises OSError on failure.
        """
        pass

    @abstractmethod
    def remove(self, path: Path) -> bool:
        """Remove a file. Returns False if it was already gone."""
        pass
