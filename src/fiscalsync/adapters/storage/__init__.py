"""Storage adapters."""

from .filesystem import FilesystemAdapter

__all__ = ["FilesystemAdapter"]
