"""Document source adapters."""

from .sieg import SiegAdapter

__all__ = ["SiegAdapter"]
