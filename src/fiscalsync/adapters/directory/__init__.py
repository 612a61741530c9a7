"""Subscriber directory adapters."""

from .yaml_registry import YamlSubscriberDirectory

__all__ = ["YamlSubscriberDirectory"]
