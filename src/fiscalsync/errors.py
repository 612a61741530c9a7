"""Exceptions raised by the synchronization engine."""


class FiscalSyncError(Exception):
    """Base class for fiscalsync errors."""


class ConfigurationError(FiscalSyncError):
    """Missing or invalid configuration, e.g. no API credential.

    Never retried.
    """


class SourceError(FiscalSyncError):
    """Transient failure talking to the document source."""


class ParseError(FiscalSyncError):
    """Document payload could not be decoded or classified."""


class SubscriberNotFound(FiscalSyncError):
    """Subscriber or tax identifier is unknown or inactive."""


class RunInProgressError(FiscalSyncError):
    """A run for the same subscriber is already executing."""
