"""relaylog exception hierarchy."""

from __future__ import annotations


class RelayLogError(Exception):
    """Base exception for all relaylog errors."""


class ConfigError(RelayLogError):
    """Raised when the configuration is invalid or cannot be read."""


class ConfigNotFoundError(ConfigError):
    """Raised when the configuration file does not exist."""


class ValidationError(RelayLogError):
    """Raised when an event record is rejected before it is persisted."""


class PersistenceError(RelayLogError):
    """Raised when the local store cannot be read or written."""


class TransmissionError(RelayLogError):
    """Raised when a record could not be delivered to the remote sink.

    ``permanent`` is True when the sink rejected the record outright;
    False for transient conditions (timeouts, network errors, sink offline).
    Either way the record stays queued.
    """

    def __init__(self, message: str, *, permanent: bool = False) -> None:
        super().__init__(message)
        self.permanent = permanent
