from __future__ import annotations


class ClientError(Exception):
    """Base class for failures that end a client invocation."""

    exit_code = 1


class ConfigurationError(ClientError):
    pass


class ArgumentError(ClientError):
    pass


class InputFormatError(ClientError):
    pass


class ClientConnectionError(ClientError):
    """The socket could not be connected (missing, refused, permission denied)."""


class TransportError(ClientError):
    """Write or read failed after the connection was established."""
