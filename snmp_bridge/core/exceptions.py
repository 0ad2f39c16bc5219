"""
Exception hierarchy for the SNMP bridge.

Errors are split into two classes: recoverable ones, which are answered
on the control channel and let the session continue, and fatal ones,
which end the process with a failure status.
"""

from typing import Optional


class BridgeError(Exception):
    """Base class for all bridge errors."""


class ConfigError(BridgeError):
    """Invalid configuration or command line arguments."""


class DictionaryError(BridgeError):
    """The attribute dictionary is missing, malformed or incomplete."""


class ValueParseError(BridgeError):
    """A textual value could not be converted to its attribute kind."""


class OidParseError(BridgeError):
    """
    An OID path could not be evaluated against the attribute tree.

    Attributes:
        offset: Character offset into the path where evaluation failed
        cause: Human readable reason
    """

    def __init__(self, offset: int, cause: str):
        super().__init__(cause)
        self.offset = offset
        self.cause = cause

    def __str__(self) -> str:
        return f"{self.cause} (at offset {self.offset})"


class FormatterError(BridgeError):
    """A reply could not be converted to varbinds."""


class LineTooLongError(BridgeError):
    """An input line did not fit the bounded line buffer."""


class CodecError(BridgeError):
    """The packet codec failed to encode or decode a packet."""


class ExchangeError(BridgeError):
    """Base class for transport exchange failures."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class RecoverableExchangeError(ExchangeError):
    """The exchange failed but the transport is still usable."""


class ExchangeInterrupted(RecoverableExchangeError):
    """The exchange was abandoned because a stop was requested."""


class FatalExchangeError(ExchangeError):
    """The transport is unusable; no further exchange can succeed."""


class StopRequested(BridgeError):
    """A termination signal arrived; raised from the signal handler to break blocking reads."""
