"""
Backend transport contract.

The session loop only needs ``Transport.exchange``: hand over a request
and get back the decoded reply, or an exception telling it whether the
failure is recoverable. Packet framing and signing are delegated to a
``PacketCodec`` implementation.
"""

import importlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict

from ..core.dictionary import AttributeDictionary
from ..core.exceptions import ConfigError
from ..core.models import ValueSet


logger = logging.getLogger(__name__)


# RADIUS packet codes accepted as request types
PACKET_CODES: Dict[str, int] = {
    "auto": 0,
    "auth": 1,
    "acct": 4,
    "challenge": 11,
    "status": 12,
    "disconnect": 40,
    "coa": 43,
}


def parse_packet_code(text: str) -> int:
    """Convert a request type name or number to a packet code."""
    if text[:1].isdigit():
        try:
            code = int(text)
        except ValueError:
            raise ConfigError(f"Invalid request type \"{text}\"") from None
        if code > 255:
            raise ConfigError(f"Request type {code} out of range")
        return code

    try:
        return PACKET_CODES[text]
    except KeyError:
        raise ConfigError(f"Unrecognised request type \"{text}\"") from None


@dataclass
class Request:
    """An outbound packet: identifier, code and attribute values."""

    id: int
    code: int
    values: ValueSet = field(default_factory=list)


@dataclass
class Reply:
    """A decoded reply packet."""

    id: int
    code: int
    values: ValueSet = field(default_factory=list)


class PacketCodec(ABC):
    """
    Encodes requests to wire packets and decodes replies.

    Implementations are constructed with the attribute dictionary so
    decoded attributes can be positioned in the tree.
    """

    def __init__(self, dictionary: AttributeDictionary):
        self.dictionary = dictionary

    @abstractmethod
    def encode(self, request: Request, secret: str) -> bytes:
        """
        Encode and sign a request.

        Raises:
            CodecError: If the request cannot be encoded
        """

    @abstractmethod
    def decode(self, data: bytes, request: Request, secret: str) -> Reply:
        """
        Decode and authenticate a reply to ``request``.

        Raises:
            CodecError: If the packet is malformed or fails authentication
        """


class Transport(ABC):
    """Delivers one request at a time to the backend."""

    @abstractmethod
    def exchange(self, request: Request, retries: int, timeout: float) -> Reply:
        """
        Send a request and wait for its reply.

        Args:
            request: Request to deliver
            retries: Number of send attempts; only timeouts are retried
            timeout: Seconds to wait for a reply after each attempt

        Raises:
            RecoverableExchangeError: No usable reply, transport still usable
            FatalExchangeError: The transport cannot be used any more
        """

    def close(self):
        """Release transport resources."""


def load_codec(spec: str, dictionary: AttributeDictionary) -> PacketCodec:
    """
    Instantiate a codec from a ``package.module:ClassName`` reference.
    """
    module_name, _, class_name = spec.partition(":")
    if not module_name or not class_name:
        raise ConfigError(f"Invalid codec reference \"{spec}\", expected \"module:Class\"")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Failed importing codec module {module_name}: {e}") from e

    codec_class = getattr(module, class_name, None)
    if codec_class is None:
        raise ConfigError(f"Codec module {module_name} has no attribute {class_name}")
    if not (isinstance(codec_class, type) and issubclass(codec_class, PacketCodec)):
        raise ConfigError(f"{spec} is not a PacketCodec")

    logger.debug(f"Using packet codec {spec}")
    return codec_class(dictionary)
