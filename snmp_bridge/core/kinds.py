"""
Value kind strategies.

Each attribute kind knows how to parse a textual value supplied by the
polling master, how to render a value returned by the backend, and what
placeholder to send when no value is supplied. ``handler_for`` is the
single dispatch point used by the codec and the formatter.
"""

import ipaddress
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict

from .exceptions import ValueParseError
from .models import TreeNode, ValueKind


class KindHandler(ABC):
    """Parse/render strategy for one value kind."""

    kind: ValueKind

    @abstractmethod
    def parse(self, node: TreeNode, text: str) -> Any:
        """
        Convert text supplied by the polling master.

        Raises:
            ValueParseError: If the text is not a valid value of this kind
        """

    def render(self, node: TreeNode, value: Any) -> bytes:
        return str(value).encode("utf-8")

    def placeholder(self) -> Any:
        return 0

    def _invalid(self, text: str) -> ValueParseError:
        return ValueParseError(f"Invalid {self.kind.value} value \"{text}\"")


class IntegerHandler(KindHandler):
    """Unsigned integers of a fixed width, with optional value names."""

    def __init__(self, kind: ValueKind, bits: int):
        self.kind = kind
        self.maximum = (1 << bits) - 1

    def parse(self, node: TreeNode, text: str) -> int:
        text = text.strip()
        if text in node.values:
            return node.values[text]

        try:
            if text.lower().startswith("0x"):
                number = int(text[2:], 16)
            elif text.isdigit():
                number = int(text)
            else:
                raise self._invalid(text)
        except ValueError:
            raise self._invalid(text) from None

        if number > self.maximum:
            raise ValueParseError(
                f"Value {number} out of range for {self.kind.value} (max {self.maximum})"
            )
        return number

    def render(self, node: TreeNode, value: Any) -> bytes:
        name = node.value_name(int(value))
        if name is not None:
            return name.encode("utf-8")
        return str(int(value)).encode("ascii")


class DateHandler(IntegerHandler):
    """Seconds since the epoch; accepts a number or an ISO-8601 timestamp."""

    def __init__(self):
        super().__init__(ValueKind.DATE, 32)

    def parse(self, node: TreeNode, text: str) -> int:
        text = text.strip()
        if text.isdigit():
            return super().parse(node, text)
        try:
            stamp = datetime.fromisoformat(text)
        except ValueError:
            raise self._invalid(text) from None
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=timezone.utc)
        return int(stamp.timestamp())

    def render(self, node: TreeNode, value: Any) -> bytes:
        stamp = datetime.fromtimestamp(int(value), tz=timezone.utc)
        return stamp.isoformat().encode("ascii")


class StringHandler(KindHandler):
    """Text, kept as the raw bytes the master sent."""

    kind = ValueKind.STRING

    def parse(self, node: TreeNode, text: str) -> bytes:
        return text.encode("utf-8", "surrogateescape")

    def render(self, node: TreeNode, value: Any) -> bytes:
        if isinstance(value, str):
            return value.encode("utf-8", "surrogateescape")
        return bytes(value)

    def placeholder(self) -> bytes:
        return b"\x00"


class OctetsHandler(StringHandler):
    """Opaque bytes; ``0x`` prefixed text is decoded as hex."""

    kind = ValueKind.OCTETS

    def parse(self, node: TreeNode, text: str) -> bytes:
        if text.lower().startswith("0x"):
            try:
                return bytes.fromhex(text[2:])
            except ValueError:
                raise self._invalid(text) from None
        return super().parse(node, text)


class AddressHandler(KindHandler):
    """IPv4 or IPv6 addresses."""

    def __init__(self, kind: ValueKind, address_type):
        self.kind = kind
        self.address_type = address_type

    def parse(self, node: TreeNode, text: str):
        try:
            return self.address_type(text.strip())
        except ValueError:
            raise self._invalid(text) from None

    def render(self, node: TreeNode, value: Any) -> bytes:
        return str(self.address_type(value)).encode("ascii")

    def placeholder(self):
        return self.address_type(0)


class EtherHandler(KindHandler):
    """48 bit MAC addresses, ``:`` or ``-`` separated."""

    kind = ValueKind.ETHER

    def parse(self, node: TreeNode, text: str) -> bytes:
        parts = text.strip().replace("-", ":").split(":")
        if len(parts) != 6:
            raise self._invalid(text)
        try:
            octets = bytes(int(part, 16) for part in parts)
        except ValueError:
            raise self._invalid(text) from None
        return octets

    def render(self, node: TreeNode, value: Any) -> bytes:
        return ":".join(f"{octet:02x}" for octet in bytes(value)).encode("ascii")

    def placeholder(self) -> bytes:
        return bytes(6)


_HANDLERS: Dict[ValueKind, KindHandler] = {
    ValueKind.INTEGER: IntegerHandler(ValueKind.INTEGER, 32),
    ValueKind.SHORT: IntegerHandler(ValueKind.SHORT, 16),
    ValueKind.BYTE: IntegerHandler(ValueKind.BYTE, 8),
    ValueKind.INTEGER64: IntegerHandler(ValueKind.INTEGER64, 64),
    ValueKind.DATE: DateHandler(),
    ValueKind.STRING: StringHandler(),
    ValueKind.OCTETS: OctetsHandler(),
    ValueKind.IPADDR: AddressHandler(ValueKind.IPADDR, ipaddress.IPv4Address),
    ValueKind.IPV6ADDR: AddressHandler(ValueKind.IPV6ADDR, ipaddress.IPv6Address),
    ValueKind.ETHER: EtherHandler(),
}


def handler_for(kind: ValueKind) -> KindHandler:
    """Get the strategy for a value kind."""
    try:
        return _HANDLERS[kind]
    except KeyError:
        raise ValueParseError(f"\"{kind.value}\" attributes carry no scalar value") from None


def parse_value(node: TreeNode, text: str) -> Any:
    """Parse text according to the node's declared kind."""
    return handler_for(node.kind).parse(node, text)


def render_value(node: TreeNode, value: Any) -> bytes:
    """Render a value according to the node's declared kind."""
    return handler_for(node.kind).render(node, value)


def placeholder_for(node: TreeNode) -> Any:
    """Empty value sent when the master supplied none."""
    return handler_for(node.kind).placeholder()
