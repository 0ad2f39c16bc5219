"""
Data models for the attribute tree and translated values.

These dataclasses represent the dictionary nodes an OID path is
evaluated against, the typed values exchanged with the backend, and
the varbinds returned to the polling master.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ValueKind(Enum):
    """Declared value kind of a dictionary attribute."""

    INTEGER = "integer"
    SHORT = "short"
    BYTE = "byte"
    INTEGER64 = "integer64"
    DATE = "date"
    STRING = "string"
    OCTETS = "octets"
    IPADDR = "ipaddr"
    IPV6ADDR = "ipv6addr"
    ETHER = "ether"
    TLV = "tlv"  # Group of numbered children

    @property
    def is_group(self) -> bool:
        return self is ValueKind.TLV

    @property
    def is_integer(self) -> bool:
        """Integer kinds may carry enumerated value names."""
        return self in (
            ValueKind.INTEGER,
            ValueKind.SHORT,
            ValueKind.BYTE,
            ValueKind.INTEGER64,
        )


class Role(Enum):
    """Position of a typed value within a value set."""

    INDEX = "index"  # Table row selection, synthesized by the codec
    LEAF = "leaf"  # Terminal value named by the full path


@dataclass(eq=False)
class TreeNode:
    """
    A single attribute of the dictionary tree.

    Nodes are owned by the dictionary; everything else holds plain
    references. A node's kind is ``tlv`` if and only if it has children.
    """

    number: int
    name: str
    kind: ValueKind
    parent: Optional["TreeNode"] = field(default=None, repr=False)
    children: Dict[int, "TreeNode"] = field(default_factory=dict, repr=False)
    values: Dict[str, int] = field(default_factory=dict, repr=False)

    @property
    def is_group(self) -> bool:
        return self.kind.is_group

    def child(self, number: int) -> Optional["TreeNode"]:
        """Get the direct child with the given attribute number."""
        return self.children.get(number)

    def add_child(self, node: "TreeNode") -> "TreeNode":
        node.parent = self
        self.children[node.number] = node
        return node

    def lineage(self) -> List["TreeNode"]:
        """All nodes from the top of the tree down to (and including) this one."""
        nodes = []
        node: Optional[TreeNode] = self
        while node is not None:
            nodes.append(node)
            node = node.parent
        nodes.reverse()
        return nodes

    def is_descendant_of(self, ancestor: "TreeNode") -> bool:
        """True if ``ancestor`` is this node or one of its parents."""
        node: Optional[TreeNode] = self
        while node is not None:
            if node is ancestor:
                return True
            node = node.parent
        return False

    def oid_from(self, ancestor: "TreeNode") -> List[int]:
        """
        Attribute numbers strictly below ``ancestor`` down to this node.

        Raises:
            ValueError: If this node is not beneath ``ancestor``
        """
        numbers = []
        node: Optional[TreeNode] = self
        while node is not ancestor:
            if node is None:
                raise ValueError(f"{self.name} is not beneath {ancestor.name}")
            numbers.append(node.number)
            node = node.parent
        numbers.reverse()
        return numbers

    @property
    def oid(self) -> str:
        """Dotted OID from the top of the tree (the anonymous root excluded)."""
        return ".".join(str(n.number) for n in self.lineage()[1:])

    def value_name(self, value: int) -> Optional[str]:
        """Reverse lookup of an enumerated value name."""
        for name, number in self.values.items():
            if number == value:
                return name
        return None


@dataclass
class TypedValue:
    """A value positioned in the attribute tree."""

    node: TreeNode
    value: Any
    role: Role = Role.LEAF

    @property
    def is_index(self) -> bool:
        return self.role is Role.INDEX


# Ordered: index selections shallowest first, then the leaf.
ValueSet = List[TypedValue]


@dataclass(frozen=True)
class Varbind:
    """One (path, type, value) result returned to the polling master."""

    path: str
    type_tag: str
    value: bytes

    def to_lines(self) -> bytes:
        """Render as the three pass_persist response lines."""
        return b"".join((
            self.path.encode("ascii"), b"\n",
            self.type_tag.encode("ascii", "replace"), b"\n",
            self.value, b"\n",
        ))
