"""
OID path codec.

Converts a dotted OID path received from net-snmp into the ordered
list of attribute values sent to the backend, and back.

Table traversal is represented without a tree node per row: when an
OID component does not match a child at some level, but that level has
an integer attribute numbered 0 and a tlv attribute numbered 1, the
component is taken as the row index. Attribute 0 carries the index
value and evaluation resumes under attribute 1 (the entry).
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from ..core.exceptions import OidParseError, ValueParseError
from ..core.kinds import handler_for, parse_value, placeholder_for
from ..core.models import Role, TreeNode, TypedValue, ValueKind, ValueSet


logger = logging.getLogger(__name__)

INDEX_ATTRIBUTE = 0
ENTRY_ATTRIBUTE = 1


@dataclass
class _Component:
    """One numeric OID component and where it sits in the path string."""

    number: int
    start: int
    end: int


def tuple_to_oid(oid_tuple: Iterable[int]) -> str:
    """Convert OID components to a string with a leading dot."""
    return "." + ".".join(str(x) for x in oid_tuple)


def _split(path: str, start: int) -> List[_Component]:
    components = []
    pos = start
    while True:
        end = path.find(".", pos)
        if end < 0:
            end = len(path)
        text = path[pos:end]
        if not text:
            raise OidParseError(pos, "Empty OID component")
        if not (text.isascii() and text.isdigit()):
            raise OidParseError(pos, f"Invalid OID component \"{text}\"")
        components.append(_Component(int(text), pos, end))
        if end == len(path):
            return components
        pos = end + 1


def _walk(node: TreeNode, components: Sequence[_Component]) -> Tuple[TreeNode, Optional[int]]:
    """
    Descend through every component but the last.

    Returns the deepest node reached and the position of the component
    that did not match a child, or None when all of them matched.
    """
    for pos, component in enumerate(components[:-1]):
        child = node.child(component.number)
        if child is None:
            return node, pos
        node = child
    return node, None


def _index_value(node: TreeNode, component: _Component) -> Tuple[TreeNode, TypedValue]:
    index_attr = node.child(INDEX_ATTRIBUTE)
    if index_attr is None:
        raise OidParseError(component.start, "Unknown OID component: No index attribute at this level")
    if index_attr.kind is not ValueKind.INTEGER:
        raise OidParseError(component.start, "Index is not an \"integer\"")

    # By convention SNMP entries are at .1
    entry = node.child(ENTRY_ATTRIBUTE)
    if entry is None:
        raise OidParseError(component.start, "Unknown OID component: No entry attribute at this level")
    if not entry.is_group:
        raise OidParseError(component.start, "Entry is not a \"tlv\"")

    try:
        number = handler_for(index_attr.kind).parse(index_attr, str(component.number))
    except ValueParseError as e:
        raise OidParseError(component.start, str(e)) from e

    return entry, TypedValue(index_attr, number, Role.INDEX)


def path_to_value_set(
    path: Optional[str],
    root: TreeNode,
    value: Optional[str] = None,
) -> Tuple[ValueSet, int]:
    """
    Build the attribute values representing an OID path.

    Args:
        path: OID string such as ``.1.2.3.4.5.0``
        root: Node the path is evaluated from
        value: Value to assign to the leaf (SET operations only)

    Returns:
        The value set (index values shallowest first, then the leaf)
        and the number of characters of ``path`` consumed.

    Raises:
        OidParseError: With the offset into ``path`` where evaluation failed
    """
    if not path:
        raise OidParseError(0, "Empty OID")

    start = 1 if path.startswith(".") else 0
    components = _split(path, start)

    values: ValueSet = []
    parent = root
    while True:
        node, unmatched = _walk(parent, components)
        if unmatched is None:
            parent = node
            break

        parent, index = _index_value(node, components[unmatched])
        values.append(index)
        components = components[unmatched + 1:]

    final = components[-1]

    # SNMP requests the leaf under the OID with .0
    if final.number != 0:
        leaf = parent.child(final.number)
        if leaf is None:
            raise OidParseError(final.start, f"Unknown leaf attribute {final.number}")
    else:
        leaf = parent

    if leaf.is_group:
        raise OidParseError(final.start, f"OID must specify a leaf, \"{leaf.name}\" is a \"tlv\"")

    if value is None:
        leaf_value = placeholder_for(leaf)
    else:
        try:
            leaf_value = parse_value(leaf, value)
        except ValueParseError as e:
            raise OidParseError(final.end, f"Failed parsing value for \"{leaf.name}\": {e}") from e

    values.append(TypedValue(leaf, leaf_value, Role.LEAF))
    return values, final.end


def value_set_to_path(values: ValueSet, root: TreeNode) -> str:
    """
    Render the canonical OID path of a value set built from ``root``.

    Leaves are always rendered with the ``.0`` instance suffix.
    """
    components: List[int] = []
    cursor = root
    for typed in values:
        if typed.is_index:
            table = typed.node.parent
            components.extend(table.oid_from(cursor))
            components.append(int(typed.value))
            cursor = table.child(ENTRY_ATTRIBUTE)
        else:
            components.extend(typed.node.oid_from(cursor))
            components.append(0)
            cursor = root
    return tuple_to_oid(components)


def format_parse_error(path: str, error: OidParseError) -> Tuple[str, str]:
    """Path line and caret line pointing at the failing offset."""
    offset = max(0, min(error.offset, len(path)))
    return path, " " * offset + f"^ {error.cause}"
