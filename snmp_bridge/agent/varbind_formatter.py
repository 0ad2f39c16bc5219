"""
Varbind formatter.

Converts the attribute values returned by the backend into the
(OID, type, value) triples net-snmp expects.

Index attributes (number 0) must be in order of depth, shallowest
first, each one relative to the varbind that precedes it. The type of
each varbind is carried out of band by a type attribute that has to
appear before the value it describes.
"""

import logging
from typing import List, Optional

from ..core.exceptions import FormatterError, ValueParseError
from ..core.kinds import render_value
from ..core.models import TreeNode, TypedValue, ValueKind, Varbind
from .oid_codec import ENTRY_ATTRIBUTE, INDEX_ATTRIBUTE, tuple_to_oid


logger = logging.getLogger(__name__)

MAX_OID_LENGTH = 256


def _render(typed: TypedValue) -> bytes:
    try:
        return render_value(typed.node, typed.value)
    except (ValueParseError, TypeError, ValueError) as e:
        raise FormatterError(f"Failed rendering \"{typed.node.name}\": {e}") from e


def value_set_to_varbinds(
    root: TreeNode,
    type_node: TreeNode,
    values: List[TypedValue],
) -> List[Varbind]:
    """
    Convert a reply's values to varbinds.

    Args:
        root: First attribute to include at the start of OIDs. Values not
            beneath it are ignored.
        type_node: Attribute carrying the SNMP type of the next value
        values: Reply values in the order the backend sent them

    Returns:
        The varbinds, possibly none (no value at the requested OID).

    Raises:
        FormatterError: On out of order index attributes, a missing type
            or a value that cannot be rendered
    """
    start = root.oid_from(root.parent) if root.parent is not None else []

    parent = root
    components = list(start)
    type_tag: Optional[str] = None
    varbinds: List[Varbind] = []

    for typed in values:
        node = typed.node

        # Not beneath root, at the same level as root
        if node is type_node:
            type_tag = _render(typed).decode("utf-8", "replace")
            continue

        if not node.is_descendant_of(root):
            continue

        if not node.is_descendant_of(parent):
            raise FormatterError(
                f"Out of order index attributes.  \"{node.name}\" is not a child of \"{parent.name}\""
            )

        if node.number == INDEX_ATTRIBUTE:
            if node.kind is not ValueKind.INTEGER:
                raise FormatterError(f"Index attribute \"{node.name}\" is not of type \"integer\"")

            table = node.parent
            entry = table.child(ENTRY_ATTRIBUTE)
            if entry is None:
                raise FormatterError(f"Table \"{table.name}\" has no entry attribute")

            components.extend(table.oid_from(parent))
            components.append(int(typed.value))
            parent = entry
            continue

        if type_tag is None:
            raise FormatterError(
                f"No {type_node.name} found in response, or occurred after value attribute"
            )

        components.extend(node.oid_from(parent))
        components.append(0)
        oid = tuple_to_oid(components)
        if len(oid) > MAX_OID_LENGTH:
            raise FormatterError("OID buffer too small")

        varbind = Varbind(path=oid, type_tag=type_tag, value=_render(typed))
        logger.debug(f"Varbind {varbind.path} ({varbind.type_tag}) from {node.name}")
        varbinds.append(varbind)

        # Reset in case we're encoding multiple values
        parent = root
        components = list(start)
        type_tag = None

    return varbinds
