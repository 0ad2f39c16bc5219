"""
Attribute dictionary.

Loads the attribute tree the bridge evaluates OID paths against from a
YAML file and validates its shape before any node is built.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .exceptions import DictionaryError
from .models import TreeNode, ValueKind


logger = logging.getLogger(__name__)

DEFAULT_DICTIONARY_PATH = Path(__file__).resolve().parent.parent / "data" / "dictionary.yaml"


class AttributeSpec(BaseModel):
    """Schema for one attribute entry of a dictionary file."""

    name: str = Field(min_length=1)
    number: int = Field(ge=0)
    type: ValueKind
    children: List["AttributeSpec"] = Field(default_factory=list)
    values: Dict[str, int] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_shape(self) -> "AttributeSpec":
        if self.type.is_group and not self.children:
            raise ValueError(f"tlv attribute {self.name} must have children")
        if self.children and not self.type.is_group:
            raise ValueError(f"{self.type.value} attribute {self.name} cannot have children")
        if self.values and not self.type.is_integer:
            raise ValueError(f"{self.type.value} attribute {self.name} cannot have named values")

        seen = set()
        for child in self.children:
            if child.number in seen:
                raise ValueError(f"duplicate attribute number {child.number} under {self.name}")
            seen.add(child.number)
        return self


AttributeSpec.model_rebuild()


class DictionarySpec(BaseModel):
    """Schema for a whole dictionary file."""

    attributes: List[AttributeSpec] = Field(min_length=1)


class AttributeDictionary:
    """
    Read-only attribute tree.

    The top-level attributes hang off an anonymous ``tlv`` root node so
    every attribute, including ``Message-Authenticator`` style top-level
    ones, can be addressed the same way.
    """

    def __init__(self, root: TreeNode):
        self.root = root
        self._by_name: Dict[str, TreeNode] = {}
        self._index(root)

    def _index(self, node: TreeNode):
        for child in node.children.values():
            if child.name in self._by_name:
                raise DictionaryError(f"Duplicate attribute name \"{child.name}\"")
            self._by_name[child.name] = child
            self._index(child)

    @classmethod
    def from_dict(cls, data: dict) -> "AttributeDictionary":
        """Build a dictionary from already parsed YAML data."""
        try:
            spec = DictionarySpec.model_validate(data)
        except ValidationError as e:
            raise DictionaryError(f"Invalid dictionary: {e}") from e

        root = TreeNode(number=0, name="", kind=ValueKind.TLV)
        top = set()
        for attribute in spec.attributes:
            if attribute.number in top:
                raise DictionaryError(f"Duplicate top-level attribute number {attribute.number}")
            top.add(attribute.number)
            root.add_child(_build_node(attribute))

        return cls(root)

    @classmethod
    def from_yaml(cls, path: str) -> "AttributeDictionary":
        """Load a dictionary file."""
        dict_path = Path(path)
        try:
            with open(dict_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise DictionaryError(f"Failed reading dictionary {dict_path}: {e}") from e
        except yaml.YAMLError as e:
            raise DictionaryError(f"Failed parsing dictionary {dict_path}: {e}") from e

        dictionary = cls.from_dict(data)
        logger.debug(f"Loaded {len(dictionary)} attributes from {dict_path}")
        return dictionary

    @classmethod
    def default(cls) -> "AttributeDictionary":
        """Load the dictionary shipped with the package."""
        return cls.from_yaml(str(DEFAULT_DICTIONARY_PATH))

    def __len__(self) -> int:
        return len(self._by_name)

    def by_name(self, name: str) -> Optional[TreeNode]:
        return self._by_name.get(name)

    def by_oid(self, oid: str) -> Optional[TreeNode]:
        """Find a node by its dotted numeric OID from the top of the tree."""
        node: Optional[TreeNode] = self.root
        for part in oid.strip(".").split("."):
            if not part.isdigit() or node is None:
                return None
            node = node.child(int(part))
        return node if node is not self.root else None

    def require(self, name: str) -> TreeNode:
        node = self.by_name(name)
        if node is None:
            raise DictionaryError(f"Incomplete dictionary: Missing definition for \"{name}\"")
        return node

    def require_oid(self, oid: str) -> TreeNode:
        node = self.by_oid(oid)
        if node is None:
            raise DictionaryError(f"Incomplete dictionary: Missing definition for {oid}")
        return node


def _build_node(spec: AttributeSpec) -> TreeNode:
    node = TreeNode(
        number=spec.number,
        name=spec.name,
        kind=spec.type,
        values=dict(spec.values),
    )
    for child in spec.children:
        node.add_child(_build_node(child))
    return node
