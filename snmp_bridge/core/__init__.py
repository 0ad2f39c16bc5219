"""Core module containing data models, the attribute dictionary and configuration."""

from .models import (
    ValueKind,
    Role,
    TreeNode,
    TypedValue,
    Varbind,
)
from .dictionary import AttributeDictionary
from .config import BridgeConfig

__all__ = [
    "ValueKind",
    "Role",
    "TreeNode",
    "TypedValue",
    "Varbind",
    "AttributeDictionary",
    "BridgeConfig",
]
