"""
Core node models for rulestore.

This module defines the primitives every layer of the repository shares:

- Node: A lightweight handle onto a node held by a NodeStore
- NodeType: Structural type discriminator (asset, category, version, ...)
- Reference: The value type of reference properties
- ItemFormat: The closed set of asset formats

Design Philosophy:
    A Node is a handle, not a container. Property values always live in
    the store and are read through it, so two handles onto the same node
    observe the same session state.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

import ulid
from pydantic import BaseModel, Field


class NodeType(str, Enum):
    """Structural types of nodes in the store."""

    FOLDER = "rs:folder"
    RULE = "rs:rule"
    RULE_PACKAGE = "rs:rulePackage"
    FUNCTION = "rs:function"
    DSL = "rs:dsl"
    CATEGORY = "rs:category"

    # Managed by the store's version subsystem
    VERSION_HISTORY = "rs:versionHistory"
    VERSION = "rs:version"
    FROZEN = "rs:frozenNode"


VERSIONABLE_TYPES = frozenset({
    NodeType.RULE,
    NodeType.RULE_PACKAGE,
    NodeType.FUNCTION,
    NodeType.DSL,
})

READ_ONLY_TYPES = frozenset({
    NodeType.VERSION_HISTORY,
    NodeType.VERSION,
    NodeType.FROZEN,
})


class ItemFormat(str, Enum):
    """The possible values of the format property."""

    RULE = "Rule"
    DSL = "DSL"
    RULE_PACKAGE = "Rule Package"
    FUNCTION = "Function"


# Metadata properties on content nodes
TITLE_PROPERTY = "title"
DESCRIPTION_PROPERTY = "description"
LAST_MODIFIED_PROPERTY = "lastModified"
FORMAT_PROPERTY = "format"
CHECKIN_COMMENT_PROPERTY = "checkinComment"
VERSION_NUMBER_PROPERTY = "versionNumber"
CATEGORY_REFERENCES_PROPERTY = "categoryReferences"
CONTENT_PROPERTY = "content"
RULE_REFERENCES_PROPERTY = "ruleReferences"

# Properties maintained by the version subsystem
PREDECESSORS_PROPERTY = "predecessors"
SUCCESSORS_PROPERTY = "successors"
CREATED_PROPERTY = "created"
FROZEN_UUID_PROPERTY = "frozenUuid"
FROZEN_PRIMARY_TYPE_PROPERTY = "frozenPrimaryType"

# Well-known node names
ROOT_VERSION_NAME = "rootVersion"
VERSION_STORAGE_NAME = "versionStorage"


def generate_id() -> str:
    """Generate a unique, sortable ID using ULID."""
    return str(ulid.new())


class Node(BaseModel):
    """
    Handle onto a node in a NodeStore.

    Only structural facts live on the handle; they never change for the
    lifetime of a node. Everything else is a property read through the
    store.
    """

    uuid: str = Field(default_factory=generate_id, description="Unique node identifier")
    name: str = Field(..., description="Name of the node within its parent")
    node_type: NodeType = Field(..., description="Structural type of the node")
    parent_uuid: Optional[str] = Field(default=None, description="Parent node (None for the root)")

    model_config = {"frozen": True, "extra": "forbid"}

    def is_versionable(self) -> bool:
        """Check if check-out/check-in applies to this node."""
        return self.node_type in VERSIONABLE_TYPES

    def is_read_only(self) -> bool:
        """Check if this node belongs to the version subsystem."""
        return self.node_type in READ_ONLY_TYPES


class Reference(BaseModel):
    """A reference property value pointing at another node."""

    uuid: str = Field(..., description="UUID of the referenced node")

    model_config = {"frozen": True, "extra": "forbid"}

    def __str__(self) -> str:
        return self.uuid


SCALAR_VALUE_TYPES = (str, bool, int, float, datetime, Reference)


def is_valid_value(value: Any) -> bool:
    """Check whether a value can be stored as a property."""
    if isinstance(value, list):
        return all(isinstance(v, SCALAR_VALUE_TYPES) for v in value)
    return isinstance(value, SCALAR_VALUE_TYPES)
