"""
Storage engine for rulestore.

This module provides the node store abstraction, the narrow contract the
item layer consumes, with the default in-memory implementation:

- Hierarchical: Nodes have a name, a type and a parent
- Session-scoped: Writes stay private until save()
- Versioned: checkin() freezes a node into an immutable version record

Version model:
    Every versionable node owns a version history. The history starts
    with a virtual root version; each check-in appends a version node
    whose single child is the frozen copy of the node's properties.
    Versions link to each other through the ``predecessors`` and
    ``successors`` reference properties.

        history
        ├── rootVersion          successors=[v1]
        ├── v1                   predecessors=[rootVersion] successors=[v2]
        │   └── <frozen node>
        └── v2                   predecessors=[v1]
            └── <frozen node>
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Iterator, Optional

from rulestore.core.models import (
    CREATED_PROPERTY,
    FROZEN_PRIMARY_TYPE_PROPERTY,
    FROZEN_UUID_PROPERTY,
    PREDECESSORS_PROPERTY,
    ROOT_VERSION_NAME,
    SUCCESSORS_PROPERTY,
    VERSION_STORAGE_NAME,
    Node,
    NodeType,
    Reference,
    is_valid_value,
)
from rulestore.storage.errors import (
    ConstraintViolationError,
    InvalidItemStateError,
    ItemExistsError,
    ItemNotFoundError,
    PathNotFoundError,
    UnsupportedRepositoryOperationError,
    ValueFormatError,
    VersionError,
)


class NodeStore(ABC):
    """
    Abstract base class for node stores.

    Implementations:
        - InMemoryNodeStore: Development and testing
        - SQLiteNodeStore: Single-node persistence
    """

    @property
    def supports_versioning(self) -> bool:
        """Whether checkout/checkin and version histories are available."""
        return True

    # =========================================================================
    # Nodes
    # =========================================================================

    @abstractmethod
    def root(self) -> Node:
        """Get the root node."""
        pass

    @abstractmethod
    def add_node(self, parent: Node, name: str, node_type: NodeType) -> Node:
        """
        Create a child node.

        Versionable node types get a version history and start checked out.

        Raises:
            ItemExistsError: If the parent already has a child with this name
            ConstraintViolationError: If the parent is a version record
        """
        pass

    @abstractmethod
    def get_node_by_uuid(self, uuid: str) -> Node:
        """
        Get a node by UUID.

        Raises:
            ItemNotFoundError: If no such node exists
        """
        pass

    @abstractmethod
    def get_child(self, parent: Node, name: str) -> Node:
        """
        Get a child node by name.

        Raises:
            PathNotFoundError: If the parent has no such child
        """
        pass

    @abstractmethod
    def get_children(self, parent: Node) -> list[Node]:
        """Get all children of a node in creation order."""
        pass

    def has_child(self, parent: Node, name: str) -> bool:
        """Check whether a child node exists."""
        try:
            self.get_child(parent, name)
            return True
        except PathNotFoundError:
            return False

    def get_parent(self, node: Node) -> Optional[Node]:
        """Get the parent of a node (None for the root)."""
        if node.parent_uuid is None:
            return None
        return self.get_node_by_uuid(node.parent_uuid)

    # =========================================================================
    # Properties
    # =========================================================================

    @abstractmethod
    def get_property(self, node: Node, name: str) -> Any:
        """
        Read a property value.

        Raises:
            PathNotFoundError: If the property does not exist
        """
        pass

    @abstractmethod
    def set_property(self, node: Node, name: str, value: Any) -> None:
        """
        Write a property value; None removes the property.

        Raises:
            ConstraintViolationError: If the node is a version record
            VersionError: If the node is versionable and checked in
            ValueFormatError: If the value type is not supported
        """
        pass

    def has_property(self, node: Node, name: str) -> bool:
        """Check whether a property exists."""
        try:
            self.get_property(node, name)
            return True
        except PathNotFoundError:
            return False

    def create_reference_value(self, node: Node) -> Reference:
        """Create a value referencing the given node."""
        return Reference(uuid=node.uuid)

    # =========================================================================
    # Versioning
    # =========================================================================

    @abstractmethod
    def checkout(self, node: Node) -> None:
        """Make a checked-in node writable. No-op if already checked out."""
        pass

    @abstractmethod
    def checkin(self, node: Node) -> Node:
        """
        Freeze the node's saved state into a new version.

        Returns:
            The new version node

        Raises:
            InvalidItemStateError: If the node has unsaved changes
        """
        pass

    @abstractmethod
    def is_checked_out(self, node: Node) -> bool:
        """Check whether a node is writable."""
        pass

    @abstractmethod
    def get_base_version(self, node: Node) -> Node:
        """Get the version the node's current state derives from."""
        pass

    def get_frozen_node(self, version: Node) -> Node:
        """
        Get the frozen content node of a version.

        Raises:
            PathNotFoundError: If the version has no frozen node (root version)
        """
        for child in self.get_children(version):
            if child.node_type == NodeType.FROZEN:
                return child
        raise PathNotFoundError(f"Version {version.name} has no frozen node")

    def get_predecessor_links(self, node: Node) -> list[str]:
        """UUIDs of a version's predecessors."""
        return [str(ref) for ref in self.get_property(node, PREDECESSORS_PROPERTY)]

    def get_successor_links(self, node: Node) -> list[str]:
        """UUIDs of a version's successors."""
        return [str(ref) for ref in self.get_property(node, SUCCESSORS_PROPERTY)]

    def is_version_type(self, node: Node) -> bool:
        """Check whether a node is a version record."""
        return node.node_type == NodeType.VERSION

    def is_frozen_type(self, node: Node) -> bool:
        """Check whether a node is frozen content of a version."""
        return node.node_type == NodeType.FROZEN

    # =========================================================================
    # Session
    # =========================================================================

    @abstractmethod
    def save(self) -> None:
        """Persist all pending writes."""
        pass

    @abstractmethod
    def discard(self) -> None:
        """Drop all pending writes."""
        pass

    @abstractmethod
    def transaction(self):
        """
        Context manager grouping operations into one unit.

        If the block raises, every change made inside it is undone,
        including saves, and pending writes from before the block are
        restored.
        """
        pass

    def close(self) -> None:
        """Release resources held by the store."""
        pass


def _check_value(name: str, value: Any) -> None:
    if value is not None and not is_valid_value(value):
        raise ValueFormatError(
            f"Unsupported value for property {name}: {type(value).__name__}"
        )


def _copy_value(value: Any) -> Any:
    if isinstance(value, list):
        return list(value)
    return value


@dataclass
class _MemoryState:
    """Everything an InMemoryNodeStore knows, in one copyable object."""

    nodes: dict[str, Node] = field(default_factory=dict)
    # parent uuid -> child name -> child uuid
    children: dict[str, dict[str, str]] = field(default_factory=dict)
    properties: dict[str, dict[str, Any]] = field(default_factory=dict)
    checked_out: dict[str, bool] = field(default_factory=dict)
    base_versions: dict[str, str] = field(default_factory=dict)
    histories: dict[str, str] = field(default_factory=dict)


class InMemoryNodeStore(NodeStore):
    """
    In-memory node store for development and testing.

    The store keeps a working state that all reads and writes go
    through, and a saved state. save() promotes the working state,
    discard() reverts to the saved one. Data is lost when the process
    exits.

    Thread Safety:
        Operations are serialized with a reentrant lock. All threads
        share one session.

    Args:
        versioning: Set to False to emulate a store without versioning
    """

    def __init__(self, versioning: bool = True):
        """Initialize an empty store containing only the root node."""
        self._lock = RLock()
        self._versioning = versioning

        self._working = _MemoryState()
        root = self._create(None, "", NodeType.FOLDER)
        self._root_uuid = root.uuid
        self._version_storage_uuid = self._create(
            root.uuid, VERSION_STORAGE_NAME, NodeType.FOLDER
        ).uuid

        self._saved = copy.deepcopy(self._working)

    @property
    def supports_versioning(self) -> bool:
        return self._versioning

    def _create(self, parent_uuid: Optional[str], name: str, node_type: NodeType) -> Node:
        node = Node(name=name, node_type=node_type, parent_uuid=parent_uuid)
        self._working.nodes[node.uuid] = node
        self._working.children[node.uuid] = {}
        self._working.properties[node.uuid] = {}
        if parent_uuid is not None:
            self._working.children[parent_uuid][name] = node.uuid
        return node

    def _require(self, node: Node) -> Node:
        current = self._working.nodes.get(node.uuid)
        if current is None:
            raise ItemNotFoundError(f"Node not found: {node.uuid}")
        return current

    def _require_versioning(self, operation: str) -> None:
        if not self._versioning:
            raise UnsupportedRepositoryOperationError(
                f"{operation} requires a store with versioning support"
            )

    def _require_versionable(self, node: Node) -> Node:
        node = self._require(node)
        if not node.is_versionable():
            raise UnsupportedRepositoryOperationError(
                f"Node {node.name} ({node.node_type.value}) is not versionable"
            )
        return node

    # =========================================================================
    # Nodes
    # =========================================================================

    def root(self) -> Node:
        with self._lock:
            return self._working.nodes[self._root_uuid]

    def add_node(self, parent: Node, name: str, node_type: NodeType) -> Node:
        with self._lock:
            parent = self._require(parent)
            if parent.is_read_only():
                raise ConstraintViolationError(
                    f"Cannot add children to {parent.node_type.value} node {parent.name}"
                )
            if name in self._working.children[parent.uuid]:
                raise ItemExistsError(f"Node {parent.name} already has a child named {name}")

            node = self._create(parent.uuid, name, node_type)

            if node.is_versionable() and self._versioning:
                history = self._create(
                    self._version_storage_uuid, node.uuid, NodeType.VERSION_HISTORY
                )
                root_version = self._create(history.uuid, ROOT_VERSION_NAME, NodeType.VERSION)
                self._working.properties[root_version.uuid][CREATED_PROPERTY] = (
                    datetime.now(timezone.utc)
                )
                self._working.histories[node.uuid] = history.uuid
                self._working.base_versions[node.uuid] = root_version.uuid
                self._working.checked_out[node.uuid] = True

            return node

    def get_node_by_uuid(self, uuid: str) -> Node:
        with self._lock:
            node = self._working.nodes.get(uuid)
            if node is None:
                raise ItemNotFoundError(f"Node not found: {uuid}")
            return node

    def get_child(self, parent: Node, name: str) -> Node:
        with self._lock:
            parent = self._require(parent)
            child_uuid = self._working.children[parent.uuid].get(name)
            if child_uuid is None:
                raise PathNotFoundError(f"Node {parent.name} has no child named {name}")
            return self._working.nodes[child_uuid]

    def get_children(self, parent: Node) -> list[Node]:
        with self._lock:
            parent = self._require(parent)
            return [
                self._working.nodes[uuid]
                for uuid in self._working.children[parent.uuid].values()
            ]

    # =========================================================================
    # Properties
    # =========================================================================

    def get_property(self, node: Node, name: str) -> Any:
        with self._lock:
            node = self._require(node)
            properties = self._working.properties[node.uuid]
            if name not in properties:
                raise PathNotFoundError(f"Node {node.name} has no property {name}")
            return _copy_value(properties[name])

    def set_property(self, node: Node, name: str, value: Any) -> None:
        with self._lock:
            node = self._require(node)
            if node.is_read_only():
                raise ConstraintViolationError(
                    f"Cannot write property {name} on {node.node_type.value} node {node.name}"
                )
            if (
                node.is_versionable()
                and self._versioning
                and not self._working.checked_out[node.uuid]
            ):
                raise VersionError(f"Node {node.name} is checked in")
            _check_value(name, value)

            properties = self._working.properties[node.uuid]
            if value is None:
                properties.pop(name, None)
            else:
                properties[name] = _copy_value(value)

    # =========================================================================
    # Versioning
    # =========================================================================

    def checkout(self, node: Node) -> None:
        with self._lock:
            self._require_versioning("checkout")
            node = self._require_versionable(node)
            self._working.checked_out[node.uuid] = True

    def checkin(self, node: Node) -> Node:
        with self._lock:
            self._require_versioning("checkin")
            node = self._require_versionable(node)

            saved_properties = self._saved.properties.get(node.uuid)
            if saved_properties != self._working.properties[node.uuid]:
                raise InvalidItemStateError(f"Node {node.name} has unsaved changes")

            base_uuid = self._working.base_versions[node.uuid]
            if not self._working.checked_out[node.uuid]:
                return self._working.nodes[base_uuid]

            history_uuid = self._working.histories[node.uuid]
            ordinal = len(self._working.children[history_uuid])
            version = self._create(history_uuid, f"v{ordinal}", NodeType.VERSION)
            self._working.properties[version.uuid].update({
                PREDECESSORS_PROPERTY: [Reference(uuid=base_uuid)],
                CREATED_PROPERTY: datetime.now(timezone.utc),
            })

            frozen = self._create(version.uuid, node.name, NodeType.FROZEN)
            frozen_properties = copy.deepcopy(self._working.properties[node.uuid])
            frozen_properties[FROZEN_UUID_PROPERTY] = node.uuid
            frozen_properties[FROZEN_PRIMARY_TYPE_PROPERTY] = node.node_type.value
            self._working.properties[frozen.uuid] = frozen_properties

            base_properties = self._working.properties[base_uuid]
            base_properties[SUCCESSORS_PROPERTY] = (
                base_properties.get(SUCCESSORS_PROPERTY, []) + [Reference(uuid=version.uuid)]
            )

            self._working.base_versions[node.uuid] = version.uuid
            self._working.checked_out[node.uuid] = False

            # Version records are persisted immediately
            self._saved = copy.deepcopy(self._working)
            return version

    def is_checked_out(self, node: Node) -> bool:
        with self._lock:
            node = self._require(node)
            if not node.is_versionable() or not self._versioning:
                return not node.is_read_only()
            return self._working.checked_out[node.uuid]

    def get_base_version(self, node: Node) -> Node:
        with self._lock:
            self._require_versioning("get_base_version")
            node = self._require_versionable(node)
            return self._working.nodes[self._working.base_versions[node.uuid]]

    # =========================================================================
    # Session
    # =========================================================================

    def save(self) -> None:
        with self._lock:
            self._saved = copy.deepcopy(self._working)

    def discard(self) -> None:
        with self._lock:
            self._working = copy.deepcopy(self._saved)

    @contextmanager
    def transaction(self) -> Iterator["InMemoryNodeStore"]:
        with self._lock:
            working = copy.deepcopy(self._working)
            saved = copy.deepcopy(self._saved)
            try:
                yield self
            except Exception:
                self._working = working
                self._saved = saved
                raise

    def clear(self) -> None:
        """Clear all data (for testing)."""
        with self._lock:
            self.__init__(versioning=self._versioning)
