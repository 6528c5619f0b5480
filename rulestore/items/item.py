"""
Base wrapper for everything the repository hands out.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rulestore.core.errors import RulesRepositoryError
from rulestore.core.models import Node
from rulestore.storage.engine import NodeStore
from rulestore.storage.errors import StoreError

if TYPE_CHECKING:
    from rulestore.interface.repository import RulesRepository


logger = logging.getLogger(__name__)


class Item:
    """
    A wrapper around one node of the repository.

    Wrappers are cheap and created per access; they hold no state the
    store does not also hold, apart from caches documented on subclasses.
    """

    def __init__(self, repository: "RulesRepository", node: Node):
        """
        Args:
            repository: The repository this item was loaded from
            node: The node this item corresponds to
        """
        self.repository = repository
        self.node = node

    @property
    def store(self) -> NodeStore:
        """The node store backing the repository."""
        return self.repository.store

    @property
    def uuid(self) -> str:
        """UUID of the wrapped node."""
        return self.node.uuid

    @property
    def name(self) -> str:
        """Name of the wrapped node."""
        return self.node.name

    def _read_optional(self, node: Node, property_name: str):
        """Read a property, returning None if it is absent."""
        try:
            if not self.store.has_property(node, property_name):
                return None
            return self.store.get_property(node, property_name)
        except StoreError as e:
            logger.error(f"Failed to read {property_name} of {node.name}: {e}")
            raise RulesRepositoryError.wrap(e) from e

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Item):
            return NotImplemented
        return type(self) is type(other) and self.node.uuid == other.node.uuid

    def __hash__(self) -> int:
        return hash((type(self), self.node.uuid))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, uuid={self.uuid!r})"
