"""
Categories.

Categories form a tree under the repository's category area. Items
refer to categories by reference; a category does not know which items
carry it (see RulesRepository.find_items_by_category).
"""

from __future__ import annotations

import logging
from typing import Optional

from rulestore.core.errors import RepositoryUsageError, RulesRepositoryError
from rulestore.core.models import DESCRIPTION_PROPERTY, NodeType
from rulestore.items.item import Item
from rulestore.storage.errors import StoreError


logger = logging.getLogger(__name__)


class CategoryItem(Item):
    """A node in the category tree."""

    @property
    def full_path(self) -> str:
        """Slash separated path from the category area, e.g. "finance/loans"."""
        names = []
        node = self.node
        try:
            while node is not None and node.node_type == NodeType.CATEGORY:
                names.append(node.name)
                node = self.store.get_parent(node)
        except StoreError as e:
            logger.error(f"Failed to resolve path of category {self.name}: {e}")
            raise RulesRepositoryError.wrap(e) from e
        return "/".join(reversed(names))

    @property
    def description(self) -> Optional[str]:
        return self._read_optional(self.node, DESCRIPTION_PROPERTY)

    def parent_category(self) -> Optional["CategoryItem"]:
        """The enclosing category, None at the top level."""
        parent = self.store.get_parent(self.node)
        if parent is None or parent.node_type != NodeType.CATEGORY:
            return None
        return CategoryItem(self.repository, parent)

    def child_categories(self) -> list["CategoryItem"]:
        return [
            CategoryItem(self.repository, node)
            for node in self.store.get_children(self.node)
            if node.node_type == NodeType.CATEGORY
        ]

    def add_category(self, name: str, description: Optional[str] = None) -> "CategoryItem":
        """
        Create a sub-category and save the session.

        Raises:
            RepositoryUsageError: If the name is empty or contains "/"
            RulesRepositoryError: If the sub-category already exists
        """
        name = name.strip()
        if not name or "/" in name:
            raise RepositoryUsageError(f"Invalid category name: {name!r}")

        try:
            with self.store.transaction():
                node = self.store.add_node(self.node, name, NodeType.CATEGORY)
                if description is not None:
                    self.store.set_property(node, DESCRIPTION_PROPERTY, description)
                self.store.save()
        except StoreError as e:
            logger.error(f"Failed to add category {name} under {self.full_path}: {e}")
            raise RulesRepositoryError.wrap(e) from e

        logger.info(f"Created category {self.full_path}/{name}")
        return CategoryItem(self.repository, node)
