"""
Main entry point for rulestore.

This module provides RulesRepository, the repository-wide lookup that
creates and loads assets and categories on top of a NodeStore.

Usage:
    ```python
    from rulestore import RulesRepository

    repo = RulesRepository()

    rule = repo.create_rule("loan-check", "Rejects loans over the limit")
    rule.update_content("when Loan(amount > 10000) then reject()")
    rule.add_category("finance/loans")
    rule.checkin("first draft")          # version "1"

    rule.update_title("Loan check")
    rule.checkin("better title")         # version "2"

    for version in rule.predecessor_versions():
        print(version.version_number, version.title)
    ```

Repository layout:

    /
    ├── rules/           RuleItem heads
    ├── functions/       FunctionItem heads
    ├── dsls/            DslItem heads
    ├── packages/        RulePackageItem heads
    ├── categories/      CategoryItem tree
    └── versionStorage/  version histories (owned by the store)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Type, TypeVar

from rulestore.config import RepositoryConfig, configure_logging
from rulestore.core.errors import RepositoryUsageError, RulesRepositoryError
from rulestore.core.models import (
    CONTENT_PROPERTY,
    DESCRIPTION_PROPERTY,
    FORMAT_PROPERTY,
    FROZEN_PRIMARY_TYPE_PROPERTY,
    LAST_MODIFIED_PROPERTY,
    TITLE_PROPERTY,
    Node,
    NodeType,
)
from rulestore.core.version import IncrementingVersionNumberGenerator, VersionNumberGenerator
from rulestore.items.assets import (
    ContentItem,
    DslItem,
    FunctionItem,
    RuleItem,
    RulePackageItem,
)
from rulestore.items.category import CategoryItem
from rulestore.items.versionable import VersionableItem
from rulestore.storage.engine import InMemoryNodeStore, NodeStore
from rulestore.storage.errors import ItemNotFoundError, PathNotFoundError, StoreError


logger = logging.getLogger(__name__)

T = TypeVar("T", bound=VersionableItem)

CATEGORY_AREA = "categories"

ITEM_KINDS: tuple[Type[VersionableItem], ...] = (
    RuleItem,
    FunctionItem,
    DslItem,
    RulePackageItem,
)


class RulesRepository:
    """
    A repository of versioned rule assets.

    The repository holds the store and the version number generator and
    passes itself to every item it hands out, so several repositories
    (for example over different stores) can coexist in one process.
    """

    def __init__(
        self,
        store: Optional[NodeStore] = None,
        version_number_generator: Optional[VersionNumberGenerator] = None,
    ):
        """
        Initialize the repository, creating its folders if needed.

        Args:
            store: Node store backend (default: InMemoryNodeStore)
            version_number_generator: Version marker strategy
                (default: IncrementingVersionNumberGenerator)
        """
        self.store = store if store is not None else InMemoryNodeStore()
        self.version_number_generator = (
            version_number_generator or IncrementingVersionNumberGenerator()
        )
        self._ensure_areas()

    @classmethod
    def from_config(cls, config: Optional[RepositoryConfig] = None) -> "RulesRepository":
        """
        Build a repository from configuration (default: the environment).

        A configured db_path selects the SQLite store.
        """
        config = config or RepositoryConfig.from_env()
        configure_logging(config.log_level)

        if config.db_path:
            from rulestore.storage.sqlite import SQLiteNodeStore
            store: NodeStore = SQLiteNodeStore(config.db_path, timeout=config.timeout)
        else:
            store = InMemoryNodeStore()

        return cls(
            store=store,
            version_number_generator=IncrementingVersionNumberGenerator(config.version_start),
        )

    def _ensure_areas(self) -> None:
        root = self.store.root()
        names = [kind.folder_name for kind in ITEM_KINDS] + [CATEGORY_AREA]
        missing = [name for name in names if not self.store.has_child(root, name)]
        if not missing:
            return

        with self.store.transaction():
            for name in missing:
                self.store.add_node(root, name, NodeType.FOLDER)
            self.store.save()
        logger.debug(f"Created repository folders: {missing}")

    def _area(self, name: str) -> Node:
        return self.store.get_child(self.store.root(), name)

    # =========================================================================
    # Assets
    # =========================================================================

    def _create_item(
        self,
        kind: Type[T],
        name: str,
        description: str,
        content: Optional[str] = None,
    ) -> T:
        if not name or not name.strip() or "/" in name:
            raise RepositoryUsageError(f"Invalid {kind.__name__} name: {name!r}")

        try:
            with self.store.transaction():
                node = self.store.add_node(self._area(kind.folder_name), name, kind.node_type)
                self.store.set_property(node, TITLE_PROPERTY, name)
                self.store.set_property(node, DESCRIPTION_PROPERTY, description)
                self.store.set_property(node, FORMAT_PROPERTY, kind.item_format.value)
                self.store.set_property(node, LAST_MODIFIED_PROPERTY, datetime.now(timezone.utc))
                if content is not None and issubclass(kind, ContentItem):
                    self.store.set_property(node, CONTENT_PROPERTY, content)
                self.store.save()
        except StoreError as e:
            logger.error(f"Failed to create {kind.__name__} {name}: {e}")
            raise RulesRepositoryError.wrap(e) from e

        logger.info(f"Created {kind.__name__} {name}")
        return kind(self, node)

    def _load_item(self, kind: Type[T], name: str) -> T:
        try:
            node = self.store.get_child(self._area(kind.folder_name), name)
        except PathNotFoundError as e:
            raise RulesRepositoryError(f"{kind.__name__} not found: {name}", e) from e
        return kind(self, node)

    def _list_items(self, kind: Type[T]) -> list[T]:
        return [kind(self, node) for node in self.store.get_children(self._area(kind.folder_name))]

    def create_rule(
        self,
        name: str,
        description: str = "",
        content: Optional[str] = None,
    ) -> RuleItem:
        """
        Create a rule head.

        The rule starts checked out with no version number; its first
        checkin() produces version "1" with the default generator.
        """
        return self._create_item(RuleItem, name, description, content)

    def create_function(
        self,
        name: str,
        description: str = "",
        content: Optional[str] = None,
    ) -> FunctionItem:
        return self._create_item(FunctionItem, name, description, content)

    def create_dsl(
        self,
        name: str,
        description: str = "",
        content: Optional[str] = None,
    ) -> DslItem:
        return self._create_item(DslItem, name, description, content)

    def create_rule_package(self, name: str, description: str = "") -> RulePackageItem:
        return self._create_item(RulePackageItem, name, description)

    def load_rule(self, name: str) -> RuleItem:
        """Load the head of a rule by name."""
        return self._load_item(RuleItem, name)

    def load_function(self, name: str) -> FunctionItem:
        return self._load_item(FunctionItem, name)

    def load_dsl(self, name: str) -> DslItem:
        return self._load_item(DslItem, name)

    def load_rule_package(self, name: str) -> RulePackageItem:
        return self._load_item(RulePackageItem, name)

    def list_rules(self) -> list[RuleItem]:
        return self._list_items(RuleItem)

    def list_functions(self) -> list[FunctionItem]:
        return self._list_items(FunctionItem)

    def list_dsls(self) -> list[DslItem]:
        return self._list_items(DslItem)

    def list_rule_packages(self) -> list[RulePackageItem]:
        return self._list_items(RulePackageItem)

    def load_item_by_uuid(self, uuid: str) -> VersionableItem:
        """
        Load any asset by UUID: a head, a version record or a frozen node.

        The wrapper kind follows the asset, so a version of a rule comes
        back as a RuleItem.
        """
        try:
            node = self.store.get_node_by_uuid(uuid)
            node_type = node.node_type
            if node_type == NodeType.VERSION:
                frozen = self.store.get_frozen_node(node)
                node_type = NodeType(self.store.get_property(frozen, FROZEN_PRIMARY_TYPE_PROPERTY))
            elif node_type == NodeType.FROZEN:
                node_type = NodeType(self.store.get_property(node, FROZEN_PRIMARY_TYPE_PROPERTY))
        except (ItemNotFoundError, PathNotFoundError) as e:
            raise RulesRepositoryError(f"No asset with UUID {uuid}", e) from e
        except StoreError as e:
            logger.error(f"Failed to load {uuid}: {e}")
            raise RulesRepositoryError.wrap(e) from e

        for kind in ITEM_KINDS:
            if kind.node_type == node_type:
                return kind(self, node)
        raise RulesRepositoryError(f"Node {uuid} ({node_type.value}) is not an asset")

    # =========================================================================
    # Categories
    # =========================================================================

    @staticmethod
    def _split_category_path(path: str) -> list[str]:
        segments = [segment.strip() for segment in path.split("/") if segment.strip()]
        if not segments:
            raise RepositoryUsageError(f"Invalid category path: {path!r}")
        return segments

    def load_category(self, path: str) -> CategoryItem:
        """
        Load a category by path, creating it (and its parents) if missing.

        Loading an existing category never creates a duplicate. New
        categories stay pending like any other edit until save() or the
        next checkin().

        Args:
            path: Slash separated path, e.g. "finance/loans"
        """
        segments = self._split_category_path(path)
        try:
            node = self._area(CATEGORY_AREA)
            created = []
            with self.store.transaction():
                for segment in segments:
                    if self.store.has_child(node, segment):
                        node = self.store.get_child(node, segment)
                    else:
                        node = self.store.add_node(node, segment, NodeType.CATEGORY)
                        created.append(segment)
        except StoreError as e:
            logger.error(f"Failed to load category {path}: {e}")
            raise RulesRepositoryError.wrap(e) from e

        if created:
            logger.info(f"Created category {path}")
        return CategoryItem(self, node)

    def _find_category_node(self, path: str) -> Optional[Node]:
        node = self._area(CATEGORY_AREA)
        for segment in self._split_category_path(path):
            try:
                node = self.store.get_child(node, segment)
            except PathNotFoundError:
                return None
        return node

    def list_categories(self) -> list[CategoryItem]:
        """Top-level categories."""
        return [
            CategoryItem(self, node)
            for node in self.store.get_children(self._area(CATEGORY_AREA))
        ]

    def find_items_by_category(self, path: str) -> list[VersionableItem]:
        """
        Heads of all assets currently tagged with a category.

        Scans every asset; an unknown category matches nothing.
        """
        category = self._find_category_node(path)
        if category is None:
            return []

        matches: list[VersionableItem] = []
        for kind in ITEM_KINDS:
            for item in self._list_items(kind):
                if any(c.uuid == category.uuid for c in item.get_categories()):
                    matches.append(item)
        return matches

    # =========================================================================
    # Utilities
    # =========================================================================

    def save(self) -> None:
        """Persist pending changes without creating versions."""
        try:
            self.store.save()
        except StoreError as e:
            logger.error(f"Failed to save: {e}")
            raise RulesRepositoryError.wrap(e) from e

    def close(self) -> None:
        """Close the underlying store."""
        self.store.close()
