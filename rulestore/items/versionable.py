"""
Versionable items.

A VersionableItem wraps either the head of an asset (mutable once
checked out) or one of its historical versions (read only). Both expose
the same metadata accessors: for a historical version they read the
frozen copy the store made at check-in time.

Lifecycle of a head:

    checkout()          update_*() / add_category()        checkin(comment)
    committed ────────► mutable ─────────────────────────► committed + new version

Metadata follows the Dublin Core element names where one exists
(http://dublincore.org/documents/dces/).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from rulestore.core.errors import (
    RepositoryError,
    RepositoryUsageError,
    RulesRepositoryError,
    VersioningNotSupportedError,
)
from rulestore.core.models import (
    CATEGORY_REFERENCES_PROPERTY,
    CHECKIN_COMMENT_PROPERTY,
    DESCRIPTION_PROPERTY,
    FORMAT_PROPERTY,
    LAST_MODIFIED_PROPERTY,
    ROOT_VERSION_NAME,
    TITLE_PROPERTY,
    VERSION_NUMBER_PROPERTY,
    Node,
)
from rulestore.items.category import CategoryItem
from rulestore.items.item import Item
from rulestore.items.iterator import ItemVersionIterator, IterationType
from rulestore.storage.errors import (
    PathNotFoundError,
    StoreError,
    UnsupportedRepositoryOperationError,
)


logger = logging.getLogger(__name__)


class VersionableItem(Item, ABC):
    """
    An asset that carries a version history.

    Concrete kinds (rules, packages, functions, DSLs) implement _wrap()
    so that history traversal hands back wrappers of their own kind:

        rule = repository.load_rule("loan-check")
        previous = rule.preceding_version()   # a RuleItem, or None
    """

    def __init__(self, repository, node: Node):
        super().__init__(repository, node)
        # Bound once: a wrapper never moves to another version
        self._content_node: Optional[Node] = None

    @abstractmethod
    def _wrap(self, node: Node) -> "VersionableItem":
        """Wrap another node of this item's history in this item's kind."""
        pass

    # =========================================================================
    # Identity and content resolution
    # =========================================================================

    def is_historical_version(self) -> bool:
        """True if this wraps a version record (read only) instead of the head."""
        return self.store.is_version_type(self.node) or self.store.is_frozen_type(self.node)

    def get_version_content_node(self) -> Node:
        """
        The node holding this item's property values.

        For a version record this is its frozen child; otherwise the
        wrapped node itself. Resolved on first use and cached.
        """
        if self._content_node is None:
            try:
                if self.store.is_version_type(self.node):
                    self._content_node = self.store.get_frozen_node(self.node)
                else:
                    self._content_node = self.node
            except StoreError as e:
                logger.error(f"Failed to resolve content of {self.node.name}: {e}")
                raise RulesRepositoryError.wrap(e) from e
        return self._content_node

    @property
    def name(self) -> str:
        """Name of the item, read from the content node."""
        return self.get_version_content_node().name

    def _content_property(self, property_name: str) -> Any:
        return self._read_optional(self.get_version_content_node(), property_name)

    # =========================================================================
    # Metadata
    # =========================================================================

    @property
    def title(self) -> Optional[str]:
        """Dublin Core title."""
        return self._content_property(TITLE_PROPERTY)

    @property
    def description(self) -> Optional[str]:
        """Dublin Core description."""
        return self._content_property(DESCRIPTION_PROPERTY)

    @property
    def format(self) -> Optional[str]:
        """Dublin Core format, one of the ItemFormat values."""
        return self._content_property(FORMAT_PROPERTY)

    @property
    def checkin_comment(self) -> Optional[str]:
        """Comment given at the check-in that produced this state."""
        return self._content_property(CHECKIN_COMMENT_PROPERTY)

    @property
    def version_number(self) -> Optional[str]:
        """
        Version marker assigned at check-in.

        None until the first check-in. The repository's
        VersionNumberGenerator decides the format.
        """
        return self._content_property(VERSION_NUMBER_PROPERTY)

    @property
    def last_modified(self) -> Optional[datetime]:
        """When this version was last modified."""
        return self._content_property(LAST_MODIFIED_PROPERTY)

    def update_title(self, title: str) -> None:
        """Set a new title. Takes effect in history at the next checkin()."""
        self.check_is_updateable()
        self._update_property(TITLE_PROPERTY, title)

    def update_description(self, description: str) -> None:
        """Set a new description. Takes effect in history at the next checkin()."""
        self.check_is_updateable()
        self._update_property(DESCRIPTION_PROPERTY, description)

    def _update_property(self, property_name: str, value: Any) -> None:
        """Checkout, write and stamp last modified, as one step."""
        try:
            with self.store.transaction():
                self.store.checkout(self.node)
                self.store.set_property(self.node, property_name, value)
                self.store.set_property(
                    self.node, LAST_MODIFIED_PROPERTY, datetime.now(timezone.utc)
                )
        except UnsupportedRepositoryOperationError as e:
            raise self._versioning_not_supported("update", e) from e
        except StoreError as e:
            logger.error(f"Failed to update {property_name} of {self.name}: {e}")
            raise RulesRepositoryError.wrap(e) from e

    # =========================================================================
    # Check-out / check-in
    # =========================================================================

    def check_is_updateable(self) -> None:
        """
        Make sure this is the head and may be changed.

        Raises:
            RepositoryUsageError: If this is a historical version
        """
        if self.is_historical_version():
            message = (
                f"Historical version {self.node.name} of {self.name} is read only; "
                "only the head version can be updated"
            )
            logger.error(message)
            raise RepositoryUsageError(message)

    def checkout(self) -> None:
        """Make the head writable."""
        self.check_is_updateable()
        try:
            self.store.checkout(self.node)
        except UnsupportedRepositoryOperationError as e:
            raise self._versioning_not_supported("checkout", e) from e
        except StoreError as e:
            logger.error(f"Failed to checkout {self.name}: {e}")
            raise RulesRepositoryError.wrap(e) from e

    def checkin(self, comment: str) -> None:
        """
        Save pending changes and freeze them into a new version.

        Stamps last modified, records the comment and assigns the next
        version number. Either all of it happens, including the new
        version, or none of it does.
        """
        self.check_is_updateable()
        try:
            with self.store.transaction():
                self.store.set_property(
                    self.node, LAST_MODIFIED_PROPERTY, datetime.now(timezone.utc)
                )
                self.store.set_property(self.node, CHECKIN_COMMENT_PROPERTY, comment)

                generator = self.repository.version_number_generator
                next_version = generator.calculate_next_version(self.version_number, self)
                self.store.set_property(self.node, VERSION_NUMBER_PROPERTY, next_version)

                self.store.save()
                self.store.checkin(self.node)
        except UnsupportedRepositoryOperationError as e:
            raise self._versioning_not_supported("checkin", e) from e
        except RepositoryError:
            raise
        except Exception as e:
            logger.error(f"Unable to checkin {self.name}: {e}")
            raise RulesRepositoryError("Unable to checkin.", e) from e

        logger.debug(f"Checked in {self.name} as version {next_version}")

    def _versioning_not_supported(
        self,
        operation: str,
        cause: UnsupportedRepositoryOperationError,
    ) -> VersioningNotSupportedError:
        message = (
            f"Cannot {operation} {self.node.name}: {cause}. "
            "Are you sure your node store supports versioning?"
        )
        logger.error(message)
        return VersioningNotSupportedError(message)

    # =========================================================================
    # History
    # =========================================================================

    def _version_record(self) -> Optional[Node]:
        """The version node this wrapper is bound to, None for the head."""
        if self.store.is_version_type(self.node):
            return self.node
        if self.store.is_frozen_type(self.node):
            return self.store.get_parent(self.node)
        return None

    def _preceding_version_node(self) -> Optional[Node]:
        try:
            version_node = self._version_record()
            if version_node is None:
                version_node = self.store.get_base_version(self.node)

            # Linear history: only the first predecessor is followed
            predecessors = self.store.get_predecessor_links(version_node)
            if predecessors:
                predecessor = self.store.get_node_by_uuid(predecessors[0])
                # The root version is not a true predecessor
                if predecessor.name == ROOT_VERSION_NAME:
                    return None
                return predecessor
        except PathNotFoundError:
            pass
        except UnsupportedRepositoryOperationError as e:
            raise self._versioning_not_supported("read the history of", e) from e
        except StoreError as e:
            logger.error(f"Failed to resolve preceding version of {self.name}: {e}")
            raise RulesRepositoryError.wrap(e) from e
        return None

    def _succeeding_version_node(self) -> Optional[Node]:
        try:
            version_node = self._version_record() or self.node
            successors = self.store.get_successor_links(version_node)
            if successors:
                return self.store.get_node_by_uuid(successors[0])
        except PathNotFoundError:
            pass
        except StoreError as e:
            logger.error(f"Failed to resolve succeeding version of {self.name}: {e}")
            raise RulesRepositoryError.wrap(e) from e
        return None

    def preceding_version(self) -> Optional["VersionableItem"]:
        """
        The version before this one, of the same kind as this item.

        For the head this is the version before the one it was last
        checked in as. None if there is no earlier version.
        """
        node = self._preceding_version_node()
        return self._wrap(node) if node is not None else None

    def succeeding_version(self) -> Optional["VersionableItem"]:
        """The version after this one, or None (always None for the head)."""
        node = self._succeeding_version_node()
        return self._wrap(node) if node is not None else None

    def predecessor_versions(self) -> ItemVersionIterator:
        """Iterate over earlier versions, newest first."""
        return ItemVersionIterator(self, IterationType.PREDECESSOR)

    def successor_versions(self) -> ItemVersionIterator:
        """Iterate over later versions, oldest first."""
        return ItemVersionIterator(self, IterationType.SUCCESSOR)

    # =========================================================================
    # References
    # =========================================================================

    def _add_reference(self, property_name: str, target: Node) -> bool:
        """
        Append a reference to a multi-valued property unless already present.

        The property is an ordered set keyed by the referenced UUID; the
        duplicate check scans the list, O(n) per insert. The whole list
        is written back.

        Returns:
            True if the reference was added
        """
        try:
            references = self._read_optional(self.node, property_name) or []
            if any(str(ref) == target.uuid for ref in references):
                return False

            references.append(self.store.create_reference_value(target))
            with self.store.transaction():
                self.store.checkout(self.node)
                self.store.set_property(self.node, property_name, references)
            return True
        except UnsupportedRepositoryOperationError as e:
            raise self._versioning_not_supported("update", e) from e
        except StoreError as e:
            logger.error(f"Failed to update {property_name} of {self.name}: {e}")
            raise RulesRepositoryError.wrap(e) from e

    def _resolve_references(self, property_name: str) -> list[Node]:
        references = self._content_property(property_name) or []
        try:
            return [self.store.get_node_by_uuid(str(ref)) for ref in references]
        except StoreError as e:
            logger.error(f"Failed to resolve {property_name} of {self.name}: {e}")
            raise RulesRepositoryError.wrap(e) from e

    # =========================================================================
    # Categories
    # =========================================================================

    def add_category(self, tag: str) -> None:
        """
        Tag this item with a category, creating the category if needed.

        Adding a category the item already has is a no-op.

        Args:
            tag: Category path, e.g. "finance" or "finance/loans"
        """
        self.check_is_updateable()

        category = self.repository.load_category(tag)
        if not self._add_reference(CATEGORY_REFERENCES_PROPERTY, category.node):
            logger.info(f"Category '{tag}' already exists for item: {self.name}")

    def get_categories(self) -> list[CategoryItem]:
        """Categories of this version, in the order they were added."""
        return [
            CategoryItem(self.repository, node)
            for node in self._resolve_references(CATEGORY_REFERENCES_PROPERTY)
        ]
