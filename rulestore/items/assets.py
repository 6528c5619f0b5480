"""
Concrete versionable assets.

- RuleItem: A single rule
- FunctionItem: A function rules can call
- DslItem: A domain specific language definition
- RulePackageItem: A named set of rules

Each kind records which node type, format and repository folder it
belongs to; RulesRepository uses these to create and load items.
"""

from __future__ import annotations

import logging
from typing import Optional

from rulestore.core.errors import RepositoryUsageError
from rulestore.core.models import (
    CONTENT_PROPERTY,
    RULE_REFERENCES_PROPERTY,
    ItemFormat,
    Node,
    NodeType,
)
from rulestore.items.versionable import VersionableItem


logger = logging.getLogger(__name__)


class ContentItem(VersionableItem):
    """An asset whose body is a block of source text."""

    node_type: NodeType
    item_format: ItemFormat
    folder_name: str

    @property
    def content(self) -> Optional[str]:
        """Source text of this version."""
        return self._content_property(CONTENT_PROPERTY)

    def update_content(self, content: str) -> None:
        """Replace the source text. Takes effect in history at the next checkin()."""
        self.check_is_updateable()
        self._update_property(CONTENT_PROPERTY, content)


class RuleItem(ContentItem):
    node_type = NodeType.RULE
    item_format = ItemFormat.RULE
    folder_name = "rules"

    def _wrap(self, node: Node) -> "RuleItem":
        return RuleItem(self.repository, node)


class FunctionItem(ContentItem):
    node_type = NodeType.FUNCTION
    item_format = ItemFormat.FUNCTION
    folder_name = "functions"

    def _wrap(self, node: Node) -> "FunctionItem":
        return FunctionItem(self.repository, node)


class DslItem(ContentItem):
    node_type = NodeType.DSL
    item_format = ItemFormat.DSL
    folder_name = "dsls"

    def _wrap(self, node: Node) -> "DslItem":
        return DslItem(self.repository, node)


class RulePackageItem(VersionableItem):
    """
    A package groups rules by reference.

    Membership is versioned with the package: a historical package lists
    the rules it held at that check-in, each resolved to the rule's head.
    """

    node_type = NodeType.RULE_PACKAGE
    item_format = ItemFormat.RULE_PACKAGE
    folder_name = "packages"

    def _wrap(self, node: Node) -> "RulePackageItem":
        return RulePackageItem(self.repository, node)

    def add_rule(self, rule: RuleItem) -> None:
        """
        Add a rule to the package. Adding a rule twice is a no-op.

        Raises:
            RepositoryUsageError: If the rule is a historical version
        """
        self.check_is_updateable()
        if rule.is_historical_version():
            message = f"Package {self.name} can only hold rule heads, got a version of {rule.name}"
            logger.error(message)
            raise RepositoryUsageError(message)

        if not self._add_reference(RULE_REFERENCES_PROPERTY, rule.node):
            logger.info(f"Rule '{rule.name}' already in package: {self.name}")

    def get_rules(self) -> list[RuleItem]:
        """Rules in this version of the package, in the order they were added."""
        return [
            RuleItem(self.repository, node)
            for node in self._resolve_references(RULE_REFERENCES_PROPERTY)
        ]
