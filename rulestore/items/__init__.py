"""
Item layer for rulestore.

Wrappers the repository hands out: versionable assets, their history
iterator and categories.
"""

from rulestore.items.item import Item
from rulestore.items.category import CategoryItem
from rulestore.items.iterator import ItemVersionIterator, IterationType
from rulestore.items.versionable import VersionableItem
from rulestore.items.assets import ContentItem, DslItem, FunctionItem, RuleItem, RulePackageItem

__all__ = [
    "Item",
    "CategoryItem",
    "ItemVersionIterator",
    "IterationType",
    "VersionableItem",
    "ContentItem",
    "RuleItem",
    "FunctionItem",
    "DslItem",
    "RulePackageItem",
]
