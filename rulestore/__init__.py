"""
rulestore - Versioned rule assets over a node store.

Every asset (rule, rule package, function, DSL) is a mutable head with an
immutable history of prior revisions, plus a set of category tags.

Layers:
- Storage: NodeStore contract with in-memory and SQLite backends
- Items: VersionableItem and its concrete kinds, history iteration,
  categories
- Interface: RulesRepository, the repository-wide lookup
"""
from rulestore.config import RepositoryConfig, configure_logging
from rulestore.core.errors import (
    RepositoryError,
    RepositoryUsageError,
    RulesRepositoryError,
    VersioningNotSupportedError,
)
from rulestore.core.models import ItemFormat, Node, NodeType, Reference
from rulestore.core.version import IncrementingVersionNumberGenerator, VersionNumberGenerator
from rulestore.storage.engine import NodeStore, InMemoryNodeStore
from rulestore.storage.sqlite import SQLiteNodeStore
from rulestore.items.category import CategoryItem
from rulestore.items.iterator import ItemVersionIterator, IterationType
from rulestore.items.versionable import VersionableItem
from rulestore.items.assets import DslItem, FunctionItem, RuleItem, RulePackageItem
from rulestore.interface.repository import RulesRepository

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "RepositoryConfig",
    "configure_logging",
    # Errors
    "RepositoryError",
    "RepositoryUsageError",
    "RulesRepositoryError",
    "VersioningNotSupportedError",
    # Core models
    "ItemFormat",
    "Node",
    "NodeType",
    "Reference",
    # Versioning
    "VersionNumberGenerator",
    "IncrementingVersionNumberGenerator",
    # Storage
    "NodeStore",
    "InMemoryNodeStore",
    "SQLiteNodeStore",
    # Items
    "CategoryItem",
    "ItemVersionIterator",
    "IterationType",
    "VersionableItem",
    "RuleItem",
    "FunctionItem",
    "DslItem",
    "RulePackageItem",
    # Repository
    "RulesRepository",
]
