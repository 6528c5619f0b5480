"""
Core models for rulestore.

This module defines the shared primitives:
- Node, NodeType, Reference: Handles and values of the node store
- VersionNumberGenerator: Strategy for version markers
- Repository errors
"""

from rulestore.core.models import ItemFormat, Node, NodeType, Reference
from rulestore.core.version import IncrementingVersionNumberGenerator, VersionNumberGenerator
from rulestore.core.errors import (
    RepositoryError,
    RepositoryUsageError,
    RulesRepositoryError,
    VersioningNotSupportedError,
)

__all__ = [
    "ItemFormat",
    "Node",
    "NodeType",
    "Reference",
    "VersionNumberGenerator",
    "IncrementingVersionNumberGenerator",
    "RepositoryError",
    "RepositoryUsageError",
    "RulesRepositoryError",
    "VersioningNotSupportedError",
]
