"""
Interface layer for rulestore.

Provides RulesRepository, the entry point for creating and loading
assets and categories.
"""

from rulestore.interface.repository import RulesRepository

__all__ = [
    "RulesRepository",
]
