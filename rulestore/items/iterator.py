"""
Lazy iteration over an item's version history.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from rulestore.items.versionable import VersionableItem


class IterationType(str, Enum):
    """Direction of a history walk."""

    PREDECESSOR = "predecessor"
    SUCCESSOR = "successor"


class ItemVersionIterator:
    """
    Walks the version chain of an item one step at a time.

    The item the iterator starts from is not produced. Each step asks the
    previously produced item for its neighbor, so nothing is read until
    it is needed. The iterator is single use:

        for version in rule.predecessor_versions():
            print(version.version_number, version.checkin_comment)
    """

    def __init__(self, item: "VersionableItem", iteration_type: IterationType):
        self._current: Optional["VersionableItem"] = item
        self.iteration_type = IterationType(iteration_type)

    def _step(self, item: "VersionableItem") -> Optional["VersionableItem"]:
        if self.iteration_type == IterationType.PREDECESSOR:
            return item.preceding_version()
        return item.succeeding_version()

    def __iter__(self) -> "ItemVersionIterator":
        return self

    def __next__(self) -> "VersionableItem":
        if self._current is None:
            raise StopIteration

        self._current = self._step(self._current)
        if self._current is None:
            raise StopIteration
        return self._current
