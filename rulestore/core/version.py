"""
Version number generation for rulestore.

Every check-in stamps the head with a caller-visible version marker.
The marker is computed by a pluggable generator from the marker the
item carried before the check-in:

- VersionNumberGenerator: The strategy interface
- IncrementingVersionNumberGenerator: Default, "1", "2", "3", ...

Markers are strings. They are labels for people, not identifiers; the
store identifies versions by UUID.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from rulestore.items.versionable import VersionableItem


class VersionNumberGenerator(ABC):
    """Strategy for computing the next version marker of an item."""

    @abstractmethod
    def calculate_next_version(
        self,
        current_version: Optional[str],
        item: "VersionableItem",
    ) -> str:
        """
        Compute the marker for the check-in in progress.

        Args:
            current_version: Marker before this check-in (None if never set)
            item: The item being checked in

        Returns:
            The new marker
        """
        pass


class IncrementingVersionNumberGenerator(VersionNumberGenerator):
    """
    Integer increment.

    Example:
        gen = IncrementingVersionNumberGenerator()
        gen.calculate_next_version(None, item)  # → "1"
        gen.calculate_next_version("1", item)   # → "2"
    """

    def __init__(self, start: int = 1):
        self.start = start

    def calculate_next_version(
        self,
        current_version: Optional[str],
        item: "VersionableItem",
    ) -> str:
        if current_version is None or not current_version.strip():
            return str(self.start)

        try:
            return str(int(current_version.strip()) + 1)
        except ValueError:
            raise ValueError(
                f"Cannot increment non-numeric version number: {current_version!r}"
            ) from None
