"""
Exceptions raised by NodeStore implementations.
"""


class StoreError(Exception):
    """Base class for node store failures."""

    pass


class PathNotFoundError(StoreError):
    """A property or child node does not exist."""

    pass


class ItemNotFoundError(StoreError):
    """No node exists with the requested UUID."""

    pass


class ItemExistsError(StoreError):
    """A sibling with the same name already exists."""

    pass


class VersionError(StoreError):
    """A write was attempted on a checked-in node."""

    pass


class ConstraintViolationError(StoreError):
    """A write was attempted on a node managed by the version subsystem."""

    pass


class ValueFormatError(StoreError):
    """A property value has an unsupported type."""

    pass


class InvalidItemStateError(StoreError):
    """The node has unsaved changes that prevent the operation."""

    pass


class UnsupportedRepositoryOperationError(StoreError):
    """The store does not provide the requested capability (versioning)."""

    pass


class StoreAccessError(StoreError):
    """The backing database failed (locked, busy, I/O error, corruption)."""

    pass
