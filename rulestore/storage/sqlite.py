"""
SQLite storage backend for rulestore.

This module provides a persistent NodeStore using SQLite, suitable for
single-node deployments and development.

Schema Design:
    - nodes: Node handles plus checkout state and version bookkeeping
    - properties: One row per property, values JSON-encoded with a kind tag

Sessions:
    Each thread gets its own connection, and a connection is a session.
    Writes open a transaction that stays open until save(), so pending
    writes are visible to the writing thread only. transaction() nests
    SAVEPOINTs; a transaction it opened for a block that only read is
    closed again on exit.

Errors:
    sqlite3 failures (locked, busy, I/O, corruption) surface as
    StoreAccessError.

Thread Safety:
    SQLite in WAL mode supports concurrent reads with a single writer.
    A second thread writing while another holds unsaved writes blocks
    until the timeout expires, then fails with StoreAccessError.
"""

from __future__ import annotations

import functools
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

from rulestore.core.models import (
    CREATED_PROPERTY,
    FROZEN_PRIMARY_TYPE_PROPERTY,
    FROZEN_UUID_PROPERTY,
    PREDECESSORS_PROPERTY,
    ROOT_VERSION_NAME,
    SUCCESSORS_PROPERTY,
    VERSION_STORAGE_NAME,
    Node,
    NodeType,
    Reference,
    generate_id,
)
from rulestore.storage.engine import NodeStore, _check_value
from rulestore.storage.errors import (
    ConstraintViolationError,
    InvalidItemStateError,
    ItemExistsError,
    ItemNotFoundError,
    PathNotFoundError,
    StoreAccessError,
    UnsupportedRepositoryOperationError,
    ValueFormatError,
    VersionError,
)


def _encode_scalar(value: Any) -> dict[str, Any]:
    # bool before int: bool is an int subclass
    if isinstance(value, Reference):
        return {"k": "reference", "v": value.uuid}
    if isinstance(value, bool):
        return {"k": "boolean", "v": value}
    if isinstance(value, int):
        return {"k": "long", "v": value}
    if isinstance(value, float):
        return {"k": "double", "v": value}
    if isinstance(value, datetime):
        return {"k": "date", "v": value.isoformat()}
    if isinstance(value, str):
        return {"k": "string", "v": value}
    raise ValueFormatError(f"Unsupported value type: {type(value).__name__}")


def _decode_scalar(data: dict[str, Any]) -> Any:
    kind, raw = data["k"], data["v"]
    if kind == "reference":
        return Reference(uuid=raw)
    if kind == "date":
        return datetime.fromisoformat(raw)
    return raw


def encode_value(value: Any) -> tuple[str, int]:
    """Encode a property value into (json, multiple flag)."""
    if isinstance(value, list):
        return json.dumps([_encode_scalar(v) for v in value]), 1
    return json.dumps(_encode_scalar(value)), 0


def decode_value(data: str, multiple: int) -> Any:
    """Decode a property value stored by encode_value."""
    decoded = json.loads(data)
    if multiple:
        return [_decode_scalar(v) for v in decoded]
    return _decode_scalar(decoded)


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Re-raise sqlite3 failures as StoreAccessError."""
    try:
        yield
    except sqlite3.Error as e:
        raise StoreAccessError(f"{operation} failed: {e}") from e


def _translated(method):
    """Run a store method with sqlite3 failures translated."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with _translate_errors(method.__name__):
            return method(self, *args, **kwargs)
    return wrapper


class SQLiteNodeStore(NodeStore):
    """
    SQLite-based node store.

    Usage:
        ```python
        store = SQLiteNodeStore("./rules.db")

        rules = store.add_node(store.root(), "rules", NodeType.FOLDER)
        rule = store.add_node(rules, "loan-check", NodeType.RULE)
        store.set_property(rule, "title", "Loan check")
        store.save()

        version = store.checkin(rule)
        ```
    """

    def __init__(self, db_path: str | Path, timeout: float = 30.0):
        """
        Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file
            timeout: Connection timeout in seconds
        """
        self._db_path = Path(db_path)
        self._timeout = timeout
        self._lock = threading.RLock()

        # Thread-local sessions
        self._local = threading.local()

        self._init_schema()

    def _session(self) -> threading.local:
        """Get the calling thread's session, opening its connection if needed."""
        local = self._local
        if getattr(local, "conn", None) is None:
            conn = sqlite3.connect(
                str(self._db_path),
                timeout=self._timeout,
                check_same_thread=False,
                isolation_level=None,
            )
            # Enable WAL mode for better concurrency
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.row_factory = sqlite3.Row
            local.conn = conn
            local.depth = 0
            local.save_requested = False
            local.pending = False
            local.dirty = set()
        return local

    def _connection(self) -> sqlite3.Connection:
        return self._session().conn

    def _write_connection(self) -> sqlite3.Connection:
        """Get the connection with a write transaction open."""
        session = self._session()
        if not session.conn.in_transaction:
            session.conn.execute("BEGIN")
        session.pending = True
        return session.conn

    @_translated
    def _init_schema(self) -> None:
        """Initialize database schema and the root nodes."""
        with self._lock:
            conn = self._connection()
            conn.execute("BEGIN")
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS nodes (
                    uuid TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    node_type TEXT NOT NULL,
                    parent_uuid TEXT,
                    checked_out INTEGER NOT NULL DEFAULT 1,
                    base_version_uuid TEXT,
                    history_uuid TEXT,
                    created_at TEXT NOT NULL,
                    UNIQUE (parent_uuid, name),
                    FOREIGN KEY (parent_uuid) REFERENCES nodes(uuid)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS properties (
                    node_uuid TEXT NOT NULL,
                    name TEXT NOT NULL,
                    multiple INTEGER NOT NULL DEFAULT 0,
                    value TEXT NOT NULL,
                    PRIMARY KEY (node_uuid, name),
                    FOREIGN KEY (node_uuid) REFERENCES nodes(uuid)
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_parent
                ON nodes(parent_uuid)
            """)

            cursor.execute("SELECT uuid FROM nodes WHERE parent_uuid IS NULL")
            if cursor.fetchone() is None:
                root = self._insert_node(cursor, None, "", NodeType.FOLDER)
                self._insert_node(cursor, root.uuid, VERSION_STORAGE_NAME, NodeType.FOLDER)

            conn.commit()

    # =========================================================================
    # Row helpers
    # =========================================================================

    def _insert_node(
        self,
        cursor: sqlite3.Cursor,
        parent_uuid: Optional[str],
        name: str,
        node_type: NodeType,
    ) -> Node:
        node = Node(uuid=generate_id(), name=name, node_type=node_type, parent_uuid=parent_uuid)
        cursor.execute("""
            INSERT INTO nodes (uuid, name, node_type, parent_uuid, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, (
            node.uuid,
            node.name,
            node.node_type.value,
            node.parent_uuid,
            datetime.now(timezone.utc).isoformat(),
        ))
        return node

    def _write_property(self, cursor: sqlite3.Cursor, uuid: str, name: str, value: Any) -> None:
        data, multiple = encode_value(value)
        cursor.execute("""
            INSERT OR REPLACE INTO properties (node_uuid, name, multiple, value)
            VALUES (?, ?, ?, ?)
        """, (uuid, name, multiple, data))

    def _row(self, uuid: str) -> sqlite3.Row:
        cursor = self._connection().cursor()
        cursor.execute("SELECT * FROM nodes WHERE uuid = ?", (uuid,))
        row = cursor.fetchone()
        if row is None:
            raise ItemNotFoundError(f"Node not found: {uuid}")
        return row

    def _deserialize_node(self, row: sqlite3.Row) -> Node:
        return Node(
            uuid=row["uuid"],
            name=row["name"],
            node_type=NodeType(row["node_type"]),
            parent_uuid=row["parent_uuid"],
        )

    def _require_versioning_row(self, node: Node) -> sqlite3.Row:
        row = self._row(node.uuid)
        if not self._deserialize_node(row).is_versionable():
            raise UnsupportedRepositoryOperationError(
                f"Node {node.name} ({node.node_type.value}) is not versionable"
            )
        return row

    # =========================================================================
    # Nodes
    # =========================================================================

    @_translated
    def root(self) -> Node:
        cursor = self._connection().cursor()
        cursor.execute("SELECT * FROM nodes WHERE parent_uuid IS NULL")
        return self._deserialize_node(cursor.fetchone())

    @_translated
    def add_node(self, parent: Node, name: str, node_type: NodeType) -> Node:
        with self._lock:
            parent = self._deserialize_node(self._row(parent.uuid))
            if parent.is_read_only():
                raise ConstraintViolationError(
                    f"Cannot add children to {parent.node_type.value} node {parent.name}"
                )
            if self.has_child(parent, name):
                raise ItemExistsError(f"Node {parent.name} already has a child named {name}")

            cursor = self._write_connection().cursor()
            node = self._insert_node(cursor, parent.uuid, name, node_type)

            if node.is_versionable():
                storage = self.get_child(self.root(), VERSION_STORAGE_NAME)
                history = self._insert_node(
                    cursor, storage.uuid, node.uuid, NodeType.VERSION_HISTORY
                )
                root_version = self._insert_node(
                    cursor, history.uuid, ROOT_VERSION_NAME, NodeType.VERSION
                )
                self._write_property(
                    cursor, root_version.uuid, CREATED_PROPERTY, datetime.now(timezone.utc)
                )
                cursor.execute("""
                    UPDATE nodes SET history_uuid = ?, base_version_uuid = ?, checked_out = 1
                    WHERE uuid = ?
                """, (history.uuid, root_version.uuid, node.uuid))

            return node

    @_translated
    def get_node_by_uuid(self, uuid: str) -> Node:
        return self._deserialize_node(self._row(uuid))

    @_translated
    def get_child(self, parent: Node, name: str) -> Node:
        cursor = self._connection().cursor()
        cursor.execute(
            "SELECT * FROM nodes WHERE parent_uuid = ? AND name = ?",
            (parent.uuid, name)
        )
        row = cursor.fetchone()
        if row is None:
            raise PathNotFoundError(f"Node {parent.name} has no child named {name}")
        return self._deserialize_node(row)

    @_translated
    def get_children(self, parent: Node) -> list[Node]:
        self._row(parent.uuid)
        cursor = self._connection().cursor()
        cursor.execute(
            "SELECT * FROM nodes WHERE parent_uuid = ? ORDER BY rowid",
            (parent.uuid,)
        )
        return [self._deserialize_node(row) for row in cursor]

    # =========================================================================
    # Properties
    # =========================================================================

    @_translated
    def get_property(self, node: Node, name: str) -> Any:
        self._row(node.uuid)
        cursor = self._connection().cursor()
        cursor.execute(
            "SELECT value, multiple FROM properties WHERE node_uuid = ? AND name = ?",
            (node.uuid, name)
        )
        row = cursor.fetchone()
        if row is None:
            raise PathNotFoundError(f"Node {node.name} has no property {name}")
        return decode_value(row["value"], row["multiple"])

    @_translated
    def set_property(self, node: Node, name: str, value: Any) -> None:
        with self._lock:
            row = self._row(node.uuid)
            node = self._deserialize_node(row)
            if node.is_read_only():
                raise ConstraintViolationError(
                    f"Cannot write property {name} on {node.node_type.value} node {node.name}"
                )
            if node.is_versionable() and not row["checked_out"]:
                raise VersionError(f"Node {node.name} is checked in")
            _check_value(name, value)

            cursor = self._write_connection().cursor()
            if value is None:
                cursor.execute(
                    "DELETE FROM properties WHERE node_uuid = ? AND name = ?",
                    (node.uuid, name)
                )
            else:
                self._write_property(cursor, node.uuid, name, value)
            self._session().dirty.add(node.uuid)

    # =========================================================================
    # Versioning
    # =========================================================================

    @_translated
    def checkout(self, node: Node) -> None:
        with self._lock:
            self._require_versioning_row(node)
            cursor = self._write_connection().cursor()
            cursor.execute("UPDATE nodes SET checked_out = 1 WHERE uuid = ?", (node.uuid,))

    @_translated
    def checkin(self, node: Node) -> Node:
        with self._lock:
            row = self._require_versioning_row(node)
            if node.uuid in self._session().dirty:
                raise InvalidItemStateError(f"Node {node.name} has unsaved changes")

            base_uuid = row["base_version_uuid"]
            if not row["checked_out"]:
                return self.get_node_by_uuid(base_uuid)

            cursor = self._write_connection().cursor()
            history_uuid = row["history_uuid"]
            cursor.execute("SELECT COUNT(*) FROM nodes WHERE parent_uuid = ?", (history_uuid,))
            ordinal = cursor.fetchone()[0]

            version = self._insert_node(cursor, history_uuid, f"v{ordinal}", NodeType.VERSION)
            self._write_property(
                cursor, version.uuid, PREDECESSORS_PROPERTY, [Reference(uuid=base_uuid)]
            )
            self._write_property(
                cursor, version.uuid, CREATED_PROPERTY, datetime.now(timezone.utc)
            )

            frozen = self._insert_node(cursor, version.uuid, row["name"], NodeType.FROZEN)
            cursor.execute("""
                INSERT INTO properties (node_uuid, name, multiple, value)
                SELECT ?, name, multiple, value FROM properties WHERE node_uuid = ?
            """, (frozen.uuid, node.uuid))
            self._write_property(cursor, frozen.uuid, FROZEN_UUID_PROPERTY, node.uuid)
            self._write_property(
                cursor, frozen.uuid, FROZEN_PRIMARY_TYPE_PROPERTY, row["node_type"]
            )

            base = self.get_node_by_uuid(base_uuid)
            try:
                successors = self.get_property(base, SUCCESSORS_PROPERTY)
            except PathNotFoundError:
                successors = []
            self._write_property(
                cursor, base_uuid, SUCCESSORS_PROPERTY,
                successors + [Reference(uuid=version.uuid)]
            )

            cursor.execute("""
                UPDATE nodes SET base_version_uuid = ?, checked_out = 0
                WHERE uuid = ?
            """, (version.uuid, node.uuid))

            # Version records are persisted immediately
            self.save()
            return version

    @_translated
    def is_checked_out(self, node: Node) -> bool:
        row = self._row(node.uuid)
        node = self._deserialize_node(row)
        if not node.is_versionable():
            return not node.is_read_only()
        return bool(row["checked_out"])

    @_translated
    def get_base_version(self, node: Node) -> Node:
        row = self._require_versioning_row(node)
        return self.get_node_by_uuid(row["base_version_uuid"])

    # =========================================================================
    # Session
    # =========================================================================

    @_translated
    def save(self) -> None:
        session = self._session()
        session.dirty.clear()
        if session.depth > 0:
            session.save_requested = True
            return
        if session.conn.in_transaction:
            session.conn.commit()
        session.pending = False

    @_translated
    def discard(self) -> None:
        session = self._session()
        session.dirty.clear()
        if session.conn.in_transaction:
            session.conn.rollback()
        session.pending = False

    @contextmanager
    def transaction(self) -> Iterator["SQLiteNodeStore"]:
        """
        Run a block inside a SAVEPOINT; commit at the outermost level if saved.

        A transaction this block opened and that wrote nothing is ended
        on exit, so the session does not keep reading an old snapshot.
        """
        with _translate_errors("transaction"):
            session = self._session()
            conn = session.conn
            opened = not conn.in_transaction
            if opened:
                conn.execute("BEGIN")

            savepoint = f"rs_tx_{session.depth}"
            dirty = set(session.dirty)
            save_requested = session.save_requested
            pending = session.pending

            conn.execute(f"SAVEPOINT {savepoint}")
            session.depth += 1
        try:
            yield self
        except Exception:
            session.depth -= 1
            with _translate_errors("transaction rollback"):
                conn.execute(f"ROLLBACK TO {savepoint}")
                conn.execute(f"RELEASE {savepoint}")
                if opened:
                    conn.rollback()
            session.dirty = dirty
            session.save_requested = save_requested
            session.pending = pending
            raise

        session.depth -= 1
        with _translate_errors("transaction commit"):
            conn.execute(f"RELEASE {savepoint}")
            if session.depth == 0 and session.save_requested:
                session.save_requested = False
                session.pending = False
                conn.commit()
            elif opened and not session.pending:
                conn.commit()

    @_translated
    def clear(self) -> None:
        """Clear all data and recreate the root nodes."""
        with self._lock:
            conn = self._connection()
            if conn.in_transaction:
                conn.rollback()
            conn.execute("BEGIN")
            conn.execute("DELETE FROM properties")
            conn.execute("DELETE FROM nodes")
            conn.commit()
            session = self._session()
            session.dirty.clear()
            session.pending = False
            self._init_schema()

    @_translated
    def close(self) -> None:
        """Close the calling thread's connection, dropping unsaved writes."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            if conn.in_transaction:
                conn.rollback()
            conn.close()
            self._local.conn = None
