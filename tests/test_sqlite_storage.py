"""
Tests for SQLite storage backend.

The shared NodeStore contract is covered in test_storage.py; this module
tests what only the SQLite backend does.

Test Coverage:
    - Value encoding
    - Database persistence
    - Per-thread sessions
    - Concurrent access
    - Database failures
"""

import logging
import sqlite3

import pytest
from datetime import datetime, timezone
from threading import Thread

from rulestore.core.errors import RulesRepositoryError
from rulestore.core.models import NodeType, Reference
from rulestore.interface.repository import RulesRepository
from rulestore.storage.errors import StoreAccessError, ValueFormatError
from rulestore.storage.sqlite import SQLiteNodeStore, decode_value, encode_value


class TestValueEncoding:
    """Tests for property value encoding."""

    def test_scalar_kinds(self):
        assert encode_value(True)[0] == '{"k": "boolean", "v": true}'
        assert encode_value(7)[0] == '{"k": "long", "v": 7}'
        assert encode_value("x")[1] == 0

    def test_decode_keeps_types(self):
        now = datetime.now(timezone.utc)
        for value in [True, 7, 1.5, "x", now, Reference(uuid="abc")]:
            decoded = decode_value(*encode_value(value))
            assert decoded == value
            assert type(decoded) is type(value)

    def test_multiple(self):
        refs = [Reference(uuid="a"), Reference(uuid="b")]
        data, multiple = encode_value(refs)
        assert multiple == 1
        assert decode_value(data, multiple) == refs

    def test_unsupported(self):
        with pytest.raises(ValueFormatError):
            encode_value({"a": 1})


class TestSQLitePersistence:
    """Tests for data persistence across connections."""

    def test_data_persists_after_close(self, db_path):
        """Checked-in versions should survive closing and reopening."""
        repository = RulesRepository(store=SQLiteNodeStore(db_path))
        rule = repository.create_rule("loan-rule")
        rule.update_title("Loan Rule")
        rule.checkin("first")
        repository.close()

        reopened = RulesRepository(store=SQLiteNodeStore(db_path))
        try:
            rule = reopened.load_rule("loan-rule")
            assert rule.title == "Loan Rule"
            assert rule.version_number == "1"
            assert rule.preceding_version() is None
            assert [v.checkin_comment for v in rule.successor_versions()] == []
        finally:
            reopened.close()

    def test_unsaved_writes_lost_on_close(self, db_path):
        repository = RulesRepository(store=SQLiteNodeStore(db_path))
        repository.create_rule("loan-rule")
        repository.load_rule("loan-rule").update_title("draft")
        repository.close()

        reopened = RulesRepository(store=SQLiteNodeStore(db_path))
        try:
            assert reopened.load_rule("loan-rule").title == "loan-rule"
        finally:
            reopened.close()

    def test_history_persists(self, db_path):
        repository = RulesRepository(store=SQLiteNodeStore(db_path))
        rule = repository.create_rule("loan-rule")
        for n in range(3):
            rule.update_description(f"revision {n}")
            rule.checkin(f"checkin {n}")
        repository.close()

        reopened = RulesRepository(store=SQLiteNodeStore(db_path))
        try:
            rule = reopened.load_rule("loan-rule")
            versions = list(rule.predecessor_versions())
            assert [v.description for v in versions] == ["revision 1", "revision 0"]
        finally:
            reopened.close()

    def test_clear_data(self, sqlite_store):
        """Clear should remove everything but the root nodes."""
        sqlite_store.add_node(sqlite_store.root(), "rules", NodeType.FOLDER)
        sqlite_store.save()

        sqlite_store.clear()

        assert not sqlite_store.has_child(sqlite_store.root(), "rules")
        assert sqlite_store.has_child(sqlite_store.root(), "versionStorage")


class TestSQLiteSessions:
    """Each thread's connection is its own session."""

    def test_unsaved_writes_are_private(self, sqlite_store):
        repository = RulesRepository(store=sqlite_store)
        rule = repository.create_rule("loan-rule")
        rule.update_title("draft")

        seen = []

        def read_title():
            try:
                seen.append(repository.load_rule("loan-rule").title)
            finally:
                sqlite_store.close()

        thread = Thread(target=read_title)
        thread.start()
        thread.join()

        assert seen == ["loan-rule"]
        assert rule.title == "draft"

    def test_saved_writes_are_shared(self, sqlite_store):
        repository = RulesRepository(store=sqlite_store)
        rule = repository.create_rule("loan-rule")
        rule.update_title("Loan Rule")
        repository.save()

        seen = []

        def read_title():
            try:
                seen.append(repository.load_rule("loan-rule").title)
            finally:
                sqlite_store.close()

        thread = Thread(target=read_title)
        thread.start()
        thread.join()

        assert seen == ["Loan Rule"]

    def test_read_only_lookup_sees_later_commits(self, sqlite_store):
        """A lookup that only reads must not pin the session to a snapshot."""
        repository = RulesRepository(store=sqlite_store)
        rule = repository.create_rule("loan-rule")
        rule.checkin("first")
        repository.load_category("finance")
        repository.save()

        # Existing category: the lookup reads only
        repository.load_category("finance")

        errors = []

        def check_in_again():
            try:
                other = repository.load_rule("loan-rule")
                other.update_title("Loan Rule v2")
                other.checkin("second")
            except Exception as e:
                errors.append(e)
            finally:
                sqlite_store.close()

        thread = Thread(target=check_in_again)
        thread.start()
        thread.join()

        assert errors == []
        assert repository.load_rule("loan-rule").version_number == "2"


class TestSQLiteConcurrency:
    """Tests for concurrent access."""

    def test_concurrent_reads(self, sqlite_store):
        """Should handle concurrent reads safely."""
        repository = RulesRepository(store=sqlite_store)
        rule = repository.create_rule("loan-rule")
        rule.checkin("first")

        results = []
        errors = []

        def read_rule():
            try:
                for _ in range(20):
                    results.append(repository.load_rule("loan-rule").version_number)
            except Exception as e:
                errors.append(e)
            finally:
                sqlite_store.close()

        threads = [Thread(target=read_rule) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(errors) == 0
        assert len(results) == 100
        assert all(v == "1" for v in results)


class TestSQLiteErrors:
    """Database failures surface as store errors, then repository errors."""

    def test_database_failure_is_store_error(self, sqlite_store):
        repository = RulesRepository(store=sqlite_store)
        rule = repository.create_rule("loan-rule")
        sqlite_store._connection().execute("DROP TABLE properties")

        with pytest.raises(StoreAccessError) as exc_info:
            sqlite_store.get_property(rule.node, "title")
        assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)

    def test_item_wraps_database_failure(self, sqlite_store, caplog):
        repository = RulesRepository(store=sqlite_store)
        rule = repository.create_rule("loan-rule")
        sqlite_store._connection().execute("DROP TABLE properties")

        with caplog.at_level(logging.ERROR, logger="rulestore"):
            with pytest.raises(RulesRepositoryError) as exc_info:
                rule.title

        assert isinstance(exc_info.value.cause, StoreAccessError)
        assert any(
            r.levelno == logging.ERROR and "Failed to read title" in r.getMessage()
            for r in caplog.records
        )

    def test_locked_database(self, db_path):
        """A second writer gives up after the timeout with a repository error."""
        store = SQLiteNodeStore(db_path, timeout=0.2)
        repository = RulesRepository(store=store)
        try:
            rule = repository.create_rule("loan-rule")
            rule.update_title("draft")  # holds the write lock, unsaved

            raised = []

            def update_elsewhere():
                try:
                    repository.load_rule("loan-rule").update_title("other")
                except Exception as e:
                    raised.append(e)
                finally:
                    store.close()

            thread = Thread(target=update_elsewhere)
            thread.start()
            thread.join()

            assert len(raised) == 1
            assert isinstance(raised[0], RulesRepositoryError)
            assert isinstance(raised[0].cause, StoreAccessError)
            assert rule.title == "draft"
        finally:
            repository.close()
