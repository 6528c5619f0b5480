"""
Tests for categories: the category tree and tagging items.
"""

import logging

import pytest

from rulestore.core.errors import RepositoryUsageError, RulesRepositoryError
from rulestore.core.models import CATEGORY_REFERENCES_PROPERTY, Reference
from rulestore.items.category import CategoryItem
from rulestore.storage.errors import ItemNotFoundError


class TestCategoryTree:
    """Tests for loading and building the category tree."""

    def test_load_creates_category(self, repository):
        category = repository.load_category("finance")
        assert isinstance(category, CategoryItem)
        assert category.name == "finance"
        assert category.full_path == "finance"

    def test_load_is_idempotent(self, repository):
        first = repository.load_category("finance")
        second = repository.load_category("finance")
        assert first == second
        assert len(repository.list_categories()) == 1

    def test_nested_path(self, repository):
        loans = repository.load_category("finance/loans")
        assert loans.full_path == "finance/loans"
        assert loans.parent_category().full_path == "finance"
        assert loans.parent_category().parent_category() is None

        finance = repository.load_category("finance")
        assert finance.child_categories() == [loans]

    def test_path_whitespace_and_slashes(self, repository):
        loans = repository.load_category("/finance/ loans /")
        assert loans.full_path == "finance/loans"

    def test_empty_path(self, repository):
        with pytest.raises(RepositoryUsageError):
            repository.load_category("")
        with pytest.raises(RepositoryUsageError):
            repository.load_category(" / ")

    def test_add_subcategory(self, repository):
        finance = repository.load_category("finance")
        loans = finance.add_category("loans", "Loan products")

        assert loans.full_path == "finance/loans"
        assert loans.description == "Loan products"
        assert repository.load_category("finance/loans") == loans

    def test_add_existing_subcategory(self, repository):
        finance = repository.load_category("finance")
        finance.add_category("loans")
        with pytest.raises(RulesRepositoryError):
            finance.add_category("loans")

    def test_description_absent(self, repository):
        assert repository.load_category("finance").description is None

    @pytest.mark.parametrize("name", ["", "  ", "loans/personal"])
    def test_invalid_subcategory_name(self, repository, name):
        """Sub-categories must be reachable through load_category()."""
        finance = repository.load_category("finance")
        with pytest.raises(RepositoryUsageError):
            finance.add_category(name)
        assert finance.child_categories() == []

    def test_failed_subcategory_leaves_nothing(self, repository):
        finance = repository.load_category("finance")
        with pytest.raises(RulesRepositoryError):
            finance.add_category("loans", description={"not": "text"})
        assert finance.child_categories() == []


class TestItemCategories:
    """Tests for tagging items with categories."""

    def test_add_category(self, repository):
        rule = repository.create_rule("loan-rule")
        rule.add_category("finance")
        assert [c.full_path for c in rule.get_categories()] == ["finance"]

    def test_add_category_twice(self, repository):
        """Adding the same category again leaves a single entry."""
        rule = repository.create_rule("loan-rule")
        rule.add_category("finance")
        rule.add_category("finance")
        assert len(rule.get_categories()) == 1

    def test_categories_keep_insertion_order(self, repository):
        rule = repository.create_rule("loan-rule")
        for tag in ["risk", "finance/loans", "finance"]:
            rule.add_category(tag)
        assert [c.full_path for c in rule.get_categories()] == [
            "risk", "finance/loans", "finance"
        ]

    def test_no_categories(self, repository):
        rule = repository.create_rule("loan-rule")
        assert rule.get_categories() == []

    def test_add_category_checks_out_head(self, loan_rule):
        loan_rule.add_category("finance")
        assert loan_rule.store.is_checked_out(loan_rule.node)

    def test_categories_are_versioned(self, loan_rule):
        loan_rule.add_category("finance")
        loan_rule.checkin("tagged")
        loan_rule.add_category("risk")
        loan_rule.checkin("tagged again")

        assert [c.name for c in loan_rule.get_categories()] == ["finance", "risk"]
        previous = loan_rule.preceding_version()
        assert [c.name for c in previous.get_categories()] == ["finance"]
        assert previous.preceding_version().get_categories() == []

    def test_categories_survive_discard_after_checkin(self, repository):
        rule = repository.create_rule("loan-rule")
        rule.add_category("finance")
        rule.checkin("tagged")

        repository.store.discard()
        assert len(repository.load_rule("loan-rule").get_categories()) == 1

    def test_tagging_leaves_other_edits_pending(self, repository):
        """Creating a category for a tag does not save unrelated edits."""
        first = repository.create_rule("a")
        second = repository.create_rule("b")
        first.update_title("pending edit")

        second.add_category("brand-new")
        repository.store.discard()

        assert repository.load_rule("a").title == "a"
        assert repository.find_items_by_category("brand-new") == []


class TestFindItemsByCategory:
    """Tests for looking items up by category."""

    def test_find(self, repository):
        rule = repository.create_rule("loan-rule")
        function = repository.create_function("interest")
        other = repository.create_rule("other-rule")

        rule.add_category("finance")
        function.add_category("finance")
        other.add_category("risk")

        found = repository.find_items_by_category("finance")
        assert set(found) == {rule, function}

    def test_unknown_category(self, repository):
        repository.create_rule("loan-rule")
        assert repository.find_items_by_category("nothing") == []

    def test_nested_category_matches_exactly(self, repository):
        rule = repository.create_rule("loan-rule")
        rule.add_category("finance/loans")

        assert repository.find_items_by_category("finance/loans") == [rule]
        assert repository.find_items_by_category("finance") == []


class TestStoreFailures:
    """Store failures other than absence reach the caller wrapped."""

    def test_dangling_category_reference(self, repository, caplog):
        rule = repository.create_rule("loan-rule")
        repository.store.set_property(
            rule.node, CATEGORY_REFERENCES_PROPERTY, [Reference(uuid="no-such-node")]
        )

        with caplog.at_level(logging.ERROR, logger="rulestore"):
            with pytest.raises(RulesRepositoryError) as exc_info:
                rule.get_categories()

        assert isinstance(exc_info.value.cause, ItemNotFoundError)
        assert any(
            r.levelno == logging.ERROR and CATEGORY_REFERENCES_PROPERTY in r.getMessage()
            for r in caplog.records
        )

    def test_dangling_reference_does_not_block_tagging(self, repository):
        """Tagging scans references by UUID without resolving them."""
        rule = repository.create_rule("loan-rule")
        repository.store.set_property(
            rule.node, CATEGORY_REFERENCES_PROPERTY, [Reference(uuid="no-such-node")]
        )
        rule.add_category("finance")

        refs = repository.store.get_property(rule.node, CATEGORY_REFERENCES_PROPERTY)
        assert len(refs) == 2
