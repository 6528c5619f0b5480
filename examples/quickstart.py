"""
rulestore Quickstart Example

This example walks through the life of a rule:

1. Creating a rule and checking it in
2. Editing the head and producing a second version
3. Walking the version history
4. Tagging with categories and grouping rules in a package
"""

from rulestore import RepositoryUsageError, RulesRepository


def main():
    # ==========================================================================
    # Initialize the repository
    # ==========================================================================
    print("=" * 60)
    print("rulestore Quickstart")
    print("=" * 60)

    # RULESTORE_DB_PATH keeps the repository in a SQLite file
    repo = RulesRepository.from_config()

    # ==========================================================================
    # Create and check in a rule
    # ==========================================================================
    print("\n" + "-" * 40)
    print("Step 1: Creating a rule")
    print("-" * 40)

    rule = repo.create_rule(
        "loan-check",
        "Rejects loan applications over the limit",
        content="when Loan(amount > 10000) then reject()",
    )
    rule.update_title("Loan check")
    rule.checkin("first draft")
    print(f"Checked in: {rule.title} (version {rule.version_number})")

    # ==========================================================================
    # Edit the head
    # ==========================================================================
    print("\n" + "-" * 40)
    print("Step 2: Editing the head")
    print("-" * 40)

    rule.update_content("when Loan(amount > 25000) then reject()")
    rule.update_title("Loan check (raised limit)")
    rule.checkin("raise the limit")
    print(f"Checked in: {rule.title} (version {rule.version_number})")

    # ==========================================================================
    # Walk the history
    # ==========================================================================
    print("\n" + "-" * 40)
    print("Step 3: History")
    print("-" * 40)

    for version in rule.predecessor_versions():
        print(f"  v{version.version_number}: {version.title} - {version.checkin_comment}")
        print(f"      {version.content}")

    first = rule.preceding_version()
    try:
        first.update_title("rewrite history")
    except RepositoryUsageError as e:
        print(f"Historical versions are read only: {e}")

    # ==========================================================================
    # Categories and packages
    # ==========================================================================
    print("\n" + "-" * 40)
    print("Step 4: Categories and packages")
    print("-" * 40)

    rule.add_category("finance/loans")
    rule.add_category("finance/loans")  # already tagged, no-op
    rule.checkin("categorised")
    print(f"Categories: {[c.full_path for c in rule.get_categories()]}")

    package = repo.create_rule_package("lending", "Rules for the lending desk")
    package.add_rule(rule)
    package.checkin("initial package")
    print(f"Package {package.name}: {[r.name for r in package.get_rules()]}")

    tagged = repo.find_items_by_category("finance/loans")
    print(f"Tagged finance/loans: {[item.name for item in tagged]}")

    repo.close()


if __name__ == "__main__":
    main()
