"""Tests for the SQLite ledger store."""
import pytest
from pathlib import Path
from datetime import datetime


class TestSQLiteStore:
    """Test cases for SQLiteStore class."""

    def test_init_creates_tables(self, temp_db_path: Path):
        """Store should create all required tables on initialization."""
        from household_finance.db.sqlite_store import SQLiteStore

        store = SQLiteStore(temp_db_path)

        tables = store.get_tables()
        for table in ("transactions", "liabilities", "insurance_policies", "assets",
                      "recommendation_actions", "insights", "chat_messages"):
            assert table in tables
        store.close()

    def test_add_and_get_transaction(self, store, household_id):
        txn_id = store.add_transaction(
            household_id=household_id,
            account_id="checking",
            posted_at="2024-06-03",
            amount=-42.5,
            merchant="STARBUCKS",
            category="Dining"
        )

        assert isinstance(txn_id, int) and txn_id > 0
        txn = store.get_transaction(household_id, txn_id)
        assert txn["posted_at"] == "2024-06-03T00:00:00"
        assert txn["amount"] == -42.5
        assert txn["currency"] == "USD"

    def test_transaction_requires_household(self, store):
        from household_finance.exceptions import ValidationError

        with pytest.raises(ValidationError):
            store.add_transaction(household_id="", account_id="a", posted_at="2024-06-03", amount=-1)

    def test_reads_are_scoped_to_household(self, store, household_id):
        txn_id = store.add_transaction(household_id, "checking", "2024-06-03", -10)

        assert store.get_transaction("someone-else", txn_id) is None
        assert store.get_transactions("someone-else") == []

    def test_category_totals_group_uncategorized(self, store, household_id):
        store.add_transaction(household_id, "checking", "2024-06-01", -30, merchant="A", category="Dining")
        store.add_transaction(household_id, "checking", "2024-06-02", -20, merchant="B")
        store.add_transaction(household_id, "checking", "2024-06-03", 100, merchant="Payroll")

        totals = store.get_category_totals(household_id)

        assert [(r["category"], r["total"], r["count"]) for r in totals] == [
            ("Dining", 30, 1),
            ("Uncategorized", 20, 1),
        ]

    def test_monthly_category_totals_end_is_exclusive(self, store, household_id):
        store.add_transaction(household_id, "checking", "2024-05-31T23:59:59", -10, category="Dining")
        store.add_transaction(household_id, "checking", "2024-06-01", -99, category="Dining")

        rows = store.get_monthly_category_totals(
            household_id, datetime(2024, 1, 1), datetime(2024, 6, 1)
        )

        assert rows == [{"category": "Dining", "month": "2024-05", "total": 10}]

    def test_liability_balance_must_be_non_negative(self, store, household_id):
        from household_finance.exceptions import ValidationError

        with pytest.raises(ValidationError):
            store.add_liability(household_id, name="Card", balance=-1)

    def test_liabilities_ordered_by_apr(self, store, household_id):
        store.add_liability(household_id, name="Car", kind="auto_loan", apr=0.06, balance=8000)
        store.add_liability(household_id, name="Card", kind="credit_card", apr=0.24, balance=3000)

        names = [l["name"] for l in store.get_liabilities(household_id)]

        assert names == ["Card", "Car"]
        assert store.get_total_liabilities(household_id) == 11000
        assert [l["name"] for l in store.get_liabilities(household_id, kind="auto_loan")] == ["Car"]

    def test_totals_default_to_zero(self, store, household_id):
        assert store.get_total_assets(household_id) == 0
        assert store.get_total_liabilities(household_id) == 0

    def test_insert_recommendation_once_per_type(self, store, household_id):
        now = datetime(2024, 6, 15)

        assert store.insert_recommendation_if_absent(household_id, "dining_plan", "Trim", "d", now) is True
        assert store.insert_recommendation_if_absent(household_id, "dining_plan", "Trim", "d", now) is False
        assert len(store.get_recommendations(household_id)) == 1

    def test_approve_only_when_pending(self, store, household_id):
        store.insert_recommendation_if_absent(household_id, "dining_plan", "Trim", "d", datetime(2024, 6, 1))
        action_id = store.get_recommendations(household_id)[0]["id"]

        assert store.approve_recommendation_if_pending(household_id, action_id, datetime(2024, 6, 2), "ok")
        assert not store.approve_recommendation_if_pending(household_id, action_id, datetime(2024, 6, 3), "ok")
        assert store.get_recommendation(household_id, action_id)["approved_at"] == "2024-06-02T00:00:00"

    def test_insight_data_round_trips_as_json(self, store, household_id):
        insight_id = store.add_insight(
            household_id, "savings_opportunity", "Title", "Body", "low",
            data={"potential_monthly_savings": 7.5}
        )

        insight = store.get_insights(household_id)[0]
        assert insight["id"] == insight_id
        assert insight["data"] == {"potential_monthly_savings": 7.5}

    def test_records_by_ids_preserve_order(self, store, household_id):
        first = store.add_chat_message(household_id, "user", "first")
        second = store.add_chat_message(household_id, "user", "second")

        records = store.get_records_by_ids("chat_messages", household_id, [second, first, 999])

        assert [r["text"] for r in records] == ["second", "first"]

    def test_unknown_collection_rejected(self, store, household_id):
        from household_finance.exceptions import ValidationError

        with pytest.raises(ValidationError):
            store.recent_records("accounts", household_id, 5)

    def test_failures_name_the_operation(self, temp_db_path):
        from household_finance.db.sqlite_store import SQLiteStore
        from household_finance.exceptions import StoreError

        store = SQLiteStore(temp_db_path)
        store.close()

        with pytest.raises(StoreError) as exc_info:
            store.get_liabilities("hh-1")

        assert exc_info.value.operation == "get_liabilities"
        assert str(exc_info.value).startswith("get_liabilities: ")


class TestBatchWrites:
    """A batch commits once or not at all."""

    def test_rejected_batch_leaves_ledger_empty(self, store, household_id):
        from household_finance.exceptions import ValidationError

        with pytest.raises(ValidationError):
            store.add_transactions(household_id, [
                {"posted_at": "2024-06-01", "amount": -10, "merchant": "Shell"},
                {"posted_at": "June 2nd", "amount": -20, "merchant": "Shell"},
            ])

        assert store.get_transactions(household_id) == []

    def test_batch_rolls_back_every_kind(self, store, household_id):
        from household_finance.exceptions import ValidationError

        with pytest.raises(ValidationError):
            with store.batch():
                store.add_transaction(household_id, "checking", "2024-06-01", -10)
                store.add_asset(household_id, name="Checking", value=100)
                store.add_liability(household_id, name="Visa", balance=-1)

        assert store.get_transactions(household_id) == []
        assert store.get_total_assets(household_id) == 0

    def test_nested_batch_commits_with_outer(self, store, household_id):
        with store.batch():
            store.add_transactions(household_id, [{"posted_at": "2024-06-01", "amount": -10}])
            store.add_asset(household_id, name="Checking", value=100)

        assert len(store.get_transactions(household_id)) == 1
        assert store.get_total_assets(household_id) == 100

    def test_store_usable_after_rollback(self, store, household_id):
        from household_finance.exceptions import ValidationError

        with pytest.raises(ValidationError):
            store.add_transactions(household_id, [{"posted_at": "nope", "amount": -1}])
        store.add_transaction(household_id, "checking", "2024-06-01", -10)

        assert len(store.get_transactions(household_id)) == 1


class TestWindowBounds:
    """Upper bounds without a time of day are inclusive of the whole day or month."""

    def test_end_day_includes_afternoon(self, store, household_id):
        store.add_transaction(household_id, "checking", "2024-06-30T15:00:00", -10)
        store.add_transaction(household_id, "checking", "2024-07-01T00:00:00", -20)

        rows = store.get_transactions(household_id, start="2024-06-01", end="2024-06-30")

        assert [r["amount"] for r in rows] == [-10]

    def test_end_month_covers_month(self, store, household_id):
        store.add_transaction(household_id, "checking", "2024-06-30T23:59:59", -10)
        store.add_transaction(household_id, "checking", "2024-07-01", -20)

        totals = store.get_category_totals(household_id, "2024-06", "2024-06")

        assert [r["total"] for r in totals] == [10]

    def test_end_datetime_kept_as_given(self, store, household_id):
        store.add_transaction(household_id, "checking", "2024-06-30T15:00:00", -10)

        assert store.get_transactions(household_id, end=datetime(2024, 6, 30, 12)) == []

    @pytest.mark.parametrize("value, expected", [
        ("2024-06-30", "2024-06-30T23:59:59"),
        ("2024-02", "2024-02-29T23:59:59"),
        ("2024-06-30T08:15:00", "2024-06-30T08:15:00"),
    ])
    def test_to_end_timestamp(self, value, expected):
        from household_finance.db.sqlite_store import to_end_timestamp

        assert to_end_timestamp(value) == expected

    def test_end_date_object(self):
        from datetime import date
        from household_finance.db.sqlite_store import to_end_timestamp

        assert to_end_timestamp(date(2024, 6, 30)) == "2024-06-30T23:59:59"
