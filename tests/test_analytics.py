"""Tests for the analytics engine."""
import pytest
from datetime import datetime

from conftest import FIRST_HALF_2024, add_monthly


class TestCashflow:
    """Monthly income, expenses and net."""

    def test_income_and_expenses_for_month(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        store.add_transaction(household_id, "checking", "2024-06-01", 5000, merchant="Payroll")
        store.add_transaction(household_id, "checking", "2024-06-05", -200, merchant="Safeway")
        store.add_transaction(household_id, "checking", "2024-06-09", -120, merchant="Shell")
        store.add_transaction(household_id, "checking", "2024-05-30", -999, merchant="Shell")

        cashflow = AnalyticsEngine(store, clock=clock).cashflow(household_id)

        assert cashflow.income == 5000
        assert cashflow.expenses == 320
        assert cashflow.net == 4680
        assert cashflow.period == "2024-06"

    def test_last_day_of_month_included(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        store.add_transaction(household_id, "checking", "2024-06-30T23:30:00", -50)

        assert AnalyticsEngine(store, clock=clock).cashflow(household_id).expenses == 50

    def test_explicit_month(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        store.add_transaction(household_id, "checking", "2024-02-10", -75)

        cashflow = AnalyticsEngine(store, clock=clock).cashflow(household_id, "2024-02")

        assert cashflow.expenses == 75
        assert cashflow.period == "2024-02"

    def test_empty_current_month_falls_back_to_latest(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        store.add_transaction(household_id, "checking", "2024-03-12", 1200)
        store.add_transaction(household_id, "checking", "2024-03-14", -300)

        cashflow = AnalyticsEngine(store, clock=clock).cashflow(household_id)

        assert cashflow.period == "2024-03"
        assert cashflow.net == 900

    def test_no_transactions_is_zeroed(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        cashflow = AnalyticsEngine(store, clock=clock).cashflow(household_id)

        assert (cashflow.income, cashflow.expenses, cashflow.net) == (0, 0, 0)
        assert cashflow.period == "2024-06"


class TestSpendBreakdown:
    """Expense totals per category."""

    def test_percentages_sum_to_100(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        for amount, category in [(-60, "Dining"), (-30, "Dining"), (-45.5, "Gas"), (-17.25, None)]:
            store.add_transaction(household_id, "checking", "2024-06-02", amount, category=category)
        store.add_transaction(household_id, "checking", "2024-06-02", 4000, category="Income")

        breakdown = AnalyticsEngine(store, clock=clock).spend_breakdown(household_id)

        assert abs(sum(e.percentage for e in breakdown) - 100) < 0.01
        by_category = {e.category: e for e in breakdown}
        assert by_category["Dining"].count == 2
        assert by_category["Dining"].total == 90
        assert by_category["Uncategorized"].count == 1
        assert "Income" not in by_category

    def test_sorted_by_total(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        store.add_transaction(household_id, "checking", "2024-06-02", -10, category="Gas")
        store.add_transaction(household_id, "checking", "2024-06-02", -80, category="Dining")

        breakdown = AnalyticsEngine(store, clock=clock).spend_breakdown(household_id)

        assert [e.category for e in breakdown] == ["Dining", "Gas"]

    def test_empty(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        assert AnalyticsEngine(store, clock=clock).spend_breakdown(household_id) == []

    def test_window_end_day_inclusive(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        store.add_transaction(household_id, "checking", "2024-06-30T15:00:00", -40, category="Dining")
        store.add_transaction(household_id, "checking", "2024-06-10", -60, category="Gas")
        store.add_transaction(household_id, "checking", "2024-07-01", -500, category="Travel")
        store.add_transaction(household_id, "checking", "2024-05-31T23:00:00", -70, category="Dining")

        breakdown = AnalyticsEngine(store, clock=clock).spend_breakdown(household_id, "2024-06-01", "2024-06-30")

        assert {e.category: e.total for e in breakdown} == {"Gas": 60, "Dining": 40}
        assert abs(sum(e.percentage for e in breakdown) - 100) < 0.01
        assert breakdown[0].percentage == pytest.approx(60)

    def test_window_by_month(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        store.add_transaction(household_id, "checking", "2024-05-31T18:30:00", -25, category="Dining")
        store.add_transaction(household_id, "checking", "2024-06-01", -75, category="Gas")

        breakdown = AnalyticsEngine(store, clock=clock).spend_breakdown(household_id, "2024-05", "2024-05")

        assert [(e.category, e.percentage) for e in breakdown] == [("Dining", 100)]

    def test_window_invalid_date(self, store, household_id, clock):
        from household_finance.exceptions import ValidationError
        from household_finance.intelligence.analytics import AnalyticsEngine

        with pytest.raises(ValidationError):
            AnalyticsEngine(store, clock=clock).spend_breakdown(household_id, end="end of June")


class TestNetWorth:

    def test_assets_minus_liabilities(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        store.add_asset(household_id, name="Savings", value=20000, kind="cash")
        store.add_asset(household_id, name="Car", value=8000, kind="vehicle")
        store.add_liability(household_id, name="Card", balance=3000, apr=0.2)

        net_worth = AnalyticsEngine(store, clock=clock).net_worth(household_id)

        assert net_worth.assets == 28000
        assert net_worth.liabilities == 3000
        assert net_worth.net == 25000


class TestAnomalies:
    """Current month versus trailing monthly average."""

    HISTORY = [(2024, m) for m in range(1, 6)]

    def test_high_severity(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        add_monthly(store, household_id, "Bistro", "Dining", -100, self.HISTORY)
        add_monthly(store, household_id, "Bistro", "Dining", -160, [(2024, 6)])

        anomalies = AnalyticsEngine(store, clock=clock).detect_anomalies(household_id)

        assert len(anomalies) == 1
        assert anomalies[0].category == "Dining"
        assert anomalies[0].average_month == 100
        assert anomalies[0].deviation == pytest.approx(60)
        assert anomalies[0].severity == "high"

    def test_below_threshold_not_reported(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        add_monthly(store, household_id, "Bistro", "Dining", -100, self.HISTORY)
        add_monthly(store, household_id, "Bistro", "Dining", -125, [(2024, 6)])

        assert AnalyticsEngine(store, clock=clock).detect_anomalies(household_id) == []

    def test_drop_in_spend_is_reported(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        add_monthly(store, household_id, "Shell", "Gas", -100, self.HISTORY)
        add_monthly(store, household_id, "Shell", "Gas", -55, [(2024, 6)])

        anomalies = AnalyticsEngine(store, clock=clock).detect_anomalies(household_id)

        assert anomalies[0].deviation == pytest.approx(-45)
        assert anomalies[0].severity == "medium"

    def test_category_without_history_skipped(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        add_monthly(store, household_id, "Delta", "Travel", -900, [(2024, 6)])

        assert AnalyticsEngine(store, clock=clock).detect_anomalies(household_id) == []

    def test_history_outside_window_ignored(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        add_monthly(store, household_id, "Bistro", "Dining", -100, [(2023, 11)])
        add_monthly(store, household_id, "Bistro", "Dining", -500, [(2024, 6)])

        assert AnalyticsEngine(store, clock=clock).detect_anomalies(household_id) == []

    def test_sorted_by_magnitude(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        add_monthly(store, household_id, "Bistro", "Dining", -100, self.HISTORY)
        add_monthly(store, household_id, "Bistro", "Dining", -140, [(2024, 6)])
        add_monthly(store, household_id, "Shell", "Gas", -100, self.HISTORY)
        add_monthly(store, household_id, "Shell", "Gas", -20, [(2024, 6)])

        anomalies = AnalyticsEngine(store, clock=clock).detect_anomalies(household_id)

        assert [a.category for a in anomalies] == ["Gas", "Dining"]


class TestAnomalySeverity:

    @pytest.mark.parametrize("deviation,expected", [
        (35, "low"), (40, "low"), (45, "medium"), (50, "medium"), (51, "high"), (-60, "high"),
    ])
    def test_bands(self, deviation, expected):
        from household_finance.intelligence.analytics import anomaly_severity

        assert anomaly_severity(deviation) == expected


class TestRecurring:
    """Merchant and category groups seen three or more times."""

    def test_groups_with_three_occurrences(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        add_monthly(store, household_id, "Netflix", "Entertainment", -15.99, FIRST_HALF_2024[:3])
        add_monthly(store, household_id, "Gym", "Healthcare", -40, FIRST_HALF_2024[:2])

        groups = AnalyticsEngine(store, clock=clock).recurring_groups(household_id)

        assert [g.merchant for g in groups] == ["Netflix"]
        assert groups[0].count == 3
        assert groups[0].average_amount == pytest.approx(15.99)
        assert len(groups[0].transactions) == 3

    def test_same_merchant_different_category_split(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        add_monthly(store, household_id, "Costco", "Groceries", -120, FIRST_HALF_2024[:3])
        add_monthly(store, household_id, "Costco", "Gas", -50, FIRST_HALF_2024[:2])

        expenses = AnalyticsEngine(store, clock=clock).recurring_expenses(household_id)

        assert len(expenses) == 3
        assert all(t["category"] == "Groceries" for t in expenses)

    def test_income_ignored(self, store, household_id, clock):
        from household_finance.intelligence.analytics import AnalyticsEngine

        add_monthly(store, household_id, "Employer", "Income", 4000, FIRST_HALF_2024)

        assert AnalyticsEngine(store, clock=clock).recurring_expenses(household_id) == []


class TestMonthHelpers:

    def test_end_of_month(self):
        from household_finance.intelligence.analytics import end_of_month

        assert end_of_month(datetime(2024, 2, 10)) == datetime(2024, 2, 29, 23, 59, 59)

    def test_parse_month(self):
        from household_finance.intelligence.analytics import parse_month

        assert parse_month("2024-03") == datetime(2024, 3, 1)
