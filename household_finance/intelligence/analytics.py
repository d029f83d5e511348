"""Analytics engine: cashflow, net worth, spend breakdown, anomalies, recurring spend."""
import logging
import statistics
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from household_finance.config import (
    ANOMALY_LOOKBACK_MONTHS,
    ANOMALY_MIN_DEVIATION,
    ANOMALY_MEDIUM_DEVIATION,
    ANOMALY_HIGH_DEVIATION,
    RECURRING_MIN_OCCURRENCES,
    RECURRING_MAX_GROUPS,
)
from household_finance.db.sqlite_store import SQLiteStore
from household_finance.exceptions import ValidationError
from household_finance.models import (
    Anomaly,
    Cashflow,
    NetWorth,
    RecurringGroup,
    SpendBreakdownEntry,
)


logger = logging.getLogger(__name__)

MonthLike = Union[str, date, datetime]


def parse_month(month: MonthLike) -> datetime:
    """Accept "YYYY-MM", an ISO date string, a date or a datetime."""
    if isinstance(month, datetime):
        return month
    if isinstance(month, date):
        return datetime(month.year, month.month, month.day)
    try:
        return date_parser.isoparse(str(month)).replace(tzinfo=None)
    except ValueError as e:
        raise ValidationError(f"Invalid month: {month}") from e


def start_of_month(dt: datetime) -> datetime:
    return datetime(dt.year, dt.month, 1)


def end_of_month(dt: datetime) -> datetime:
    """Last second of the month (stored timestamps have second resolution)."""
    return start_of_month(dt) + relativedelta(months=1) - timedelta(seconds=1)


def period_label(dt: datetime) -> str:
    return f"{dt.year:04d}-{dt.month:02d}"


def anomaly_severity(deviation: float) -> str:
    magnitude = abs(deviation)
    if magnitude > ANOMALY_HIGH_DEVIATION:
        return "high"
    if magnitude > ANOMALY_MEDIUM_DEVIATION:
        return "medium"
    return "low"


class AnalyticsEngine:
    """Aggregations over one household's ledger, computed on demand."""

    def __init__(self, store: SQLiteStore, clock: Optional[Callable[[], datetime]] = None):
        """Initialize with SQLite store.

        Args:
            store: SQLiteStore instance
            clock: Returns the current time; defaults to datetime.now
        """
        self.store = store
        self.clock = clock or datetime.now

    def cashflow(self, household_id: str, month: Optional[MonthLike] = None) -> Cashflow:
        """Income, expenses and net for one calendar month.

        Without an explicit month, an empty current month falls back to the
        month of the household's most recent transaction.
        """
        target = parse_month(month) if month else self.clock()
        totals = self.store.get_cashflow_totals(
            household_id, start_of_month(target), end_of_month(target)
        )

        if month is None and totals["count"] == 0:
            latest = self.store.get_latest_posted_at(household_id)
            if latest is not None:
                logger.debug(f"No transactions in {period_label(target)}, using {period_label(latest)}")
                target = latest
                totals = self.store.get_cashflow_totals(
                    household_id, start_of_month(target), end_of_month(target)
                )

        income = totals["income"] or 0
        expenses = totals["expenses"] or 0
        return Cashflow(
            income=income,
            expenses=expenses,
            net=income - expenses,
            period=period_label(target)
        )

    def spend_breakdown(
        self,
        household_id: str,
        start: Optional[MonthLike] = None,
        end: Optional[MonthLike] = None
    ) -> List[SpendBreakdownEntry]:
        """Expense totals per category with each category's share of total spend.

        Both bounds are inclusive; an ``end`` without a time of day covers the
        whole day, or the whole month for "YYYY-MM".
        """
        rows = self.store.get_category_totals(household_id, start or None, end or None)
        total_spend = sum(r["total"] for r in rows)

        return [
            SpendBreakdownEntry(
                category=r["category"],
                total=r["total"],
                count=r["count"],
                percentage=(r["total"] / total_spend) * 100 if total_spend > 0 else 0
            )
            for r in rows
        ]

    def net_worth(self, household_id: str) -> NetWorth:
        """Total assets minus total liability balances."""
        assets = self.store.get_total_assets(household_id) or 0
        liabilities = self.store.get_total_liabilities(household_id) or 0
        return NetWorth(assets=assets, liabilities=liabilities, net=assets - liabilities)

    def detect_anomalies(self, household_id: str) -> List[Anomaly]:
        """Compare this month's category spend with the trailing monthly average.

        The average is the mean of the monthly category totals that exist in the
        preceding ANOMALY_LOOKBACK_MONTHS calendar months. Categories with no
        history are skipped.

        Returns:
            Anomalies sorted by absolute deviation, largest first
        """
        now = self.clock()
        current_start = start_of_month(now)
        current_end = end_of_month(now)
        history_start = current_start - relativedelta(months=ANOMALY_LOOKBACK_MONTHS)

        current = {
            r["category"]: r["total"]
            for r in self.store.get_category_totals(household_id, current_start, current_end)
        }

        history: Dict[str, List[float]] = defaultdict(list)
        for r in self.store.get_monthly_category_totals(household_id, history_start, current_start):
            history[r["category"]].append(r["total"])

        anomalies = []
        for category in sorted(set(current) | set(history)):
            current_total = current.get(category, 0)
            monthly_totals = history.get(category)
            average = statistics.mean(monthly_totals) if monthly_totals else 0

            if average <= 0:
                logger.debug(f"Skipping anomaly check for {category}: no spending history")
                continue

            deviation = (current_total - average) / average * 100
            if abs(deviation) > ANOMALY_MIN_DEVIATION:
                anomalies.append(Anomaly(
                    category=category,
                    current_month=current_total,
                    average_month=average,
                    deviation=deviation,
                    severity=anomaly_severity(deviation)
                ))

        return sorted(anomalies, key=lambda a: abs(a.deviation), reverse=True)

    def recurring_groups(self, household_id: str) -> List[RecurringGroup]:
        """Merchants (per category) charged at least RECURRING_MIN_OCCURRENCES times."""
        groups = []
        for row in self.store.get_merchant_category_groups(
            household_id, RECURRING_MIN_OCCURRENCES, RECURRING_MAX_GROUPS
        ):
            groups.append(RecurringGroup(
                merchant=row["merchant"],
                category=row["category"],
                count=row["count"],
                average_amount=row["avg_amount"],
                transactions=self.store.get_group_transactions(
                    household_id, row["merchant"], row["category"]
                )
            ))
        return groups

    def recurring_expenses(self, household_id: str) -> List[Dict[str, Any]]:
        """Flattened transactions of the recurring groups, most frequent group first."""
        recurring = []
        for group in self.recurring_groups(household_id):
            recurring.extend(group.transactions)
        return recurring
