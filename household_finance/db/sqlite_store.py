"""SQLite ledger store for household transactions, debts, insurance and assets."""
import sqlite3
import json
import threading
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import List, Dict, Any, Optional, Union

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from household_finance.config import DEFAULT_CURRENCY, UNCATEGORIZED
from household_finance.exceptions import StoreError, ValidationError
from .schema import SCHEMA_SQL, SEARCHABLE_TABLES


TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"

DateLike = Union[str, date, datetime]


def to_timestamp(value: DateLike) -> str:
    """Normalize a date, datetime or ISO string to the stored timestamp format."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        try:
            dt = date_parser.isoparse(str(value))
        except ValueError as e:
            raise ValidationError(f"Invalid date: {value}") from e
    return dt.replace(tzinfo=None, microsecond=0).strftime(TIMESTAMP_FORMAT)


def to_end_timestamp(value: DateLike) -> str:
    """Normalize an inclusive upper bound.

    A bare day ("2024-06-30" or a date) covers the whole day and a bare month
    ("2024-06") covers the whole month. Datetimes are kept as given.
    """
    if isinstance(value, datetime):
        return to_timestamp(value)
    if isinstance(value, date):
        return to_timestamp(datetime(value.year, value.month, value.day) + timedelta(days=1, seconds=-1))

    text = str(value).strip()
    dt = parse_timestamp(to_timestamp(text))
    if len(text) == 7:
        dt = dt + relativedelta(months=1) - timedelta(seconds=1)
    elif len(text) <= 10:
        dt = dt + timedelta(days=1, seconds=-1)
    return dt.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp back to a naive datetime."""
    return datetime.strptime(value, TIMESTAMP_FORMAT)


def _decode_insight(row: Dict[str, Any]) -> Dict[str, Any]:
    row["data"] = json.loads(row["data"]) if row.get("data") else {}
    return row


class SQLiteStore:
    """SQLite storage for the household ledger.

    Every read and write is scoped by household id. Any sqlite3 failure is
    re-raised as StoreError naming the operation.
    """

    def __init__(self, db_path: Path):
        """Initialize the store with database path."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        # Enable WAL mode for better concurrency
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._lock = threading.RLock()
        self._closed = False
        self._batch_depth = 0
        self._init_schema()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._operation("init_schema"):
            self.conn.executescript(SCHEMA_SQL)
            self.conn.commit()

    @contextmanager
    def _operation(self, name: str):
        """Serialize access to the connection and name failures."""
        with self._lock:
            try:
                yield
            except sqlite3.Error as e:
                if not self._closed:
                    self.conn.rollback()
                raise StoreError(name, e) from e

    @contextmanager
    def batch(self):
        """Group writes into a single commit.

        Any exception inside the block, including ValidationError, rolls back
        every write made in it. Nested batches join the outermost one.
        """
        with self._lock:
            self._batch_depth += 1
            try:
                yield self
            except Exception:
                self._batch_depth -= 1
                if self._batch_depth == 0 and not self._closed:
                    self.conn.rollback()
                raise
            self._batch_depth -= 1
            if self._batch_depth == 0:
                with self._operation("commit_batch"):
                    self.conn.commit()

    def _commit(self) -> None:
        if self._batch_depth == 0:
            self.conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self.conn and not self._closed:
            self.conn.close()
            self._closed = True

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def get_tables(self) -> List[str]:
        """Get list of tables in the database."""
        with self._operation("get_tables"):
            cursor = self.conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            )
            return [row[0] for row in cursor.fetchall()]

    def _fetch_all(self, operation: str, query: str, params=()) -> List[Dict[str, Any]]:
        with self._operation(operation):
            cursor = self.conn.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def _fetch_one(self, operation: str, query: str, params=()) -> Optional[Dict[str, Any]]:
        with self._operation(operation):
            row = self.conn.execute(query, params).fetchone()
            return dict(row) if row else None

    def _insert(self, operation: str, query: str, params) -> int:
        with self._operation(operation):
            cursor = self.conn.execute(query, params)
            self._commit()
            return cursor.lastrowid

    # === Transaction Methods ===

    def add_transaction(
        self,
        household_id: str,
        account_id: str,
        posted_at: DateLike,
        amount: float,
        currency: str = DEFAULT_CURRENCY,
        merchant: Optional[str] = None,
        category: Optional[str] = None,
        is_recurring: bool = False,
        notes: Optional[str] = None
    ) -> int:
        """Add a transaction. Returns the new transaction ID."""
        if not household_id:
            raise ValidationError("household_id is required")
        return self._insert(
            "add_transaction",
            """INSERT INTO transactions
               (household_id, account_id, posted_at, amount, currency, merchant, category, is_recurring, notes)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (household_id, account_id, to_timestamp(posted_at), amount, currency,
             merchant, category, int(bool(is_recurring)), notes)
        )

    def add_transactions(self, household_id: str, transactions: List[Dict[str, Any]]) -> List[int]:
        """Add multiple transactions in one commit, returns list of IDs.

        A bad row rejects the whole batch.
        """
        ids = []
        with self.batch():
            for txn in transactions:
                ids.append(self.add_transaction(
                    household_id=household_id,
                    account_id=txn.get("account_id", "default"),
                    posted_at=txn["posted_at"],
                    amount=txn["amount"],
                    currency=txn.get("currency", DEFAULT_CURRENCY),
                    merchant=txn.get("merchant"),
                    category=txn.get("category"),
                    is_recurring=txn.get("is_recurring", False),
                    notes=txn.get("notes")
                ))
        return ids

    def get_transaction(self, household_id: str, txn_id: int) -> Optional[Dict[str, Any]]:
        """Get a transaction by ID."""
        return self._fetch_one(
            "get_transaction",
            "SELECT * FROM transactions WHERE household_id = ? AND id = ?",
            (household_id, txn_id)
        )

    def get_transactions(
        self,
        household_id: str,
        start: Optional[DateLike] = None,
        end: Optional[DateLike] = None,
        expenses_only: bool = False
    ) -> List[Dict[str, Any]]:
        """Get transactions with optional date window, oldest first."""
        query = "SELECT * FROM transactions WHERE household_id = ?"
        params: List[Any] = [household_id]

        if start is not None:
            query += " AND posted_at >= ?"
            params.append(to_timestamp(start))
        if end is not None:
            query += " AND posted_at <= ?"
            params.append(to_end_timestamp(end))
        if expenses_only:
            query += " AND amount < 0"

        query += " ORDER BY posted_at, id"
        return self._fetch_all("get_transactions", query, params)

    def get_cashflow_totals(self, household_id: str, start: DateLike, end: DateLike) -> Dict[str, Any]:
        """Sum income and expenses in an inclusive window."""
        row = self._fetch_one(
            "get_cashflow_totals",
            """SELECT
                   COALESCE(SUM(CASE WHEN amount >= 0 THEN amount ELSE 0 END), 0) AS income,
                   COALESCE(SUM(CASE WHEN amount < 0 THEN -amount ELSE 0 END), 0) AS expenses,
                   COUNT(*) AS count
               FROM transactions
               WHERE household_id = ? AND posted_at >= ? AND posted_at <= ?""",
            (household_id, to_timestamp(start), to_timestamp(end))
        )
        return row or {"income": 0, "expenses": 0, "count": 0}

    def get_latest_posted_at(self, household_id: str) -> Optional[datetime]:
        """Get the posted timestamp of the most recent transaction."""
        row = self._fetch_one(
            "get_latest_posted_at",
            """SELECT posted_at FROM transactions
               WHERE household_id = ?
               ORDER BY posted_at DESC LIMIT 1""",
            (household_id,)
        )
        return parse_timestamp(row["posted_at"]) if row else None

    def get_category_totals(
        self,
        household_id: str,
        start: Optional[DateLike] = None,
        end: Optional[DateLike] = None
    ) -> List[Dict[str, Any]]:
        """Expense totals and counts grouped by category, largest first."""
        query = """SELECT COALESCE(category, ?) AS category,
                          SUM(ABS(amount)) AS total,
                          COUNT(*) AS count
                   FROM transactions
                   WHERE household_id = ? AND amount < 0"""
        params: List[Any] = [UNCATEGORIZED, household_id]

        if start is not None:
            query += " AND posted_at >= ?"
            params.append(to_timestamp(start))
        if end is not None:
            query += " AND posted_at <= ?"
            params.append(to_end_timestamp(end))

        query += " GROUP BY COALESCE(category, ?) ORDER BY total DESC"
        params.append(UNCATEGORIZED)
        return self._fetch_all("get_category_totals", query, params)

    def get_monthly_category_totals(
        self,
        household_id: str,
        start: DateLike,
        end: DateLike
    ) -> List[Dict[str, Any]]:
        """Expense totals per (category, YYYY-MM) for posted_at in [start, end)."""
        return self._fetch_all(
            "get_monthly_category_totals",
            """SELECT COALESCE(category, ?) AS category,
                      substr(posted_at, 1, 7) AS month,
                      SUM(ABS(amount)) AS total
               FROM transactions
               WHERE household_id = ? AND amount < 0
                 AND posted_at >= ? AND posted_at < ?
               GROUP BY COALESCE(category, ?), substr(posted_at, 1, 7)
               ORDER BY month""",
            (UNCATEGORIZED, household_id, to_timestamp(start), to_timestamp(end), UNCATEGORIZED)
        )

    def get_merchant_category_groups(
        self,
        household_id: str,
        min_count: int,
        limit: int
    ) -> List[Dict[str, Any]]:
        """Expense transactions grouped by (merchant, category) for recurring detection."""
        return self._fetch_all(
            "get_merchant_category_groups",
            """SELECT merchant, category, COUNT(*) AS count,
                      AVG(ABS(amount)) AS avg_amount
               FROM transactions
               WHERE household_id = ? AND amount < 0 AND merchant IS NOT NULL
               GROUP BY merchant, category
               HAVING COUNT(*) >= ?
               ORDER BY count DESC, merchant
               LIMIT ?""",
            (household_id, min_count, limit)
        )

    def get_group_transactions(
        self,
        household_id: str,
        merchant: str,
        category: Optional[str]
    ) -> List[Dict[str, Any]]:
        """Expense transactions for one (merchant, category) group, oldest first."""
        return self._fetch_all(
            "get_group_transactions",
            """SELECT * FROM transactions
               WHERE household_id = ? AND amount < 0
                 AND merchant = ? AND category IS ?
               ORDER BY posted_at, id""",
            (household_id, merchant, category)
        )

    # === Liability / Insurance / Asset Methods ===

    def add_liability(
        self,
        household_id: str,
        name: str,
        kind: str = "other",
        apr: float = 0,
        balance: float = 0,
        min_payment: float = 0,
        payment_frequency: str = "monthly"
    ) -> int:
        """Add a liability. Returns the new liability ID."""
        if balance < 0:
            raise ValidationError("balance must be >= 0")
        return self._insert(
            "add_liability",
            """INSERT INTO liabilities
               (household_id, kind, name, apr, balance, min_payment, payment_frequency)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (household_id, kind, name, apr, balance, min_payment, payment_frequency)
        )

    def get_liabilities(self, household_id: str, kind: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get liabilities, highest APR first."""
        query = "SELECT * FROM liabilities WHERE household_id = ?"
        params: List[Any] = [household_id]
        if kind:
            query += " AND kind = ?"
            params.append(kind)
        query += " ORDER BY apr DESC, id"
        return self._fetch_all("get_liabilities", query, params)

    def get_liability(self, household_id: str, liability_id: int) -> Optional[Dict[str, Any]]:
        """Get a single liability by ID."""
        return self._fetch_one(
            "get_liability",
            "SELECT * FROM liabilities WHERE household_id = ? AND id = ?",
            (household_id, liability_id)
        )

    def get_total_liabilities(self, household_id: str) -> float:
        """Sum of outstanding liability balances."""
        row = self._fetch_one(
            "get_total_liabilities",
            "SELECT COALESCE(SUM(balance), 0) AS total FROM liabilities WHERE household_id = ?",
            (household_id,)
        )
        return row["total"] if row else 0

    def add_insurance_policy(
        self,
        household_id: str,
        provider: str,
        kind: str = "other",
        premium_monthly: float = 0,
        deductible: float = 0,
        renewal_date: Optional[DateLike] = None
    ) -> int:
        """Add an insurance policy. Returns the new policy ID."""
        return self._insert(
            "add_insurance_policy",
            """INSERT INTO insurance_policies
               (household_id, kind, provider, premium_monthly, deductible, renewal_date)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (household_id, kind, provider, premium_monthly, deductible,
             to_timestamp(renewal_date or datetime.now()))
        )

    def get_insurance_policies(self, household_id: str) -> List[Dict[str, Any]]:
        """Get all insurance policies."""
        return self._fetch_all(
            "get_insurance_policies",
            "SELECT * FROM insurance_policies WHERE household_id = ? ORDER BY id",
            (household_id,)
        )

    def add_asset(
        self,
        household_id: str,
        name: str,
        value: float,
        kind: str = "other",
        currency: str = DEFAULT_CURRENCY,
        valuation_date: Optional[DateLike] = None
    ) -> int:
        """Add an asset. Returns the new asset ID."""
        return self._insert(
            "add_asset",
            """INSERT INTO assets (household_id, kind, name, value, currency, valuation_date)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (household_id, kind, name, value, currency,
             to_timestamp(valuation_date or datetime.now()))
        )

    def get_total_assets(self, household_id: str) -> float:
        """Sum of asset values."""
        row = self._fetch_one(
            "get_total_assets",
            "SELECT COALESCE(SUM(value), 0) AS total FROM assets WHERE household_id = ?",
            (household_id,)
        )
        return row["total"] if row else 0

    # === Recommendation Action Methods ===

    def insert_recommendation_if_absent(
        self,
        household_id: str,
        type: str,
        title: str,
        detail: str,
        created_at: DateLike
    ) -> bool:
        """Insert a pending action unless one exists for (household, type).

        Returns True when a row was inserted.
        """
        with self._operation("insert_recommendation_if_absent"):
            cursor = self.conn.execute(
                """INSERT OR IGNORE INTO recommendation_actions
                   (household_id, type, title, detail, status, created_at)
                   VALUES (?, ?, ?, ?, 'pending', ?)""",
                (household_id, type, title, detail, to_timestamp(created_at))
            )
            self._commit()
            return cursor.rowcount == 1

    def get_recommendation(self, household_id: str, action_id: int) -> Optional[Dict[str, Any]]:
        """Get a recommendation action by ID."""
        return self._fetch_one(
            "get_recommendation",
            "SELECT * FROM recommendation_actions WHERE household_id = ? AND id = ?",
            (household_id, action_id)
        )

    def approve_recommendation_if_pending(
        self,
        household_id: str,
        action_id: int,
        approved_at: DateLike,
        result: str
    ) -> bool:
        """Compare-and-set a pending action to approved.

        Returns False when the action was no longer pending.
        """
        stamp = to_timestamp(approved_at)
        with self._operation("approve_recommendation_if_pending"):
            cursor = self.conn.execute(
                """UPDATE recommendation_actions
                   SET status = 'approved', approved_at = ?, completed_at = ?, result = ?
                   WHERE household_id = ? AND id = ? AND status = 'pending'""",
                (stamp, stamp, result, household_id, action_id)
            )
            self._commit()
            return cursor.rowcount == 1

    def get_recommendations(self, household_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Get recommendation actions, newest first."""
        query = """SELECT * FROM recommendation_actions WHERE household_id = ?
                   ORDER BY created_at DESC, id DESC"""
        params: List[Any] = [household_id]
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        return self._fetch_all("get_recommendations", query, params)

    # === Insight / Chat Methods ===

    def add_insight(
        self,
        household_id: str,
        type: str,
        title: str,
        body: str,
        severity: str,
        data: Optional[Dict[str, Any]] = None
    ) -> int:
        """Store an insight. Returns the new insight ID."""
        return self._insert(
            "add_insight",
            """INSERT INTO insights (household_id, type, title, body, severity, data)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (household_id, type, title, body, severity, json.dumps(data or {}))
        )

    def get_insights(self, household_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Get stored insights, newest first."""
        rows = self._fetch_all(
            "get_insights",
            """SELECT * FROM insights WHERE household_id = ?
               ORDER BY created_at DESC, id DESC LIMIT ?""",
            (household_id, limit)
        )
        return [_decode_insight(row) for row in rows]

    def add_chat_message(self, household_id: str, role: str, text: str) -> int:
        """Store a chat message. Returns the new message ID."""
        return self._insert(
            "add_chat_message",
            "INSERT INTO chat_messages (household_id, role, text) VALUES (?, ?, ?)",
            (household_id, role, text)
        )

    def get_chat_messages(self, household_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Get chat messages, newest first."""
        return self._fetch_all(
            "get_chat_messages",
            """SELECT * FROM chat_messages WHERE household_id = ?
               ORDER BY created_at DESC, id DESC LIMIT ?""",
            (household_id, limit)
        )

    # === Generic lookups used by semantic search ===

    def recent_records(self, collection: str, household_id: str, limit: int) -> List[Dict[str, Any]]:
        """Plain filtered lookup, newest first (no ranking)."""
        order_column = SEARCHABLE_TABLES.get(collection)
        if order_column is None:
            raise ValidationError(f"Unknown collection: {collection}")
        rows = self._fetch_all(
            "recent_records",
            f"""SELECT * FROM {collection} WHERE household_id = ?
                ORDER BY {order_column} DESC, id DESC LIMIT ?""",
            (household_id, limit)
        )
        if collection == "insights":
            rows = [_decode_insight(row) for row in rows]
        return rows

    def get_records_by_ids(self, collection: str, household_id: str, ids: List[int]) -> List[Dict[str, Any]]:
        """Fetch records by ID, preserving the order of ``ids``."""
        if collection not in SEARCHABLE_TABLES:
            raise ValidationError(f"Unknown collection: {collection}")
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        rows = self._fetch_all(
            "get_records_by_ids",
            f"SELECT * FROM {collection} WHERE household_id = ? AND id IN ({placeholders})",
            [household_id, *ids]
        )
        if collection == "insights":
            rows = [_decode_insight(row) for row in rows]
        by_id = {row["id"]: row for row in rows}
        return [by_id[i] for i in ids if i in by_id]
