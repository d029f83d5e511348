"""Finance service - main orchestration layer."""
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
import logging

from household_finance.config import (
    DB_PATH,
    VECTOR_DB_PATH,
    EMBEDDING_DIM,
    INSIGHTS_LIMIT,
    ensure_data_dir
)
from household_finance.db.sqlite_store import SQLiteStore
from household_finance.db.vector_store import VectorStore
from household_finance.exceptions import ValidationError
from household_finance.intelligence.analytics import AnalyticsEngine, MonthLike
from household_finance.intelligence.categorizer import Categorizer
from household_finance.intelligence.embedder import LocalEmbedder, transaction_to_text
from household_finance.intelligence.recommendations import (
    RecommendationManager,
    act_on_recommendation,
)
from household_finance.intelligence.retrieval import SemanticSearch
from household_finance.intelligence.savings import SavingsEngine
from household_finance.api.query_router import QueryHandlers, QueryRouter
from household_finance.api.ui_composer import UIComposer
from household_finance.models import (
    Anomaly,
    Cashflow,
    NetWorth,
    QueryResponse,
    RecurringGroup,
    SavingsOpportunity,
    SpendBreakdownEntry,
    WhatIfResult,
)


logger = logging.getLogger(__name__)


class FinanceService:
    """Main service for the household finance core.

    Wires the ledger store, semantic search and engines together and exposes
    one entry point per household operation.
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        vector_path: Optional[Path] = None,
        store: Optional[SQLiteStore] = None,
        vector_store: Optional[VectorStore] = None,
        embedder: Optional[LocalEmbedder] = None,
        clock: Optional[Callable[[], datetime]] = None,
        enable_search: bool = True
    ):
        """Initialize the finance service.

        Args:
            db_path: Path to SQLite database (default: ~/.household_finance/ledger.db)
            vector_path: Path to vector store (default: ~/.household_finance/vectors)
            store: Pre-built ledger store; overrides db_path
            vector_store: Pre-built vector store; overrides vector_path
            embedder: Pre-built embedder
            clock: Returns the current time; defaults to datetime.now
            enable_search: Build the vector store and embedder when not given
        """
        if store is None:
            if db_path is None:
                ensure_data_dir()
            store = SQLiteStore(db_path or DB_PATH)
        if enable_search:
            if vector_store is None:
                if vector_path is None:
                    ensure_data_dir()
                vector_store = VectorStore(vector_path or VECTOR_DB_PATH, dim=EMBEDDING_DIM)
            embedder = embedder or LocalEmbedder()

        self.store = store
        self.db_path = store.db_path
        self.vector_store = vector_store
        self.embedder = embedder
        self.clock = clock or datetime.now

        self.categorizer = Categorizer()
        self.search = SemanticSearch(self.store, self.vector_store, self.embedder)
        self.analytics = AnalyticsEngine(self.store, clock=self.clock)
        self.savings = SavingsEngine(self.store, self.analytics, search=self.search)
        self.recommendations = RecommendationManager(self.store, clock=self.clock)
        self.composer = UIComposer()
        self.router = QueryRouter(
            QueryHandlers(self.store, self.analytics, self.savings, self.search, self.composer).by_intent()
        )

    def close(self):
        """Close all connections."""
        self.store.close()
        if self.vector_store is not None:
            self.vector_store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @staticmethod
    def _require(household_id: Optional[str]) -> str:
        if not household_id or not str(household_id).strip():
            raise ValidationError("household_id is required")
        return household_id

    # === Ingestion of already-parsed records ===

    def add_transactions(self, household_id: str, transactions: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Categorize, store and index parsed transactions.

        Args:
            household_id: Owning household
            transactions: Dicts with posted_at, amount and optional merchant,
                category, account_id, currency, is_recurring, notes

        Returns:
            Dict with ingestion statistics
        """
        self._require(household_id)
        records = self._categorized(transactions)

        added_ids = self.store.add_transactions(household_id, records)
        logger.info(f"Added {len(added_ids)} transactions for household {household_id}")

        return {
            "added": len(added_ids),
            "indexed": self._index_transactions(household_id, added_ids, records),
            "ids": added_ids,
        }

    def ingest(
        self,
        household_id: str,
        transactions: Optional[List[Dict[str, Any]]] = None,
        liabilities: Optional[List[Dict[str, Any]]] = None,
        insurance_policies: Optional[List[Dict[str, Any]]] = None,
        assets: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """Store a manual entry batch in one commit, then index its transactions.

        Any rejected record leaves the ledger unchanged.

        Returns:
            Dict with the number of records stored per kind and indexed transactions
        """
        self._require(household_id)
        records = self._categorized(transactions or [])

        with self.store.batch():
            txn_ids = self.store.add_transactions(household_id, records)
            liability_ids = [self.store.add_liability(household_id, **l) for l in liabilities or []]
            policy_ids = [self.store.add_insurance_policy(household_id, **p) for p in insurance_policies or []]
            asset_ids = [self.store.add_asset(household_id, **a) for a in assets or []]
        logger.info(
            f"Ingested {len(txn_ids)} transactions, {len(liability_ids)} liabilities, "
            f"{len(policy_ids)} policies and {len(asset_ids)} assets for household {household_id}"
        )

        return {
            "transactions": len(txn_ids),
            "indexed": self._index_transactions(household_id, txn_ids, records),
            "liabilities": len(liability_ids),
            "insurance_policies": len(policy_ids),
            "assets": len(asset_ids),
        }

    def _categorized(self, transactions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        records = []
        for txn in transactions:
            if "posted_at" not in txn or "amount" not in txn:
                raise ValidationError("transactions need posted_at and amount")
            records.append({
                **txn,
                "category": self.categorizer.resolve(txn.get("merchant"), txn.get("category")),
            })
        return records

    def _index_transactions(self, household_id: str, ids: List[int], records: List[Dict[str, Any]]) -> int:
        return self.search.index_many(
            "transactions",
            household_id,
            [(txn_id, transaction_to_text(record)) for txn_id, record in zip(ids, records)]
        )

    def add_liability(self, household_id: str, **fields: Any) -> int:
        return self.store.add_liability(self._require(household_id), **fields)

    def add_insurance_policy(self, household_id: str, **fields: Any) -> int:
        return self.store.add_insurance_policy(self._require(household_id), **fields)

    def add_asset(self, household_id: str, **fields: Any) -> int:
        return self.store.add_asset(self._require(household_id), **fields)

    # === Analytics ===

    def get_cashflow(self, household_id: str, month: Optional[MonthLike] = None) -> Cashflow:
        return self.analytics.cashflow(self._require(household_id), month)

    def get_net_worth(self, household_id: str) -> NetWorth:
        return self.analytics.net_worth(self._require(household_id))

    def get_spend_breakdown(
        self,
        household_id: str,
        start: Optional[MonthLike] = None,
        end: Optional[MonthLike] = None
    ) -> List[SpendBreakdownEntry]:
        return self.analytics.spend_breakdown(self._require(household_id), start, end)

    def detect_anomalies(self, household_id: str) -> List[Anomaly]:
        return self.analytics.detect_anomalies(self._require(household_id))

    def get_recurring_expenses(self, household_id: str) -> List[Dict[str, Any]]:
        return self.analytics.recurring_expenses(self._require(household_id))

    def get_recurring_groups(self, household_id: str) -> List[RecurringGroup]:
        return self.analytics.recurring_groups(self._require(household_id))

    def get_transactions(
        self,
        household_id: str,
        start: Optional[MonthLike] = None,
        end: Optional[MonthLike] = None
    ) -> List[Dict[str, Any]]:
        return self.store.get_transactions(self._require(household_id), start, end)

    # === Savings ===

    def find_savings_opportunities(self, household_id: str) -> List[SavingsOpportunity]:
        return self.savings.find_opportunities(self._require(household_id))

    def generate_insights(self, household_id: str, limit: int = INSIGHTS_LIMIT) -> List[Dict[str, Any]]:
        return self.savings.generate_insights(self._require(household_id), limit=limit)

    def what_if(
        self,
        household_id: str,
        liability_id: int,
        new_apr: Optional[float] = None,
        extra_payment: float = 0
    ) -> WhatIfResult:
        """Project a refinance or extra-payment scenario for one liability."""
        return self.savings.what_if_refinance(
            self._require(household_id), liability_id, new_apr=new_apr, extra_payment=extra_payment
        )

    # === Recommendations ===

    def build_recommendations(self, household_id: str) -> List[Dict[str, Any]]:
        """Seed recommendations from current spend and return the recent actions."""
        self._require(household_id)
        return self.recommendations.refresh(household_id, self.analytics.spend_breakdown(household_id))

    def get_recommendations(self, household_id: str) -> List[Dict[str, Any]]:
        return self.recommendations.list_actions(self._require(household_id))

    def act_on_recommendation(self, action: Dict[str, Any]) -> str:
        return act_on_recommendation(action)

    def approve_recommendation(self, household_id: str, action_id: int) -> Dict[str, Any]:
        return self.recommendations.approve(self._require(household_id), action_id)

    # === Queries ===

    def handle_query(
        self,
        household_id: str,
        text: str,
        history: Optional[List[Dict[str, Any]]] = None
    ) -> QueryResponse:
        return self.router.handle(self._require(household_id), text, history)
