"""Recommendation lifecycle: seed pending actions, approve them once."""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from household_finance.config import MAX_RECOMMENDATION_SEEDS, RECENT_RECOMMENDATIONS_LIMIT
from household_finance.db.sqlite_store import SQLiteStore
from household_finance.exceptions import NotFoundError
from household_finance.models import RecommendationSeed, SpendBreakdownEntry


logger = logging.getLogger(__name__)

PENDING = "pending"
APPROVED = "approved"


def build_recommendations(breakdown: List[SpendBreakdownEntry]) -> List[RecommendationSeed]:
    """Pick up to three recommendation seeds from the categories a household spends on."""
    categories = [str(entry.category or "").lower() for entry in breakdown]

    def spends_on(*keywords: str) -> bool:
        return any(keyword in category for category in categories for keyword in keywords)

    items = []
    if spends_on("insurance"):
        items.append(RecommendationSeed(
            type="insurance_review",
            title="Shop insurance renewals",
            detail="Compare auto/home quotes yearly to cut premiums."
        ))
    else:
        items.append(RecommendationSeed(
            type="insurance_quote",
            title="Check insurance rates",
            detail="Ask for new quotes on auto and home coverage."
        ))

    if spends_on("utilities"):
        items.append(RecommendationSeed(
            type="utilities_negotiation",
            title="Lower utility bills",
            detail="Switch energy plans or negotiate internet rates."
        ))

    if spends_on("dining", "food"):
        items.append(RecommendationSeed(
            type="dining_plan",
            title="Trim dining spend",
            detail="Set a weekly cap and shift to meal planning."
        ))

    if spends_on("shopping"):
        items.append(RecommendationSeed(
            type="subscription_audit",
            title="Audit subscriptions",
            detail="Cancel unused services and re-negotiate annual plans."
        ))

    if spends_on("transport", "gas"):
        items.append(RecommendationSeed(
            type="commute_optimize",
            title="Optimize commuting",
            detail="Consolidate trips and track fuel rewards."
        ))

    return items[:MAX_RECOMMENDATION_SEEDS]


def act_on_recommendation(action: Dict[str, Any]) -> str:
    """Acknowledgement recorded when an action is approved."""
    action_type = action.get("type", "")
    if "insurance" in action_type:
        return "Queued: preparing an insurance quote request on your behalf."
    if "utilities" in action_type:
        return "Queued: compiling utility plans and negotiation checklist."
    if "subscription" in action_type:
        return "Queued: identifying subscriptions for review and cancellation."
    return "Queued: creating an action plan based on your approval."


class RecommendationManager:
    """Persisted recommendation actions, one per (household, type)."""

    def __init__(self, store: SQLiteStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or datetime.now

    def seed(self, household_id: str, seeds: List[RecommendationSeed]) -> int:
        """Create pending actions for seeds not yet recorded.

        Returns:
            Number of actions inserted
        """
        inserted = 0
        for seed in seeds:
            if self.store.insert_recommendation_if_absent(
                household_id, seed.type, seed.title, seed.detail, self.clock()
            ):
                inserted += 1
        if inserted:
            logger.info(f"Seeded {inserted} recommendation actions for household {household_id}")
        return inserted

    def refresh(self, household_id: str, breakdown: List[SpendBreakdownEntry]) -> List[Dict[str, Any]]:
        """Seed from the current breakdown and return the most recent actions."""
        self.seed(household_id, build_recommendations(breakdown))
        return self.list_actions(household_id)

    def list_actions(self, household_id: str, limit: int = RECENT_RECOMMENDATIONS_LIMIT) -> List[Dict[str, Any]]:
        """Most recent actions first."""
        return self.store.get_recommendations(household_id, limit=limit)

    def approve(self, household_id: str, action_id: int) -> Dict[str, Any]:
        """Approve a pending action.

        Approving an action that is no longer pending returns it unchanged.

        Raises:
            NotFoundError: no action with this id for the household
        """
        existing = self.store.get_recommendation(household_id, action_id)
        if existing is None:
            raise NotFoundError(f"Recommendation action {action_id} not found")

        if existing["status"] != PENDING:
            return existing

        result = act_on_recommendation(existing)
        if self.store.approve_recommendation_if_pending(household_id, action_id, self.clock(), result):
            logger.info(f"Approved recommendation {action_id} ({existing['type']}) for household {household_id}")
        else:
            logger.info(f"Recommendation {action_id} was approved concurrently")

        return self.store.get_recommendation(household_id, action_id)
