"""Savings engine: turns analytics and debt/insurance records into ranked opportunities."""
import logging
import statistics
from collections import defaultdict
from typing import Any, Dict, List, Optional

from household_finance.config import (
    SUBSCRIPTION_KEYWORDS,
    SUBSCRIPTION_MIN_OCCURRENCES,
    SUBSCRIPTION_SAMPLE_SIZE,
    SUBSCRIPTION_SAVINGS_RATIO,
    SUBSCRIPTION_HIGH_COST,
    SUBSCRIPTION_MEDIUM_COST,
    HIGH_APR_THRESHOLD,
    HIGH_APR_SEVERE,
    HIGH_APR_MIN_BALANCE,
    REFINANCE_APR_REDUCTION,
    REFINANCE_APR_FLOOR,
    INSURANCE_BUNDLE_MIN_POLICIES,
    INSURANCE_BUNDLE_DISCOUNT,
    INSURANCE_BUNDLE_HIGH_SAVINGS,
    INSURANCE_HIGH_PREMIUM,
    INSURANCE_HIGH_DEDUCTIBLE,
    INSURANCE_DEDUCTIBLE_SAVINGS_RATIO,
    FOOD_CATEGORY_KEYWORDS,
    FOOD_SPEND_THRESHOLD,
    FOOD_SPEND_HIGH,
    FOOD_SAVINGS_RATIO,
    ANOMALY_OPPORTUNITY_LIMIT,
    INSIGHTS_LIMIT,
)
from household_finance.db.sqlite_store import SQLiteStore
from household_finance.exceptions import NotFoundError, ValidationError
from household_finance.intelligence.analytics import AnalyticsEngine
from household_finance.intelligence.embedder import insight_to_text
from household_finance.intelligence.retrieval import SemanticSearch
from household_finance.models import (
    SavingsOpportunity,
    ScenarioSavings,
    ScenarioSnapshot,
    SuggestedAction,
    WhatIfResult,
)


logger = logging.getLogger(__name__)


def refinance_apr(apr: float) -> float:
    """APR assumed reachable by refinancing a high-interest debt."""
    return min(REFINANCE_APR_FLOOR, apr - REFINANCE_APR_REDUCTION)


class SavingsEngine:
    """Find ways for a household to reduce monthly spend."""

    def __init__(
        self,
        store: SQLiteStore,
        analytics: AnalyticsEngine,
        search: Optional[SemanticSearch] = None
    ):
        self.store = store
        self.analytics = analytics
        self.search = search

    def find_opportunities(self, household_id: str) -> List[SavingsOpportunity]:
        """Run every detector and rank the results by potential monthly savings."""
        opportunities: List[SavingsOpportunity] = []
        opportunities.extend(self.find_subscriptions(household_id))
        opportunities.extend(self.find_interest_reductions(household_id))
        opportunities.extend(self.find_insurance_savings(household_id))
        opportunities.extend(self.find_food_savings(household_id))
        opportunities.extend(self.find_anomaly_savings(household_id))

        logger.info(f"Found {len(opportunities)} savings opportunities for household {household_id}")
        return sorted(opportunities, key=lambda o: o.potential_monthly_savings, reverse=True)

    def find_subscriptions(self, household_id: str) -> List[SavingsOpportunity]:
        """Recurring merchants that look like subscriptions."""
        by_merchant: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for txn in self.analytics.recurring_expenses(household_id):
            by_merchant[txn["merchant"]].append(txn)

        opportunities = []
        for merchant, transactions in by_merchant.items():
            lower = merchant.lower()
            is_likely_subscription = any(keyword in lower for keyword in SUBSCRIPTION_KEYWORDS)
            if not (is_likely_subscription or len(transactions) >= SUBSCRIPTION_MIN_OCCURRENCES):
                continue

            transactions.sort(key=lambda t: (t["posted_at"], t["id"]))
            recent = transactions[-SUBSCRIPTION_SAMPLE_SIZE:]
            monthly_cost = statistics.mean(abs(t["amount"]) for t in recent)

            if monthly_cost > SUBSCRIPTION_HIGH_COST:
                severity = "high"
            elif monthly_cost > SUBSCRIPTION_MEDIUM_COST:
                severity = "medium"
            else:
                severity = "low"

            opportunities.append(SavingsOpportunity(
                title=f"Review subscription: {merchant}",
                description=(
                    f"You're spending approximately ${monthly_cost:.2f}/month on {merchant}. "
                    "Consider downgrading or canceling if not needed."
                ),
                potential_monthly_savings=monthly_cost * SUBSCRIPTION_SAVINGS_RATIO,
                category="Subscriptions",
                actions=[
                    SuggestedAction(label="View transactions", query=f"show transactions for {merchant}"),
                    SuggestedAction(label="Cancel subscription", query=f"cancel {merchant}"),
                ],
                severity=severity
            ))

        return opportunities

    def find_interest_reductions(self, household_id: str) -> List[SavingsOpportunity]:
        """High-APR debts that could be refinanced."""
        opportunities = []
        for liability in self.store.get_liabilities(household_id):
            apr = liability["apr"]
            balance = liability["balance"]
            if apr <= HIGH_APR_THRESHOLD or balance <= HIGH_APR_MIN_BALANCE:
                continue

            new_apr = refinance_apr(apr)
            monthly_savings = balance * (apr - new_apr) / 12

            opportunities.append(SavingsOpportunity(
                title=f"Consider refinancing {liability['kind']}",
                description=(
                    f"Your {liability['name']} has an APR of {apr * 100:.2f}%. "
                    f"Refinancing could save approximately ${monthly_savings:.2f}/month."
                ),
                potential_monthly_savings=monthly_savings,
                category="Interest Reduction",
                actions=[
                    SuggestedAction(
                        label="Calculate payoff options",
                        query=f"show payoff options for {liability['name']}"
                    ),
                    SuggestedAction(label="Compare rates", query="compare refinance rates"),
                ],
                severity="high" if apr > HIGH_APR_SEVERE else "medium"
            ))

        return opportunities

    def find_insurance_savings(self, household_id: str) -> List[SavingsOpportunity]:
        """Bundling and deductible adjustments across insurance policies."""
        policies = self.store.get_insurance_policies(household_id)
        opportunities = []

        if len(policies) >= INSURANCE_BUNDLE_MIN_POLICIES:
            total_premium = sum(p["premium_monthly"] for p in policies)
            bundling_savings = total_premium * INSURANCE_BUNDLE_DISCOUNT
            opportunities.append(SavingsOpportunity(
                title="Consider bundling insurance policies",
                description=(
                    f"You have {len(policies)} separate insurance policies. "
                    f"Bundling could save approximately ${bundling_savings:.2f}/month."
                ),
                potential_monthly_savings=bundling_savings,
                category="Insurance",
                actions=[
                    SuggestedAction(label="View all policies", query="show all insurance policies"),
                    SuggestedAction(label="Get bundling quotes", query="get insurance bundling quotes"),
                ],
                severity="high" if bundling_savings > INSURANCE_BUNDLE_HIGH_SAVINGS else "medium"
            ))

        for policy in policies:
            if policy["premium_monthly"] > INSURANCE_HIGH_PREMIUM and policy["deductible"] > INSURANCE_HIGH_DEDUCTIBLE:
                opportunities.append(SavingsOpportunity(
                    title=f"Optimize {policy['kind']} insurance deductible",
                    description=(
                        f"Your {policy['kind']} insurance has a high deductible. "
                        "Adjusting deductible levels could reduce premium."
                    ),
                    potential_monthly_savings=policy["premium_monthly"] * INSURANCE_DEDUCTIBLE_SAVINGS_RATIO,
                    category="Insurance",
                    actions=[
                        SuggestedAction(
                            label="Compare deductible options",
                            query=f"compare {policy['kind']} insurance options"
                        ),
                    ],
                    severity="medium"
                ))

        return opportunities

    def find_food_savings(self, household_id: str) -> List[SavingsOpportunity]:
        """Combined food and dining spend above the threshold."""
        total_food_spend = sum(
            entry.total
            for entry in self.analytics.spend_breakdown(household_id)
            if any(keyword in entry.category.lower() for keyword in FOOD_CATEGORY_KEYWORDS)
        )
        if total_food_spend <= FOOD_SPEND_THRESHOLD:
            return []

        potential_savings = total_food_spend * FOOD_SAVINGS_RATIO
        return [SavingsOpportunity(
            title="Optimize food spending",
            description=(
                f"You're spending ${total_food_spend:.2f}/month on food. Reducing dining out and "
                f"optimizing grocery shopping could save ${potential_savings:.2f}/month."
            ),
            potential_monthly_savings=potential_savings,
            category="Food & Dining",
            actions=[
                SuggestedAction(label="View food transactions", query="show food and dining transactions"),
                SuggestedAction(label="Set food budget", query="set monthly food budget"),
            ],
            severity="high" if total_food_spend > FOOD_SPEND_HIGH else "medium"
        )]

    def find_anomaly_savings(self, household_id: str) -> List[SavingsOpportunity]:
        """Categories running above their trailing average this month."""
        rising = [a for a in self.analytics.detect_anomalies(household_id) if a.deviation > 0]

        opportunities = []
        for anomaly in rising[:ANOMALY_OPPORTUNITY_LIMIT]:
            opportunities.append(SavingsOpportunity(
                title=f"Unusual spending in {anomaly.category}",
                description=(
                    f"Your {anomaly.category} spending is {anomaly.deviation:.0f}% higher "
                    "than your 6-month average."
                ),
                potential_monthly_savings=anomaly.current_month - anomaly.average_month,
                category=anomaly.category,
                actions=[
                    SuggestedAction(label="Review transactions", query=f"show transactions in {anomaly.category}"),
                    SuggestedAction(label="Set budget limit", query=f"set budget for {anomaly.category}"),
                ],
                severity=anomaly.severity
            ))
        return opportunities

    def generate_insights(self, household_id: str, limit: int = INSIGHTS_LIMIT) -> List[Dict[str, Any]]:
        """Store the top opportunities as searchable insights.

        Returns:
            The stored insight records
        """
        insights = []
        for opp in self.find_opportunities(household_id)[:limit]:
            insight = {
                "household_id": household_id,
                "type": "savings_opportunity",
                "title": opp.title,
                "body": opp.description,
                "severity": opp.severity,
                "data": {
                    "potential_monthly_savings": opp.potential_monthly_savings,
                    "category": opp.category,
                    "actions": [a.model_dump() for a in opp.actions],
                },
            }
            insight["id"] = self.store.add_insight(**insight)
            if self.search is not None:
                self.search.index("insights", insight["id"], household_id, insight_to_text(insight))
            insights.append(insight)

        logger.info(f"Stored {len(insights)} insights for household {household_id}")
        return insights

    def what_if_refinance(
        self,
        household_id: str,
        liability_id: int,
        new_apr: Optional[float] = None,
        extra_payment: float = 0
    ) -> WhatIfResult:
        """Project interest and payoff time under a new APR and/or extra payment."""
        liability = self.store.get_liability(household_id, liability_id)
        if liability is None:
            raise NotFoundError(f"Liability {liability_id} not found")

        balance = liability["balance"]
        current_payment = liability["min_payment"]
        new_payment = current_payment + (extra_payment or 0)
        if current_payment <= 0 or new_payment <= 0:
            raise ValidationError("Payoff projection needs a positive minimum payment")

        current_interest = balance * liability["apr"] / 12
        projected_apr = new_apr if new_apr is not None else liability["apr"]
        projected_interest = balance * projected_apr / 12

        current_payoff = balance / current_payment
        projected_payoff = balance / new_payment
        monthly_savings = current_interest - projected_interest

        return WhatIfResult(
            current=ScenarioSnapshot(
                apr=liability["apr"],
                monthly_interest=current_interest,
                min_payment=current_payment,
                payoff_months=current_payoff
            ),
            projected=ScenarioSnapshot(
                apr=projected_apr,
                monthly_interest=projected_interest,
                min_payment=new_payment,
                payoff_months=projected_payoff
            ),
            savings=ScenarioSavings(
                monthly=monthly_savings,
                total=monthly_savings * projected_payoff,
                months_saved=max(0, current_payoff - projected_payoff)
            )
        )
