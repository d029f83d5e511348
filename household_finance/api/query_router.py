"""Keyword query router and the handlers it dispatches to."""
import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

from household_finance.config import HIGH_APR_THRESHOLD, TOP_OPPORTUNITIES, TOP_K_SIMILAR
from household_finance.db.sqlite_store import SQLiteStore
from household_finance.exceptions import ValidationError
from household_finance.intelligence.analytics import AnalyticsEngine
from household_finance.intelligence.retrieval import SemanticSearch
from household_finance.intelligence.savings import SavingsEngine
from household_finance.api.ui_composer import UIComposer
from household_finance.models import QueryResponse, SuggestedAction


logger = logging.getLogger(__name__)

Handler = Callable[[str, str, List[Dict[str, Any]]], QueryResponse]

GENERAL_INTENT = "general"

# Evaluated top to bottom; the first intent with a keyword hit wins.
INTENT_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("ingestion", ("upload", "import", "sync")),
    ("savings", ("save", "reduce", "cut", "expense", "spending", "savings opportunity")),
    ("interest", ("interest", "apr", "rate")),
    ("overview", ("overview", "picture", "summary", "income", "earn")),
    ("spending", ("spending", "spend", "expense breakdown")),
    ("insurance", ("insurance", "mortgage")),
]


class Route(NamedTuple):
    intent: str
    keywords: Tuple[str, ...]
    handler: Handler

    def matches(self, query_lower: str) -> bool:
        return any(keyword in query_lower for keyword in self.keywords)


class QueryHandlers:
    """One handler per intent; each returns a message plus structured UI payload."""

    def __init__(
        self,
        store: SQLiteStore,
        analytics: AnalyticsEngine,
        savings: SavingsEngine,
        search: SemanticSearch,
        composer: Optional[UIComposer] = None
    ):
        self.store = store
        self.analytics = analytics
        self.savings = savings
        self.search = search
        self.composer = composer or UIComposer()

    def by_intent(self) -> Dict[str, Handler]:
        return {
            "ingestion": self.ingestion,
            "savings": self.savings_opportunities,
            "interest": self.interest,
            "overview": self.overview,
            "spending": self.spending,
            "insurance": self.insurance_mortgage,
            GENERAL_INTENT: self.general,
        }

    def ingestion(self, household_id: str, query: str, history: List[Dict[str, Any]]) -> QueryResponse:
        return QueryResponse(
            intent="ingestion",
            message="Please use the upload interface to import your financial data."
        )

    def savings_opportunities(self, household_id: str, query: str, history: List[Dict[str, Any]]) -> QueryResponse:
        top = self.savings.find_opportunities(household_id)[:TOP_OPPORTUNITIES]
        total_savings = sum(o.potential_monthly_savings for o in top)

        lines = [f"I found {len(top)} opportunities to reduce your expenses:", ""]
        for opp in top:
            lines.append(f"• {opp.title}: Save ~${opp.potential_monthly_savings:.2f}/month")
        lines.append("")
        lines.append(f"**Total potential monthly savings: ${total_savings:.2f}**")
        lines.append("")
        lines.append("Would you like me to show details for any of these?")

        ui = self.composer.compose_savings_opportunities(top)
        return QueryResponse(
            intent="savings",
            message="\n".join(lines),
            structured_components=ui.components,
            data={"opportunities": [o.model_dump() for o in top], "total_savings": total_savings},
            suggested_actions=[
                SuggestedAction(label="View all opportunities", query="show all savings opportunities"),
                SuggestedAction(label="Set up automatic savings", query="set up savings plan"),
            ]
        )

    def interest(self, household_id: str, query: str, history: List[Dict[str, Any]]) -> QueryResponse:
        liabilities = self.store.get_liabilities(household_id)
        if not liabilities:
            return QueryResponse(
                intent="interest",
                message=(
                    "I don't see any liabilities in your account. If you have debts or loans, "
                    "please add them to get interest rate recommendations."
                )
            )

        lines = ["Here's your interest rate analysis:", ""]
        for liability in liabilities:
            monthly_interest = liability["balance"] * liability["apr"] / 12
            lines.append(f"• **{liability['name']}** ({liability['kind']}):")
            lines.append(f"  - APR: {liability['apr'] * 100:.2f}%")
            lines.append(f"  - Balance: ${liability['balance']:.2f}")
            lines.append(f"  - Monthly interest: ${monthly_interest:.2f}")
            if liability["apr"] > HIGH_APR_THRESHOLD:
                lines.append("  - High interest rate - consider refinancing")
            lines.append("")

        high_apr = [l for l in liabilities if l["apr"] > HIGH_APR_THRESHOLD]
        if not high_apr:
            return QueryResponse(intent="interest", message="\n".join(lines), data={"liabilities": liabilities})

        high_apr_interest = sum(l["balance"] * l["apr"] / 12 for l in high_apr)
        lines.append(
            f"**You're paying ${high_apr_interest:.2f}/month in high-interest debt.** "
            "Consider refinancing to save money."
        )
        ui = self.composer.compose_what_if_slider(
            "Refinance Calculator",
            "See how much you could save by refinancing",
            liability_id=high_apr[0]["id"],
            current_apr=high_apr[0]["apr"],
            new_apr_range=[0.05, 0.15],
            balance=high_apr[0]["balance"],
        )
        return QueryResponse(
            intent="interest",
            message="\n".join(lines),
            structured_components=ui.components,
            data={"liabilities": liabilities, "high_apr_liabilities": high_apr}
        )

    def overview(self, household_id: str, query: str, history: List[Dict[str, Any]]) -> QueryResponse:
        cashflow = self.analytics.cashflow(household_id)
        net_worth = self.analytics.net_worth(household_id)
        breakdown = self.analytics.spend_breakdown(household_id)

        message = "\n".join([
            "Here's your complete financial picture:",
            "",
            "**Income & Expenses:**",
            f"• Income: ${cashflow.income:.2f}/month",
            f"• Expenses: ${cashflow.expenses:.2f}/month",
            f"• Net: ${cashflow.net:.2f}/month",
            "",
            "**Net Worth:**",
            f"• Assets: ${net_worth.assets:.2f}",
            f"• Liabilities: ${net_worth.liabilities:.2f}",
            f"• Net Worth: ${net_worth.net:.2f}",
        ])

        ui = self.composer.compose_dashboard(cashflow, net_worth, breakdown)
        return QueryResponse(
            intent="overview",
            message=message,
            structured_components=ui.components,
            data={
                "cashflow": cashflow.model_dump(),
                "net_worth": net_worth.model_dump(),
                "breakdown": [e.model_dump() for e in breakdown],
            }
        )

    def spending(self, household_id: str, query: str, history: List[Dict[str, Any]]) -> QueryResponse:
        breakdown = self.analytics.spend_breakdown(household_id)
        cashflow = self.analytics.cashflow(household_id)

        lines = ["Here's your spending breakdown:", ""]
        for entry in breakdown[:8]:
            lines.append(f"• {entry.category}: ${entry.total:.2f} ({entry.percentage:.1f}%)")
        lines.append("")
        lines.append(f"**Total spending: ${cashflow.expenses:.2f}**")
        lines.append(f"**Net cashflow: ${cashflow.net:.2f}**")

        ui = self.composer.compose_spending(breakdown)
        return QueryResponse(
            intent="spending",
            message="\n".join(lines),
            structured_components=ui.components,
            data={
                "breakdown": [e.model_dump() for e in breakdown],
                "cashflow": cashflow.model_dump(),
            }
        )

    def insurance_mortgage(self, household_id: str, query: str, history: List[Dict[str, Any]]) -> QueryResponse:
        policies = self.store.get_insurance_policies(household_id)
        mortgages = self.store.get_liabilities(household_id, kind="mortgage")

        lines = []
        if policies:
            lines.append("**Insurance Policies:**")
            for policy in policies:
                lines.append(f"• {policy['kind']} ({policy['provider']}): ${policy['premium_monthly']:.2f}/month")
            total_premium = sum(p["premium_monthly"] for p in policies)
            lines.append(f"Total: ${total_premium:.2f}/month")
            lines.append("")

        if mortgages:
            lines.append("**Mortgage:**")
            for mortgage in mortgages:
                lines.append(f"• Balance: ${mortgage['balance']:.2f}")
                lines.append(f"• APR: {mortgage['apr'] * 100:.2f}%")
                lines.append(f"• Monthly payment: ${mortgage['min_payment']:.2f}")

        if not lines:
            return QueryResponse(
                intent="insurance",
                message=(
                    "I don't see any insurance policies or mortgages in your account. "
                    "Please add them to get recommendations."
                ),
                data={"policies": [], "mortgages": []}
            )

        ui = self.composer.compose_what_if_slider(
            "Insurance Optimization",
            "See how adjusting deductibles affects premiums"
        )
        return QueryResponse(
            intent="insurance",
            message="\n".join(lines).rstrip(),
            structured_components=ui.components,
            data={"policies": policies, "mortgages": mortgages}
        )

    def general(self, household_id: str, query: str, history: List[Dict[str, Any]]) -> QueryResponse:
        """Answer from semantically related transactions and stored insights."""
        transactions = self.search.search("transactions", query, household_id, limit=TOP_K_SIMILAR)
        insights = self.search.search("insights", query, household_id, limit=TOP_K_SIMILAR)

        message_id = self.store.add_chat_message(household_id, "user", query)
        self.search.index("chat_messages", message_id, household_id, query)

        if insights.records:
            lines = ["Based on your financial data, here are some insights:", ""]
            for insight in insights.records[:3]:
                lines.append(f"• {insight['title']}: {insight['body']}")
        else:
            lines = [
                "I have your financial data. How can I help you today? You can ask me about:",
                "• Ways to reduce expenses",
                "• Interest rates and debt management",
                "• Your complete financial picture",
                "• Personalized savings recommendations",
            ]

        degraded = transactions.degraded or insights.degraded
        return QueryResponse(
            intent=GENERAL_INTENT,
            message="\n".join(lines),
            structured_components=(
                self.composer.compose_transaction_table(transactions.records).components
                if transactions.records else []
            ),
            data={
                "transactions": transactions.records,
                "insights": insights.records,
                "degraded": degraded,
            }
        )


class QueryRouter:
    """Stateless dispatcher from free-text queries to intent handlers."""

    def __init__(
        self,
        handlers: Dict[str, Handler],
        intents: Sequence[Tuple[str, Tuple[str, ...]]] = INTENT_KEYWORDS
    ):
        self.routes = [Route(intent, keywords, handlers[intent]) for intent, keywords in intents]
        self.fallback = handlers[GENERAL_INTENT]

    def classify(self, query: str) -> str:
        """Return the intent of the first route whose keywords appear in the query."""
        query_lower = query.lower()
        for route in self.routes:
            if route.matches(query_lower):
                return route.intent
        return GENERAL_INTENT

    def handle(
        self,
        household_id: str,
        query: str,
        history: Optional[List[Dict[str, Any]]] = None
    ) -> QueryResponse:
        """Route a query and return the handler's response with a routing trace."""
        if not household_id:
            raise ValidationError("household_id is required")
        if not query or not query.strip():
            raise ValidationError("query cannot be empty")

        intent = self.classify(query)
        handler = next((r.handler for r in self.routes if r.intent == intent), self.fallback)
        logger.info(f"Routing query for household {household_id} to {intent} handler")

        response = handler(household_id, query, history or [])
        response.trace = [f"Coordinator: routed to {intent}"] + response.trace
        return response
