"""Declarative UI payloads (charts, cards, tables) for the rendering layer."""
from typing import Any, Dict, List

from household_finance.config import UNCATEGORIZED
from household_finance.models import (
    Cashflow,
    NetWorth,
    SavingsOpportunity,
    SpendBreakdownEntry,
    UIComponent,
    UISpec,
)


class UIComposer:
    """Build UISpec payloads from analytics results. Holds no state."""

    def compose_dashboard(
        self,
        cashflow: Cashflow,
        net_worth: NetWorth,
        breakdown: List[SpendBreakdownEntry],
        top_categories: int = 5
    ) -> UISpec:
        return UISpec(
            title="Financial Overview",
            layout="grid",
            components=[
                UIComponent(type="dashboard", data={
                    "cashflow": cashflow.model_dump(),
                    "net_worth": net_worth.model_dump(),
                    "top_categories": [e.model_dump() for e in breakdown[:top_categories]],
                }),
                self._pie_chart(breakdown),
            ]
        )

    def compose_spending(self, breakdown: List[SpendBreakdownEntry]) -> UISpec:
        return UISpec(title="Spending", layout="stack", components=[self._pie_chart(breakdown)])

    def compose_savings_opportunities(self, opportunities: List[SavingsOpportunity]) -> UISpec:
        return UISpec(
            title="Savings Opportunities",
            layout="stack",
            components=[
                UIComponent(type="actionCards", data=[
                    {
                        "title": opp.title,
                        "description": opp.description,
                        "savings": opp.potential_monthly_savings,
                        "severity": opp.severity,
                        "actions": [a.model_dump() for a in opp.actions],
                    }
                    for opp in opportunities
                ])
            ]
        )

    def compose_what_if_slider(self, title: str, description: str, **params: Any) -> UISpec:
        return UISpec(
            title=title,
            components=[
                UIComponent(type="whatIfSlider", data={"title": title, "description": description, **params})
            ]
        )

    def compose_transaction_table(self, transactions: List[Dict[str, Any]]) -> UISpec:
        return UISpec(
            title="Transactions",
            components=[
                UIComponent(type="table", data={
                    "columns": ["Date", "Merchant", "Category", "Amount"],
                    "rows": [
                        [
                            str(t.get("posted_at", ""))[:10],
                            t.get("merchant") or "Unknown",
                            t.get("category") or UNCATEGORIZED,
                            f"${abs(t.get('amount') or 0):.2f}",
                        ]
                        for t in transactions
                    ],
                })
            ]
        )

    def _pie_chart(self, breakdown: List[SpendBreakdownEntry]) -> UIComponent:
        return UIComponent(type="chart", data={
            "type": "pie",
            "title": "Spending by Category",
            "data": [
                {"name": e.category, "value": e.total, "percentage": e.percentage}
                for e in breakdown
            ],
        })
