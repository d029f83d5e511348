"""Result models returned by the analytics, savings and routing layers."""
from typing import Any, Dict, List, Optional, Literal

from pydantic import BaseModel, Field


Severity = Literal["low", "medium", "high"]


class Cashflow(BaseModel):
    income: float = 0
    expenses: float = 0
    net: float = 0
    period: str  # YYYY-MM


class NetWorth(BaseModel):
    assets: float = 0
    liabilities: float = 0
    net: float = 0


class SpendBreakdownEntry(BaseModel):
    category: str
    total: float
    count: int
    percentage: float


class Anomaly(BaseModel):
    category: str
    current_month: float
    average_month: float
    deviation: float  # percent, signed
    severity: Severity


class RecurringGroup(BaseModel):
    """Expense transactions sharing a merchant and category."""
    merchant: str
    category: Optional[str] = None
    count: int
    average_amount: float
    transactions: List[Dict[str, Any]] = []


class SuggestedAction(BaseModel):
    label: str
    query: str


class SavingsOpportunity(BaseModel):
    title: str
    description: str
    potential_monthly_savings: float = Field(ge=0)
    category: str
    actions: List[SuggestedAction] = []
    severity: Severity


class RecommendationSeed(BaseModel):
    type: str
    title: str
    detail: str


class UIComponent(BaseModel):
    type: Literal["dashboard", "chart", "actionCards", "table", "whatIfSlider", "text"]
    data: Any


class UISpec(BaseModel):
    components: List[UIComponent] = []
    layout: Optional[Literal["grid", "stack"]] = None
    title: Optional[str] = None


class QueryResponse(BaseModel):
    intent: str
    message: str
    structured_components: List[UIComponent] = []
    data: Dict[str, Any] = {}
    suggested_actions: List[SuggestedAction] = []
    trace: List[str] = []


class SearchOutcome(BaseModel):
    """Semantic lookup result; ``degraded`` is set when ranking was unavailable."""
    records: List[Dict[str, Any]] = []
    degraded: bool = False
    error: Optional[str] = None


class ScenarioSnapshot(BaseModel):
    apr: float
    monthly_interest: float
    min_payment: float
    payoff_months: float


class ScenarioSavings(BaseModel):
    monthly: float
    total: float
    months_saved: float


class WhatIfResult(BaseModel):
    current: ScenarioSnapshot
    projected: ScenarioSnapshot
    savings: ScenarioSavings
