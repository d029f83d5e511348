"""FastAPI backend for the household finance core."""
import argparse
import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Optional, List, Dict, Any

from fastapi import FastAPI, HTTPException, Depends, Query
from pydantic import BaseModel, Field

from household_finance import __version__
from household_finance.config import API_HOST, API_PORT
from household_finance.api.finance_service import FinanceService
from household_finance.exceptions import (
    FinanceError,
    NotFoundError,
    StoreError,
    ValidationError,
)


logger = logging.getLogger(__name__)


# Global service instance (for production use)
_service: Optional[FinanceService] = None


def get_service() -> FinanceService:
    """Dependency to get the finance service."""
    global _service
    if _service is None:
        _service = FinanceService()
        _service.__enter__()
    return _service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage service lifecycle."""
    yield
    global _service
    if _service is not None:
        _service.__exit__(None, None, None)
        _service = None


app = FastAPI(
    title="Household Finance API",
    description="Cashflow analytics, savings opportunities and recommendations per household",
    version=__version__,
    lifespan=lifespan
)


@contextmanager
def http_errors():
    """Translate core exceptions into HTTP responses."""
    try:
        yield
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        logger.error(f"Store failure: {e}")
        raise HTTPException(status_code=500, detail=f"Storage error during {e.operation}")
    except FinanceError as e:
        logger.error(f"Unhandled finance error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# === Pydantic Models ===

class TransactionIn(BaseModel):
    posted_at: str
    amount: float
    merchant: Optional[str] = None
    category: Optional[str] = None
    account_id: str = "default"
    currency: str = "USD"
    is_recurring: bool = False
    notes: Optional[str] = None


class TransactionBatch(BaseModel):
    household_id: str
    transactions: List[TransactionIn]


class LiabilityIn(BaseModel):
    name: str
    kind: str = "other"  # credit_card, mortgage, auto_loan, student_loan, other
    apr: float = Field(0, ge=0)
    balance: float = Field(0, ge=0)
    min_payment: float = 0
    payment_frequency: str = "monthly"


class InsurancePolicyIn(BaseModel):
    provider: str
    kind: str = "other"  # auto, home, life, health, other
    premium_monthly: float = 0
    deductible: float = 0
    renewal_date: Optional[str] = None


class AssetIn(BaseModel):
    name: str
    value: float
    kind: str = "other"
    currency: str = "USD"
    valuation_date: Optional[str] = None


class ManualIngestRequest(BaseModel):
    household_id: str
    transactions: List[TransactionIn] = []
    liabilities: List[LiabilityIn] = []
    insurance_policies: List[InsurancePolicyIn] = []
    assets: List[AssetIn] = []


class ApproveRequest(BaseModel):
    household_id: str
    action_id: int


class WhatIfRequest(BaseModel):
    household_id: str
    liability_id: int
    new_apr: Optional[float] = Field(None, ge=0)
    extra_payment: float = 0


class ChatRequest(BaseModel):
    household_id: str
    message: str
    history: List[Dict[str, Any]] = []


# === API Endpoints ===

@app.get("/api/analytics/overview")
def get_overview(
    household_id: str = Query(..., min_length=1),
    month: Optional[str] = None,
    service: FinanceService = Depends(get_service)
):
    """Cashflow, net worth and category breakdown for a household."""
    with http_errors():
        return {
            "cashflow": service.get_cashflow(household_id, month),
            "net_worth": service.get_net_worth(household_id),
            "breakdown": service.get_spend_breakdown(household_id),
        }


@app.get("/api/analytics/anomalies")
def get_anomalies(
    household_id: str = Query(..., min_length=1),
    service: FinanceService = Depends(get_service)
):
    """Categories whose spend this month deviates from the trailing average."""
    with http_errors():
        return service.detect_anomalies(household_id)


@app.get("/api/analytics/recurring")
def get_recurring(
    household_id: str = Query(..., min_length=1),
    service: FinanceService = Depends(get_service)
):
    """Recurring merchant groups with their transactions."""
    with http_errors():
        return service.get_recurring_groups(household_id)


@app.post("/api/analytics/what-if")
def what_if(request: WhatIfRequest, service: FinanceService = Depends(get_service)):
    """Project refinance or extra-payment savings for a liability."""
    with http_errors():
        return service.what_if(
            request.household_id,
            request.liability_id,
            new_apr=request.new_apr,
            extra_payment=request.extra_payment
        )


@app.get("/api/savings")
def get_savings(
    household_id: str = Query(..., min_length=1),
    service: FinanceService = Depends(get_service)
):
    """Ranked savings opportunities and their combined monthly potential."""
    with http_errors():
        opportunities = service.find_savings_opportunities(household_id)
    return {
        "opportunities": opportunities,
        "total_potential_savings": sum(o.potential_monthly_savings for o in opportunities),
    }


@app.post("/api/insights")
def create_insights(
    household_id: str = Query(..., min_length=1),
    service: FinanceService = Depends(get_service)
):
    """Store the current top savings opportunities as searchable insights."""
    with http_errors():
        return service.generate_insights(household_id)


@app.get("/api/recommendations")
def get_recommendations(
    household_id: str = Query(..., min_length=1),
    service: FinanceService = Depends(get_service)
):
    """Seed recommendations from current spend and list the recent ones."""
    with http_errors():
        return {"actions": service.build_recommendations(household_id)}


@app.post("/api/recommendations/approve")
def approve_recommendation(request: ApproveRequest, service: FinanceService = Depends(get_service)):
    """Approve a pending recommendation action."""
    with http_errors():
        return {"action": service.approve_recommendation(request.household_id, request.action_id)}


@app.post("/api/chat")
def chat(request: ChatRequest, service: FinanceService = Depends(get_service)):
    """Route a free-text question to the matching handler."""
    if not request.message or not request.message.strip():
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    with http_errors():
        return service.handle_query(request.household_id, request.message.strip(), request.history)


@app.get("/api/transactions")
def list_transactions(
    household_id: str = Query(..., min_length=1),
    start: Optional[str] = None,
    end: Optional[str] = None,
    service: FinanceService = Depends(get_service)
):
    """Ledger transactions in an optional date window, oldest first."""
    with http_errors():
        transactions = service.get_transactions(household_id, start, end)
    return {"transactions": transactions, "total": len(transactions)}


@app.post("/api/transactions")
def add_transactions(batch: TransactionBatch, service: FinanceService = Depends(get_service)):
    """Store already-parsed transactions."""
    with http_errors():
        return service.add_transactions(
            batch.household_id, [t.model_dump() for t in batch.transactions]
        )


@app.post("/api/ingest/manual")
def ingest_manual(request: ManualIngestRequest, service: FinanceService = Depends(get_service)):
    """Store manually entered transactions, liabilities, policies and assets."""
    with http_errors():
        return service.ingest(
            request.household_id,
            transactions=[t.model_dump() for t in request.transactions],
            liabilities=[l.model_dump() for l in request.liabilities],
            insurance_policies=[p.model_dump() for p in request.insurance_policies],
            assets=[a.model_dump() for a in request.assets],
        )


@app.get("/api/health")
def health():
    return {"status": "ok", "version": __version__}


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S"
    )


def main():
    """Serve the API with uvicorn."""
    parser = argparse.ArgumentParser(description="Household Finance API server")
    parser.add_argument("--host", default=API_HOST, help="Interface to bind")
    parser.add_argument("--port", type=int, default=API_PORT, help="Port to listen on")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_logging(args.verbose)

    import uvicorn
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
