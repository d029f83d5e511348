"""Pytest configuration and shared fixtures."""
import pytest
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import numpy as np


FIXED_NOW = datetime(2024, 6, 15, 12, 0, 0)
HOUSEHOLD = "hh-1"


@pytest.fixture
def temp_db_path(tmp_path) -> Path:
    """Path for a throwaway SQLite database."""
    return tmp_path / "test.db"


@pytest.fixture
def temp_vector_path(tmp_path) -> Path:
    """Path for a throwaway LanceDB directory."""
    return tmp_path / "vectors"


@pytest.fixture
def clock():
    """Clock pinned to mid-June 2024."""
    return lambda: FIXED_NOW


@pytest.fixture
def household_id() -> str:
    return HOUSEHOLD


@pytest.fixture
def store(temp_db_path):
    from household_finance.db.sqlite_store import SQLiteStore

    store = SQLiteStore(temp_db_path)
    yield store
    store.close()


@pytest.fixture
def fake_embedder():
    """Embedder stand-in returning deterministic unit vectors per text."""
    def embed(text):
        rng = np.random.default_rng(abs(hash(text)) % (2 ** 32))
        vector = rng.random(384).astype(np.float32)
        return vector / np.linalg.norm(vector)

    embedder = MagicMock()
    embedder.embed.side_effect = embed
    embedder.embed_batch.side_effect = lambda texts: [embed(t) for t in texts]
    return embedder


@pytest.fixture
def service(store, clock):
    """Finance service over a temp store with semantic search disabled."""
    from household_finance.api.finance_service import FinanceService

    return FinanceService(store=store, clock=clock, enable_search=False)


def add_monthly(store, household_id, merchant, category, amount, months, day=5):
    """Add one transaction per (year, month) pair."""
    for year, month in months:
        store.add_transaction(
            household_id=household_id,
            account_id="checking",
            posted_at=datetime(year, month, day),
            amount=amount,
            merchant=merchant,
            category=category
        )


# Jan..Jun 2024
FIRST_HALF_2024 = [(2024, m) for m in range(1, 7)]
