"""SQLite schema definitions for the household ledger."""

SCHEMA_SQL = """
-- Transactions (negative amount = expense, positive = income)
CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    household_id TEXT NOT NULL,
    account_id TEXT NOT NULL,
    posted_at TEXT NOT NULL,  -- ISO timestamp YYYY-MM-DDTHH:MM:SS
    amount REAL NOT NULL,
    currency TEXT NOT NULL DEFAULT 'USD',
    merchant TEXT,
    category TEXT,
    is_recurring INTEGER DEFAULT 0,
    notes TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Debts: mortgages, loans, credit cards
CREATE TABLE IF NOT EXISTS liabilities (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    household_id TEXT NOT NULL,
    kind TEXT NOT NULL DEFAULT 'other',  -- mortgage, loan, credit_card, other
    name TEXT NOT NULL,
    apr REAL NOT NULL DEFAULT 0,  -- fraction, 0.2 = 20%
    balance REAL NOT NULL DEFAULT 0,
    min_payment REAL NOT NULL DEFAULT 0,
    payment_frequency TEXT NOT NULL DEFAULT 'monthly',
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS insurance_policies (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    household_id TEXT NOT NULL,
    kind TEXT NOT NULL DEFAULT 'other',  -- auto, home, health, life, other
    provider TEXT NOT NULL,
    premium_monthly REAL NOT NULL DEFAULT 0,
    deductible REAL NOT NULL DEFAULT 0,
    renewal_date TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS assets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    household_id TEXT NOT NULL,
    kind TEXT NOT NULL DEFAULT 'other',  -- cash, investment, property, vehicle, other
    name TEXT NOT NULL,
    value REAL NOT NULL DEFAULT 0,
    currency TEXT NOT NULL DEFAULT 'USD',
    valuation_date TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- One action per (household, type); status only moves pending -> approved
CREATE TABLE IF NOT EXISTS recommendation_actions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    household_id TEXT NOT NULL,
    type TEXT NOT NULL,
    title TEXT NOT NULL,
    detail TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL,
    approved_at TEXT,
    completed_at TEXT,
    result TEXT,
    UNIQUE (household_id, type)
);

-- Stored savings insights (searchable through the vector store)
CREATE TABLE IF NOT EXISTS insights (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    household_id TEXT NOT NULL,
    type TEXT NOT NULL,
    title TEXT NOT NULL,
    body TEXT,
    severity TEXT NOT NULL DEFAULT 'low',
    data TEXT,  -- JSON
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS chat_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    household_id TEXT NOT NULL,
    role TEXT NOT NULL,  -- user, assistant
    text TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_transactions_household_posted ON transactions(household_id, posted_at);
CREATE INDEX IF NOT EXISTS idx_transactions_merchant ON transactions(household_id, merchant);
CREATE INDEX IF NOT EXISTS idx_transactions_category ON transactions(household_id, category);
CREATE INDEX IF NOT EXISTS idx_liabilities_household ON liabilities(household_id);
CREATE INDEX IF NOT EXISTS idx_insurance_household ON insurance_policies(household_id);
CREATE INDEX IF NOT EXISTS idx_assets_household ON assets(household_id);
CREATE INDEX IF NOT EXISTS idx_recommendations_household ON recommendation_actions(household_id, created_at);
CREATE INDEX IF NOT EXISTS idx_insights_household ON insights(household_id, created_at);
CREATE INDEX IF NOT EXISTS idx_chat_household ON chat_messages(household_id, created_at);
"""

# Collections that can be read back as "recent records" when vector search is unavailable
SEARCHABLE_TABLES = {
    "transactions": "posted_at",
    "insights": "created_at",
    "chat_messages": "created_at",
}
