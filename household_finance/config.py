"""Configuration settings for the household finance system."""
from pathlib import Path

# Paths
DATA_DIR = Path.home() / ".household_finance"
DB_PATH = DATA_DIR / "ledger.db"
VECTOR_DB_PATH = DATA_DIR / "vectors"

# HTTP adapter
API_HOST = "127.0.0.1"
API_PORT = 5000

# Embedding model
EMBEDDING_MODEL = "all-MiniLM-L6-v2"
EMBEDDING_DIM = 384

# Semantic lookup
TOP_K_SIMILAR = 5

# Cashflow / breakdown
DEFAULT_CURRENCY = "USD"
UNCATEGORIZED = "Uncategorized"

# Anomaly detection (month-over-month, per category)
ANOMALY_LOOKBACK_MONTHS = 6
ANOMALY_MIN_DEVIATION = 30  # percent
ANOMALY_MEDIUM_DEVIATION = 40
ANOMALY_HIGH_DEVIATION = 50

# Recurring detection
RECURRING_MIN_OCCURRENCES = 3
RECURRING_MAX_GROUPS = 20

# Subscription detector
SUBSCRIPTION_KEYWORDS = [
    "netflix", "spotify", "amazon prime", "disney", "hulu", "apple",
    "adobe", "microsoft", "salesforce", "zoom", "slack",
    "gym", "fitness", "yoga", "classpass",
]
SUBSCRIPTION_MIN_OCCURRENCES = 6
SUBSCRIPTION_SAMPLE_SIZE = 6  # last N occurrences used for the monthly cost
SUBSCRIPTION_SAVINGS_RATIO = 0.5
SUBSCRIPTION_HIGH_COST = 50
SUBSCRIPTION_MEDIUM_COST = 20

# Interest-reduction detector
HIGH_APR_THRESHOLD = 0.15
HIGH_APR_SEVERE = 0.20
HIGH_APR_MIN_BALANCE = 1000
REFINANCE_APR_REDUCTION = 0.03
REFINANCE_APR_FLOOR = 0.12

# Insurance detector
INSURANCE_BUNDLE_MIN_POLICIES = 2
INSURANCE_BUNDLE_DISCOUNT = 0.15
INSURANCE_BUNDLE_HIGH_SAVINGS = 50
INSURANCE_HIGH_PREMIUM = 200
INSURANCE_HIGH_DEDUCTIBLE = 2000
INSURANCE_DEDUCTIBLE_SAVINGS_RATIO = 0.10

# Food/dining detector
FOOD_CATEGORY_KEYWORDS = ["food", "dining", "groceries", "restaurant"]
FOOD_SPEND_THRESHOLD = 800
FOOD_SPEND_HIGH = 1200
FOOD_SAVINGS_RATIO = 0.15

# Anomalies appended as opportunities
ANOMALY_OPPORTUNITY_LIMIT = 3

# Recommendations
MAX_RECOMMENDATION_SEEDS = 3
RECENT_RECOMMENDATIONS_LIMIT = 5

# Query router
TOP_OPPORTUNITIES = 5
INSIGHTS_LIMIT = 10

# Fixed category labels produced by the categorizer
CATEGORIES = [
    "Transportation",
    "Travel",
    "Shopping",
    "Groceries",
    "Gas",
    "Dining",
    "Software",
    "Insurance",
    "Housing",
    "Payment",
    "Utilities",
    "Entertainment",
    "Healthcare",
    "Income",
    "Transfer",
    "Uncategorized",
]


def ensure_data_dir() -> Path:
    """Ensure the data directory exists."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return DATA_DIR
