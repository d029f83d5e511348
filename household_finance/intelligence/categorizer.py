"""Rule-based categorizer for merchant text and provided category labels."""
import re
from typing import Dict, List, Optional, Pattern, Tuple

from household_finance.config import UNCATEGORIZED


# Ordered: the first matching rule wins ("uber eats" is Transportation, not Dining).
MERCHANT_RULES: List[Tuple[Pattern, str]] = [
    (re.compile(r"uber|lyft|rideshare"), "Transportation"),
    (re.compile(r"delta|southwest|united|air|airlines|flight"), "Travel"),
    (re.compile(r"amazon|amzn|marketplace"), "Shopping"),
    (re.compile(r"costco|walmart|target|safeway|whole foods|trader joe"), "Groceries"),
    (re.compile(r"gas|fuel|chevron|shell|exxon|mobil"), "Gas"),
    (re.compile(r"restaurant|cafe|coffee|starbucks|dunkin|pizza|food|eats"), "Dining"),
    (re.compile(r"intuit|quickbooks"), "Software"),
    (re.compile(r"insurance|geico|progressive|state farm"), "Insurance"),
    (re.compile(r"mortgage|rent"), "Housing"),
    (re.compile(r"payment thank you|autopay|payment"), "Payment"),
    (re.compile(r"fastrak|toll"), "Transportation"),
]

# Synonyms for category text supplied at ingestion, checked in insertion order.
CATEGORY_SYNONYMS: Dict[str, str] = {
    "groceries": "Groceries",
    "restaurant": "Dining",
    "food": "Dining",
    "gas": "Gas",
    "gasoline": "Gas",
    "fuel": "Gas",
    "utilities": "Utilities",
    "electric": "Utilities",
    "water": "Utilities",
    "phone": "Utilities",
    "internet": "Utilities",
    "shopping": "Shopping",
    "entertainment": "Entertainment",
    "travel": "Travel",
    "healthcare": "Healthcare",
    "insurance": "Insurance",
    "mortgage": "Housing",
    "rent": "Housing",
    "salary": "Income",
    "payroll": "Income",
    "transfer": "Transfer",
}


class Categorizer:
    """Map merchant strings and free-text category labels to category names."""

    def __init__(
        self,
        rules: Optional[List[Tuple[Pattern, str]]] = None,
        synonyms: Optional[Dict[str, str]] = None
    ):
        self.rules = rules if rules is not None else MERCHANT_RULES
        self.synonyms = synonyms if synonyms is not None else CATEGORY_SYNONYMS

    def categorize(self, merchant: Optional[str]) -> Optional[str]:
        """Categorize a merchant string.

        Returns:
            Category label, "Uncategorized" when no rule matches,
            or None when there is no merchant text at all
        """
        if not merchant:
            return None

        lower = merchant.lower()
        for pattern, category in self.rules:
            if pattern.search(lower):
                return category

        return UNCATEGORIZED

    def map_category(self, category: Optional[str]) -> str:
        """Normalize an explicitly provided category label."""
        if not category:
            return UNCATEGORIZED

        lower = category.lower()
        for key, value in self.synonyms.items():
            if key in lower:
                return value

        return category

    def resolve(self, merchant: Optional[str], category: Optional[str] = None) -> str:
        """Pick the stored category for an incoming transaction."""
        if category:
            return self.map_category(category)
        return self.categorize(merchant) or UNCATEGORIZED
