"""
Automatic categorisation of extracted line items.

Confidence reflects where the assignment came from:

    model-supplied category that exists in the taxonomy   0.90
    keyword rule on the description                       0.75
    uncategorized fallback by direction                   0.50
"""

import re
from dataclasses import dataclass
from typing import Optional

from bookkeeping.models import Direction
from bookkeeping.reconciliation.taxonomy import (
    EXPENSE_TAXONOMY,
    INCOME_TAXONOMY,
    fallback_category,
)

MODEL_CONFIDENCE = 0.9
RULE_CONFIDENCE = 0.75
FALLBACK_CONFIDENCE = 0.5


@dataclass
class CategoryGuess:
    category: str
    subcategory: Optional[str]
    confidence: float


# (pattern, category, subcategory, direction the rule applies to)
_RULES: list[tuple[re.Pattern, str, Optional[str], Direction]] = [
    (re.compile(r"\b(payroll|salary|salaries|wages)\b", re.I), "Payroll", "Salaries", Direction.DEBIT),
    (re.compile(r"\b(sss|philhealth|pag-?ibig|hdmf)\b", re.I), "Payroll", "Government Contributions", Direction.DEBIT),
    (re.compile(r"\b(rent|lease|rental)\b", re.I), "Rent", None, Direction.DEBIT),
    (re.compile(r"\b(meralco|electric|power)\b", re.I), "Utilities", "Electricity", Direction.DEBIT),
    (re.compile(r"\b(maynilad|manila water|water)\b", re.I), "Utilities", "Water", Direction.DEBIT),
    (re.compile(r"\b(pldt|globe|converge|smart|internet|fiber)\b", re.I), "Utilities", "Internet", Direction.DEBIT),
    (re.compile(r"\b(google ads|facebook|meta ads|advertis\w*)\b", re.I), "Marketing", "Advertising", Direction.DEBIT),
    (re.compile(r"\b(insurance|premium)\b", re.I), "Insurance", None, Direction.DEBIT),
    (re.compile(r"\b(attorney|law office|legal)\b", re.I), "Professional Services", "Legal", Direction.DEBIT),
    (re.compile(r"\b(audit|bookkeeping|accounting)\b", re.I), "Professional Services", "Accounting", Direction.DEBIT),
    (re.compile(r"\b(service charge|bank charge|fee|fees)\b", re.I), "Bank Fees", None, Direction.DEBIT),
    (re.compile(r"\b(bir|tax|permit|license)\b", re.I), "Taxes & Licenses", None, Direction.DEBIT),
    (re.compile(r"\b(shell|petron|caltex|fuel|gas station)\b", re.I), "Other Expenses", "Fuel", Direction.DEBIT),
    (re.compile(r"\b(office|stationery|national bookstore)\b", re.I), "Supplies", "Office Supplies", Direction.DEBIT),
    (re.compile(r"\binterest\b", re.I), "Interest Income", None, Direction.CREDIT),
    (re.compile(r"\b(refund|reversal)\b", re.I), "Other Income", "Refunds", Direction.CREDIT),
    (re.compile(r"\b(consult\w*)\b", re.I), "Services", "Consulting", Direction.CREDIT),
    (re.compile(r"\b(hosting|web services?|website)\b", re.I), "Services", "Web Services", Direction.CREDIT),
    (re.compile(r"\b(sales?|invoice|payment received)\b", re.I), "Sales", None, Direction.CREDIT),
]

_KNOWN: dict[str, tuple[str, Direction]] = {
    **{name.lower(): (name, Direction.CREDIT) for name in INCOME_TAXONOMY},
    **{name.lower(): (name, Direction.DEBIT) for name in EXPENSE_TAXONOMY},
}


def categorize(description: str, direction: Direction, model_category: str | None = None) -> CategoryGuess:
    if model_category:
        known = _KNOWN.get(str(model_category).strip().lower())
        if known and known[1] == direction:
            return CategoryGuess(known[0], _subcategory_for(known[0], description), MODEL_CONFIDENCE)

    for pattern, category, subcategory, rule_direction in _RULES:
        if rule_direction == direction and pattern.search(description):
            return CategoryGuess(category, subcategory, RULE_CONFIDENCE)

    return CategoryGuess(fallback_category(direction), None, FALLBACK_CONFIDENCE)


def _subcategory_for(category: str, description: str) -> Optional[str]:
    for pattern, rule_category, subcategory, _ in _RULES:
        if rule_category == category and subcategory and pattern.search(description):
            return subcategory
    return None
