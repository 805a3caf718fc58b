"""
Field-level normalisation of extracted line items: dates, amounts, direction
and vendor names.
"""

import math
import re
from datetime import date, datetime
from typing import Any

from bookkeeping.models import Direction

# Phrases that name a credit product but move money out; checked before the credit words
_OUTGOING_PHRASES = re.compile(
    r"\b(credit card payment|payment to|card payment|cc payment|loan payment|transfer to)\b", re.I
)
_CREDIT_WORDS = re.compile(
    r"\b(deposit|credit|cr|interest earned|interest|refund|reversal|incoming|received|transfer from)\b", re.I
)
_DEBIT_WORDS = re.compile(
    r"\b(withdrawal|debit|dr|payment|purchase|pos|atm|fee|charge|check|cheque|transfer to|bill)\b", re.I
)

# Bank noise that precedes the counterparty in statement descriptions
_VENDOR_PREFIX = re.compile(
    r"^(pos purchase|debit card purchase|card purchase|purchase|pos|ach debit|ach credit|ach|"
    r"online transfer|transfer to|transfer from|bill payment|payment to|payment from|"
    r"check|cheque|deposit|withdrawal|ibft|instapay|pesonet)\b[\s:#-]*",
    re.I,
)
_VENDOR_NOISE = re.compile(r"(\s+\d{2}/\d{2}(/\d{2,4})?|\s+#?\d{4,}|\s+ref\S*.*|\s+\*+\d+)\s*$", re.I)


def parse_txn_date(value: Any, default_year: int) -> date:
    """
    Accept ``YYYY-MM-DD`` (optionally with a time part), ``MM/DD/YYYY``,
    ``MM/DD/YY`` and ``MM/DD``; the last uses the statement year.
    """
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValueError("date is missing")
    text = value.strip()

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    parts = text.split("/")
    try:
        if len(parts) == 2:
            month, day = (int(p) for p in parts)
            return date(default_year, month, day)
        if len(parts) == 3:
            month, day = int(parts[0]), int(parts[1])
            year = int(parts[2])
            if len(parts[2]) == 2:
                year += 2000
            return date(year, month, day)
    except ValueError:
        pass
    raise ValueError(f"unrecognised date {value!r}")


def parse_amount(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        raise ValueError("amount is missing")
    if isinstance(value, str):
        text = value.strip().replace(",", "").replace("₱", "").replace("$", "")
        if text.startswith("(") and text.endswith(")"):
            text = "-" + text[1:-1]
        value = text
    try:
        amount = float(value)
    except OverflowError:
        raise ValueError("amount is out of range") from None
    except (TypeError, ValueError):
        raise ValueError(f"amount {value!r} is not a number") from None
    if math.isnan(amount) or math.isinf(amount):
        raise ValueError(f"amount {value!r} is not a finite number")
    return amount


def infer_direction(item: dict, amount: float, description: str) -> Direction:
    """
    Explicit ``type``/``direction`` wins, then the sign of the amount, then
    keywords in the description.
    """
    explicit = item.get("type") or item.get("direction")
    if explicit is not None:
        try:
            return Direction(str(explicit).strip().lower())
        except ValueError:
            raise ValueError(f"direction {explicit!r} is not 'debit' or 'credit'") from None

    if amount < 0:
        return Direction.DEBIT
    if _OUTGOING_PHRASES.search(description):
        return Direction.DEBIT
    if _CREDIT_WORDS.search(description):
        return Direction.CREDIT
    if _DEBIT_WORDS.search(description):
        return Direction.DEBIT
    raise ValueError("direction could not be determined")


def extract_vendor(description: str) -> str | None:
    """Strip bank prefixes and trailing reference numbers from a description."""
    vendor = _VENDOR_PREFIX.sub("", description.strip())
    vendor = _VENDOR_NOISE.sub("", vendor).strip(" -:*#")
    vendor = re.sub(r"\s{2,}", " ", vendor)
    return vendor.title() if vendor else None
