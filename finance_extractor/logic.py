# finance_extractor/logic.py
import datetime as dt
import json
import re
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .schema import (
    CandidateTransaction,
    CategoryTotal,
    DateRange,
    SummaryAggregate,
    ValidationResults,
)

# -------- Model output sanitization --------

FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)
THINK_TAG_RE = re.compile(r"</?think[^>]*>", re.IGNORECASE)


def _find_balanced_object(text: str) -> str | None:
    """
    Return the first balanced top-level JSON object found in text.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_str = False
        esc = False
        for i in range(start, len(text)):
            ch = text[i]
            if ch == '"' and not esc:
                in_str = not in_str
            if ch == "\\" and not esc:
                esc = True
                continue
            esc = False
            if in_str:
                continue
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str | None) -> Optional[Dict[str, Any]]:
    """
    Pull the JSON object out of a model reply. Tries the greedy
    first-"{"-to-last-"}" span, then the first balanced object.
    Returns None instead of raising when nothing parses.
    """
    if not text:
        return None
    text = FENCE_RE.sub("", str(text).strip())
    text = THINK_TAG_RE.sub("", text)

    candidates = []
    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        candidates.append(text[first : last + 1])
    balanced = _find_balanced_object(text)
    if balanced:
        candidates.append(balanced)

    for cand in candidates:
        try:
            data = json.loads(cand)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


# -------- Validation --------

MAX_TRANSACTION_AMOUNT = Decimal("1000000")
MIN_DESCRIPTION_LENGTH = 3
HISTORY_YEARS = 10


def years_before(day: dt.date, years: int) -> dt.date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # Feb 29 -> Feb 28
        return day.replace(year=day.year - years, day=28)


def is_valid_transaction(txn: CandidateTransaction, today: Optional[dt.date] = None) -> bool:
    today = today or dt.date.today()
    if txn.amount is None or txn.amount <= 0 or txn.amount > MAX_TRANSACTION_AMOUNT:
        return False
    if not txn.description or len(txn.description) < MIN_DESCRIPTION_LENGTH:
        return False
    if txn.date is None:
        return False
    return years_before(today, HISTORY_YEARS) <= txn.date <= today


def validate_transactions(
    transactions: Sequence[CandidateTransaction],
    today: Optional[dt.date] = None,
) -> Tuple[List[CandidateTransaction], ValidationResults]:
    """Keep the plausible transactions, untouched, and report how many were dropped."""
    today = today or dt.date.today()
    valid = [t for t in transactions if is_valid_transaction(t, today)]
    results = ValidationResults(
        total_extracted=len(transactions),
        valid_transactions=len(valid),
        rejected_transactions=len(transactions) - len(valid),
    )
    return valid, results


# -------- Aggregation --------

def generate_summary(transactions: Sequence[CandidateTransaction]) -> SummaryAggregate:
    summary = SummaryAggregate(total_transactions=len(transactions))
    if not transactions:
        return summary

    total_income = Decimal("0")
    total_expenses = Decimal("0")
    breakdown: Dict[str, CategoryTotal] = {}
    for t in transactions:
        if t.type == "income":
            total_income += t.amount
            summary.income_count += 1
        else:
            total_expenses += t.amount
            summary.expense_count += 1

        entry = breakdown.setdefault(t.suggested_category or "Other", CategoryTotal())
        entry.total += t.amount
        entry.count += 1

    dates = [t.date for t in transactions]
    summary.total_income = total_income
    summary.total_expenses = total_expenses
    summary.net_balance = total_income - total_expenses
    summary.date_range = DateRange(start=min(dates), end=max(dates))
    summary.category_breakdown = breakdown
    return summary
