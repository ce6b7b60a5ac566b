# finance_extractor/statement_parser.py
"""
Line-oriented transaction extraction for bank statement text.

Each line is offered to an ordered list of matchers; a matcher is a pure
function ``line -> CandidateTransaction | None`` and the first one that
returns a transaction wins. Lines nothing matches are dropped.
"""
import datetime as dt
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Literal, Optional, Tuple

from .schema import CandidateTransaction, DateRange, TransactionHistory

logger = logging.getLogger(__name__)

LineMatcher = Callable[[str], Optional[CandidateTransaction]]

MIN_LINE_LENGTH = 10
MIN_DESCRIPTION_LENGTH = 3
MIN_YEAR = 2000

_US_DATE = r"(\d{1,2}/\d{1,2}/\d{4})"
_DASH_DATE = r"(\d{1,2}-\d{1,2}-\d{4})"
_ISO_DATE = r"(\d{4}-\d{1,2}-\d{1,2})"
_AMOUNT = r"(-?\$?\d{1,3}(?:,\d{3})*(?:\.\d{2})?)"
_PLAIN_AMOUNT = r"(-?\d{1,3}(?:,\d{3})*(?:\.\d{2})?)"

# Priority order: earlier templates win ties
LINE_TEMPLATES: List[Tuple[str, re.Pattern]] = [
    ("us_date_amount_description", re.compile(_US_DATE + r"\s+" + _AMOUNT + r"\s+(.+)")),
    ("us_date_description_amount", re.compile(_US_DATE + r"\s+(.+?)\s+" + _AMOUNT + r"$")),
    ("iso_date_amount_description", re.compile(_ISO_DATE + r"\s+" + _AMOUNT + r"\s+(.+)")),
    ("us_date_columns", re.compile(_US_DATE + r"\s{2,}(.+?)\s{2,}" + _AMOUNT)),
    ("dash_date_description_amount", re.compile(_DASH_DATE + r"\s+(.+?)\s+" + _AMOUNT + r"$")),
    ("us_date_description_plain_amount", re.compile(_US_DATE + r"\s+(.+?)\s+" + _PLAIN_AMOUNT + r"\s*$")),
    ("us_date_plain_amount_description", re.compile(_US_DATE + r"\s+" + _PLAIN_AMOUNT + r"\s+(.+)")),
    ("us_date_tab_separated", re.compile(_US_DATE + r"\t+(.+?)\t+" + _AMOUNT)),
]

CATEGORY_KEYWORDS = {
    "Food & Dining": [
        "restaurant", "cafe", "pizza", "burger", "starbucks", "mcdonald", "subway",
        "food", "dining", "bakery", "diner", "kitchen", "grill", "bistro",
    ],
    "Transportation": [
        "gas", "fuel", "uber", "lyft", "taxi", "metro", "bus", "train",
        "shell", "exxon", "bp", "chevron", "parking", "toll",
    ],
    "Shopping": [
        "amazon", "target", "walmart", "costco", "store", "shop", "retail",
        "purchase", "buy", "mall", "market",
    ],
    "Bills & Utilities": [
        "electric", "water", "gas bill", "internet", "phone", "cable",
        "utility", "bill", "payment", "service",
    ],
    "Healthcare": [
        "doctor", "hospital", "medical", "pharmacy", "health", "dental",
        "cvs", "walgreens", "clinic", "medicine",
    ],
    "Entertainment": [
        "movie", "theater", "netflix", "spotify", "game", "entertainment",
        "concert", "show", "ticket",
    ],
}
DEFAULT_CATEGORY = "Other"

_NUMERIC_RE = re.compile(r"^[+-]?\d+(?:\.\d+)?$")
_DESCRIPTION_JUNK_RE = re.compile(r"[^\w\s\-.,]")
_WHITESPACE_RE = re.compile(r"\s+")


def _strip_currency(value: str) -> str:
    return value.replace("$", "").replace(",", "").strip()


def classify_capture(value: str) -> Literal["amount", "description"]:
    return "amount" if _NUMERIC_RE.match(_strip_currency(value)) else "description"


def parse_amount(value: str) -> Optional[Tuple[Decimal, bool]]:
    """(magnitude, is_negative) or None when the capture is not a non-zero number."""
    if classify_capture(value) != "amount":
        return None
    try:
        amount = Decimal(_strip_currency(value))
    except InvalidOperation:
        return None
    if amount == 0:
        return None
    return abs(amount), ("-" in value or amount < 0)


def parse_statement_date(
    value: str,
    today: Optional[dt.date] = None,
    day_first: Optional[bool] = None,
) -> Optional[dt.date]:
    """
    Parse ``a/b/yyyy``, ``a-b-yyyy`` or ``yyyy-mm-dd``.

    For the non-ISO forms, ``a > 12`` means day-first, otherwise month-first.
    ``day_first`` forces one reading. Years before 2000 or after the current
    year are rejected, as are impossible calendar dates.
    """
    sep = "/" if "/" in value else "-"
    parts = value.split(sep)
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return None
    try:
        if sep == "-" and len(parts[0]) == 4:
            year, month, day = int(parts[0]), int(parts[1]), int(parts[2])
        else:
            first, second, year = int(parts[0]), int(parts[1]), int(parts[2])
            use_day_first = first > 12 if day_first is None else day_first
            day, month = (first, second) if use_day_first else (second, first)
        parsed = dt.date(year, month, day)
    except ValueError:
        return None

    current_year = (today or dt.date.today()).year
    if parsed.year < MIN_YEAR or parsed.year > current_year:
        return None
    return parsed


def clean_description(value: str) -> str:
    collapsed = _WHITESPACE_RE.sub(" ", value)
    return _DESCRIPTION_JUNK_RE.sub("", collapsed).strip()


def suggest_category_from_description(description: str) -> str:
    desc = description.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(k in desc for k in keywords):
            return category
    return DEFAULT_CATEGORY


def is_header_line(line: str) -> bool:
    lower = line.lower()
    if "date" in lower and "amount" in lower:
        return True
    return "statement" in lower or "balance" in lower


def make_line_matcher(
    pattern: re.Pattern,
    today: Optional[dt.date] = None,
    day_first: Optional[bool] = None,
) -> LineMatcher:
    def match(line: str) -> Optional[CandidateTransaction]:
        m = pattern.search(line)
        if not m:
            return None
        date_str, amount_str, description = m.group(1), m.group(2), m.group(3)
        # Templates disagree on column order; trust the captures, not the template
        if classify_capture(amount_str) == "description":
            amount_str, description = description, amount_str

        parsed_date = parse_statement_date(date_str, today=today, day_first=day_first)
        if parsed_date is None:
            return None
        parsed_amount = parse_amount(amount_str)
        if parsed_amount is None:
            return None
        amount, negative = parsed_amount

        clean = clean_description(description)
        if len(clean) < MIN_DESCRIPTION_LENGTH:
            return None

        return CandidateTransaction(
            date=parsed_date,
            amount=amount,
            description=clean,
            type="expense" if negative else "income",
            suggested_category=suggest_category_from_description(clean),
            confidence="medium",
            source="regex",
            raw_line=line,
        )

    return match


def build_line_matchers(
    today: Optional[dt.date] = None,
    day_first: Optional[bool] = None,
) -> List[LineMatcher]:
    return [make_line_matcher(p, today=today, day_first=day_first) for _, p in LINE_TEMPLATES]


def parse_line(line: str, matchers: List[LineMatcher]) -> Optional[CandidateTransaction]:
    for matcher in matchers:
        txn = matcher(line)
        if txn is not None:
            return txn
    return None


def extract_transaction_history(
    text: str,
    today: Optional[dt.date] = None,
    day_first: Optional[bool] = None,
) -> TransactionHistory:
    matchers = build_line_matchers(today=today, day_first=day_first)
    transactions: List[CandidateTransaction] = []
    for line in (l.strip() for l in (text or "").split("\n")):
        if len(line) < MIN_LINE_LENGTH or is_header_line(line):
            continue
        txn = parse_line(line, matchers)
        if txn is not None:
            transactions.append(txn)

    transactions.sort(key=lambda t: t.date)
    logger.info("Regex parser extracted %d transactions", len(transactions))
    return TransactionHistory(
        total_transactions=len(transactions),
        transactions=transactions,
        date_range=DateRange(start=transactions[0].date, end=transactions[-1].date) if transactions else None,
        raw_text=text or "",
        source="regex",
    )
