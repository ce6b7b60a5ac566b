# finance_extractor/receipt_parser.py
"""
Rule-based extraction of merchant, total, date and line items from the OCR
text of a single receipt. Every field is best effort; a missing field is None.
"""
import datetime as dt
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

from .schema import AmountCandidate, ReceiptFields

logger = logging.getLogger(__name__)

MAX_RECEIPT_AMOUNT = Decimal("10000")
MAX_ITEMS = 20
MAX_ITEM_LENGTH = 99
MERCHANT_SCAN_LINES = 5

# Labelled patterns capture one amount per line; bare patterns may match several
LABELLED_AMOUNT_PATTERNS = [
    re.compile(r"total[:\s]*\$?(\d+\.?\d{0,2})", re.IGNORECASE),
    re.compile(r"subtotal[:\s]*\$?(\d+\.?\d{0,2})", re.IGNORECASE),
    re.compile(r"amount[:\s]*\$?(\d+\.?\d{0,2})", re.IGNORECASE),
]
BARE_AMOUNT_PATTERNS = [
    re.compile(r"\$(\d+\.\d{2})"),
    re.compile(r"(\d+\.\d{2})"),
]

# (pattern, order of the year/month/day groups)
DATE_PATTERNS: List[Tuple[re.Pattern, Tuple[int, int, int]]] = [
    (re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})"), (3, 1, 2)),
    (re.compile(r"(\d{1,2})-(\d{1,2})-(\d{4})"), (3, 1, 2)),
    (re.compile(r"(\d{4})-(\d{1,2})-(\d{1,2})"), (1, 2, 3)),
]

CURRENCY_RE = re.compile(r"\$?\d+\.\d{2}")
PRICE_RE = re.compile(r"\d+\.\d{2}")

MERCHANT_CATEGORY_KEYWORDS = {
    "food": ["restaurant", "cafe", "pizza", "burger", "starbucks", "mcdonald", "subway", "food"],
    "gas": ["shell", "exxon", "bp", "chevron", "gas", "fuel"],
    "grocery": ["walmart", "target", "costco", "safeway", "kroger", "grocery", "market"],
    "pharmacy": ["cvs", "walgreens", "pharmacy", "drug"],
    "retail": ["amazon", "best buy", "home depot", "lowes", "mall"],
}


def split_lines(text: str) -> List[str]:
    return [line.strip() for line in (text or "").split("\n") if line.strip()]


def _looks_like_date(line: str) -> bool:
    return any(p.search(line) for p, _ in DATE_PATTERNS)


def extract_merchant(lines: List[str]) -> Optional[str]:
    for line in lines[:MERCHANT_SCAN_LINES]:
        if len(line) > 3 and not PRICE_RE.search(line) and not _looks_like_date(line):
            return line
    return None


def _to_amount(raw: str) -> Optional[Decimal]:
    try:
        return Decimal(raw)
    except InvalidOperation:
        return None


def find_amount_candidates(lines: List[str]) -> List[AmountCandidate]:
    candidates: List[AmountCandidate] = []
    for line in lines:
        confidence = "high" if "total" in line.lower() else "medium"
        raw_values: List[str] = []
        for pattern in LABELLED_AMOUNT_PATTERNS:
            m = pattern.search(line)
            if m:
                raw_values.append(m.group(1))
        for pattern in BARE_AMOUNT_PATTERNS:
            raw_values.extend(m.group(1) for m in pattern.finditer(line))

        for raw in raw_values:
            amount = _to_amount(raw)
            if amount is not None and Decimal("0") < amount < MAX_RECEIPT_AMOUNT:
                candidates.append(AmountCandidate(amount=amount, context=line, confidence=confidence))
    return candidates


def select_amount(candidates: List[AmountCandidate]) -> Optional[Decimal]:
    """First candidate from a "total" line, else the largest amount seen."""
    for c in candidates:
        if c.confidence == "high":
            return c.amount
    if candidates:
        return max(c.amount for c in candidates)
    return None


def extract_date(lines: List[str], today: Optional[dt.date] = None) -> Optional[dt.date]:
    current_year = (today or dt.date.today()).year
    for line in lines:
        for pattern, (yi, mi, di) in DATE_PATTERNS:
            m = pattern.search(line)
            if not m:
                continue
            try:
                found = dt.date(int(m.group(yi)), int(m.group(mi)), int(m.group(di)))
            except ValueError:
                continue
            if 2000 < found.year <= current_year:
                return found
    return None


def extract_items(lines: List[str]) -> List[str]:
    items = [line[:MAX_ITEM_LENGTH] for line in lines if CURRENCY_RE.search(line)]
    return items[:MAX_ITEMS]


def extract_receipt_data(ocr_text: str, today: Optional[dt.date] = None) -> ReceiptFields:
    lines = split_lines(ocr_text)
    candidates = find_amount_candidates(lines)
    fields = ReceiptFields(
        merchant=extract_merchant(lines),
        amount=select_amount(candidates),
        date=extract_date(lines, today=today),
        items=extract_items(lines),
        possible_amounts=candidates,
        raw_text=ocr_text or "",
    )
    logger.debug(
        "Heuristic receipt fields: merchant=%r amount=%s date=%s items=%d",
        fields.merchant, fields.amount, fields.date, len(fields.items),
    )
    return fields


def generate_description(fields: ReceiptFields) -> str:
    if fields.merchant:
        return f"Purchase from {fields.merchant}"
    if fields.items:
        first_item = CURRENCY_RE.sub("", fields.items[0], count=1).strip()
        if first_item:
            return f"Purchase - {first_item}"
    return "Receipt purchase"


def suggest_category(fields: ReceiptFields) -> Optional[str]:
    """Category hint from merchant keywords; None when nothing matches."""
    if not fields.merchant:
        return None
    merchant = fields.merchant.lower()
    for category, keywords in MERCHANT_CATEGORY_KEYWORDS.items():
        if any(k in merchant for k in keywords):
            return category
    return None
