# finance_extractor/llm.py
import datetime as dt
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx
from dateutil import parser as date_parser

from .config import GEMINI_API_KEY, GEMINI_API_URL, LLM_TIMEOUT_SECONDS
from .errors import LLMError
from .logic import extract_json_object
from .schema import CandidateTransaction, ReceiptFields

logger = logging.getLogger(__name__)

RECEIPT_PROMPT_TEMPLATE = """Parse this receipt/invoice text and extract ONLY these 4 fields. Return ONLY valid JSON, no other text:

{text}

Extract and return ONLY this JSON format:
{{
  "merchant": "store/company name",
  "amount": 0.00,
  "date": "YYYY-MM-DD",
  "category": "food/shopping/electronics/etc"
}}

Rules:
- amount should be the total/final amount as a number
- date should be in YYYY-MM-DD format
- category should be one word like: food, shopping, electronics, grocery, gas, entertainment
- Return ONLY the JSON object, no explanation"""

STATEMENT_PROMPT_TEMPLATE = """Parse this bank statement/transaction history text and extract ALL transactions. Return ONLY valid JSON, no other text:

{text}

Extract and return ONLY this JSON format:
{{
  "transactions": [
    {{
      "date": "YYYY-MM-DD",
      "amount": 0.00,
      "description": "transaction description",
      "type": "income" or "expense",
      "category": "category name"
    }}
  ]
}}

Rules:
- Extract ALL transactions from the text
- amount should be positive numbers only
- type should be "income" for deposits/credits, "expense" for debits/withdrawals
- date should be in YYYY-MM-DD format
- description should be cleaned up merchant/transaction description
- category should be one of: food, shopping, transportation, utilities, healthcare, entertainment, income, transfer, other
- Skip header lines, totals, balances, and non-transaction lines
- Return ONLY the JSON object, no explanation
- If no transactions found, return {{"transactions": []}}"""


def build_receipt_prompt(text: str) -> str:
    return RECEIPT_PROMPT_TEMPLATE.format(text=text)


def build_statement_prompt(text: str) -> str:
    return STATEMENT_PROMPT_TEMPLATE.format(text=text)


async def generate_content(
    prompt: str,
    client: Optional[httpx.AsyncClient] = None,
    api_key: Optional[str] = None,
    url: str = GEMINI_API_URL,
    timeout: float = LLM_TIMEOUT_SECONDS,
) -> str:
    """
    One POST to Gemini generateContent; returns the model's raw text.
    Raises LLMError for transport errors, timeouts, bad status or a reply
    without candidates. Never retries.
    """
    api_key = api_key if api_key is not None else GEMINI_API_KEY
    if not api_key:
        raise LLMError("GEMINI_API_KEY is not configured")

    body = {"contents": [{"parts": [{"text": prompt}]}]}
    headers = {"Content-Type": "application/json", "X-goog-api-key": api_key}
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                r = await own_client.post(url, json=body, headers=headers)
        else:
            r = await client.post(url, json=body, headers=headers, timeout=timeout)
        r.raise_for_status()
        data = r.json()
    except httpx.TimeoutException as e:
        raise LLMError(f"LLM request timed out after {timeout:.0f}s") from e
    except httpx.HTTPError as e:
        raise LLMError(f"LLM request failed: {type(e).__name__}: {e}") from e
    except ValueError as e:
        raise LLMError("LLM response body is not JSON") from e

    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise LLMError("LLM response has no candidates") from e
    if not isinstance(text, str):
        raise LLMError("LLM candidate text is not a string")
    return text


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).replace("$", "").replace(",", "").strip())
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def _to_date(value: Any) -> Optional[dt.date]:
    if not value or not isinstance(value, str):
        return None
    try:
        return date_parser.parse(value).date()
    except (ValueError, OverflowError):
        return None


def _to_text(value: Any) -> Optional[str]:
    """Scalars as stripped strings; objects, lists and booleans are not text."""
    if value is None or isinstance(value, (bool, dict, list)):
        return None
    text = str(value).strip()
    return text or None


def parse_receipt_response(text: str) -> Optional[ReceiptFields]:
    data = extract_json_object(text)
    if data is None:
        return None

    amount = _to_decimal(data.get("amount") or data.get("total_amount"))
    return ReceiptFields(
        merchant=_to_text(data.get("merchant")),
        amount=amount if amount else None,
        date=_to_date(data.get("date") or data.get("invoice_date") or data.get("order_date")),
        category=_to_text(data.get("category")) or "shopping",
    )


def parse_statement_response(text: str) -> List[CandidateTransaction]:
    data = extract_json_object(text)
    if data is None or not isinstance(data.get("transactions"), list):
        return []

    out: List[CandidateTransaction] = []
    for item in data["transactions"]:
        if not isinstance(item, dict):
            continue
        if not (item.get("amount") and item.get("date") and item.get("description")):
            continue
        amount = _to_decimal(item["amount"])
        parsed_date = _to_date(item["date"])
        description = _to_text(item["description"])
        if amount is None or parsed_date is None or not description:
            continue
        amount = abs(amount)
        if amount <= 0:
            continue
        out.append(
            CandidateTransaction(
                date=parsed_date,
                amount=amount,
                description=description,
                type="income" if item.get("type") == "income" else "expense",
                suggested_category=_to_text(item.get("category")) or "other",
                confidence="high",
                source="llm",
                raw_line=json.dumps(item, default=str),
            )
        )
    return out


async def parse_receipt_text(text: str, client: Optional[httpx.AsyncClient] = None) -> Optional[ReceiptFields]:
    """Receipt fields from the model, or None when its reply holds no usable JSON. LLMError propagates."""
    raw = await generate_content(build_receipt_prompt(text), client=client)
    logger.debug("Gemini receipt response: %s", raw)
    fields = parse_receipt_response(raw)
    if fields is None:
        logger.warning("Gemini receipt response contained no JSON object")
    return fields


async def parse_transaction_history(text: str, client: Optional[httpx.AsyncClient] = None) -> List[CandidateTransaction]:
    raw = await generate_content(build_statement_prompt(text), client=client)
    logger.debug("Gemini transaction history response: %s", raw)
    transactions = parse_statement_response(raw)
    logger.info("Gemini extracted %d transactions", len(transactions))
    return transactions
