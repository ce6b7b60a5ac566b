# finance_extractor/pipeline.py
"""
Chooses and combines extraction paths for an uploaded document.

Statements follow STATEMENT_POLICY: stages run in order and the first one that
yields at least one transaction is used on its own. Receipts run the heuristic
parser and the model together and merge field by field, the model winning
wherever it produced a value. No failure here rejects the upload; it comes
back as a processing error next to whatever data could be recovered.
"""
import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from . import llm
from .errors import ExtractionError
from .extract import extract_pdf_text
from .logic import generate_summary, validate_transactions
from .ocr import recognize_receipt
from .receipt_parser import extract_receipt_data
from .schema import (
    CandidateTransaction,
    ReceiptExtraction,
    ReceiptFields,
    ReceiptOutcome,
    Source,
    StatementExtraction,
    StatementOutcome,
)
from .statement_parser import extract_transaction_history

logger = logging.getLogger(__name__)

T = TypeVar("T")

RECEIPT_PROCESSING_ERROR = "Failed to process receipt. Please try again or enter details manually."
RECEIPT_LLM_ERROR = "Automatic parsing was incomplete. Please review the extracted details."
STATEMENT_PROCESSING_ERROR = (
    "Failed to process PDF. Please ensure it contains a valid transaction history in tabular format."
)

MERGED_FIELDS = ("merchant", "amount", "date", "category")


@dataclass
class StageResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[ExtractionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_stage(fn: Callable[..., Awaitable[T]], *args: Any) -> StageResult[T]:
    try:
        return StageResult(value=await fn(*args))
    except ExtractionError as e:
        logger.warning("%s failed: %s: %s", getattr(fn, "__name__", "stage"), type(e).__name__, e)
        return StageResult(error=e)


# -------- Statements --------

async def _llm_statement_stage(text: str, today: Optional[dt.date] = None) -> List[CandidateTransaction]:
    return await llm.parse_transaction_history(text)


async def _regex_statement_stage(text: str, today: Optional[dt.date] = None) -> List[CandidateTransaction]:
    return extract_transaction_history(text, today=today).transactions


StatementStage = Callable[[str, Optional[dt.date]], Awaitable[List[CandidateTransaction]]]

STATEMENT_POLICY: Sequence[Tuple[Source, StatementStage]] = (
    ("llm", _llm_statement_stage),
    ("regex", _regex_statement_stage),
)


async def choose_statement_transactions(
    text: str,
    policy: Sequence[Tuple[Source, StatementStage]] = STATEMENT_POLICY,
    today: Optional[dt.date] = None,
) -> Tuple[List[CandidateTransaction], Source, List[ExtractionError]]:
    """Transactions from the first stage with output, which stage it was, and the errors met on the way."""
    errors: List[ExtractionError] = []
    last_method: Source = policy[-1][0]
    for method, stage in policy:
        result = await run_stage(stage, text, today)
        if not result.ok:
            errors.append(result.error)
            continue
        if result.value:
            return list(result.value), method, errors
        logger.info("%s stage produced no transactions, falling back", method)
    return [], last_method, errors


async def process_statement(raw_bytes: bytes, today: Optional[dt.date] = None) -> StatementOutcome:
    try:
        text = extract_pdf_text(raw_bytes)
    except ExtractionError as e:
        logger.error("PDF processing error: %s", e)
        return StatementOutcome(
            extracted_data=StatementExtraction(processing_error=True),
            processing_error=STATEMENT_PROCESSING_ERROR,
        )

    transactions, method, errors = await choose_statement_transactions(text, today=today)
    valid, results = validate_transactions(transactions, today=today)
    summary = generate_summary(valid)

    # A stage broke and no later stage made up for it
    failed = not transactions and bool(errors)
    if failed:
        logger.warning("No transactions extracted; stage errors: %s", [type(e).__name__ for e in errors])

    extracted = StatementExtraction(
        transactions=valid,
        summary=summary,
        validation_results=results,
        processing_method=method,
        total_transactions=len(transactions),
        date_range=summary.date_range,
        raw_text=text,
        processing_error=failed,
    )
    return StatementOutcome(
        extracted_data=extracted,
        processing_error=STATEMENT_PROCESSING_ERROR if failed else None,
    )


# -------- Receipts --------

def merge_receipt_fields(heuristic: ReceiptFields, model: Optional[ReceiptFields]) -> ReceiptFields:
    merged = heuristic.model_copy()
    if model is None:
        return merged
    for name in MERGED_FIELDS:
        value = getattr(model, name)
        if value is not None:
            setattr(merged, name, value)
    return merged


async def _receipt_text(raw_bytes: bytes, is_pdf: bool) -> str:
    if is_pdf:
        return extract_pdf_text(raw_bytes)
    return recognize_receipt(raw_bytes)


async def process_receipt(raw_bytes: bytes, is_pdf: bool, today: Optional[dt.date] = None) -> ReceiptOutcome:
    text_result = await run_stage(_receipt_text, raw_bytes, is_pdf)
    if not text_result.ok:
        return ReceiptOutcome(
            extracted_data=ReceiptExtraction(is_pdf=is_pdf, processing_error=True),
            processing_error=RECEIPT_PROCESSING_ERROR,
        )
    text = text_result.value or ""

    heuristic = extract_receipt_data(text, today=today)
    model_result = await run_stage(llm.parse_receipt_text, text)
    merged = merge_receipt_fields(heuristic, model_result.value)

    extracted = ReceiptExtraction(**merged.model_dump(), is_pdf=is_pdf)
    if is_pdf:
        history = extract_transaction_history(text, today=today)
        extracted.transaction_history = history
        extracted.is_transaction_history = history.total_transactions > 1

    return ReceiptOutcome(
        extracted_data=extracted,
        processing_error=None if model_result.ok else RECEIPT_LLM_ERROR,
    )
