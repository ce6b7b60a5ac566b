import asyncio
import datetime as dt
from decimal import Decimal

from finance_extractor import llm, pipeline
from finance_extractor.errors import LLMError, OCRError, PDFParseError
from finance_extractor.schema import CandidateTransaction, ReceiptFields
from finance_extractor.statement_parser import extract_transaction_history

STATEMENT_TEXT = "\n".join(
    [
        "Date Description Amount",
        "01/05/2024 -12.00 Uber Trip Downtown",
        "01/09/2024 2,000.00 Payroll Deposit",
        "01/12/2024 Walmart Supercenter -54.30",
    ]
)

RECEIPT_TEXT = "BURGER BARN\n01/15/2024\nCheeseburger 12.50\nTotal: $18.75\n"


def _run(coro):
    return asyncio.run(coro)


def _llm_txn(description="Model Row", amount="9.99"):
    return CandidateTransaction(
        date=dt.date(2024, 2, 2),
        amount=Decimal(amount),
        description=description,
        type="expense",
        suggested_category="other",
        confidence="high",
        source="llm",
    )


# -------- Statement stage policy --------

def test_llm_failure_falls_back_to_regex_exactly(monkeypatch):
    async def broken(text, client=None):
        raise LLMError("service unavailable")

    monkeypatch.setattr(llm, "parse_transaction_history", broken)
    txns, method, errors = _run(pipeline.choose_statement_transactions(STATEMENT_TEXT))

    assert method == "regex"
    assert txns == extract_transaction_history(STATEMENT_TEXT).transactions
    assert len(errors) == 1 and isinstance(errors[0], LLMError)


def test_empty_llm_output_falls_back_to_regex(monkeypatch):
    async def nothing(text, client=None):
        return []

    monkeypatch.setattr(llm, "parse_transaction_history", nothing)
    txns, method, errors = _run(pipeline.choose_statement_transactions(STATEMENT_TEXT))
    assert method == "regex"
    assert len(txns) == 3
    assert errors == []


def test_llm_output_is_used_on_its_own(monkeypatch):
    async def model(text, client=None):
        return [_llm_txn()]

    monkeypatch.setattr(llm, "parse_transaction_history", model)
    txns, method, _ = _run(pipeline.choose_statement_transactions(STATEMENT_TEXT))
    assert method == "llm"
    assert [t.description for t in txns] == ["Model Row"]


def test_custom_policy_order():
    async def first(text, today=None):
        return []

    async def second(text, today=None):
        return [_llm_txn("From second")]

    txns, method, _ = _run(
        pipeline.choose_statement_transactions("x", policy=(("llm", first), ("regex", second)))
    )
    assert method == "regex"
    assert txns[0].description == "From second"


# -------- process_statement --------

def test_process_statement_regex_path(monkeypatch, today):
    monkeypatch.setattr(pipeline, "extract_pdf_text", lambda raw: STATEMENT_TEXT)
    outcome = _run(pipeline.process_statement(b"%PDF-fake", today=today))

    data = outcome.extracted_data
    assert outcome.processing_error is None
    assert data.processing_method == "regex"
    assert data.processing_error is False
    assert data.total_transactions == 3
    assert data.validation_results.valid_transactions == 3
    assert data.summary.total_income == Decimal("2000.00")
    assert data.summary.total_expenses == Decimal("66.30")
    assert data.date_range.start == dt.date(2024, 1, 5)
    assert data.raw_text == STATEMENT_TEXT


def test_process_statement_validation_drops_out_of_window(monkeypatch, today):
    async def model(text, client=None):
        return [_llm_txn(), _llm_txn("Way too big", amount="5000000")]

    monkeypatch.setattr(llm, "parse_transaction_history", model)
    monkeypatch.setattr(pipeline, "extract_pdf_text", lambda raw: "anything")
    data = _run(pipeline.process_statement(b"%PDF-fake", today=today)).extracted_data

    assert data.processing_method == "llm"
    assert data.total_transactions == 2
    assert [t.description for t in data.transactions] == ["Model Row"]
    assert data.validation_results.rejected_transactions == 1


def test_unreadable_pdf_is_a_processing_error(monkeypatch):
    def broken(raw):
        raise PDFParseError("PDF is password-protected.")

    monkeypatch.setattr(pipeline, "extract_pdf_text", broken)
    outcome = _run(pipeline.process_statement(b"%PDF-locked"))
    assert outcome.processing_error == pipeline.STATEMENT_PROCESSING_ERROR
    assert outcome.extracted_data.processing_error is True
    assert outcome.extracted_data.transactions == []


def test_no_transactions_after_llm_error_is_flagged(monkeypatch):
    monkeypatch.setattr(pipeline, "extract_pdf_text", lambda raw: "Nothing that looks like a statement")
    outcome = _run(pipeline.process_statement(b"%PDF-fake"))
    assert outcome.extracted_data.processing_error is True
    assert outcome.processing_error == pipeline.STATEMENT_PROCESSING_ERROR


# -------- Receipts --------

def test_merge_prefers_model_values():
    heuristic = ReceiptFields(merchant="BURGER BARN", amount=Decimal("18.75"), items=["Cheeseburger 12.50"])
    model = ReceiptFields(merchant="Burger Barn", category="food")
    merged = pipeline.merge_receipt_fields(heuristic, model)
    assert merged.merchant == "Burger Barn"
    assert merged.amount == Decimal("18.75")
    assert merged.category == "food"
    assert merged.items == ["Cheeseburger 12.50"]


def test_merge_without_model_keeps_heuristic():
    heuristic = ReceiptFields(merchant="Shop")
    assert pipeline.merge_receipt_fields(heuristic, None) == heuristic


def test_receipt_with_model(monkeypatch, today):
    async def model(text, client=None):
        return ReceiptFields(merchant="Burger Barn", amount=Decimal("18.75"), category="food")

    monkeypatch.setattr(pipeline, "recognize_receipt", lambda raw: RECEIPT_TEXT)
    monkeypatch.setattr(llm, "parse_receipt_text", model)
    outcome = _run(pipeline.process_receipt(b"img", is_pdf=False, today=today))

    data = outcome.extracted_data
    assert outcome.processing_error is None
    assert data.merchant == "Burger Barn"
    assert data.category == "food"
    assert data.date == dt.date(2024, 1, 15)
    assert data.raw_text == RECEIPT_TEXT
    assert data.is_pdf is False
    assert data.transaction_history is None


def test_receipt_llm_failure_keeps_heuristic_values(monkeypatch, today):
    monkeypatch.setattr(pipeline, "recognize_receipt", lambda raw: RECEIPT_TEXT)
    outcome = _run(pipeline.process_receipt(b"img", is_pdf=False, today=today))

    assert outcome.processing_error == pipeline.RECEIPT_LLM_ERROR
    assert outcome.extracted_data.merchant == "BURGER BARN"
    assert outcome.extracted_data.amount == Decimal("18.75")
    assert outcome.extracted_data.processing_error is False


def test_receipt_ocr_failure(monkeypatch):
    def broken(raw):
        raise OCRError("Tesseract OCR binary is not installed")

    monkeypatch.setattr(pipeline, "recognize_receipt", broken)
    outcome = _run(pipeline.process_receipt(b"img", is_pdf=False))
    assert outcome.processing_error == pipeline.RECEIPT_PROCESSING_ERROR
    assert outcome.extracted_data.processing_error is True
    assert outcome.extracted_data.amount is None


def test_pdf_receipt_detects_transaction_history(monkeypatch, today):
    monkeypatch.setattr(pipeline, "extract_pdf_text", lambda raw: STATEMENT_TEXT)
    data = _run(pipeline.process_receipt(b"%PDF", is_pdf=True, today=today)).extracted_data
    assert data.is_pdf is True
    assert data.is_transaction_history is True
    assert data.transaction_history.total_transactions == 3


def test_pdf_receipt_single_line_is_not_history(monkeypatch, today):
    monkeypatch.setattr(pipeline, "extract_pdf_text", lambda raw: "Invoice 03/02/2024 -19.99 Web Hosting")
    data = _run(pipeline.process_receipt(b"%PDF", is_pdf=True, today=today)).extracted_data
    assert data.is_transaction_history is False


def test_statement_with_oddly_typed_model_reply_still_completes(monkeypatch, today):
    reply = '{"transactions": [{"date": "2024-01-09", "amount": 20, "description": "Coffee", "category": 7}]}'

    async def model(text, client=None):
        return llm.parse_statement_response(reply)

    monkeypatch.setattr(llm, "parse_transaction_history", model)
    monkeypatch.setattr(pipeline, "extract_pdf_text", lambda raw: STATEMENT_TEXT)
    outcome = _run(pipeline.process_statement(b"%PDF-fake", today=today))

    assert outcome.processing_error is None
    assert outcome.extracted_data.processing_method == "llm"
    assert outcome.extracted_data.transactions[0].suggested_category == "7"


def test_receipt_with_numeric_model_merchant(monkeypatch, today):
    async def model(text, client=None):
        return llm.parse_receipt_response('{"merchant": 711, "amount": "18.75", "date": "2024-01-15"}')

    monkeypatch.setattr(pipeline, "recognize_receipt", lambda raw: RECEIPT_TEXT)
    monkeypatch.setattr(llm, "parse_receipt_text", model)
    outcome = _run(pipeline.process_receipt(b"img", is_pdf=False, today=today))

    assert outcome.processing_error is None
    assert outcome.extracted_data.merchant == "711"
    assert outcome.extracted_data.amount == Decimal("18.75")


def test_regex_stage_uses_the_given_day(monkeypatch):
    text = "03/01/2023 -10.00 Pizza Place\n01/05/2024 -12.00 Uber Trip Downtown"
    monkeypatch.setattr(pipeline, "extract_pdf_text", lambda raw: text)
    data = _run(pipeline.process_statement(b"%PDF-fake", today=dt.date(2023, 6, 15))).extracted_data

    assert data.processing_method == "regex"
    assert data.total_transactions == 1
    assert [t.description for t in data.transactions] == ["Pizza Place"]
