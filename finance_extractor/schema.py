# finance_extractor/schema.py
import datetime as dt
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

# Decimal in memory, JSON number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

Confidence = Literal["high", "medium"]
Source = Literal["llm", "regex"]
TransactionType = Literal["income", "expense"]
CategoryType = Literal["income", "expense", "both"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# -------- Extraction --------

class AmountCandidate(CamelModel):
    amount: Money
    context: str
    confidence: Confidence


class ReceiptFields(CamelModel):
    merchant: Optional[str] = None
    amount: Optional[Money] = None
    date: Optional[dt.date] = None
    category: Optional[str] = None
    items: List[str] = Field(default_factory=list)
    possible_amounts: List[AmountCandidate] = Field(default_factory=list)
    raw_text: str = ""


class CandidateTransaction(CamelModel):
    date: dt.date
    amount: Money
    description: str
    type: TransactionType
    suggested_category: Optional[str] = None
    confidence: Confidence = "medium"
    source: Source = "regex"
    raw_line: str = ""


class DateRange(CamelModel):
    start: dt.date
    end: dt.date


class TransactionHistory(CamelModel):
    total_transactions: int
    transactions: List[CandidateTransaction] = Field(default_factory=list)
    date_range: Optional[DateRange] = None
    raw_text: str = ""
    source: Source = "regex"


class CategoryTotal(CamelModel):
    total: Money = Decimal("0")
    count: int = 0


class SummaryAggregate(CamelModel):
    total_transactions: int = 0
    total_income: Money = Decimal("0")
    total_expenses: Money = Decimal("0")
    net_balance: Money = Decimal("0")
    income_count: int = 0
    expense_count: int = 0
    date_range: Optional[DateRange] = None
    category_breakdown: Dict[str, CategoryTotal] = Field(default_factory=dict)


class ValidationResults(CamelModel):
    total_extracted: int
    valid_transactions: int
    rejected_transactions: int


class StatementExtraction(CamelModel):
    transactions: List[CandidateTransaction] = Field(default_factory=list)
    summary: Optional[SummaryAggregate] = None
    validation_results: Optional[ValidationResults] = None
    processing_method: Optional[Source] = None
    total_transactions: int = 0
    date_range: Optional[DateRange] = None
    raw_text: str = ""
    processing_error: bool = False


class ReceiptExtraction(ReceiptFields):
    is_pdf: bool = False
    is_transaction_history: bool = False
    transaction_history: Optional[TransactionHistory] = None
    processing_error: bool = False


class StatementOutcome(CamelModel):
    extracted_data: StatementExtraction
    processing_error: Optional[str] = None


class ReceiptOutcome(CamelModel):
    extracted_data: ReceiptExtraction
    processing_error: Optional[str] = None


# -------- Records owned by the store --------

class Category(CamelModel):
    id: str
    user_id: str
    name: str
    icon: str = "📁"
    color: str = "#6366f1"
    type: CategoryType = "both"
    is_default: bool = False


class ReceiptAttachment(CamelModel):
    filename: str
    original_name: str
    mimetype: str
    size: int
    path: str


class TransactionDraft(CamelModel):
    amount: Money
    description: str
    type: TransactionType
    category_id: str
    date: dt.date
    receipt: Optional[ReceiptAttachment] = None
    notes: Optional[str] = None
    extracted_from_receipt: bool = False


class TransactionRecord(TransactionDraft):
    id: str
    user_id: str


# -------- Upload boundary --------

class FileInfo(CamelModel):
    filename: str
    original_name: str
    mimetype: str
    size: int


class SuggestedTransaction(CamelModel):
    amount: Optional[Money] = None
    description: str
    type: TransactionType = "expense"
    category: Optional[Category] = None
    date: dt.date


class ReceiptUploadResponse(CamelModel):
    file: FileInfo
    extracted_data: ReceiptExtraction
    suggested_transaction: SuggestedTransaction
    processing_error: Optional[str] = None
    transaction: Optional[TransactionRecord] = None


class StatementUploadResponse(CamelModel):
    file: FileInfo
    extracted_data: StatementExtraction
    processing_error: Optional[str] = None


class CreateFromReceiptRequest(CamelModel):
    amount: Money
    description: str
    filename: str
    type: Optional[TransactionType] = None
    category: Optional[str] = None  # category id chosen by the user
    suggested_category: Optional[str] = None
    date: Optional[dt.date] = None


class BulkTransactionIn(CandidateTransaction):
    category: Optional[str] = None  # category name picked during review
    category_id: Optional[str] = None


class BulkCreateRequest(CamelModel):
    transactions: List[BulkTransactionIn]
    filename: Optional[str] = None


class BulkError(CamelModel):
    index: int
    transaction: BulkTransactionIn
    error: str


class BulkSummary(CamelModel):
    total: int
    created: int
    failed: int


class BulkCreateResult(CamelModel):
    created_transactions: List[TransactionRecord] = Field(default_factory=list)
    summary: BulkSummary
    errors: Optional[List[BulkError]] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if not self.errors:
            payload.pop("errors", None)
        return payload
