# finance_extractor/bulk.py
import datetime as dt
import logging
from typing import List, Optional, Sequence

from .categories import ensure_other_category, resolve_bulk_category, resolve_receipt_category
from .errors import ExtractionError
from .schema import (
    BulkCreateRequest,
    BulkCreateResult,
    BulkError,
    BulkSummary,
    BulkTransactionIn,
    CreateFromReceiptRequest,
    ReceiptAttachment,
    TransactionDraft,
    TransactionRecord,
)
from .store import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_IMPORT_FILENAME = "transaction-history.pdf"


def bulk_create_transactions(
    store: RecordStore,
    user_id: str,
    transactions: Sequence[BulkTransactionIn],
    category_ids: Sequence[Optional[str]],
    filename: Optional[str] = None,
) -> BulkCreateResult:
    """
    Persist each approved transaction on its own. A failing item is recorded
    with its index and the rest carry on; nothing is rolled back.
    """
    if len(category_ids) != len(transactions):
        raise ValueError("category_ids must align with transactions")

    notes = f"Imported from PDF: {filename or DEFAULT_IMPORT_FILENAME}"
    created: List[TransactionRecord] = []
    errors: List[BulkError] = []
    for i, (txn, category_id) in enumerate(zip(transactions, category_ids)):
        if not category_id:
            errors.append(BulkError(index=i, transaction=txn, error="No valid category found"))
            continue
        try:
            draft = TransactionDraft(
                amount=txn.amount,
                description=txn.description,
                type=txn.type,
                category_id=category_id,
                date=txn.date,
                notes=notes,
                extracted_from_receipt=True,
            )
            created.append(store.create_transaction(user_id, draft))
        except (ExtractionError, ValueError) as e:
            logger.warning("Error creating transaction %d: %s", i, e)
            errors.append(BulkError(index=i, transaction=txn, error=str(e)))

    logger.info("Bulk import for user %s: %d created, %d failed", user_id, len(created), len(errors))
    return BulkCreateResult(
        created_transactions=created,
        summary=BulkSummary(total=len(transactions), created=len(created), failed=len(errors)),
        errors=errors or None,
    )


def import_transactions(store: RecordStore, user_id: str, request: BulkCreateRequest) -> BulkCreateResult:
    categories = store.list_categories(user_id)
    category_ids: List[Optional[str]] = []
    for txn in request.transactions:
        if txn.category_id:
            category_ids.append(txn.category_id)
            continue
        try:
            cat = resolve_bulk_category(
                store, user_id, txn.category, txn.suggested_category, categories=categories
            )
        except ExtractionError as e:
            logger.warning("Category lookup failed for %r: %s", txn.description, e)
            category_ids.append(None)
            continue
        category_ids.append(cat.id)
    return bulk_create_transactions(store, user_id, request.transactions, category_ids, request.filename)


def create_transaction_from_receipt(
    store: RecordStore,
    user_id: str,
    request: CreateFromReceiptRequest,
    attachment: Optional[ReceiptAttachment] = None,
) -> TransactionRecord:
    if request.category:
        category_id = request.category
    elif request.suggested_category:
        category_id = resolve_receipt_category(store, user_id, request.suggested_category).id
    else:
        category_id = ensure_other_category(store, user_id).id

    draft = TransactionDraft(
        amount=request.amount,
        description=request.description,
        type=request.type or "expense",
        category_id=category_id,
        date=request.date or dt.date.today(),
        receipt=attachment,
        extracted_from_receipt=True,
    )
    return store.create_transaction(user_id, draft)
