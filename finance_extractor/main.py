# finance_extractor/main.py
import datetime as dt
import logging
import os
import random
import sys
import time
from typing import Optional, Tuple

from fastapi import FastAPI, File, Form, Header, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from .bulk import create_transaction_from_receipt, import_transactions
from .categories import ensure_other_category, suggest_receipt_category
from .config import LOG_LEVEL, MAX_UPLOAD_BYTES, UPLOAD_FOLDER
from .errors import ExtractionError
from .pipeline import process_receipt, process_statement
from .receipt_parser import generate_description
from .schema import (
    BulkCreateRequest,
    CreateFromReceiptRequest,
    FileInfo,
    ReceiptAttachment,
    ReceiptUploadResponse,
    StatementUploadResponse,
    SuggestedTransaction,
    TransactionDraft,
)
from .store import InMemoryStore, RecordStore

# Console logger for the whole package
logger = logging.getLogger("finance_extractor")
if not logger.handlers:
    logger.setLevel(LOG_LEVEL.upper())
    _h = logging.StreamHandler(sys.stdout)
    _h.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s: %(message)s"))
    logger.addHandler(_h)

app = FastAPI(
    title="Receipt & Statement Extractor",
    description="Upload a receipt image or a bank statement PDF and get back candidate transactions.",
    version="1.0.0",
)

# Records live with the host application; this store stands in for it
STORE: RecordStore = InMemoryStore()

PDF_MIMETYPE = "application/pdf"


def _is_pdf(mimetype: str, raw_bytes: bytes) -> bool:
    return mimetype == PDF_MIMETYPE or raw_bytes[:4] == b"%PDF"


async def _read_upload(file: Optional[UploadFile], allow_images: bool = True) -> Tuple[bytes, str]:
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    mimetype = file.content_type or ""
    if not (mimetype == PDF_MIMETYPE or (allow_images and mimetype.startswith("image/"))):
        detail = "Only image files and PDFs are allowed" if allow_images else "Only PDF files are supported for transaction history"
        raise HTTPException(status_code=400, detail=detail)
    raw_bytes = await file.read()
    if len(raw_bytes) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=f"File exceeds {MAX_UPLOAD_BYTES // (1024 * 1024)}MB limit")
    return raw_bytes, mimetype


def _archive_upload(raw_bytes: bytes, original_name: str, mimetype: str) -> ReceiptAttachment:
    os.makedirs(UPLOAD_FOLDER, exist_ok=True)
    ext = os.path.splitext(original_name)[1].lower()
    filename = f"receipt-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{ext}"
    path = os.path.join(UPLOAD_FOLDER, filename)
    with open(path, "wb") as fh:
        fh.write(raw_bytes)
    return ReceiptAttachment(
        filename=filename, original_name=original_name, mimetype=mimetype, size=len(raw_bytes), path=path
    )


def _file_info(att: ReceiptAttachment) -> FileInfo:
    return FileInfo(filename=att.filename, original_name=att.original_name, mimetype=att.mimetype, size=att.size)


@app.post("/upload/receipt", summary="Extract a single receipt")
async def upload_receipt(
    receipt: Optional[UploadFile] = File(default=None, description="Receipt image or PDF (max 10MB)"),
    auto_create: bool = Form(default=False, alias="autoCreate"),
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    raw_bytes, mimetype = await _read_upload(receipt)
    attachment = _archive_upload(raw_bytes, receipt.filename, mimetype)

    try:
        outcome = await process_receipt(raw_bytes, is_pdf=_is_pdf(mimetype, raw_bytes))
        extracted = outcome.extracted_data
        description = generate_description(extracted)
        suggested = suggest_receipt_category(STORE, x_user_id, extracted)

        created = None
        if auto_create and extracted.amount and extracted.amount > 0:
            category = suggested or ensure_other_category(STORE, x_user_id)
            try:
                created = STORE.create_transaction(
                    x_user_id,
                    TransactionDraft(
                        amount=extracted.amount,
                        description=description,
                        type="expense",
                        category_id=category.id,
                        date=extracted.date or dt.date.today(),
                        receipt=attachment,
                        extracted_from_receipt=True,
                    ),
                )
            except (ExtractionError, ValueError):
                logger.exception("Transaction creation error")

        payload = ReceiptUploadResponse(
            file=_file_info(attachment),
            extracted_data=extracted,
            suggested_transaction=SuggestedTransaction(
                amount=extracted.amount,
                description=description,
                category=suggested,
                date=extracted.date or dt.date.today(),
            ),
            processing_error=outcome.processing_error,
            transaction=created,
        )
        return JSONResponse(payload.to_payload(), status_code=201 if created else 200)
    except Exception:
        logger.exception("Unhandled error in /upload/receipt")
        try:
            os.remove(attachment.path)
        except OSError:
            logger.error("Error cleaning up file %s", attachment.path)
        raise


@app.post("/upload/create-transaction", summary="Create a transaction from a reviewed receipt", status_code=201)
def create_transaction(
    body: CreateFromReceiptRequest,
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    path = os.path.join(UPLOAD_FOLDER, os.path.basename(body.filename))
    if not os.path.isfile(path):
        raise HTTPException(status_code=400, detail="Receipt file not found")
    attachment = ReceiptAttachment(
        filename=body.filename,
        original_name=body.filename,
        mimetype="image/jpeg",
        size=os.path.getsize(path),
        path=path,
    )
    try:
        record = create_transaction_from_receipt(STORE, x_user_id, body, attachment)
    except ExtractionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return JSONResponse(record.to_payload(), status_code=201)


@app.post("/upload/transaction-history", summary="Extract transactions from a statement PDF")
async def upload_transaction_history(
    receipt: Optional[UploadFile] = File(default=None, description="Bank statement PDF (max 10MB)"),
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    raw_bytes, mimetype = await _read_upload(receipt, allow_images=False)
    attachment = _archive_upload(raw_bytes, receipt.filename, mimetype)
    logger.info("Statement upload from user %s: %s (%d bytes)", x_user_id, receipt.filename, len(raw_bytes))

    outcome = await process_statement(raw_bytes)
    payload = StatementUploadResponse(
        file=_file_info(attachment),
        extracted_data=outcome.extracted_data,
        processing_error=outcome.processing_error,
    )
    return JSONResponse(payload.to_payload())


@app.post("/upload/bulk-create-transactions", summary="Commit reviewed statement transactions", status_code=201)
def bulk_create(
    body: BulkCreateRequest,
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    result = import_transactions(STORE, x_user_id, body)
    return JSONResponse(result.to_payload(), status_code=201)
