import datetime as dt
from decimal import Decimal

import pytest

from finance_extractor.bulk import (
    bulk_create_transactions,
    create_transaction_from_receipt,
    import_transactions,
)
from finance_extractor.schema import (
    BulkCreateRequest,
    BulkTransactionIn,
    CreateFromReceiptRequest,
    ReceiptAttachment,
)

USER = "user-1"


def _item(description, amount="10.00", **kw):
    return BulkTransactionIn(
        date=dt.date(2024, 1, 10),
        amount=Decimal(amount),
        description=description,
        type=kw.pop("type", "expense"),
        **kw,
    )


@pytest.fixture
def shopping(store):
    return store.create_category(USER, "Shopping", "🛒", "#ef4444", "expense")


def test_partial_failure_does_not_stop_the_batch(store, shopping):
    items = [_item(f"Purchase {i}") for i in range(5)]
    ids = [shopping.id, shopping.id, shopping.id, "missing-category", shopping.id]

    result = bulk_create_transactions(store, USER, items, ids, filename="march.pdf")

    assert result.summary.total == 5
    assert result.summary.created == 4
    assert result.summary.failed == 1
    assert [e.index for e in result.errors] == [3]
    assert [t.description for t in result.created_transactions] == [
        "Purchase 0", "Purchase 1", "Purchase 2", "Purchase 4",
    ]
    assert len(store.transactions) == 4


def test_missing_category_id_is_reported(store, shopping):
    result = bulk_create_transactions(store, USER, [_item("Coffee Shop")], [None])
    assert result.summary.created == 0
    assert result.errors[0].error == "No valid category found"
    assert result.errors[0].transaction.description == "Coffee Shop"


def test_store_rules_become_item_errors(store, shopping):
    items = [_item("x" * 201), _item("Fine one"), _item("Tiny", amount="0.001")]
    result = bulk_create_transactions(store, USER, items, [shopping.id] * 3)
    assert [e.index for e in result.errors] == [0, 2]
    assert "200" in result.errors[0].error


def test_created_records_carry_import_notes(store, shopping):
    result = bulk_create_transactions(store, USER, [_item("Gym Membership")], [shopping.id])
    record = result.created_transactions[0]
    assert record.notes == "Imported from PDF: transaction-history.pdf"
    assert record.extracted_from_receipt is True
    assert record.user_id == USER
    assert record.category_id == shopping.id


def test_errors_key_absent_when_everything_succeeds(store, shopping):
    payload = bulk_create_transactions(store, USER, [_item("Gym Membership")], [shopping.id]).to_payload()
    assert "errors" not in payload
    assert payload["summary"] == {"total": 1, "created": 1, "failed": 0}
    assert payload["createdTransactions"][0]["amount"] == 10.0


def test_misaligned_category_ids_rejected(store):
    with pytest.raises(ValueError):
        bulk_create_transactions(store, USER, [_item("One")], [])


def test_import_resolves_names_and_falls_back_to_other(store, shopping):
    request = BulkCreateRequest(
        filename="jan.pdf",
        transactions=[
            _item("Target Run", category="Shopping"),
            _item("Bus Pass", suggested_category="Transportation"),
            _item("Explicit", category_id=shopping.id),
        ],
    )
    result = import_transactions(store, USER, request)

    other = store.find_category(USER, "Other")
    assert result.summary.created == 3
    assert [t.category_id for t in result.created_transactions] == [shopping.id, other.id, shopping.id]
    assert all(t.notes == "Imported from PDF: jan.pdf" for t in result.created_transactions)


def test_import_request_accepts_camel_case(store, shopping):
    request = BulkCreateRequest.model_validate(
        {
            "transactions": [
                {
                    "date": "2024-02-01",
                    "amount": 12.5,
                    "description": "Corner Store",
                    "type": "expense",
                    "suggestedCategory": "Shopping",
                    "rawLine": "02/01/2024 -12.50 Corner Store",
                }
            ]
        }
    )
    result = import_transactions(store, USER, request)
    assert result.created_transactions[0].category_id == shopping.id


# -------- Single receipt commit --------

def _attachment():
    return ReceiptAttachment(
        filename="receipt-1.jpg", original_name="lunch.jpg", mimetype="image/jpeg", size=10, path="/tmp/receipt-1.jpg"
    )


def test_receipt_commit_with_explicit_category(store, shopping):
    request = CreateFromReceiptRequest(
        amount=Decimal("18.75"), description="Purchase from Burger Barn", filename="receipt-1.jpg",
        category=shopping.id, date=dt.date(2024, 1, 15),
    )
    record = create_transaction_from_receipt(store, USER, request, _attachment())
    assert record.category_id == shopping.id
    assert record.type == "expense"
    assert record.receipt.original_name == "lunch.jpg"
    assert record.extracted_from_receipt is True


def test_receipt_commit_creates_suggested_category(store):
    request = CreateFromReceiptRequest(
        amount=Decimal("9.00"), description="Purchase from Shell", filename="r.jpg", suggested_category="fuel"
    )
    record = create_transaction_from_receipt(store, USER, request)
    cat = store.get_category(USER, record.category_id)
    assert cat.name == "Fuel"
    assert record.date == dt.date.today()


def test_receipt_commit_defaults_to_other(store):
    request = CreateFromReceiptRequest(amount=Decimal("3.00"), description="Receipt purchase", filename="r.jpg")
    record = create_transaction_from_receipt(store, USER, request)
    assert store.get_category(USER, record.category_id).name == "Other"
