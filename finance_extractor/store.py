# finance_extractor/store.py
import uuid
from decimal import Decimal
from typing import Dict, List, Optional, Protocol

from .errors import PersistenceError
from .schema import Category, CategoryType, TransactionDraft, TransactionRecord

MAX_CATEGORY_NAME = 30
MAX_DESCRIPTION = 200
MIN_AMOUNT = Decimal("0.01")


class RecordStore(Protocol):
    """What the pipeline needs from the persistence layer."""

    def list_categories(self, user_id: str) -> List[Category]: ...

    def get_category(self, user_id: str, category_id: str) -> Optional[Category]: ...

    def find_category(self, user_id: str, name: str) -> Optional[Category]: ...

    def create_category(
        self, user_id: str, name: str, icon: str, color: str, type: CategoryType
    ) -> Category: ...

    def create_transaction(self, user_id: str, draft: TransactionDraft) -> TransactionRecord: ...


class InMemoryStore:
    """Dict-backed RecordStore with the same per-record rules as the real schema."""

    def __init__(self) -> None:
        self.categories: Dict[str, Category] = {}
        self.transactions: Dict[str, TransactionRecord] = {}

    def list_categories(self, user_id: str) -> List[Category]:
        return [c for c in self.categories.values() if c.user_id == user_id]

    def get_category(self, user_id: str, category_id: str) -> Optional[Category]:
        cat = self.categories.get(category_id)
        return cat if cat is not None and cat.user_id == user_id else None

    def find_category(self, user_id: str, name: str) -> Optional[Category]:
        for c in self.list_categories(user_id):
            if c.name == name:
                return c
        return None

    def create_category(
        self, user_id: str, name: str, icon: str, color: str, type: CategoryType
    ) -> Category:
        name = (name or "").strip()
        if not name:
            raise PersistenceError("Category name is required")
        if len(name) > MAX_CATEGORY_NAME:
            raise PersistenceError(f"Category name cannot exceed {MAX_CATEGORY_NAME} characters")
        if self.find_category(user_id, name) is not None:
            raise PersistenceError(f"Category '{name}' already exists")
        cat = Category(id=uuid.uuid4().hex, user_id=user_id, name=name, icon=icon, color=color, type=type)
        self.categories[cat.id] = cat
        return cat

    def create_transaction(self, user_id: str, draft: TransactionDraft) -> TransactionRecord:
        if draft.amount < MIN_AMOUNT:
            raise PersistenceError("Amount must be greater than 0")
        description = draft.description.strip()
        if not description:
            raise PersistenceError("Description is required")
        if len(description) > MAX_DESCRIPTION:
            raise PersistenceError(f"Description cannot exceed {MAX_DESCRIPTION} characters")
        if self.get_category(user_id, draft.category_id) is None:
            raise PersistenceError(f"Category '{draft.category_id}' not found")

        record = TransactionRecord(
            id=uuid.uuid4().hex,
            user_id=user_id,
            **draft.model_dump(exclude={"description"}),
            description=description,
        )
        self.transactions[record.id] = record
        return record
