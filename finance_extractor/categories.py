# finance_extractor/categories.py
"""
Mapping free-text category hints (from the model or the keyword tables)
onto a user's categories.

Receipt hints are matched by substring and create a new expense category when
nothing matches. Bulk imports match exact names only and fall back to "Other".
Every resolver returns a real category; "Other" is created on demand.
"""
import hashlib
import logging
import random
from typing import List, Optional, Sequence, Tuple

from .config import CATEGORY_VISUAL_POLICY
from .errors import CategoryResolutionFailure, PersistenceError
from .receipt_parser import suggest_category
from .schema import Category, CategoryType, ReceiptFields
from .store import MAX_CATEGORY_NAME, RecordStore

logger = logging.getLogger(__name__)

CATEGORY_COLORS = ["#ef4444", "#f97316", "#eab308", "#22c55e", "#06b6d4", "#3b82f6", "#8b5cf6", "#ec4899"]
CATEGORY_ICONS = ["🛒", "🍔", "⛽", "🎬", "💊", "🏠", "📱", "✈️"]

OTHER_NAME = "Other"
OTHER_ICON = "📁"
OTHER_COLOR = "#6b7280"


def pick_visual(name: str, policy: str = CATEGORY_VISUAL_POLICY) -> Tuple[str, str]:
    """(icon, color) for a new category: uniform random, or stable per lower-cased name with policy "hash"."""
    if policy == "hash":
        digest = hashlib.sha1(name.lower().encode("utf-8")).digest()
        return CATEGORY_ICONS[digest[0] % len(CATEGORY_ICONS)], CATEGORY_COLORS[digest[1] % len(CATEGORY_COLORS)]
    return random.choice(CATEGORY_ICONS), random.choice(CATEGORY_COLORS)


def capitalize_first(hint: str) -> str:
    hint = hint.strip()
    return hint[:1].upper() + hint[1:]


def match_category(hint: Optional[str], categories: Sequence[Category]) -> Optional[Category]:
    if not hint or not hint.strip():
        return None
    needle = hint.strip().lower()
    for cat in categories:
        if needle in cat.name.lower():
            return cat
    return None


def ensure_other_category(store: RecordStore, user_id: str) -> Category:
    other = store.find_category(user_id, OTHER_NAME)
    if other is None:
        other = store.create_category(user_id, OTHER_NAME, OTHER_ICON, OTHER_COLOR, "both")
        logger.info("Created default '%s' category for user %s", OTHER_NAME, user_id)
    return other


def _require_id(cat: Optional[Category]) -> Category:
    if cat is None or not cat.id:
        raise CategoryResolutionFailure("Category resolution produced no category")
    return cat


def resolve_receipt_category(
    store: RecordStore,
    user_id: str,
    hint: Optional[str],
    policy: str = CATEGORY_VISUAL_POLICY,
    new_type: CategoryType = "expense",
) -> Category:
    """
    Existing category whose name contains the hint; otherwise a new one named
    after the hint. With no hint at all, the user's "Other".
    """
    if not hint or not hint.strip():
        return _require_id(ensure_other_category(store, user_id))

    categories = store.list_categories(user_id)
    name = capitalize_first(hint)[:MAX_CATEGORY_NAME].strip()
    existing = match_category(hint, categories) or match_category(name, categories)
    if existing is not None:
        return _require_id(existing)

    icon, color = pick_visual(name, policy)
    try:
        created = store.create_category(user_id, name, icon, color, new_type)
    except PersistenceError as e:
        logger.warning("Could not create category %r for user %s: %s; using '%s'", name, user_id, e, OTHER_NAME)
        return _require_id(ensure_other_category(store, user_id))
    logger.info("Created new category %r for user %s", created.name, user_id)
    return _require_id(created)


def resolve_bulk_category(
    store: RecordStore,
    user_id: str,
    category: Optional[str] = None,
    suggested_category: Optional[str] = None,
    categories: Optional[List[Category]] = None,
) -> Category:
    """Exact, case-insensitive name lookup of the chosen then the suggested category; else "Other"."""
    if categories is None:
        categories = store.list_categories(user_id)
    by_name = {c.name.lower(): c for c in categories}
    for name in (category, suggested_category):
        if name and name.strip().lower() in by_name:
            return _require_id(by_name[name.strip().lower()])
    return _require_id(ensure_other_category(store, user_id))


def suggest_receipt_category(store: RecordStore, user_id: str, fields: ReceiptFields) -> Optional[Category]:
    """Existing category for an extracted receipt: model hint first, merchant keywords second. Never creates."""
    categories = store.list_categories(user_id)
    found = match_category(fields.category, categories)
    if found is None:
        found = match_category(suggest_category(fields), categories)
    return found
