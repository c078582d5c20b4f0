"""Category store: built-in defaults plus user-created categories.

The store starts with the built-in categories. Users may edit or remove any
of them and add their own; removed built-ins can be restored individually or
all at once. Cloud sync replaces the whole list through ``set_all``.
"""

import logging
import re
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from yearbird.models.config import CamelModel, Category, MatchMode
from yearbird.stores.base import FeatureStore

logger = logging.getLogger(__name__)

CUSTOM_CATEGORY_PREFIX = "custom-"
DEFAULT_MATCH_MODE: MatchMode = "any"
MAX_LABEL_LENGTH = 32
RESERVED_LABEL = "uncategorized"

_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")

# (id, label, color, keywords), in display order
_BUILTIN_CATEGORIES = (
    ("birthdays", "Birthdays", "#F59E0B", ("birthday", "bday", "b-day")),
    ("family", "Family", "#10B981", ("family", "mom", "dad", "grandma", "grandpa")),
    ("holidays", "Holidays", "#EF4444", ("holiday", "vacation", "trip", "travel")),
    ("races", "Races", "#3B82F6", ("race", "marathon", "half marathon", "5k", "10k", "triathlon")),
    ("work", "Work", "#8B5CF6", ("work", "meeting", "conference", "deadline")),
)

DEFAULT_CATEGORY_IDS = tuple(entry[0] for entry in _BUILTIN_CATEGORIES)


def now_ms() -> float:
    return time.time() * 1000


def default_categories(now: float | None = None) -> list[Category]:
    """Fresh copies of the built-in categories stamped with ``now``."""
    stamp = now_ms() if now is None else now
    return [
        Category(
            id=category_id,
            label=label,
            color=color,
            keywords=list(keywords),
            match_mode=DEFAULT_MATCH_MODE,
            created_at=stamp,
            updated_at=stamp,
            is_default=True,
        )
        for category_id, label, color, keywords in _BUILTIN_CATEGORIES
    ]


def is_valid_color(color) -> bool:
    return isinstance(color, str) and bool(_COLOR_RE.match(color))


def normalize_label(label: str) -> str:
    return label.strip()


def normalize_match_mode(mode) -> MatchMode:
    return "all" if mode == "all" else DEFAULT_MATCH_MODE


def normalize_keywords(keywords: Iterable[str]) -> list[str]:
    """Trim, drop empties and dedupe case-insensitively keeping first casing."""
    cleaned: list[str] = []
    seen: set[str] = set()
    for keyword in keywords:
        trimmed = keyword.strip()
        if not trimmed:
            continue
        lowered = trimmed.lower()
        if lowered in seen:
            continue
        seen.add(lowered)
        cleaned.append(trimmed)
    return cleaned


def sanitize_category_list(categories: Iterable[Category]) -> list[Category]:
    """
    Normalize a category list and dedupe it by case-insensitive label.

    Among entries sharing a label the one with the greatest ``updated_at``
    wins and takes the slot of the first occurrence. Entries without a
    usable label or colour, and entries using the reserved label, are
    dropped.
    """
    deduped: dict[str, Category] = {}
    for entry in categories:
        label = normalize_label(entry.label)
        if not label or len(label) > MAX_LABEL_LENGTH or not is_valid_color(entry.color):
            logger.debug(f"Dropping category {entry.id!r}: unusable label or color")
            continue
        if label.lower() == RESERVED_LABEL:
            logger.debug(f"Dropping category {entry.id!r}: reserved label")
            continue

        candidate = entry.model_copy(
            update={
                "label": label,
                "keywords": normalize_keywords(entry.keywords),
                "match_mode": normalize_match_mode(entry.match_mode),
            }
        )
        key = label.lower()
        existing = deduped.get(key)
        if existing is None or candidate.updated_at > existing.updated_at:
            deduped[key] = candidate
    return list(deduped.values())


class CategoryInput(CamelModel):
    """User-supplied fields for creating or editing a category."""
    label: str
    color: str
    keywords: list[str]
    match_mode: MatchMode | None = None


@dataclass
class CategoryResult:
    category: Category | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.category is not None


class CategoryStore(FeatureStore[list[Category]]):
    """All categories currently in effect, built-in and custom."""

    def __init__(self, *, clock: Callable[[], float] = now_ms) -> None:
        self._clock = clock
        super().__init__(default_categories(clock()))

    def _normalize(self, value: list[Category]) -> list[Category]:
        return sanitize_category_list(value)

    def add(self, data: CategoryInput) -> CategoryResult:
        result = self._build(data, self._value)
        if result.category is not None:
            self._commit([*self._value, result.category])
            logger.info(f"Category added: {result.category.label}")
        return result

    def update(self, category_id: str, data: CategoryInput) -> CategoryResult:
        if not any(entry.id == category_id for entry in self._value):
            return CategoryResult(None, "Category not found.")

        result = self._build(data, self._value, category_id)
        if result.category is not None:
            self._commit(
                [result.category if entry.id == category_id else entry for entry in self._value]
            )
        return result

    def remove(self, category_id: str) -> bool:
        remaining = [entry for entry in self._value if entry.id != category_id]
        if len(remaining) == len(self._value):
            return False
        self._commit(remaining)
        return True

    def reset_to_defaults(self) -> list[Category]:
        self._commit(default_categories(self._clock()))
        return self.get()

    def restore_default(self, category_id: str) -> CategoryResult:
        defaults = {entry.id: entry for entry in default_categories(self._clock())}
        category = defaults.get(category_id)
        if category is None:
            return CategoryResult(None, "Not a default category.")
        if any(entry.id == category_id for entry in self._value):
            return CategoryResult(None, "Category already exists.")
        label = category.label.lower()
        if any(entry.label.lower() == label for entry in self._value):
            return CategoryResult(None, "A category with this name already exists.")

        self._commit([*self._value, category])
        return CategoryResult(category)

    def get_removed_defaults(self) -> list[Category]:
        present = {entry.id for entry in self._value}
        return [
            entry for entry in default_categories(self._clock()) if entry.id not in present
        ]

    def _build(
        self,
        data: CategoryInput,
        existing: list[Category],
        category_id: str | None = None,
    ) -> CategoryResult:
        label = normalize_label(data.label)
        if not label:
            return CategoryResult(None, "Name is required.")
        if len(label) > MAX_LABEL_LENGTH:
            return CategoryResult(None, f"Name must be {MAX_LABEL_LENGTH} characters or fewer.")

        keywords = normalize_keywords(data.keywords)
        if not keywords:
            return CategoryResult(None, "Add at least one keyword.")
        if not is_valid_color(data.color):
            return CategoryResult(None, "Pick a valid color.")

        lowered = label.lower()
        if any(entry.id != category_id and entry.label.lower() == lowered for entry in existing):
            return CategoryResult(None, "A category with this name already exists.")
        if lowered == RESERVED_LABEL:
            return CategoryResult(None, "This name is reserved.")

        now = self._clock()
        current = next((entry for entry in existing if entry.id == category_id), None)
        return CategoryResult(
            Category(
                id=category_id or f"{CUSTOM_CATEGORY_PREFIX}{uuid.uuid4()}",
                label=label,
                color=data.color,
                keywords=keywords,
                match_mode=normalize_match_mode(data.match_mode),
                created_at=current.created_at if current else now,
                updated_at=now,
                is_default=current.is_default if current else False,
            )
        )
