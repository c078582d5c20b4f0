"""Hidden-event filters."""
import logging
import time
import uuid
from collections.abc import Callable, Iterable

from yearbird.models.config import EventFilter
from yearbird.stores.base import FeatureStore

logger = logging.getLogger(__name__)

MAX_FILTERS = 500


def _now_ms() -> float:
    return time.time() * 1000


class FilterStore(FeatureStore[list[EventFilter]]):
    """Case-insensitive title patterns whose events are hidden."""

    def __init__(self, *, clock: Callable[[], float] = _now_ms) -> None:
        self._clock = clock
        super().__init__([])

    def _normalize(self, value: list[EventFilter]) -> list[EventFilter]:
        cleaned = []
        for entry in value:
            pattern = entry.pattern.strip()
            if pattern:
                cleaned.append(entry.model_copy(update={"pattern": pattern}))
        return cleaned

    def add(self, pattern: str) -> EventFilter | None:
        """
        Add a pattern, returning the new filter.

        An existing filter with the same pattern (ignoring case) is returned
        as-is. Blank patterns, and new patterns once the list is full, yield
        None.
        """
        trimmed = pattern.strip()
        if not trimmed:
            return None

        lowered = trimmed.lower()
        for entry in self._value:
            if entry.pattern.strip().lower() == lowered:
                return entry

        if len(self._value) >= MAX_FILTERS:
            logger.warning(f"Filter limit of {MAX_FILTERS} reached")
            return None

        created = EventFilter(id=str(uuid.uuid4()), pattern=trimmed, created_at=self._clock())
        self._commit([*self._value, created])
        return created

    def remove(self, filter_id: str) -> bool:
        remaining = [entry for entry in self._value if entry.id != filter_id]
        if len(remaining) == len(self._value):
            return False
        self._commit(remaining)
        return True

    def clear(self) -> None:
        self._commit([])


def is_event_filtered(title: str, filters: Iterable[EventFilter]) -> bool:
    """Whether ``title`` contains any filter pattern, ignoring case."""
    lowered = title.lower()
    for entry in filters:
        pattern = entry.pattern.strip()
        if pattern and pattern.lower() in lowered:
            return True
    return False
