"""Disabled (hidden) calendar ids."""
from collections.abc import Iterable

from yearbird.stores.base import FeatureStore


def normalize_calendar_ids(values: Iterable) -> list[str]:
    """Keep trimmed non-empty strings, first occurrence wins."""
    seen: dict[str, None] = {}
    for value in values:
        if not isinstance(value, str):
            continue
        trimmed = value.strip()
        if trimmed:
            seen.setdefault(trimmed, None)
    return list(seen)


class CalendarVisibilityStore(FeatureStore[list[str]]):
    def __init__(self) -> None:
        super().__init__([])

    def _normalize(self, value: list[str]) -> list[str]:
        return normalize_calendar_ids(value)

    def disable(self, calendar_id: str) -> list[str]:
        if calendar_id not in self._value:
            self._commit([*self._value, calendar_id])
        return self.get()

    def enable(self, calendar_id: str) -> list[str]:
        if calendar_id in self._value:
            self._commit([entry for entry in self._value if entry != calendar_id])
        return self.get()

    def is_disabled(self, calendar_id: str) -> bool:
        return calendar_id in self._value
