"""Publish/subscribe base for the in-memory feature stores."""
import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], None]


class FeatureStore(Generic[T]):
    """
    Holds one piece of user configuration in memory.

    Two kinds of writes exist:

    - ``set_all`` replaces the value wholesale and notifies subscribers. Cloud
      sync uses it, so it never triggers a write back to the cloud.
    - ``_commit`` is used by the local mutations of each subclass; it also
      calls ``on_local_change`` so the sync manager can schedule a cloud write.
    """

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._listeners: list[Listener] = []
        self.on_local_change: Callable[[], None] | None = None

    def get(self) -> T:
        return self._copy(self._value)

    def set_all(self, value: T) -> None:
        self._value = self._normalize(value)
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; the returned callable removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, value: T) -> None:
        self._value = value
        self._notify()
        if self.on_local_change is not None:
            self.on_local_change()

    def _notify(self) -> None:
        snapshot = self.get()
        for listener in list(self._listeners):
            listener(snapshot)

    def _normalize(self, value: T) -> T:
        return value

    def _copy(self, value: T) -> T:
        if isinstance(value, list):
            return list(value)
        return value
