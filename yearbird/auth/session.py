"""Named-slot session persistence backed by SQLModel."""
import logging
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from yearbird.models.session import SessionSlot

logger = logging.getLogger(__name__)


class SessionStorage:
    """Get/set/remove string slots, one row per slot.

    Storage failures never propagate: a read that fails behaves like an
    empty slot and a failed removal is logged, so a broken database degrades
    to "signed out" instead of breaking the request.
    """

    def __init__(self, engine) -> None:
        self._engine = engine

    def get_item(self, key: str) -> str | None:
        try:
            with Session(self._engine) as session:
                slot = session.get(SessionSlot, key)
                return slot.value if slot else None
        except SQLAlchemyError as e:
            logger.debug(f"Storage access error reading {key}: {e}")
            return None

    def set_item(self, key: str, value: str) -> None:
        with Session(self._engine) as session:
            slot = session.get(SessionSlot, key)
            if slot is None:
                slot = SessionSlot(key=key, value=value)
            else:
                slot.value = value
                slot.updated_at = datetime.now(UTC)
            session.add(slot)
            session.commit()

    def remove_items(self, *keys: str) -> None:
        try:
            with Session(self._engine) as session:
                for key in keys:
                    slot = session.get(SessionSlot, key)
                    if slot is not None:
                        session.delete(slot)
                session.commit()
        except SQLAlchemyError as e:
            logger.debug(f"Storage access error clearing {keys}: {e}")
