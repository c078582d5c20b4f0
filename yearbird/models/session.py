"""Session slot model for the signed-in user's token.

This module defines the SessionSlot model which persists the three pieces of
session state owned by the authorization manager: the access token, its
expiry and the scopes granted with it. Each piece lives in its own named
slot so the slots can be read independently and cleared together.
"""

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel

ACCESS_TOKEN_KEY = "yearbird:accessToken"
EXPIRES_AT_KEY = "yearbird:expiresAt"
GRANTED_SCOPES_KEY = "yearbird:grantedScopes"

SESSION_SLOT_KEYS = (ACCESS_TOKEN_KEY, EXPIRES_AT_KEY, GRANTED_SCOPES_KEY)


class SessionSlot(SQLModel, table=True):
    """One named value of the persisted session.

    Attributes:
        key: Slot name, one of ``SESSION_SLOT_KEYS``.
        value: Raw string value. The expiry slot holds epoch milliseconds.
        updated_at: When the slot was last written.
    """
    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
