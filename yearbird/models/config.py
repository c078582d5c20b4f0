"""Cloud configuration models.

These models describe the single JSON document stored in the user's Drive
``appDataFolder``. Field names are snake_case in Python and camelCase on the
wire, so ``model_dump(by_alias=True)`` produces the stored document and
``populate_by_name`` lets code build instances with Python names.

The models themselves do not enforce the remote limits (label length,
keyword counts, ...); untrusted payloads go through
``yearbird.cloud.validation`` first, which only constructs models from
entries that already passed every check.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CLOUD_CONFIG_VERSION = 1

MatchMode = Literal["any", "all"]


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventFilter(CamelModel):
    """A hidden-event pattern.

    Attributes:
        id: Unique identifier.
        pattern: Case-insensitive substring matched against event titles.
        created_at: Creation time in epoch milliseconds.
    """
    id: str
    pattern: str
    created_at: float


class Category(CamelModel):
    """An event category, built-in or user-created.

    Attributes:
        id: Stable id for built-ins (``work``), ``custom-`` prefixed otherwise.
        label: Display name, unique case-insensitively within a category set.
        color: ``#RRGGBB`` colour.
        keywords: Keywords matched against event text, deduplicated
            case-insensitively.
        match_mode: ``any`` keyword or ``all`` keywords must match.
        created_at: Creation time in epoch milliseconds.
        updated_at: Last modification time in epoch milliseconds.
        is_default: True for built-in categories.
    """
    id: str
    label: str
    color: str
    keywords: list[str] = Field(default_factory=list)
    match_mode: MatchMode = "any"
    created_at: float
    updated_at: float
    is_default: bool = False


class DisplaySettings(CamelModel):
    """Display preferences carried alongside the category configuration."""
    show_timed_events: bool = False
    match_description: bool = False
    week_view_enabled: bool = False
    month_scroll_enabled: bool = False
    month_scroll_density: int = 60


class CloudConfig(CamelModel):
    """The complete remote configuration document (version 1).

    The document is always read and written in full; there are no partial
    updates and the most recent writer wins.
    """
    version: Literal[1] = CLOUD_CONFIG_VERSION
    updated_at: float
    device_id: str
    filters: list[EventFilter] = Field(default_factory=list)
    disabled_calendars: list[str] = Field(default_factory=list)
    disabled_built_in_categories: list[str] = Field(default_factory=list)
    custom_categories: list[Category] = Field(default_factory=list)
    display_settings: DisplaySettings | None = None

    def to_payload(self) -> dict:
        """Serialise to the stored JSON shape."""
        return self.model_dump(by_alias=True, exclude_none=True)
