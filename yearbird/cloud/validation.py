"""Validation and sanitization of the remote configuration document.

The remote file is untrusted: another device, an older release or a manual
edit may have written it. Validation happens in two layers:

1. Structural checks reject the whole document (``ConfigValidationError``)
   when it cannot be interpreted at all: wrong version, wrong container
   types, an unbounded filter list.
2. Per-entry sanitizers drop individual entries that fail their checks and
   keep the rest. Each returns ``(valid_items, dropped_count)`` so the
   caller can log what was discarded.

Only entries that survive both layers are turned into models.
"""

import logging
import math
from typing import Any

from yearbird.models.config import (
    CLOUD_CONFIG_VERSION,
    Category,
    CloudConfig,
    DisplaySettings,
    EventFilter,
)
from yearbird.stores.calendars import normalize_calendar_ids
from yearbird.stores.categories import (
    DEFAULT_CATEGORY_IDS,
    MAX_LABEL_LENGTH,
    is_valid_color,
    sanitize_category_list,
)

logger = logging.getLogger(__name__)

MAX_STRING_LENGTH = 1000
MAX_FILTERS = 500
MAX_KEYWORDS = 500

_LIST_FIELDS = ("filters", "disabledCalendars", "disabledBuiltInCategories", "customCategories")


class ConfigValidationError(ValueError):
    """The remote document is structurally unusable."""


def is_finite_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _is_bounded_string(value: Any, *, allow_empty: bool = False) -> bool:
    if not isinstance(value, str) or len(value) > MAX_STRING_LENGTH:
        return False
    return allow_empty or bool(value.strip())


def sanitize_filters(entries: list) -> tuple[list[EventFilter], int]:
    valid = []
    for entry in entries:
        if (
            isinstance(entry, dict)
            and _is_bounded_string(entry.get("id"))
            and _is_bounded_string(entry.get("pattern"))
            and is_finite_number(entry.get("createdAt"))
        ):
            valid.append(
                EventFilter(
                    id=entry["id"],
                    pattern=entry["pattern"].strip(),
                    created_at=entry["createdAt"],
                )
            )
    return valid, len(entries) - len(valid)


def sanitize_calendar_ids(entries: list) -> tuple[list[str], int]:
    bounded = [entry for entry in entries if _is_bounded_string(entry)]
    valid = normalize_calendar_ids(bounded)
    return valid, len(entries) - len(valid)


def sanitize_builtin_category_ids(entries: list) -> tuple[list[str], int]:
    ids, _ = sanitize_calendar_ids(entries)
    valid = [entry for entry in ids if entry in DEFAULT_CATEGORY_IDS]
    return valid, len(entries) - len(valid)


def _is_valid_category(entry: Any) -> bool:
    if not isinstance(entry, dict):
        return False
    label = entry.get("label")
    keywords = entry.get("keywords")
    is_default = entry.get("isDefault", False)
    return (
        _is_bounded_string(entry.get("id"))
        and isinstance(label, str)
        and 0 < len(label.strip()) <= MAX_LABEL_LENGTH
        and is_valid_color(entry.get("color"))
        and isinstance(keywords, list)
        and len(keywords) <= MAX_KEYWORDS
        and all(_is_bounded_string(keyword, allow_empty=True) for keyword in keywords)
        and entry.get("matchMode", "any") in ("any", "all")
        and is_finite_number(entry.get("createdAt"))
        and is_finite_number(entry.get("updatedAt"))
        and isinstance(is_default, bool)
    )


def sanitize_categories(entries: list) -> tuple[list[Category], int]:
    """
    Keep well-formed categories, then apply the local category rules.

    The second step dedupes labels case-insensitively (latest ``updatedAt``
    wins), normalizes keywords and refuses the reserved label, so a synced
    category list obeys the same constraints as one edited locally.
    """
    candidates = [
        Category(
            id=entry["id"],
            label=entry["label"],
            color=entry["color"],
            keywords=entry["keywords"],
            match_mode=entry.get("matchMode", "any"),
            created_at=entry["createdAt"],
            updated_at=entry["updatedAt"],
            is_default=entry.get("isDefault", False),
        )
        for entry in entries
        if _is_valid_category(entry)
    ]
    valid = sanitize_category_list(candidates)
    return valid, len(entries) - len(valid)


def sanitize_display_settings(value: Any) -> DisplaySettings | None:
    """Per-field fallback to defaults; a non-object yields None."""
    if not isinstance(value, dict):
        return None

    fields = {}
    for name in ("showTimedEvents", "matchDescription", "weekViewEnabled", "monthScrollEnabled"):
        flag = value.get(name)
        if isinstance(flag, bool):
            fields[name] = flag
    density = value.get("monthScrollDensity")
    if is_finite_number(density) and density >= 0:
        fields["monthScrollDensity"] = int(round(density))
    return DisplaySettings.model_validate(fields)


def validate_cloud_config(payload: Any) -> CloudConfig:
    """Turn an untrusted payload into a ``CloudConfig`` or raise."""
    if not isinstance(payload, dict):
        raise ConfigValidationError("expected a JSON object")
    if payload.get("version") != CLOUD_CONFIG_VERSION or isinstance(payload.get("version"), bool):
        raise ConfigValidationError(f"unsupported version {payload.get('version')!r}")
    if not is_finite_number(payload.get("updatedAt")):
        raise ConfigValidationError("updatedAt must be a finite number")
    device_id = payload.get("deviceId")
    if not isinstance(device_id, str) or len(device_id) > MAX_STRING_LENGTH:
        raise ConfigValidationError("deviceId must be a string of at most 1000 characters")
    for field in _LIST_FIELDS:
        if not isinstance(payload.get(field), list):
            raise ConfigValidationError(f"{field} must be an array")
    if len(payload["filters"]) > MAX_FILTERS:
        raise ConfigValidationError(f"more than {MAX_FILTERS} filters")

    filters, dropped_filters = sanitize_filters(payload["filters"])
    calendars, dropped_calendars = sanitize_calendar_ids(payload["disabledCalendars"])
    built_ins, dropped_built_ins = sanitize_builtin_category_ids(payload["disabledBuiltInCategories"])
    categories, dropped_categories = sanitize_categories(payload["customCategories"])

    dropped = dropped_filters + dropped_calendars + dropped_built_ins + dropped_categories
    if dropped:
        logger.debug(
            f"Dropped invalid cloud config entries: filters={dropped_filters} "
            f"calendars={dropped_calendars} built_ins={dropped_built_ins} "
            f"categories={dropped_categories}"
        )

    return CloudConfig(
        version=CLOUD_CONFIG_VERSION,
        updated_at=payload["updatedAt"],
        device_id=device_id,
        filters=filters,
        disabled_calendars=calendars,
        disabled_built_in_categories=built_ins,
        custom_categories=categories,
        display_settings=sanitize_display_settings(payload.get("displaySettings")),
    )
