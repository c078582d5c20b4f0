"""Settings routes for categories, filters, calendar visibility and display."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from yearbird.calendar.client import CalendarAccessError
from yearbird.context import AppContext, get_context
from yearbird.models.config import DisplaySettings
from yearbird.stores.categories import CategoryInput

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])


class FilterCreate(BaseModel):
    pattern: str


class DisplayUpdate(BaseModel):
    show_timed_events: bool | None = None
    match_description: bool | None = None
    week_view_enabled: bool | None = None
    month_scroll_enabled: bool | None = None
    month_scroll_density: int | None = None


def _dump(models) -> list[dict]:
    return [model.model_dump(by_alias=True) for model in models]


# ----------------------------------------------------------------------
# Categories
# ----------------------------------------------------------------------


@router.get("/categories")
async def list_categories(ctx: AppContext = Depends(get_context)):
    """List active categories and the built-ins that were removed."""
    return {
        "categories": _dump(ctx.categories.get()),
        "removed_defaults": _dump(ctx.categories.get_removed_defaults()),
    }


@router.post("/categories", status_code=201)
async def create_category(data: CategoryInput, ctx: AppContext = Depends(get_context)):
    result = ctx.categories.add(data)
    if not result.ok:
        raise HTTPException(status_code=400, detail=result.error)
    return result.category.model_dump(by_alias=True)


@router.put("/categories/{category_id}")
async def update_category(
    category_id: str,
    data: CategoryInput,
    ctx: AppContext = Depends(get_context),
):
    """Edit a category; built-ins may be edited like any other."""
    result = ctx.categories.update(category_id, data)
    if not result.ok:
        status = 404 if result.error == "Category not found." else 400
        raise HTTPException(status_code=status, detail=result.error)
    return result.category.model_dump(by_alias=True)


@router.delete("/categories/{category_id}")
async def delete_category(category_id: str, ctx: AppContext = Depends(get_context)):
    if not ctx.categories.remove(category_id):
        raise HTTPException(status_code=404, detail="Category not found.")
    return {"success": True}


@router.post("/categories/{category_id}/restore")
async def restore_category(category_id: str, ctx: AppContext = Depends(get_context)):
    """Bring back a removed built-in category."""
    result = ctx.categories.restore_default(category_id)
    if not result.ok:
        status = 404 if result.error == "Not a default category." else 400
        raise HTTPException(status_code=status, detail=result.error)
    return result.category.model_dump(by_alias=True)


@router.post("/categories/reset")
async def reset_categories(ctx: AppContext = Depends(get_context)):
    """Replace every category with the built-in set."""
    return {"categories": _dump(ctx.categories.reset_to_defaults())}


# ----------------------------------------------------------------------
# Filters
# ----------------------------------------------------------------------


@router.get("/filters")
async def list_filters(ctx: AppContext = Depends(get_context)):
    return {"filters": _dump(ctx.filters.get())}


@router.post("/filters", status_code=201)
async def create_filter(data: FilterCreate, ctx: AppContext = Depends(get_context)):
    """
    Hide events whose title contains ``pattern``.

    Adding a pattern that already exists (ignoring case) returns the
    existing filter.
    """
    created = ctx.filters.add(data.pattern)
    if created is None:
        raise HTTPException(status_code=400, detail="Pattern is empty or the filter list is full.")
    return created.model_dump(by_alias=True)


@router.delete("/filters/{filter_id}")
async def delete_filter(filter_id: str, ctx: AppContext = Depends(get_context)):
    if not ctx.filters.remove(filter_id):
        raise HTTPException(status_code=404, detail="Filter not found")
    return {"success": True}


@router.delete("/filters")
async def clear_filters(ctx: AppContext = Depends(get_context)):
    ctx.filters.clear()
    return {"success": True}


# ----------------------------------------------------------------------
# Calendar visibility
# ----------------------------------------------------------------------


@router.get("/calendars")
async def list_calendars(ctx: AppContext = Depends(get_context)):
    """
    List the user's calendars with their hidden flag.

    Requires a signed-in session. Hidden ids that no longer match any of the
    user's calendars are left out of ``calendars`` but kept in ``disabled``
    so they survive a calendar being shared again.
    """
    token = ctx.auth.access_token()
    if token is None:
        raise HTTPException(status_code=401, detail="Not signed in")

    try:
        calendars = await ctx.calendar_lister(token)
    except CalendarAccessError as e:
        if e.status in (401, 403):
            raise HTTPException(status_code=401, detail="Calendar access was revoked") from e
        raise HTTPException(status_code=502, detail=str(e)) from e

    disabled = ctx.calendars.get()
    return {
        "calendars": [
            {
                "id": entry.get("id"),
                "summary": entry.get("summaryOverride") or entry.get("summary"),
                "color": entry.get("backgroundColor"),
                "primary": bool(entry.get("primary", False)),
                "hidden": entry.get("id") in disabled,
            }
            for entry in calendars
        ],
        "disabled": disabled,
    }


@router.post("/calendars/{calendar_id}/disable")
async def disable_calendar(calendar_id: str, ctx: AppContext = Depends(get_context)):
    return {"disabled": ctx.calendars.disable(calendar_id)}


@router.post("/calendars/{calendar_id}/enable")
async def enable_calendar(calendar_id: str, ctx: AppContext = Depends(get_context)):
    return {"disabled": ctx.calendars.enable(calendar_id)}


# ----------------------------------------------------------------------
# Display settings
# ----------------------------------------------------------------------


@router.get("/display")
async def get_display(ctx: AppContext = Depends(get_context)):
    return ctx.display.get().model_dump(by_alias=True)


@router.patch("/display")
async def update_display(data: DisplayUpdate, ctx: AppContext = Depends(get_context)):
    """Update the given display preferences; omitted fields are unchanged."""
    changes = data.model_dump(exclude_none=True)
    if "month_scroll_density" in changes and changes["month_scroll_density"] < 0:
        raise HTTPException(status_code=400, detail="month_scroll_density must not be negative")
    updated: DisplaySettings = ctx.display.update(**changes)
    return updated.model_dump(by_alias=True)
