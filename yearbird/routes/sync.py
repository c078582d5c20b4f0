"""Sync routes for pulling, pushing and monitoring the cloud config."""
from fastapi import APIRouter, Depends, HTTPException

from yearbird.cloud.drive import DriveResult
from yearbird.context import AppContext, get_context

router = APIRouter(prefix="/sync", tags=["sync"])


def _raise_for_failure(result: DriveResult) -> None:
    if not result.success:
        raise HTTPException(
            status_code=502,
            detail={"code": result.error.code, "message": result.error.message},
        )


@router.post("/pull")
async def pull(ctx: AppContext = Depends(get_context)):
    """
    Read the cloud config and apply it to the local settings.

    Uploads the local settings instead when no cloud config exists yet.
    """
    result = await ctx.sync.pull()
    _raise_for_failure(result)
    return {"success": True, "config": result.data.to_payload() if result.data else None}


@router.post("/push")
async def push(ctx: AppContext = Depends(get_context)):
    """Write the local settings to the cloud config now."""
    result = await ctx.sync.push()
    _raise_for_failure(result)
    return {"success": True, "config": result.data.to_payload()}


@router.delete("/remote")
async def delete_remote(ctx: AppContext = Depends(get_context)):
    """Delete the cloud config file. Local settings are kept."""
    result = await ctx.sync.delete_remote()
    _raise_for_failure(result)
    return {"success": True}


@router.get("/status")
async def sync_status(check_access: bool = False, ctx: AppContext = Depends(get_context)):
    """
    Get current sync status.

    Returns JSON with whether cloud sync is enabled (signed in with the
    Drive scope), the device id written into the cloud config and the
    outcome of the last sync attempt. With ``check_access=true`` the
    Drive app data folder is probed and ``drive_accessible`` reports the
    result; otherwise it is None.
    """
    status = ctx.sync.status
    accessible = await ctx.remote.check_access() if check_access else None
    return {
        "drive_accessible": accessible,
        "enabled": ctx.sync.is_enabled(),
        "device_id": ctx.sync.device_id,
        "last_sync_time": status.last_sync_time,
        "last_sync_success": status.success,
        "last_sync_error": status.error,
        "last_sync_error_code": status.error_code,
    }
