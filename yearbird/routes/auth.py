"""Authentication routes: sign-in, consent redirect, sign-out, Drive scope."""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from yearbird.context import AppContext, get_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

_CALLBACK_PAGE = """
<html>
<head><title>{title}</title></head>
<body>
    <h1>{title}</h1>
    <p>{message}</p>
    <script>window.close();</script>
</body>
</html>
"""


@router.get("/status")
async def auth_status(ctx: AppContext = Depends(get_context)):
    """
    Report the current session.

    Returns whether a client id is configured, whether a non-expired token
    is stored, its expiry (epoch milliseconds), granted scopes, whether
    cloud sync may be enabled and the last sign-in error, if any.
    """
    stored = ctx.auth.get_stored_auth()
    return {
        "client_configured": ctx.auth.has_client_id(),
        "authenticated": stored is not None,
        "expires_at": stored.expires_at if stored else None,
        "granted_scopes": stored.granted_scopes if stored else None,
        "has_drive_scope": ctx.auth.has_drive_scope() if stored else False,
        "sign_in_popup_open": ctx.auth.has_open_sign_in_popup(),
        "last_error": ctx.last_auth_error,
    }


@router.post("/sign-in")
async def sign_in(ctx: AppContext = Depends(get_context)):
    """
    Start (or refocus) the sign-in consent flow.

    ``status`` is ``opened`` when a new consent page was opened, ``focused``
    when the existing one was brought to the front and ``unavailable`` when
    the identity provider is not configured.
    """
    status = await ctx.auth.sign_in()
    popup = ctx.popups.current()
    return {
        "status": status,
        "authorization_url": getattr(popup, "url", None),
    }


@router.get("/callback", response_class=HTMLResponse)
async def auth_callback(request: Request, ctx: AppContext = Depends(get_context)):
    """
    Receive the provider redirect and finish the matching consent flow.

    The page closes itself; the outcome is visible through ``/auth/status``.
    """
    complete = getattr(ctx.provider, "complete", None)
    if complete is None:
        return HTMLResponse(
            _CALLBACK_PAGE.format(title="Not Supported", message="No redirect flow is active."),
            status_code=400,
        )

    matched = await complete(dict(request.query_params))
    if not matched:
        return HTMLResponse(
            _CALLBACK_PAGE.format(
                title="Sign-in Expired",
                message="This sign-in attempt is no longer pending. Please try again.",
            ),
            status_code=400,
        )

    if ctx.last_auth_error:
        return HTMLResponse(
            _CALLBACK_PAGE.format(title="Sign-in Failed", message=ctx.last_auth_error),
            status_code=400,
        )
    return _CALLBACK_PAGE.format(title="Signed In", message="You can close this window.")


@router.post("/sign-out")
async def sign_out(ctx: AppContext = Depends(get_context)):
    """Revoke the token (best effort) and clear the session."""
    await ctx.auth.sign_out()
    return {"authenticated": False}


@router.post("/drive-scope")
async def request_drive_scope(ctx: AppContext = Depends(get_context)):
    """
    Ask for Drive app-data access and pull the cloud config once granted.

    Waits for the consent redirect. ``granted`` is False when the user
    declined or the flow failed; ``sync`` carries the result of the
    initial pull when access was granted.
    """
    granted = await ctx.auth.request_additional_scope()
    if not granted:
        return {"granted": False, "sync": None}

    result = await ctx.sync.pull()
    return {
        "granted": True,
        "sync": {
            "success": result.success,
            "error": result.error.message if result.error else None,
        },
    }
