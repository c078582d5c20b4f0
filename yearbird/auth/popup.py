"""Consent popup tracking.

The identity provider opens its consent window itself and never hands the
window back to the caller. Without a reference the authorization manager
cannot tell whether a consent window is already showing, so a second
"Sign in" click would spawn a duplicate instead of focusing the first.

``PopupTracker.attach`` wraps the ``open`` primitive of a window host once
and keeps the handle of any window that is either aimed at the provider's
domain or opened while the tracker is armed. Arming lasts one second so an
unrelated window opened later is never mistaken for the consent window.

Probing a captured window can fail (the provider's page isolates itself from
its opener). A failed check counts as "closed": at worst the user gets a
duplicate window, whereas a stale "open" would block every later sign-in.
"""

import logging
import time
import webbrowser
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)

POPUP_URL_HINT = "accounts.google.com"
POPUP_PENDING_WINDOW_SECONDS = 1.0

_PATCHED_MARKER = "_yearbird_popup_tracker"


class PopupAccessError(RuntimeError):
    """Raised by a popup handle when its state cannot be inspected."""


class PopupHandle(Protocol):
    @property
    def closed(self) -> bool: ...

    def focus(self) -> None: ...


class WindowHost(Protocol):
    def open(self, url: str) -> PopupHandle | None: ...


class PopupTracker:
    """Remembers the consent window opened through an attached host."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._popup: PopupHandle | None = None
        self._pending_until: float | None = None

    def attach(self, host: WindowHost) -> bool:
        """
        Intercept ``host.open`` so consent windows are captured.

        The host is patched at most once; later calls (from this or any other
        tracker) are no-ops and return False.
        """
        if getattr(host, _PATCHED_MARKER, None) is not None:
            return False

        original_open = host.open
        # Mark before patching so a re-entrant attach cannot wrap twice.
        setattr(host, _PATCHED_MARKER, self)

        def tracked_open(url: str) -> PopupHandle | None:
            popup = original_open(url)
            self._observe(url, popup)
            return popup

        host.open = tracked_open
        return True

    def mark_pending(self) -> None:
        """Arm the tracker for the window the provider is about to open."""
        self._pending_until = self._clock() + POPUP_PENDING_WINDOW_SECONDS

    @property
    def is_pending(self) -> bool:
        if self._pending_until is None:
            return False
        if self._clock() >= self._pending_until:
            self._pending_until = None
            return False
        return True

    def current(self) -> PopupHandle | None:
        """The captured window if it is still open, else None."""
        if self._popup is None:
            return None
        if _is_closed(self._popup):
            self._popup = None
            return None
        return self._popup

    def is_open(self) -> bool:
        return self.current() is not None

    def focus(self) -> bool:
        """Bring the captured window to the front; False if it is gone."""
        popup = self.current()
        if popup is None:
            return False
        try:
            popup.focus()
        except PopupAccessError:
            logger.debug("Popup focus blocked, treating it as closed")
            self._popup = None
            return False
        return True

    def clear(self) -> None:
        popup = self._popup
        self._popup = None
        self._pending_until = None
        close = getattr(popup, "close", None)
        if callable(close):
            close()

    def _observe(self, url: str, popup: PopupHandle | None) -> None:
        if self.is_pending or POPUP_URL_HINT in (url or ""):
            self._popup = popup
            self._pending_until = None


def _is_closed(popup: PopupHandle) -> bool:
    try:
        return bool(popup.closed)
    except PopupAccessError:
        return True


class BrowserWindow:
    """Handle for a consent page shown in the user's default browser.

    A browser tab cannot be inspected from here, so the handle reports
    closed once the flow that opened it has delivered its result.
    """

    def __init__(self, url: str, browser: webbrowser.BaseBrowser) -> None:
        self.url = url
        self._browser = browser
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def focus(self) -> None:
        if self._closed:
            raise PopupAccessError("window already closed")
        self._browser.open(self.url, new=0, autoraise=True)

    def close(self) -> None:
        self._closed = True


class BrowserWindowHost:
    """Window host backed by the ``webbrowser`` module."""

    def open(self, url: str) -> BrowserWindow | None:
        try:
            browser = webbrowser.get()
        except webbrowser.Error as e:
            logger.warning(f"No browser available to open consent page: {e}")
            return None
        if not browser.open(url, new=1, autoraise=True):
            logger.warning("Browser refused to open consent page")
            return None
        return BrowserWindow(url, browser)
