"""Google Calendar API client using the signed-in session token."""
import asyncio
import logging

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

logger = logging.getLogger(__name__)


class CalendarAccessError(RuntimeError):
    """The Calendar API rejected the request."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status


def get_calendar_service(access_token: str):
    """Build a Calendar API service for a short-lived access token."""
    creds = Credentials(token=access_token)
    return build("calendar", "v3", credentials=creds, cache_discovery=False)


def _list_calendars_sync(access_token: str) -> list[dict]:
    service = get_calendar_service(access_token)
    calendars: list[dict] = []
    page_token = None
    try:
        while True:
            response = (
                service.calendarList()
                .list(pageToken=page_token, minAccessRole="reader")
                .execute()
            )
            calendars.extend(response.get("items", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                break
    except HttpError as e:
        logger.error(f"Calendar list request failed: {e}")
        raise CalendarAccessError(e.resp.status, str(e)) from e
    return calendars


async def list_calendars(access_token: str) -> list[dict]:
    """
    Fetch every calendar on the user's calendar list.

    Returns the raw ``calendarList`` entries (``id``, ``summary``,
    ``backgroundColor``, ``primary``...). The discovery client is blocking,
    so the call runs in a worker thread.
    """
    calendars = await asyncio.to_thread(_list_calendars_sync, access_token)
    logger.info(f"Fetched {len(calendars)} calendars")
    return calendars
