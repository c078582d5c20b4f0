"""Google Drive storage for the cloud configuration file.

The configuration lives in a single JSON file inside the user's Drive
``appDataFolder``, a hidden per-app folder only this client can see. Every
operation locates the file by name first; there is no cached file id, so a
file deleted from another device is simply recreated on the next write.

Operations never raise for HTTP or network failures. They return a
``DriveResult`` carrying either data or a ``DriveError`` with the HTTP
status (0 for network errors) and a human readable message.
"""

import asyncio
import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import httpx

from yearbird.cloud.validation import ConfigValidationError, validate_cloud_config
from yearbird.core.config import settings
from yearbird.models.config import CloudConfig

logger = logging.getLogger(__name__)

DRIVE_API_BASE = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_BASE = "https://www.googleapis.com/upload/drive/v3"
APP_DATA_FOLDER = "appDataFolder"

MAX_RETRIES = 3
RETRY_BACKOFF_SECONDS = (1.0, 2.0, 4.0)

T = TypeVar("T")


@dataclass
class DriveError:
    code: int
    message: str


@dataclass
class DriveResult(Generic[T]):
    success: bool
    data: T | None = None
    error: DriveError | None = None

    @classmethod
    def ok(cls, data: T | None = None) -> "DriveResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: int, message: str) -> "DriveResult[T]":
        return cls(success=False, error=DriveError(code=code, message=message))


@dataclass
class DriveFile:
    id: str
    name: str
    modified_time: str | None = None

    @classmethod
    def from_api(cls, payload: dict) -> "DriveFile":
        return cls(
            id=str(payload.get("id", "")),
            name=str(payload.get("name", "")),
            modified_time=payload.get("modifiedTime"),
        )


def is_retryable(status_code: int) -> bool:
    return status_code == 0 or status_code == 429 or status_code >= 500


def _safe_google_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error_payload = payload.get("error")
        if isinstance(error_payload, dict):
            message = error_payload.get("message")
            if isinstance(message, str) and message.strip():
                return " ".join(message.split())[:200]

    return response.reason_phrase or f"HTTP {response.status_code}"


def _build_multipart_body(metadata: dict[str, Any], payload: dict[str, Any]) -> tuple[bytes, str]:
    boundary = f"yearbird-{uuid.uuid4().hex}"
    metadata_json = json.dumps(metadata, separators=(",", ":"))
    payload_json = json.dumps(payload, separators=(",", ":"))
    body = (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{metadata_json}\r\n"
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{payload_json}\r\n"
        f"--{boundary}--\r\n"
    ).encode("utf-8")
    return body, boundary


class RemoteConfigStore:
    """Locate, read, write and delete the configuration file in Drive."""

    def __init__(
        self,
        token_source: Callable[[], str | None],
        *,
        http_client: httpx.AsyncClient | None = None,
        file_name: str = settings.cloud_config_file_name,
        timeout_seconds: float = settings.drive_request_timeout_seconds,
        is_online: Callable[[], bool] = lambda: True,
    ) -> None:
        self._token_source = token_source
        self._http_client = http_client
        self._file_name = file_name
        self._timeout_seconds = timeout_seconds
        self._is_online = is_online

    async def locate(self) -> DriveResult[DriveFile]:
        """Find the configuration file; success with no data when absent."""
        query = f"name = '{self._file_name}' and '{APP_DATA_FOLDER}' in parents and trashed = false"
        result = await self._request(
            "GET",
            f"{DRIVE_API_BASE}/files",
            params={
                "q": query,
                "spaces": APP_DATA_FOLDER,
                "pageSize": 1,
                "fields": "files(id,name,modifiedTime)",
                "orderBy": "modifiedTime desc",
            },
        )
        if not result.success:
            return DriveResult.fail(result.error.code, result.error.message)

        files = _json_or_empty(result.data).get("files", [])
        if isinstance(files, list) and files and isinstance(files[0], dict):
            return DriveResult.ok(DriveFile.from_api(files[0]))
        return DriveResult.ok(None)

    async def read(self) -> DriveResult[CloudConfig]:
        """Download and validate the configuration; success with no data when absent."""
        located = await self.locate()
        if not located.success:
            return DriveResult.fail(located.error.code, located.error.message)
        if located.data is None:
            return DriveResult.ok(None)

        result = await self._request(
            "GET",
            f"{DRIVE_API_BASE}/files/{located.data.id}",
            params={"alt": "media"},
        )
        if not result.success:
            return DriveResult.fail(result.error.code, result.error.message)

        try:
            payload = result.data.json()
        except ValueError:
            return DriveResult.fail(400, "Invalid cloud config: not valid JSON")
        try:
            config = validate_cloud_config(payload)
        except ConfigValidationError as e:
            logger.warning(f"Rejected cloud config: {e}")
            return DriveResult.fail(400, f"Invalid cloud config: {e}")
        return DriveResult.ok(config)

    async def write(self, config: CloudConfig) -> DriveResult[DriveFile]:
        """Create the file, or replace its content in place when it exists."""
        if not self._token_source():
            return DriveResult.fail(401, "Not authenticated")

        located = await self.locate()
        if not located.success:
            return DriveResult.fail(located.error.code, located.error.message)

        payload = config.to_payload()
        if located.data is None:
            metadata = {
                "name": self._file_name,
                "parents": [APP_DATA_FOLDER],
                "mimeType": "application/json",
            }
            body, boundary = _build_multipart_body(metadata, payload)
            result = await self._request(
                "POST",
                f"{DRIVE_UPLOAD_BASE}/files",
                params={"uploadType": "multipart", "fields": "id,name,modifiedTime"},
                headers={"Content-Type": f"multipart/related; boundary={boundary}"},
                content=body,
            )
        else:
            result = await self._request(
                "PATCH",
                f"{DRIVE_UPLOAD_BASE}/files/{located.data.id}",
                params={"uploadType": "media", "fields": "id,name,modifiedTime"},
                headers={"Content-Type": "application/json"},
                content=json.dumps(payload, separators=(",", ":")).encode("utf-8"),
            )

        if not result.success:
            logger.error(f"Cloud config write failed ({result.error.code}): {result.error.message}")
            return DriveResult.fail(result.error.code, result.error.message)
        return DriveResult.ok(DriveFile.from_api(_json_or_empty(result.data)))

    async def delete(self) -> DriveResult[None]:
        """Delete the file if it exists."""
        located = await self.locate()
        if not located.success:
            return DriveResult.fail(located.error.code, located.error.message)
        if located.data is None:
            return DriveResult.ok(None)

        result = await self._request("DELETE", f"{DRIVE_API_BASE}/files/{located.data.id}")
        if not result.success:
            return DriveResult.fail(result.error.code, result.error.message)
        logger.info("Cloud config deleted")
        return DriveResult.ok(None)

    async def check_access(self) -> bool:
        """Check that the token can list the app data folder."""
        if not self._is_online() or not self._token_source():
            return False
        result = await self._request(
            "GET",
            f"{DRIVE_API_BASE}/files",
            params={"spaces": APP_DATA_FOLDER, "pageSize": 1, "fields": "files(id)"},
        )
        return result.success

    async def _request(self, method: str, url: str, **kwargs) -> DriveResult[httpx.Response]:
        """
        Send an authorized request, retrying transient failures.

        Retries 429, 5xx and network errors up to ``MAX_RETRIES`` times with
        the fixed ``RETRY_BACKOFF_SECONDS`` schedule. Other errors return on
        the first attempt.
        """
        token = self._token_source()
        if not token:
            return DriveResult.fail(401, "Not authenticated")

        headers = {"Authorization": f"Bearer {token}", **kwargs.pop("headers", {})}
        client = self._http_client or httpx.AsyncClient(timeout=self._timeout_seconds)
        try:
            attempt = 0
            while True:
                try:
                    response = await client.request(method, url, headers=headers, **kwargs)
                except httpx.RequestError as e:
                    failure = DriveError(code=0, message=str(e) or type(e).__name__)
                else:
                    if response.status_code < 400:
                        return DriveResult.ok(response)
                    failure = DriveError(
                        code=response.status_code,
                        message=_safe_google_error_message(response),
                    )

                if not is_retryable(failure.code) or attempt >= MAX_RETRIES:
                    return DriveResult(success=False, error=failure)

                backoff = RETRY_BACKOFF_SECONDS[attempt]
                logger.warning(
                    f"Drive request {method} failed ({failure.code}), retrying in {backoff}s "
                    f"(attempt {attempt + 1}/{MAX_RETRIES})"
                )
                await asyncio.sleep(backoff)
                attempt += 1
        finally:
            if client is not self._http_client:
                await client.aclose()


def _json_or_empty(response: httpx.Response | None) -> dict:
    if response is None or not response.content:
        return {}
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}
