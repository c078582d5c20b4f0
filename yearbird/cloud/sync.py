"""Cloud configuration sync.

Connects the local feature stores to the remote configuration file:

- ``pull`` reads the remote document and fans it out to the stores with
  ``set_all`` (which does not schedule a write back). When no remote file
  exists yet the local state is uploaded instead.
- Local edits call ``schedule_sync_to_cloud`` through the stores'
  ``on_local_change`` hook. Writes are debounced through the scheduler so a
  burst of edits produces one remote write.
- ``push`` writes immediately, ``delete_remote`` removes the file.

The stores stay authoritative: a failed sync is recorded in ``status`` and
never rolls back or blocks a local edit.
"""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from yearbird.cloud.drive import DriveResult, RemoteConfigStore
from yearbird.models.config import CLOUD_CONFIG_VERSION, CloudConfig
from yearbird.stores.calendars import CalendarVisibilityStore
from yearbird.stores.categories import DEFAULT_CATEGORY_IDS, CategoryStore, default_categories
from yearbird.stores.display import DisplaySettingsStore
from yearbird.stores.filters import FilterStore

logger = logging.getLogger(__name__)

ScheduleWrite = Callable[[Callable[[], Awaitable[None]], float], None]


@dataclass
class SyncStatus:
    """Outcome of the most recent sync attempt.

    Attributes:
        last_sync_time: Epoch milliseconds of the last attempt, None if never.
        success: Whether that attempt succeeded.
        error: Failure message of that attempt.
        error_code: Remote status code of that attempt (0 for network errors).
    """
    last_sync_time: float | None = None
    success: bool | None = None
    error: str | None = None
    error_code: int | None = None


class CloudSyncManager:
    """Reconciles the feature stores with the remote configuration file."""

    def __init__(
        self,
        remote: RemoteConfigStore,
        *,
        categories: CategoryStore,
        filters: FilterStore,
        calendars: CalendarVisibilityStore,
        display: DisplaySettingsStore,
        is_enabled: Callable[[], bool],
        schedule_write: ScheduleWrite,
        debounce_seconds: float,
        device_id: str = "",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.remote = remote
        self.categories = categories
        self.filters = filters
        self.calendars = calendars
        self.display = display
        self._is_enabled = is_enabled
        self._schedule_write = schedule_write
        self._debounce_seconds = debounce_seconds
        self.device_id = device_id or str(uuid.uuid4())
        self._clock = clock
        self.status = SyncStatus()

        for store in (categories, filters, calendars, display):
            store.on_local_change = self.schedule_sync_to_cloud

    def is_enabled(self) -> bool:
        return self._is_enabled()

    def build_cloud_config(self) -> CloudConfig:
        """Snapshot every store into a version 1 document."""
        categories = self.categories.get()
        present = {entry.id for entry in categories}
        return CloudConfig(
            version=CLOUD_CONFIG_VERSION,
            updated_at=self._now_ms(),
            device_id=self.device_id,
            filters=self.filters.get(),
            disabled_calendars=self.calendars.get(),
            disabled_built_in_categories=[
                category_id for category_id in DEFAULT_CATEGORY_IDS if category_id not in present
            ],
            custom_categories=categories,
            display_settings=self.display.get(),
        )

    def apply_cloud_config(self, config: CloudConfig) -> None:
        """Replace every store's content with the remote document."""
        present = {entry.id for entry in config.custom_categories}
        labels = {entry.label.lower() for entry in config.custom_categories}
        disabled = set(config.disabled_built_in_categories)
        # Built-ins missing from the document are restored unless disabled or shadowed by label.
        restored = [
            entry
            for entry in default_categories(self._now_ms())
            if entry.id not in present
            and entry.id not in disabled
            and entry.label.lower() not in labels
        ]
        self.categories.set_all([*config.custom_categories, *restored])
        self.filters.set_all(config.filters)
        self.calendars.set_all(config.disabled_calendars)
        if config.display_settings is not None:
            self.display.set_all(config.display_settings)
        logger.info(
            f"Applied cloud config from device {config.device_id} "
            f"({len(config.custom_categories)} categories, {len(config.filters)} filters)"
        )

    async def pull(self) -> DriveResult[CloudConfig]:
        if not self.is_enabled():
            return DriveResult.fail(403, "Cloud sync is not enabled")

        result = await self.remote.read()
        if not result.success:
            self._record(result)
            return result

        if result.data is None:
            logger.info("No cloud config yet, uploading local settings")
            return await self.push()

        self.apply_cloud_config(result.data)
        self._record(result)
        return result

    async def push(self) -> DriveResult[CloudConfig]:
        if not self.is_enabled():
            return DriveResult.fail(403, "Cloud sync is not enabled")

        config = self.build_cloud_config()
        written = await self.remote.write(config)
        self._record(written)
        if not written.success:
            return DriveResult.fail(written.error.code, written.error.message)
        return DriveResult.ok(config)

    async def delete_remote(self) -> DriveResult[None]:
        result = await self.remote.delete()
        self._record(result)
        return result

    def schedule_sync_to_cloud(self) -> None:
        """Queue a debounced write; no-op while sync is disabled."""
        if not self.is_enabled():
            return
        self._schedule_write(self._scheduled_push, self._debounce_seconds)

    async def _scheduled_push(self) -> None:
        result = await self.push()
        if not result.success:
            logger.error(f"Scheduled cloud write failed: {result.error.message}")

    def _record(self, result: DriveResult) -> None:
        self.status = SyncStatus(
            last_sync_time=self._now_ms(),
            success=result.success,
            error=result.error.message if result.error else None,
            error_code=result.error.code if result.error else None,
        )

    def _now_ms(self) -> float:
        return self._clock() * 1000
