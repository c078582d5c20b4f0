"""Tests for reconciling the feature stores with the cloud config."""

import json

import httpx
import pytest
from conftest import CALENDAR_SCOPES, DRIVE_SCOPE, sign_in_with

from yearbird.cloud.validation import validate_cloud_config
from yearbird.models.config import Category, CloudConfig, DisplaySettings, EventFilter
from yearbird.stores.categories import CategoryInput


def remote_document(**overrides) -> dict:
    document = {
        "version": 1,
        "updatedAt": 1_700_000_000_000,
        "deviceId": "other-device",
        "filters": [{"id": "f1", "pattern": "standup", "createdAt": 1000}],
        "disabledCalendars": ["team@example.com"],
        "disabledBuiltInCategories": ["work"],
        "customCategories": [
            {
                "id": "custom-1",
                "label": "Trips",
                "color": "#112233",
                "keywords": ["flight"],
                "matchMode": "any",
                "createdAt": 1000,
                "updatedAt": 1000,
            },
            {
                "id": "birthdays",
                "label": "Birthdays",
                "color": "#000000",
                "keywords": ["cake"],
                "matchMode": "any",
                "createdAt": 1000,
                "updatedAt": 1000,
                "isDefault": True,
            },
        ],
        "displaySettings": {"weekViewEnabled": True},
    }
    document.update(overrides)
    return document


@pytest.fixture(name="synced")
def synced_fixture(context):
    """Context signed in with the Drive scope, so sync is enabled."""
    sign_in_with(context, scope=f"{CALENDAR_SCOPES} {DRIVE_SCOPE}")
    return context


class TestBuildCloudConfig:
    def test_snapshot(self, context):
        context.categories.remove("races")
        context.filters.add("standup")
        context.calendars.disable("team@example.com")

        config = context.sync.build_cloud_config()

        assert config.version == 1
        assert config.device_id == "test-device"
        assert config.disabled_built_in_categories == ["races"]
        assert [c.id for c in config.custom_categories] == [
            "birthdays",
            "family",
            "holidays",
            "work",
        ]
        assert [f.pattern for f in config.filters] == ["standup"]
        assert config.disabled_calendars == ["team@example.com"]
        assert config.display_settings == DisplaySettings()

    def test_survives_validation(self, context):
        """A built document is accepted by the validator unchanged."""
        context.categories.add(CategoryInput(label="Trips", color="#112233", keywords=["flight"]))
        config = context.sync.build_cloud_config()

        assert validate_cloud_config(config.to_payload()) == config


class TestApplyCloudConfig:
    def test_fans_out_to_stores(self, context):
        config = validate_cloud_config(remote_document())

        context.sync.apply_cloud_config(config)

        categories = context.categories.get()
        assert [c.id for c in categories] == ["custom-1", "birthdays", "family", "holidays", "races"]
        assert categories[1].keywords == ["cake"]
        assert [f.pattern for f in context.filters.get()] == ["standup"]
        assert context.calendars.get() == ["team@example.com"]
        assert context.display.get().week_view_enabled is True

    def test_missing_display_settings_keep_local(self, context):
        context.display.update(match_description=True)
        document = remote_document()
        del document["displaySettings"]

        context.sync.apply_cloud_config(validate_cloud_config(document))

        assert context.display.get().match_description is True

    def test_default_shadowed_by_custom_label(self, context):
        """A custom category named like a missing built-in keeps its place."""
        config = CloudConfig(
            updated_at=1,
            device_id="other-device",
            custom_categories=[
                Category(
                    id="custom-9",
                    label="Work",
                    color="#222222",
                    keywords=["office"],
                    created_at=1,
                    updated_at=1,
                )
            ],
        )

        context.sync.apply_cloud_config(config)

        work = [c for c in context.categories.get() if c.label == "Work"]
        assert [c.id for c in work] == ["custom-9"]

    def test_does_not_schedule_write(self, synced, scheduled):
        synced.sync.apply_cloud_config(validate_cloud_config(remote_document()))
        assert scheduled == []


class TestPullPush:
    async def test_disabled_without_drive_scope(self, context, drive):
        sign_in_with(context)

        result = await context.sync.pull()

        assert result.success is False
        assert result.error.code == 403
        assert drive.requests == []

    async def test_pull_applies_remote(self, synced, drive, scheduled):
        drive.files["file-123"] = json.dumps(remote_document()).encode()

        result = await synced.sync.pull()

        assert result.success is True
        assert result.data.device_id == "other-device"
        assert synced.calendars.get() == ["team@example.com"]
        assert synced.sync.status.success is True
        assert scheduled == []

    async def test_pull_uploads_when_remote_missing(self, synced, drive):
        synced.filters.add("standup")

        result = await synced.sync.pull()

        assert result.success is True
        assert drive.requests[-1].method == "POST"
        uploaded = json.loads(next(iter(drive.files.values())))
        assert uploaded["deviceId"] == "test-device"
        assert uploaded["filters"][0]["pattern"] == "standup"

    async def test_pull_rejects_invalid_remote(self, synced, drive):
        drive.files["file-123"] = json.dumps(remote_document(version=7)).encode()
        synced.filters.add("local")

        result = await synced.sync.pull()

        assert result.success is False
        assert result.error.code == 400
        assert [f.pattern for f in synced.filters.get()] == ["local"]
        assert synced.sync.status.success is False
        assert synced.sync.status.error_code == 400

    async def test_push_overwrites_remote(self, synced, drive):
        drive.files["file-123"] = json.dumps(remote_document()).encode()
        synced.filters.set_all([EventFilter(id="f9", pattern="mine", created_at=5)])

        result = await synced.sync.push()

        assert result.success is True
        assert drive.requests[-1].method == "PATCH"
        stored = json.loads(drive.files["file-123"])
        assert [f["pattern"] for f in stored["filters"]] == ["mine"]

    async def test_push_failure_keeps_local_state(self, synced, drive):
        drive.failures.append(drive_error(403, "Insufficient permissions"))
        synced.filters.add("local")

        result = await synced.sync.push()

        assert result.success is False
        assert result.error.message == "Insufficient permissions"
        assert [f.pattern for f in synced.filters.get()] == ["local"]
        assert synced.sync.status.error == "Insufficient permissions"

    async def test_delete_remote(self, synced, drive):
        drive.files["file-123"] = b"{}"

        result = await synced.sync.delete_remote()

        assert result.success is True
        assert drive.files == {}


class TestScheduling:
    def test_local_edit_schedules_write(self, synced, scheduled):
        synced.filters.add("standup")
        synced.categories.remove("work")

        assert len(scheduled) == 2
        assert all(delay == synced.settings.cloud_sync_debounce_seconds for _, delay in scheduled)

    def test_no_schedule_when_disabled(self, context, scheduled):
        context.filters.add("standup")
        assert scheduled == []

    async def test_scheduled_job_pushes(self, synced, scheduled, drive):
        synced.filters.add("standup")
        job, _ = scheduled[-1]

        await job()

        assert drive.requests[-1].method == "POST"
        assert synced.sync.status.success is True


def drive_error(status: int, message: str) -> httpx.Response:
    return httpx.Response(status, json={"error": {"message": message}})
