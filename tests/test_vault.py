"""Tests for DriveVault orchestration."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from conftest import FakeTransport, drive_id, view_link
from drivevault.core.config import Settings
from drivevault.exceptions import (
    ConfigurationError,
    DriveVaultError,
    NotFoundError,
    ValidationError,
)
from drivevault.services.vault import DriveVault

ROOT = drive_id("root")
SUB = drive_id("sub")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(folder_ids=ROOT, data_path=tmp_path)


@pytest.fixture
def remote(transport: FakeTransport) -> FakeTransport:
    transport.add_folder(ROOT)
    transport.add_folder(SUB, parents=[ROOT])
    transport.add_file(drive_id("top"), "Top Report.pdf", [ROOT], content=b"top")
    transport.add_file(drive_id("deep"), "Deep notes.txt", [SUB], content=b"deep")
    return transport


class TestOpen:
    """Tests for DriveVault.open."""

    @pytest.mark.asyncio
    async def test_open_refreshes(self, settings: Settings, remote: FakeTransport):
        async with DriveVault(settings, transport=remote) as vault:
            assert await vault.store.count() == 2
            assert vault.stats["total_files"] == 2
            assert vault.stats["new_files"] == 2
            assert vault.stats["is_open"] is True

        assert settings.resolved_database_path.exists()

    @pytest.mark.asyncio
    async def test_open_without_initial_refresh(self, settings: Settings, remote: FakeTransport):
        vault = DriveVault(settings, transport=remote)
        await vault.open(initial_refresh=False)
        try:
            assert await vault.store.count() == 0
            assert vault.stats["last_refresh_at"] is None
        finally:
            await vault.close()

    @pytest.mark.asyncio
    async def test_no_roots(self, tmp_path: Path, remote: FakeTransport):
        vault = DriveVault(Settings(folder_ids="", data_path=tmp_path), transport=remote)

        with pytest.raises(ConfigurationError):
            await vault.open()

    @pytest.mark.asyncio
    async def test_root_not_a_folder(self, tmp_path: Path, remote: FakeTransport):
        settings = Settings(folder_ids=drive_id("top"), data_path=tmp_path)

        with pytest.raises(ValidationError):
            await DriveVault(settings, transport=remote).open()

    @pytest.mark.asyncio
    async def test_root_missing(self, tmp_path: Path, remote: FakeTransport):
        settings = Settings(folder_ids=drive_id("missing"), data_path=tmp_path)

        with pytest.raises(NotFoundError):
            await DriveVault(settings, transport=remote).open()

    @pytest.mark.asyncio
    async def test_validation_can_be_disabled(self, tmp_path: Path, remote: FakeTransport):
        settings = Settings(
            folder_ids=drive_id("missing"),
            data_path=tmp_path,
            validate_folders=False,
        )

        async with DriveVault(settings, transport=remote) as vault:
            assert await vault.store.count() == 0

    @pytest.mark.asyncio
    async def test_auth_provider_used_without_transport(
        self, settings: Settings, monkeypatch: pytest.MonkeyPatch, remote: FakeTransport
    ):
        provider = MagicMock()
        provider.get_client.return_value = "credentials"
        built = MagicMock(return_value=remote)
        monkeypatch.setattr(
            "drivevault.services.vault.GoogleDriveTransport.from_credentials", built
        )

        async with DriveVault(settings, auth_provider=provider):
            pass

        provider.get_client.assert_called_once()
        built.assert_called_once_with("credentials")

    @pytest.mark.asyncio
    async def test_store_requires_open(self, settings: Settings):
        with pytest.raises(DriveVaultError):
            DriveVault(settings).store


class TestOperations:
    """Tests for search, file_exists and download through the vault."""

    @pytest.mark.asyncio
    async def test_search_covers_nested_folders(self, settings: Settings, remote: FakeTransport):
        async with DriveVault(settings, transport=remote) as vault:
            rows = await vault.search("notes")

        assert [r.id for r in rows] == [drive_id("deep")]

    @pytest.mark.asyncio
    async def test_file_exists(self, settings: Settings, remote: FakeTransport):
        async with DriveVault(settings, transport=remote) as vault:
            assert await vault.file_exists(view_link(drive_id("deep"))) is True
            assert await vault.file_exists("not a link") is False

    @pytest.mark.asyncio
    async def test_download(self, settings: Settings, remote: FakeTransport):
        async with DriveVault(settings, transport=remote) as vault:
            path = await vault.download(view_link(drive_id("deep")))

        assert path.parent == settings.resolved_downloads_path
        assert path.name == f"{drive_id('deep')}.txt"
        assert path.read_bytes() == b"deep"

    @pytest.mark.asyncio
    async def test_refresh_picks_up_changes(self, settings: Settings, remote: FakeTransport):
        async with DriveVault(settings, transport=remote) as vault:
            remote.add_file(drive_id("new"), "New.pdf", [SUB])
            remote.remove_file(drive_id("top"))

            result = await vault.refresh()

            assert result.total_files == 2
            assert result.new_files == 1
            assert await vault.file_exists(view_link(drive_id("top"))) is False


class TestScheduledRefresh:
    """Tests for the background refresh loop."""

    @pytest.mark.asyncio
    async def test_runs_periodically(self, settings: Settings, remote: FakeTransport):
        async with DriveVault(settings, transport=remote) as vault:
            remote.add_file(drive_id("later"), "Later.pdf", [ROOT])
            vault.start_scheduled_refresh(interval=0.01)

            for _ in range(100):
                if await vault.file_exists(view_link(drive_id("later"))):
                    break
                await asyncio.sleep(0.01)

            assert await vault.file_exists(view_link(drive_id("later"))) is True
            assert vault.stats["scheduled_refresh"] is True

            await vault.stop_scheduled_refresh()
            assert vault.stats["scheduled_refresh"] is False

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_loop(self, settings: Settings, remote: FakeTransport):
        async with DriveVault(settings, transport=remote) as vault:
            calls_before = len(remote.list_calls)
            remote.fail_on_list_call = calls_before + 1
            vault.start_scheduled_refresh(interval=0.01)

            for _ in range(100):
                if len(remote.list_calls) > calls_before + 2:
                    break
                await asyncio.sleep(0.01)

            assert len(remote.list_calls) > calls_before + 2
            assert await vault.store.count() == 2

    @pytest.mark.asyncio
    async def test_close_stops_loop(self, settings: Settings, remote: FakeTransport):
        vault = DriveVault(settings, transport=remote)
        await vault.open()
        task = vault.start_scheduled_refresh(interval=3600)

        await vault.close()

        assert task.done()
        assert vault.stats["is_open"] is False


class TestLocalOnly:
    """Tests for opening without the initial refresh."""

    @pytest.mark.asyncio
    async def test_search_stays_local(self, settings: Settings, remote: FakeTransport):
        async with DriveVault(settings, transport=remote):
            pass
        remote.list_calls.clear()
        remote.metadata_calls.clear()

        vault = DriveVault(settings, transport=remote)
        await vault.open(initial_refresh=False)
        try:
            rows = await vault.search("report")
        finally:
            await vault.close()

        assert [r.id for r in rows] == [drive_id("top")]
        assert remote.list_calls == []
        assert remote.metadata_calls == []

    @pytest.mark.asyncio
    async def test_no_authorization_until_remote_needed(
        self, settings: Settings, monkeypatch: pytest.MonkeyPatch, remote: FakeTransport
    ):
        """Test credentials are requested only on a download cache miss."""
        async with DriveVault(settings, transport=remote) as vault:
            cached = await vault.download(view_link(drive_id("top")))

        provider = MagicMock()
        provider.get_client.return_value = "credentials"
        monkeypatch.setattr(
            "drivevault.services.vault.GoogleDriveTransport.from_credentials",
            MagicMock(return_value=remote),
        )

        vault = DriveVault(settings, auth_provider=provider)
        await vault.open(initial_refresh=False)
        try:
            assert await vault.search("notes")
            assert await vault.download(view_link(drive_id("top"))) == cached
            provider.get_client.assert_not_called()

            await vault.download(view_link(drive_id("deep")))
            await vault.download(view_link(drive_id("deep")))
            provider.get_client.assert_called_once()
        finally:
            await vault.close()
