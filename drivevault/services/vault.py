"""DriveVault: wires auth, transport, store and download cache together.

Typical use::

    async with DriveVault(settings) as vault:
        results = await vault.search("thermodynamics")
        path = await vault.download(results[0].view_link)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from drivevault.core.config import Settings, settings as default_settings
from drivevault.core.logging import get_logger
from drivevault.db.models import DriveFile
from drivevault.exceptions import ConfigurationError, DriveVaultError
from drivevault.services.auth import GoogleAuthProvider
from drivevault.services.download import DownloadCache
from drivevault.services.file_query import FileFetcher
from drivevault.services.file_store import FileStore, SyncResult
from drivevault.services.google_drive import (
    GoogleDriveTransport,
    MetadataPage,
    RemoteTransport,
    validate_folder_id,
)

logger = get_logger(__name__)


class LazyTransport:
    """``RemoteTransport`` that connects on first use.

    Commands answered from the local store never authorize or reach Drive.
    """

    def __init__(self, connect: Callable[[], Awaitable[RemoteTransport]]):
        self._connect = connect
        self._transport: RemoteTransport | None = None
        self._lock = asyncio.Lock()

    async def get(self) -> RemoteTransport:
        async with self._lock:
            if self._transport is None:
                self._transport = await self._connect()
            return self._transport

    async def list_metadata(
        self,
        query: str,
        page_token: str | None,
        fields: str,
        page_size: int = 1000,
    ) -> MetadataPage:
        transport = await self.get()
        return await transport.list_metadata(query, page_token, fields, page_size)

    async def get_metadata(self, file_id: str, fields: str) -> dict[str, Any]:
        transport = await self.get()
        return await transport.get_metadata(file_id, fields)

    async def stream_content(self, file_id: str) -> AsyncIterator[bytes]:
        transport = await self.get()
        async for chunk in transport.stream_content(file_id):
            yield chunk


class DriveVault:
    """Local mirror of the configured Drive folders."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        auth_provider: GoogleAuthProvider | None = None,
        transport: RemoteTransport | None = None,
    ):
        """Initialize the vault.

        Args:
            settings: Settings to use (default: the global settings).
            auth_provider: OAuth provider; built from settings when omitted.
            transport: Pre-built transport. When given, no authorization runs.
        """
        self.settings = settings or default_settings
        self._auth_provider = auth_provider
        self._transport = transport
        self._store: FileStore | None = None
        self._downloads: DownloadCache | None = None

        self._refresh_task: asyncio.Task[None] | None = None
        self._shutdown_event = asyncio.Event()
        self._last_refresh_at: datetime | None = None
        self._last_result: SyncResult | None = None

    async def __aenter__(self) -> DriveVault:
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ========== Lifecycle ==========

    @property
    def store(self) -> FileStore:
        if self._store is None:
            raise DriveVaultError("DriveVault is not open. Call open() first.", "NOT_OPEN")
        return self._store

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "is_open": self._store is not None,
            "scheduled_refresh": self._refresh_task is not None and not self._refresh_task.done(),
            "last_refresh_at": self._last_refresh_at.isoformat() if self._last_refresh_at else None,
            "total_files": self._last_result.total_files if self._last_result else None,
            "new_files": self._last_result.new_files if self._last_result else None,
        }

    async def open(self, *, initial_refresh: bool = True) -> None:
        """Open the store and, by default, validate the roots and refresh once.

        Drive is contacted lazily: with ``initial_refresh=False`` nothing
        authorizes or reaches the network until an operation needs the remote
        (a refresh or a download cache miss). Root validation runs only
        together with the initial refresh.

        Raises:
            ConfigurationError: If no root folders are configured.
            AuthError: If credentials cannot be obtained.
            NotFoundError, ValidationError: If a root is not an existing folder.
        """
        if self._store is not None:
            return

        root_ids = self.settings.root_folder_ids
        if not root_ids:
            raise ConfigurationError("No root folders configured (set DRIVEVAULT_FOLDER_IDS)")

        logger.info("vault_opening", roots=root_ids, database=self.settings.database_url)

        transport = self._transport or LazyTransport(self._connect)

        if initial_refresh and self.settings.validate_folders:
            for folder_id in root_ids:
                await validate_folder_id(transport, folder_id)

        fetcher = FileFetcher(
            transport,
            chunk_size=self.settings.query_chunk_size,
            page_size=self.settings.page_size,
        )
        store = FileStore(self.settings.database_url, fetcher, echo=self.settings.debug)
        try:
            await store.initialize_schema()
        except DriveVaultError:
            await store.close()
            raise

        self._store = store
        self._downloads = DownloadCache(
            store,
            transport,
            self.settings.resolved_downloads_path,
            default_extension=self.settings.default_download_extension,
        )

        if initial_refresh:
            await self.refresh()

        logger.info("vault_opened")

    async def _connect(self) -> RemoteTransport:
        """Authorize and build the Drive transport."""
        provider = self._auth_provider or GoogleAuthProvider(
            self.settings.resolved_credentials_path,
            self.settings.resolved_token_path,
            self.settings.scopes,
        )
        credentials = await asyncio.to_thread(provider.get_client)
        logger.info("drive_connected")
        return GoogleDriveTransport.from_credentials(credentials)

    async def close(self) -> None:
        """Stop the scheduled refresh and close the store."""
        await self.stop_scheduled_refresh()
        if self._store is not None:
            await self._store.close()
            self._store = None
            self._downloads = None
        logger.info("vault_closed")

    # ========== Operations ==========

    async def refresh(self) -> SyncResult:
        """Run one reconciliation cycle over the configured roots."""
        result = await self.store.refresh(self.settings.root_folder_ids)
        self._last_refresh_at = datetime.now(timezone.utc)
        self._last_result = result
        return result

    async def search(self, text: str) -> list[DriveFile]:
        return await self.store.search(text)

    async def file_exists(self, file_link: str) -> bool:
        return await self.store.file_exists(file_link)

    async def download(self, file_link: str) -> Path:
        """Download a synced file given its webViewLink.

        Raises:
            ValidationError: If the link carries no file ID.
            NotFoundError: If the file is not in the synced set.
            TransportError: If the download fails.
        """
        if self._downloads is None:
            raise DriveVaultError("DriveVault is not open. Call open() first.", "NOT_OPEN")
        return await self._downloads.download(file_link)

    # ========== Scheduled refresh ==========

    def start_scheduled_refresh(self, interval: float | None = None) -> asyncio.Task[None]:
        """Refresh every ``interval`` seconds in a background task."""
        if self._refresh_task is not None and not self._refresh_task.done():
            logger.warning("scheduled_refresh_already_running")
            return self._refresh_task

        delay = interval if interval is not None else self.settings.refresh_interval
        self._shutdown_event.clear()
        self._refresh_task = asyncio.create_task(self._run_refresh_loop(delay))
        logger.info("scheduled_refresh_started", interval_seconds=delay)
        return self._refresh_task

    async def stop_scheduled_refresh(self) -> None:
        """Stop the background loop, letting a running refresh finish."""
        task = self._refresh_task
        if task is None:
            return
        self._shutdown_event.set()
        await task
        self._refresh_task = None
        logger.info("scheduled_refresh_stopped")

    async def wait_closed(self) -> None:
        """Wait until the scheduled refresh loop ends."""
        if self._refresh_task is not None:
            await self._refresh_task

    async def _run_refresh_loop(self, interval: float) -> None:
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.refresh()
            except Exception as e:
                logger.error("scheduled_refresh_failed", error=str(e), exc_info=True)
