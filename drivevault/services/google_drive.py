"""Google Drive transport.

Provides:
- The ``RemoteTransport`` protocol the sync engine depends on
- ``GoogleDriveTransport``, its implementation over the Drive v3 API
- Folder validation for configured roots

Calls into ``googleapiclient`` are blocking and run in a worker thread.
Errors are mapped to ``TransportError``/``NotFoundError`` here; nothing in
this module retries.
"""

from __future__ import annotations

import asyncio
import io
from collections.abc import AsyncIterator
from typing import Any, Protocol

from pydantic import BaseModel, Field

from drivevault.core.logging import get_logger
from drivevault.exceptions import NotFoundError, TransportError, ValidationError

logger = get_logger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

# Bytes fetched per media request while streaming file content
DOWNLOAD_CHUNK_SIZE = 4 * 1024 * 1024


class MetadataPage(BaseModel):
    """One page of a files.list response."""

    items: list[dict[str, Any]] = Field(default_factory=list)
    next_page_token: str | None = None


class RemoteTransport(Protocol):
    """Remote calls needed by the sync engine."""

    async def list_metadata(
        self,
        query: str,
        page_token: str | None,
        fields: str,
        page_size: int = 1000,
    ) -> MetadataPage: ...

    def stream_content(self, file_id: str) -> AsyncIterator[bytes]: ...

    async def get_metadata(self, file_id: str, fields: str) -> dict[str, Any]: ...


class GoogleDriveTransport:
    """Drive v3 implementation of ``RemoteTransport``.

    Requests include shared-drive items (``supportsAllDrives`` and
    ``includeItemsFromAllDrives``).
    """

    def __init__(self, service: Any):
        """Initialize the transport.

        Args:
            service: A Drive v3 resource from ``googleapiclient.discovery.build``.
        """
        self._service = service

    @classmethod
    def from_credentials(cls, credentials: Any) -> GoogleDriveTransport:
        """Build the Drive service for OAuth credentials."""
        from googleapiclient.discovery import build

        try:
            service = build("drive", "v3", credentials=credentials, cache_discovery=False)
        except Exception as e:
            raise TransportError(f"Failed to build Drive service: {e}") from e
        return cls(service)

    async def list_metadata(
        self,
        query: str,
        page_token: str | None,
        fields: str,
        page_size: int = 1000,
    ) -> MetadataPage:
        """Fetch one page of files matching ``query``.

        Raises:
            TransportError: If the request fails.
        """
        request = self._service.files().list(
            q=query,
            fields=fields,
            pageToken=page_token,
            pageSize=page_size,
            supportsAllDrives=True,
            includeItemsFromAllDrives=True,
        )
        data = await self._execute(request.execute, operation="list_metadata")
        return MetadataPage(
            items=data.get("files", []) or [],
            next_page_token=data.get("nextPageToken") or None,
        )

    async def get_metadata(self, file_id: str, fields: str) -> dict[str, Any]:
        """Fetch metadata for a single file or folder.

        Raises:
            NotFoundError: If the ID does not exist or is not visible.
            TransportError: For any other failure.
        """
        request = self._service.files().get(
            fileId=file_id,
            fields=fields,
            supportsAllDrives=True,
        )
        return await self._execute(request.execute, operation="get_metadata", file_id=file_id)

    async def stream_content(self, file_id: str) -> AsyncIterator[bytes]:
        """Yield the content of ``file_id`` in chunks until the end of the media.

        Raises:
            NotFoundError: If the file does not exist.
            TransportError: If any chunk fails.
        """
        from googleapiclient.http import MediaIoBaseDownload

        request = self._service.files().get_media(
            fileId=file_id,
            supportsAllDrives=True,
        )
        buffer = io.BytesIO()
        downloader = MediaIoBaseDownload(buffer, request, chunksize=DOWNLOAD_CHUNK_SIZE)

        done = False
        while not done:
            _, done = await self._execute(
                downloader.next_chunk, operation="stream_content", file_id=file_id
            )
            chunk = buffer.getvalue()
            buffer.seek(0)
            buffer.truncate(0)
            if chunk:
                yield chunk

    async def _execute(self, func: Any, *, operation: str, file_id: str | None = None) -> Any:
        """Run a blocking client call in a thread and map its errors."""
        from googleapiclient.errors import HttpError

        try:
            return await asyncio.to_thread(func)
        except HttpError as e:
            status = getattr(e.resp, "status", None)
            logger.error(
                "drive_request_failed",
                operation=operation,
                file_id=file_id,
                status=status,
                error=str(e),
            )
            if status == 404 and file_id is not None:
                raise NotFoundError(f"Drive item {file_id} not found") from e
            raise TransportError(f"Google API error during {operation}: {e}", status_code=status) from e
        except (OSError, TimeoutError) as e:
            logger.error("drive_network_error", operation=operation, file_id=file_id, error=str(e))
            raise TransportError(f"Network error during {operation}: {e}") from e


async def validate_folder_id(transport: RemoteTransport, folder_id: str) -> dict[str, Any]:
    """Check that ``folder_id`` exists and is a folder.

    Args:
        transport: Remote transport.
        folder_id: Drive folder ID.

    Returns:
        The folder metadata (id, name, mimeType).

    Raises:
        NotFoundError: If the folder does not exist.
        ValidationError: If the ID belongs to something other than a folder.
    """
    logger.info("validating_folder", folder_id=folder_id)
    data = await transport.get_metadata(folder_id, "id, name, mimeType")

    if data.get("mimeType") != FOLDER_MIME_TYPE:
        raise ValidationError(f"The provided ID {folder_id} is not a folder")

    logger.info("folder_validated", folder_id=folder_id, name=data.get("name"))
    return data
