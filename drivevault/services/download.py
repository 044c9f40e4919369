"""Download cache for synced Drive files.

A file is fetched again only when its recorded copy is missing from disk. The
copy is written to a per-attempt ``<downloads>/<id>.<ext>.<token>.part`` file
and renamed into place when the stream ends, and only then recorded in the
store.
"""

from __future__ import annotations

import uuid
from pathlib import Path, PurePosixPath

import aiofiles
import aiofiles.os

from drivevault.core.logging import get_logger
from drivevault.exceptions import DriveVaultError, NotFoundError, TransportError, ValidationError
from drivevault.services.file_store import FileStore
from drivevault.services.google_drive import RemoteTransport
from drivevault.utils.links import extract_file_id

logger = get_logger(__name__)

PARTIAL_SUFFIX = ".part"


class DownloadCache:
    """Resolve Drive links to local files, downloading on a cache miss."""

    def __init__(
        self,
        store: FileStore,
        transport: RemoteTransport,
        downloads_path: Path,
        *,
        default_extension: str = "pdf",
    ):
        """Initialize the cache.

        Args:
            store: Store holding the synced file set and cached paths.
            transport: Remote transport used on a cache miss.
            downloads_path: Directory that receives downloaded files.
            default_extension: Extension used when the stored name has none.
        """
        self.store = store
        self.transport = transport
        self.downloads_path = Path(downloads_path)
        self.default_extension = default_extension.lstrip(".") or "bin"

    async def download(self, file_link: str) -> Path:
        """Return a local copy of the file behind ``file_link``.

        Args:
            file_link: The file's webViewLink (or any string containing its ID).

        Returns:
            Path to the local copy.

        Raises:
            ValidationError: If no file ID can be parsed from the link.
            NotFoundError: If the file is not part of the synced set.
            TransportError: If the content stream fails.
        """
        file_id = extract_file_id(file_link)
        if not file_id:
            raise ValidationError(f"Invalid Google Drive file link: {file_link}")

        cached = await self.store.get_local_path(file_id)
        if cached and await aiofiles.os.path.exists(cached):
            logger.info("download_cache_hit", file_id=file_id, path=cached)
            return Path(cached)
        if cached:
            logger.info("download_cache_stale", file_id=file_id, path=cached)

        record = await self.store.get_file(file_id)
        if record is None:
            raise NotFoundError(f"File {file_id} not found in the database")

        dest_path = self.downloads_path / f"{file_id}.{self._extension_for(record.name)}"
        await self._fetch_to(file_id, dest_path)

        await self.store.set_local_path(file_id, str(dest_path))
        return dest_path

    def _extension_for(self, name: str) -> str:
        suffix = PurePosixPath(name).suffix.lstrip(".")
        if suffix and suffix.isalnum():
            return suffix.lower()
        return self.default_extension

    async def _fetch_to(self, file_id: str, dest_path: Path) -> None:
        """Stream ``file_id`` into ``dest_path``, leaving nothing behind on failure.

        Each attempt stages into its own ``.part`` file, so concurrent
        downloads of one file never share a partial file. The last rename wins.
        """
        await aiofiles.os.makedirs(self.downloads_path, exist_ok=True)
        partial_path = dest_path.with_name(
            f"{dest_path.name}.{uuid.uuid4().hex[:12]}{PARTIAL_SUFFIX}"
        )

        size = 0
        completed = False
        try:
            async with aiofiles.open(partial_path, "wb") as f:
                async for chunk in self.transport.stream_content(file_id):
                    await f.write(chunk)
                    size += len(chunk)
            await aiofiles.os.replace(partial_path, dest_path)
            completed = True
        except DriveVaultError as e:
            logger.error("download_failed", file_id=file_id, error=str(e))
            raise
        except OSError as e:
            logger.error("download_failed", file_id=file_id, error=str(e))
            raise TransportError(f"Failed to download file {file_id}: {e}") from e
        finally:
            # Also runs on cancellation
            if not completed and await aiofiles.os.path.exists(partial_path):
                await aiofiles.os.remove(partial_path)

        logger.info("file_downloaded", file_id=file_id, size=size, dest=str(dest_path))
