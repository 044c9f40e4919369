"""Reconciliation store: the persisted file table and its refresh cycle.

A refresh fetches the current file set under the roots, then in one
transaction reads the stored IDs, upserts every fetched record and deletes the
rows that were not fetched. Any failure rolls the whole cycle back.

Lifecycle::

    store = FileStore(database_url, fetcher)
    await store.initialize_schema()
    await store.refresh(root_ids)
    await store.search("report")
    await store.close()
"""

from __future__ import annotations

import asyncio
import enum
from collections.abc import Iterable, Sequence
from typing import Protocol

from pydantic import BaseModel
from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from drivevault.core.logging import get_logger
from drivevault.db.base import Base
from drivevault.db.models import DriveFile
from drivevault.db.session import create_engine, create_session_maker
from drivevault.exceptions import NotFoundError, PersistenceError
from drivevault.services.file_query import FileRecord, dedupe_files
from drivevault.utils.links import extract_file_id

logger = get_logger(__name__)

# Bound parameters per DELETE ... IN (...) statement
DELETE_BATCH_SIZE = 500


class SyncState(str, enum.Enum):
    """Phase of the refresh cycle."""

    IDLE = "idle"
    FETCHING = "fetching"
    DIFFING = "diffing"
    COMMITTING = "committing"


class SyncResult(BaseModel):
    """Summary of one refresh cycle."""

    total_files: int = 0
    new_files: int = 0


class FileSource(Protocol):
    """Anything that can produce the remote file set under some roots."""

    async def fetch_all_files(self, root_ids: Iterable[str]) -> list[FileRecord]: ...


class FileStore:
    """Persisted mirror of the remote file set."""

    def __init__(self, database_url: str, fetcher: FileSource, *, echo: bool = False):
        """Initialize the store.

        Args:
            database_url: SQLAlchemy async URL of the SQLite database.
            fetcher: Source of the remote file set used by refresh.
            echo: Log emitted SQL.
        """
        self.database_url = database_url
        self.fetcher = fetcher
        self._engine = create_engine(database_url, echo=echo)
        self._session_maker = create_session_maker(self._engine)
        self._refresh_lock = asyncio.Lock()
        self._state = SyncState.IDLE

    async def __aenter__(self) -> FileStore:
        await self.initialize_schema()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_refreshing(self) -> bool:
        return self._refresh_lock.locked()

    # ========== Lifecycle ==========

    async def initialize_schema(self) -> None:
        """Create the ``files`` table and its name index if missing.

        Raises:
            PersistenceError: If the database cannot be opened or created.
        """
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            logger.error("database_init_failed", url=self.database_url, error=str(e))
            raise PersistenceError(f"Failed to initialize the database: {e}") from e
        logger.info("database_initialized", url=self.database_url)

    async def close(self) -> None:
        """Dispose of the engine and its connections."""
        await self._engine.dispose()

    # ========== Refresh ==========

    async def refresh(self, root_ids: Iterable[str]) -> SyncResult:
        """Bring the table in line with the files currently under ``root_ids``.

        Only one refresh runs at a time; overlapping calls wait for the
        running one to finish and then run their own cycle.

        Returns:
            SyncResult with the fetched and newly seen file counts.

        Raises:
            TransportError: If fetching fails. The table is left untouched.
            PersistenceError: If the transaction fails. It is rolled back.
        """
        roots = list(root_ids)
        if self._refresh_lock.locked():
            logger.info("refresh_waiting_for_running_cycle")

        async with self._refresh_lock:
            try:
                logger.info("refresh_started", roots=roots)
                self._state = SyncState.FETCHING
                records = dedupe_files(await self.fetcher.fetch_all_files(roots))
                result = await self._reconcile(records)
            finally:
                self._state = SyncState.IDLE

        logger.info(
            "refresh_completed",
            total_files=result.total_files,
            new_files=result.new_files,
        )
        return result

    async def _reconcile(self, records: Sequence[FileRecord]) -> SyncResult:
        fetched_ids = {record.id for record in records}

        try:
            async with self._session_maker() as session:
                async with session.begin():
                    self._state = SyncState.DIFFING
                    existing_ids = await self._load_ids(session)
                    new_ids = fetched_ids - existing_ids
                    stale_ids = existing_ids - fetched_ids

                    self._state = SyncState.COMMITTING
                    await self._upsert_files(session, records)

                    if not fetched_ids:
                        logger.warning(
                            "refresh_empty_fetch",
                            stored_files=len(existing_ids),
                            detail="no remote files observed, skipping deletion",
                        )
                    else:
                        await self._delete_files(session, stale_ids)
        except SQLAlchemyError as e:
            logger.error("refresh_rolled_back", error=str(e))
            raise PersistenceError(f"Failed to update database: {e}") from e

        if fetched_ids:
            logger.info(
                "database_updated",
                upserted=len(records),
                inserted=len(new_ids),
                deleted=len(stale_ids),
            )
        return SyncResult(total_files=len(fetched_ids), new_files=len(new_ids))

    async def _load_ids(self, session: AsyncSession) -> set[str]:
        result = await session.execute(select(DriveFile.id))
        return set(result.scalars().all())

    async def _upsert_files(self, session: AsyncSession, records: Sequence[FileRecord]) -> None:
        """Insert new rows and update metadata of existing ones.

        ``local_path`` is not part of the update set, so cached downloads
        survive the refresh.
        """
        for record in records:
            stmt = sqlite_insert(DriveFile).values(
                id=record.id,
                name=record.name,
                parent_ids=list(record.parent_ids) or None,
                view_link=record.view_link,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[DriveFile.id],
                set_={
                    "name": stmt.excluded.name,
                    "parent_ids": stmt.excluded.parent_ids,
                    "view_link": stmt.excluded.view_link,
                },
            )
            await session.execute(stmt)

    async def _delete_files(self, session: AsyncSession, file_ids: Iterable[str]) -> None:
        ids = sorted(file_ids)
        for start in range(0, len(ids), DELETE_BATCH_SIZE):
            batch = ids[start:start + DELETE_BATCH_SIZE]
            await session.execute(delete(DriveFile).where(DriveFile.id.in_(batch)))

    # ========== Queries ==========

    async def search(self, text: str) -> list[DriveFile]:
        """Find files whose name contains ``text``, ignoring case.

        ``text`` is bound as a parameter and LIKE wildcards in it are escaped,
        so quotes, backslashes, ``%`` and ``_`` match literally.
        """
        stmt = select(DriveFile).where(DriveFile.name.icontains(text, autoescape=True))
        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("search_failed", query=text, error=str(e))
            raise PersistenceError(f"Search query failed: {e}") from e

    async def get_file(self, file_id: str) -> DriveFile | None:
        try:
            async with self._session_maker() as session:
                return await session.get(DriveFile, file_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load file {file_id}: {e}") from e

    async def exists(self, file_id: str) -> bool:
        stmt = select(DriveFile.id).where(DriveFile.id == file_id)
        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                return result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            logger.error("exists_check_failed", file_id=file_id, error=str(e))
            raise PersistenceError(f"Failed to check file existence: {e}") from e

    async def file_exists(self, file_link: str) -> bool:
        """Check a Drive link against the table.

        A link without a parsable file ID is reported as not existing.
        """
        file_id = extract_file_id(file_link)
        if not file_id:
            return False
        return await self.exists(file_id)

    async def get_local_path(self, file_id: str) -> str | None:
        stmt = select(DriveFile.local_path).where(DriveFile.id == file_id)
        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read local path: {e}") from e

    async def set_local_path(self, file_id: str, local_path: str) -> None:
        """Record where a downloaded copy of ``file_id`` lives.

        Raises:
            NotFoundError: If ``file_id`` is not stored.
        """
        stmt = (
            update(DriveFile)
            .where(DriveFile.id == file_id)
            .values(local_path=local_path)
        )
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                    updated = result.rowcount
        except SQLAlchemyError as e:
            logger.error("set_local_path_failed", file_id=file_id, error=str(e))
            raise PersistenceError(f"Failed to update local path: {e}") from e

        if not updated:
            raise NotFoundError(f"File {file_id} is not in the database")
        logger.debug("local_path_updated", file_id=file_id, local_path=local_path)

    async def get_existing_ids(self) -> set[str]:
        try:
            async with self._session_maker() as session:
                return await self._load_ids(session)
        except SQLAlchemyError as e:
            logger.error("load_ids_failed", error=str(e))
            raise PersistenceError(f"Failed to fetch existing file IDs: {e}") from e

    async def count(self) -> int:
        try:
            async with self._session_maker() as session:
                result = await session.execute(select(func.count()).select_from(DriveFile))
                return result.scalar_one()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to count files: {e}") from e
