"""Batched file listing over a folder closure.

Drive query expressions have a practical length limit, so the folder IDs are
split into small groups and one ``'<id>' in parents`` disjunction is issued per
group. A file with several parents inside the closure can come back from more
than one group; ``dedupe_files`` keeps the first occurrence.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from drivevault.core.logging import get_logger
from drivevault.services.folder_tree import (
    Folder,
    fetch_folder_map,
    resolve_folder_closure,
)
from drivevault.services.google_drive import FOLDER_MIME_TYPE, RemoteTransport
from drivevault.services.pagination import DEFAULT_PAGE_SIZE, fetch_all_pages

T = TypeVar("T")

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 5
FILE_FIELDS = "nextPageToken, files(id, name, parents, webViewLink)"


class FileRecord(BaseModel):
    """A remote file as returned by one listing."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    parent_ids: list[str] = Field(default_factory=list)
    view_link: str = ""

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> FileRecord:
        """Build a record from a files.list item."""
        parents: list[str] = []
        for parent_id in data.get("parents") or []:
            if parent_id not in parents:
                parents.append(parent_id)
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            parent_ids=parents,
            view_link=data.get("webViewLink") or "",
        )


def escape_query_value(value: str) -> str:
    """Escape a value for use inside a single-quoted Drive query string.

    Backslashes are escaped first so the quote escapes are not doubled.
    """
    return value.replace("\\", "\\\\").replace("'", "\\'")


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Split ``items`` into consecutive lists of at most ``size`` elements."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def build_file_query(folder_ids: Sequence[str], text_query: str = "") -> str:
    """Build the files.list expression for one group of folders.

    Args:
        folder_ids: Folders whose direct children are listed.
        text_query: Optional name filter; ignored when blank.

    Returns:
        A Drive query expression.
    """
    parent_clauses = " or ".join(
        f"'{escape_query_value(folder_id)}' in parents" for folder_id in folder_ids
    )
    query = f"({parent_clauses}) and mimeType != '{FOLDER_MIME_TYPE}' and trashed = false"
    if text_query.strip():
        query += f" and name contains '{escape_query_value(text_query)}'"
    return query


async def fetch_files(
    transport: RemoteTransport,
    folder_ids: Iterable[str],
    text_query: str = "",
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> list[FileRecord]:
    """List the files directly inside ``folder_ids``.

    One paginated query per group of ``chunk_size`` folders, run one after
    another. Results are concatenated without deduplication.

    Raises:
        TransportError: If any page of any group fails.
    """
    ids = list(folder_ids)
    records: list[FileRecord] = []

    for group in chunked(ids, chunk_size):
        query = build_file_query(group, text_query)
        raw = await fetch_all_pages(transport, query, FILE_FIELDS, page_size=page_size)
        records.extend(FileRecord.from_api(item) for item in raw if item.get("id"))

    logger.info(
        "files_fetched",
        folders=len(ids),
        queries=(len(ids) + chunk_size - 1) // chunk_size,
        files=len(records),
    )
    return records


def dedupe_files(records: Iterable[FileRecord]) -> list[FileRecord]:
    """Drop repeated file IDs, keeping the first record seen for each."""
    seen: set[str] = set()
    unique: list[FileRecord] = []
    for record in records:
        if record.id in seen:
            continue
        seen.add(record.id)
        unique.append(record)
    return unique


class FileFetcher:
    """Fetch the complete, deduplicated file set under a set of root folders."""

    def __init__(
        self,
        transport: RemoteTransport,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.transport = transport
        self.chunk_size = chunk_size
        self.page_size = page_size

    async def get_all_folders(self) -> dict[str, Folder]:
        return await fetch_folder_map(self.transport, page_size=self.page_size)

    def build_folder_tree(
        self, folder_map: Mapping[str, Folder], root_ids: Iterable[str]
    ) -> list[str]:
        return resolve_folder_closure(folder_map, root_ids)

    async def search_files_in_folders(
        self, folder_ids: Iterable[str], text_query: str = ""
    ) -> list[FileRecord]:
        return await fetch_files(
            self.transport,
            folder_ids,
            text_query,
            chunk_size=self.chunk_size,
            page_size=self.page_size,
        )

    async def fetch_all_files(self, root_ids: Iterable[str]) -> list[FileRecord]:
        """Resolve the folder closure of ``root_ids`` and list its files.

        Returns:
            One record per file ID.

        Raises:
            TransportError: If any listing fails.
        """
        folder_map = await self.get_all_folders()
        folder_ids = self.build_folder_tree(folder_map, root_ids)
        if not folder_ids:
            logger.warning("no_folders_resolved")
            return []

        records = await self.search_files_in_folders(folder_ids)
        unique = dedupe_files(records)
        if len(unique) != len(records):
            logger.debug("duplicate_files_dropped", count=len(records) - len(unique))
        return unique
