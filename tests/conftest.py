"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest

from drivevault.core.config import Settings
from drivevault.core.logging import setup_logging
from drivevault.exceptions import NotFoundError, TransportError
from drivevault.services.file_query import FileFetcher
from drivevault.services.file_store import FileStore
from drivevault.services.google_drive import FOLDER_MIME_TYPE, MetadataPage

PARENT_CLAUSE = re.compile(r"'((?:[^'\\]|\\.)*)' in parents")
NAME_CLAUSE = re.compile(r"name contains '((?:[^'\\]|\\.)*)'")


def drive_id(label: str) -> str:
    """Build a Drive-shaped ID (25+ ID characters) from a short label."""
    return f"{label}_".ljust(28, "x")


def view_link(file_id: str) -> str:
    return f"https://drive.google.com/file/d/{file_id}/view?usp=drivesdk"


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


class FakeTransport:
    """In-memory ``RemoteTransport`` that evaluates the query expressions it receives.

    Folder listings match the folder mimeType query. File listings are
    evaluated from their ``'<id>' in parents`` clauses and the optional
    ``name contains`` filter. Results are paginated by ``page_size`` with the
    offset as continuation token.
    """

    def __init__(self):
        self.folders: dict[str, dict[str, Any]] = {}
        self.files: dict[str, dict[str, Any]] = {}
        self.contents: dict[str, bytes] = {}
        self.list_calls: list[dict[str, Any]] = []
        self.stream_calls: list[str] = []
        self.metadata_calls: list[str] = []
        self.fail_on_list_call: int | None = None
        self.fail_stream_after_chunks: int | None = None
        self.stream_gate: asyncio.Event | None = None
        self.chunk_size = 4

    # ---- test setup helpers ----

    def add_folder(self, folder_id: str, parents: list[str] | None = None, name: str = "") -> None:
        self.folders[folder_id] = {
            "id": folder_id,
            "name": name or folder_id,
            "parents": parents or [],
            "mimeType": FOLDER_MIME_TYPE,
        }

    def add_file(
        self,
        file_id: str,
        name: str,
        parents: list[str],
        content: bytes = b"",
    ) -> None:
        self.files[file_id] = {
            "id": file_id,
            "name": name,
            "parents": parents,
            "webViewLink": view_link(file_id),
            "mimeType": "application/pdf",
        }
        self.contents[file_id] = content

    def remove_file(self, file_id: str) -> None:
        self.files.pop(file_id, None)
        self.contents.pop(file_id, None)

    # ---- RemoteTransport ----

    async def list_metadata(
        self,
        query: str,
        page_token: str | None,
        fields: str,
        page_size: int = 1000,
    ) -> MetadataPage:
        self.list_calls.append({"query": query, "page_token": page_token, "page_size": page_size})
        if self.fail_on_list_call is not None and len(self.list_calls) == self.fail_on_list_call:
            raise TransportError("simulated listing failure", status_code=500)

        matches = self._evaluate(query)
        offset = int(page_token) if page_token else 0
        page = matches[offset:offset + page_size]
        next_offset = offset + page_size
        return MetadataPage(
            items=[dict(item) for item in page],
            next_page_token=str(next_offset) if next_offset < len(matches) else None,
        )

    async def get_metadata(self, file_id: str, fields: str) -> dict[str, Any]:
        self.metadata_calls.append(file_id)
        item = self.folders.get(file_id) or self.files.get(file_id)
        if item is None:
            raise NotFoundError(f"Drive item {file_id} not found")
        return {"id": item["id"], "name": item["name"], "mimeType": item["mimeType"]}

    async def stream_content(self, file_id: str) -> AsyncIterator[bytes]:
        self.stream_calls.append(file_id)
        if file_id not in self.contents:
            raise NotFoundError(f"Drive item {file_id} not found")
        data = self.contents[file_id]
        for index, start in enumerate(range(0, len(data), self.chunk_size)):
            if self.fail_stream_after_chunks is not None and index >= self.fail_stream_after_chunks:
                raise TransportError("simulated stream failure")
            yield data[start:start + self.chunk_size]
            if self.stream_gate is not None:
                await self.stream_gate.wait()
            else:
                await asyncio.sleep(0)

    def _evaluate(self, query: str) -> list[dict[str, Any]]:
        if query.startswith(f"mimeType='{FOLDER_MIME_TYPE}'"):
            return list(self.folders.values())

        parent_ids = {_unescape(value) for value in PARENT_CLAUSE.findall(query)}
        name_match = NAME_CLAUSE.search(query)
        name_filter = _unescape(name_match.group(1)).lower() if name_match else None

        results = []
        for item in self.files.values():
            if not parent_ids.intersection(item["parents"]):
                continue
            if name_filter is not None and name_filter not in item["name"].lower():
                continue
            results.append(item)
        return results


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Route structured logs to stderr so command output on stdout stays clean."""
    setup_logging(Settings(log_level="DEBUG"))


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """File-backed SQLite URL; the store opens more than one connection."""
    return f"sqlite+aiosqlite:///{tmp_path / 'files.sqlite'}"


@pytest.fixture
def fetcher(transport: FakeTransport) -> FileFetcher:
    return FileFetcher(transport, chunk_size=5, page_size=1000)


@pytest.fixture
async def store(database_url: str, fetcher: FileFetcher):
    """Initialized FileStore backed by a temporary database."""
    file_store = FileStore(database_url, fetcher)
    await file_store.initialize_schema()
    yield file_store
    await file_store.close()
