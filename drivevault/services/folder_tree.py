"""Folder discovery and closure resolution.

The closure of a set of root folders is every folder reachable from them by
following child containment, roots included. It is computed over one flat
listing of all folders instead of one request per folder.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from pydantic import BaseModel, Field

from drivevault.core.logging import get_logger
from drivevault.services.google_drive import FOLDER_MIME_TYPE, RemoteTransport
from drivevault.services.pagination import DEFAULT_PAGE_SIZE, fetch_all_pages

logger = get_logger(__name__)

FOLDER_QUERY = f"mimeType='{FOLDER_MIME_TYPE}' and trashed=false"
FOLDER_FIELDS = "nextPageToken, files(id, name, parents)"


class Folder(BaseModel):
    """A remote folder, kept only while the closure is resolved."""

    id: str
    name: str = ""
    parent_ids: list[str] = Field(default_factory=list)


async def fetch_folder_map(
    transport: RemoteTransport,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> dict[str, Folder]:
    """List every non-trashed folder visible to the account.

    Returns:
        Folder ID to Folder.
    """
    logger.info("fetching_folders")
    raw = await fetch_all_pages(transport, FOLDER_QUERY, FOLDER_FIELDS, page_size=page_size)

    folders: dict[str, Folder] = {}
    for item in raw:
        folder_id = item.get("id")
        if not folder_id:
            continue
        folders[folder_id] = Folder(
            id=folder_id,
            name=item.get("name") or "",
            parent_ids=list(item.get("parents") or []),
        )

    logger.info("folders_fetched", count=len(folders))
    return folders


def index_children(folder_map: Mapping[str, Folder]) -> dict[str, list[str]]:
    """Map each parent ID to its child folder IDs, in folder_map order."""
    children: dict[str, list[str]] = {}
    for folder_id, folder in folder_map.items():
        for parent_id in folder.parent_ids:
            children.setdefault(parent_id, []).append(folder_id)
    return children


def resolve_folder_closure(
    folder_map: Mapping[str, Folder],
    root_ids: Iterable[str],
) -> list[str]:
    """Resolve every folder under ``root_ids``, the roots included.

    Depth-first over a parent-to-children index. A node is marked visited
    before it is expanded, so cycles and folders with several parents are
    processed once. Roots missing from ``folder_map`` are logged and skipped.

    Args:
        folder_map: All known folders by ID.
        root_ids: Folder IDs to start from.

    Returns:
        Unique folder IDs in first-visit order. Callers should only rely on
        membership.
    """
    roots = list(root_ids)
    children = index_children(folder_map)
    visited: set[str] = set()
    ordered: list[str] = []

    for root_id in roots:
        root = folder_map.get(root_id)
        if root is None:
            logger.warning("root_folder_not_found", folder_id=root_id)
            continue
        if root_id in visited:
            continue

        stack = [root_id]
        while stack:
            folder_id = stack.pop()
            if folder_id in visited:
                continue
            visited.add(folder_id)
            ordered.append(folder_id)
            # Reversed so children pop in listing order
            for child_id in reversed(children.get(folder_id, [])):
                if child_id not in visited:
                    stack.append(child_id)

    logger.info("folder_tree_built", roots=len(roots), folders=len(ordered))
    return ordered
