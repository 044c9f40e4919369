"""Follow files.list continuation tokens until the listing is exhausted."""

from __future__ import annotations

from typing import Any

from drivevault.core.logging import get_logger
from drivevault.services.google_drive import RemoteTransport

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 1000


async def fetch_all_pages(
    transport: RemoteTransport,
    query: str,
    fields: str,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> list[dict[str, Any]]:
    """Fetch every page of a listing query.

    Pages are requested one after another with the token returned by the
    previous page. The full result is collected before returning; if any page
    fails the error propagates and the pages fetched so far are discarded.

    Args:
        transport: Remote transport.
        query: Drive query expression.
        fields: Partial-response field selector, must include ``nextPageToken``.
        page_size: Items requested per page.

    Returns:
        All raw records across all pages, in page order.

    Raises:
        TransportError: If any page request fails.
    """
    records: list[dict[str, Any]] = []
    page_token: str | None = None
    pages = 0

    while True:
        page = await transport.list_metadata(query, page_token, fields, page_size)
        records.extend(page.items)
        pages += 1

        page_token = page.next_page_token
        if not page_token:
            break

    logger.debug("listing_fetched", pages=pages, records=len(records))
    return records
