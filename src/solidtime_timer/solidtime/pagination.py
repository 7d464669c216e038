"""Link-following pagination over SolidTime list endpoints."""

import logging
from typing import Any

from solidtime_timer.solidtime.transport import SolidTimeTransport

logger = logging.getLogger(__name__)

MAX_ITEMS = 10_000


class Paginator:
    """Materializes a paginated list endpoint into one list."""

    def __init__(self, transport: SolidTimeTransport, max_items: int = MAX_ITEMS) -> None:
        """Initialize paginator.

        Args:
            transport: Transport used for every page request.
            max_items: Safety ceiling against link cycles and runaway paging.
        """
        self.transport = transport
        self.max_items = max_items

    async def fetch_all(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        first_page: Any = None,
    ) -> list[dict[str, Any]]:
        """Fetch every page starting at ``path``.

        Args:
            path: Initial path or absolute URL.
            params: Query parameters for the first request only. Next links
                already carry their own query string.
            first_page: An already fetched first page; when given, ``path``
                is not requested and paging continues from its next link.

        Returns:
            Items of all pages, in server order.

        Raises:
            SolidTimeError: Any transport failure propagates unchanged.
        """
        items: list[dict[str, Any]] = []
        next_url: str | None = path
        page_params = params
        page = first_page
        pages = 0

        while next_url:
            if page is None:
                page = await self.transport.request("GET", next_url, params=page_params)
            page_params = None
            pages += 1

            if not isinstance(page, dict) or not isinstance(page.get("data"), list):
                logger.warning(f"Malformed page {pages} from {next_url}; stopping pagination")
                break

            items.extend(page["data"])

            links = page.get("links")
            next_url = links.get("next") if isinstance(links, dict) else None
            page = None

            if len(items) > self.max_items:
                logger.warning(
                    f"Pagination aborted after {len(items)} items (limit {self.max_items})"
                )
                break

        logger.debug(f"Fetched {len(items)} items in {pages} page(s) from {path}")
        return items
