from __future__ import annotations

import re
from collections import Counter
from typing import Any
from urllib.parse import urlsplit

import structlog

from record_counter.errors import RepeatedCursorError
from record_counter.transport.base import NEXT_LINK_FIELD, VALUE_FIELD, QueryExecutor

logger = structlog.get_logger()

_API_ROOT_RE = re.compile(r"^/api/data/v\d+\.\d+/")


def normalize_relative_path(url: str) -> str:
    """Turn an absolute Web API URL into a path relative to the versioned root.

    ``https://host/api/data/v9.2/foo?x=1`` becomes ``foo?x=1``. Relative paths
    are returned unchanged. The query string is kept verbatim.
    """
    if not url.lower().startswith(("http://", "https://")):
        return url
    parts = urlsplit(url)
    path = _API_ROOT_RE.sub("", parts.path)
    if parts.query:
        return f"{path}?{parts.query}"
    return path


class PageWalker:
    """Follows @odata.nextLink cursors until the listing is exhausted."""

    def __init__(self, executor: QueryExecutor, max_repeated_cursors: int = 3) -> None:
        self._executor = executor
        self._max_repeated_cursors = max_repeated_cursors

    async def list_all(self, path: str) -> list[dict[str, Any]]:
        """Fetch every page starting at ``path`` and return all items in order.

        Transport errors propagate as-is and nothing fetched so far is returned.
        A continuation link that comes back more than ``max_repeated_cursors``
        times, consecutively or in a cycle, raises RepeatedCursorError.
        """
        items: list[dict[str, Any]] = []
        next_url: str | None = path
        seen: Counter[str] = Counter([normalize_relative_path(path)])
        pages = 0

        while next_url:
            relative_path = normalize_relative_path(next_url)
            response = await self._executor.query(relative_path)
            pages += 1

            page_items = response.get(VALUE_FIELD)
            if isinstance(page_items, list):
                items.extend(page_items)
            logger.debug(
                "page_fetched",
                path=relative_path,
                page=pages,
                page_size=len(page_items) if isinstance(page_items, list) else 0,
            )

            cursor = response.get(NEXT_LINK_FIELD) or None
            if cursor is not None:
                key = normalize_relative_path(cursor)
                seen[key] += 1
                repeats = seen[key] - 1
                if repeats >= self._max_repeated_cursors:
                    logger.error("repeated_cursor", cursor=cursor, repeats=repeats)
                    raise RepeatedCursorError(cursor, repeats)
            next_url = cursor

        logger.info("listing_complete", path=path, pages=pages, item_count=len(items))
        return items
