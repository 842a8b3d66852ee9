from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterable, Mapping
from typing import Any
from urllib.parse import quote

import structlog

from record_counter.counting.strategy import partition_by_strategy
from record_counter.errors import BatchCountError
from record_counter.fetchxml.rewriter import rewrite_for_page, rewrite_for_total_count
from record_counter.models.domain import (
    Collection,
    CountEvent,
    CountOutcome,
    CountResult,
    ExactPaginatedStrategy,
    StoredQuery,
    StrategyKind,
)
from record_counter.paging.walker import PageWalker
from record_counter.transport.base import (
    ODATA_COUNT_FIELD,
    RECORD_COUNT_COLLECTION_FIELD,
    TOTAL_RECORD_COUNT_FIELD,
    VALUE_FIELD,
    QueryExecutor,
)

logger = structlog.get_logger()

DEFAULT_PAGE_SIZE = 5000
DEFAULT_MAX_PAGES = 1000


class RecordCounter:
    """Counts records per collection using aggregate or exact paginated strategies.

    All remote calls are awaited one at a time. Exact counts run collection by
    collection and page by page; aggregate counts share one batched round trip.
    """

    def __init__(
        self,
        executor: QueryExecutor,
        walker: PageWalker | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {page_size}")
        if max_pages < 1:
            raise ValueError(f"max_pages must be >= 1, got {max_pages}")
        self._executor = executor
        self._walker = walker or PageWalker(executor)
        self._page_size = page_size
        self._max_pages = max_pages

    @property
    def walker(self) -> PageWalker:
        return self._walker

    async def list_all(self, path: str) -> list[dict[str, Any]]:
        """Materialize a full listing. Failures propagate to the caller."""
        return await self._walker.list_all(path)

    async def count_batch(self, logical_names: Iterable[str]) -> dict[str, int]:
        """Count several collections in one RetrieveTotalRecordCount round trip.

        Names missing from the response count as 0. Raises BatchCountError if
        the call itself fails.
        """
        names = list(dict.fromkeys(logical_names))
        if not names:
            return {}

        path = f"RetrieveTotalRecordCount(EntityNames=@p)?@p={quote(json.dumps(names), safe='')}"
        try:
            response = await self._executor.query(path)
            returned = _parse_record_counts(response)
        except Exception as e:
            raise BatchCountError(names, e) from e

        counts = {name: returned.get(name, 0) for name in names}
        logger.info(
            "batch_count_completed",
            requested=len(names),
            returned=len(returned),
            missing=[n for n in names if n not in returned],
        )
        return counts

    async def count_aggregate(self, collection_endpoint: str, logical_name: str) -> int:
        """Server-side count for one collection via $count."""
        path = f"{collection_endpoint}?$top=1&$count=true"
        logger.info("aggregate_count_started", logical_name=logical_name, path=path)
        response = await self._executor.query(path)
        count = _non_negative(response.get(ODATA_COUNT_FIELD))
        logger.info("aggregate_count_completed", logical_name=logical_name, count=count)
        return count

    async def count_exact(
        self, collection_endpoint: str, logical_name: str, query_text: str
    ) -> CountResult:
        """Replay a stored query page by page and sum the returned rows.

        Stops on the first short page. When ``max_pages`` full pages have been
        read the gathered total is returned as an approximate result.
        """
        total = 0
        page = 1
        while True:
            fetch_xml = rewrite_for_page(query_text, page, self._page_size)
            response = await self._executor.query(
                f"{collection_endpoint}?fetchXml={quote(fetch_xml, safe='')}"
            )
            rows = _rows(response)
            total += len(rows)
            logger.debug(
                "exact_count_page", logical_name=logical_name, page=page, rows=len(rows)
            )

            if len(rows) != self._page_size:
                logger.info(
                    "exact_count_completed", logical_name=logical_name, count=total, pages=page
                )
                return CountResult(
                    logical_name=logical_name,
                    count=total,
                    outcome=CountOutcome.COUNTED,
                    strategy_used=StrategyKind.EXACT_PAGINATED,
                )

            if page >= self._max_pages:
                logger.warning(
                    "exact_count_ceiling_reached",
                    logical_name=logical_name,
                    count=total,
                    pages=page,
                )
                return CountResult(
                    logical_name=logical_name,
                    count=total,
                    outcome=CountOutcome.APPROXIMATE,
                    strategy_used=StrategyKind.EXACT_PAGINATED,
                )
            page += 1

    async def count_annotated(
        self, collection_endpoint: str, logical_name: str, query_text: str
    ) -> int:
        """Single-request count using the stored query's total-count annotation.

        The server caps this annotation, so it is only a cheap estimate for
        large collections.
        """
        fetch_xml = rewrite_for_total_count(query_text)
        response = await self._executor.query(
            f"{collection_endpoint}?fetchXml={quote(fetch_xml, safe='')}"
        )
        for field in (TOTAL_RECORD_COUNT_FIELD, ODATA_COUNT_FIELD):
            value = response.get(field)
            if isinstance(value, int) and value >= 0:
                return value
        return len(_rows(response))

    async def count_one(
        self,
        collection_endpoint: str,
        logical_name: str,
        query_text: str | None = None,
    ) -> int:
        """Count one collection. Never raises; failures are logged and count as 0."""
        if not collection_endpoint:
            logger.info("count_skipped_no_endpoint", logical_name=logical_name)
            return 0
        try:
            if query_text and query_text.strip():
                result = await self.count_exact(collection_endpoint, logical_name, query_text)
                return result.count
            return await self.count_aggregate(collection_endpoint, logical_name)
        except Exception as e:
            logger.error("count_failed", logical_name=logical_name, error=str(e))
            return 0

    async def count_collections(
        self,
        collections: Iterable[Collection],
        stored_queries: Mapping[str, StoredQuery],
    ) -> AsyncIterator[CountEvent]:
        """Run one counting pass, yielding a CountEvent per collection as it finishes.

        Aggregate collections are counted first in a single batch, then exact
        collections one at a time. A failure never stops the remaining collections.
        A logical name listed more than once is counted once, using its first entry.
        """
        unique: dict[str, Collection] = {}
        for collection in collections:
            unique.setdefault(collection.logical_name, collection)
        aggregate, exact = partition_by_strategy(unique.values(), stored_queries)
        logger.info("count_pass_started", aggregate=len(aggregate), exact=len(exact))

        if aggregate:
            names = [c.logical_name for c in aggregate]
            try:
                counts = await self.count_batch(names)
            except BatchCountError as e:
                logger.error("batch_count_failed", collections=len(names), error=str(e.cause))
                for name in names:
                    yield _failed_event(name, StrategyKind.AGGREGATE, str(e.cause))
            else:
                for name in names:
                    yield CountEvent(
                        logical_name=name,
                        result=CountResult(
                            logical_name=name,
                            count=counts.get(name, 0),
                            strategy_used=StrategyKind.AGGREGATE,
                        ),
                    )

        for collection, strategy in exact:
            yield await self._count_exact_contained(collection, strategy)

        logger.info("count_pass_completed", collections=len(aggregate) + len(exact))

    async def _count_exact_contained(
        self, collection: Collection, strategy: ExactPaginatedStrategy
    ) -> CountEvent:
        name = collection.logical_name
        if not collection.collection_endpoint:
            logger.warning("exact_count_no_endpoint", logical_name=name)
            return _failed_event(
                name, StrategyKind.EXACT_PAGINATED, f"No collection endpoint for {name}"
            )
        try:
            result = await self.count_exact(
                collection.collection_endpoint, name, strategy.query_text
            )
        except Exception as e:
            logger.error("exact_count_failed", logical_name=name, error=str(e))
            return _failed_event(name, StrategyKind.EXACT_PAGINATED, str(e))
        return CountEvent(logical_name=name, result=result)


def _failed_event(logical_name: str, strategy: StrategyKind, error: str) -> CountEvent:
    return CountEvent(
        logical_name=logical_name,
        result=CountResult(
            logical_name=logical_name,
            count=0,
            outcome=CountOutcome.FAILED,
            strategy_used=strategy,
            error=error,
        ),
    )


def _non_negative(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def _rows(response: dict[str, Any]) -> list[Any]:
    rows = response.get(VALUE_FIELD)
    return rows if isinstance(rows, list) else []


def _parse_record_counts(response: dict[str, Any]) -> dict[str, int]:
    """Correlate EntityRecordCountCollection Keys and Values by position.

    Raises ValueError when the collection or its sequences have the wrong shape.
    """
    collection = response.get(RECORD_COUNT_COLLECTION_FIELD)
    if collection is None:
        return {}
    if not isinstance(collection, dict):
        raise ValueError(f"{RECORD_COUNT_COLLECTION_FIELD} is not an object")
    keys = collection.get("Keys") or []
    values = collection.get("Values") or []
    if not isinstance(keys, list) or not isinstance(values, list):
        raise ValueError(f"{RECORD_COUNT_COLLECTION_FIELD} Keys/Values are not arrays")
    if len(keys) != len(values):
        logger.warning("batch_count_misaligned", keys=len(keys), values=len(values))
    return {str(k): _non_negative(v) for k, v in zip(keys, values)}
