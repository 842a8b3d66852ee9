from __future__ import annotations

from dataclasses import dataclass

from record_counter.config import Settings
from record_counter.counting.counter import RecordCounter
from record_counter.logging import setup_logging
from record_counter.metadata.cache import StoredQueryCache
from record_counter.metadata.loader import MetadataLoader
from record_counter.paging.walker import PageWalker
from record_counter.transport.base import QueryExecutor
from record_counter.transport.http import HttpQueryExecutor


@dataclass
class CountingServices:
    executor: QueryExecutor
    walker: PageWalker
    counter: RecordCounter
    metadata: MetadataLoader

    async def close(self) -> None:
        close = getattr(self.executor, "close", None)
        if close is not None:
            await close()


def create_counting_services(
    settings: Settings, executor: QueryExecutor | None = None
) -> CountingServices:
    """Wire executor, walker, counter and metadata loader from settings.

    When no executor is given an HttpQueryExecutor is built for
    ``settings.dataverse_url``.
    """
    setup_logging(settings.log_level)

    if executor is None:
        if not settings.dataverse_url:
            raise ValueError("DATAVERSE_URL must be set to create an HTTP executor")
        executor = HttpQueryExecutor(
            base_url=settings.dataverse_url,
            api_version=settings.dataverse_api_version,
            access_token=settings.dataverse_access_token.get_secret_value(),
            timeout_seconds=settings.request_timeout_seconds,
            max_attempts=settings.transport_max_attempts,
        )

    walker = PageWalker(executor, max_repeated_cursors=settings.max_repeated_cursors)
    counter = RecordCounter(
        executor,
        walker=walker,
        page_size=settings.exact_count_page_size,
        max_pages=settings.exact_count_max_pages,
    )
    metadata = MetadataLoader(
        walker, cache=StoredQueryCache(ttl_seconds=settings.stored_query_cache_ttl_seconds)
    )
    return CountingServices(executor=executor, walker=walker, counter=counter, metadata=metadata)
