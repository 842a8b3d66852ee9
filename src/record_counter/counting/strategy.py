from __future__ import annotations

from collections.abc import Iterable, Mapping

from record_counter.models.domain import (
    AggregateStrategy,
    Collection,
    ExactPaginatedStrategy,
    StoredQuery,
)


def select_strategy(
    collection: Collection, stored_queries: Mapping[str, StoredQuery]
) -> AggregateStrategy | ExactPaginatedStrategy:
    """Pick exact paginated counting iff the selected stored query has query text."""
    if collection.selected_query_id:
        query = stored_queries.get(collection.selected_query_id)
        if query is not None and query.query_text and query.query_text.strip():
            return ExactPaginatedStrategy(query_text=query.query_text)
    return AggregateStrategy()


def partition_by_strategy(
    collections: Iterable[Collection], stored_queries: Mapping[str, StoredQuery]
) -> tuple[list[Collection], list[tuple[Collection, ExactPaginatedStrategy]]]:
    """Split collections into aggregate members and exact (collection, strategy) pairs.

    Input order is preserved within each group.
    """
    aggregate: list[Collection] = []
    exact: list[tuple[Collection, ExactPaginatedStrategy]] = []
    for collection in collections:
        strategy = select_strategy(collection, stored_queries)
        match strategy:
            case ExactPaginatedStrategy():
                exact.append((collection, strategy))
            case AggregateStrategy():
                aggregate.append(collection)
    return aggregate, exact
