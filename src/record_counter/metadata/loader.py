from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from record_counter.metadata.cache import StoredQueryCache
from record_counter.models.domain import Collection, Solution, StoredQuery
from record_counter.paging.walker import PageWalker

logger = structlog.get_logger()

SOLUTIONS_PATH = (
    "solutions?$select=solutionid,friendlyname,uniquename"
    "&$filter=isvisible eq true&$orderby=friendlyname asc"
)
ENTITY_DEFINITIONS_PATH = (
    "EntityDefinitions?$select=LogicalName,DisplayName,EntitySetName,MetadataId"
    "&$filter=IsCustomizable/Value eq true"
)
STORED_QUERIES_PATH = (
    "savedqueries?$select=savedqueryid,name,returnedtypecode,fetchxml"
    "&$filter=querytype eq 0&$orderby=returnedtypecode,name asc"
)

_ALL_QUERIES_KEY = "*"


class MetadataLoader:
    """Loads solutions, countable collections and stored queries via PageWalker."""

    def __init__(self, walker: PageWalker, cache: StoredQueryCache | None = None) -> None:
        self._walker = walker
        self._cache = cache or StoredQueryCache()

    async def load_solutions(self) -> list[Solution]:
        records = await self._walker.list_all(SOLUTIONS_PATH)
        solutions = [
            Solution(
                solution_id=r["solutionid"],
                friendly_name=r.get("friendlyname") or "",
                unique_name=r.get("uniquename") or "",
            )
            for r in records
        ]
        logger.info("solutions_loaded", count=len(solutions))
        return solutions

    async def load_collections(self, solution_id: str | None = None) -> list[Collection]:
        """Load customizable entity definitions, optionally limited to one solution."""
        records = await self._walker.list_all(ENTITY_DEFINITIONS_PATH)

        if solution_id:
            component_ids = await self._solution_entity_ids(solution_id)
            records = [r for r in records if r.get("MetadataId") in component_ids]

        collections = [
            Collection(
                logical_name=r["LogicalName"],
                display_name=_localized_label(r.get("DisplayName")) or r["LogicalName"],
                collection_endpoint=r.get("EntitySetName") or "",
            )
            for r in records
        ]
        logger.info("collections_loaded", count=len(collections), solution_id=solution_id)
        return collections

    async def _solution_entity_ids(self, solution_id: str) -> set[str]:
        path = (
            "solutioncomponents?$select=objectid"
            f"&$filter=_solutionid_value eq {solution_id} and componenttype eq 1"
        )
        components = await self._walker.list_all(path)
        return {c["objectid"] for c in components if c.get("objectid")}

    async def load_stored_queries(self, force_refresh: bool = False) -> dict[str, list[StoredQuery]]:
        """Load every public stored query grouped by target collection name."""
        if not force_refresh:
            cached = await self._cache.get(_ALL_QUERIES_KEY)
            if cached is not None:
                logger.debug("stored_query_cache_hit")
                return cached

        try:
            records = await self._walker.list_all(STORED_QUERIES_PATH)
        except Exception as e:
            logger.error("stored_queries_load_failed", error=str(e))
            raise

        grouped: dict[str, list[StoredQuery]] = {}
        for record in records:
            query = _stored_query(record)
            grouped.setdefault(query.target_collection_name, []).append(query)

        await self._cache.set(_ALL_QUERIES_KEY, grouped)
        logger.info("stored_queries_loaded", count=len(records), collections=len(grouped))
        return grouped

    async def load_stored_queries_for(self, logical_name: str) -> list[StoredQuery]:
        path = (
            "savedqueries?$select=savedqueryid,name,returnedtypecode,fetchxml"
            f"&$filter=returnedtypecode eq '{_quote_literal(logical_name)}' and querytype eq 0&$orderby=name asc"
        )
        records = await self._walker.list_all(path)
        return [_stored_query(r) for r in records]


def filter_collections(collections: Iterable[Collection], text: str) -> list[Collection]:
    """Case-insensitive substring match on display or logical name."""
    term = text.strip().lower()
    if not term:
        return list(collections)
    return [
        c
        for c in collections
        if term in c.display_name.lower() or term in c.logical_name.lower()
    ]


def index_stored_queries(groups: Mapping[str, list[StoredQuery]]) -> dict[str, StoredQuery]:
    return {q.query_id: q for queries in groups.values() for q in queries}


def _stored_query(record: dict[str, Any]) -> StoredQuery:
    return StoredQuery(
        query_id=record["savedqueryid"],
        display_name=record.get("name") or "",
        target_collection_name=record.get("returnedtypecode") or "",
        query_text=record.get("fetchxml"),
    )


def _localized_label(display_name: Any) -> str:
    if not isinstance(display_name, dict):
        return ""
    label = display_name.get("UserLocalizedLabel")
    if isinstance(label, dict):
        return label.get("Label") or ""
    return ""


def _quote_literal(value: str) -> str:
    """Escape a value for use inside an OData single-quoted string literal."""
    return value.replace("'", "''")
