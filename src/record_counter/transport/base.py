from __future__ import annotations

from typing import Any, Protocol

VALUE_FIELD = "value"
NEXT_LINK_FIELD = "@odata.nextLink"
ODATA_COUNT_FIELD = "@odata.count"
TOTAL_RECORD_COUNT_FIELD = "@Microsoft.Dynamics.CRM.totalrecordcount"
RECORD_COUNT_COLLECTION_FIELD = "EntityRecordCountCollection"


class QueryExecutor(Protocol):
    """Protocol for the request executor talking to the remote service."""

    async def query(self, path: str) -> dict[str, Any]:
        """Run a GET for a path relative to the versioned API root.

        Raises TransportError when the request fails.
        """
        ...
