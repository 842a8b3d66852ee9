"""Pure functions folding counting events into collection state tables.

A table maps logical name -> CollectionState. Every function returns a new
table and leaves its input untouched.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from record_counter.models.domain import (
    Collection,
    CollectionState,
    CollectionStatus,
    CountEvent,
    CountOutcome,
    CountResult,
    PassSummary,
)

StateTable = Mapping[str, CollectionState]


def initial_states(collections: Iterable[Collection]) -> dict[str, CollectionState]:
    return {c.logical_name: CollectionState(logical_name=c.logical_name) for c in collections}


def begin_pass(table: StateTable, logical_names: Iterable[str]) -> dict[str, CollectionState]:
    """Reset the selected collections to idle and move them into counting."""
    updated = dict(table)
    for name in logical_names:
        updated[name] = CollectionState(logical_name=name, status=CollectionStatus.COUNTING)
    return updated


def apply_event(table: StateTable, event: CountEvent) -> dict[str, CollectionState]:
    result = event.result
    if result.failed:
        state = CollectionState(
            logical_name=event.logical_name,
            status=CollectionStatus.FAILED,
            count=0,
            strategy_used=result.strategy_used,
            error=result.error,
        )
    else:
        state = CollectionState(
            logical_name=event.logical_name,
            status=CollectionStatus.COUNTED,
            count=result.count,
            strategy_used=result.strategy_used,
            approximate=result.outcome == CountOutcome.APPROXIMATE,
        )
    updated = dict(table)
    updated[event.logical_name] = state
    return updated


def fold_events(table: StateTable, events: Iterable[CountEvent]) -> dict[str, CollectionState]:
    updated = dict(table)
    for event in events:
        updated = apply_event(updated, event)
    return updated


def reset_selection(table: StateTable, logical_name: str) -> dict[str, CollectionState]:
    """Clear a collection's count after its selected stored query changed."""
    updated = dict(table)
    updated[logical_name] = CollectionState(logical_name=logical_name)
    return updated


def select_stored_query(collection: Collection, query_id: str | None) -> Collection:
    return collection.model_copy(update={"selected_query_id": query_id})


def summarize_pass(results: Iterable[CountResult]) -> PassSummary:
    counted = approximate = failed = 0
    failed_names: list[str] = []
    for result in results:
        match result.outcome:
            case CountOutcome.COUNTED:
                counted += 1
            case CountOutcome.APPROXIMATE:
                approximate += 1
            case CountOutcome.FAILED:
                failed += 1
                failed_names.append(result.logical_name)
    return PassSummary(
        total=counted + approximate + failed,
        counted=counted,
        approximate=approximate,
        failed=failed,
        failed_names=failed_names,
    )
