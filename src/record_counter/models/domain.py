from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StrategyKind(str, Enum):
    AGGREGATE = "aggregate"
    EXACT_PAGINATED = "exact_paginated"


class CountOutcome(str, Enum):
    COUNTED = "counted"
    APPROXIMATE = "approximate"
    FAILED = "failed"


class CollectionStatus(str, Enum):
    IDLE = "idle"
    COUNTING = "counting"
    COUNTED = "counted"
    FAILED = "failed"


class Solution(BaseModel):
    model_config = ConfigDict(frozen=True)

    solution_id: str
    friendly_name: str = ""
    unique_name: str = ""


class Collection(BaseModel):
    model_config = ConfigDict(frozen=True)

    logical_name: str
    display_name: str = ""
    collection_endpoint: str = ""
    selected_query_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def default_display_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("display_name"):
            return {**data, "display_name": data.get("logical_name", "")}
        return data


class StoredQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    query_id: str
    display_name: str = ""
    target_collection_name: str
    query_text: str | None = None


class AggregateStrategy(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[StrategyKind.AGGREGATE] = StrategyKind.AGGREGATE


class ExactPaginatedStrategy(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[StrategyKind.EXACT_PAGINATED] = StrategyKind.EXACT_PAGINATED
    query_text: str


CountStrategy = Annotated[
    Union[AggregateStrategy, ExactPaginatedStrategy],
    Field(discriminator="kind"),
]


class CountResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    logical_name: str
    count: int = Field(default=0, ge=0)
    outcome: CountOutcome = CountOutcome.COUNTED
    strategy_used: StrategyKind
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.outcome == CountOutcome.FAILED


class CountEvent(BaseModel):
    """One counting attempt's result for one collection."""

    model_config = ConfigDict(frozen=True)

    logical_name: str
    result: CountResult


class CollectionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    logical_name: str
    status: CollectionStatus = CollectionStatus.IDLE
    count: int | None = None
    strategy_used: StrategyKind | None = None
    approximate: bool = False
    error: str | None = None

    @property
    def is_loading(self) -> bool:
        return self.status == CollectionStatus.COUNTING


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    body: str
    level: NotificationLevel


class PassSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    counted: int = 0
    approximate: int = 0
    failed: int = 0
    failed_names: list[str] = Field(default_factory=list)

    def notification(self) -> Notification:
        """Advisory message shown once after a counting pass completes."""
        if self.total == 0:
            return Notification(
                title="Record Count Complete",
                body="No collections were selected for counting",
                level=NotificationLevel.WARNING,
            )
        if self.failed == self.total:
            return Notification(
                title="Record Count Failed",
                body=f"Failed to count records for all {self.total} collections",
                level=NotificationLevel.ERROR,
            )
        if self.failed or self.approximate:
            parts = [f"Counted records for {self.total - self.failed} of {self.total} collections"]
            if self.failed:
                parts.append(f"{self.failed} failed ({', '.join(self.failed_names)})")
            if self.approximate:
                parts.append(f"{self.approximate} stopped at the page limit")
            return Notification(
                title="Record Count Incomplete",
                body="; ".join(parts),
                level=NotificationLevel.WARNING,
            )
        return Notification(
            title="Record Count Complete",
            body=f"Successfully counted records for {self.total} collections",
            level=NotificationLevel.SUCCESS,
        )
