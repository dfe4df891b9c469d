"""
Realtime module data models.

Subscription keys identify one upstream change feed; handles identify one
subscriber's callback set on that feed.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field


FILTER_OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte", "like", "ilike", "in")


class ChangeKind(str, Enum):
    """Type of row change delivered by a feed."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """
    A single row change.

    ``record`` is the new row for inserts and updates and the old row for
    deletes.
    """

    kind: ChangeKind
    record: dict[str, Any] = Field(default_factory=dict)
    table: Optional[str] = None
    commit_timestamp: Optional[str] = None


@dataclass(frozen=True)
class SubscriptionKey:
    """
    Identifies one logical upstream change feed.

    Filterless keys cover the whole table. Filtering is enforced by the
    transport; the registry never filters events itself.
    """

    table: str
    filter_column: Optional[str] = None
    filter_value: Any = None
    operator: str = "eq"

    def __post_init__(self):
        if not self.table:
            raise ValueError("table is required")
        if self.operator not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.operator}")
        if (self.filter_column is None) != (self.filter_value is None):
            raise ValueError("filter_column and filter_value must be given together")

    @classmethod
    def for_organization(cls, table: str, organization_id: int) -> "SubscriptionKey":
        """Key scoped to the rows of a single organization."""
        return cls(table=table, filter_column="organization_id", filter_value=organization_id)

    @property
    def name(self) -> str:
        """Canonical key string; equal keys share an upstream feed."""
        name = f"realtime:{self.table}"
        if self.filter_column is not None:
            if self.operator == "eq":
                name += f":{self.filter_column}:{self.filter_value}"
            else:
                name += f":{self.filter_column}:{self.operator}:{self.filter_value}"
        return name

    @property
    def filter_expression(self) -> Optional[str]:
        """Filter in the transport's ``column=op.value`` syntax."""
        if self.filter_column is None:
            return None
        return f"{self.filter_column}={self.operator}.{self.filter_value}"


@dataclass(frozen=True)
class ChannelHandle:
    """Opaque token for one subscriber's registration on a key."""

    key: str
    subscriber_id: int


RecordCallback = Callable[[dict[str, Any]], Any]
ErrorCallback = Callable[[Exception], Any]


@dataclass(frozen=True)
class RealtimeCallbacks:
    """Callback set of one subscriber. Every callback is optional."""

    on_insert: Optional[RecordCallback] = None
    on_update: Optional[RecordCallback] = None
    on_delete: Optional[RecordCallback] = None
    on_error: Optional[ErrorCallback] = None

    def for_kind(self, kind: ChangeKind) -> Optional[RecordCallback]:
        if kind is ChangeKind.INSERT:
            return self.on_insert
        if kind is ChangeKind.UPDATE:
            return self.on_update
        return self.on_delete
