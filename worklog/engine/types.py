"""Value types shared by the filtering, aggregation and caching layers."""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from worklog.core.errors import ValidationFailure

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")
UNKNOWN_KEY = "__unknown__"


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


def _safe_div(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator == ZERO:
        return ZERO
    return (numerator / denominator).quantize(Q2)


class EntityType(str, enum.Enum):
    TIME_ENTRY = "time_entry"
    USER = "user"
    CUSTOMER = "customer"
    PROJECT = "project"
    DIVISION = "division"
    TASK_TYPE = "task_type"
    PROJECT_TASK = "project_task"


class RollupName(str, enum.Enum):
    ENTRY_LIST = "entry-list"
    PROJECT = "project-rollup"
    ASSIGNEE = "assignee-rollup"
    DIVISION = "division-rollup"
    TASK_TYPE = "task-type-rollup"
    TASK_TYPE_AVERAGE = "task-type-average"
    PROJECT_TASK = "project-task-rollup"
    BILLABLE_SUMMARY = "billable-summary"
    PERIOD_COMPARISON = "period-comparison"
    WEEKLY_TREND = "weekly-trend"
    TEAM_SUMMARY = "team-summary"


class MutationOperation(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class RollupOrder(str, enum.Enum):
    TOTAL = "total"
    AVERAGE = "average"


class SlotState(str, enum.Enum):
    ABSENT = "absent"
    FRESH = "fresh"
    STALE = "stale"


class ViewStatus(str, enum.Enum):
    READY = "ready"
    LOADING = "loading"
    FAILED = "failed"
    SUPERSEDED = "superseded"


# ---------- Records ----------
@dataclass(frozen=True, slots=True)
class TimeEntry:
    id: str
    date: date | None
    effort: Decimal
    is_billable: bool
    user_id: str
    project_id: str
    task_type_id: str
    division_id: str
    task_id: str | None = None
    description: str = ""


@dataclass(frozen=True, slots=True)
class User:
    id: str
    name: str
    email: str = ""
    role: str = "Member"
    status: str = "Active"


@dataclass(frozen=True, slots=True)
class Customer:
    id: str
    name: str
    status: str = "Active"


@dataclass(frozen=True, slots=True)
class Project:
    id: str
    name: str
    customer_id: str
    pm_id: str | None = None
    is_billable: bool = True


@dataclass(frozen=True, slots=True)
class Division:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class TaskType:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class ProjectTask:
    id: str
    project_id: str
    title: str
    status: str = "pending"
    priority: str = "medium"
    assigned_to: str | None = None
    estimated_hours: Decimal | None = None


Record = TimeEntry | User | Customer | Project | Division | TaskType | ProjectTask


# ---------- Criteria and dimensions ----------
@dataclass(frozen=True, slots=True)
class FilterCriteria:
    start_date: date
    end_date: date
    assignee_id: str | None = None
    customer_id: str | None = None
    project_id: str | None = None
    division_id: str | None = None

    def __post_init__(self) -> None:
        if self.start_date > self.end_date:
            raise ValidationFailure(
                "start_date must be on or before end_date.",
                errors=[{"loc": ["start_date"], "msg": "after end_date"}],
            )

    @property
    def day_count(self) -> int:
        return (self.end_date - self.start_date).days + 1


@dataclass(frozen=True, slots=True)
class DimensionSpec:
    """Bucketing rule: ``key_of`` extracts the group key, ``label_of`` names it.

    Either callable may return ``None`` to mark the entry as unresolvable.
    """

    name: str
    key_of: Callable[[TimeEntry], str | None]
    label_of: Callable[[str], str | None]


@dataclass(frozen=True, slots=True)
class InvalidationRule:
    entity_type: EntityType
    affected_rollups: tuple[RollupName, ...]


# ---------- Views ----------
@dataclass(frozen=True, slots=True)
class RollupBucket:
    key: str
    label: str
    total_hours: Decimal
    entry_count: int
    billable_hours: Decimal = ZERO

    @property
    def average_hours(self) -> Decimal:
        return _safe_div(self.total_hours, Decimal(self.entry_count))

    @property
    def non_billable_hours(self) -> Decimal:
        return self.total_hours - self.billable_hours


@dataclass(frozen=True, slots=True)
class RollupResult:
    name: str
    buckets: tuple[RollupBucket, ...]
    total_hours: Decimal
    entry_count: int
    billable_hours: Decimal
    non_billable_hours: Decimal

    @property
    def average_per_entry(self) -> Decimal:
        return _safe_div(self.total_hours, Decimal(self.entry_count))

    @property
    def billable_efficiency(self) -> Decimal:
        return _safe_div(self.billable_hours * 100, self.total_hours)


@dataclass(frozen=True, slots=True)
class EntryRow:
    entry: TimeEntry
    user_name: str
    project_label: str
    task_type_name: str
    division_name: str


@dataclass(frozen=True, slots=True)
class EntryListing:
    rows: tuple[EntryRow, ...]
    total_hours: Decimal
    billable_count: int
    non_billable_count: int


@dataclass(frozen=True, slots=True)
class PeriodComparison:
    current_start: date
    current_end: date
    previous_start: date
    previous_end: date
    current: RollupResult
    previous: RollupResult
    growth_percent: Decimal


@dataclass(frozen=True, slots=True)
class TrendPoint:
    week_start: date
    total_hours: Decimal
    billable_hours: Decimal
    entry_count: int


@dataclass(frozen=True, slots=True)
class TrendSeries:
    points: tuple[TrendPoint, ...]
    total_hours: Decimal


@dataclass(frozen=True, slots=True)
class MemberSummary:
    user_id: str
    name: str
    total_hours: Decimal
    billable_hours: Decimal
    entry_count: int
    efficiency: Decimal


@dataclass(frozen=True, slots=True)
class TeamSummary:
    members: tuple[MemberSummary, ...]
    total_hours: Decimal
    billable_hours: Decimal
    average_efficiency: Decimal = ZERO


View = RollupResult | EntryListing | PeriodComparison | TrendSeries | TeamSummary
