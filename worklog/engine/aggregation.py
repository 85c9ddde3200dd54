"""Group-by rollups over filtered time entries."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import date, timedelta
from decimal import Decimal

from worklog.core.errors import AggregationDefect
from worklog.engine.filtering import EntryFilterEngine
from worklog.engine.types import (
    UNKNOWN_KEY,
    ZERO,
    Customer,
    DimensionSpec,
    Division,
    EntryListing,
    EntryRow,
    FilterCriteria,
    MemberSummary,
    PeriodComparison,
    Project,
    ProjectTask,
    RollupBucket,
    RollupName,
    RollupOrder,
    RollupResult,
    TaskType,
    TeamSummary,
    TimeEntry,
    TrendPoint,
    TrendSeries,
    User,
    _q2,
    _safe_div,
)

logger = logging.getLogger(__name__)

BILLABLE_KEY = "billable"
NON_BILLABLE_KEY = "non_billable"

# key_of/label_of failures that mean "reference not resolvable".
_RESOLUTION_ERRORS = (LookupError, AttributeError, TypeError, ValueError)


# ---------- Dimensions ----------
def _named_dimension(
    name: str,
    key_of: Callable[[TimeEntry], str | None],
    labels: dict[str, str],
) -> DimensionSpec:
    return DimensionSpec(name=name, key_of=key_of, label_of=labels.get)


def project_dimension(projects: Iterable[Project], customers: Iterable[Customer]) -> DimensionSpec:
    """Bucket by project, labelled ``"<customer> - <project>"``."""

    customer_names = {customer.id: customer.name for customer in customers}
    labels: dict[str, str] = {}
    for project in projects:
        customer_name = customer_names.get(project.customer_id)
        labels[project.id] = f"{customer_name} - {project.name}" if customer_name else project.name
    return _named_dimension(RollupName.PROJECT.value, lambda entry: entry.project_id, labels)


def assignee_dimension(users: Iterable[User]) -> DimensionSpec:
    labels = {user.id: user.name for user in users}
    return _named_dimension(RollupName.ASSIGNEE.value, lambda entry: entry.user_id, labels)


def division_dimension(divisions: Iterable[Division]) -> DimensionSpec:
    labels = {division.id: division.name for division in divisions}
    return _named_dimension(RollupName.DIVISION.value, lambda entry: entry.division_id, labels)


def task_type_dimension(task_types: Iterable[TaskType]) -> DimensionSpec:
    labels = {task_type.id: task_type.name for task_type in task_types}
    return _named_dimension(RollupName.TASK_TYPE.value, lambda entry: entry.task_type_id, labels)


def project_task_dimension(tasks: Iterable[ProjectTask]) -> DimensionSpec:
    labels = {task.id: task.title for task in tasks}
    return _named_dimension(RollupName.PROJECT_TASK.value, lambda entry: entry.task_id, labels)


def _effort_total(entries: Iterable[TimeEntry]) -> Decimal:
    return sum((entry.effort for entry in entries), ZERO)


class AggregationEngine:
    """Pure rollup computations.

    Every public method is total for well-typed input: empty collections give
    empty buckets and zero summaries. The only error raised is
    ``AggregationDefect`` when bucket totals fail to reconcile with the input.
    """

    def __init__(self, *, unknown_label: str = "Unknown", filter_engine: EntryFilterEngine | None = None) -> None:
        self.unknown_label = unknown_label
        self.filter_engine = filter_engine or EntryFilterEngine()

    # ---------- Bucketing ----------
    def _resolve(self, entry: TimeEntry, dimension: DimensionSpec) -> tuple[str, str]:
        try:
            key = dimension.key_of(entry)
            label = dimension.label_of(key) if key is not None else None
        except _RESOLUTION_ERRORS:
            return UNKNOWN_KEY, self.unknown_label
        if key is None or label is None:
            return UNKNOWN_KEY, self.unknown_label
        return key, str(label)

    def _group(self, entries: Sequence[TimeEntry], dimension: DimensionSpec) -> list[RollupBucket]:
        grouped: dict[str, dict[str, object]] = {}
        for entry in entries:
            key, label = self._resolve(entry, dimension)
            bucket = grouped.setdefault(key, {"label": label, "total": ZERO, "billable": ZERO, "count": 0})
            bucket["total"] += entry.effort
            bucket["count"] += 1
            if entry.is_billable:
                bucket["billable"] += entry.effort

        return [
            RollupBucket(
                key=key,
                label=values["label"],
                total_hours=values["total"],
                entry_count=values["count"],
                billable_hours=values["billable"],
            )
            for key, values in grouped.items()
        ]

    def _result(self, name: str, entries: Sequence[TimeEntry], buckets: Sequence[RollupBucket]) -> RollupResult:
        total = _effort_total(entries)
        billable = _effort_total(entry for entry in entries if entry.is_billable)
        bucket_total = sum((bucket.total_hours for bucket in buckets), ZERO)
        if bucket_total != total:
            logger.error("Rollup %s does not reconcile: buckets=%s input=%s", name, bucket_total, total)
            raise AggregationDefect(name, f"Bucket totals {bucket_total} do not match input total {total}.")
        return RollupResult(
            name=name,
            buckets=tuple(buckets),
            total_hours=total,
            entry_count=len(entries),
            billable_hours=billable,
            non_billable_hours=total - billable,
        )

    # ---------- Rollups ----------
    def aggregate(
        self,
        entries: Iterable[TimeEntry],
        dimension: DimensionSpec,
        *,
        order: RollupOrder = RollupOrder.TOTAL,
    ) -> RollupResult:
        entries = list(entries)
        buckets = self._group(entries, dimension)
        if order is RollupOrder.AVERAGE:
            buckets = [bucket for bucket in buckets if bucket.entry_count > 0]
            buckets.sort(key=lambda bucket: (-bucket.average_hours, bucket.label, bucket.key))
        else:
            buckets.sort(key=lambda bucket: (-bucket.total_hours, bucket.label, bucket.key))
        return self._result(dimension.name, entries, buckets)

    def average_by(self, entries: Iterable[TimeEntry], dimension: DimensionSpec) -> RollupResult:
        return self.aggregate(entries, dimension, order=RollupOrder.AVERAGE)

    def billable_split(self, entries: Iterable[TimeEntry]) -> RollupResult:
        entries = list(entries)
        billable = [entry for entry in entries if entry.is_billable]
        non_billable = [entry for entry in entries if not entry.is_billable]
        buckets = [
            RollupBucket(
                key=BILLABLE_KEY,
                label="Billable",
                total_hours=_effort_total(billable),
                entry_count=len(billable),
                billable_hours=_effort_total(billable),
            ),
            RollupBucket(
                key=NON_BILLABLE_KEY,
                label="Non-billable",
                total_hours=_effort_total(non_billable),
                entry_count=len(non_billable),
            ),
        ]
        return self._result(RollupName.BILLABLE_SUMMARY.value, entries, buckets)

    @staticmethod
    def billable_efficiency(billable_hours: Decimal, total_hours: Decimal) -> Decimal:
        return _safe_div(billable_hours * 100, total_hours)

    @staticmethod
    def growth_percent(current: Decimal, previous: Decimal) -> Decimal:
        return _safe_div((current - previous) * 100, previous)

    # ---------- Composite views ----------
    def period_comparison(
        self,
        entries: Iterable[TimeEntry],
        criteria: FilterCriteria,
        projects: Iterable[Project] = (),
    ) -> PeriodComparison:
        """Compare the criteria window with the equally long window right before it."""

        entries = list(entries)
        projects = list(projects)
        current = self.billable_split(self.filter_engine.filter(entries, criteria, projects))
        if criteria.start_date > date.min:
            previous_end = criteria.start_date - timedelta(days=1)
            # clamped at the first representable day
            previous_start = date.fromordinal(max(1, previous_end.toordinal() - criteria.day_count + 1))
            previous_criteria = dataclasses.replace(criteria, start_date=previous_start, end_date=previous_end)
            previous = self.billable_split(self.filter_engine.filter(entries, previous_criteria, projects))
        else:
            previous_start = previous_end = date.min
            previous = self.billable_split(())
        return PeriodComparison(
            current_start=criteria.start_date,
            current_end=criteria.end_date,
            previous_start=previous_start,
            previous_end=previous_end,
            current=dataclasses.replace(current, name=RollupName.PERIOD_COMPARISON.value),
            previous=dataclasses.replace(previous, name=RollupName.PERIOD_COMPARISON.value),
            growth_percent=self.growth_percent(current.total_hours, previous.total_hours),
        )

    def weekly_trend(self, entries: Iterable[TimeEntry], criteria: FilterCriteria) -> TrendSeries:
        """One point per ISO week touched by the criteria window, zero-filled.

        Entries dated outside the window's weeks are ignored.
        """

        first_week = criteria.start_date.toordinal() - criteria.start_date.weekday()
        last_week = criteria.end_date.toordinal() - criteria.end_date.weekday()
        weeks: dict[date, dict[str, object]] = {
            date.fromordinal(ordinal): {"total": ZERO, "billable": ZERO, "count": 0}
            for ordinal in range(first_week, last_week + 1, 7)
        }

        for entry in entries:
            if type(entry.date) is not date:
                continue
            bucket = weeks.get(entry.date - timedelta(days=entry.date.weekday()))
            if bucket is None:
                continue
            bucket["total"] += entry.effort
            bucket["count"] += 1
            if entry.is_billable:
                bucket["billable"] += entry.effort

        points = tuple(
            TrendPoint(
                week_start=week_start,
                total_hours=values["total"],
                billable_hours=values["billable"],
                entry_count=values["count"],
            )
            for week_start, values in weeks.items()
        )
        return TrendSeries(points=points, total_hours=sum((point.total_hours for point in points), ZERO))

    def team_summary(self, entries: Iterable[TimeEntry], users: Iterable[User]) -> TeamSummary:
        rollup = self.aggregate(entries, assignee_dimension(users))
        members = tuple(
            MemberSummary(
                user_id=bucket.key,
                name=bucket.label,
                total_hours=bucket.total_hours,
                billable_hours=bucket.billable_hours,
                entry_count=bucket.entry_count,
                efficiency=self.billable_efficiency(bucket.billable_hours, bucket.total_hours),
            )
            for bucket in rollup.buckets
        )
        efficient = [member.efficiency for member in members if member.efficiency > ZERO]
        average_efficiency = _q2(sum(efficient, ZERO) / len(efficient)) if efficient else ZERO
        return TeamSummary(
            members=members,
            total_hours=rollup.total_hours,
            billable_hours=rollup.billable_hours,
            average_efficiency=average_efficiency,
        )

    def entry_listing(
        self,
        entries: Iterable[TimeEntry],
        *,
        users: Iterable[User] = (),
        projects: Iterable[Project] = (),
        customers: Iterable[Customer] = (),
        task_types: Iterable[TaskType] = (),
        divisions: Iterable[Division] = (),
    ) -> EntryListing:
        entries = list(entries)
        dimensions = (
            assignee_dimension(users),
            project_dimension(projects, customers),
            task_type_dimension(task_types),
            division_dimension(divisions),
        )
        ordered = sorted(entries, key=lambda entry: entry.id)
        ordered.sort(key=lambda entry: entry.date if type(entry.date) is date else date.min, reverse=True)

        rows = []
        for entry in ordered:
            user_name, project_label, task_type_name, division_name = (
                self._resolve(entry, dimension)[1] for dimension in dimensions
            )
            rows.append(
                EntryRow(
                    entry=entry,
                    user_name=user_name,
                    project_label=project_label,
                    task_type_name=task_type_name,
                    division_name=division_name,
                )
            )

        billable_count = sum(1 for entry in entries if entry.is_billable)
        return EntryListing(
            rows=tuple(rows),
            total_hours=_effort_total(entries),
            billable_count=billable_count,
            non_billable_count=len(entries) - billable_count,
        )
