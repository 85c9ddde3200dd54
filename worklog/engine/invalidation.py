"""Static map from mutable entity types to the rollups that read them."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from worklog.engine.types import EntityType, InvalidationRule, RollupName

E = EntityType
R = RollupName

# Entity types read by each view. Every view reads projects because the
# customer filter resolves through them.
ROLLUP_READS: Mapping[RollupName, frozenset[EntityType]] = {
    R.ENTRY_LIST: frozenset({E.TIME_ENTRY, E.PROJECT, E.CUSTOMER, E.USER, E.TASK_TYPE, E.DIVISION}),
    R.PROJECT: frozenset({E.TIME_ENTRY, E.PROJECT, E.CUSTOMER}),
    R.ASSIGNEE: frozenset({E.TIME_ENTRY, E.PROJECT, E.USER}),
    R.DIVISION: frozenset({E.TIME_ENTRY, E.PROJECT, E.DIVISION}),
    R.TASK_TYPE: frozenset({E.TIME_ENTRY, E.PROJECT, E.TASK_TYPE}),
    R.TASK_TYPE_AVERAGE: frozenset({E.TIME_ENTRY, E.PROJECT, E.TASK_TYPE}),
    R.PROJECT_TASK: frozenset({E.TIME_ENTRY, E.PROJECT, E.PROJECT_TASK}),
    R.BILLABLE_SUMMARY: frozenset({E.TIME_ENTRY, E.PROJECT}),
    R.PERIOD_COMPARISON: frozenset({E.TIME_ENTRY, E.PROJECT}),
    R.WEEKLY_TREND: frozenset({E.TIME_ENTRY, E.PROJECT}),
    R.TEAM_SUMMARY: frozenset({E.TIME_ENTRY, E.PROJECT, E.USER}),
}

# Review this table whenever ROLLUP_READS gains a view or an entity type.
INVALIDATION_RULES: tuple[InvalidationRule, ...] = (
    InvalidationRule(
        E.TIME_ENTRY,
        (
            R.ENTRY_LIST,
            R.PROJECT,
            R.ASSIGNEE,
            R.DIVISION,
            R.TASK_TYPE,
            R.TASK_TYPE_AVERAGE,
            R.PROJECT_TASK,
            R.BILLABLE_SUMMARY,
            R.PERIOD_COMPARISON,
            R.WEEKLY_TREND,
            R.TEAM_SUMMARY,
        ),
    ),
    InvalidationRule(
        E.PROJECT,
        (
            R.ENTRY_LIST,
            R.PROJECT,
            R.ASSIGNEE,
            R.DIVISION,
            R.TASK_TYPE,
            R.TASK_TYPE_AVERAGE,
            R.PROJECT_TASK,
            R.BILLABLE_SUMMARY,
            R.PERIOD_COMPARISON,
            R.WEEKLY_TREND,
            R.TEAM_SUMMARY,
        ),
    ),
    InvalidationRule(E.CUSTOMER, (R.ENTRY_LIST, R.PROJECT)),
    InvalidationRule(E.USER, (R.ENTRY_LIST, R.ASSIGNEE, R.TEAM_SUMMARY)),
    InvalidationRule(E.DIVISION, (R.ENTRY_LIST, R.DIVISION)),
    InvalidationRule(E.TASK_TYPE, (R.ENTRY_LIST, R.TASK_TYPE, R.TASK_TYPE_AVERAGE)),
    InvalidationRule(E.PROJECT_TASK, (R.PROJECT_TASK,)),
)


class InvalidationGraph:
    """Lookup over a static invalidation table.

    Invalidation is by entity type only; one changed row can move any bucket
    of an aggregate view.
    """

    def __init__(self, rules: Iterable[InvalidationRule] = INVALIDATION_RULES) -> None:
        self._rules = tuple(rules)
        self._by_type: dict[EntityType, tuple[RollupName, ...]] = {}
        for rule in self._rules:
            existing = self._by_type.get(rule.entity_type, ())
            self._by_type[rule.entity_type] = existing + tuple(
                name for name in rule.affected_rollups if name not in existing
            )

    def affected_rollups(self, entity_type: EntityType) -> tuple[RollupName, ...]:
        return self._by_type.get(EntityType(entity_type), ())

    def rules(self) -> tuple[InvalidationRule, ...]:
        return self._rules

    def missing_edges(
        self,
        reads: Mapping[RollupName, Iterable[EntityType]] = ROLLUP_READS,
    ) -> list[tuple[EntityType, RollupName]]:
        """Return every (entity type, rollup) read that the table does not cover."""

        missing: list[tuple[EntityType, RollupName]] = []
        for rollup, entity_types in reads.items():
            for entity_type in sorted(entity_types, key=lambda item: item.value):
                if rollup not in self.affected_rollups(entity_type):
                    missing.append((entity_type, rollup))
        return missing
