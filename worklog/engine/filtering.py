"""Predicate filtering of time entries."""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import date

from worklog.engine.types import FilterCriteria, Project, TimeEntry


def filter_signature(criteria: FilterCriteria) -> str:
    """Canonical cache key for a criteria value; absent fields encode as null."""

    return json.dumps(
        {
            "start_date": criteria.start_date.isoformat(),
            "end_date": criteria.end_date.isoformat(),
            "assignee_id": criteria.assignee_id,
            "customer_id": criteria.customer_id,
            "project_id": criteria.project_id,
            "division_id": criteria.division_id,
        },
        sort_keys=True,
        separators=(",", ":"),
    )


class EntryFilterEngine:
    """Applies ``FilterCriteria`` to an entry collection.

    All predicates are conjunctive. Entries without a usable date never match.
    Input order is preserved, so filtering twice yields the same list.
    """

    def filter(
        self,
        entries: Iterable[TimeEntry],
        criteria: FilterCriteria,
        projects: Iterable[Project] = (),
    ) -> list[TimeEntry]:
        customer_projects: set[str] | None = None
        if criteria.customer_id is not None:
            customer_projects = {
                project.id for project in projects if project.customer_id == criteria.customer_id
            }
            if not customer_projects:
                return []

        return [
            entry
            for entry in entries
            if self._matches(entry, criteria, customer_projects)
        ]

    @staticmethod
    def _matches(entry: TimeEntry, criteria: FilterCriteria, customer_projects: set[str] | None) -> bool:
        entry_date = entry.date
        # datetime subclasses date but is not a calendar date.
        if type(entry_date) is not date:
            return False
        if not criteria.start_date <= entry_date <= criteria.end_date:
            return False
        if criteria.assignee_id is not None and entry.user_id != criteria.assignee_id:
            return False
        if criteria.division_id is not None and entry.division_id != criteria.division_id:
            return False
        if criteria.project_id is not None and entry.project_id != criteria.project_id:
            return False
        if customer_projects is not None and entry.project_id not in customer_projects:
            return False
        return True
