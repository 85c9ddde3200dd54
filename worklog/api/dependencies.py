"""Request-scoped dependencies for the API routes."""

from __future__ import annotations

from datetime import date

from fastapi import Depends, Query, Request

from worklog.core.errors import ValidationFailure
from worklog.engine.reporting import ReportingEngine
from worklog.engine.types import FilterCriteria
from worklog.services.report_service import ReportService


def get_reporting_engine(request: Request) -> ReportingEngine:
    return request.app.state.reporting_engine


def get_report_service(engine: ReportingEngine = Depends(get_reporting_engine)) -> ReportService:
    return ReportService(engine)


def get_filter_criteria(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    assignee_id: str | None = Query(default=None),
    customer_id: str | None = Query(default=None),
    project_id: str | None = Query(default=None),
    division_id: str | None = Query(default=None),
    engine: ReportingEngine = Depends(get_reporting_engine),
) -> FilterCriteria:
    """Build criteria from query parameters, defaulting to a trailing window."""

    settings = engine.settings
    resolved_end = end_date or date.today()
    if start_date is None:
        start_ordinal = max(1, resolved_end.toordinal() - settings.default_window_days + 1)
        resolved_start = date.fromordinal(start_ordinal)
    else:
        resolved_start = start_date
    if resolved_end.toordinal() - resolved_start.toordinal() + 1 > settings.max_window_days:
        raise ValidationFailure(
            f"Date window may not exceed {settings.max_window_days} days.",
            errors=[{"loc": ["start_date"], "msg": "window too long"}],
        )
    return FilterCriteria(
        start_date=resolved_start,
        end_date=resolved_end,
        assignee_id=assignee_id or None,
        customer_id=customer_id or None,
        project_id=project_id or None,
        division_id=division_id or None,
    )
