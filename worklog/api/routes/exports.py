"""Export endpoint for rollup views."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from worklog.api.dependencies import get_filter_criteria, get_report_service
from worklog.api.routes.rollups import resolve_rollup_name
from worklog.engine.types import FilterCriteria
from worklog.services.report_service import ReportService

router = APIRouter(prefix="/exports", tags=["exports"])


@router.get("/{rollup_name}")
async def export_rollup(
    rollup_name: str,
    format: str = Query(default="xlsx"),
    criteria: FilterCriteria = Depends(get_filter_criteria),
    service: ReportService = Depends(get_report_service),
) -> Response:
    exported = await service.export_view(resolve_rollup_name(rollup_name), criteria, format)
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )
