"""Rollup view endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from worklog.api.dependencies import get_filter_criteria, get_report_service
from worklog.engine.types import FilterCriteria, RollupName
from worklog.services.report_service import ReportService

router = APIRouter(prefix="/rollups", tags=["rollups"])


def resolve_rollup_name(rollup_name: str) -> RollupName:
    try:
        return RollupName(rollup_name.strip().lower())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown rollup name.") from None


@router.get("")
def list_rollups() -> dict[str, list[str]]:
    return {"items": [name.value for name in RollupName]}


@router.get("/{rollup_name}")
async def get_rollup(
    rollup_name: str,
    criteria: FilterCriteria = Depends(get_filter_criteria),
    service: ReportService = Depends(get_report_service),
) -> dict[str, object]:
    return await service.rollup(resolve_rollup_name(rollup_name), criteria)
