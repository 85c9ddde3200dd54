"""Time entry listing and write endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from worklog.api.dependencies import get_filter_criteria, get_report_service, get_reporting_engine
from worklog.engine.reporting import ReportingEngine
from worklog.engine.types import EntityType, FilterCriteria, MutationOperation, RollupName
from worklog.gateway.schemas import TimeEntryCreatePayload, TimeEntryUpdatePayload
from worklog.services.report_service import ReportService

router = APIRouter(prefix="/time-entries", tags=["time-entries"])


@router.get("")
async def list_time_entries(
    criteria: FilterCriteria = Depends(get_filter_criteria),
    service: ReportService = Depends(get_report_service),
) -> dict[str, object]:
    return await service.rollup(RollupName.ENTRY_LIST, criteria)


@router.get("/{entry_id}")
async def get_time_entry(entry_id: str, service: ReportService = Depends(get_report_service)) -> dict[str, object]:
    record = await service.record(EntityType.TIME_ENTRY, entry_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Time entry not found.")
    return record


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_time_entry(
    payload: TimeEntryCreatePayload,
    engine: ReportingEngine = Depends(get_reporting_engine),
    service: ReportService = Depends(get_report_service),
) -> dict[str, object]:
    entry_id = await engine.submit_mutation(EntityType.TIME_ENTRY, MutationOperation.CREATE, payload.model_dump())
    return await service.record(EntityType.TIME_ENTRY, entry_id) or {"id": entry_id}


@router.patch("/{entry_id}")
async def update_time_entry(
    entry_id: str,
    payload: TimeEntryUpdatePayload,
    engine: ReportingEngine = Depends(get_reporting_engine),
    service: ReportService = Depends(get_report_service),
) -> dict[str, object]:
    await engine.submit_mutation(
        EntityType.TIME_ENTRY,
        MutationOperation.UPDATE,
        payload.model_dump(exclude_unset=True) | {"id": entry_id},
    )
    return await service.record(EntityType.TIME_ENTRY, entry_id) or {"id": entry_id}


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_time_entry(entry_id: str, engine: ReportingEngine = Depends(get_reporting_engine)) -> Response:
    await engine.submit_mutation(EntityType.TIME_ENTRY, MutationOperation.DELETE, {"id": entry_id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
