"""CRUD endpoints for the entities time entries reference.

Each collection gets the same routes. Writes go through the reporting
engine so dependent rollups are refreshed before the response returns.
"""

from fastapi import APIRouter, Body, Depends, HTTPException, Response, status
from pydantic import BaseModel

from worklog.api.dependencies import get_report_service, get_reporting_engine
from worklog.engine.reporting import ReportingEngine
from worklog.engine.types import EntityType, MutationOperation
from worklog.gateway.schemas import (
    CustomerCreatePayload,
    CustomerUpdatePayload,
    NamedCreatePayload,
    NamedUpdatePayload,
    ProjectCreatePayload,
    ProjectTaskCreatePayload,
    ProjectTaskUpdatePayload,
    ProjectUpdatePayload,
    UserCreatePayload,
    UserUpdatePayload,
)
from worklog.services.report_service import ReportService

REFERENCE_COLLECTIONS: tuple[tuple[str, EntityType, type[BaseModel], type[BaseModel]], ...] = (
    ("users", EntityType.USER, UserCreatePayload, UserUpdatePayload),
    ("customers", EntityType.CUSTOMER, CustomerCreatePayload, CustomerUpdatePayload),
    ("projects", EntityType.PROJECT, ProjectCreatePayload, ProjectUpdatePayload),
    ("divisions", EntityType.DIVISION, NamedCreatePayload, NamedUpdatePayload),
    ("task-types", EntityType.TASK_TYPE, NamedCreatePayload, NamedUpdatePayload),
    ("project-tasks", EntityType.PROJECT_TASK, ProjectTaskCreatePayload, ProjectTaskUpdatePayload),
)


def build_reference_router(
    path: str,
    entity_type: EntityType,
    create_schema: type[BaseModel],
    update_schema: type[BaseModel],
) -> APIRouter:
    router = APIRouter(prefix=f"/{path}", tags=[path])
    label = entity_type.value.replace("_", " ").capitalize()

    @router.get("")
    async def list_records(service: ReportService = Depends(get_report_service)) -> dict[str, list[object]]:
        return {"items": await service.records(entity_type)}

    @router.get("/{record_id}")
    async def get_record(record_id: str, service: ReportService = Depends(get_report_service)) -> dict[str, object]:
        record = await service.record(entity_type, record_id)
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found.")
        return record

    @router.post("", status_code=status.HTTP_201_CREATED)
    async def create_record(
        payload: create_schema = Body(...),  # type: ignore[valid-type]
        engine: ReportingEngine = Depends(get_reporting_engine),
        service: ReportService = Depends(get_report_service),
    ) -> dict[str, object]:
        record_id = await engine.submit_mutation(entity_type, MutationOperation.CREATE, payload.model_dump())
        return await service.record(entity_type, record_id) or {"id": record_id}

    @router.patch("/{record_id}")
    async def update_record(
        record_id: str,
        payload: update_schema = Body(...),  # type: ignore[valid-type]
        engine: ReportingEngine = Depends(get_reporting_engine),
        service: ReportService = Depends(get_report_service),
    ) -> dict[str, object]:
        await engine.submit_mutation(
            entity_type,
            MutationOperation.UPDATE,
            payload.model_dump(exclude_unset=True) | {"id": record_id},
        )
        return await service.record(entity_type, record_id) or {"id": record_id}

    @router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_record(record_id: str, engine: ReportingEngine = Depends(get_reporting_engine)) -> Response:
        await engine.submit_mutation(entity_type, MutationOperation.DELETE, {"id": record_id})
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router


routers = [build_reference_router(*collection) for collection in REFERENCE_COLLECTIONS]
