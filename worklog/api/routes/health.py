"""Health check endpoints."""

from fastapi import APIRouter, Depends

from worklog.api.dependencies import get_reporting_engine
from worklog.engine.reporting import ReportingEngine
from worklog.engine.types import EntityType

router = APIRouter()


@router.get("/health")
def health(engine: ReportingEngine = Depends(get_reporting_engine)) -> dict[str, object]:
    """Liveness endpoint; also reports which collections are resident."""

    return {
        "status": "ok",
        "resident_collections": sorted(
            entity_type.value for entity_type in EntityType if engine.is_resident(entity_type)
        ),
    }
