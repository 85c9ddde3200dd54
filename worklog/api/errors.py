"""Translate domain errors into HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from worklog.core.errors import AggregationDefect, FetchFailure, MutationFailure, ValidationFailure

logger = logging.getLogger(__name__)


async def validation_failure_handler(request: Request, exc: ValidationFailure) -> JSONResponse:
    content: dict[str, object] = {"detail": exc.message}
    if exc.errors:
        content["errors"] = jsonable_encoder(exc.errors)
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=content)


async def mutation_failure_handler(request: Request, exc: MutationFailure) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": exc.message})


async def fetch_failure_handler(request: Request, exc: FetchFailure) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": exc.message})


async def aggregation_defect_handler(request: Request, exc: AggregationDefect) -> JSONResponse:
    logger.error("Aggregation defect in %s on %s: %s", exc.rollup, request.url.path, exc.message)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"Rollup {exc.rollup} could not be reconciled."},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationFailure, validation_failure_handler)
    app.add_exception_handler(MutationFailure, mutation_failure_handler)
    app.add_exception_handler(FetchFailure, fetch_failure_handler)
    app.add_exception_handler(AggregationDefect, aggregation_defect_handler)
