"""FastAPI application entrypoint."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session, sessionmaker

from worklog.api.errors import register_exception_handlers
from worklog.api.router import api_router
from worklog.core.config import Settings, get_settings
from worklog.core.logging import configure_logging
from worklog.engine.reporting import ReportingEngine
from worklog.gateway.base import RemoteStoreGateway
from worklog.gateway.factory import build_gateway
from worklog.gateway.graphql import GraphQLStoreGateway


def create_app(
    *,
    settings: Settings | None = None,
    gateway: RemoteStoreGateway | None = None,
    session_factory: sessionmaker[Session] | None = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    The reporting engine is built once here and shared through
    ``app.state``; tests inject their own gateway or session factory.
    """

    settings = settings or get_settings()
    logger = configure_logging(settings.log_level)
    gateway = gateway or build_gateway(settings, session_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting %s with %s store", settings.app_name, type(gateway).__name__)
        yield
        await app.state.reporting_engine.wait_for_refreshes()
        if isinstance(gateway, GraphQLStoreGateway):
            await gateway.client.aclose()

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        lifespan=lifespan,
    )
    app.state.reporting_engine = ReportingEngine(gateway, settings=settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/", tags=["system"])
    def root() -> dict[str, str]:
        return {"service": settings.app_name, "status": "running"}

    return app
