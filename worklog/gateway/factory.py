"""Select the remote store backend from settings."""

from __future__ import annotations

import httpx
from sqlalchemy.orm import Session, sessionmaker

from worklog.core.config import Settings
from worklog.gateway.base import RemoteStoreGateway
from worklog.gateway.graphql import GraphQLStoreGateway
from worklog.gateway.sql import SqlStoreGateway


def build_gateway(
    settings: Settings,
    session_factory: sessionmaker[Session] | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> RemoteStoreGateway:
    if settings.store_backend == "graphql":
        return GraphQLStoreGateway(
            client or httpx.AsyncClient(timeout=settings.gateway_timeout_seconds),
            settings.graphql_url,
            admin_secret=settings.graphql_admin_secret,
            timeout=settings.gateway_timeout_seconds,
        )

    if session_factory is None:
        # engine creation is deferred until a SQL backend is actually used
        from worklog.db.session import SessionLocal

        session_factory = SessionLocal
    return SqlStoreGateway(session_factory)
