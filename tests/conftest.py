from __future__ import annotations

import logging
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import worklog.models.entities  # noqa: F401
from worklog.core.config import Settings
from worklog.db.base import Base
from worklog.main import create_app

from support import FakeStoreGateway, seed_scenario


@pytest.fixture(autouse=True)
def _restore_worklog_logger() -> Generator[None, None, None]:
    # create_app() configures the package logger globally; keep that from leaking across tests.
    logger = logging.getLogger("worklog")
    level, handlers = logger.level, list(logger.handlers)
    try:
        yield
    finally:
        logger.setLevel(level)
        logger.handlers[:] = handlers


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        database_url="sqlite+pysqlite:///:memory:",
        store_backend="sql",
        log_level="DEBUG",
        view_cache_max_slots=64,
    )


@pytest.fixture()
def fake_gateway() -> FakeStoreGateway:
    gateway = FakeStoreGateway()
    seed_scenario(gateway)
    return gateway


@pytest.fixture()
def session_factory() -> Generator[sessionmaker[Session], None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(settings: Settings, session_factory: sessionmaker[Session]) -> Generator[TestClient, None, None]:
    app = create_app(settings=settings, session_factory=session_factory)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def fake_client(settings: Settings, fake_gateway: FakeStoreGateway) -> Generator[TestClient, None, None]:
    app = create_app(settings=settings, gateway=fake_gateway)
    with TestClient(app) as test_client:
        yield test_client
