"""Database session helpers shared by gateways and scripts."""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.orm import Session, sessionmaker


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Yield a session and close it afterwards."""

    session = session_factory()
    try:
        yield session
    finally:
        session.close()
