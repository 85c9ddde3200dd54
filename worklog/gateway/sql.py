"""Remote store backed by the SQLAlchemy models."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from datetime import date, datetime
from typing import Any

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from worklog.core.errors import FetchFailure, MutationFailure
from worklog.db.base import Base
from worklog.db.dependencies import session_scope
from worklog.engine.types import EntityType, MutationOperation, Record
from worklog.gateway.schemas import parse_records
from worklog.models import entities
from worklog.repositories.timesheet_repository import TimesheetRepository

logger = logging.getLogger(__name__)

MODELS: dict[EntityType, type[Base]] = {
    EntityType.TIME_ENTRY: entities.TimeEntry,
    EntityType.USER: entities.User,
    EntityType.CUSTOMER: entities.Customer,
    EntityType.PROJECT: entities.Project,
    EntityType.DIVISION: entities.Division,
    EntityType.TASK_TYPE: entities.TaskType,
    EntityType.PROJECT_TASK: entities.ProjectTask,
}


def _hint_date(value: Any) -> date | None:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


class SqlStoreGateway:
    """Gateway over a relational database.

    Sessions are blocking, so every call runs in the threadpool. A lock
    serializes access so a single-connection pool (SQLite) is never shared
    between threads at the same time.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory
        self._lock = threading.Lock()

    async def fetch_entries(
        self,
        entity_type: EntityType,
        filter_hints: Mapping[str, Any] | None = None,
    ) -> list[Record]:
        return await run_in_threadpool(self._fetch_sync, EntityType(entity_type), dict(filter_hints or {}))

    async def mutate(
        self,
        entity_type: EntityType,
        operation: MutationOperation,
        payload: Mapping[str, Any],
    ) -> str:
        return await run_in_threadpool(
            self._mutate_sync,
            EntityType(entity_type),
            MutationOperation(operation),
            dict(payload),
        )

    # ---------- Reads ----------
    @staticmethod
    def _list_rows(repo: TimesheetRepository, entity_type: EntityType, hints: dict[str, Any]) -> list[Base]:
        dispatch: dict[EntityType, Callable[[], list[Base]]] = {
            EntityType.TIME_ENTRY: lambda: repo.list_time_entries(
                start_date=_hint_date(hints.get("start_date")),
                end_date=_hint_date(hints.get("end_date")),
            ),
            EntityType.USER: repo.list_users,
            EntityType.CUSTOMER: repo.list_customers,
            EntityType.PROJECT: repo.list_projects,
            EntityType.DIVISION: repo.list_divisions,
            EntityType.TASK_TYPE: repo.list_task_types,
            EntityType.PROJECT_TASK: lambda: repo.list_project_tasks(project_id=hints.get("project_id")),
        }
        return dispatch[entity_type]()

    def _fetch_sync(self, entity_type: EntityType, hints: dict[str, Any]) -> list[Record]:
        try:
            with self._lock, session_scope(self.session_factory) as db:
                rows = self._list_rows(TimesheetRepository(db), entity_type, hints)
                return parse_records(entity_type, rows)
        except SQLAlchemyError as exc:
            logger.warning("Fetching %s failed: %s", entity_type.value, exc)
            raise FetchFailure(entity_type.value, f"Could not load {entity_type.value} records.") from exc
        except ValueError as exc:
            raise FetchFailure(entity_type.value, f"Invalid filter hints: {exc}") from exc

    # ---------- Writes ----------
    @staticmethod
    def _column_values(model: type[Base], values: dict[str, Any]) -> dict[str, Any]:
        columns = model.__table__.columns
        coerced: dict[str, Any] = {}
        for key, value in values.items():
            column = columns.get(key)
            enum_class = getattr(column.type, "enum_class", None) if column is not None else None
            coerced[key] = enum_class(value) if enum_class is not None and value is not None else value
        return coerced

    def _mutate_sync(self, entity_type: EntityType, operation: MutationOperation, payload: dict[str, Any]) -> str:
        model = MODELS[entity_type]
        values = self._column_values(model, payload)
        try:
            with self._lock, session_scope(self.session_factory) as db:
                repo = TimesheetRepository(db)
                if operation is MutationOperation.CREATE:
                    values.pop("id", None)
                    row = repo.add_row(model(**values))
                else:
                    row_id = str(values.pop("id", ""))
                    row = repo.get_row(model, row_id)
                    if row is None:
                        raise MutationFailure(
                            entity_type.value,
                            operation.value,
                            f"{entity_type.value} {row_id} not found.",
                        )
                    if operation is MutationOperation.UPDATE:
                        for field_name, value in values.items():
                            setattr(row, field_name, value)
                        row.updated_at = datetime.utcnow()
                        db.flush()
                    else:
                        repo.delete_row(row)
                entity_id = str(row.id)
                db.commit()
        except IntegrityError as exc:
            logger.warning("Store rejected %s %s: %s", operation.value, entity_type.value, exc.orig)
            raise MutationFailure(
                entity_type.value,
                operation.value,
                f"{entity_type.value} {operation.value} violates store constraints.",
            ) from exc
        except SQLAlchemyError as exc:
            logger.warning("Store failed on %s %s: %s", operation.value, entity_type.value, exc)
            raise MutationFailure(entity_type.value, operation.value, "Store write failed.") from exc

        logger.debug("Stored %s %s %s", operation.value, entity_type.value, entity_id)
        return entity_id
