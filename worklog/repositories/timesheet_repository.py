"""Repository helpers for time entries and the entities they reference."""

from __future__ import annotations

from datetime import date
from typing import TypeVar

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from worklog.db.base import Base
from worklog.models.entities import (
    Customer,
    Division,
    Project,
    ProjectTask,
    TaskType,
    TimeEntry,
    User,
)

RowT = TypeVar("RowT", bound=Base)


class TimesheetRepository:
    """Persistence operations backing the SQL store gateway."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Reference entities ----------
    def list_users(self) -> list[User]:
        return self.db.scalars(select(User).order_by(User.name.asc(), User.id.asc())).all()

    def list_customers(self) -> list[Customer]:
        return self.db.scalars(select(Customer).order_by(Customer.name.asc(), Customer.id.asc())).all()

    def list_projects(self) -> list[Project]:
        return self.db.scalars(select(Project).order_by(Project.name.asc(), Project.id.asc())).all()

    def list_divisions(self) -> list[Division]:
        return self.db.scalars(select(Division).order_by(Division.name.asc(), Division.id.asc())).all()

    def list_task_types(self) -> list[TaskType]:
        return self.db.scalars(select(TaskType).order_by(TaskType.name.asc(), TaskType.id.asc())).all()

    def list_project_tasks(self, *, project_id: str | None = None) -> list[ProjectTask]:
        query = select(ProjectTask)
        if project_id is not None:
            query = query.where(ProjectTask.project_id == project_id)
        return self.db.scalars(query.order_by(ProjectTask.title.asc(), ProjectTask.id.asc())).all()

    # ---------- Time entries ----------
    def list_time_entries(
        self,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[TimeEntry]:
        conditions = []
        if start_date is not None:
            conditions.append(TimeEntry.date >= start_date)
        if end_date is not None:
            conditions.append(TimeEntry.date <= end_date)

        query = select(TimeEntry)
        if conditions:
            query = query.where(and_(*conditions))
        return self.db.scalars(query.order_by(TimeEntry.date.desc(), TimeEntry.id.asc())).all()

    # ---------- Generic row access ----------
    def get_row(self, model: type[RowT], row_id: str) -> RowT | None:
        return self.db.scalar(select(model).where(model.id == row_id))

    def add_row(self, row: RowT) -> RowT:
        self.db.add(row)
        self.db.flush()
        return row

    def delete_row(self, row: Base) -> None:
        self.db.delete(row)
        self.db.flush()
