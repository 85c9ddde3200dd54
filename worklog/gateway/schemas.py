"""Boundary validation for remote store records and mutation payloads."""

from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Iterable, Mapping
from datetime import date as date_type
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from worklog.core.config import Settings
from worklog.core.errors import ValidationFailure
from worklog.engine import types as t
from worklog.engine.types import EntityType, MutationOperation

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# ---------- Records ----------
class _RecordModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str

    @field_validator("*", mode="before")
    @classmethod
    def unwrap_column_values(cls, value: object) -> object:
        # ORM rows carry enum members and, on some drivers, UUID ids
        if isinstance(value, enum.Enum):
            return value.value
        if isinstance(value, uuid.UUID):
            return str(value)
        return value


class TimeEntryRecord(_RecordModel):
    date: date_type | None = None
    effort: Decimal = Field(ge=0)
    is_billable: bool = True
    user_id: str
    project_id: str
    task_type_id: str
    division_id: str
    task_id: str | None = None
    description: str | None = ""

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, value: object) -> date_type | None:
        """Unparseable dates become ``None`` so the filter excludes the entry."""

        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date_type):
            return value
        if isinstance(value, str):
            try:
                return date_type.fromisoformat(value.strip()[:10])
            except ValueError:
                return None
        return None

    def to_record(self) -> t.TimeEntry:
        return t.TimeEntry(
            id=self.id,
            date=self.date,
            effort=self.effort,
            is_billable=self.is_billable,
            user_id=self.user_id,
            project_id=self.project_id,
            task_type_id=self.task_type_id,
            division_id=self.division_id,
            task_id=self.task_id,
            description=self.description or "",
        )


class UserRecord(_RecordModel):
    name: str
    email: str = ""
    role: str = "Member"
    status: str = "Active"

    def to_record(self) -> t.User:
        return t.User(id=self.id, name=self.name, email=self.email, role=str(self.role), status=str(self.status))


class CustomerRecord(_RecordModel):
    name: str
    status: str = "Active"

    def to_record(self) -> t.Customer:
        return t.Customer(id=self.id, name=self.name, status=str(self.status))


class ProjectRecord(_RecordModel):
    name: str
    customer_id: str
    pm_id: str | None = None
    is_billable: bool = True

    def to_record(self) -> t.Project:
        return t.Project(
            id=self.id,
            name=self.name,
            customer_id=self.customer_id,
            pm_id=self.pm_id,
            is_billable=self.is_billable,
        )


class DivisionRecord(_RecordModel):
    name: str

    def to_record(self) -> t.Division:
        return t.Division(id=self.id, name=self.name)


class TaskTypeRecord(_RecordModel):
    name: str

    def to_record(self) -> t.TaskType:
        return t.TaskType(id=self.id, name=self.name)


class ProjectTaskRecord(_RecordModel):
    project_id: str
    title: str
    status: str = "pending"
    priority: str = "medium"
    assigned_to: str | None = None
    estimated_hours: Decimal | None = None

    def to_record(self) -> t.ProjectTask:
        return t.ProjectTask(
            id=self.id,
            project_id=self.project_id,
            title=self.title,
            status=str(self.status),
            priority=str(self.priority),
            assigned_to=self.assigned_to,
            estimated_hours=self.estimated_hours,
        )


RECORD_SCHEMAS: dict[EntityType, type[_RecordModel]] = {
    EntityType.TIME_ENTRY: TimeEntryRecord,
    EntityType.USER: UserRecord,
    EntityType.CUSTOMER: CustomerRecord,
    EntityType.PROJECT: ProjectRecord,
    EntityType.DIVISION: DivisionRecord,
    EntityType.TASK_TYPE: TaskTypeRecord,
    EntityType.PROJECT_TASK: ProjectTaskRecord,
}


def parse_records(entity_type: EntityType, rows: Iterable[Any]) -> list[t.Record]:
    """Convert raw rows (mappings or ORM objects) into engine records.

    Rows that fail validation are dropped with a warning.
    """

    schema = RECORD_SCHEMAS[EntityType(entity_type)]
    records: list[t.Record] = []
    dropped = 0
    for row in rows:
        try:
            records.append(schema.model_validate(row).to_record())
        except ValidationError as exc:
            dropped += 1
            logger.warning("Dropping malformed %s record: %s", entity_type.value, exc.errors(include_url=False))
    if dropped:
        logger.warning("Dropped %s of %s %s records", dropped, dropped + len(records), entity_type.value)
    return records


# ---------- Mutation payloads ----------
UserRoleValue = Literal["Admin", "Manager", "Member"]
StatusValue = Literal["Active", "Inactive"]
TaskStatusValue = Literal["pending", "in_progress", "completed", "cancelled"]
TaskPriorityValue = Literal["low", "medium", "high"]


class TimeEntryCreatePayload(BaseModel):
    date: date_type
    effort: Decimal
    description: str = Field(default="", max_length=2000)
    is_billable: bool = True
    user_id: str = Field(min_length=1)
    project_id: str = Field(min_length=1)
    task_type_id: str = Field(min_length=1)
    division_id: str = Field(min_length=1)
    task_id: str | None = None


class TimeEntryUpdatePayload(BaseModel):
    date: date_type | None = None
    effort: Decimal | None = None
    description: str | None = Field(default=None, max_length=2000)
    is_billable: bool | None = None
    user_id: str | None = Field(default=None, min_length=1)
    project_id: str | None = Field(default=None, min_length=1)
    task_type_id: str | None = Field(default=None, min_length=1)
    division_id: str | None = Field(default=None, min_length=1)
    task_id: str | None = None


class UserCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=320)
    role: UserRoleValue = "Member"
    status: StatusValue = "Active"


class UserUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, min_length=3, max_length=320)
    role: UserRoleValue | None = None
    status: StatusValue | None = None


class CustomerCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    status: StatusValue = "Active"


class CustomerUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    status: StatusValue | None = None


class ProjectCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    customer_id: str = Field(min_length=1)
    pm_id: str | None = None
    is_billable: bool = True


class ProjectUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    customer_id: str | None = Field(default=None, min_length=1)
    pm_id: str | None = None
    is_billable: bool | None = None


class NamedCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class NamedUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)


class ProjectTaskCreatePayload(BaseModel):
    project_id: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=255)
    status: TaskStatusValue = "pending"
    priority: TaskPriorityValue = "medium"
    assigned_to: str | None = None
    estimated_hours: Decimal | None = Field(default=None, ge=0)


class ProjectTaskUpdatePayload(BaseModel):
    project_id: str | None = Field(default=None, min_length=1)
    title: str | None = Field(default=None, min_length=1, max_length=255)
    status: TaskStatusValue | None = None
    priority: TaskPriorityValue | None = None
    assigned_to: str | None = None
    estimated_hours: Decimal | None = Field(default=None, ge=0)


class EntityRef(BaseModel):
    id: str = Field(min_length=1)


MUTATION_SCHEMAS: dict[tuple[EntityType, MutationOperation], type[BaseModel]] = {
    (EntityType.TIME_ENTRY, MutationOperation.CREATE): TimeEntryCreatePayload,
    (EntityType.TIME_ENTRY, MutationOperation.UPDATE): TimeEntryUpdatePayload,
    (EntityType.USER, MutationOperation.CREATE): UserCreatePayload,
    (EntityType.USER, MutationOperation.UPDATE): UserUpdatePayload,
    (EntityType.CUSTOMER, MutationOperation.CREATE): CustomerCreatePayload,
    (EntityType.CUSTOMER, MutationOperation.UPDATE): CustomerUpdatePayload,
    (EntityType.PROJECT, MutationOperation.CREATE): ProjectCreatePayload,
    (EntityType.PROJECT, MutationOperation.UPDATE): ProjectUpdatePayload,
    (EntityType.DIVISION, MutationOperation.CREATE): NamedCreatePayload,
    (EntityType.DIVISION, MutationOperation.UPDATE): NamedUpdatePayload,
    (EntityType.TASK_TYPE, MutationOperation.CREATE): NamedCreatePayload,
    (EntityType.TASK_TYPE, MutationOperation.UPDATE): NamedUpdatePayload,
    (EntityType.PROJECT_TASK, MutationOperation.CREATE): ProjectTaskCreatePayload,
    (EntityType.PROJECT_TASK, MutationOperation.UPDATE): ProjectTaskUpdatePayload,
}


def _validate_time_entry_rules(values: Mapping[str, Any], *, settings: Settings, today: date_type) -> None:
    effort = values.get("effort")
    if effort is not None and not (Decimal("0") < effort <= settings.max_daily_effort):
        raise ValidationFailure(
            f"effort must be greater than 0 and at most {settings.max_daily_effort} hours.",
            errors=[{"loc": ["effort"], "msg": "out of range"}],
        )

    entry_date = values.get("date")
    limit = settings.retroactive_entry_limit_days
    if entry_date is not None and limit is not None and entry_date < today - timedelta(days=limit):
        raise ValidationFailure(
            f"date may not be more than {limit} days in the past.",
            errors=[{"loc": ["date"], "msg": "too far in the past"}],
        )


def _validated(
    schema: type[ModelT],
    data: dict[str, Any],
    entity_type: EntityType,
    operation: MutationOperation,
) -> ModelT:
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False)
        raise ValidationFailure(
            f"Invalid {operation.value} payload for {entity_type.value}.",
            errors=[{"loc": list(error["loc"]), "msg": error["msg"]} for error in errors],
        ) from exc


def validate_mutation(
    entity_type: EntityType,
    operation: MutationOperation,
    payload: Mapping[str, Any],
    *,
    settings: Settings,
    today: date_type | None = None,
) -> dict[str, Any]:
    """Validate a mutation payload before it is sent to the remote store.

    Returns the normalized payload: full field set for creates, only the
    supplied fields (plus ``id``) for updates, ``{"id": ...}`` for deletes.
    Raises ``ValidationFailure`` on any problem.
    """

    entity_type = EntityType(entity_type)
    operation = MutationOperation(operation)
    data = dict(payload)
    entity_id: str | None = None
    if operation is not MutationOperation.CREATE:
        entity_id = _validated(EntityRef, {"id": data.pop("id", None)}, entity_type, operation).id
        if operation is MutationOperation.DELETE:
            return {"id": entity_id}
    else:
        data.pop("id", None)

    model = _validated(MUTATION_SCHEMAS[(entity_type, operation)], data, entity_type, operation)
    values = model.model_dump(exclude_unset=operation is MutationOperation.UPDATE)
    if operation is MutationOperation.UPDATE:
        if not values:
            raise ValidationFailure(f"Update payload for {entity_type.value} has no fields to change.")
        values["id"] = entity_id

    if entity_type is EntityType.TIME_ENTRY:
        _validate_time_entry_rules(values, settings=settings, today=today or date_type.today())
    return values
