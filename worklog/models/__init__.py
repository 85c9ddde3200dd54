"""ORM model package."""

from worklog.models.entities import (
    Customer,
    Division,
    Project,
    ProjectTask,
    RecordStatus,
    TaskPriority,
    TaskStatus,
    TaskType,
    TimeEntry,
    User,
    UserRole,
)

__all__ = [
    "Customer",
    "Division",
    "Project",
    "ProjectTask",
    "RecordStatus",
    "TaskPriority",
    "TaskStatus",
    "TaskType",
    "TimeEntry",
    "User",
    "UserRole",
]
