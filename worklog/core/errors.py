"""Error taxonomy shared by the engine, gateways and HTTP layer."""

from __future__ import annotations


class WorklogError(Exception):
    """Base class for all domain errors raised by worklog."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class FetchFailure(WorklogError):
    """The remote store could not return a collection."""

    def __init__(self, entity_type: str, message: str) -> None:
        super().__init__(message)
        self.entity_type = entity_type


class ValidationFailure(WorklogError, ValueError):
    """A payload or filter was rejected before reaching the remote store."""

    def __init__(self, message: str, *, errors: list[dict[str, object]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class MutationFailure(WorklogError):
    """The remote store rejected a write."""

    def __init__(self, entity_type: str, operation: str, message: str) -> None:
        super().__init__(message)
        self.entity_type = entity_type
        self.operation = operation


class AggregationDefect(WorklogError):
    """An internal invariant of a rollup did not hold."""

    def __init__(self, rollup: str, message: str) -> None:
        super().__init__(message)
        self.rollup = rollup
