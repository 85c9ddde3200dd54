"""Contract every remote store backend implements."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from worklog.engine.types import EntityType, MutationOperation, Record

# Hasura-style collection names, also used as SQL table names.
COLLECTION_NAMES: dict[EntityType, str] = {
    EntityType.TIME_ENTRY: "time_entries",
    EntityType.USER: "users",
    EntityType.CUSTOMER: "customers",
    EntityType.PROJECT: "projects",
    EntityType.DIVISION: "divisions",
    EntityType.TASK_TYPE: "task_types",
    EntityType.PROJECT_TASK: "project_tasks",
}


@runtime_checkable
class RemoteStoreGateway(Protocol):
    """Bulk reads and single-record writes against the backing store.

    ``fetch_entries`` raises ``FetchFailure`` and ``mutate`` raises
    ``MutationFailure``; timeouts are enforced here, never by the engine.
    """

    async def fetch_entries(
        self,
        entity_type: EntityType,
        filter_hints: Mapping[str, Any] | None = None,
    ) -> list[Record]: ...

    async def mutate(
        self,
        entity_type: EntityType,
        operation: MutationOperation,
        payload: Mapping[str, Any],
    ) -> str: ...
