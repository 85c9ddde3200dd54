"""Remote store reached through a Hasura-style GraphQL endpoint."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import date
from decimal import Decimal
from typing import Any

import httpx

from worklog.core.errors import FetchFailure, MutationFailure, WorklogError
from worklog.engine.types import EntityType, MutationOperation, Record
from worklog.gateway.base import COLLECTION_NAMES
from worklog.gateway.schemas import RECORD_SCHEMAS, parse_records

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        # hours travel as JSON numbers
        return float(value)
    return value


def collection_query(entity_type: EntityType) -> str:
    collection = COLLECTION_NAMES[entity_type]
    fields = "\n      ".join(RECORD_SCHEMAS[entity_type].model_fields)
    return (
        f"query Fetch_{collection}($where: {collection}_bool_exp!) {{\n"
        f"  {collection}(where: $where) {{\n      {fields}\n  }}\n}}"
    )


def mutation_document(entity_type: EntityType, operation: MutationOperation) -> tuple[str, str]:
    """Return ``(root field, document)`` for a single-record mutation."""

    collection = COLLECTION_NAMES[entity_type]
    if operation is MutationOperation.CREATE:
        field = f"insert_{collection}_one"
        document = (
            f"mutation Insert_{collection}($object: {collection}_insert_input!) {{\n"
            f"  {field}(object: $object) {{ id }}\n}}"
        )
    elif operation is MutationOperation.UPDATE:
        field = f"update_{collection}_by_pk"
        document = (
            f"mutation Update_{collection}($id: uuid!, $set: {collection}_set_input!) {{\n"
            f"  {field}(pk_columns: {{id: $id}}, _set: $set) {{ id }}\n}}"
        )
    else:
        field = f"delete_{collection}_by_pk"
        document = f"mutation Delete_{collection}($id: uuid!) {{\n  {field}(id: $id) {{ id }}\n}}"
    return field, document


class GraphQLStoreGateway:
    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        admin_secret: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.client = client
        self.url = url
        self.admin_secret = admin_secret
        self.timeout = timeout

    async def _execute(
        self,
        document: str,
        variables: dict[str, Any],
        *,
        failure: Callable[[str], WorklogError],
    ) -> dict[str, Any]:
        headers = {"x-hasura-admin-secret": self.admin_secret} if self.admin_secret else {}
        try:
            response = await self.client.post(
                self.url,
                json={"query": document, "variables": variables},
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as exc:
            raise failure("Remote store timed out.") from exc
        except httpx.HTTPStatusError as exc:
            raise failure(f"Remote store responded with HTTP {exc.response.status_code}.") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise failure(f"Remote store request failed: {exc}") from exc

        if not isinstance(body, dict):
            raise failure("Remote store returned a malformed response.")
        errors = body.get("errors")
        if errors:
            messages = [str(error.get("message", error)) if isinstance(error, dict) else str(error) for error in errors]
            raise failure("; ".join(messages))
        data = body.get("data")
        if not isinstance(data, dict):
            raise failure("Remote store response has no data.")
        return data

    async def fetch_entries(
        self,
        entity_type: EntityType,
        filter_hints: Mapping[str, Any] | None = None,
    ) -> list[Record]:
        entity_type = EntityType(entity_type)
        hints = dict(filter_hints or {})
        where: dict[str, Any] = {}
        if entity_type is EntityType.TIME_ENTRY:
            bounds = {}
            if hints.get("start_date") is not None:
                bounds["_gte"] = _jsonable(hints["start_date"])
            if hints.get("end_date") is not None:
                bounds["_lte"] = _jsonable(hints["end_date"])
            if bounds:
                where["date"] = bounds

        def failure(message: str) -> FetchFailure:
            logger.warning("Fetching %s failed: %s", entity_type.value, message)
            return FetchFailure(entity_type.value, message)

        data = await self._execute(collection_query(entity_type), {"where": where}, failure=failure)
        rows = data.get(COLLECTION_NAMES[entity_type])
        if not isinstance(rows, list):
            raise failure(f"Response is missing the {COLLECTION_NAMES[entity_type]} collection.")
        return parse_records(entity_type, rows)

    async def mutate(
        self,
        entity_type: EntityType,
        operation: MutationOperation,
        payload: Mapping[str, Any],
    ) -> str:
        entity_type = EntityType(entity_type)
        operation = MutationOperation(operation)
        values = {key: _jsonable(value) for key, value in payload.items()}
        field, document = mutation_document(entity_type, operation)
        if operation is MutationOperation.CREATE:
            values.pop("id", None)
            variables: dict[str, Any] = {"object": values}
        elif operation is MutationOperation.UPDATE:
            variables = {"id": values.pop("id", None), "set": values}
        else:
            variables = {"id": values.get("id")}

        def failure(message: str) -> MutationFailure:
            logger.warning("Store rejected %s %s: %s", operation.value, entity_type.value, message)
            return MutationFailure(entity_type.value, operation.value, message)

        data = await self._execute(document, variables, failure=failure)
        result = data.get(field)
        if not isinstance(result, dict) or not result.get("id"):
            raise failure(f"{entity_type.value} record not found.")
        return str(result["id"])
