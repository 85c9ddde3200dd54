from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from worklog.core.config import Settings
from worklog.core.errors import ValidationFailure
from worklog.engine.types import EntityType, MutationOperation
from worklog.gateway.schemas import parse_records, validate_mutation

TODAY = date(2024, 3, 20)

ENTRY = {
    "date": "2024-03-18",
    "effort": "7.5",
    "user_id": "u-1",
    "project_id": "p-a",
    "task_type_id": "tt-dev",
    "division_id": "d-eng",
}


def _create_entry(settings: Settings, **overrides) -> dict:
    return validate_mutation(
        EntityType.TIME_ENTRY,
        MutationOperation.CREATE,
        {**ENTRY, **overrides},
        settings=settings,
        today=TODAY,
    )


def test_create_returns_full_normalized_payload(settings: Settings) -> None:
    values = _create_entry(settings, id="client-side-id")

    assert "id" not in values
    assert values["date"] == date(2024, 3, 18)
    assert values["effort"] == Decimal("7.5")
    assert values["is_billable"] is True
    assert values["task_id"] is None


@pytest.mark.parametrize("effort", ["0", "-1", "24.01"])
def test_effort_outside_daily_bounds_is_rejected(settings: Settings, effort: str) -> None:
    with pytest.raises(ValidationFailure) as excinfo:
        _create_entry(settings, effort=effort)

    assert excinfo.value.errors[0]["loc"] == ["effort"]


def test_effort_at_daily_maximum_is_accepted(settings: Settings) -> None:
    assert _create_entry(settings, effort="24")["effort"] == Decimal("24")


def test_retroactive_limit_applies_only_when_configured(settings: Settings) -> None:
    assert _create_entry(settings, date="2023-01-01")["date"] == date(2023, 1, 1)

    limited = settings.model_copy(update={"retroactive_entry_limit_days": 7})
    assert _create_entry(limited, date="2024-03-13")["date"] == date(2024, 3, 13)
    with pytest.raises(ValidationFailure, match="7 days"):
        _create_entry(limited, date="2024-03-12")


def test_missing_required_fields_are_reported(settings: Settings) -> None:
    payload = {key: value for key, value in ENTRY.items() if key != "project_id"}

    with pytest.raises(ValidationFailure) as excinfo:
        validate_mutation(EntityType.TIME_ENTRY, MutationOperation.CREATE, payload, settings=settings, today=TODAY)

    assert ["project_id"] in [error["loc"] for error in excinfo.value.errors]


def test_update_keeps_only_supplied_fields(settings: Settings) -> None:
    values = validate_mutation(
        EntityType.TIME_ENTRY,
        MutationOperation.UPDATE,
        {"id": "e-1", "effort": "4", "is_billable": False},
        settings=settings,
        today=TODAY,
    )

    assert values == {"id": "e-1", "effort": Decimal("4"), "is_billable": False}


def test_update_requires_id_and_changes(settings: Settings) -> None:
    with pytest.raises(ValidationFailure) as excinfo:
        validate_mutation(EntityType.CUSTOMER, MutationOperation.UPDATE, {"name": "Acme"}, settings=settings)
    assert excinfo.value.errors[0]["loc"] == ["id"]

    with pytest.raises(ValidationFailure, match="no fields"):
        validate_mutation(EntityType.CUSTOMER, MutationOperation.UPDATE, {"id": "c-1"}, settings=settings)


def test_delete_only_needs_id(settings: Settings) -> None:
    values = validate_mutation(
        EntityType.PROJECT,
        MutationOperation.DELETE,
        {"id": "p-a", "name": "ignored"},
        settings=settings,
    )

    assert values == {"id": "p-a"}


def test_reference_payload_literals_are_enforced(settings: Settings) -> None:
    with pytest.raises(ValidationFailure):
        validate_mutation(
            EntityType.USER,
            MutationOperation.CREATE,
            {"name": "Ana", "email": "ana@example.com", "role": "Owner"},
            settings=settings,
        )


def test_parse_records_drops_malformed_rows_and_tolerates_bad_dates() -> None:
    rows = [
        {**ENTRY, "id": "e-1"},
        {**ENTRY, "id": "e-2", "date": "not a date"},
        {**ENTRY, "id": "e-3", "effort": "-2"},
        {"id": "e-4"},
    ]

    records = parse_records(EntityType.TIME_ENTRY, rows)

    assert [(record.id, record.date) for record in records] == [("e-1", date(2024, 3, 18)), ("e-2", None)]
