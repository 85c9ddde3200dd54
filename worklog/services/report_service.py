"""View serialization and export for the HTTP layer."""

from __future__ import annotations

import csv
import dataclasses
import io
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from io import BytesIO

from worklog.core.errors import FetchFailure, ValidationFailure
from worklog.engine.reporting import ReportingEngine, RollupView
from worklog.engine.types import (
    EntityType,
    EntryListing,
    FilterCriteria,
    PeriodComparison,
    Record,
    RollupBucket,
    RollupName,
    RollupResult,
    TeamSummary,
    TrendSeries,
    View,
    ViewStatus,
)

EXPORT_FORMATS = {"csv", "xlsx"}


@dataclass(slots=True)
class ExportFilePayload:
    media_type: str
    filename: str
    content: bytes


def _plain(value: object) -> object:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


class ReportService:
    """Turns engine views into JSON payloads and downloadable files."""

    def __init__(self, engine: ReportingEngine) -> None:
        self.engine = engine

    # ---------- Serialization ----------
    @staticmethod
    def serialize_record(record: Record) -> dict[str, object]:
        return {field.name: _plain(getattr(record, field.name)) for field in dataclasses.fields(record)}

    @staticmethod
    def serialize_bucket(bucket: RollupBucket) -> dict[str, object]:
        return {
            "key": bucket.key,
            "label": bucket.label,
            "total_hours": str(bucket.total_hours),
            "entry_count": bucket.entry_count,
            "billable_hours": str(bucket.billable_hours),
            "average_hours": str(bucket.average_hours),
        }

    @classmethod
    def serialize_rollup(cls, result: RollupResult) -> dict[str, object]:
        return {
            "name": result.name,
            "buckets": [cls.serialize_bucket(bucket) for bucket in result.buckets],
            "total_hours": str(result.total_hours),
            "entry_count": result.entry_count,
            "billable_hours": str(result.billable_hours),
            "non_billable_hours": str(result.non_billable_hours),
            "average_per_entry": str(result.average_per_entry),
            "billable_efficiency": str(result.billable_efficiency),
        }

    @classmethod
    def serialize_view(cls, view: View) -> dict[str, object]:
        if isinstance(view, RollupResult):
            return cls.serialize_rollup(view)
        if isinstance(view, EntryListing):
            return {
                "rows": [
                    cls.serialize_record(row.entry)
                    | {
                        "user_name": row.user_name,
                        "project_label": row.project_label,
                        "task_type_name": row.task_type_name,
                        "division_name": row.division_name,
                    }
                    for row in view.rows
                ],
                "total_hours": str(view.total_hours),
                "billable_count": view.billable_count,
                "non_billable_count": view.non_billable_count,
            }
        if isinstance(view, PeriodComparison):
            return {
                "current_start": view.current_start.isoformat(),
                "current_end": view.current_end.isoformat(),
                "previous_start": view.previous_start.isoformat(),
                "previous_end": view.previous_end.isoformat(),
                "current": cls.serialize_rollup(view.current),
                "previous": cls.serialize_rollup(view.previous),
                "growth_percent": str(view.growth_percent),
            }
        if isinstance(view, TrendSeries):
            return {
                "points": [
                    {key: _plain(value) for key, value in dataclasses.asdict(point).items()} for point in view.points
                ],
                "total_hours": str(view.total_hours),
            }
        if isinstance(view, TeamSummary):
            return {
                "members": [
                    {key: _plain(value) for key, value in dataclasses.asdict(member).items()}
                    for member in view.members
                ],
                "total_hours": str(view.total_hours),
                "billable_hours": str(view.billable_hours),
                "average_efficiency": str(view.average_efficiency),
            }
        raise TypeError(f"Unsupported view type: {type(view).__name__}")

    @classmethod
    def serialize_rollup_view(cls, rollup_view: RollupView) -> dict[str, object]:
        return {
            "name": rollup_view.name.value,
            "signature": rollup_view.signature,
            "status": rollup_view.status.value,
            "error": rollup_view.error,
            "data": cls.serialize_view(rollup_view.value) if rollup_view.value is not None else None,
        }

    # ---------- Views ----------
    async def rollup(self, name: RollupName, criteria: FilterCriteria) -> dict[str, object]:
        return self.serialize_rollup_view(await self.engine.load_rollup(name, criteria))

    async def records(self, entity_type: EntityType) -> list[dict[str, object]]:
        return [self.serialize_record(record) for record in await self.engine.collection(entity_type)]

    async def record(self, entity_type: EntityType, entity_id: str) -> dict[str, object] | None:
        for record in await self.engine.collection(entity_type):
            if record.id == entity_id:
                return self.serialize_record(record)
        return None

    # ---------- Exports ----------
    @staticmethod
    def _flatten_view_rows(view: View) -> list[dict[str, str]]:
        def text(values: dict[str, object]) -> dict[str, str]:
            return {key: str(_plain(value)) for key, value in values.items() if value is not None}

        if isinstance(view, RollupResult):
            return [text(ReportService.serialize_bucket(bucket)) for bucket in view.buckets]
        if isinstance(view, PeriodComparison):
            rows = []
            for period, result, start, end in (
                ("current", view.current, view.current_start, view.current_end),
                ("previous", view.previous, view.previous_start, view.previous_end),
            ):
                for bucket in result.buckets:
                    rows.append(
                        text({"period": period, "period_start": start, "period_end": end})
                        | text(ReportService.serialize_bucket(bucket))
                    )
            return rows
        if isinstance(view, EntryListing):
            return [text(row) for row in ReportService.serialize_view(view)["rows"]]
        if isinstance(view, TrendSeries):
            return [text(dataclasses.asdict(point)) for point in view.points]
        if isinstance(view, TeamSummary):
            return [text(dataclasses.asdict(member)) for member in view.members]
        return []

    async def export_view(self, name: RollupName, criteria: FilterCriteria, format_name: str) -> ExportFilePayload:
        normalized_format = format_name.strip().lower()
        if normalized_format not in EXPORT_FORMATS:
            raise ValidationFailure("format must be one of: csv, xlsx.")

        rollup_view = await self.engine.load_rollup(name, criteria)
        if rollup_view.status is not ViewStatus.READY or rollup_view.value is None:
            raise FetchFailure(rollup_view.name.value, rollup_view.error or "View is not available.")
        flattened = self._flatten_view_rows(rollup_view.value)

        fieldnames_set: set[str] = set()
        for row in flattened:
            fieldnames_set.update(row.keys())
        fieldnames = sorted(fieldnames_set)

        base_filename = f"{rollup_view.name.value}-{criteria.start_date.isoformat()}-{criteria.end_date.isoformat()}"
        if normalized_format == "csv":
            csv_bytes = b""
            if fieldnames:
                sio = io.StringIO()
                writer = csv.DictWriter(sio, fieldnames=fieldnames)
                writer.writeheader()
                writer.writerows(flattened)
                csv_bytes = sio.getvalue().encode("utf-8")
            return ExportFilePayload(
                media_type="text/csv; charset=utf-8",
                filename=f"{base_filename}.csv",
                content=csv_bytes,
            )

        from openpyxl import Workbook

        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "report"
        if fieldnames:
            sheet.append(fieldnames)
            for row in flattened:
                sheet.append([row.get(column, "") for column in fieldnames])

        output = BytesIO()
        workbook.save(output)
        return ExportFilePayload(
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            filename=f"{base_filename}.xlsx",
            content=output.getvalue(),
        )
