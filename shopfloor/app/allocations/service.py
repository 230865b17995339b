from __future__ import annotations

import calendar
import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Tuple

from pydantic import ValidationError

from shopfloor.app.allocations.models import (
    AllocationFilters,
    AllocationPage,
    AllocationPatch,
    AllocationRecord,
    GroupBy,
    HourlyUpdate,
    ImportOutcome,
    WorkerChange,
    WorkerChangeRequest,
)
from shopfloor.app.allocations.repository import AllocationStore
from shopfloor.app.efficiency import (
    AggregateSummary,
    CeilingPolicy,
    EfficiencyScore,
    ScoringParameters,
    reduce_scores,
    score,
    summarize_by,
    validate_record,
)


DEFAULT_PAGE_SIZE = 5
QUANTITY_FIELDS = ("total_hours_worked", "products_made", "rework_count", "downtime_minutes")
SNAPSHOT_SCOPES = ("line_number", "shift")

ReportPeriod = Literal["monthly", "yearly"]

# Period label format per report type, as the month/year picker sends it
_PERIOD_PATTERNS = {"monthly": re.compile(r"^(\d{4})-(\d{2})$"), "yearly": re.compile(r"^(\d{4})$")}
# Trend buckets: days within a month, months within a year
_TREND_FORMATS = {"monthly": "%Y-%m-%d", "yearly": "%Y-%m"}


class AllocationNotFound(LookupError):
    def __init__(self, allocation_id: int) -> None:
        super().__init__(f"Allocation {allocation_id} not found")
        self.allocation_id = allocation_id


class AllocationValidationError(ValueError):
    """Carries field-keyed errors: {field: {"code": ..., "message": ...}}."""

    def __init__(self, errors: Dict[str, Dict[str, str]]) -> None:
        super().__init__("Invalid allocation input: " + ", ".join(sorted(errors)))
        self.errors = errors


def period_bounds(kind: ReportPeriod, label: str) -> Tuple[date, date]:
    """First and last day of a report period: ``("monthly", "2025-04")`` or ``("yearly", "2025")``."""
    pattern = _PERIOD_PATTERNS.get(kind)
    if pattern is None:
        raise ValueError(f"Unknown report type: {kind!r}")
    match = pattern.match(label)
    if match is None:
        raise ValueError(f"{kind} reports take a date like {'2025-04' if kind == 'monthly' else '2025'}, got {label!r}")
    year = int(match.group(1))
    if kind == "yearly":
        return date(year, 1, 1), date(year, 12, 31)
    month = int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Month out of range: {label!r}")
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def _utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)


@dataclass(frozen=True)
class PeriodReport:
    kind: ReportPeriod
    label: str
    start: date
    end: date
    summary: AggregateSummary
    by_shift: Dict[str, AggregateSummary]
    trend: Dict[str, AggregateSummary]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "date": self.label,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "summary": self.summary.as_dict(),
            "by_shift": {key: s.as_dict() for key, s in self.by_shift.items()},
            "trend": {key: s.as_dict() for key, s in self.trend.items()},
        }


class AllocationService:
    """Allocation-report operations. Every score goes through the efficiency module."""

    def __init__(
        self,
        store: AllocationStore,
        params: Optional[ScoringParameters] = None,
        *,
        ceiling: CeilingPolicy = CeilingPolicy.none,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.params = params or ScoringParameters()
        self.ceiling = ceiling
        self.logger = logger or logging.getLogger(__name__)

    # ---------- scoring ----------

    def score_quantities(self, quantities: Mapping[str, Any], worker_id: Any = "") -> EfficiencyScore:
        result = validate_record({**quantities, "worker_id": worker_id}, self.params)
        if not result.ok:
            raise AllocationValidationError(result.error_details())
        return score(result.record, self.params, ceiling=self.ceiling)

    def score_record(self, record: AllocationRecord) -> EfficiencyScore:
        return self.score_quantities(
            {f: getattr(record, f) for f in QUANTITY_FIELDS},
            worker_id=record.id,
        )

    # ---------- queries ----------

    def list_allocations(
        self,
        filters: AllocationFilters,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> AllocationPage:
        page = max(1, page)
        items, total = self.store.list(filters, offset=(page - 1) * page_size, limit=page_size)
        return AllocationPage(
            items=items,
            page=page,
            page_size=page_size,
            total=total,
            total_pages=math.ceil(total / page_size) if page_size else 0,
        )

    def get_allocation(self, allocation_id: int) -> AllocationRecord:
        record = self.store.get(allocation_id)
        if record is None:
            raise AllocationNotFound(allocation_id)
        return record

    def worker_options(self) -> List[str]:
        return self.store.worker_names()

    # ---------- commands ----------

    def update_allocation(self, allocation_id: int, patch: AllocationPatch) -> AllocationRecord:
        current = self.get_allocation(allocation_id)
        changes = patch.model_dump(exclude_unset=True, exclude={"efficiency_impact"})
        changes = {k: v for k, v in changes.items() if v is not None}

        quantities = {f: changes.get(f, getattr(current, f)) for f in QUANTITY_FIELDS}
        result = validate_record({**quantities, "worker_id": allocation_id}, self.params)
        if not result.ok:
            raise AllocationValidationError(result.error_details())
        record = result.record
        s = score(record, self.params, ceiling=self.ceiling)

        fields: Dict[str, Any] = {k: v for k, v in changes.items() if k not in QUANTITY_FIELDS}
        fields.update(
            total_hours_worked=record.total_hours_worked,
            products_made=record.products_made,
            rework_count=record.rework_count,
            downtime_minutes=record.downtime_minutes,
            efficiency_impact=s.value,
            over_ceiling=s.over_ceiling,
        )
        updated = self.store.update_fields(allocation_id, fields)
        if updated is None:
            raise AllocationNotFound(allocation_id)
        return updated

    def add_hourly_update(self, allocation_id: int, update: HourlyUpdate) -> AllocationRecord:
        # Hourly entries are a log; shift totals and the score stay as they are
        updated = self.store.append_hourly_update(allocation_id, update)
        if updated is None:
            raise AllocationNotFound(allocation_id)
        return updated

    def add_worker_change(self, allocation_id: int, request: WorkerChangeRequest) -> AllocationRecord:
        current = self.get_allocation(allocation_id)
        quantities = {f: getattr(current, f) for f in QUANTITY_FIELDS}
        quantities["total_hours_worked"] = request.hours_replacement
        s = self.score_quantities(quantities, worker_id=allocation_id)

        change = WorkerChange(
            original=current.name,
            replacement=request.replacement,
            hours_original=request.hours_original,
            hours_replacement=request.hours_replacement,
            reason=request.reason,
            timestamp=datetime.now(timezone.utc),
        )
        updated = self.store.append_worker_change(
            allocation_id,
            change,
            {
                "name": request.replacement,
                "total_hours_worked": request.hours_replacement,
                "efficiency_impact": s.value,
                "over_ceiling": s.over_ceiling,
            },
        )
        if updated is None:
            raise AllocationNotFound(allocation_id)
        return updated

    def import_records(self, rows: Iterable[Mapping[str, Any]]) -> ImportOutcome:
        """Upsert upstream allocation rows, recomputing each score.

        Rows that fail validation are skipped and reported by id.
        """
        outcome = ImportOutcome()
        for i, row in enumerate(rows):
            key = str(row.get("id", f"#{i}"))
            try:
                record = AllocationRecord.model_validate({**row, "efficiency_impact": None})
                s = self.score_record(record)
            except ValidationError as exc:
                outcome.skipped += 1
                outcome.errors[key] = {
                    ".".join(str(p) for p in err["loc"]): {"code": err["type"], "message": err["msg"]}
                    for err in exc.errors()
                }
                self.logger.warning("Skipping allocation %s: %s", key, exc.error_count())
                continue
            except AllocationValidationError as exc:
                outcome.skipped += 1
                outcome.errors[key] = exc.errors
                self.logger.warning("Skipping allocation %s: %s", key, exc)
                continue
            self.store.upsert(record.model_copy(update={"efficiency_impact": s.value, "over_ceiling": s.over_ceiling}))
            outcome.imported += 1
        return outcome

    # ---------- reporting ----------

    def _scored(self, records: Iterable[AllocationRecord]) -> Iterable[tuple[AllocationRecord, EfficiencyScore]]:
        for record in records:
            try:
                yield record, self.score_record(record)
            except AllocationValidationError as exc:
                # e.g. a zero-hour row; it has no score and is left out of aggregates
                self.logger.warning("Allocation %s not scored: %s", record.id, exc)

    def efficiency_summary(self, filters: AllocationFilters) -> AggregateSummary:
        records = self.store.list_all(filters)
        return reduce_scores((record.id, s) for record, s in self._scored(records))

    def efficiency_breakdown(self, filters: AllocationFilters, group_by: GroupBy) -> Dict[str, AggregateSummary]:
        records = self.store.list_all(filters)
        return summarize_by(
            (getattr(record, group_by) or "", record.id, s) for record, s in self._scored(records)
        )

    def period_report(
        self,
        kind: ReportPeriod,
        label: str,
        filters: Optional[AllocationFilters] = None,
    ) -> PeriodReport:
        """Monthly or yearly view: overall summary, per-shift summaries and a trend.

        The trend is bucketed per UTC day for a month and per month for a year,
        in chronological order. Raises ValueError for a malformed ``label``.
        """
        start, end = period_bounds(kind, label)
        filters = (filters or AllocationFilters()).model_copy(update={"start": start, "end": end})
        scored = list(self._scored(self.store.list_all(filters)))
        bucket = _TREND_FORMATS[kind]
        dated = sorted(
            ((_utc(record.datetime).strftime(bucket), record.id, s) for record, s in scored if record.datetime),
            key=lambda item: item[0],
        )
        return PeriodReport(
            kind=kind,
            label=label,
            start=start,
            end=end,
            summary=reduce_scores((record.id, s) for record, s in scored),
            by_shift=summarize_by((record.shift or "", record.id, s) for record, s in scored),
            trend=summarize_by(dated),
        )

    def snapshot_day(self, day: date, scopes: Iterable[str] = SNAPSHOT_SCOPES) -> int:
        """Store the day's summaries overall and per scope; returns rows written."""
        filters = AllocationFilters(day=day)
        records = list(self._scored(self.store.list_all(filters)))
        written = 0
        overall = reduce_scores((record.id, s) for record, s in records)
        if not overall.empty:
            self.store.write_efficiency_history("all", "all", day, overall)
            written += 1
        for scope in scopes:
            groups = summarize_by((getattr(record, scope) or "", record.id, s) for record, s in records)
            for key, summary in groups.items():
                self.store.write_efficiency_history(scope, key, day, summary)
                written += 1
        return written

    def efficiency_history(self, scope: str, start: date, end: date) -> List[Dict[str, Any]]:
        return self.store.efficiency_history(scope, start, end)
