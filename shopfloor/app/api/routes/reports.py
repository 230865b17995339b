from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from shopfloor.app.allocations.models import AllocationFilters, GroupBy
from shopfloor.app.allocations.service import AllocationService, ReportPeriod
from shopfloor.app.api.deps import get_service
from shopfloor.app.api.routes.allocations import allocation_filters


router = APIRouter()


@router.get("/efficiency")
def efficiency_report(
    filters: AllocationFilters = Depends(allocation_filters),
    day: Optional[date] = Query(None, description="Restrict to records of one UTC day"),
    start: Optional[date] = Query(None, description="First UTC day, inclusive"),
    end: Optional[date] = Query(None, description="Last UTC day, inclusive"),
    group_by: Optional[GroupBy] = Query(None),
    service: AllocationService = Depends(get_service),
) -> Dict[str, Any]:
    """Summary over the filtered allocations, optionally per shift/line/machine/product.

    Scores are recomputed from the shift quantities, not read from the stored column.
    """
    if start is not None and end is not None and start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")
    filters = filters.model_copy(update={"day": day, "start": start, "end": end})
    body: Dict[str, Any] = {"summary": service.efficiency_summary(filters).as_dict()}
    if group_by is not None:
        groups = service.efficiency_breakdown(filters, group_by)
        body["group_by"] = group_by
        body["groups"] = {key: summary.as_dict() for key, summary in groups.items()}
    return body


@router.get("/summary")
def period_summary(
    kind: ReportPeriod = Query(..., alias="type", description="monthly | yearly"),
    date_label: str = Query(..., alias="date", description="2025-04 for monthly, 2025 for yearly"),
    filters: AllocationFilters = Depends(allocation_filters),
    service: AllocationService = Depends(get_service),
) -> Dict[str, Any]:
    try:
        report = service.period_report(kind, date_label, filters)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return report.as_dict()


@router.get("/efficiency/history")
def efficiency_history(
    scope: str = Query("line_number"),
    days: int = Query(30, ge=1, le=366),
    end: Optional[date] = None,
    service: AllocationService = Depends(get_service),
) -> list[Dict[str, Any]]:
    if scope not in ("line_number", "shift", "all"):
        raise HTTPException(status_code=400, detail="scope must be one of: line_number, shift, all")
    # History rows are keyed by UTC day
    end = end or datetime.now(timezone.utc).date()
    start = end - timedelta(days=days - 1)
    return service.efficiency_history(scope, start, end)
