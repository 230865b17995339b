from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from shopfloor.app.allocations.models import (
    AllocationFilters,
    AllocationPage,
    AllocationPatch,
    AllocationRecord,
    HourlyUpdate,
    WorkerChangeRequest,
)
from shopfloor.app.allocations.service import (
    DEFAULT_PAGE_SIZE,
    AllocationNotFound,
    AllocationService,
    AllocationValidationError,
)
from shopfloor.app.api.deps import get_service


router = APIRouter()


def allocation_filters(
    id: Optional[int] = Query(None),
    name: Optional[str] = Query(None),
    line_number: Optional[str] = Query(None),
    machine_number: Optional[str] = Query(None),
    product_id: Optional[str] = Query(None),
    shift: Optional[str] = Query(None),
    datetime: Optional[str] = Query(None, description="ISO datetime; matched to the minute"),
    downtime_reason: Optional[str] = Query(None),
    efficiency: Optional[Literal["high", "medium", "low"]] = Query(None),
    search: Optional[str] = Query(None),
) -> AllocationFilters:
    return AllocationFilters(
        id=id,
        name=name,
        line_number=line_number,
        machine_number=machine_number,
        product_id=product_id,
        shift=shift,
        datetime=datetime,
        downtime_reason=downtime_reason,
        efficiency=efficiency,
        search=search,
    )


@router.get("/allocation-report", response_model=AllocationPage)
def list_allocations(
    filters: AllocationFilters = Depends(allocation_filters),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=200),
    service: AllocationService = Depends(get_service),
) -> AllocationPage:
    return service.list_allocations(filters, page=page, page_size=page_size)


@router.get("/allocation-report/{allocation_id}", response_model=AllocationRecord)
def get_allocation(
    allocation_id: int = Path(...),
    service: AllocationService = Depends(get_service),
) -> AllocationRecord:
    try:
        return service.get_allocation(allocation_id)
    except AllocationNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.put("/allocation-report/{allocation_id}", response_model=AllocationRecord)
def update_allocation(
    patch: AllocationPatch,
    allocation_id: int = Path(...),
    service: AllocationService = Depends(get_service),
) -> AllocationRecord:
    try:
        return service.update_allocation(allocation_id, patch)
    except AllocationNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except AllocationValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors) from exc


@router.post("/allocation-report/{allocation_id}/hourly-update", response_model=AllocationRecord)
def add_hourly_update(
    update: HourlyUpdate,
    allocation_id: int = Path(...),
    service: AllocationService = Depends(get_service),
) -> AllocationRecord:
    try:
        return service.add_hourly_update(allocation_id, update)
    except AllocationNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/allocation-report/{allocation_id}/worker-change", response_model=AllocationRecord)
def add_worker_change(
    change: WorkerChangeRequest,
    allocation_id: int = Path(...),
    service: AllocationService = Depends(get_service),
) -> AllocationRecord:
    try:
        return service.add_worker_change(allocation_id, change)
    except AllocationNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except AllocationValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors) from exc


@router.get("/worker-options", response_model=list[str])
def worker_options(service: AllocationService = Depends(get_service)) -> list[str]:
    return service.worker_options()
