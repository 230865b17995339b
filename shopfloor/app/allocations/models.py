from __future__ import annotations

import datetime as dt
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field


DowntimeReason = Literal["Machine", "Men", "Material", "Manufacturing"]
DOWNTIME_REASONS: tuple[str, ...] = ("Machine", "Men", "Material", "Manufacturing")

GroupBy = Literal["shift", "line_number", "machine_number", "product_id"]


class HourlyUpdate(BaseModel):
    time: str = Field(..., min_length=1, description="Hour label, e.g. '1 PM'")
    products_made: int = Field(..., ge=0)
    rework_count: int = Field(..., ge=0)
    downtime_minutes: float = Field(..., ge=0)
    downtime_reason: DowntimeReason


class WorkerChangeRequest(BaseModel):
    replacement: str = Field(..., min_length=1)
    hours_original: float = Field(..., gt=0)
    hours_replacement: float = Field(..., gt=0)
    reason: str = Field(..., min_length=1)


class WorkerChange(BaseModel):
    original: str
    replacement: str
    hours_original: float
    hours_replacement: float
    reason: str
    timestamp: Optional[dt.datetime] = None


class Attendance(BaseModel):
    time_in: Optional[dt.datetime] = None
    time_out: Optional[dt.datetime] = None


class AllocationRecord(BaseModel):
    id: int
    name: str
    line_number: Optional[str] = None
    machine_number: Optional[str] = None
    product_id: Optional[str] = None
    shift: Optional[str] = None
    datetime: Optional[dt.datetime] = None
    start_time: Optional[dt.datetime] = None
    total_hours_worked: float
    products_made: int
    rework_count: int
    downtime_minutes: float
    downtime_reason: Optional[Union[DowntimeReason, Literal[""]]] = ""
    machine_issue: str = ""
    men_issue: str = ""
    material_issue: str = ""
    manufacturing_issue: str = ""
    hourly_updates: List[HourlyUpdate] = Field(default_factory=list)
    worker_changes: List[WorkerChange] = Field(default_factory=list)
    attendance: Optional[Attendance] = None
    efficiency_impact: Optional[int] = None
    over_ceiling: bool = False


class AllocationPatch(BaseModel):
    """Body of PUT /allocation-report/{id}.

    Quantities arrive as form strings or numbers and are coerced by the
    scoring validator. ``efficiency_impact`` is accepted for compatibility and
    ignored; the score is always recomputed.
    """

    name: Optional[str] = None
    line_number: Optional[str] = None
    machine_number: Optional[str] = None
    product_id: Optional[str] = None
    shift: Optional[str] = None
    total_hours_worked: Optional[Union[float, str]] = None
    products_made: Optional[Union[int, float, str]] = None
    rework_count: Optional[Union[int, float, str]] = None
    downtime_minutes: Optional[Union[float, str]] = None
    downtime_reason: Optional[Union[DowntimeReason, Literal[""]]] = None
    machine_issue: Optional[str] = None
    men_issue: Optional[str] = None
    material_issue: Optional[str] = None
    manufacturing_issue: Optional[str] = None
    efficiency_impact: Optional[float] = None


class AllocationFilters(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None
    line_number: Optional[str] = None
    machine_number: Optional[str] = None
    product_id: Optional[str] = None
    shift: Optional[str] = None
    datetime: Optional[str] = Field(None, description="ISO datetime, matched to the minute")
    day: Optional[dt.date] = None
    start: Optional[dt.date] = Field(None, description="First UTC day, inclusive")
    end: Optional[dt.date] = Field(None, description="Last UTC day, inclusive")
    downtime_reason: Optional[str] = None
    efficiency: Optional[Literal["high", "medium", "low"]] = None
    search: Optional[str] = None


class AllocationPage(BaseModel):
    items: List[AllocationRecord]
    page: int
    page_size: int
    total: int
    total_pages: int


class ImportOutcome(BaseModel):
    imported: int = 0
    skipped: int = 0
    errors: dict[str, dict[str, dict[str, str]]] = Field(default_factory=dict)
