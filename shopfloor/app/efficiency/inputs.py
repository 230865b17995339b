from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


WorkerId = Union[str, int]


class ScoringParameters(BaseModel):
    """Tunable constants of the efficiency formula."""

    model_config = ConfigDict(frozen=True)

    target_rate_per_hour: float = Field(20.0, gt=0, description="Expected units per hour")
    rework_penalty_per_unit: float = Field(2.0, ge=0, description="Points deducted per reworked unit")
    downtime_cost_per_minute: float = Field(0.5, ge=0, description="Points deducted per downtime minute")


@dataclass(frozen=True)
class WorkerShiftRecord:
    worker_id: WorkerId
    total_hours_worked: float
    products_made: int
    rework_count: int
    downtime_minutes: float


# ---------- Structured validation failures ----------

@dataclass(frozen=True)
class InvalidDivisor:
    field: str = "total_hours_worked"
    code: str = "invalid_divisor"

    @property
    def message(self) -> str:
        return "Total hours worked must be greater than zero."


@dataclass(frozen=True)
class NegativeQuantity:
    field: str
    code: str = "negative_quantity"

    @property
    def message(self) -> str:
        return f"{self.field} cannot be negative."


@dataclass(frozen=True)
class TypeMismatch:
    field: str
    code: str = "type_mismatch"

    @property
    def message(self) -> str:
        return f"{self.field} must be a number."


ScoreInputError = Union[InvalidDivisor, NegativeQuantity, TypeMismatch]


@dataclass(frozen=True)
class ScoreInputsResult:
    record: Optional[WorkerShiftRecord] = None
    errors: Dict[str, ScoreInputError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.record is not None and not self.errors

    def error_details(self) -> Dict[str, Dict[str, str]]:
        """Field-keyed messages suitable for a JSON error body."""
        return {name: {"code": err.code, "message": err.message} for name, err in self.errors.items()}


# Accepted spellings per canonical field; first match wins
FIELD_ALIASES: Dict[str, tuple[str, ...]] = {
    "worker_id": ("worker_id", "workerId", "id"),
    "total_hours_worked": ("total_hours_worked", "totalHoursWorked"),
    "products_made": ("products_made", "productsMade"),
    "rework_count": ("rework_count", "reworkCount"),
    "downtime_minutes": ("downtime_minutes", "downtimeMinutes"),
}

INTEGER_FIELDS = ("products_made", "rework_count")
REAL_FIELDS = ("total_hours_worked", "downtime_minutes")


def _lookup(raw: Mapping[str, Any], name: str) -> Any:
    for alias in FIELD_ALIASES[name]:
        if alias in raw:
            return raw[alias]
    return None


def _to_number(value: Any) -> Optional[float]:
    """Coerce numbers and numeric-looking strings; None when not coercible."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            # ints past the float range, e.g. a 400-digit JSON number
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def _out_of_range(values: Dict[str, Any], params: ScoringParameters) -> Dict[str, ScoreInputError]:
    """Field errors for values whose score terms would not be finite floats."""
    errors: Dict[str, ScoreInputError] = {}
    try:
        base = values["products_made"] / (values["total_hours_worked"] * params.target_rate_per_hour) * 100
    except (ZeroDivisionError, OverflowError):
        base = math.inf
    if not math.isfinite(base):
        # hours so small the rate overflows, e.g. "1e-320"
        errors["total_hours_worked"] = InvalidDivisor()
    rework = values["rework_count"] * params.rework_penalty_per_unit
    downtime = values["downtime_minutes"] * params.downtime_cost_per_minute
    if not math.isfinite(rework):
        errors["rework_count"] = TypeMismatch("rework_count")
    if not math.isfinite(downtime):
        errors["downtime_minutes"] = TypeMismatch("downtime_minutes")
    if math.isfinite(rework) and math.isfinite(downtime) and not math.isfinite(rework + downtime):
        errors["rework_count"] = TypeMismatch("rework_count")
        errors["downtime_minutes"] = TypeMismatch("downtime_minutes")
    return errors


def validate_record(raw: Mapping[str, Any], params: Optional[ScoringParameters] = None) -> ScoreInputsResult:
    """Normalize a raw form/JSON record into a WorkerShiftRecord.

    Every field is checked so the caller gets all field-level errors at once.
    Nothing is raised for bad input. A record that passes can be scored with
    ``params`` (default parameters when omitted) without overflowing.
    """
    errors: Dict[str, ScoreInputError] = {}
    values: Dict[str, Any] = {}

    for name in REAL_FIELDS + INTEGER_FIELDS:
        number = _to_number(_lookup(raw, name))
        if number is None:
            errors[name] = TypeMismatch(name)
            continue
        if name in INTEGER_FIELDS:
            if not number.is_integer():
                errors[name] = TypeMismatch(name)
                continue
            number = int(number)
        if name == "total_hours_worked":
            if number <= 0:
                errors[name] = InvalidDivisor()
                continue
        elif number < 0:
            errors[name] = NegativeQuantity(name)
            continue
        values[name] = number

    worker_id = _lookup(raw, "worker_id")
    if worker_id is None or isinstance(worker_id, bool) or worker_id == "":
        worker_id = ""

    if not errors:
        errors = _out_of_range(values, params or ScoringParameters())
    if errors:
        return ScoreInputsResult(record=None, errors=errors)
    return ScoreInputsResult(
        record=WorkerShiftRecord(
            worker_id=worker_id,
            total_hours_worked=values["total_hours_worked"],
            products_made=values["products_made"],
            rework_count=values["rework_count"],
            downtime_minutes=values["downtime_minutes"],
        )
    )
