from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum

from shopfloor.app.efficiency.inputs import ScoringParameters, WorkerShiftRecord


logger = logging.getLogger(__name__)

PERCENT_CEILING = 100


class CeilingPolicy(str, Enum):
    none = "none"
    flag = "flag"
    clamp = "clamp"


@dataclass(frozen=True)
class EfficiencyScore:
    value: int
    raw: float
    over_ceiling: bool = False


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def score(
    record: WorkerShiftRecord,
    params: ScoringParameters,
    *,
    ceiling: CeilingPolicy = CeilingPolicy.none,
) -> EfficiencyScore:
    """Efficiency percentage for one shift record.

    base = products / (hours * target_rate) * 100
    penalty = rework * rework_penalty + downtime * downtime_cost
    value = round_half_up(max(0, base - penalty))

    The floor is always clamped at zero. Values above 100 are kept unless the
    ceiling policy is ``clamp``; they are always flagged and logged.
    """
    if record.total_hours_worked <= 0:
        raise ValueError("total_hours_worked must be positive; validate the record first")

    expected = record.total_hours_worked * params.target_rate_per_hour
    if expected <= 0:
        raise ValueError("hours worked are too small to score; validate the record first")
    base = (record.products_made / expected) * 100
    penalty = (record.rework_count * params.rework_penalty_per_unit) + (
        record.downtime_minutes * params.downtime_cost_per_minute
    )
    raw = base - penalty
    if not math.isfinite(raw):
        raise ValueError("score terms overflow for these inputs; validate the record with the same parameters first")
    value = round_half_up(max(0.0, raw))

    over_ceiling = value > PERCENT_CEILING
    if over_ceiling:
        logger.warning(
            "Efficiency above %d%% for worker %s: %d (policy=%s)",
            PERCENT_CEILING,
            record.worker_id,
            value,
            ceiling.value,
        )
        if ceiling is CeilingPolicy.clamp:
            value = PERCENT_CEILING
    return EfficiencyScore(value=value, raw=raw, over_ceiling=over_ceiling)
