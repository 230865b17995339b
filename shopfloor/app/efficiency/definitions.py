from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel


MetricKey = Literal["efficiency_impact"]


class MetricDefinition(BaseModel):
    key: MetricKey
    name: str
    description: str
    orientation: Literal["higher", "lower"]
    unit: str
    display_unit: Optional[str] = None
    period: Literal["shift", "daily", "monthly"]
    formula_markdown: Optional[str] = None
    edge_rules: Optional[List[str]] = None
    parameters: Optional[List[str]] = None


DEFINITIONS: list[MetricDefinition] = [
    MetricDefinition(
        key="efficiency_impact",
        name="Efficiency Impact",
        description=(
            "Output against the hourly target for the hours worked, less points for rework and downtime."
        ),
        orientation="higher",
        unit="percent",
        display_unit="%",
        period="shift",
        formula_markdown=(
            "E = round( max(0, Products / (Hours × TargetRate) × 100"
            " − (Rework × ReworkPenalty + DowntimeMin × DowntimeCost)) )"
        ),
        edge_rules=[
            "Hours ≤ 0 → rejected (InvalidDivisor), never scored as 0.",
            "Negative products, rework or downtime → rejected.",
            "Floor clamped at 0; no ceiling by default, values over 100 are flagged for review.",
            "Half values round up (37.5 → 38).",
            "Recomputed whenever shift quantities change; a stored value is never trusted.",
        ],
        parameters=[
            "SCORE_TARGET_RATE_PER_HOUR (default 20)",
            "SCORE_REWORK_PENALTY_PER_UNIT (default 2)",
            "SCORE_DOWNTIME_COST_PER_MINUTE (default 0.5)",
            "SCORE_CEILING_POLICY: none | flag | clamp",
        ],
    ),
]


def get_definitions() -> list[MetricDefinition]:
    return DEFINITIONS


# ---------- Efficiency bands used by dashboard filters and worker cards ----------

class EfficiencyBand(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


DEFAULT_BAND_THRESHOLDS: Dict[str, float] = {"high": 90, "medium": 75}


def classify(value: Optional[float], thresholds: Optional[Dict[str, float]] = None) -> Optional[EfficiencyBand]:
    if value is None:
        return None
    thr = thresholds or DEFAULT_BAND_THRESHOLDS
    if value >= thr["high"]:
        return EfficiencyBand.high
    if value >= thr["medium"]:
        return EfficiencyBand.medium
    return EfficiencyBand.low


def band_bounds(band: EfficiencyBand, thresholds: Optional[Dict[str, float]] = None) -> tuple[Optional[float], Optional[float]]:
    """Half-open [low, high) value range covered by a band; None means unbounded."""
    thr = thresholds or DEFAULT_BAND_THRESHOLDS
    if band is EfficiencyBand.high:
        return thr["high"], None
    if band is EfficiencyBand.medium:
        return thr["medium"], thr["high"]
    return None, thr["medium"]
