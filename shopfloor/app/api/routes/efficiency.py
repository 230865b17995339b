from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel

from shopfloor.app.api.deps import get_ceiling, get_params
from shopfloor.app.efficiency import CeilingPolicy, ScoringParameters, reduce_scores, score, validate_record
from shopfloor.app.efficiency.definitions import EfficiencyBand, MetricDefinition, classify, get_definitions


router = APIRouter()


class ScoreResponse(BaseModel):
    value: int
    raw: float
    over_ceiling: bool
    band: Optional[EfficiencyBand] = None


class ScoredItem(BaseModel):
    record_id: Union[int, str]
    value: float


@router.get("/definitions", response_model=list[MetricDefinition])
def list_efficiency_definitions() -> list[MetricDefinition]:
    return get_definitions()


@router.post("/score", response_model=ScoreResponse)
def score_record(
    payload: Dict[str, Any] = Body(...),
    params: ScoringParameters = Depends(get_params),
    ceiling: CeilingPolicy = Depends(get_ceiling),
) -> ScoreResponse:
    result = validate_record(payload, params)
    if not result.ok:
        raise HTTPException(status_code=422, detail=result.error_details())
    s = score(result.record, params, ceiling=ceiling)
    return ScoreResponse(value=s.value, raw=s.raw, over_ceiling=s.over_ceiling, band=classify(s.value))


@router.post("/aggregate")
def aggregate_scores(items: List[ScoredItem]) -> dict[str, Any]:
    """Average/best/worst over already-scored records; empty input returns explicit nulls."""
    return reduce_scores((item.record_id, item.value) for item in items).as_dict()
