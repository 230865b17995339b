"""Efficiency scoring shared by allocation editing, filtering and reporting.

Exports:
- validate_record: raw input -> WorkerShiftRecord or field-keyed errors
- score: WorkerShiftRecord -> EfficiencyScore
- reduce_scores / summarize_by: average, best and worst over scored records
"""

from .inputs import (
    InvalidDivisor,
    NegativeQuantity,
    ScoreInputsResult,
    ScoringParameters,
    TypeMismatch,
    WorkerShiftRecord,
    validate_record,
)
from .calculator import CeilingPolicy, EfficiencyScore, score
from .aggregate import AggregateSummary, EmptyAggregateInput, RankedScore, reduce_scores, summarize_by

__all__ = [
    "AggregateSummary",
    "CeilingPolicy",
    "EfficiencyScore",
    "EmptyAggregateInput",
    "InvalidDivisor",
    "NegativeQuantity",
    "RankedScore",
    "ScoreInputsResult",
    "ScoringParameters",
    "TypeMismatch",
    "WorkerShiftRecord",
    "reduce_scores",
    "score",
    "summarize_by",
    "validate_record",
]
