from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterable, Optional, Tuple, Union

from shopfloor.app.efficiency.calculator import EfficiencyScore


RecordId = Union[str, int]
ScoreLike = Union[EfficiencyScore, int, float]


@dataclass(frozen=True)
class EmptyAggregateInput:
    code: str = "empty_aggregate_input"

    @property
    def message(self) -> str:
        return "No records to aggregate."


@dataclass(frozen=True)
class RankedScore:
    record_id: RecordId
    value: float


@dataclass(frozen=True)
class AggregateSummary:
    count: int
    average: Optional[float]
    best: Optional[RankedScore]
    worst: Optional[RankedScore]
    issue: Optional[EmptyAggregateInput] = None

    @property
    def empty(self) -> bool:
        return self.count == 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "average": self.average,
            "best": {"record_id": self.best.record_id, "value": self.best.value} if self.best else None,
            "worst": {"record_id": self.worst.record_id, "value": self.worst.value} if self.worst else None,
            "issue": {"code": self.issue.code, "message": self.issue.message} if self.issue else None,
        }


def _value_of(s: ScoreLike) -> float:
    return s.value if isinstance(s, EfficiencyScore) else s


def _id_less(a: RecordId, b: RecordId) -> bool:
    try:
        return a < b  # type: ignore[operator]
    except TypeError:
        # mixed int/str ids
        return str(a) < str(b)


class _Accumulator:
    __slots__ = ("count", "total", "best", "worst")

    def __init__(self) -> None:
        self.count = 0
        self.total = 0.0
        self.best: Optional[RankedScore] = None
        self.worst: Optional[RankedScore] = None

    def add(self, record_id: RecordId, value: float) -> None:
        self.count += 1
        self.total += value
        best, worst = self.best, self.worst
        if best is None or value > best.value or (value == best.value and _id_less(record_id, best.record_id)):
            self.best = RankedScore(record_id, value)
        if worst is None or value < worst.value or (value == worst.value and _id_less(record_id, worst.record_id)):
            self.worst = RankedScore(record_id, value)

    def summary(self, digits: Optional[int]) -> AggregateSummary:
        if self.count == 0:
            return AggregateSummary(count=0, average=None, best=None, worst=None, issue=EmptyAggregateInput())
        average = self.total / self.count
        if digits is not None:
            average = round(average, digits)
        return AggregateSummary(count=self.count, average=average, best=self.best, worst=self.worst)


def reduce_scores(pairs: Iterable[Tuple[RecordId, ScoreLike]], *, digits: Optional[int] = 2) -> AggregateSummary:
    """Average, best and worst over (record_id, score) pairs in a single pass.

    Ties on best/worst go to the lowest record id. An empty input yields an
    explicit EmptyAggregateInput issue with every statistic set to None.
    """
    acc = _Accumulator()
    for record_id, s in pairs:
        acc.add(record_id, _value_of(s))
    return acc.summary(digits)


def summarize_by(
    items: Iterable[Tuple[Hashable, RecordId, ScoreLike]], *, digits: Optional[int] = 2
) -> Dict[Hashable, AggregateSummary]:
    """One summary per group key, groups in first-seen order."""
    groups: Dict[Hashable, _Accumulator] = {}
    for key, record_id, s in items:
        acc = groups.get(key)
        if acc is None:
            acc = groups[key] = _Accumulator()
        acc.add(record_id, _value_of(s))
    return {key: acc.summary(digits) for key, acc in groups.items()}
