from __future__ import annotations

import logging
from random import Random

import pytest

from shopfloor.app.efficiency import (
    CeilingPolicy,
    ScoringParameters,
    WorkerShiftRecord,
    score,
    validate_record,
)
from shopfloor.app.efficiency.calculator import round_half_up


def test_sample_john_doe_scores_38(params: ScoringParameters) -> None:
    # base 62.5, penalty 5*2 + 30*0.5 = 25, raw 37.5 -> 38
    s = score(WorkerShiftRecord("John Doe", 8, 100, 5, 30), params)
    assert s.raw == pytest.approx(37.5)
    assert s.value == 38
    assert s.over_ceiling is False


def test_sample_jane_smith_scores_53(params: ScoringParameters) -> None:
    # base 66.67, penalty 3*2 + 15*0.5 = 13.5, raw 53.17 -> 53
    s = score(WorkerShiftRecord("Jane Smith", 6, 80, 3, 15), params)
    assert s.raw == pytest.approx(53.1667, abs=1e-3)
    assert s.value == 53


def test_floor_clamped_at_zero(params: ScoringParameters) -> None:
    s = score(WorkerShiftRecord("W", 8, 10, 20, 120), params)
    assert s.raw < 0
    assert s.value == 0


def test_half_rounds_up() -> None:
    assert round_half_up(37.5) == 38
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(53.4999) == 53


def test_no_ceiling_by_default(params: ScoringParameters, caplog: pytest.LogCaptureFixture) -> None:
    record = WorkerShiftRecord("W9", 2, 100, 0, 0)  # base 250
    with caplog.at_level(logging.WARNING, logger="shopfloor.app.efficiency.calculator"):
        s = score(record, params)
    assert s.value == 250
    assert s.over_ceiling is True
    assert "W9" in caplog.text


def test_flag_policy_keeps_value(params: ScoringParameters) -> None:
    s = score(WorkerShiftRecord("W", 2, 100, 0, 0), params, ceiling=CeilingPolicy.flag)
    assert (s.value, s.over_ceiling) == (250, True)


def test_clamp_policy_caps_at_100(params: ScoringParameters) -> None:
    s = score(WorkerShiftRecord("W", 2, 100, 0, 0), params, ceiling=CeilingPolicy.clamp)
    assert s.value == 100
    assert s.over_ceiling is True
    assert s.raw == pytest.approx(250)


def test_exactly_100_is_not_flagged(params: ScoringParameters) -> None:
    s = score(WorkerShiftRecord("W", 1, 20, 0, 0), params, ceiling=CeilingPolicy.clamp)
    assert (s.value, s.over_ceiling) == (100, False)


def test_custom_parameters_change_result() -> None:
    params = ScoringParameters(target_rate_per_hour=10, rework_penalty_per_unit=0, downtime_cost_per_minute=0)
    s = score(WorkerShiftRecord("W", 8, 40, 5, 30), params)
    assert s.value == 50


def test_unvalidated_zero_hours_raises(params: ScoringParameters) -> None:
    with pytest.raises(ValueError):
        score(WorkerShiftRecord("W", 0, 10, 0, 0), params)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"target_rate_per_hour": 0},
        {"target_rate_per_hour": -5},
        {"rework_penalty_per_unit": -1},
        {"downtime_cost_per_minute": -0.1},
    ],
)
def test_parameters_reject_out_of_range(kwargs) -> None:
    with pytest.raises(ValueError):
        ScoringParameters(**kwargs)


def _random_raw(rng: Random) -> dict:
    return {
        "worker_id": rng.randint(1, 1000),
        "total_hours_worked": rng.choice([rng.uniform(0.1, 16), rng.randint(1, 12)]),
        "products_made": rng.randint(0, 1000),
        "rework_count": rng.randint(0, 100),
        "downtime_minutes": rng.choice([rng.uniform(0, 480), rng.randint(0, 480)]),
    }


def test_randomized_scores_are_non_negative_and_deterministic(params: ScoringParameters) -> None:
    rng = Random(42)
    for _ in range(500):
        result = validate_record(_random_raw(rng))
        assert result.ok
        first = score(result.record, params)
        second = score(result.record, params)
        assert first == second
        assert first.value >= 0
        assert isinstance(first.value, int)


def test_randomized_clamp_never_exceeds_100(params: ScoringParameters) -> None:
    rng = Random(7)
    for _ in range(500):
        result = validate_record(_random_raw(rng))
        s = score(result.record, params, ceiling=CeilingPolicy.clamp)
        assert 0 <= s.value <= 100


def test_extreme_validated_records_always_score(params: ScoringParameters) -> None:
    raws = [
        {"worker_id": "a", "total_hours_worked": 1e-300, "products_made": 1, "rework_count": 0, "downtime_minutes": 0},
        {"worker_id": "b", "total_hours_worked": 8, "products_made": int(1e306), "rework_count": 0, "downtime_minutes": 0},
        {"worker_id": "c", "total_hours_worked": 8, "products_made": 0, "rework_count": int(8e307), "downtime_minutes": 1e308},
        {"worker_id": "d", "total_hours_worked": "1e-320", "products_made": 10**10, "rework_count": 0, "downtime_minutes": 0},
    ]
    for raw in raws:
        result = validate_record(raw, params)
        if result.ok:
            s = score(result.record, params)
            assert s.value >= 0
        else:
            assert result.errors


def test_unvalidated_overflowing_record_raises_value_error(params: ScoringParameters) -> None:
    with pytest.raises(ValueError):
        score(WorkerShiftRecord("W", 1e-320, 10**10, 0, 0), params)
