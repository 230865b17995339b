from __future__ import annotations

from functools import lru_cache

from shopfloor.app.allocations.repository import PostgresAllocationStore
from shopfloor.app.allocations.service import AllocationService
from shopfloor.app.config.env import get_ceiling_policy, get_db_url, get_scoring_params, load_env
from shopfloor.app.efficiency import CeilingPolicy, ScoringParameters


load_env()


@lru_cache(maxsize=1)
def get_params() -> ScoringParameters:
    return get_scoring_params()


@lru_cache(maxsize=1)
def get_ceiling() -> CeilingPolicy:
    return get_ceiling_policy()


def get_service() -> AllocationService:
    return AllocationService(
        PostgresAllocationStore(get_db_url()),
        get_params(),
        ceiling=get_ceiling(),
    )
