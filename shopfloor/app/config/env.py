from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv

from shopfloor.app.efficiency.calculator import CeilingPolicy
from shopfloor.app.efficiency.inputs import ScoringParameters


_DOTENV_LOADED = False


def load_env(dotenv_path: Optional[str] = None) -> None:
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return
    # Load from provided path or default search
    load_dotenv(dotenv_path, override=False)
    _DOTENV_LOADED = True


def get_db_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    user = os.getenv("DB_USER", os.getenv("USER", "client"))
    password = os.getenv("DB_PASSWORD")
    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    name = os.getenv("DB_NAME", "shopfloor")
    auth = f"{user}:{password}@" if password else f"{user}@"
    return f"postgresql://{auth}{host}:{port}/{name}"


def get_scoring_params() -> ScoringParameters:
    """Scoring constants from the environment; raises if any value is out of range."""
    return ScoringParameters(
        target_rate_per_hour=float(os.getenv("SCORE_TARGET_RATE_PER_HOUR", "20")),
        rework_penalty_per_unit=float(os.getenv("SCORE_REWORK_PENALTY_PER_UNIT", "2")),
        downtime_cost_per_minute=float(os.getenv("SCORE_DOWNTIME_COST_PER_MINUTE", "0.5")),
    )


def get_ceiling_policy() -> CeilingPolicy:
    return CeilingPolicy(os.getenv("SCORE_CEILING_POLICY", "none").lower())


def get_allocation_api_env() -> tuple[Optional[str], str]:
    base_url = os.getenv("ALLOCATION_API_BASE_URL")
    token = os.getenv("ALLOCATION_API_TOKEN")
    return base_url, token or ""


def get_sync_interval_minutes() -> int:
    return int(os.getenv("SYNC_INTERVAL_MINUTES", "15"))
