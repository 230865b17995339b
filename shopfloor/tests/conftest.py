from __future__ import annotations

from pathlib import Path
import sys
from datetime import date
from typing import Any, Dict, Iterator, List, Optional, Tuple

import psycopg
import pytest


def _find_repo_root(start: Path) -> Path:
    cur = start
    while cur != cur.parent:
        candidate = cur / "shopfloor" / "src" / "db" / "migrations"
        if candidate.exists():
            return cur
        cur = cur.parent
    # Fallback to start
    return start


# Ensure repo root is on sys.path so tests can import the shopfloor package
_REPO_ROOT = _find_repo_root(Path(__file__).resolve())
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


from shopfloor.app.allocations.models import (  # noqa: E402
    AllocationFilters,
    AllocationRecord,
    HourlyUpdate,
    WorkerChange,
)
from shopfloor.app.allocations.service import AllocationService  # noqa: E402
from shopfloor.app.efficiency import AggregateSummary, ScoringParameters  # noqa: E402
from shopfloor.app.efficiency.definitions import EfficiencyBand, band_bounds  # noqa: E402


# ---------- In-memory store ----------

class FakeAllocationStore:
    """Dict-backed stand-in for PostgresAllocationStore."""

    def __init__(self, records: Optional[List[AllocationRecord]] = None) -> None:
        self.records: Dict[int, AllocationRecord] = {r.id: r for r in records or []}
        self.history: List[Dict[str, Any]] = []
        self.sync_logs: List[Tuple[str, str, Dict[str, Any]]] = []

    def _matches(self, r: AllocationRecord, f: AllocationFilters) -> bool:
        if f.id is not None and r.id != f.id:
            return False
        for name in ("name", "line_number", "machine_number", "product_id", "shift", "downtime_reason"):
            value = getattr(f, name)
            if value and getattr(r, name) != value:
                return False
        if f.datetime and (r.datetime is None or r.datetime.strftime("%Y-%m-%dT%H:%M") != f.datetime[:16]):
            return False
        if f.day is not None and (r.datetime is None or r.datetime.date() != f.day):
            return False
        if f.start is not None and (r.datetime is None or r.datetime.date() < f.start):
            return False
        if f.end is not None and (r.datetime is None or r.datetime.date() > f.end):
            return False
        if f.efficiency:
            low, high = band_bounds(EfficiencyBand(f.efficiency))
            v = r.efficiency_impact
            if v is None or (low is not None and v < low) or (high is not None and v >= high):
                return False
        if f.search:
            needle = f.search.lower()
            haystack = [str(r.id), r.name, r.line_number, r.machine_number, r.product_id, r.shift, r.downtime_reason]
            if not any(needle in (h or "").lower() for h in haystack):
                return False
        return True

    def list(self, filters: AllocationFilters, offset: int, limit: int):
        matched = self.list_all(filters)
        return matched[offset : offset + limit], len(matched)

    def list_all(self, filters: AllocationFilters) -> List[AllocationRecord]:
        return [r for _, r in sorted(self.records.items()) if self._matches(r, filters)]

    def get(self, allocation_id: int) -> Optional[AllocationRecord]:
        return self.records.get(allocation_id)

    def update_fields(self, allocation_id: int, fields: Dict[str, Any]) -> Optional[AllocationRecord]:
        current = self.records.get(allocation_id)
        if current is None:
            return None
        self.records[allocation_id] = current.model_copy(update=fields)
        return self.records[allocation_id]

    def append_hourly_update(self, allocation_id: int, update: HourlyUpdate) -> Optional[AllocationRecord]:
        current = self.records.get(allocation_id)
        if current is None:
            return None
        return self.update_fields(allocation_id, {"hourly_updates": [*current.hourly_updates, update]})

    def append_worker_change(self, allocation_id: int, change: WorkerChange, fields: Dict[str, Any]):
        current = self.records.get(allocation_id)
        if current is None:
            return None
        return self.update_fields(allocation_id, {**fields, "worker_changes": [*current.worker_changes, change]})

    def worker_names(self) -> List[str]:
        names = {r.name for r in self.records.values()}
        for r in self.records.values():
            for c in r.worker_changes:
                names.update((c.original, c.replacement))
        return sorted(names)

    def upsert(self, record: AllocationRecord) -> None:
        self.records[record.id] = record

    def write_efficiency_history(self, scope: str, scope_key: str, day: date, summary: AggregateSummary) -> None:
        if summary.empty:
            return
        self.history = [h for h in self.history if (h["scope"], h["scope_key"], h["day"]) != (scope, scope_key, day)]
        self.history.append(
            {
                "scope": scope,
                "scope_key": scope_key,
                "day": day,
                "record_count": summary.count,
                "average": summary.average,
                "best_record_id": str(summary.best.record_id),
                "best_value": summary.best.value,
                "worst_record_id": str(summary.worst.record_id),
                "worst_value": summary.worst.value,
            }
        )

    def efficiency_history(self, scope: str, start: date, end: date) -> List[Dict[str, Any]]:
        rows = [h for h in self.history if h["scope"] == scope and start <= h["day"] <= end]
        return sorted(rows, key=lambda h: (h["day"], h["scope_key"]))

    def log_sync(self, source: str, status: str, details: Dict[str, Any]) -> None:
        self.sync_logs.append((source, status, details))


SAMPLE_ROWS: List[Dict[str, Any]] = [
    {
        "id": 1,
        "name": "John Doe",
        "line_number": "Line 1",
        "machine_number": "M1",
        "product_id": "P001",
        "shift": "Shift 1",
        "datetime": "2025-04-16T13:00:00Z",
        "total_hours_worked": 8,
        "products_made": 100,
        "rework_count": 5,
        "downtime_minutes": 30,
        "downtime_reason": "Machine",
        "efficiency_impact": 85,
    },
    {
        "id": 2,
        "name": "Jane Smith",
        "line_number": "Line 2",
        "machine_number": "M2",
        "product_id": "P002",
        "shift": "Shift 2",
        "datetime": "2025-04-16T14:00:00Z",
        "total_hours_worked": 6,
        "products_made": 80,
        "rework_count": 3,
        "downtime_minutes": 15,
        "downtime_reason": "Material",
        "efficiency_impact": 78,
    },
    {
        "id": 3,
        "name": "Mike Brown",
        "line_number": "Line 1",
        "machine_number": "M1",
        "product_id": "P001",
        "shift": "Shift 1",
        "datetime": "2025-04-16T17:00:00Z",
        "total_hours_worked": 4,
        "products_made": 50,
        "rework_count": 1,
        "downtime_minutes": 10,
        "downtime_reason": "Machine",
        "efficiency_impact": 90,
    },
]


@pytest.fixture()
def params() -> ScoringParameters:
    return ScoringParameters(target_rate_per_hour=20, rework_penalty_per_unit=2, downtime_cost_per_minute=0.5)


@pytest.fixture()
def sample_rows() -> List[Dict[str, Any]]:
    return [dict(row) for row in SAMPLE_ROWS]


@pytest.fixture()
def fake_store() -> FakeAllocationStore:
    return FakeAllocationStore()


@pytest.fixture()
def service(fake_store: FakeAllocationStore, params: ScoringParameters, sample_rows) -> AllocationService:
    svc = AllocationService(fake_store, params)
    svc.import_records(sample_rows)
    return svc


@pytest.fixture()
def api_client(service: AllocationService) -> Iterator[Any]:
    from fastapi.testclient import TestClient

    from shopfloor.app.api.deps import get_ceiling, get_params, get_service
    from shopfloor.app.efficiency import CeilingPolicy
    from shopfloor.app.main import app

    app.dependency_overrides[get_service] = lambda: service
    app.dependency_overrides[get_params] = lambda: service.params
    app.dependency_overrides[get_ceiling] = lambda: CeilingPolicy.none
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ---------- Postgres ----------

@pytest.fixture(scope="session")
def database_url() -> str:
    from shopfloor.app.config.env import get_db_url, load_env

    load_env()
    return get_db_url()


@pytest.fixture(scope="session")
def migrated_db(database_url: str) -> Iterator[str]:
    from shopfloor.src.db.run_migrations import main as run_migrations_main  # local import after sys.path

    try:
        psycopg.connect(database_url, connect_timeout=3).close()
    except psycopg.OperationalError as exc:
        pytest.skip(f"Postgres not reachable: {exc}")
    if run_migrations_main(["--database-url", database_url]) != 0:
        pytest.skip("Migrations could not be applied")
    yield database_url


def _truncate_for_test(conn: psycopg.Connection) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            TRUNCATE allocation_hourly_updates, allocation_worker_changes, allocations,
                     efficiency_history, sync_logs
            RESTART IDENTITY CASCADE
            """
        )
    conn.commit()


@pytest.fixture()
def db_conn(migrated_db: str) -> Iterator[psycopg.Connection]:
    with psycopg.connect(migrated_db) as conn:
        _truncate_for_test(conn)
        yield conn
