from __future__ import annotations

from datetime import datetime, timedelta, timezone
from random import Random
from typing import Any, Dict, List

from shopfloor.app.allocations.repository import PostgresAllocationStore
from shopfloor.app.allocations.service import AllocationService
from shopfloor.app.config.env import get_ceiling_policy, get_db_url, get_scoring_params, load_env

load_env()
DB_URL = get_db_url()


# The three rows shown on the allocation report page
SAMPLE_ALLOCATIONS: List[Dict[str, Any]] = [
    {
        "id": 1,
        "name": "John Doe",
        "line_number": "Line 1",
        "machine_number": "M1",
        "product_id": "P001",
        "shift": "Shift 1",
        "datetime": "2025-04-16T13:00:00Z",
        "start_time": "2025-04-16T13:00:00Z",
        "total_hours_worked": 8,
        "products_made": 100,
        "rework_count": 5,
        "downtime_minutes": 30,
        "downtime_reason": "Machine",
        "machine_issue": "Motor Overheat",
        "hourly_updates": [
            {"time": "1 PM", "products_made": 25, "rework_count": 2, "downtime_minutes": 10, "downtime_reason": "Machine"},
            {"time": "2 PM", "products_made": 30, "rework_count": 1, "downtime_minutes": 5, "downtime_reason": "Material"},
        ],
        "worker_changes": [
            {"original": "John Doe", "replacement": "Mike Brown", "hours_original": 4, "hours_replacement": 4, "reason": "Shift Swap"},
        ],
        "attendance": {"time_in": "2025-04-16T08:00:00Z", "time_out": "2025-04-16T16:00:00Z"},
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
        "material_issue": "Supply Delay",
        "hourly_updates": [
            {"time": "2 PM", "products_made": 40, "rework_count": 2, "downtime_minutes": 10, "downtime_reason": "Material"},
            {"time": "3 PM", "products_made": 20, "rework_count": 1, "downtime_minutes": 5, "downtime_reason": "Machine"},
        ],
        "worker_changes": [
            {"original": "Jane Smith", "replacement": "Sarah Lee", "hours_original": 2, "hours_replacement": 4, "reason": "Emergency"},
        ],
        "attendance": {"time_in": "2025-04-16T14:00:00Z", "time_out": "2025-04-16T20:00:00Z"},
    },
    {
        "id": 3,
        "name": "Mike Brown",
        "line_number": "Line 1",
        "machine_number": "M1",
        "product_id": "P001",
        "shift": "Shift 1",
        "datetime": "2025-04-16T17:00:00Z",
        "start_time": "2025-04-16T17:00:00Z",
        "total_hours_worked": 4,
        "products_made": 50,
        "rework_count": 1,
        "downtime_minutes": 10,
        "downtime_reason": "Machine",
        "hourly_updates": [
            {"time": "5 PM", "products_made": 25, "rework_count": 0, "downtime_minutes": 5, "downtime_reason": "Machine"},
        ],
        "attendance": {"time_in": "2025-04-16T08:00:00Z", "time_out": "2025-04-16T16:00:00Z"},
    },
]

WORKERS = ["Alice Nguyen", "Bob Lee", "Cara Kim", "Dan Singh", "Sarah Lee"]
REASONS = ["Machine", "Men", "Material", "Manufacturing"]


def generated_allocations(days: int = 14, start_id: int = 100) -> List[Dict[str, Any]]:
    rng = Random(42)
    rows: List[Dict[str, Any]] = []
    next_id = start_id
    today = datetime.now(timezone.utc).replace(hour=8, minute=0, second=0, microsecond=0)
    for d in range(days, 0, -1):
        day = today - timedelta(days=d)
        for i, worker in enumerate(WORKERS):
            hours = rng.choice([4, 6, 8])
            rows.append(
                {
                    "id": next_id,
                    "name": worker,
                    "line_number": f"Line {i % 2 + 1}",
                    "machine_number": f"M{i % 3 + 1}",
                    "product_id": f"P00{i % 2 + 1}",
                    "shift": "Shift 1" if i < 3 else "Shift 2",
                    "datetime": (day + timedelta(hours=i)).isoformat(),
                    "total_hours_worked": hours,
                    "products_made": int(hours * 20 * rng.uniform(0.7, 1.1)),
                    "rework_count": rng.randint(0, 4),
                    "downtime_minutes": rng.choice([0, 5, 10, 15, 30]),
                    "downtime_reason": rng.choice(REASONS),
                }
            )
            next_id += 1
    return rows


def seed() -> None:
    service = AllocationService(
        PostgresAllocationStore(DB_URL),
        get_scoring_params(),
        ceiling=get_ceiling_policy(),
    )
    outcome = service.import_records(SAMPLE_ALLOCATIONS + generated_allocations())
    print(f"Imported {outcome.imported} allocations ({outcome.skipped} skipped)")

    # History for the generated days
    today = datetime.now(timezone.utc).date()
    for d in range(14, 0, -1):
        service.snapshot_day(today - timedelta(days=d))


if __name__ == "__main__":
    seed()
