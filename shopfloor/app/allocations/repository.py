from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Json

from shopfloor.app.allocations.models import (
    AllocationFilters,
    AllocationRecord,
    Attendance,
    HourlyUpdate,
    WorkerChange,
)
from shopfloor.app.efficiency.aggregate import AggregateSummary
from shopfloor.app.efficiency.definitions import EfficiencyBand, band_bounds


class AllocationStore(Protocol):
    def list(self, filters: AllocationFilters, offset: int, limit: int) -> Tuple[List[AllocationRecord], int]: ...

    def list_all(self, filters: AllocationFilters) -> List[AllocationRecord]: ...

    def get(self, allocation_id: int) -> Optional[AllocationRecord]: ...

    def update_fields(self, allocation_id: int, fields: Dict[str, Any]) -> Optional[AllocationRecord]: ...

    def append_hourly_update(self, allocation_id: int, update: HourlyUpdate) -> Optional[AllocationRecord]: ...

    def append_worker_change(
        self, allocation_id: int, change: WorkerChange, fields: Dict[str, Any]
    ) -> Optional[AllocationRecord]: ...

    def worker_names(self) -> List[str]: ...

    def upsert(self, record: AllocationRecord) -> None: ...

    def write_efficiency_history(self, scope: str, scope_key: str, day: date, summary: AggregateSummary) -> None: ...

    def efficiency_history(self, scope: str, start: date, end: date) -> List[Dict[str, Any]]: ...

    def log_sync(self, source: str, status: str, details: Dict[str, Any]) -> None: ...


# API field name -> column name
COLUMN_FOR_FIELD: Dict[str, str] = {
    "name": "name",
    "line_number": "line_number",
    "machine_number": "machine_number",
    "product_id": "product_id",
    "shift": "shift",
    "datetime": "recorded_at",
    "start_time": "start_time",
    "total_hours_worked": "total_hours_worked",
    "products_made": "products_made",
    "rework_count": "rework_count",
    "downtime_minutes": "downtime_minutes",
    "downtime_reason": "downtime_reason",
    "machine_issue": "machine_issue",
    "men_issue": "men_issue",
    "material_issue": "material_issue",
    "manufacturing_issue": "manufacturing_issue",
    "efficiency_impact": "efficiency_impact",
    "over_ceiling": "over_ceiling",
}

EXACT_FILTERS = ("name", "line_number", "machine_number", "product_id", "shift", "downtime_reason")

SEARCH_COLUMNS = (
    "name",
    "line_number",
    "machine_number",
    "product_id",
    "shift",
    "downtime_reason",
    "machine_issue",
    "men_issue",
    "material_issue",
    "manufacturing_issue",
)


def _where(filters: AllocationFilters) -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    if filters.id is not None:
        clauses.append("a.id = %s")
        params.append(filters.id)
    for name in EXACT_FILTERS:
        value = getattr(filters, name)
        if value:
            clauses.append(f"a.{COLUMN_FOR_FIELD[name]} = %s")
            params.append(value)
    if filters.datetime:
        # minute precision, UTC, like the report page's ISO slice
        clauses.append("to_char(a.recorded_at AT TIME ZONE 'UTC', 'YYYY-MM-DD\"T\"HH24:MI') = %s")
        params.append(filters.datetime[:16])
    if filters.day is not None:
        clauses.append("(a.recorded_at AT TIME ZONE 'UTC')::date = %s")
        params.append(filters.day)
    if filters.start is not None:
        clauses.append("(a.recorded_at AT TIME ZONE 'UTC')::date >= %s")
        params.append(filters.start)
    if filters.end is not None:
        clauses.append("(a.recorded_at AT TIME ZONE 'UTC')::date <= %s")
        params.append(filters.end)
    if filters.efficiency:
        low, high = band_bounds(EfficiencyBand(filters.efficiency))
        if low is not None:
            clauses.append("a.efficiency_impact >= %s")
            params.append(low)
        if high is not None:
            clauses.append("a.efficiency_impact < %s")
            params.append(high)
    if filters.search:
        pattern = f"%{filters.search}%"
        ors = [f"a.{col} ILIKE %s" for col in SEARCH_COLUMNS] + ["a.id::text ILIKE %s"]
        clauses.append("(" + " OR ".join(ors) + ")")
        params.extend([pattern] * (len(SEARCH_COLUMNS) + 1))
    sql = (" WHERE " + " AND ".join(clauses)) if clauses else ""
    return sql, params


def _row_to_record(
    row: Dict[str, Any],
    hourly: Sequence[Dict[str, Any]],
    changes: Sequence[Dict[str, Any]],
) -> AllocationRecord:
    attendance = None
    if row["attendance_in"] is not None or row["attendance_out"] is not None:
        attendance = Attendance(time_in=row["attendance_in"], time_out=row["attendance_out"])
    return AllocationRecord(
        id=row["id"],
        name=row["name"],
        line_number=row["line_number"],
        machine_number=row["machine_number"],
        product_id=row["product_id"],
        shift=row["shift"],
        datetime=row["recorded_at"],
        start_time=row["start_time"],
        total_hours_worked=row["total_hours_worked"],
        products_made=row["products_made"],
        rework_count=row["rework_count"],
        downtime_minutes=row["downtime_minutes"],
        downtime_reason=row["downtime_reason"] or "",
        machine_issue=row["machine_issue"],
        men_issue=row["men_issue"],
        material_issue=row["material_issue"],
        manufacturing_issue=row["manufacturing_issue"],
        hourly_updates=[
            HourlyUpdate(
                time=h["time_label"],
                products_made=h["products_made"],
                rework_count=h["rework_count"],
                downtime_minutes=h["downtime_minutes"],
                downtime_reason=h["downtime_reason"],
            )
            for h in hourly
        ],
        worker_changes=[
            WorkerChange(
                original=c["original"],
                replacement=c["replacement"],
                hours_original=c["hours_original"],
                hours_replacement=c["hours_replacement"],
                reason=c["reason"],
                timestamp=c["changed_at"],
            )
            for c in changes
        ],
        attendance=attendance,
        efficiency_impact=row["efficiency_impact"],
        over_ceiling=row["over_ceiling"],
    )


class PostgresAllocationStore:
    """Allocation records backed by Postgres (see src/db/migrations)."""

    def __init__(self, db_url: str) -> None:
        self.db_url = db_url

    def _conn(self) -> psycopg.Connection:
        return psycopg.connect(self.db_url, row_factory=dict_row)

    def _hydrate(self, conn: psycopg.Connection, rows: List[Dict[str, Any]]) -> List[AllocationRecord]:
        if not rows:
            return []
        ids = [r["id"] for r in rows]
        hourly: Dict[int, List[Dict[str, Any]]] = {i: [] for i in ids}
        changes: Dict[int, List[Dict[str, Any]]] = {i: [] for i in ids}
        with conn.cursor() as cur:
            cur.execute(
                "SELECT * FROM allocation_hourly_updates WHERE allocation_id = ANY(%s) ORDER BY id",
                (ids,),
            )
            for h in cur.fetchall():
                hourly[h["allocation_id"]].append(h)
            cur.execute(
                "SELECT * FROM allocation_worker_changes WHERE allocation_id = ANY(%s) ORDER BY id",
                (ids,),
            )
            for c in cur.fetchall():
                changes[c["allocation_id"]].append(c)
        return [_row_to_record(r, hourly[r["id"]], changes[r["id"]]) for r in rows]

    def _fetch_one(self, conn: psycopg.Connection, allocation_id: int) -> Optional[AllocationRecord]:
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM allocations WHERE id = %s", (allocation_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return self._hydrate(conn, [row])[0]

    def list(self, filters: AllocationFilters, offset: int, limit: int) -> Tuple[List[AllocationRecord], int]:
        where, params = _where(filters)
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT COUNT(*) AS n FROM allocations a{where}", params)
                total = int(cur.fetchone()["n"])
                cur.execute(
                    f"SELECT a.* FROM allocations a{where} ORDER BY a.id LIMIT %s OFFSET %s",
                    [*params, limit, offset],
                )
                rows = cur.fetchall()
            return self._hydrate(conn, rows), total

    def list_all(self, filters: AllocationFilters) -> List[AllocationRecord]:
        where, params = _where(filters)
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT a.* FROM allocations a{where} ORDER BY a.id", params)
                rows = cur.fetchall()
            return self._hydrate(conn, rows)

    def get(self, allocation_id: int) -> Optional[AllocationRecord]:
        with self._conn() as conn:
            return self._fetch_one(conn, allocation_id)

    def _update(self, conn: psycopg.Connection, allocation_id: int, fields: Dict[str, Any]) -> bool:
        assignments = [f"{COLUMN_FOR_FIELD[k]} = %s" for k in fields]
        with conn.cursor() as cur:
            cur.execute(
                f"UPDATE allocations SET {', '.join(assignments + ['updated_at = now()'])} WHERE id = %s",
                [*fields.values(), allocation_id],
            )
            return cur.rowcount > 0

    def update_fields(self, allocation_id: int, fields: Dict[str, Any]) -> Optional[AllocationRecord]:
        with self._conn() as conn:
            if not self._update(conn, allocation_id, fields):
                return None
            conn.commit()
            return self._fetch_one(conn, allocation_id)

    def append_hourly_update(self, allocation_id: int, update: HourlyUpdate) -> Optional[AllocationRecord]:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO allocation_hourly_updates
                      (allocation_id, time_label, products_made, rework_count, downtime_minutes, downtime_reason)
                    SELECT id, %s, %s, %s, %s, %s FROM allocations WHERE id = %s
                    """,
                    (
                        update.time,
                        update.products_made,
                        update.rework_count,
                        update.downtime_minutes,
                        update.downtime_reason,
                        allocation_id,
                    ),
                )
                if cur.rowcount == 0:
                    return None
            conn.commit()
            return self._fetch_one(conn, allocation_id)

    def append_worker_change(
        self, allocation_id: int, change: WorkerChange, fields: Dict[str, Any]
    ) -> Optional[AllocationRecord]:
        with self._conn() as conn:
            if not self._update(conn, allocation_id, fields):
                return None
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO allocation_worker_changes
                      (allocation_id, original, replacement, hours_original, hours_replacement, reason, changed_at)
                    VALUES (%s, %s, %s, %s, %s, %s, COALESCE(%s, now()))
                    """,
                    (
                        allocation_id,
                        change.original,
                        change.replacement,
                        change.hours_original,
                        change.hours_replacement,
                        change.reason,
                        change.timestamp,
                    ),
                )
            conn.commit()
            return self._fetch_one(conn, allocation_id)

    def worker_names(self) -> List[str]:
        with self._conn() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT name FROM allocations
                UNION
                SELECT replacement FROM allocation_worker_changes
                UNION
                SELECT original FROM allocation_worker_changes
                ORDER BY 1
                """
            )
            return [r["name"] for r in cur.fetchall()]

    def upsert(self, record: AllocationRecord) -> None:
        attendance = record.attendance or Attendance()
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO allocations (
                      id, name, line_number, machine_number, product_id, shift, recorded_at, start_time,
                      total_hours_worked, products_made, rework_count, downtime_minutes, downtime_reason,
                      machine_issue, men_issue, material_issue, manufacturing_issue,
                      attendance_in, attendance_out, efficiency_impact, over_ceiling
                    ) VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                    ON CONFLICT (id) DO UPDATE SET
                      name = EXCLUDED.name,
                      line_number = EXCLUDED.line_number,
                      machine_number = EXCLUDED.machine_number,
                      product_id = EXCLUDED.product_id,
                      shift = EXCLUDED.shift,
                      recorded_at = EXCLUDED.recorded_at,
                      start_time = EXCLUDED.start_time,
                      total_hours_worked = EXCLUDED.total_hours_worked,
                      products_made = EXCLUDED.products_made,
                      rework_count = EXCLUDED.rework_count,
                      downtime_minutes = EXCLUDED.downtime_minutes,
                      downtime_reason = EXCLUDED.downtime_reason,
                      machine_issue = EXCLUDED.machine_issue,
                      men_issue = EXCLUDED.men_issue,
                      material_issue = EXCLUDED.material_issue,
                      manufacturing_issue = EXCLUDED.manufacturing_issue,
                      attendance_in = EXCLUDED.attendance_in,
                      attendance_out = EXCLUDED.attendance_out,
                      efficiency_impact = EXCLUDED.efficiency_impact,
                      over_ceiling = EXCLUDED.over_ceiling,
                      updated_at = now()
                    """,
                    (
                        record.id,
                        record.name,
                        record.line_number,
                        record.machine_number,
                        record.product_id,
                        record.shift,
                        record.datetime,
                        record.start_time,
                        record.total_hours_worked,
                        record.products_made,
                        record.rework_count,
                        record.downtime_minutes,
                        record.downtime_reason or "",
                        record.machine_issue,
                        record.men_issue,
                        record.material_issue,
                        record.manufacturing_issue,
                        attendance.time_in,
                        attendance.time_out,
                        record.efficiency_impact,
                        record.over_ceiling,
                    ),
                )
                # Children are append-only upstream; replace wholesale on import
                cur.execute("DELETE FROM allocation_hourly_updates WHERE allocation_id = %s", (record.id,))
                cur.execute("DELETE FROM allocation_worker_changes WHERE allocation_id = %s", (record.id,))
                for h in record.hourly_updates:
                    cur.execute(
                        """
                        INSERT INTO allocation_hourly_updates
                          (allocation_id, time_label, products_made, rework_count, downtime_minutes, downtime_reason)
                        VALUES (%s, %s, %s, %s, %s, %s)
                        """,
                        (record.id, h.time, h.products_made, h.rework_count, h.downtime_minutes, h.downtime_reason),
                    )
                for c in record.worker_changes:
                    cur.execute(
                        """
                        INSERT INTO allocation_worker_changes
                          (allocation_id, original, replacement, hours_original, hours_replacement, reason, changed_at)
                        VALUES (%s, %s, %s, %s, %s, %s, COALESCE(%s, now()))
                        """,
                        (record.id, c.original, c.replacement, c.hours_original, c.hours_replacement, c.reason, c.timestamp),
                    )
                # Keep the serial ahead of explicitly inserted ids
                cur.execute(
                    "SELECT setval(pg_get_serial_sequence('allocations', 'id'), GREATEST((SELECT MAX(id) FROM allocations), 1))"
                )
            conn.commit()

    def write_efficiency_history(self, scope: str, scope_key: str, day: date, summary: AggregateSummary) -> None:
        # History rows require a value; empty summaries are not stored
        if summary.empty or summary.best is None or summary.worst is None:
            return
        with self._conn() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO efficiency_history (
                  scope, scope_key, day, record_count, average,
                  best_record_id, best_value, worst_record_id, worst_value
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (scope, scope_key, day)
                DO UPDATE SET record_count = EXCLUDED.record_count,
                              average = EXCLUDED.average,
                              best_record_id = EXCLUDED.best_record_id,
                              best_value = EXCLUDED.best_value,
                              worst_record_id = EXCLUDED.worst_record_id,
                              worst_value = EXCLUDED.worst_value,
                              created_at = now()
                """,
                (
                    scope,
                    scope_key,
                    day,
                    summary.count,
                    summary.average,
                    str(summary.best.record_id),
                    summary.best.value,
                    str(summary.worst.record_id),
                    summary.worst.value,
                ),
            )
            conn.commit()

    def efficiency_history(self, scope: str, start: date, end: date) -> List[Dict[str, Any]]:
        with self._conn() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT scope, scope_key, day, record_count, average,
                       best_record_id, best_value, worst_record_id, worst_value
                FROM efficiency_history
                WHERE scope = %s AND day BETWEEN %s AND %s
                ORDER BY day, scope_key
                """,
                (scope, start, end),
            )
            return list(cur.fetchall())

    def log_sync(self, source: str, status: str, details: Dict[str, Any]) -> None:
        with self._conn() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO sync_logs (source, job_id, status, details)
                VALUES (%s, gen_random_uuid()::text, %s, %s)
                """,
                (source, status, Json(details)),
            )
            conn.commit()
