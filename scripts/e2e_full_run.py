from __future__ import annotations

import argparse
import json
import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import httpx


REPO_ROOT = Path(__file__).resolve().parents[1]

# Endpoints captured after seeding; paths relative to the API base URL
PROBES: dict[str, str] = {
    "definitions": "/api/efficiency/definitions",
    "allocation_report": "/api/allocation-report?page_size=20",
    "allocation_report_low": "/api/allocation-report?efficiency=low&page_size=20",
    "worker_options": "/api/worker-options",
    "efficiency_by_line": "/api/reports/efficiency?group_by=line_number",
    "efficiency_by_shift": "/api/reports/efficiency?group_by=shift",
    "history_by_line": "/api/reports/efficiency/history?scope=line_number&days=30",
}


def run(cmd: list[str], env: dict[str, str] | None = None, cwd: Path | None = None) -> int:
    print("$", " ".join(cmd))
    proc = subprocess.Popen(cmd, env=env or os.environ.copy(), cwd=str(cwd or REPO_ROOT))
    return proc.wait()


def run_background(cmd: list[str], env: dict[str, str] | None = None, cwd: Path | None = None) -> subprocess.Popen:
    print("$ (bg)", " ".join(cmd))
    return subprocess.Popen(cmd, env=env or os.environ.copy(), cwd=str(cwd or REPO_ROOT), stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)


def wait_for_api(base_url: str, timeout_s: int = 45) -> None:
    deadline = time.time() + timeout_s
    last_error = None
    while time.time() < deadline:
        try:
            r = httpx.get(base_url.rstrip("/") + "/api/health", timeout=5.0)
            if r.status_code == 200:
                print("API is up:", r.json())
                return
        except httpx.HTTPError as e:
            last_error = e
        time.sleep(1.0)
    raise RuntimeError(f"API did not become ready in {timeout_s}s: {last_error}")


def probe(base_url: str, out_dir: Path) -> int:
    out_dir.mkdir(parents=True, exist_ok=True)
    failures = 0
    with httpx.Client(base_url=base_url, timeout=10.0) as client:
        for name, path in PROBES.items():
            r = client.get(path)
            status = "ok" if r.status_code == 200 else f"HTTP {r.status_code}"
            print(f"  {name:<24} {status}")
            if r.status_code != 200:
                failures += 1
                continue
            (out_dir / f"{name}.json").write_text(json.dumps(r.json(), indent=2), encoding="utf-8")
        # Scoring round trip for the first sample row
        r = client.post(
            "/api/efficiency/score",
            json={"worker_id": "John Doe", "total_hours_worked": 8, "products_made": 100, "rework_count": 5, "downtime_minutes": 30},
        )
        value = r.json().get("value") if r.status_code == 200 else None
        print(f"  {'score John Doe':<24} {value} (expected 38)")
        if value != 38:
            failures += 1
    return failures


def main() -> int:
    parser = argparse.ArgumentParser(description="Run full E2E: migrations -> seed -> API -> probes")
    parser.add_argument("--database-url", default=os.getenv("DATABASE_URL"), help="Postgres DATABASE_URL (or env)")
    parser.add_argument("--api-port", type=int, default=8000)
    parser.add_argument("--out", default=str(REPO_ROOT / ".e2e" / "efficiency"))
    parser.add_argument("--keep-running", action="store_true", help="Leave the API up until Ctrl+C")
    args = parser.parse_args()

    env = os.environ.copy()
    if args.database_url:
        env["DATABASE_URL"] = args.database_url
    env["PYTHONPATH"] = os.pathsep.join(p for p in (str(REPO_ROOT), env.get("PYTHONPATH")) if p)

    print("Repo root:", REPO_ROOT)

    # 1) Apply migrations
    rc = run([sys.executable, "-m", "shopfloor.src.db.run_migrations"], env=env)
    if rc != 0:
        return rc

    # 2) Seed sample allocations and history
    rc = run([sys.executable, "-m", "shopfloor.app.allocations.seed_dev_data"], env=env)
    if rc != 0:
        return rc

    # 3) Start API
    api_cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        "shopfloor.app.main:app",
        "--host",
        "127.0.0.1",
        "--port",
        str(args.api_port),
    ]
    api_proc = run_background(api_cmd, env=env)
    base_url = f"http://127.0.0.1:{args.api_port}"

    try:
        wait_for_api(base_url)

        # 4) Probe report endpoints and save outputs
        failures = probe(base_url, Path(args.out))
        print("\nE2E complete. Outputs saved to:", args.out)
        if failures:
            print(f"{failures} probe(s) failed", file=sys.stderr)
            return 1

        if args.keep_running:
            print("\nAPI is still running on:", base_url)
            print("Press Ctrl+C to stop the API server.")
            try:
                while True:
                    time.sleep(1)
            except KeyboardInterrupt:
                pass
        return 0
    finally:
        api_proc.send_signal(signal.SIGINT)
        try:
            api_proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            api_proc.kill()


if __name__ == "__main__":
    raise SystemExit(main())
