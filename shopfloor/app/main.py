from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shopfloor.app.api.routes.allocations import router as allocations_router
from shopfloor.app.api.routes.efficiency import router as efficiency_router
from shopfloor.app.api.routes.reports import router as reports_router


app = FastAPI(title="Shopfloor API", version="0.1.0")

# CORS for local frontend dev
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(efficiency_router, prefix="/api/efficiency", tags=["efficiency"])
app.include_router(allocations_router, prefix="/api", tags=["allocations"])
app.include_router(reports_router, prefix="/api/reports", tags=["reports"])
