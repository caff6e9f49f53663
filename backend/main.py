"""
Questline - FastAPI Backend
Reference persistence server for snapshot sync and XP awards
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Header
from fastapi.middleware.cors import CORSMiddleware

from achievements import AchievementChecker
from config import get_server_config
from database import (
    db, ensure_sync_tables, get_snapshot, save_snapshot,
    record_award, get_award_total, get_user_achievements, save_user_achievements,
)
from models import (
    Domain, HealthStatus, SyncEnvelope, SyncPushRequest, SyncPushResponse,
    XPAwardRequest, XPAwardResponse, parse_snapshot,
)
from logger import logger


server_config = get_server_config()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    await db.connect()
    await ensure_sync_tables()
    logger.info(f"Server started (v{server_config.version})")
    yield
    logger.info("Server shutting down")
    await db.disconnect()


app = FastAPI(
    title="Questline Sync",
    description="Snapshot persistence and XP awards for the Questline clients",
    version=server_config.version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=server_config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _domain(value: str) -> Domain:
    try:
        return Domain(value)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown domain: {value}")


# ============================================
# HEALTH & STATUS
# ============================================

@app.get("/health", response_model=HealthStatus)
@app.get("/api/health", response_model=HealthStatus)
async def health_check():
    """Check API and database health."""
    return HealthStatus(
        status="healthy",
        version=server_config.version,
        database="connected" if db.connected else "disconnected",
    )


# ============================================
# SNAPSHOT SYNC
# ============================================

@app.get("/api/{domain}/sync")
async def pull_snapshot(domain: str, x_user_id: Optional[str] = Header(default="local")):
    """Return the stored snapshot, or an empty body when there is none."""
    d = _domain(domain)
    row = await get_snapshot(x_user_id, d.value)
    if not row:
        return {"data": None, "updated_at": None}
    return SyncEnvelope(data=row["data"], updated_at=row["updated_at"]).model_dump(mode="json")


@app.post("/api/{domain}/sync", response_model=SyncPushResponse)
async def push_snapshot(domain: str, request: SyncPushRequest,
                        x_user_id: Optional[str] = Header(default="local")):
    """Replace the stored snapshot with the client's copy."""
    d = _domain(domain)
    try:
        parse_snapshot(d, request.data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid {d.value} snapshot: {e}")

    updated_at = await save_snapshot(x_user_id, d.value, request.data)
    logger.info(f"Snapshot saved: {x_user_id}/{d.value}")
    return SyncPushResponse(updated_at=updated_at)


# ============================================
# XP AWARDS
# ============================================

@app.post("/api/xp", response_model=XPAwardResponse)
async def award_xp(request: XPAwardRequest, x_user_id: Optional[str] = Header(default="local")):
    """
    Record an award and report every achievement the server considers unlocked.

    Achievements are evaluated against the last snapshot the client pushed;
    the response carries the union of stored and newly earned ids.
    """
    domain = request.domain.value
    await record_award(x_user_id, domain, request.action, request.xp_amount,
                       request.unit_id, request.metadata)
    total = await get_award_total(x_user_id, domain)

    known = list(await get_user_achievements(x_user_id, domain))
    earned = []
    row = await get_snapshot(x_user_id, domain)
    if row:
        try:
            snapshot = parse_snapshot(request.domain, row["data"])
            earned = AchievementChecker(request.domain).evaluate(snapshot.profile, snapshot.completables())
            earned = [code for code in earned if code not in known]
            known += [code for code in snapshot.profile.achievement_ids() if code not in known]
        except ValueError as e:
            logger.warning(f"Stored snapshot for {x_user_id}/{domain} is unreadable: {e}")

    if earned:
        await save_user_achievements(x_user_id, domain, earned)
        logger.info(f"Achievements unlocked for {x_user_id}/{domain}: {', '.join(earned)}")

    return XPAwardResponse(total_xp=total, achievements=known + [c for c in earned if c not in known])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=server_config.host, port=server_config.port)
