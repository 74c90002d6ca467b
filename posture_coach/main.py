# Main FastAPI Application - Posture Stats Sync Service
from fastapi import FastAPI, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
import re

# Import our modules
from posture_coach import config
from posture_coach import database
from posture_coach import logger
from posture_coach import auth
from posture_coach.models import DailyStats
from posture_coach.summary import build_stats_summary

# Initialize FastAPI
app = FastAPI(
    title="Posture Stats Sync API",
    description="Daily posture statistics store for the posture break coach",
    version="1.0.0"
)

# Security scheme for Swagger UI
security = HTTPBearer()

DATE_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# ============================================================================
# PYDANTIC MODELS
# ============================================================================

class StatsUpdateRequest(BaseModel):
    date_key: Optional[str] = None  # Defaults to today's date on the server
    total_ms: int = Field(default=0, ge=0)
    good_ms: int = Field(default=0, ge=0)
    bad_ms: int = Field(default=0, ge=0)
    streak_ms: int = Field(default=0, ge=0)
    alerts: int = Field(default=0, ge=0)


# ============================================================================
# DEPENDENCY INJECTION - JWT Auth
# ============================================================================

def get_current_subject(credentials: HTTPAuthorizationCredentials = Depends(security)) -> str:
    """
    Extract subject id from JWT token in Authorization header

    Raises HTTPException if token is missing or invalid
    """
    token = credentials.credentials

    subject_id = auth.extract_subject_id(token)

    if not subject_id:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return subject_id


def validate_date_key(date_key: str) -> str:
    if not DATE_KEY_PATTERN.match(date_key):
        raise HTTPException(status_code=400, detail="date_key must be YYYY-MM-DD")
    try:
        datetime.strptime(date_key, "%Y-%m-%d")
    except ValueError:
        raise HTTPException(status_code=400, detail="date_key is not a valid date")
    return date_key


# ============================================================================
# STARTUP/SHUTDOWN EVENTS
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize database on startup"""
    logger.log_lifecycle("STARTUP", "Initializing Posture Stats Sync API")

    db_ok = database.test_connection()
    init_ok = database.init_database()

    if db_ok and init_ok:
        logger.log_success("Server Ready", {
            "database": "Connected",
            "sync_interval_sec": config.REMOTE_SYNC_INTERVAL_SECONDS
        })
    else:
        logger.log_error("Startup Failed", Exception("Database initialization issue"))


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.log_lifecycle("SHUTDOWN", "Stopping stats service")
    database.engine.dispose()


# ============================================================================
# HEALTH CHECK
# ============================================================================

@app.get("/health")
async def health_check():
    """
    Health check endpoint

    Tests database connectivity
    """
    db_ok = database.test_connection()

    return {
        "status": "healthy" if db_ok else "degraded",
        "database": "connected" if db_ok else "disconnected",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


# ============================================================================
# STATS ROUTES
# ============================================================================

@app.post("/api/stats/update", dependencies=[Depends(security)])
async def update_stats(
    request: StatsUpdateRequest,
    subject_id: str = Depends(get_current_subject)
):
    """
    Upsert today's stats snapshot for the authenticated subject

    Longest streak keeps the max of stored and incoming values; all
    other fields take the incoming snapshot.
    """
    date_key = validate_date_key(request.date_key) if request.date_key else datetime.now().strftime("%Y-%m-%d")

    logger.log_api("POST /api/stats/update", {"subject_id": subject_id, "date_key": date_key})

    try:
        if request.good_ms + request.bad_ms > request.total_ms:
            raise HTTPException(status_code=400, detail="good_ms + bad_ms cannot exceed total_ms")

        success = database.upsert_daily_stats(
            subject_id=subject_id,
            date_key=date_key,
            total_ms=request.total_ms,
            good_ms=request.good_ms,
            bad_ms=request.bad_ms,
            longest_streak_ms=request.streak_ms,
            alert_count=request.alerts
        )

        if not success:
            raise HTTPException(status_code=500, detail="Failed to sync stats")

        return {"success": True, "message": "Stats synced successfully", "date_key": date_key}

    except HTTPException:
        raise
    except Exception as e:
        logger.log_error("Stats Update Failed", e, {"subject_id": subject_id, "date_key": date_key})
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/stats", dependencies=[Depends(security)])
async def get_stats_history(
    limit: int = 30,
    subject_id: str = Depends(get_current_subject)
):
    """
    Get the subject's daily stats, newest first
    """
    logger.log_api("GET /api/stats", {"subject_id": subject_id, "limit": limit})

    limit = max(1, min(limit, 365))
    rows = database.list_daily_stats(subject_id, limit=limit)

    return {
        "subject_id": subject_id,
        "total_days": len(rows),
        "days": rows
    }


@app.get("/api/stats/{date_key}", dependencies=[Depends(security)])
async def get_stats(
    date_key: str,
    subject_id: str = Depends(get_current_subject)
):
    """
    Get the stored snapshot for one date
    """
    validate_date_key(date_key)
    logger.log_api("GET /api/stats/{date_key}", {"subject_id": subject_id, "date_key": date_key})

    row = database.fetch_daily_stats(subject_id, date_key)

    if not row:
        raise HTTPException(status_code=404, detail="No stats found for this date")

    summary = build_stats_summary(DailyStats(
        date_key=date_key,
        total_ms=row["total_ms"],
        good_ms=row["good_ms"],
        bad_ms=row["bad_ms"],
        longest_good_streak_ms=row["longest_streak_ms"],
        alert_count=row["alert_count"]
    ))

    return {**row, "summary": summary}


# ============================================================================
# ROOT ENDPOINT
# ============================================================================

@app.get("/")
async def root():
    """API information"""
    return {
        "name": "Posture Stats Sync API",
        "version": "1.0.0",
        "endpoints": {
            "stats": ["/api/stats/update", "/api/stats/{date_key}", "/api/stats"],
            "health": ["/health"]
        },
        "documentation": "/docs"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
