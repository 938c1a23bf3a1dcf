import logging

from fastapi import APIRouter, Request
from sqlalchemy import text

from constructmart.db import engine
from constructmart.realtime import hub

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", tags=["health"])
def health(request: Request):
    db_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except Exception:
        logger.exception("Health check could not reach the database")

    scheduler = getattr(request.app.state, "scheduler", None)
    scheduler_ok = bool(scheduler and scheduler.running)

    return {
        "status": "ok" if db_ok else "degraded",
        "db": db_ok,
        "scheduler": scheduler_ok,
        "realtime_connections": hub.connection_count(),
    }
