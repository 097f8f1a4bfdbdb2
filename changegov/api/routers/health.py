"""Health check endpoints.

- /health: Basic health check
- /health/live: Liveness probe
- /health/ready: Readiness probe (database connectivity)
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from changegov import __version__
from changegov.api.deps import get_db


router = APIRouter(tags=["health"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def check_database(db: Session) -> Dict[str, Any]:
    """Check database connectivity."""
    try:
        db.execute(text("SELECT 1")).fetchone()
        return {"status": "healthy"}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


@router.get("/health")
def health_check():
    """Returns 200 if the application is running."""
    return {"status": "healthy", "version": __version__, "timestamp": _now()}


@router.get("/health/live")
def liveness_probe():
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"status": "alive", "timestamp": _now()},
    )


@router.get("/health/ready")
def readiness_probe(db: Session = Depends(get_db)):
    """
    Readiness probe.

    Returns 503 when the database cannot be reached, so traffic is not
    routed to this instance.
    """
    checks = {"database": check_database(db)}
    unhealthy = [name for name, check in checks.items() if check["status"] == "unhealthy"]

    if unhealthy:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "checks": checks, "failed": unhealthy, "timestamp": _now()},
        )
    return {"status": "ready", "checks": checks, "timestamp": _now()}
