"""
Health checks.

GET /health answers as long as the process is up; GET /health/ready also
requires the database to answer and the workflow tables to exist.
"""
import time
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.logging_config import logger
from app.models.project import Project


router = APIRouter(prefix="/health", tags=["Health Checks"])


async def check_database(db: AsyncSession) -> Dict[str, Any]:
    started = time.perf_counter()
    try:
        projects = await db.scalar(select(func.count(Project.id)))
    except Exception as e:
        logger.warning(f"Readiness: database unavailable ({type(e).__name__})", extra={"error_message": str(e)})
        return {"status": "unhealthy", "error": str(e)}
    return {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "projects": projects,
    }


@router.get("")
async def liveness():
    return {"status": "healthy", "app_name": settings.APP_NAME, "environment": settings.ENVIRONMENT}


@router.get("/ready")
async def readiness(db: AsyncSession = Depends(get_db)):
    database = await check_database(db)
    ready = database["status"] == "healthy"
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "not_ready", "checks": {"database": database}},
    )
