from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from app.core.config import settings
from app.core.database import init_db, close_db
from app.core.exceptions import CapstoneFlowError, error_response
from app.core.logging_config import logger
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.api.v1.router import api_router
import app.models  # noqa: F401  registers mappers before init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"{settings.APP_NAME} starting ({settings.ENVIRONMENT}, api {settings.API_VERSION}, "
        f"status policy {settings.STATUS_TRANSITION_POLICY}, "
        f"default capacity {settings.DEFAULT_SUPERVISOR_CAPACITY})"
    )
    await init_db()
    logger.info("Workflow tables ready")

    yield

    await close_db()
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title=settings.APP_NAME,
    description="Project and phase lifecycle workflow for capstone and thesis supervision",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    redirect_slashes=False
)

# Starlette runs the last added middleware first
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)


# Workflow errors carry their own status code and envelope
@app.exception_handler(CapstoneFlowError)
async def workflow_exception_handler(request: Request, exc: CapstoneFlowError):
    if exc.status_code >= 500:
        logger.log_error_with_context(exc, context=f"{request.method} {request.url.path}")
    else:
        logger.warning(
            f"{exc.code}: {exc.message}",
            extra={"event_type": "request_rejected", "error_code": exc.code, "http_path": request.url.path}
        )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=error_response(exc), headers=headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.log_error_with_context(exc, context=f"{request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "message": str(exc) if settings.DEBUG else "Internal server error",
                "details": {},
            },
        },
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness check; /api/v1/health/ready also checks the database"""
    return {"status": "healthy", "app_name": settings.APP_NAME, "environment": settings.ENVIRONMENT}


@app.get("/", tags=["Root"])
async def root():
    return {"app_name": settings.APP_NAME, "api": f"/api/{settings.API_VERSION}", "docs": "/docs"}


app.include_router(api_router, prefix=f"/api/{settings.API_VERSION}")


def run():
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG
    )


if __name__ == "__main__":
    run()
