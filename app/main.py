from contextlib import asynccontextmanager
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.v1.router import api_router
from app.database import async_session_factory
from app.jobs.scheduler import start_scheduler, shutdown_scheduler, get_job_status


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create tables and seed default tolerance rules
    - Start background scheduler for recurring count schedules
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    from app.database_init import startup_initialization
    await startup_initialization()

    if settings.SCHEDULER_ENABLED:
        start_scheduler()
        logger.info("Background scheduler started")

    yield

    # Shutdown
    shutdown_scheduler()
    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Cycle Counting", "description": "Count plans, entries, variance review, tolerances and recurring schedules"},
    {"name": "Health", "description": "Service and database health"},
]

FULL_API_DESCRIPTION = """
## Cycle Count Engine API

Inventory cycle counting for the warehouse back office.

| Area | Description |
|------|-------------|
| **Plans** | Schedule, start, complete, cancel and reconcile counts |
| **Entries** | Record physical counts; small variances auto-adjust stock |
| **Review** | Approve or reject variances, singly or per plan |
| **Tolerances** | SKU, zone and default variance thresholds |
| **Schedules** | Recurring plans created by a background job |

### Caller identity

Requests carry `X-User-Id` and optionally `X-User-Role`
(PICKER, PACKER, STOCK_CONTROLLER, SUPERVISOR, ADMIN).

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Bad Request - Invalid status transition |
| 401 | Unauthorized - Missing caller identity |
| 404 | Not Found - Resource doesn't exist |
| 422 | Unprocessable Entity - Validation failed |
| 500 | Internal Server Error |
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=FULL_API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


# Global exception handler to return detailed error for debugging
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return detailed error information for debugging."""
    from fastapi import HTTPException

    # Preserve HTTP status code for HTTPException, default to 500 for others
    if isinstance(exc, HTTPException):
        status_code = exc.status_code
        error_message = exc.detail
    else:
        status_code = 500
        error_message = str(exc)
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}")

    error_detail = {
        "error": error_message,
        "type": type(exc).__name__,
        "path": str(request.url.path),
        "method": request.method,
    }
    if settings.DEBUG:
        error_detail["traceback"] = traceback.format_exc()

    origin = request.headers.get("origin", "")

    response = JSONResponse(
        status_code=status_code,
        content=error_detail
    )

    # Error responses bypass CORSMiddleware
    if origin in settings.cors_origins_list or "*" in settings.cors_origins_list:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "*"

    return response


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    from sqlalchemy import text
    from datetime import datetime, timezone

    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown",
            "jobs": get_job_status(),
        }
    }

    # Check database connectivity
    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }
