from fastapi import APIRouter

from app.api.v1.endpoints import cycle_count


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Cycle Counting ====================
api_router.include_router(
    cycle_count.router,
    prefix="/cycle-count",
    tags=["Cycle Counting"]
)
