"""
API Version 1 Router
Aggregates all v1 endpoints
"""
from fastapi import APIRouter

from app.api.v1.csv_import import router as csv_import_router
from app.api.v1.health import router as health_router
from app.api.v1.imports import router as imports_router
from app.api.v1.search import router as search_router

router = APIRouter(tags=["v1"])

# CSV routes first: /imports/csv must not be captured by /imports/{job_id}
router.include_router(csv_import_router)
router.include_router(imports_router)
router.include_router(search_router)
router.include_router(health_router)


@router.get("/")
async def api_v1_root():
    """API v1 root endpoint"""
    return {"api": "v1", "status": "active"}
