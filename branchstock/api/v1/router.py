from fastapi import APIRouter, Depends

from branchstock.config.settings import settings
from branchstock.core.rate_limit import enforce_public_rate_limit
from branchstock.modules.requisitions import requisitions_router

# Crear router principal de la API v1
api_router = APIRouter(prefix="/api/v1")

api_router.include_router(requisitions_router)


@api_router.get("/", dependencies=[Depends(enforce_public_rate_limit)])
async def api_root():
    """Root endpoint de la API"""
    return {
        "message": f"{settings.app_name} v1",
        "version": settings.version,
        "status": "active",
        "available_endpoints": {
            "requisitions": "/api/v1/requisitions",
            "health": "/api/v1/health"
        }
    }


@api_router.get("/health", dependencies=[Depends(enforce_public_rate_limit)])
async def health_check():
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.version
    }
