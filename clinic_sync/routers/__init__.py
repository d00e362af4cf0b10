"""API router initializers."""

from fastapi import APIRouter


def get_api_router() -> APIRouter:
    """Construct and return the API router."""

    from clinic_sync.routers.appointments import router as appointments_router
    from clinic_sync.routers.integrations import router as integrations_router
    from clinic_sync.routers.maintenance import router as maintenance_router
    from clinic_sync.routers.notifications import router as notifications_router

    api_router = APIRouter()
    api_router.include_router(appointments_router, prefix="/appointments", tags=["appointments"])
    api_router.include_router(notifications_router, prefix="/notifications", tags=["notifications"])
    api_router.include_router(integrations_router, prefix="/integrations", tags=["integrations"])
    api_router.include_router(maintenance_router, prefix="/maintenance", tags=["maintenance"])
    return api_router
