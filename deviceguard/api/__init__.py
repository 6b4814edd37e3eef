from fastapi import APIRouter

from deviceguard.interfaces.http.routers import admin, auth, devices, status, transfers


def create_api_router(prefix: str = "") -> APIRouter:
    router = APIRouter(prefix=prefix)
    router.include_router(status.router, prefix="/status", tags=["status"])
    router.include_router(auth.router, prefix="/auth", tags=["auth"])
    router.include_router(devices.router, prefix="/devices", tags=["devices"])
    router.include_router(transfers.router, prefix="/transfer", tags=["transfers"])
    router.include_router(admin.router, prefix="/admin", tags=["admin"])
    return router


__all__ = [
    "create_api_router",
]
