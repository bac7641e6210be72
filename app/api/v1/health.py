"""
==============================================================================
Health Check Endpoints
==============================================================================

System health status endpoints for monitoring and orchestration.

==============================================================================
"""

import os

from fastapi import APIRouter, Depends

from app.config import get_settings
from app.core.dependencies import get_registry
from app.scanner.surface import SurfaceRegistry


router = APIRouter(prefix="/health", tags=["Health"])


class HealthController:
    """Controller for health check operations."""

    def __init__(self, registry: SurfaceRegistry):
        self._registry = registry
        self._settings = get_settings()

    def check_scan_log(self) -> str:
        """Check the scan log directory is writable."""
        if not self._settings.scan_log_enabled:
            return "disabled"
        try:
            path = self._settings.scan_log_path
            return "healthy" if os.access(path, os.W_OK) else "unhealthy"
        except OSError:
            return "unhealthy"

    def get_health(self) -> dict:
        """Get full health status."""
        scan_log_status = self.check_scan_log()
        sessions = self._registry.snapshot()

        overall = "degraded" if scan_log_status == "unhealthy" else "healthy"

        return {
            "status": overall,
            "components": {
                "api": "healthy",
                "scan_log": scan_log_status,
            },
            "details": {
                "active_surfaces": len(sessions),
                "scanning": sum(1 for s in sessions if s["status"] == "scanning"),
            }
        }


@router.get("")
async def health_check(registry: SurfaceRegistry = Depends(get_registry)):
    """
    Health check endpoint.

    Returns API status, scan log availability and surface counts.
    """
    controller = HealthController(registry)
    return controller.get_health()


@router.get("/ready")
async def readiness_check():
    """Readiness probe for container orchestration."""
    return {"ready": True}


@router.get("/live")
async def liveness_check():
    """Liveness probe for container orchestration."""
    return {"alive": True}
