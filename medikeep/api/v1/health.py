"""
==============================================================================
Health Check Endpoints
==============================================================================

System health status endpoints for monitoring and orchestration.

==============================================================================
"""

from fastapi import APIRouter, Depends

from medikeep.config import Settings, get_settings


router = APIRouter(prefix="/health", tags=["Health"])


class HealthController:
    """Controller for health check operations."""

    def __init__(self, settings: Settings):
        self._settings = settings

    def check_decoder(self) -> str:
        """Check the zbar shared library can be loaded."""
        try:
            from pyzbar import zbar_library
            zbar_library.load()
            return "healthy"
        except (ImportError, OSError):
            return "unavailable"

    def get_health(self) -> dict:
        """Get full health status."""
        decoder_status = self.check_decoder()
        overall = "healthy" if decoder_status == "healthy" else "degraded"

        return {
            "status": overall,
            "components": {
                "api": "healthy",
                "decoder": decoder_status
            },
            "details": {
                "freshness_window_ms": self._settings.freshness_window_ms,
                "history_capacity": self._settings.history_capacity
            }
        }


@router.get("")
async def health_check(settings: Settings = Depends(get_settings)):
    """
    Health check endpoint.

    Returns API and QR decoder status with identification settings.
    """
    controller = HealthController(settings)
    return controller.get_health()


@router.get("/ready")
async def readiness_check():
    """Readiness probe for container orchestration."""
    return {"ready": True}


@router.get("/live")
async def liveness_check():
    """Liveness probe for container orchestration."""
    return {"alive": True}
