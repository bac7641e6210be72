"""
==============================================================================
Surface Endpoints
==============================================================================

Inspection of claimed rendering surfaces and their preview frames.

==============================================================================
"""

from fastapi import APIRouter, Depends, Response

from app.core import exceptions
from app.core.dependencies import get_registry
from app.scanner.surface import SurfaceRegistry
from app.schemas.scanner import SurfaceDetailResponse, SurfaceInfo, SurfaceListResponse


router = APIRouter(prefix="/surfaces", tags=["Surfaces"])


class SurfaceController:
    """Controller for surface inspection."""

    def __init__(self, registry: SurfaceRegistry):
        self._registry = registry

    def list_surfaces(self) -> SurfaceListResponse:
        surfaces = [SurfaceInfo(**item) for item in self._registry.snapshot()]
        return SurfaceListResponse(total=len(surfaces), surfaces=surfaces)

    def get_surface(self, surface_id: str) -> SurfaceDetailResponse:
        info = self._registry.describe(surface_id)
        if info is None:
            raise exceptions.surface_not_found(surface_id)
        return SurfaceDetailResponse(surface=SurfaceInfo(**info))

    def get_preview(self, surface_id: str) -> bytes:
        surface = self._registry.get_surface(surface_id)
        if surface is None:
            raise exceptions.surface_not_found(surface_id)

        frame = surface.latest_jpeg()
        if frame is None:
            raise exceptions.preview_unavailable(surface_id)
        return frame


@router.get("", response_model=SurfaceListResponse)
async def list_surfaces(registry: SurfaceRegistry = Depends(get_registry)):
    """List claimed surfaces with their session status."""
    return SurfaceController(registry).list_surfaces()


@router.get("/{surface_id}", response_model=SurfaceDetailResponse)
async def get_surface(surface_id: str, registry: SurfaceRegistry = Depends(get_registry)):
    """Get one surface."""
    return SurfaceController(registry).get_surface(surface_id)


@router.get(
    "/{surface_id}/preview",
    response_class=Response,
    responses={200: {"content": {"image/jpeg": {}}}},
)
async def get_preview(surface_id: str, registry: SurfaceRegistry = Depends(get_registry)):
    """Latest annotated preview frame as JPEG."""
    frame = SurfaceController(registry).get_preview(surface_id)
    return Response(
        content=frame,
        media_type="image/jpeg",
        headers={"Cache-Control": "no-store"},
    )
