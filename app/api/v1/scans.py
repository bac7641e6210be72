"""
==============================================================================
Scan History Endpoints
==============================================================================

Recently completed scans across all surfaces.

==============================================================================
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.core.dependencies import get_scan_logger
from app.schemas.scanner import RecentScansResponse
from app.utils.scan_logger import ScanLogger


router = APIRouter(prefix="/scans", tags=["Scans"])


@router.get("/recent", response_model=RecentScansResponse)
async def recent_scans(
    limit: int = Query(20, ge=1, le=1000),
    surface: Optional[str] = Query(None, min_length=1),
    scan_logger: ScanLogger = Depends(get_scan_logger)
):
    """Most recent completed scans, newest first."""
    scans = scan_logger.recent(limit=limit, surface_id=surface)
    return RecentScansResponse(total=len(scans), scans=scans)
