"""
Application Exception Handling

Single AppException class for all application errors with FastAPI integration.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class AppException(Exception):
    """
    Unified application exception for all error scenarios.

    Scan sessions never raise these across their boundary; they hand them to
    an error hook instead. API endpoints raise them and the registered handler
    turns them into JSON responses.

    Usage:
        raise AppException("Surface in use", "SURFACE_BUSY", 409)
        on_error(AppException("No camera", "NO_DEVICE_FOUND", 404))

    Error Codes:
        Scan session:
            - NO_DEVICE_FOUND (404)
            - ENGINE_START_FAILURE (503)
            - ENGINE_STOP_FAILURE (500)
            - CAPTURE_FAILURE (503)
            - DECODE_AFTER_STOP (409)

        Engine:
            - ENGINE_ERROR (503)

        Surfaces:
            - SURFACE_BUSY (409)
            - SURFACE_NOT_FOUND (404)
            - PREVIEW_UNAVAILABLE (404)

        General:
            - INVALID_SCAN_PAYLOAD (400)
            - INTERNAL_ERROR (500)
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize application exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code (e.g., "NO_DEVICE_FOUND")
            status_code: HTTP status code (default: 400)
            details: Additional error context (optional)
        """
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        error_dict = {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "timestamp": self.timestamp
            }
        }

        if self.details:
            error_dict["error"]["details"] = self.details

        return error_dict


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    FastAPI exception handler for AppException.

    Converts AppException to consistent JSON error response.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(AppException, app_exception_handler)


# ============================================
# CONVENIENCE FACTORY FUNCTIONS
# ============================================

def no_device_found() -> AppException:
    """Create no camera found exception."""
    return AppException("No cameras found", "NO_DEVICE_FOUND", 404)


def engine_start_failure(reason: str, device_id: Optional[str] = None) -> AppException:
    """Create engine start failure exception."""
    details = {"reason": reason}
    if device_id is not None:
        details["device_id"] = device_id
    return AppException(
        "Error starting scanner",
        "ENGINE_START_FAILURE",
        503,
        details
    )


def engine_stop_failure(reason: str) -> AppException:
    """Create engine stop failure exception (informational)."""
    return AppException(
        "Error stopping scanner",
        "ENGINE_STOP_FAILURE",
        500,
        {"reason": reason}
    )


def capture_failure(reason: str, device_id: Optional[str] = None) -> AppException:
    """Create capture lost exception."""
    details = {"reason": reason}
    if device_id is not None:
        details["device_id"] = device_id
    return AppException("Camera capture lost", "CAPTURE_FAILURE", 503, details)


def decode_after_stop() -> AppException:
    """Create late decode callback exception."""
    return AppException(
        "Decode received after scanning stopped",
        "DECODE_AFTER_STOP",
        409
    )


def engine_error(message: str, device_id: Optional[str] = None) -> AppException:
    """Create decoding engine exception."""
    details = {"device_id": device_id} if device_id is not None else {}
    return AppException(message, "ENGINE_ERROR", 503, details)


def surface_busy(surface_id: str) -> AppException:
    """Create surface already claimed exception."""
    return AppException(
        f"Surface '{surface_id}' is already in use",
        "SURFACE_BUSY",
        409,
        {"surface_id": surface_id}
    )


def surface_not_found(surface_id: str) -> AppException:
    """Create surface not found exception."""
    return AppException(
        "Surface not found",
        "SURFACE_NOT_FOUND",
        404,
        {"surface_id": surface_id}
    )


def preview_unavailable(surface_id: str) -> AppException:
    """Create missing preview frame exception."""
    return AppException(
        "No preview frame available",
        "PREVIEW_UNAVAILABLE",
        404,
        {"surface_id": surface_id}
    )


def invalid_scan_payload(reason: str) -> AppException:
    """Create invalid manual entry exception."""
    return AppException(
        f"Invalid scan payload: {reason}",
        "INVALID_SCAN_PAYLOAD",
        400,
        {"reason": reason}
    )


def internal_error(message: str = "Internal server error") -> AppException:
    """Create internal server error exception."""
    return AppException(message, "INTERNAL_ERROR", 500)
