"""
==============================================================================
WebSocket Package
==============================================================================

Real-time WebSocket handlers for camera QR scanning.

Handlers:
---------
- scanner: Scan session per rendering surface (mount on connect,
  dispose on disconnect)

==============================================================================
"""

from .scanner import router as scanner_router

__all__ = ["scanner_router"]
