"""
==============================================================================
API v1 Endpoints
==============================================================================

Version 1 of the REST API.

Routers:
--------
- health: Health check endpoints
- cameras: Camera enumeration
- surfaces: Rendering surface inspection and previews
- scans: Recent scan history

==============================================================================
"""

from . import health, cameras, surfaces, scans

__all__ = ["health", "cameras", "surfaces", "scans"]
