"""
==============================================================================
Core Package
==============================================================================

Core utilities and infrastructure for the application.

Modules:
--------
- exceptions: AppException class and error factory functions
- dependencies: FastAPI dependency injection functions (engine factory,
  surface registry, scan logger); import from ``app.core.dependencies``

Usage:
------
    from app.core import AppException

    from app.core import exceptions
    raise exceptions.surface_not_found("qr-reader")

==============================================================================
"""

from .exceptions import (
    AppException,
    register_exception_handlers,
)

__all__ = [
    "AppException",
    "register_exception_handlers",
]
