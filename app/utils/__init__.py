"""
==============================================================================
Utilities Package
==============================================================================

Utility classes and functions for the application.

Modules:
--------
- validators: Manual scan payload validation
- scan_logger: Completed scan audit log

==============================================================================
"""

from .validators import ScanPayloadValidator
from .scan_logger import ScanLogger, ScanRecord

__all__ = [
    "ScanPayloadValidator",
    "ScanLogger",
    "ScanRecord",
]
