"""
==============================================================================
Scan Logger Module
==============================================================================

Audit log of completed scans.

This module implements:
- ScanRecord: one completed scan
- ScanLogger: daily log files plus an in-memory buffer of recent scans

File Format:
-----------
scans_{YYYY-MM-DD}.log, one line per scan:

    2025-01-15 10:30:45 | surface=qr-reader | source=camera | device=0 | REG-0042

==============================================================================
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Deque, List, Optional

from pydantic import BaseModel, Field

from app.config import get_settings


# Module logger
logger = logging.getLogger(__name__)


class ScanRecord(BaseModel):
    """Completed scan."""

    surface_id: str
    payload: str
    source: str = Field(default="camera", pattern="^(camera|manual)$")
    device_id: Optional[str] = None
    scanned_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ScanLogger:
    """
    Recorder for completed scans.

    Keeps the most recent scans in memory for the API and appends every
    scan to a per-day log file when file logging is enabled.

    Attributes:
        _log_dir: Directory for log files (None disables file output)
        _recent: Bounded buffer of recent records, oldest first

    Example:
        >>> scan_logger = ScanLogger()
        >>> scan_logger.record("qr-reader", "REG-0042", device_id="0")
        >>> scan_logger.recent(limit=1)[0].payload
        'REG-0042'
    """

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        limit: Optional[int] = None,
        write_files: Optional[bool] = None
    ) -> None:
        """
        Initialize the scan logger.

        Args:
            log_dir: Custom log directory (uses settings if None)
            limit: Recent scans kept in memory (uses settings if None)
            write_files: Enable file output (uses settings if None)
        """
        settings = get_settings()
        if write_files is None:
            write_files = settings.scan_log_enabled

        self._log_dir: Optional[Path] = None
        if write_files:
            self._log_dir = log_dir or settings.scan_log_path
            self._log_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._recent: Deque[ScanRecord] = deque(maxlen=limit or settings.recent_scans_limit)

    def record(
        self,
        surface_id: str,
        payload: str,
        source: str = "camera",
        device_id: Optional[str] = None
    ) -> ScanRecord:
        """
        Record a completed scan.

        Returns:
            The stored ScanRecord
        """
        entry = ScanRecord(
            surface_id=surface_id,
            payload=payload,
            source=source,
            device_id=device_id,
        )

        with self._lock:
            self._recent.append(entry)
            if self._log_dir is not None:
                self._append_to_file(entry)

        logger.info(f"📝 Scan recorded on {surface_id} ({source})")
        return entry

    def recent(self, limit: int = 20, surface_id: Optional[str] = None) -> List[ScanRecord]:
        """Most recent scans, newest first, optionally for one surface."""
        with self._lock:
            records = list(self._recent)

        records.reverse()
        if surface_id is not None:
            records = [r for r in records if r.surface_id == surface_id]
        return records[:limit]

    def log_file_for(self, when: datetime) -> Optional[Path]:
        """Log file path for a given day, or None if file output is off."""
        if self._log_dir is None:
            return None
        return self._log_dir / f"scans_{when.strftime('%Y-%m-%d')}.log"

    def _append_to_file(self, entry: ScanRecord) -> None:
        path = self.log_file_for(entry.scanned_at)
        try:
            with path.open("a", encoding="utf-8") as handle:
                handle.write(self._format_line(entry) + "\n")
        except OSError as e:
            logger.error(f"❌ Failed to write scan log {path}: {e}")

    @staticmethod
    def _format_line(entry: ScanRecord) -> str:
        """Format one log line; newlines in payloads are escaped."""
        payload = entry.payload.replace("\\", "\\\\").replace("\n", "\\n").replace("\r", "\\r")
        return " | ".join([
            entry.scanned_at.strftime("%Y-%m-%d %H:%M:%S"),
            f"surface={entry.surface_id}",
            f"source={entry.source}",
            f"device={entry.device_id or '-'}",
            payload,
        ])
