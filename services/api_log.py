"""
Bounded in-memory history of recent API calls, for diagnostics.
"""
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from core.logger import logger
from core.schemas import ApiLogEntry


LOG_TYPES = ("info", "success", "error")


class ApiLogBuffer:
    """
    Ring buffer of the most recent API calls.

    Eviction policy: once `capacity` entries are held, recording a new
    entry drops the oldest one. Contents are best-effort history and are
    lost on restart.
    """

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: Deque[ApiLogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(self, type: str, endpoint: str, details: Optional[Dict[str, Any]] = None) -> ApiLogEntry:
        """Append an entry and mirror it to the application log."""
        if type not in LOG_TYPES:
            raise ValueError(f"Unknown log type: {type}")
        entry = ApiLogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            type=type,
            endpoint=endpoint,
            details=details or {},
        )
        with self._lock:
            self._entries.append(entry)
        if type == "error":
            logger.warning(f"[API ERROR] {endpoint}: {entry.details}")
        else:
            logger.debug(f"[API {type.upper()}] {endpoint}: {entry.details}")
        return entry

    def entries(self, type: Optional[str] = None, limit: Optional[int] = None) -> List[ApiLogEntry]:
        """Entries newest first, optionally filtered by type and truncated."""
        with self._lock:
            items = list(reversed(self._entries))
        if type:
            items = [e for e in items if e.type == type]
        if limit is not None:
            items = items[:limit]
        return items

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
