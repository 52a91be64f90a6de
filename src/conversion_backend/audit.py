from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .database import JobDatabase
from .utils import utcnow

logger = logging.getLogger(__name__)


class AuditLog:
    """
    Writes ``system_logs`` rows for failures that are swallowed or caught at
    the outer boundary. Writing never raises; if the store is down the entry
    only reaches the application log.
    """

    def __init__(self, database: JobDatabase, clock: Callable[[], datetime] = utcnow) -> None:
        self.database = database
        self.clock = clock

    def record(
        self,
        log_level: str,
        source: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        owner: Optional[str] = None,
    ) -> None:
        try:
            self.database.log_event(
                log_level=log_level,
                source=source,
                message=message,
                created_at=self.clock(),
                metadata=metadata,
                owner=owner,
            )
        except sqlite3.Error as exc:
            logger.error("Failed to write audit entry %r from %s: %s", message, source, exc)
