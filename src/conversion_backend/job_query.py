from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional

from .audit import AuditLog
from .conversion_service import require_identity
from .database import JobDatabase
from .key_manager import Identity
from .models import ConversionJob

logger = logging.getLogger(__name__)


class JobQueryService:
    """
    Lists a caller's past jobs, newest first.

    Store failures are logged, written to the audit log and turned into an
    empty list so the UI keeps working.
    """

    def __init__(
        self,
        database: JobDatabase,
        audit: Optional[AuditLog] = None,
        default_limit: int = 50,
        max_limit: int = 100,
    ) -> None:
        self.database = database
        self.audit = audit or AuditLog(database)
        self.default_limit = default_limit
        self.max_limit = max_limit

    def _clamp(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.default_limit
        return max(1, min(limit, self.max_limit))

    def list(
        self,
        identity: Optional[Identity],
        limit: Optional[int] = None,
        status: Optional[str] = None,
        conversion_type: Optional[str] = None,
    ) -> List[ConversionJob]:
        identity = require_identity(identity)
        limit = self._clamp(limit)

        logger.info("Fetching conversion jobs for owner: %s", identity.owner)
        try:
            rows = self.database.list_jobs(identity.owner, limit, status=status, conversion_type=conversion_type)
        except sqlite3.Error as exc:
            logger.error("Error fetching jobs for owner %s: %s", identity.owner, exc)
            self.audit.record(
                "error",
                "get-conversion-jobs",
                "Failed to fetch conversion jobs",
                metadata={"error": str(exc), "limit": limit, "status": status, "type": conversion_type},
                owner=identity.owner,
            )
            return []

        logger.info("Fetched %d conversion jobs", len(rows))
        return [ConversionJob(**row) for row in rows]
