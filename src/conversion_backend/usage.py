from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from .audit import AuditLog
from .conversion_service import require_identity
from .database import JobDatabase
from .errors import ValidationError
from .key_manager import Identity
from .models import UsageResponse, UsageStat, UsageSummary
from .utils import utcnow

logger = logging.getLogger(__name__)


def summarize_stats(daily_stats: List[UsageStat]) -> UsageSummary:
    """Fold daily buckets into totals and derived rates."""
    total = sum(stat.total_conversions for stat in daily_stats)
    successful = sum(stat.successful_conversions for stat in daily_stats)
    failed = sum(stat.failed_conversions for stat in daily_stats)
    processing_time = sum(stat.total_processing_time_ms for stat in daily_stats)

    breakdown: Dict[str, int] = {}
    for stat in daily_stats:
        for conversion_type, count in stat.conversion_types.items():
            breakdown[conversion_type] = breakdown.get(conversion_type, 0) + count

    return UsageSummary(
        total_conversions=total,
        successful_conversions=successful,
        failed_conversions=failed,
        total_processing_time_ms=processing_time,
        success_rate=successful / total * 100 if total else 0.0,
        avg_processing_time_ms=processing_time / total if total else 0.0,
        conversion_type_breakdown=breakdown,
    )


class UsageService:
    """
    Summarizes a caller's usage over a trailing window of days.

    The window covers every daily bucket dated on or after ``now - days``.
    """

    def __init__(
        self,
        database: JobDatabase,
        audit: Optional[AuditLog] = None,
        default_days: int = 30,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.database = database
        self.audit = audit or AuditLog(database, clock)
        self.default_days = default_days
        self.clock = clock

    def summarize(self, identity: Optional[Identity], days: Optional[int] = None) -> UsageResponse:
        identity = require_identity(identity)
        days = self.default_days if days is None else days
        if days < 1:
            raise ValidationError(details=["days must be at least 1"])

        since = (self.clock() - timedelta(days=days)).date()
        try:
            rows = self.database.usage_stats(identity.owner, since)
        except sqlite3.Error as exc:
            logger.error("Error fetching usage stats for owner %s: %s", identity.owner, exc)
            self.audit.record(
                "error",
                "get-usage-stats",
                "Failed to fetch usage statistics",
                metadata={"error": str(exc), "days": days},
                owner=identity.owner,
            )
            return UsageResponse(summary=UsageSummary(), daily_stats=[])

        daily_stats = [UsageStat(**row) for row in rows]
        return UsageResponse(summary=summarize_stats(daily_stats), daily_stats=daily_stats)
