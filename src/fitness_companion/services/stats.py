"""Monthly aggregate counters kept in the remote store."""

from datetime import datetime
from typing import Optional

import structlog

from ..domain.models import AggregatedStats, utcnow
from ..metrics import REMOTE_FAILURES
from ..repositories.base import RowStore

logger = structlog.get_logger()

STATS_TABLE = "aggregated_stats"


class StatsRecorder:
    """Upserts one stats row per user and calendar month."""

    def __init__(self, remote: Optional[RowStore]) -> None:
        self.remote = remote

    @staticmethod
    def _filters(user_id: str, now: datetime) -> dict:
        return {"user_id": user_id, "current_month": now.month, "current_year": now.year}

    async def get(self, user_id: str, now: Optional[datetime] = None) -> Optional[AggregatedStats]:
        if self.remote is None or not user_id:
            return None
        now = now or utcnow()
        try:
            rows = await self.remote.select(STATS_TABLE, self._filters(user_id, now))
            return AggregatedStats.model_validate(rows[0]) if rows else None
        except Exception as e:
            logger.error("stats_fetch_failed", user_id=user_id, error=str(e))
            REMOTE_FAILURES.labels(table=STATS_TABLE, operation="select").inc()
            return None

    async def _bump(self, user_id: Optional[str], now: Optional[datetime], **increments: int) -> Optional[AggregatedStats]:
        if self.remote is None or not user_id:
            return None
        now = now or utcnow()
        filters = self._filters(user_id, now)
        try:
            rows = await self.remote.select(STATS_TABLE, filters)
            if rows:
                stats = AggregatedStats.model_validate(rows[0])
                values = {name: getattr(stats, name) + amount for name, amount in increments.items()}
                values["last_updated"] = now.isoformat()
                await self.remote.update(STATS_TABLE, values, {"id": stats.id})
                stats = stats.model_copy(update={**values, "last_updated": now})
            else:
                stats = AggregatedStats(
                    user_id=user_id,
                    current_month=now.month,
                    current_year=now.year,
                    last_updated=now,
                    **increments,
                )
                await self.remote.insert(STATS_TABLE, [stats.model_dump(mode="json")])
        except Exception as e:
            logger.error("stats_update_failed", user_id=user_id, error=str(e))
            REMOTE_FAILURES.labels(table=STATS_TABLE, operation="upsert").inc()
            return None

        logger.info("stats_updated", user_id=user_id, **increments)
        return stats

    async def record_personal_record(
        self, user_id: Optional[str], now: Optional[datetime] = None
    ) -> Optional[AggregatedStats]:
        """Count a new personal record in this month's stats."""
        return await self._bump(user_id, now, prs_this_month=1)

    async def record_workout(
        self, user_id: Optional[str], minutes: int, now: Optional[datetime] = None
    ) -> Optional[AggregatedStats]:
        """Count a finished workout and its duration."""
        return await self._bump(user_id, now, total_workouts=1, total_minutes=minutes)
