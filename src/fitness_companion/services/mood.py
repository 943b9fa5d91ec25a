"""Daily mood tracking with one entry per calendar day."""

from datetime import date
from typing import List, Optional, Union

import structlog

from ..domain.models import Mood, MoodEntry, Session, get_mood
from ..repositories.base import KeyValueStore, RowStore
from .synchronizer import DEFAULT_BATCH_SIZE, DualStoreSynchronizer

logger = structlog.get_logger()

MOOD_TABLE = "mood_entries"
MOOD_CACHE_KEY = "moodHistory"
HISTORY_LIMIT = 30


class MoodTracker:
    """Mood history for the current user, keyed by calendar day."""

    def __init__(
        self,
        local: KeyValueStore,
        remote: Optional[RowStore] = None,
        session: Optional[Session] = None,
        history_limit: int = HISTORY_LIMIT,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.session = session
        self.history_limit = history_limit
        self.sync: DualStoreSynchronizer[MoodEntry] = DualStoreSynchronizer(
            local,
            remote,
            table=MOOD_TABLE,
            cache_key=MOOD_CACHE_KEY,
            record_type=MoodEntry,
            order_by="calendar_date",
            key_fields=("calendar_date",),
            batch_size=batch_size,
        )

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user_id if self.session else None

    async def load(self) -> List[MoodEntry]:
        return await self.sync.load(self.user_id)

    async def log_mood(
        self,
        mood: Union[str, Mood],
        day: Optional[date] = None,
        notes: str = "",
    ) -> MoodEntry:
        """Log a mood for a day, replacing any earlier entry for that day."""
        if isinstance(mood, str):
            mood = get_mood(mood)
        day = day or date.today()
        replacing = self.entry_for(day) is not None

        entry = await self.sync.upsert(MoodEntry.from_mood(mood, day, notes), self.user_id)
        logger.info(
            "mood_logged",
            mood=mood.key,
            calendar_date=day.isoformat(),
            updated=replacing,
        )
        return entry

    def entry_for(self, day: date) -> Optional[MoodEntry]:
        return next((e for e in self.sync.records if e.calendar_date == day), None)

    def current_mood(self, today: Optional[date] = None) -> Optional[MoodEntry]:
        """Today's entry, if one was logged."""
        return self.entry_for(today or date.today())

    def logged_today(self, today: Optional[date] = None) -> bool:
        return self.current_mood(today) is not None

    def history(self, limit: Optional[int] = None) -> List[MoodEntry]:
        """Most recent entries first."""
        limit = limit or self.history_limit
        return sorted(self.sync.records, key=lambda e: e.calendar_date, reverse=True)[:limit]

    async def reset(self) -> List[MoodEntry]:
        """Erase every mood entry for the user in both stores."""
        return await self.sync.clear(self.user_id)
