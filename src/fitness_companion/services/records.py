"""Personal records, their goals and progress projections."""

from datetime import date
from typing import List, Optional

import structlog

from ..domain.models import PersonalRecord, PredictionDetails, ProjectionPoint, Session, TrainingTier
from ..repositories.base import KeyValueStore, RowStore
from .projection import describe_prediction, estimate_time_to_goal, project_trajectory
from .stats import StatsRecorder
from .synchronizer import DEFAULT_BATCH_SIZE, DualStoreSynchronizer

logger = structlog.get_logger()

RECORDS_TABLE = "personal_records"
RECORDS_CACHE_KEY = "personalRecords"


class PersonalRecordBook:
    """Create, edit and delete personal records and project their goals."""

    def __init__(
        self,
        local: KeyValueStore,
        remote: Optional[RowStore] = None,
        session: Optional[Session] = None,
        tier: TrainingTier = TrainingTier.INTERMEDIATE,
        body_weight: Optional[float] = None,
        stats: Optional[StatsRecorder] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.session = session
        self.tier = tier
        self.body_weight = body_weight
        self.stats = stats if stats is not None else StatsRecorder(remote)
        self.sync: DualStoreSynchronizer[PersonalRecord] = DualStoreSynchronizer(
            local,
            remote,
            table=RECORDS_TABLE,
            cache_key=RECORDS_CACHE_KEY,
            record_type=PersonalRecord,
            order_by="date_achieved",
            batch_size=batch_size,
        )

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user_id if self.session else None

    @property
    def records(self) -> List[PersonalRecord]:
        return list(self.sync.records)

    async def load(self) -> List[PersonalRecord]:
        return await self.sync.load(self.user_id)

    def get(self, record_id: str) -> PersonalRecord:
        for record in self.sync.records:
            if record.id == record_id:
                return record
        raise KeyError(f"Personal record {record_id} not found")

    async def add(
        self,
        exercise_name: str,
        current_value: float,
        unit: str = "lbs",
        target_value: Optional[float] = None,
        date_achieved: Optional[date] = None,
    ) -> PersonalRecord:
        """Log a new record; the target defaults to 20% above the value."""
        record = PersonalRecord(
            exercise_name=exercise_name,
            current_value=current_value,
            unit=unit,
            target_value=target_value,
            date_achieved=date_achieved or date.today(),
        )
        await self.sync.append(record, self.user_id)
        await self.stats.record_personal_record(self.user_id)
        logger.info("personal_record_added", exercise=exercise_name, value=current_value)
        return record

    async def update(self, record_id: str, **changes) -> Optional[PersonalRecord]:
        return await self.sync.replace(record_id, changes, self.user_id)

    async def delete(self, record_id: str) -> bool:
        return await self.sync.remove(record_id, self.user_id)

    def history_for(self, exercise_name: str) -> List[PersonalRecord]:
        """Every record logged for an exercise, oldest first."""
        name = exercise_name.strip().lower()
        matches = [r for r in self.sync.records if r.exercise_name.strip().lower() == name]
        return sorted(matches, key=lambda r: r.date_achieved)

    def time_to_goal(self, record_id: str) -> str:
        record = self.get(record_id)
        return estimate_time_to_goal(
            record.current_value,
            record.target_value,
            self.tier,
            self.history_for(record.exercise_name),
            self.body_weight,
        )

    def trajectory(self, record_id: str, start: Optional[date] = None) -> List[ProjectionPoint]:
        record = self.get(record_id)
        return project_trajectory(
            record.current_value, record.target_value, self.time_to_goal(record_id), start
        )

    def prediction(self, record_id: str) -> PredictionDetails:
        record = self.get(record_id)
        return describe_prediction(
            record, self.history_for(record.exercise_name), self.tier, self.body_weight
        )
