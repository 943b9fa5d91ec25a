"""Local-first sync, mood tracking and goal projection for a fitness client."""

from .domain.models import Message, MoodEntry, PersonalRecord, Session, TrainingTier
from .services.mood import MoodTracker
from .services.projection import estimate_time_to_goal, project_trajectory
from .services.records import PersonalRecordBook
from .services.synchronizer import DualStoreSynchronizer
from .services.trainer import TrainerConversation

__all__ = [
    "DualStoreSynchronizer",
    "Message",
    "MoodEntry",
    "MoodTracker",
    "PersonalRecord",
    "PersonalRecordBook",
    "Session",
    "TrainerConversation",
    "TrainingTier",
    "estimate_time_to_goal",
    "project_trajectory",
]
