"""Domain models for the fitness companion."""

import time
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

GREETING = "Hello! I'm your AI trainer. How can I help you today?"

_last_stamp = 0


def generate_id() -> str:
    """Time-based opaque id, unique within the process."""
    global _last_stamp
    stamp = int(time.time() * 1000)
    if stamp <= _last_stamp:
        stamp = _last_stamp + 1
    _last_stamp = stamp
    return str(stamp)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Sender(str, Enum):
    """Who authored a chat turn."""

    USER = "user"
    ASSISTANT = "assistant"


class TrainingTier(str, Enum):
    """Experience level used by the progress projector."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Session(BaseModel):
    """Authenticated session; absent in local-only mode."""

    user_id: str
    access_token: Optional[str] = None


class Message(BaseModel):
    """A single trainer chat turn."""

    id: str = Field(default_factory=generate_id)
    sender: Sender
    body: str = Field(validation_alias=AliasChoices("body", "message"))
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("sender", mode="before")
    @classmethod
    def _legacy_sender(cls, value):
        # Older caches stored the assistant role as "trainer"
        if value == "trainer":
            return Sender.ASSISTANT
        return value

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Offset-less timestamps are UTC so they order against aware ones
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def greeting(cls) -> "Message":
        return cls(sender=Sender.ASSISTANT, body=GREETING)


class Mood(BaseModel):
    """One option of the fixed mood palette."""

    key: str
    label: str
    icon: str
    color: str


MOOD_PALETTE = {
    "great": Mood(key="great", label="Great", icon="sunny-outline", color="#FFD700"),
    "good": Mood(key="good", label="Good", icon="partly-sunny-outline", color="#4CAF50"),
    "okay": Mood(key="okay", label="Okay", icon="cloudy-outline", color="#2196F3"),
    "bad": Mood(key="bad", label="Bad", icon="rainy-outline", color="#9C27B0"),
    "awful": Mood(key="awful", label="Awful", icon="thunderstorm-outline", color="#F44336"),
}


def get_mood(key: str) -> Mood:
    """Look up a palette entry by key or label."""
    mood = MOOD_PALETTE.get(key.lower())
    if mood is None:
        raise ValueError(f"Unknown mood {key!r}")
    return mood


class MoodEntry(BaseModel):
    """A mood sample for one calendar day."""

    id: str = Field(default_factory=generate_id)
    calendar_date: date
    mood_id: str
    mood_label: str
    mood_icon: str
    mood_color: str
    notes: str = ""

    @classmethod
    def from_mood(cls, mood: Mood, day: date, notes: str = "") -> "MoodEntry":
        return cls(
            calendar_date=day,
            mood_id=mood.key,
            mood_label=mood.label,
            mood_icon=mood.icon,
            mood_color=mood.color,
            notes=notes,
        )


class PersonalRecord(BaseModel):
    """A tracked lift or metric with its goal."""

    id: str = Field(default_factory=generate_id)
    exercise_name: str
    current_value: float
    unit: str = "lbs"
    target_value: Optional[float] = None
    date_achieved: date = Field(default_factory=date.today)

    @model_validator(mode="after")
    def _default_target(self) -> "PersonalRecord":
        if self.target_value is None:
            self.target_value = round(self.current_value * 1.2, 2)
        return self

    @property
    def progress(self) -> float:
        """Fraction of the target reached, capped at 1.0."""
        if not self.target_value:
            return 0.0
        return min(self.current_value / self.target_value, 1.0)


class AggregatedStats(BaseModel):
    """Per-user monthly counters."""

    id: str = Field(default_factory=generate_id)
    user_id: str
    current_month: int
    current_year: int
    prs_this_month: int = 0
    total_workouts: int = 0
    total_minutes: int = 0
    last_updated: datetime = Field(default_factory=utcnow)


class ProjectionPoint(BaseModel):
    """One point of a projected trajectory."""

    point_date: date
    value: float
    label: str


class PredictionDetails(BaseModel):
    """Summary shown alongside a goal projection."""

    exercise_name: str
    current_value: float
    target_value: float
    unit: str
    time_to_goal: str
    progress: float
    improvement_rate: str
    history_count: int
    tier: TrainingTier
    tier_impact: str
