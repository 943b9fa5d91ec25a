"""Runtime configuration read from the environment."""

import os
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from .domain.models import Session, TrainingTier
from .repositories.base import KeyValueStore, RowStore
from .repositories.local_file import JsonFileKeyValueStore
from .repositories.postgrest import PostgrestRowStore
from .services.llm import TrainerLLMService
from .services.mood import MoodTracker
from .services.records import PersonalRecordBook
from .services.trainer import TrainerConversation

logger = structlog.get_logger()

ENV_PREFIX = "FITNESS_"


class Settings(BaseModel):
    """Settings for stores and sync behaviour."""

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    local_store_path: str = "~/.fitness_companion/store.json"
    push_batch_size: int = Field(default=100, ge=1)
    history_limit: int = Field(default=30, ge=1)
    training_tier: TrainingTier = TrainingTier.INTERMEDIATE

    @classmethod
    def from_env(cls) -> "Settings":
        values = {}
        for name in cls.model_fields:
            raw = os.getenv(ENV_PREFIX + name.upper())
            if raw is not None and raw != "":
                values[name] = raw
        return cls(**values)

    @property
    def remote_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
        logger.info(
            "settings_loaded",
            remote_configured=_settings.remote_configured,
            training_tier=_settings.training_tier.value,
        )
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next call rereads the environment."""
    global _settings
    _settings = None


def build_local_store(settings: Optional[Settings] = None) -> KeyValueStore:
    settings = settings or get_settings()
    return JsonFileKeyValueStore(settings.local_store_path)


def build_remote_store(
    settings: Optional[Settings] = None,
    session: Optional[Session] = None,
) -> Optional[RowStore]:
    """Remote store for the configured project, or None in local-only mode."""
    settings = settings or get_settings()
    if not settings.remote_configured:
        logger.warning("remote_store_not_configured")
        return None
    return PostgrestRowStore(
        settings.supabase_url,
        settings.supabase_key,
        access_token=session.access_token if session else None,
    )


def _stores(
    settings: Settings,
    session: Optional[Session],
    local: Optional[KeyValueStore],
    remote: Optional[RowStore],
):
    local = local if local is not None else build_local_store(settings)
    if remote is None and session is not None:
        remote = build_remote_store(settings, session)
    return local, remote


def build_trainer(
    settings: Optional[Settings] = None,
    session: Optional[Session] = None,
    llm: Optional[TrainerLLMService] = None,
    local: Optional[KeyValueStore] = None,
    remote: Optional[RowStore] = None,
) -> TrainerConversation:
    settings = settings or get_settings()
    local, remote = _stores(settings, session, local, remote)
    return TrainerConversation(
        local, remote, llm=llm, session=session, batch_size=settings.push_batch_size
    )


def build_mood_tracker(
    settings: Optional[Settings] = None,
    session: Optional[Session] = None,
    local: Optional[KeyValueStore] = None,
    remote: Optional[RowStore] = None,
) -> MoodTracker:
    settings = settings or get_settings()
    local, remote = _stores(settings, session, local, remote)
    return MoodTracker(
        local,
        remote,
        session=session,
        history_limit=settings.history_limit,
        batch_size=settings.push_batch_size,
    )


def build_record_book(
    settings: Optional[Settings] = None,
    session: Optional[Session] = None,
    body_weight: Optional[float] = None,
    local: Optional[KeyValueStore] = None,
    remote: Optional[RowStore] = None,
) -> PersonalRecordBook:
    """Record book projecting goals with the configured training tier."""
    settings = settings or get_settings()
    local, remote = _stores(settings, session, local, remote)
    return PersonalRecordBook(
        local,
        remote,
        session=session,
        tier=settings.training_tier,
        body_weight=body_weight,
        batch_size=settings.push_batch_size,
    )
