"""Trainer reply generation over a pluggable chat backend."""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import structlog
from pydantic import BaseModel

from ..domain.models import Message, Sender

logger = structlog.get_logger()

FALLBACK_REPLY = "I'm having trouble connecting to my AI brain right now. Let's try again in a moment."


class ChatBackend(ABC):
    """Opaque completion service: role/content turns in, text out."""

    @abstractmethod
    async def complete(self, messages: List[Dict[str, str]]) -> Optional[str]:
        """Return the completion text, or None when nothing was produced."""
        pass


class UserProfile(BaseModel):
    """Profile fields the trainer prompt is personalised with."""

    name: Optional[str] = None
    goal: Optional[str] = None
    age: Optional[int] = None
    weight: Optional[float] = None
    height: Optional[float] = None


class TrainerLLMService:
    """Builds the trainer prompt and degrades to a fixed reply on failure."""

    def __init__(
        self,
        backend: Optional[ChatBackend] = None,
        profile: Optional[UserProfile] = None,
        context_window: int = 5,
    ) -> None:
        """Initialize the service."""
        self.backend = backend
        self.profile = profile or UserProfile()
        self.context_window = context_window
        logger.info("llm_service_init", backend_configured=backend is not None)

    def system_prompt(self) -> str:
        p = self.profile
        return (
            "You are an AI personal trainer named BetterU.\n"
            f"The user's name is {p.name or 'the user'}.\n"
            f"Their fitness goal is {p.goal or 'general fitness'}.\n"
            f"Their age is {p.age or 'unknown'}.\n"
            f"Their weight is {f'{p.weight:g} lbs' if p.weight else 'unknown'}.\n"
            f"Their height is {f'{p.height:g} inches' if p.height else 'unknown'}.\n"
            "Provide personalized fitness advice, workout suggestions, form tips, and motivation.\n"
            "Keep responses concise (under 150 words) and focused on fitness."
        )

    def format_messages(self, history: List[Message], latest: str) -> List[Dict[str, str]]:
        """System prompt, the last few turns, then the new user turn."""
        recent = history[-self.context_window :] if self.context_window else []
        turns = [{"role": "system", "content": self.system_prompt()}]
        turns.extend(
            {"role": "user" if m.sender == Sender.USER else "assistant", "content": m.body}
            for m in recent
        )
        turns.append({"role": "user", "content": latest})
        return turns

    async def generate_response(self, message: str, history: Optional[List[Message]] = None) -> str:
        """Ask the backend for a reply; never raises."""
        if self.backend is None:
            logger.warning("llm_backend_missing", fallback=True)
            return FALLBACK_REPLY

        try:
            reply = await self.backend.complete(self.format_messages(history or [], message))
        except Exception as e:
            logger.error("response_generation_error", error=str(e))
            return FALLBACK_REPLY

        if not reply or not reply.strip():
            logger.warning("empty_completion", fallback=True)
            return FALLBACK_REPLY
        return reply.strip()

    async def process_message(self, messages: List[Message]) -> str:
        """Reply to the last message of a conversation."""
        if not messages:
            return FALLBACK_REPLY
        return await self.generate_response(messages[-1].body, messages[:-1])
