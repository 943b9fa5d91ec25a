"""AI trainer conversation backed by the dual-store synchronizer."""

from typing import List, Optional

import structlog

from ..domain.models import Message, Sender, Session
from ..repositories.base import KeyValueStore, RowStore
from .llm import TrainerLLMService
from .synchronizer import DEFAULT_BATCH_SIZE, DualStoreSynchronizer

logger = structlog.get_logger()

MESSAGES_TABLE = "messages"
CONVERSATION_CACHE_KEY = "trainerConversations"


class TrainerConversation:
    """Chat history with the trainer for the current user."""

    def __init__(
        self,
        local: KeyValueStore,
        remote: Optional[RowStore] = None,
        llm: Optional[TrainerLLMService] = None,
        session: Optional[Session] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.session = session
        self.llm = llm or TrainerLLMService()
        self.sync: DualStoreSynchronizer[Message] = DualStoreSynchronizer(
            local,
            remote,
            table=MESSAGES_TABLE,
            cache_key=CONVERSATION_CACHE_KEY,
            record_type=Message,
            order_by="timestamp",
            seed=lambda: [Message.greeting()],
            batch_size=batch_size,
        )

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user_id if self.session else None

    @property
    def conversations(self) -> List[Message]:
        return list(self.sync.records)

    async def load(self) -> List[Message]:
        return await self.sync.load(self.user_id)

    async def send_message(self, text: str) -> Message:
        """Record the user's turn and the trainer's reply; returns the reply.

        The reply is always recorded, falling back to a fixed text when the
        chat backend is unavailable.
        """
        text = text.strip()
        if not text:
            raise ValueError("Message body is empty")

        await self.sync.append(Message(sender=Sender.USER, body=text), self.user_id)
        reply_text = await self.llm.process_message(self.sync.records)
        reply = Message(sender=Sender.ASSISTANT, body=reply_text)
        await self.sync.append(reply, self.user_id)

        logger.info(
            "message_processed",
            user_message_length=len(text),
            ai_response_length=len(reply_text),
            online=self.user_id is not None,
        )
        return reply

    async def clear_conversations(self) -> List[Message]:
        """Drop the history, leaving a single trainer greeting."""
        return await self.sync.clear(self.user_id)
