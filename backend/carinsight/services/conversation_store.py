# /carinsight/services/conversation_store.py

import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol

from carinsight.models.conversation import Conversation
from carinsight.workflows.definitions import INITIAL_STAGE

logger = logging.getLogger(__name__)


class ConversationStore(Protocol):
    async def get_by_channel(self, channel_id: str) -> Optional[Conversation]:
        ...

    async def create(self, channel_id: str) -> Conversation:
        ...

    async def update(self, conversation: Conversation) -> bool:
        ...

    async def delete(self, conversation_id: str) -> bool:
        ...


class InMemoryConversationStore:
    """
    Keeps the active conversation of each channel. Stored objects are copies,
    so a turn works on its own snapshot until update() persists it.
    """

    def __init__(self):
        self._by_id: Dict[str, Conversation] = {}
        self._by_channel: Dict[str, str] = {}

    async def get_by_channel(self, channel_id: str) -> Optional[Conversation]:
        conversation_id = self._by_channel.get(channel_id)
        if conversation_id is None:
            return None
        conversation = self._by_id.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def create(self, channel_id: str) -> Conversation:
        conversation = Conversation(channel_id=channel_id, stage=INITIAL_STAGE)
        self._by_id[conversation.id] = conversation
        self._by_channel[channel_id] = conversation.id
        logger.info(f"Created conversation {conversation.id} for channel {channel_id}")
        return conversation.model_copy(deep=True)

    async def update(self, conversation: Conversation) -> bool:
        """Persists the conversation. Returns False when it was deleted meanwhile."""
        if conversation.id not in self._by_id:
            return False
        conversation.updated_at = datetime.now(timezone.utc)
        self._by_id[conversation.id] = conversation.model_copy(deep=True)
        return True

    async def delete(self, conversation_id: str) -> bool:
        conversation = self._by_id.pop(conversation_id, None)
        if conversation is None:
            return False
        if self._by_channel.get(conversation.channel_id) == conversation_id:
            del self._by_channel[conversation.channel_id]
        return True
