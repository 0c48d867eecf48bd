from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from core.exceptions import DuplicateSequenceError, StorageFailureError
from models.chat import Conversation, StoredMessage, utc_now

logger = logging.getLogger(__name__)


class MessageStore(ABC):
    """
    Conversation metadata plus a per-conversation ordered message log.

    Implementations must reject a second insert for the same
    (conversation_id, seq) with DuplicateSequenceError. That constraint is what
    keeps sequence numbers unique when two requests race on one conversation.
    """

    def __init__(self, seq_allocation_retries: int = 5):
        self.seq_allocation_retries = seq_allocation_retries

    # Conversations

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        pass

    @abstractmethod
    async def create_conversation(self, conversation_id: str, title: str = "") -> Conversation:
        """Insert the conversation if missing; return the stored record"""
        pass

    @abstractmethod
    async def update_title(self, conversation_id: str, title: str) -> Optional[Conversation]:
        pass

    @abstractmethod
    async def touch(self, conversation_id: str) -> None:
        pass

    # Messages

    @abstractmethod
    async def list_ordered(self, conversation_id: str) -> List[StoredMessage]:
        pass

    @abstractmethod
    async def last_seq(self, conversation_id: str) -> Optional[int]:
        pass

    @abstractmethod
    async def _insert(self, conversation_id: str, sender: str, text: str, seq: int) -> StoredMessage:
        pass

    async def append(
        self,
        conversation_id: str,
        sender: str,
        text: str,
        seq: Optional[int] = None,
    ) -> StoredMessage:
        """
        Append a message.

        With an explicit seq the insert either succeeds at exactly that seq or
        raises DuplicateSequenceError. Without one, the store allocates
        last_seq + 1 and retries with a fresh value when another writer wins.
        """
        if seq is not None:
            return await self._insert(conversation_id, sender, text, seq)

        for attempt in range(1, self.seq_allocation_retries + 1):
            last = await self.last_seq(conversation_id)
            candidate = 0 if last is None else last + 1
            try:
                return await self._insert(conversation_id, sender, text, candidate)
            except DuplicateSequenceError:
                logger.info(
                    f"seq {candidate} taken in conversation {conversation_id}, "
                    f"retrying ({attempt}/{self.seq_allocation_retries})"
                )

        raise StorageFailureError(
            f"Could not allocate a sequence number in conversation {conversation_id} "
            f"after {self.seq_allocation_retries} attempts"
        )

    async def close(self) -> None:
        pass


class InMemoryMessageStore(MessageStore):
    """Process-local store used for development and tests"""

    def __init__(self, seq_allocation_retries: int = 5):
        super().__init__(seq_allocation_retries)
        self._conversations: Dict[str, Conversation] = {}
        self._messages: Dict[str, List[StoredMessage]] = {}
        self._lock = asyncio.Lock()

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    async def create_conversation(self, conversation_id: str, title: str = "") -> Conversation:
        async with self._lock:
            existing = self._conversations.get(conversation_id)
            if existing is not None:
                return existing
            conversation = Conversation(conversation_id=conversation_id, title=title)
            self._conversations[conversation_id] = conversation
            return conversation

    async def update_title(self, conversation_id: str, title: str) -> Optional[Conversation]:
        async with self._lock:
            existing = self._conversations.get(conversation_id)
            if existing is None:
                return None
            updated = existing.model_copy(update={"title": title, "updated_at": utc_now()})
            self._conversations[conversation_id] = updated
            return updated

    async def touch(self, conversation_id: str) -> None:
        async with self._lock:
            existing = self._conversations.get(conversation_id)
            if existing is not None:
                self._conversations[conversation_id] = existing.model_copy(update={"updated_at": utc_now()})

    async def list_ordered(self, conversation_id: str) -> List[StoredMessage]:
        messages = list(self._messages.get(conversation_id, []))
        return sorted(messages, key=lambda m: (m.seq, m.created_at))

    async def last_seq(self, conversation_id: str) -> Optional[int]:
        messages = self._messages.get(conversation_id)
        if not messages:
            return None
        return max(m.seq for m in messages)

    async def _insert(self, conversation_id: str, sender: str, text: str, seq: int) -> StoredMessage:
        async with self._lock:
            messages = self._messages.setdefault(conversation_id, [])
            if any(m.seq == seq for m in messages):
                raise DuplicateSequenceError(conversation_id, seq)
            message = StoredMessage(conversation_id=conversation_id, sender=sender, text=text, seq=seq)
            messages.append(message)
            return message
