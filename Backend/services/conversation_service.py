import logging
from typing import List, Tuple

from core.constants import DEFAULT_TITLE, Sender
from core.exceptions import (
    ConversationNotFoundError,
    DuplicateSequenceError,
    InvalidPayloadError,
    StorageFailureError,
)
from database.message_store import MessageStore
from models.chat import Conversation, StoredMessage
from services.title_service import TitleService

logger = logging.getLogger(__name__)


class ConversationService:
    """Creation pathway for new conversations and history reads"""

    def __init__(self, store: MessageStore, title_service: TitleService):
        self.store = store
        self.title_service = title_service

    async def create_with_first_message(
        self, conversation_id: str, first_message: str, sender: str = "user"
    ) -> Tuple[Conversation, List[StoredMessage]]:
        """
        Create the conversation (idempotent for an existing id) and store the
        first user message at seq 0 unless one is already there.
        """
        if not conversation_id or not conversation_id.strip():
            raise InvalidPayloadError("conversationId is required")
        if not isinstance(first_message, str) or not first_message.strip():
            raise InvalidPayloadError("firstMessage must be a non-empty string")
        if sender != Sender.USER.value:
            raise InvalidPayloadError("the first message must come from the user")

        conversation = await self.store.create_conversation(conversation_id)

        try:
            await self.store.append(conversation_id, Sender.USER.value, first_message, seq=0)
        except DuplicateSequenceError:
            logger.info(f"Conversation {conversation_id} already has a first message")

        messages = await self.store.list_ordered(conversation_id)

        if not conversation.title:
            conversation = await self._assign_title(conversation, first_message)

        return conversation, messages

    async def _assign_title(self, conversation: Conversation, first_message: str) -> Conversation:
        title = await self.title_service.generate(first_message) or DEFAULT_TITLE
        try:
            updated = await self.store.update_title(conversation.conversation_id, title)
        except StorageFailureError as e:
            logger.warning(f"Saving title for {conversation.conversation_id} failed: {e}")
            return conversation
        return updated or conversation

    async def get_with_messages(self, conversation_id: str) -> Tuple[Conversation, List[StoredMessage]]:
        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        messages = await self.store.list_ordered(conversation_id)
        return conversation, messages
