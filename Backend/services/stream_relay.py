from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from config.settings import Settings
from core.constants import (
    GENERIC_PROVIDER_ERROR,
    SENDER_ALIASES,
    STREAM_TIMEOUT_ERROR,
    Sender,
)
from core.exceptions import (
    ConversationNotFoundError,
    DuplicateSequenceError,
    InvalidPayloadError,
    StorageFailureError,
)
from database.message_store import MessageStore
from models.chat import StoredMessage
from models.stream_events import CompleteEvent, ErrorEvent
from services.completion_provider import CompletionProvider
from utils.sse import chunk_event, encode_event

logger = logging.getLogger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]


@dataclass
class RelayResult:
    """Either an acknowledgement (ordered message list) or a reply stream"""
    messages: List[StoredMessage] = field(default_factory=list)
    stream: Optional[AsyncIterator[bytes]] = None

    @property
    def is_stream(self) -> bool:
        return self.stream is not None


class StreamRelay:
    """
    Turns one incoming message into a persisted exchange.

    The user message is stored, the full ordered history goes to the
    completion provider, every fragment is forwarded as a chunk event as soon
    as it arrives, and the assembled reply is stored when the provider
    finishes. Failures after streaming has started are reported in-band as an
    error event.
    """

    def __init__(self, settings: Settings, store: MessageStore, provider: CompletionProvider):
        self.settings = settings
        self.store = store
        self.provider = provider
        # conversation id -> number of replies currently being generated
        self._active: Dict[str, int] = {}

    def is_generating(self, conversation_id: str) -> bool:
        return self._active.get(conversation_id, 0) > 0

    def validate(self, sender: str, text: str) -> Tuple[Sender, str]:
        role = SENDER_ALIASES.get(sender) if isinstance(sender, str) else None
        if role is None:
            raise InvalidPayloadError(f"sender must be one of: {', '.join(SENDER_ALIASES)}")
        if not isinstance(text, str) or not text.strip():
            raise InvalidPayloadError("text must be a non-empty string")
        if len(text) > self.settings.max_message_length:
            raise InvalidPayloadError(
                f"text exceeds maximum length of {self.settings.max_message_length} characters"
            )
        return role, text

    async def handle_incoming_message(
        self,
        conversation_id: str,
        sender: str,
        text: str,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> RelayResult:
        role, text = self.validate(sender, text)

        if await self.store.get_conversation(conversation_id) is None:
            raise ConversationNotFoundError(conversation_id)

        last = await self.store.last_seq(conversation_id)
        next_seq = 0 if last is None else last + 1

        stored_seq = await self._persist_incoming(conversation_id, role, text, next_seq)

        if role is not Sender.USER:
            messages = await self._load_history(conversation_id)
            return RelayResult(messages=messages)

        history = await self._load_history(conversation_id)
        context = self._to_context(history)

        if stored_seq is None:
            # Not in storage, but the reply must still answer this message
            if not context or context[-1] != {"role": "user", "content": text}:
                context.append({"role": "user", "content": text})
            stored_seq = next_seq

        logger.info(
            f"Streaming reply for conversation {conversation_id} "
            f"({len(context)} messages, user seq {stored_seq})"
        )
        return RelayResult(
            stream=self._generate(conversation_id, context, stored_seq + 1, is_disconnected)
        )

    async def resume(
        self,
        conversation_id: str,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> RelayResult:
        """
        Stream a reply for a conversation whose last message is an unanswered
        user message (a brand-new conversation, or one whose previous
        generation failed). Nothing new is stored for the user.
        """
        if await self.store.get_conversation(conversation_id) is None:
            raise ConversationNotFoundError(conversation_id)

        if self.is_generating(conversation_id):
            raise InvalidPayloadError("A reply is already being generated for this conversation")

        history = await self._load_history(conversation_id)
        if not history or history[-1].sender != Sender.USER.value:
            raise InvalidPayloadError("Conversation is not awaiting a reply")

        logger.info(f"Resuming reply for conversation {conversation_id} at seq {history[-1].seq + 1}")
        return RelayResult(
            stream=self._generate(
                conversation_id, self._to_context(history), history[-1].seq + 1, is_disconnected
            )
        )

    @staticmethod
    def _to_context(history: List[StoredMessage]) -> List[Dict[str, str]]:
        return [
            {
                "role": "user" if m.sender == Sender.USER.value else "assistant",
                "content": m.text,
            }
            for m in history
        ]

    async def _persist_incoming(
        self, conversation_id: str, role: Sender, text: str, next_seq: int
    ) -> Optional[int]:
        """Store the incoming message; returns its seq, or None if storing failed"""
        try:
            stored = await self._append(conversation_id, role.value, text, next_seq)
            return stored.seq
        except StorageFailureError as e:
            if self.settings.strict_message_persistence:
                raise
            logger.error(f"Persisting {role.value} message in {conversation_id} failed, continuing: {e}")
            return None

    async def _append(self, conversation_id: str, sender: str, text: str, seq: int) -> StoredMessage:
        try:
            return await self.store.append(conversation_id, sender, text, seq=seq)
        except DuplicateSequenceError:
            # Another writer took this seq; take the next free one instead
            logger.warning(f"seq {seq} already used in {conversation_id}, allocating a fresh one")
            return await self.store.append(conversation_id, sender, text)

    async def _load_history(self, conversation_id: str) -> List[StoredMessage]:
        try:
            return await self.store.list_ordered(conversation_id)
        except StorageFailureError:
            logger.error(f"Loading history for {conversation_id} failed")
            raise

    async def _generate(
        self,
        conversation_id: str,
        context: List[Dict[str, str]],
        reply_seq: int,
        is_disconnected: Optional[DisconnectCheck],
    ) -> AsyncIterator[bytes]:
        self._active[conversation_id] = self._active.get(conversation_id, 0) + 1
        try:
            loop = asyncio.get_running_loop()
            deadline = loop.time() + self.settings.stream_max_duration
            fragments: List[str] = []
            producer = self.provider.stream(context)

            try:
                while True:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        raise asyncio.TimeoutError()
                    try:
                        fragment = await asyncio.wait_for(producer.__anext__(), timeout=remaining)
                    except StopAsyncIteration:
                        break

                    if not fragment:
                        continue
                    fragments.append(fragment)
                    yield encode_event(chunk_event(fragment))

                    if is_disconnected is not None and await is_disconnected():
                        logger.info(
                            f"Client left conversation {conversation_id} after "
                            f"{len(fragments)} fragments, dropping partial reply"
                        )
                        return
            except asyncio.TimeoutError:
                logger.error(
                    f"Reply for {conversation_id} exceeded {self.settings.stream_max_duration}s, aborting"
                )
                yield encode_event(ErrorEvent(error=STREAM_TIMEOUT_ERROR))
                return
            except Exception as e:
                logger.error(f"Streaming failed for {conversation_id}: {e}")
                yield encode_event(ErrorEvent(error=GENERIC_PROVIDER_ERROR))
                return
            finally:
                await producer.aclose()

            full_text = "".join(fragments)
            if full_text:
                await self._persist_reply(conversation_id, full_text, reply_seq)

            yield encode_event(CompleteEvent(content=full_text))
        finally:
            self._release(conversation_id)

    def _release(self, conversation_id: str) -> None:
        remaining = self._active.get(conversation_id, 0) - 1
        if remaining > 0:
            self._active[conversation_id] = remaining
        else:
            self._active.pop(conversation_id, None)

    async def _persist_reply(self, conversation_id: str, text: str, seq: int) -> None:
        try:
            stored = await self._append(conversation_id, Sender.ASSISTANT.value, text, seq)
            logger.info(f"Stored reply for {conversation_id} at seq {stored.seq}")
        except StorageFailureError as e:
            logger.error(f"Persisting reply for {conversation_id} failed: {e}")
            return

        try:
            await self.store.touch(conversation_id)
        except StorageFailureError as e:
            logger.warning(f"Updating conversation timestamp failed: {e}")
