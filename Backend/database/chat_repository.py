from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError
from supabase import create_client, Client

from config.settings import Settings
from core.exceptions import DuplicateSequenceError, StorageFailureError
from database.message_store import MessageStore
from models.chat import Conversation, StoredMessage, utc_now

logger = logging.getLogger(__name__)

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


class ChatRepository(MessageStore):
    """
    Repository for chat persistence in Supabase:
    - conversations: id (text), title, created_at, updated_at
    - messages: id (uuid), conversation_id, sender ('user'|'assistant'), text, seq, created_at
      with a unique index on (conversation_id, seq), see database/schema.sql

    supabase-py is blocking, so every call runs in a worker thread.
    """

    def __init__(self, settings: Settings, client: Optional[Client] = None):
        super().__init__(settings.seq_allocation_retries)
        self.settings = settings
        self.client: Client = client or create_client(settings.supabase_url, settings.supabase_key)

        # Table names
        self.t_conversations = "conversations"
        self.t_messages = "messages"

    async def _run(self, operation: str, query) -> List[Dict[str, Any]]:
        try:
            resp = await asyncio.to_thread(query.execute)
            return resp.data or []
        except APIError as e:
            logger.error(f"{operation} failed: {e.code} {e.message}")
            raise
        except Exception as e:
            logger.error(f"{operation} failed: {e}")
            raise StorageFailureError(f"{operation} failed") from e

    @staticmethod
    def _to_conversation(row: Dict[str, Any]) -> Conversation:
        return Conversation(
            conversation_id=row["id"],
            title=row.get("title") or "",
            created_at=row.get("created_at") or utc_now(),
            updated_at=row.get("updated_at") or row.get("created_at") or utc_now(),
        )

    @staticmethod
    def _to_message(row: Dict[str, Any]) -> StoredMessage:
        return StoredMessage(
            conversation_id=row["conversation_id"],
            sender=row["sender"],
            text=row["text"],
            seq=row["seq"],
            created_at=row.get("created_at") or utc_now(),
        )

    # Conversations

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        try:
            rows = await self._run(
                "get_conversation",
                self.client.table(self.t_conversations).select("*").eq("id", conversation_id).limit(1),
            )
        except APIError as e:
            raise StorageFailureError("get_conversation failed") from e
        return self._to_conversation(rows[0]) if rows else None

    async def create_conversation(self, conversation_id: str, title: str = "") -> Conversation:
        payload = {"id": conversation_id, "title": title}
        try:
            await self._run(
                "create_conversation",
                self.client.table(self.t_conversations).upsert(
                    payload, on_conflict="id", ignore_duplicates=True
                ),
            )
        except APIError as e:
            raise StorageFailureError("create_conversation failed") from e

        conversation = await self.get_conversation(conversation_id)
        if conversation is None:
            raise StorageFailureError(f"Conversation {conversation_id} missing after upsert")
        return conversation

    async def update_title(self, conversation_id: str, title: str) -> Optional[Conversation]:
        try:
            rows = await self._run(
                "update_title",
                self.client.table(self.t_conversations)
                .update({"title": title, "updated_at": utc_now().isoformat()})
                .eq("id", conversation_id),
            )
        except APIError as e:
            raise StorageFailureError("update_title failed") from e
        return self._to_conversation(rows[0]) if rows else None

    async def touch(self, conversation_id: str) -> None:
        try:
            await self._run(
                "touch",
                self.client.table(self.t_conversations)
                .update({"updated_at": utc_now().isoformat()})
                .eq("id", conversation_id),
            )
        except APIError as e:
            raise StorageFailureError("touch failed") from e

    # Messages

    async def list_ordered(self, conversation_id: str) -> List[StoredMessage]:
        try:
            rows = await self._run(
                "list_ordered",
                self.client.table(self.t_messages)
                .select("*")
                .eq("conversation_id", conversation_id)
                .order("seq")
                .order("created_at"),
            )
        except APIError as e:
            raise StorageFailureError("list_ordered failed") from e
        return [self._to_message(row) for row in rows]

    async def last_seq(self, conversation_id: str) -> Optional[int]:
        try:
            rows = await self._run(
                "last_seq",
                self.client.table(self.t_messages)
                .select("seq")
                .eq("conversation_id", conversation_id)
                .order("seq", desc=True)
                .limit(1),
            )
        except APIError as e:
            raise StorageFailureError("last_seq failed") from e
        return rows[0]["seq"] if rows else None

    async def _insert(self, conversation_id: str, sender: str, text: str, seq: int) -> StoredMessage:
        message = StoredMessage(conversation_id=conversation_id, sender=sender, text=text, seq=seq)
        payload = {
            "conversation_id": conversation_id,
            "sender": sender,
            "text": text,
            "seq": seq,
            "created_at": message.created_at.isoformat(),
        }
        try:
            rows = await self._run("append", self.client.table(self.t_messages).insert(payload))
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateSequenceError(conversation_id, seq) from e
            raise StorageFailureError("append failed") from e
        return self._to_message(rows[0]) if rows else message
