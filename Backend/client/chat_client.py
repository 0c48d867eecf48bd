import asyncio
import logging
import uuid
from typing import List, Optional, Tuple

import aiohttp

from client.conversation_state import ConversationState, UiMessage
from client.stream_decoder import EventCallback, StreamOutcome, decode_stream
from config.settings import Settings

logger = logging.getLogger(__name__)


class ChatClient:
    """HTTP client for the streaming chat API with proper session management"""

    def __init__(
        self,
        base_url: str,
        state: Optional[ConversationState] = None,
        timeout: int = 300,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.state = state or ConversationState()
        self.timeout = timeout
        self.session = session
        self._owns_session = session is None
        self._session_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, state: Optional[ConversationState] = None) -> "ChatClient":
        return cls(settings.client_base_url, state=state, timeout=settings.client_timeout)

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure we have a valid session"""
        async with self._session_lock:
            if self.session is None or self.session.closed:
                self.session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self.timeout, sock_read=self.timeout),
                )
                self._owns_session = True
            return self.session

    async def close(self):
        """Properly close the session"""
        async with self._session_lock:
            if self._owns_session and self.session and not self.session.closed:
                await self.session.close()
            self.session = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def load_conversation(self, conversation_id: str) -> Optional[List[UiMessage]]:
        """
        Rebuild local messages from the server.

        Returns None when the server does not know the conversation; the
        local copy is left untouched in that case.
        """
        session = await self._ensure_session()
        async with session.get(self._url(f"/conversations/{conversation_id}/messages")) as resp:
            if resp.status == 404:
                return None
            resp.raise_for_status()
            data = await resp.json()

        messages = [
            UiMessage(
                role="user" if m.get("sender") == "user" else "assistant",
                content=m.get("text", ""),
            )
            for m in data.get("messages", [])
        ]
        self.state.set_messages(conversation_id, messages)
        return messages

    async def create_conversation(
        self,
        first_message: str,
        conversation_id: Optional[str] = None,
        on_event: Optional[EventCallback] = None,
    ) -> Tuple[str, StreamOutcome]:
        """
        Start a conversation: the id is minted here, the first message is
        shown immediately, then the server stores it and a reply is streamed.

        Returns:
            (conversation_id, outcome of the first reply stream)
        """
        content = first_message.strip()
        if not content:
            raise ValueError("first_message must not be empty")

        conversation_id = conversation_id or str(uuid.uuid4())
        self.state.set_messages(conversation_id, [UiMessage(role="user", content=content)])

        session = await self._ensure_session()
        payload = {"conversationId": conversation_id, "firstMessage": content, "sender": "user"}
        async with session.post(self._url("/conversations"), json=payload) as resp:
            resp.raise_for_status()

        outcome = await self.request_reply(conversation_id, on_event=on_event)
        return conversation_id, outcome

    async def send_message(
        self,
        conversation_id: str,
        text: str,
        on_event: Optional[EventCallback] = None,
    ) -> Optional[StreamOutcome]:
        """
        Send a user message and stream the reply into local state.

        Returns None when nothing was sent (empty text, or a reply for this
        conversation is already streaming).
        """
        content = text.strip()
        if not content:
            return None
        if self.state.is_streaming(conversation_id):
            logger.warning(f"Conversation {conversation_id} is already streaming, ignoring send")
            return None

        # Optimistic: visible before the server has stored it
        self.state.add_message(conversation_id, UiMessage(role="user", content=content))

        return await self._stream(
            conversation_id,
            "POST",
            f"/conversations/{conversation_id}/messages",
            json={"sender": "user", "text": content},
            on_event=on_event,
        )

    async def request_reply(
        self, conversation_id: str, on_event: Optional[EventCallback] = None
    ) -> StreamOutcome:
        """Ask for a reply to the last, unanswered user message"""
        return await self._stream(
            conversation_id, "POST", f"/conversations/{conversation_id}/reply", on_event=on_event
        )

    async def _stream(
        self,
        conversation_id: str,
        method: str,
        path: str,
        json: Optional[dict] = None,
        on_event: Optional[EventCallback] = None,
    ) -> StreamOutcome:
        session = await self._ensure_session()

        with self.state.streaming(conversation_id):
            try:
                async with session.request(method, self._url(path), json=json) as resp:
                    if resp.status != 200:
                        body = await resp.text()
                        logger.error(f"Reply request for {conversation_id} failed: {resp.status} {body[:200]}")
                        return StreamOutcome(error=f"HTTP {resp.status}")

                    return await decode_stream(
                        resp.content.iter_any(), self.state, conversation_id, on_event=on_event
                    )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error(f"Reply stream for {conversation_id} interrupted: {e}")
                return StreamOutcome(error=str(e) or type(e).__name__)
