import json
import logging
import re
from typing import Optional

from openai import AsyncOpenAI

from config.settings import Settings
from core.constants import TITLE_MAX_WORDS

logger = logging.getLogger(__name__)


class TitleService:
    """Names a conversation from its first user message"""

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):
        self.settings = settings
        self.enabled = settings.enable_title_generation and bool(settings.openai_api_key)
        self.client = client or (AsyncOpenAI(api_key=settings.openai_api_key) if self.enabled else None)
        self.model = settings.title_model
        self.max_length = settings.title_max_length

    def _clean(self, title: str) -> str:
        cleaned = re.sub(r"[\"'`]", "", title or "")
        cleaned = re.sub(r"[\r\n]+", " ", cleaned).strip()
        return cleaned[:self.max_length]

    def _fallback(self, first_message: str) -> str:
        return self._clean(first_message)

    async def generate(self, first_message: str) -> str:
        """Generate a short title; falls back to the message itself on any failure"""
        if not self.enabled or self.client is None:
            return self._fallback(first_message)

        prompt = (
            f"Create a chat title (max {TITLE_MAX_WORDS} words) based only on this first user message.\n"
            f"Message: {first_message}\n"
            'Rules: Return JSON with a single field "title" only.'
        )

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                response_format={"type": "json_object"},
                temperature=0.3,
                max_tokens=40,
            )
            text = response.choices[0].message.content or ""
        except Exception as e:
            logger.warning(f"Title generation failed: {e}")
            return self._fallback(first_message)

        try:
            parsed = json.loads(text)
            title = parsed.get("title") if isinstance(parsed, dict) else None
        except json.JSONDecodeError:
            title = None

        cleaned = self._clean(title if isinstance(title, str) else text)
        return cleaned or self._fallback(first_message)
