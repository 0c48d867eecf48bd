from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List, Optional
import logging

from openai import AsyncOpenAI

from config.settings import Settings
from core.exceptions import ProviderFailureError

logger = logging.getLogger(__name__)


class CompletionProvider(ABC):
    """Produces a reply as a lazy sequence of text fragments"""

    @abstractmethod
    def stream(self, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        """
        Stream a reply for the given role-tagged messages.

        Args:
            messages: ordered [{"role": ..., "content": ...}] history

        Yields:
            Non-empty text fragments in generation order

        Raises:
            ProviderFailureError: generation failed at any point
        """
        pass

    async def close(self) -> None:
        pass


class OpenAICompletionProvider(CompletionProvider):
    """Chat completions over the OpenAI streaming API"""

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):
        self.settings = settings
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        config = settings.get_llm_config()
        self.model = config["model"]
        self.temperature = config["temperature"]
        self.max_tokens = config["max_tokens"]
        self.system_prompt = config["system_prompt"]

    def _build_messages(self, messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
        prepared = []
        if self.system_prompt:
            prepared.append({"role": "system", "content": self.system_prompt})
        prepared.extend(messages)
        return prepared

    async def stream(self, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=self._build_messages(messages),
                stream=True,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            logger.error(f"OpenAI stream request failed: {e}")
            raise ProviderFailureError("Completion request failed") from e

        # Closing the response releases the HTTP connection, which stops
        # generation on the provider side when the relay is abandoned.
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                fragment = chunk.choices[0].delta.content
                if fragment:
                    yield fragment
        except Exception as e:
            logger.error(f"OpenAI stream failed mid-response: {e}")
            raise ProviderFailureError("Completion stream failed") from e
        finally:
            await response.close()

    async def close(self) -> None:
        await self.client.close()
