import asyncio
import json
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from config.settings import Settings
from core.exceptions import ProviderFailureError
from database.message_store import InMemoryMessageStore
from services.completion_provider import CompletionProvider
from services.title_service import TitleService


class ScriptedProvider(CompletionProvider):
    """Emits a fixed list of fragments; optionally fails after `fail_after` of them"""

    def __init__(self, fragments=(), fail_after: Optional[int] = None, delay: float = 0.0):
        self.fragments = list(fragments)
        self.fail_after = fail_after
        self.delay = delay
        self.calls: List[list] = []
        self.closed_streams = 0

    async def stream(self, messages):
        self.calls.append([dict(m) for m in messages])
        try:
            emit = self.fragments if self.fail_after is None else self.fragments[:self.fail_after]
            for fragment in emit:
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield fragment
            if self.fail_after is not None:
                raise ProviderFailureError("scripted provider failure")
        finally:
            self.closed_streams += 1


class YieldingStore(InMemoryMessageStore):
    """Suspends after reading last_seq so concurrent writers can interleave"""

    async def last_seq(self, conversation_id):
        value = await super().last_seq(conversation_id)
        await asyncio.sleep(0)
        return value


def run(coro):
    return asyncio.run(coro)


def parse_sse(body: str) -> List[dict]:
    events = []
    for line in body.split("\n"):
        if line.startswith("data: "):
            events.append(json.loads(line[len("data: "):]))
    return events


@pytest.fixture
def settings():
    return Settings(
        storage_backend="memory",
        openai_api_key="test-key",
        enable_title_generation=False,
        debug_mode=True,
        stream_max_duration=5.0,
    )


@pytest.fixture
def store(settings):
    return InMemoryMessageStore(settings.seq_allocation_retries)


@pytest.fixture
def provider():
    return ScriptedProvider(["Hi", " there", "!"])


@pytest.fixture
def make_client(settings, store):
    clients = []

    def _make(provider, app_settings=None, app_store=None):
        app = create_app(
            settings=app_settings or settings,
            store=app_store or store,
            provider=provider,
            title_service=TitleService(app_settings or settings),
        )
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client, provider):
    return make_client(provider)
