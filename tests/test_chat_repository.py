from types import SimpleNamespace

import pytest
from postgrest.exceptions import APIError

from core.exceptions import DuplicateSequenceError, StorageFailureError
from database.chat_repository import ChatRepository

from conftest import run

CONV = "conv-1"


def api_error(code: str, message: str = "rejected") -> APIError:
    return APIError({"code": code, "message": message, "details": None, "hint": None})


class FakeQuery:
    """Records the builder chain; execute() asks the owning client for the outcome"""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.calls = []

    def __getattr__(self, name):
        def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return method

    def execute(self):
        self.client.executed.append((self.table, [name for name, _, _ in self.calls]))
        outcome = self.client.handler(self.table, self.calls)
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(data=outcome)


class FakeSupabase:
    def __init__(self, handler):
        self.handler = handler
        self.executed = []

    def table(self, name):
        return FakeQuery(self, name)


class FakeMessagesTable:
    """Tiny messages table with the (conversation_id, seq) unique constraint"""

    def __init__(self, seqs=(), stale_reads=0):
        self.seqs = set(seqs)
        self.stale_reads = stale_reads

    def __call__(self, table, calls):
        names = [name for name, _, _ in calls]
        if "insert" in names:
            payload = calls[names.index("insert")][1][0]
            if payload["seq"] in self.seqs:
                return api_error("23505", "duplicate key value violates unique constraint")
            self.seqs.add(payload["seq"])
            return [payload]
        if "limit" in names:
            if self.stale_reads:
                self.stale_reads -= 1
                return [{"seq": min(self.seqs)}] if self.seqs else []
            return [{"seq": max(self.seqs)}] if self.seqs else []
        return []


def repository(settings, handler):
    return ChatRepository(settings, client=FakeSupabase(handler))


def test_insert_returns_stored_row(settings):
    repo = repository(settings, FakeMessagesTable())

    message = run(repo.append(CONV, "user", "Hello", seq=0))

    assert (message.conversation_id, message.sender, message.text, message.seq) == (CONV, "user", "Hello", 0)


def test_unique_violation_maps_to_duplicate_sequence(settings):
    repo = repository(settings, FakeMessagesTable(seqs={0}))

    with pytest.raises(DuplicateSequenceError) as exc:
        run(repo.append(CONV, "assistant", "Hi", seq=0))
    assert exc.value.seq == 0


def test_allocation_skips_seqs_taken_by_other_writers(settings):
    table = FakeMessagesTable(seqs={0, 1}, stale_reads=1)
    repo = repository(settings, table)

    message = run(repo.append(CONV, "user", "Hello"))

    assert message.seq == 2
    assert table.seqs == {0, 1, 2}


def test_other_api_errors_become_storage_failures(settings):
    repo = repository(settings, lambda table, calls: api_error("42501", "permission denied"))

    with pytest.raises(StorageFailureError) as exc:
        run(repo.append(CONV, "user", "Hello", seq=0))
    assert not isinstance(exc.value, DuplicateSequenceError)


def test_transport_errors_become_storage_failures(settings):
    repo = repository(settings, lambda table, calls: ConnectionError("connection reset"))

    with pytest.raises(StorageFailureError):
        run(repo.list_ordered(CONV))


def test_list_ordered_maps_rows_in_query_order(settings):
    rows = [
        {"conversation_id": CONV, "sender": "user", "text": "Hello", "seq": 0, "created_at": "2024-05-01T10:00:00+00:00"},
        {"conversation_id": CONV, "sender": "assistant", "text": "Hi", "seq": 1, "created_at": "2024-05-01T10:00:01+00:00"},
    ]
    client = FakeSupabase(lambda table, calls: rows)
    repo = ChatRepository(settings, client=client)

    messages = run(repo.list_ordered(CONV))

    assert [(m.sender, m.seq) for m in messages] == [("user", 0), ("assistant", 1)]
    assert client.executed == [("messages", ["select", "eq", "order", "order"])]


def test_get_conversation_returns_none_when_missing(settings):
    repo = repository(settings, lambda table, calls: [])

    assert run(repo.get_conversation("missing")) is None
