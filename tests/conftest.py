"""Pytest configuration and fixtures for the sync connector tests."""

import os
from unittest.mock import AsyncMock, patch

import pytest

from config.settings import Settings, refresh_settings


@pytest.fixture(autouse=True)
def reset_settings():
    """Reset settings cache before each test."""
    refresh_settings()
    yield
    refresh_settings()


@pytest.fixture
def mock_env_vars():
    """Provide mock environment variables for testing."""
    env_vars = {
        "SANITY_PROJECT_ID": "abc123",
        "SANITY_DATASET": "staging",
        "SANITY_TOKEN": "test_sanity_token_12345",
        "SANITY_WEBHOOK_SECRET": "test_webhook_secret_12345",
        "QDRANT_URL": "https://qdrant.example.com",
        "QDRANT_API_KEY": "test_qdrant_key_12345",
        "QDRANT_COLLECTION": "site_search",
        "GEMINI_API_KEY": "test_gemini_key_12345",
        "SYNC_TYPES": "post, article",
        "SETTLE_DELAY_MS": "1500",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        refresh_settings()
        yield env_vars


@pytest.fixture
def settings():
    """Settings with no settle delay so syncs run immediately."""
    return Settings(settle_delay_ms=0, sync_types="post,article")


class RecordingIndex:
    """In-memory search index recording every call in order.

    Calls from several indices can share one `log` list to check ordering
    across indices.
    """

    def __init__(self, name: str, log: list | None = None) -> None:
        self.name = name
        self.calls: list[tuple[str, object]] = []
        self.log = log if log is not None else []
        self.records: dict[str, dict] = {}

    def _record(self, method: str, argument: object) -> None:
        self.calls.append((method, argument))
        self.log.append((self.name, method, argument))

    def calls_to(self, method: str) -> list:
        return [arg for name, arg in self.calls if name == method]

    async def save_objects(self, records: list[dict]) -> None:
        self._record("save_objects", records)
        for record in records:
            self.records[record["objectID"]] = record

    async def delete_objects(self, object_ids: list[str]) -> None:
        self._record("delete_objects", object_ids)
        for object_id in object_ids:
            self.records.pop(object_id, None)

    async def delete_by_tag(self, tags: list[str]) -> None:
        self._record("delete_by_tag", tags)
        for object_id in [k for k, r in self.records.items() if r.get("documentId") in tags]:
            del self.records[object_id]

    async def replace_all_objects(self, records: list[dict]) -> None:
        self._record("replace_all_objects", records)
        self.records = {r["objectID"]: r for r in records}

    async def list_object_ids(self) -> list[str]:
        self._record("list_object_ids", None)
        return list(self.records)


@pytest.fixture
def call_log():
    """Shared call log for several recording indices."""
    return []


@pytest.fixture
def index_factory(call_log):
    """Build recording indices sharing the call log."""

    def _make(name: str) -> RecordingIndex:
        return RecordingIndex(name, call_log)

    return _make


@pytest.fixture
def post_index(call_log):
    return RecordingIndex("posts", call_log)


@pytest.fixture
def article_index(call_log):
    return RecordingIndex("articles", call_log)


@pytest.fixture
def make_client():
    """Build a document store whose fetch returns the given results in turn."""

    def _make(*results):
        client = AsyncMock()
        client.fetch = AsyncMock(side_effect=list(results))
        return client

    return _make
