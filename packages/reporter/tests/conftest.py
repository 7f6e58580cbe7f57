"""Pytest configuration and fixtures."""

import json
import os
from collections.abc import Mapping
from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault(
    "FIREBASE_SERVICE",
    json.dumps({"type": "service_account", "project_id": "digest-test"}),
)
os.environ.setdefault("BOT_TOKEN", "123456:test-token")


class FakeStore:
    """In-memory stand-in for the document store.

    ``fail`` maps collection names to exceptions raised on access.
    """

    def __init__(self, collections: dict[str, Any] | None = None):
        self.collections: dict[str, Any] = collections or {}
        self.fail: dict[str, Exception] = {}
        self.queries: list[tuple[str, dict[str, Any], Any]] = []
        self.fetches: list[str] = []

    async def fetch_all(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        self.fetches.append(collection)
        if collection in self.fail:
            raise self.fail[collection]
        docs = self.collections.get(collection, {})
        return [(doc_id, dict(data)) for doc_id, data in docs.items()]

    async def query(
        self,
        collection: str,
        equals: Mapping[str, Any],
        created_between: tuple[datetime, datetime] | None = None,
        timestamp_field: str = "createdAt",
    ) -> list[dict[str, Any]]:
        self.queries.append((collection, dict(equals), created_between))
        if collection in self.fail:
            raise self.fail[collection]
        docs = self.collections.get(collection, [])
        return [
            dict(doc)
            for doc in docs
            if all(doc.get(key) == value for key, value in equals.items())
        ]


@pytest.fixture
def fake_store():
    """Create an empty in-memory store."""
    return FakeStore()


@pytest.fixture
def mock_notifier():
    """Notifier whose deliveries all succeed."""
    notifier = AsyncMock()
    notifier.deliver = AsyncMock(return_value=True)
    return notifier


@pytest.fixture
def mock_telegram_ok_response():
    """Telegram sendMessage success body."""
    return {
        "ok": True,
        "result": {"message_id": 42, "chat": {"id": -100123}, "text": "hi"},
    }
