import os
from unittest.mock import AsyncMock, MagicMock

import pytest

# Settings are validated at import time.
os.environ.setdefault("SECRET_KEY", "test-signing-key-for-brandlink-suite")
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("BLOCKCHAIN_SERVICE_URL", "http://blockchain.test")
os.environ.setdefault("RELAYER_WALLET_ADDRESS", "0x" + "a" * 40)
os.environ.setdefault("BRANDLINK_CONFIG_PATH", "/nonexistent/.brandlink")


class FakeCursor:
    """Chainable stand-in for a Motor cursor."""

    def __init__(self, documents=None):
        self.documents = list(documents or [])
        self._limit = 0

    def sort(self, *args, **kwargs):
        return self

    def skip(self, *args, **kwargs):
        return self

    def limit(self, count):
        self._limit = count
        return self

    async def to_list(self, length=None):
        # limit(0) means no limit, as in MongoDB
        return list(self.documents[: self._limit]) if self._limit else list(self.documents)


def build_collection(find_results=None):
    """A collection mock whose async methods are `AsyncMock`s and whose `find` returns a `FakeCursor`."""
    collection = MagicMock()
    for name in (
        "find_one",
        "find_one_and_update",
        "insert_one",
        "insert_many",
        "update_one",
        "update_many",
        "delete_one",
        "delete_many",
        "count_documents",
        "distinct",
    ):
        setattr(collection, name, AsyncMock())
    collection.find.return_value = FakeCursor(find_results)
    collection.find_one_and_update.return_value = None
    collection.update_one.return_value = MagicMock(matched_count=1, modified_count=1)
    collection.update_many.return_value = MagicMock(modified_count=0)
    collection.insert_one.return_value = MagicMock(inserted_id="507f1f77bcf86cd799439011")
    return collection


@pytest.fixture
def collection_factory():
    return build_collection


@pytest.fixture
def fake_cursor():
    return FakeCursor
