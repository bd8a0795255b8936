"""Shared fixtures for docrepo tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from docrepo.repository import DocumentRepository
from mongomock_motor import AsyncMongoMockClient


@pytest_asyncio.fixture
async def mongo_client() -> AsyncIterator[AsyncMongoMockClient]:
    client = AsyncMongoMockClient()
    yield client
    client.close()


@pytest.fixture
def collection(mongo_client: AsyncMongoMockClient):
    return mongo_client["testdb"]["people"]


@pytest.fixture
def repo(collection, mongo_client: AsyncMongoMockClient) -> DocumentRepository:
    return DocumentRepository(collection, mongo_client)


@pytest.fixture
def session() -> MagicMock:
    """A stand-in for a Motor client session."""
    sess = MagicMock(name="session")
    sess.start_transaction = MagicMock()
    sess.commit_transaction = AsyncMock()
    sess.abort_transaction = AsyncMock()
    sess.end_session = AsyncMock()
    return sess


@pytest.fixture
def session_client(session: MagicMock) -> MagicMock:
    """A client whose ``start_session`` hands out the ``session`` fixture."""
    client = MagicMock(name="client")
    client.start_session = AsyncMock(return_value=session)
    return client


@pytest.fixture
def mock_collection() -> MagicMock:
    """A collection whose driver methods record their calls."""
    coll = MagicMock(name="collection")
    coll.full_name = "testdb.people"
    for name in (
        "insert_one",
        "insert_many",
        "find_one",
        "update_one",
        "update_many",
        "replace_one",
        "delete_one",
        "delete_many",
        "bulk_write",
        "count_documents",
        "distinct",
        "create_index",
    ):
        setattr(coll, name, AsyncMock(name=name))
    return coll
