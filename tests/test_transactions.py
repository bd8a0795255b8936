"""Tests for the transaction-session lifecycle helpers."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest
from docrepo.options import OperationOptions
from docrepo.repository import DocumentRepository
from pymongo.errors import OperationFailure


@pytest.fixture
def tx_repo(mock_collection: MagicMock, session_client: MagicMock) -> DocumentRepository:
    return DocumentRepository(mock_collection, session_client)


async def test_start_transaction_opens_session_and_starts_transaction(
    tx_repo: DocumentRepository, session_client: MagicMock, session: MagicMock
):
    started = await tx_repo.start_transaction()

    assert started is session
    session_client.start_session.assert_awaited_once()
    session.start_transaction.assert_called_once_with()
    session.end_session.assert_not_awaited()


async def test_start_transaction_forwards_transaction_options(tx_repo: DocumentRepository, session: MagicMock):
    await tx_repo.start_transaction(max_commit_time_ms=500)
    session.start_transaction.assert_called_once_with(max_commit_time_ms=500)


async def test_start_transaction_ends_session_if_transaction_cannot_start(
    tx_repo: DocumentRepository, session: MagicMock
):
    session.start_transaction.side_effect = OperationFailure("Transaction already in progress")

    with pytest.raises(OperationFailure):
        await tx_repo.start_transaction()
    session.end_session.assert_awaited_once()


async def test_commit_transaction_commits_then_releases(tx_repo: DocumentRepository, session: MagicMock):
    session_obj = await tx_repo.start_transaction()
    await tx_repo.insert_one({"name": "Leo", "age": 29}, OperationOptions(session=session_obj))

    await tx_repo.commit_transaction(session_obj)

    session.commit_transaction.assert_awaited_once()
    session.abort_transaction.assert_not_awaited()
    session.end_session.assert_awaited_once()
    assert tx_repo.collection.insert_one.call_args.kwargs["session"] is session


async def test_failed_commit_leaves_session_open(tx_repo: DocumentRepository, session: MagicMock):
    session.commit_transaction.side_effect = OperationFailure("WriteConflict")

    with pytest.raises(OperationFailure):
        await tx_repo.commit_transaction(session)
    session.end_session.assert_not_awaited()


async def test_abort_transaction_aborts_then_releases(tx_repo: DocumentRepository, session: MagicMock):
    session_obj = await tx_repo.start_transaction()
    await tx_repo.insert_one({"name": "Mike", "age": 32}, OperationOptions(session=session_obj))

    await tx_repo.abort_transaction(session_obj)

    session.abort_transaction.assert_awaited_once()
    session.commit_transaction.assert_not_awaited()
    session.end_session.assert_awaited_once()


async def test_abort_releases_session_even_when_abort_fails(tx_repo: DocumentRepository, session: MagicMock):
    session.abort_transaction.side_effect = OperationFailure("Cannot call abortTransaction twice")

    with pytest.raises(OperationFailure):
        await tx_repo.abort_transaction(session)
    session.end_session.assert_awaited_once()


async def test_transaction_context_commits_on_success(tx_repo: DocumentRepository, session: MagicMock):
    async with tx_repo.transaction() as active:
        await tx_repo.update_one({"name": "Leo"}, {"$set": {"age": 30}}, OperationOptions().with_session(active))

    session.commit_transaction.assert_awaited_once()
    session.abort_transaction.assert_not_awaited()
    session.end_session.assert_awaited_once()
    assert tx_repo.collection.update_one.call_args.kwargs["session"] is session


async def test_transaction_context_aborts_and_reraises(tx_repo: DocumentRepository, session: MagicMock):
    with pytest.raises(RuntimeError, match="boom"):
        async with tx_repo.transaction():
            raise RuntimeError("boom")

    session.abort_transaction.assert_awaited_once()
    session.commit_transaction.assert_not_awaited()
    session.end_session.assert_awaited_once()


async def test_transaction_context_keeps_body_error_when_abort_fails(
    tx_repo: DocumentRepository, session: MagicMock, caplog
):
    session.abort_transaction.side_effect = OperationFailure("Cannot call abortTransaction twice")

    with caplog.at_level(logging.WARNING, logger="docrepo.repository"):
        with pytest.raises(RuntimeError, match="boom"):
            async with tx_repo.transaction():
                raise RuntimeError("boom")

    session.abort_transaction.assert_awaited_once()
    session.end_session.assert_awaited_once()
    assert "transaction abort failed" in caplog.text


async def test_transaction_context_releases_session_when_commit_fails(
    tx_repo: DocumentRepository, session: MagicMock
):
    session.commit_transaction.side_effect = OperationFailure("WriteConflict")

    with pytest.raises(OperationFailure):
        async with tx_repo.transaction():
            pass

    session.abort_transaction.assert_not_awaited()
    session.end_session.assert_awaited_once()


async def test_operations_without_session_do_not_join_transaction(tx_repo: DocumentRepository):
    await tx_repo.start_transaction()
    await tx_repo.insert_one({"name": "Outside"})

    assert tx_repo.collection.insert_one.call_args.kwargs["session"] is None
