"""Capability protocols for the document-store client consumed by the repository."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ClientSession(Protocol):
    """The subset of a Motor client session the transaction helpers drive."""

    def start_transaction(self, **kwargs: Any) -> Any: ...
    async def commit_transaction(self) -> None: ...
    async def abort_transaction(self) -> None: ...
    async def end_session(self) -> None: ...


@runtime_checkable
class DocumentClient(Protocol):
    """A connected client able to open sessions and hand out databases."""

    admin: Any

    async def start_session(self, **kwargs: Any) -> ClientSession: ...
    def __getitem__(self, name: str) -> Any: ...
    def close(self) -> None: ...


@runtime_checkable
class DocumentCollection(Protocol):
    """Collection-level operations the repository delegates to.

    Every method accepts the driver's keyword options, including ``session``.
    """

    async def insert_one(self, document: Mapping[str, Any], **kwargs: Any) -> Any: ...
    async def insert_many(self, documents: Sequence[Mapping[str, Any]], **kwargs: Any) -> Any: ...
    async def find_one(self, filter: Mapping[str, Any] | None = None, **kwargs: Any) -> Any: ...
    def find(self, filter: Mapping[str, Any] | None = None, **kwargs: Any) -> Any: ...
    async def update_one(self, filter: Mapping[str, Any], update: Any, **kwargs: Any) -> Any: ...
    async def update_many(self, filter: Mapping[str, Any], update: Any, **kwargs: Any) -> Any: ...
    async def replace_one(self, filter: Mapping[str, Any], replacement: Mapping[str, Any], **kwargs: Any) -> Any: ...
    async def delete_one(self, filter: Mapping[str, Any], **kwargs: Any) -> Any: ...
    async def delete_many(self, filter: Mapping[str, Any], **kwargs: Any) -> Any: ...
    async def bulk_write(self, requests: Sequence[Any], **kwargs: Any) -> Any: ...
    def aggregate(self, pipeline: Sequence[Mapping[str, Any]], **kwargs: Any) -> Any: ...
    async def count_documents(self, filter: Mapping[str, Any], **kwargs: Any) -> int: ...
    async def distinct(self, key: str, filter: Mapping[str, Any] | None = None, **kwargs: Any) -> list[Any]: ...
    async def create_index(self, keys: Any, **kwargs: Any) -> str: ...
