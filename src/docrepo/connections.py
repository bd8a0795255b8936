"""Client cache keyed by cluster URL, and the factory that hands out repositories."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from docrepo.config import RepositoryConfig, redact_url
from docrepo.exceptions import ConnectionFailedError
from docrepo.protocols import DocumentClient
from docrepo.repository import DocumentRepository

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., DocumentClient]


class ConnectionRegistry:
    """Owns one connected client per cluster URL.

    Repositories created for the same cluster share a client (and its pool).
    A failed handshake is never cached, so the next call retries it. Clients
    live until :meth:`close` or :meth:`close_all`; there is no eviction.
    """

    def __init__(self, client_factory: ClientFactory = AsyncIOMotorClient, **client_options: Any) -> None:
        self._client_factory = client_factory
        self._client_options = client_options
        self._clients: dict[str, DocumentClient] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __contains__(self, cluster_url: object) -> bool:
        return cluster_url in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    async def get_client(self, cluster_url: str) -> DocumentClient:
        """Return the cached client for *cluster_url*, connecting on first use.

        Raises:
            ConnectionFailedError: If the cluster is unreachable or rejects the
                credentials.
        """
        client = self._clients.get(cluster_url)
        if client is not None:
            return client
        async with self._locks.setdefault(cluster_url, asyncio.Lock()):
            client = self._clients.get(cluster_url)
            if client is None:
                client = await self._connect(cluster_url)
                self._clients[cluster_url] = client
        return client

    async def _connect(self, cluster_url: str) -> DocumentClient:
        redacted = redact_url(cluster_url)
        try:
            client = self._client_factory(cluster_url, **self._client_options)
        except PyMongoError as exc:
            logger.error("MongoDB client configuration rejected for %s: %s", redacted, type(exc).__name__)
            raise ConnectionFailedError(
                target=redacted,
                operation="connect",
                detail="Client could not be configured for this cluster.",
                cause=exc,
            ) from exc
        try:
            await client.admin.command("ping")
        except PyMongoError as exc:
            client.close()
            logger.error("MongoDB handshake failed for %s: %s", redacted, type(exc).__name__)
            raise ConnectionFailedError(
                target=redacted,
                operation="connect",
                detail="Cluster unreachable or credentials rejected.",
                cause=exc,
            ) from exc
        logger.info("MongoDB connected: %s", redacted)
        return client

    async def create_repository(self, config: RepositoryConfig) -> DocumentRepository[Any]:
        """Resolve the client for *config* and bind a repository to its collection."""
        client = await self.get_client(config.cluster_url)
        collection = client[config.database_name][config.collection_name]
        return DocumentRepository(
            collection,
            client,
            debug=config.debug,
            soft_delete_field=config.soft_delete_field,
        )

    def close(self, cluster_url: str) -> None:
        """Close and forget the client for *cluster_url*, if any."""
        client = self._clients.pop(cluster_url, None)
        if client is not None:
            client.close()
            logger.info("MongoDB connection closed: %s", redact_url(cluster_url))

    def close_all(self) -> None:
        """Close every managed client."""
        for cluster_url in list(self._clients):
            self.close(cluster_url)


_default_registry: ConnectionRegistry | None = None


def default_registry() -> ConnectionRegistry:
    """The process-wide registry used when callers do not supply their own."""
    global _default_registry
    if _default_registry is None:
        _default_registry = ConnectionRegistry()
    return _default_registry


async def create_repository(
    cluster_url: str,
    database_name: str,
    collection_name: str,
    *,
    debug: bool | None = None,
    registry: ConnectionRegistry | None = None,
    **config: Any,
) -> DocumentRepository[Any]:
    """Return a repository bound to ``cluster_url/database_name.collection_name``.

    Reuses the registry's client for *cluster_url* when one is cached. Extra
    keyword arguments populate :class:`RepositoryConfig` (e.g.
    ``soft_delete_field``).
    """
    if debug is not None:
        config["debug"] = debug
    repo_config = RepositoryConfig(
        cluster_url=cluster_url,
        database_name=database_name,
        collection_name=collection_name,
        **config,
    )
    if registry is None:
        registry = default_registry()
    return await registry.create_repository(repo_config)
