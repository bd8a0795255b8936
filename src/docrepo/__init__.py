"""docrepo — typed MongoDB repository with audit metadata, soft delete and transactions."""

from docrepo.config import InvalidConnectionURL, RepositoryConfig, redact_url
from docrepo.connections import ConnectionRegistry, create_repository, default_registry
from docrepo.exceptions import ConnectionFailedError, PersistenceError
from docrepo.metadata import combine_metadata, static_metadata, timestamp_metadata
from docrepo.options import MetadataProducer, OperationOptions
from docrepo.protocols import ClientSession, DocumentClient, DocumentCollection
from docrepo.repository import DEFAULT_SOFT_DELETE_FIELD, DocumentRepository

__all__ = [
    "ClientSession",
    "ConnectionFailedError",
    "ConnectionRegistry",
    "DEFAULT_SOFT_DELETE_FIELD",
    "DocumentClient",
    "DocumentCollection",
    "DocumentRepository",
    "InvalidConnectionURL",
    "MetadataProducer",
    "OperationOptions",
    "PersistenceError",
    "RepositoryConfig",
    "combine_metadata",
    "create_repository",
    "default_registry",
    "redact_url",
    "static_metadata",
    "timestamp_metadata",
]
