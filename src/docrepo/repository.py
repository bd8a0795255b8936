"""Motor-backed document repository with audit metadata and soft-delete policy."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from bson import ObjectId
from pymongo.results import BulkWriteResult, DeleteResult, InsertManyResult, InsertOneResult, UpdateResult

from docrepo.options import DEFAULT_OPTIONS, OperationOptions
from docrepo.protocols import ClientSession, DocumentClient, DocumentCollection

logger = logging.getLogger(__name__)

TDocument = TypeVar("TDocument", bound=Mapping[str, Any])

DEFAULT_SOFT_DELETE_FIELD = "deletedAt"
DEFAULT_FIND_LIMIT = 100

Filter = Mapping[str, Any]
Update = Mapping[str, Any] | Sequence[Mapping[str, Any]]


class DocumentRepository(Generic[TDocument]):
    """Typed CRUD surface over one Motor collection.

    Adds exactly two behaviours on top of the driver:

    - **Metadata injection**: ``OperationOptions.create_metadata`` is merged into
      inserted and replacement documents, ``OperationOptions.update_metadata``
      into the ``$set`` clause of updates. Metadata wins on key collision.
    - **Soft delete**: every filter-taking operation hides documents carrying
      the soft-delete marker unless ``OperationOptions.include_deleted`` is set.
      ``aggregate``, ``bulk_write`` and ``create_index`` are never transformed.

    Everything else is passed to the driver unchanged, and driver errors
    propagate as-is. A repository stays bound to the collection it was built
    with; build a new one to target another collection.
    """

    def __init__(
        self,
        collection: DocumentCollection,
        client: DocumentClient,
        *,
        debug: bool = False,
        soft_delete_field: str = DEFAULT_SOFT_DELETE_FIELD,
    ) -> None:
        self._collection = collection
        self._client = client
        self._debug = debug
        self._soft_delete_field = soft_delete_field

    def __repr__(self) -> str:
        return f"DocumentRepository(namespace={self.namespace!r}, soft_delete_field={self._soft_delete_field!r})"

    @property
    def collection(self) -> DocumentCollection:
        return self._collection

    @property
    def client(self) -> DocumentClient:
        return self._client

    @property
    def namespace(self) -> str:
        """``database.collection`` of the bound collection."""
        return str(getattr(self._collection, "full_name", self._collection))

    @property
    def soft_delete_field(self) -> str:
        return self._soft_delete_field

    @property
    def debug(self) -> bool:
        return self._debug

    def enable_debug(self, enable: bool = True) -> None:
        """Toggle operation logging for every call that does not override it."""
        self._debug = enable

    # -- Policy helpers ---------------------------------------------------------

    def _log(self, options: OperationOptions, operation: str, *details: Any) -> None:
        enabled = self._debug if options.debug is None else options.debug
        if enabled:
            logger.info("[%s] %s: %s", self.namespace, operation, " | ".join(repr(d) for d in details))

    def _visible(self, filter: Filter, options: OperationOptions) -> dict[str, Any]:
        """Conjoin *filter* with "soft-delete marker absent" unless deleted documents are requested."""
        if options.include_deleted:
            return dict(filter)
        live = {self._soft_delete_field: {"$exists": False}}
        if not filter:
            return live
        return {"$and": [dict(filter), live]}

    @staticmethod
    def _with_create_metadata(document: Mapping[str, Any], options: OperationOptions) -> dict[str, Any]:
        if options.create_metadata is None:
            return dict(document)
        return {**document, **options.create_metadata()}

    @staticmethod
    def _with_update_metadata(update: Update, options: OperationOptions) -> Update:
        if options.update_metadata is None:
            return update
        meta = dict(options.update_metadata())
        if not meta:
            return update
        if isinstance(update, Mapping):
            merged = dict(update)
            merged["$set"] = {**update.get("$set", {}), **meta}
            return merged
        # Aggregation-pipeline update: stamp in a trailing stage. Values are
        # wrapped in $literal so strings like "$x" are not read as field paths.
        return [*update, {"$set": {key: {"$literal": value} for key, value in meta.items()}}]

    # -- Create -----------------------------------------------------------------

    async def insert_one(
        self,
        document: Mapping[str, Any],
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> InsertOneResult:
        """Insert a single document stamped with ``create_metadata``."""
        options = options or DEFAULT_OPTIONS
        final_doc = self._with_create_metadata(document, options)
        self._log(options, "insert_one", final_doc)
        return await self._collection.insert_one(final_doc, session=options.session, **kwargs)

    async def insert_many(
        self,
        documents: Sequence[Mapping[str, Any]],
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> InsertManyResult:
        """Insert documents in one batch; ``create_metadata`` runs once per document."""
        options = options or DEFAULT_OPTIONS
        final_docs = [self._with_create_metadata(doc, options) for doc in documents]
        self._log(options, "insert_many", final_docs)
        return await self._collection.insert_many(final_docs, session=options.session, **kwargs)

    # -- Read -------------------------------------------------------------------

    async def find_one(
        self,
        filter: Filter,
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> TDocument | None:
        options = options or DEFAULT_OPTIONS
        query = self._visible(filter, options)
        self._log(options, "find_one", query)
        return await self._collection.find_one(query, session=options.session, **kwargs)

    async def find_by_id(
        self,
        id: Any,
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> TDocument | None:
        """Look up a document by ``_id``.

        A string that parses as an ObjectId matches either the ObjectId or the
        literal string, so callers can pass ids straight from a URL.
        """
        return await self.find_one(_id_filter(id), options, **kwargs)

    def find(
        self,
        filter: Filter | None = None,
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> Any:
        """Return a driver cursor over the visible documents matching *filter*."""
        options = options or DEFAULT_OPTIONS
        query = self._visible(filter or {}, options)
        self._log(options, "find", query)
        return self._collection.find(query, session=options.session, **kwargs)

    async def find_many(
        self,
        filter: Filter | None = None,
        options: OperationOptions | None = None,
        *,
        limit: int = DEFAULT_FIND_LIMIT,
        **kwargs: Any,
    ) -> list[TDocument]:
        """Materialise at most *limit* matching documents.

        Raises:
            ValueError: If *limit* is below 1.
        """
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        cursor = self.find(filter, options, limit=limit, **kwargs)
        return [doc async for doc in cursor]

    async def count_documents(
        self,
        filter: Filter | None = None,
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> int:
        options = options or DEFAULT_OPTIONS
        query = self._visible(filter or {}, options)
        self._log(options, "count_documents", query)
        return await self._collection.count_documents(query, session=options.session, **kwargs)

    async def distinct(
        self,
        key: str,
        filter: Filter | None = None,
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> list[Any]:
        options = options or DEFAULT_OPTIONS
        query = self._visible(filter or {}, options)
        self._log(options, "distinct", key, query)
        return await self._collection.distinct(key, query, session=options.session, **kwargs)

    # -- Update -----------------------------------------------------------------

    async def update_one(
        self,
        filter: Filter,
        update: Update,
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> UpdateResult:
        """Update the first visible match, stamping ``update_metadata`` into ``$set``."""
        return await self._update_single("update_one", filter, update, options, **kwargs)

    async def patch_one(
        self,
        filter: Filter,
        update: Update,
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> UpdateResult:
        """Same as :meth:`update_one`; reads better at call sites applying partial changes."""
        return await self._update_single("patch_one", filter, update, options, **kwargs)

    async def patch_by_id(
        self,
        id: Any,
        update: Update,
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> UpdateResult:
        return await self.patch_one(_id_filter(id), update, options, **kwargs)

    async def update_many(
        self,
        filter: Filter,
        update: Update,
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> UpdateResult:
        options = options or DEFAULT_OPTIONS
        query = self._visible(filter, options)
        update_doc = self._with_update_metadata(update, options)
        self._log(options, "update_many", query, update_doc)
        return await self._collection.update_many(query, update_doc, session=options.session, **kwargs)

    async def _update_single(
        self,
        operation: str,
        filter: Filter,
        update: Update,
        options: OperationOptions | None,
        **kwargs: Any,
    ) -> UpdateResult:
        options = options or DEFAULT_OPTIONS
        query = self._visible(filter, options)
        update_doc = self._with_update_metadata(update, options)
        self._log(options, operation, query, update_doc)
        return await self._collection.update_one(query, update_doc, session=options.session, **kwargs)

    async def replace_one(
        self,
        filter: Filter,
        replacement: Mapping[str, Any],
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> UpdateResult | None:
        """Replace the first visible match with *replacement*.

        An empty *replacement* is a no-op: nothing is written and ``None`` is
        returned instead of an error, so a stray ``{}`` can never wipe a
        document. ``create_metadata`` is merged into non-empty replacements.
        """
        options = options or DEFAULT_OPTIONS
        if not replacement:
            logger.warning("[%s] replace_one skipped: empty replacement document", self.namespace)
            return None
        query = self._visible(filter, options)
        final_doc = self._with_create_metadata(replacement, options)
        self._log(options, "replace_one", query, final_doc)
        return await self._collection.replace_one(query, final_doc, session=options.session, **kwargs)

    # -- Delete -----------------------------------------------------------------

    async def delete_one(
        self,
        filter: Filter,
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> DeleteResult:
        """Permanently remove the first visible match.

        Soft-deleted documents are only purged with ``include_deleted=True``.
        """
        options = options or DEFAULT_OPTIONS
        query = self._visible(filter, options)
        self._log(options, "delete_one", query)
        return await self._collection.delete_one(query, session=options.session, **kwargs)

    async def delete_many(
        self,
        filter: Filter,
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> DeleteResult:
        options = options or DEFAULT_OPTIONS
        query = self._visible(filter, options)
        self._log(options, "delete_many", query)
        return await self._collection.delete_many(query, session=options.session, **kwargs)

    async def soft_delete_one(self, filter: Filter, options: OperationOptions | None = None) -> UpdateResult:
        """Stamp the soft-delete marker on the first visible match."""
        return await self.update_one(filter, self._mark_deleted(), options)

    async def soft_delete_many(self, filter: Filter, options: OperationOptions | None = None) -> UpdateResult:
        return await self.update_many(filter, self._mark_deleted(), options)

    async def restore_one(self, filter: Filter, options: OperationOptions | None = None) -> UpdateResult:
        """Clear the soft-delete marker on the first soft-deleted match."""
        options = replace(options or DEFAULT_OPTIONS, include_deleted=True)
        return await self.update_one(self._deleted_only(filter), self._unmark_deleted(), options)

    async def restore_many(self, filter: Filter, options: OperationOptions | None = None) -> UpdateResult:
        options = replace(options or DEFAULT_OPTIONS, include_deleted=True)
        return await self.update_many(self._deleted_only(filter), self._unmark_deleted(), options)

    def _mark_deleted(self) -> dict[str, Any]:
        return {"$set": {self._soft_delete_field: datetime.now(timezone.utc)}}

    def _unmark_deleted(self) -> dict[str, Any]:
        return {"$unset": {self._soft_delete_field: ""}}

    def _deleted_only(self, filter: Filter) -> dict[str, Any]:
        deleted = {self._soft_delete_field: {"$exists": True}}
        if not filter:
            return deleted
        return {"$and": [dict(filter), deleted]}

    # -- Pass-through -----------------------------------------------------------

    async def bulk_write(
        self,
        requests: Sequence[Any],
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> BulkWriteResult:
        options = options or DEFAULT_OPTIONS
        self._log(options, "bulk_write", requests)
        return await self._collection.bulk_write(list(requests), session=options.session, **kwargs)

    def aggregate(
        self,
        pipeline: Sequence[Mapping[str, Any]],
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> Any:
        """Return the driver's aggregation cursor; the pipeline is not filtered."""
        options = options or DEFAULT_OPTIONS
        self._log(options, "aggregate", pipeline)
        return self._collection.aggregate(list(pipeline), session=options.session, **kwargs)

    async def create_index(
        self,
        keys: Any,
        options: OperationOptions | None = None,
        **kwargs: Any,
    ) -> str:
        """Create an index and return its name. Extra kwargs (``unique``, ``name``...) go to the driver."""
        options = options or DEFAULT_OPTIONS
        self._log(options, "create_index", keys, kwargs)
        return await self._collection.create_index(keys, session=options.session, **kwargs)

    # -- Transactions -----------------------------------------------------------

    async def start_transaction(self, **transaction_options: Any) -> ClientSession:
        """Open a session with an active transaction.

        The caller owns the session: pass it via ``OperationOptions(session=...)``
        to every participating call and finish with :meth:`commit_transaction`
        or :meth:`abort_transaction`.
        """
        session = await self._client.start_session()
        try:
            session.start_transaction(**transaction_options)
        except Exception:
            await session.end_session()
            raise
        if self._debug:
            logger.info("[%s] transaction started", self.namespace)
        return session

    async def commit_transaction(self, session: ClientSession) -> None:
        """Commit and release *session*.

        If the commit raises, the session is left open so the caller can retry
        the commit or abort.
        """
        await session.commit_transaction()
        await session.end_session()
        if self._debug:
            logger.info("[%s] transaction committed", self.namespace)

    async def abort_transaction(self, session: ClientSession) -> None:
        """Discard every write made under *session* and release it."""
        try:
            await session.abort_transaction()
        finally:
            await session.end_session()
        if self._debug:
            logger.info("[%s] transaction aborted", self.namespace)

    @asynccontextmanager
    async def transaction(self, **transaction_options: Any) -> AsyncIterator[ClientSession]:
        """Scope a transaction to a block: commit on success, abort on error.

        Usage::

            async with repo.transaction() as session:
                await repo.insert_one(doc, OperationOptions(session=session))
        """
        session = await self.start_transaction(**transaction_options)
        try:
            yield session
        except BaseException:
            try:
                await self.abort_transaction(session)
            except Exception:
                logger.warning("[%s] transaction abort failed", self.namespace, exc_info=True)
            raise
        try:
            await self.commit_transaction(session)
        except Exception:
            await session.end_session()
            raise


def _id_filter(id: Any) -> dict[str, Any]:
    """Build an ``_id`` equality filter, accepting hex strings for ObjectIds."""
    if isinstance(id, str) and ObjectId.is_valid(id):
        return {"_id": {"$in": [ObjectId(id), id]}}
    return {"_id": id}
