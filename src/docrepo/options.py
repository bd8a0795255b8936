"""Per-call options recognised by every repository operation."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class MetadataProducer(Protocol):
    """Produces the extra fields stamped onto a write.

    Plain functions and lambdas returning a mapping satisfy this protocol.
    """

    def __call__(self) -> Mapping[str, Any]: ...


@dataclass(frozen=True)
class OperationOptions:
    """Explicit option set for a single repository call.

    Attributes:
        create_metadata: Merged into inserted and replacement documents.
        update_metadata: Merged into the ``$set`` clause of updates.
        session: Client session that attaches the call to a transaction.
        include_deleted: When true, soft-deleted documents are visible.
        debug: Overrides the repository's debug flag for this call only.
    """

    create_metadata: MetadataProducer | None = None
    update_metadata: MetadataProducer | None = None
    session: Any = None
    include_deleted: bool = False
    debug: bool | None = None

    def with_session(self, session: Any) -> OperationOptions:
        """Return a copy of these options bound to *session*."""
        return replace(self, session=session)


DEFAULT_OPTIONS = OperationOptions()
