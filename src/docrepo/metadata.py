"""Ready-made metadata producers for audit stamping."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from docrepo.options import MetadataProducer


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def static_metadata(**fields: Any) -> MetadataProducer:
    """Return a producer that always yields a fresh copy of *fields*.

    >>> static_metadata(editedBy="system")()
    {'editedBy': 'system'}
    """

    def produce() -> dict[str, Any]:
        return dict(fields)

    return produce


def timestamp_metadata(
    *field_names: str,
    clock: Callable[[], datetime] = utc_now,
) -> MetadataProducer:
    """Return a producer stamping every named field with one shared timestamp.

    Defaults to ``createdAt`` and ``updatedAt`` when no names are given.
    """
    names = field_names or ("createdAt", "updatedAt")

    def produce() -> dict[str, Any]:
        now = clock()
        return {name: now for name in names}

    return produce


def combine_metadata(*producers: MetadataProducer) -> MetadataProducer:
    """Chain producers; later producers win on key collision."""

    def produce() -> dict[str, Any]:
        merged: dict[str, Any] = {}
        for producer in producers:
            result: Mapping[str, Any] = producer()
            merged.update(result)
        return merged

    return produce
