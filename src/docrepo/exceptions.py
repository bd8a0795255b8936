"""Domain exceptions for the repository layer.

Driver errors raised by individual repository operations (write conflicts,
malformed filters, ...) propagate unchanged. Only failures that belong to this
layer itself, such as the connection handshake, are raised as one of these.
"""

from __future__ import annotations


class PersistenceError(Exception):
    """Base exception for repository-layer errors.

    Attributes:
        target: What the failing call was aimed at (a redacted cluster URL or
            a ``database.collection`` namespace).
        operation: The operation that failed (e.g. ``"connect"``).
        detail: A sanitised description of what went wrong.
    """

    def __init__(
        self,
        *,
        target: str,
        operation: str,
        detail: str,
        cause: Exception | None = None,
    ) -> None:
        self.target = target
        self.operation = operation
        self.detail = detail
        msg = f"[{target}] {operation} failed: {detail}"
        super().__init__(msg)
        if cause is not None:
            self.__cause__ = cause


class ConnectionFailedError(PersistenceError):
    """Raised when the cluster is unreachable or rejects the credentials."""
