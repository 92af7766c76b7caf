"""Error taxonomy for the readings pipeline."""

from __future__ import annotations

from typing import Iterable


class UnauthorizedError(PermissionError):
    """Ingestion credential is missing or does not match the shared secret."""


class BadRequestError(ValueError):
    """Request payload is malformed; ``fields`` names the offending keys."""

    def __init__(self, message: str, fields: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.fields = list(fields)


class InvalidReadingError(ValueError):
    """Raised by the store when a sample would violate the reading invariants."""

    def __init__(self, message: str, fields: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.fields = list(fields)


class PersistenceError(RuntimeError):
    """The durable write of a reading failed."""


class PayloadTooLargeError(BadRequestError):
    """Request body exceeds the ingest size limit."""
