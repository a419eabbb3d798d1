"""Error taxonomy for the paper indexing pipeline.

Fatal errors derive from ``IndexingError`` and carry the HTTP status the API
answers with. Backend failures (``ProviderInvocationError``,
``GenerationOutputInvalid``) are never fatal: the synthesis loop records them
and moves on to the next candidate.
"""
from __future__ import annotations


class IndexingError(Exception):
    """Fatal error that aborts an indexing request."""

    status_code = 500


class InvalidRequest(IndexingError):
    status_code = 400


class ConfigurationMissing(IndexingError):
    status_code = 500


class MetadataNotFound(IndexingError):
    status_code = 404


class AssetFetchFailed(IndexingError):
    status_code = 502


class AssetStorageFailed(IndexingError):
    status_code = 502


class PersistenceError(IndexingError):
    status_code = 500


class DeadlineExceeded(IndexingError):
    status_code = 504


class IdentifierMalformed(ValueError):
    """Raised by URL extraction; the normalizer falls back to the raw input."""


class ProviderInvocationError(RuntimeError):
    """A generation backend could not be called or returned an error."""


class GenerationOutputInvalid(ValueError):
    """Backend text could not be turned into a section document."""

    def __init__(self, message: str, attempts: list[tuple[str, str]] | None = None):
        super().__init__(message)
        self.attempts = attempts or []
