"""Service-layer exceptions mapped onto HTTP responses."""

from __future__ import annotations


class KnowledgeHubError(Exception):
    """Base error carrying the HTTP status used when it escapes a route."""

    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(KnowledgeHubError):
    status_code = 404


class PermissionDeniedError(KnowledgeHubError):
    """Acting user does not own the targeted row."""

    status_code = 403


class ValidationError(KnowledgeHubError):
    status_code = 422


class StorageError(KnowledgeHubError):
    """Blob store read/write failed."""

    status_code = 502


class WebhookError(KnowledgeHubError):
    """Processing webhook could not be reached or rejected the request."""

    status_code = 502


__all__ = [
    "KnowledgeHubError",
    "NotFoundError",
    "PermissionDeniedError",
    "ValidationError",
    "StorageError",
    "WebhookError",
]
