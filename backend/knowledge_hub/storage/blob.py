"""Blob storage for raw knowledge-file bytes.

Objects are addressed by a relative path such as ``{owner_id}/{file_id}.pdf``.
Other backends implement the same four methods.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from knowledge_hub.core.errors import StorageError
from knowledge_hub.core.logging import get_logger

logger = get_logger(__name__)


class BlobStore(Protocol):
    def write(self, path: str, data: bytes) -> None:
        ...

    def read(self, path: str) -> bytes:
        ...

    def delete(self, path: str) -> None:
        ...

    def exists(self, path: str) -> bool:
        ...


class LocalBlobStore:
    """Store blobs as plain files below ``root``."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    def ensure_ready(self) -> None:
        self._root.mkdir(parents=True, exist_ok=True)

    def write(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            logger.error("Failed to write blob %s: %s", path, exc)
            raise StorageError(f"Failed to store {path}") from exc
        logger.debug("Stored blob %s (%s bytes)", path, len(data))

    def read(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise StorageError(f"Blob {path} does not exist")
        try:
            return target.read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read {path}") from exc

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Failed to delete blob %s: %s", path, exc)
            raise StorageError(f"Failed to delete {path}") from exc

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def _resolve(self, path: str) -> Path:
        try:
            base = self._root.resolve()
            full = (base / path).resolve()
        except (OSError, ValueError) as exc:
            raise StorageError(f"Invalid blob path: {path!r}") from exc
        try:
            full.relative_to(base)
        except ValueError:
            raise StorageError(f"Invalid blob path: {path}") from None
        if full == base:
            raise StorageError(f"Invalid blob path: {path}")
        return full


__all__ = ["BlobStore", "LocalBlobStore"]
