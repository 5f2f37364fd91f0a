"""Object storage abstraction and the filesystem implementation."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from epaper_pipeline.exceptions import StorageError

logger = logging.getLogger(__name__)


class ObjectStorage(ABC):
    """Abstract public object store.

    Implementations overwrite existing objects on ``put`` and treat deleting
    a missing object as success.
    """

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``key`` and return its public URL.

        Raises:
            StorageError: If the write fails
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete the object stored under ``key``.

        Raises:
            StorageError: If the delete fails
        """

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Read back the object stored under ``key``.

        Raises:
            StorageError: If the object is missing or the read fails
        """

    @abstractmethod
    def public_url(self, key: str) -> str:
        """Public URL an object under ``key`` is served from."""


def join_url(base: str, key: str) -> str:
    """Join a base URL and an object key with exactly one slash."""
    return f"{base.rstrip('/')}/{key.lstrip('/')}"


class LocalObjectStorage(ObjectStorage):
    """Object storage backed by a local directory.

    Useful for development and for serving issues from a static file host.
    """

    def __init__(self, root: Path, public_base_url: str | None = None) -> None:
        self.root = root
        self.public_base_url = public_base_url

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise StorageError(f"Key escapes storage root: {key}", key=key)
        return path

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return join_url(self.public_base_url, key)
        return self._path(key).as_uri()

    def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}", key=key) from e
        logger.debug(f"Stored {key} ({len(data)} bytes, {content_type})")
        return self.public_url(key)

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}", key=key) from e
        logger.debug(f"Deleted {key}")

    def get(self, key: str) -> bytes:
        try:
            return self._path(key).read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}", key=key) from e
