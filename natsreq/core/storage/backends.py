"""
Internal storage accessors for kestra:// references.

A task may point its payload at a file held in the workflow runtime's
internal artifact store instead of inlining it. Backends resolve such a
URI to a readable binary stream:

- FilesystemBackend: files under a local root directory
- MemoryBackend: in-process bytes, for embedding and tests

Streams are returned as context managers so callers release them on every
exit path.
"""

import io
import os
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, ContextManager, Dict, Iterator, Optional
from urllib.parse import urlparse

from natsreq.core.errors import InvalidInputError
from natsreq.core.logger import setup_logger

logger = setup_logger(__name__, include_location=True)

INTERNAL_SCHEME = "kestra"
INTERNAL_PREFIX = f"{INTERNAL_SCHEME}://"


def internal_key(uri: str) -> str:
    """
    Validate an internal storage URI and return its storage key.

    kestra://namespace/flow/file.txt -> namespace/flow/file.txt
    """
    try:
        parsed = urlparse(uri)
    except ValueError as e:
        raise InvalidInputError(f"Invalid internal storage URI '{uri}': {e}", uri=uri) from e
    if (parsed.scheme or "").lower() != INTERNAL_SCHEME:
        raise InvalidInputError(
            f"Invalid internal storage URI '{uri}': scheme must be '{INTERNAL_SCHEME}'",
            uri=uri,
        )
    key = f"{parsed.netloc}{parsed.path}".strip("/")
    if not key:
        raise InvalidInputError(f"Invalid internal storage URI '{uri}': empty path", uri=uri)
    return key


class StorageBackend(ABC):
    """Abstract base class for internal storage backends."""

    @abstractmethod
    def open(self, uri: str) -> ContextManager[BinaryIO]:
        """Open the stored artifact for binary reading."""
        pass

    @abstractmethod
    def put(self, uri: str, data: bytes) -> str:
        """Store data under the URI and return the URI."""
        pass

    @abstractmethod
    def exists(self, uri: str) -> bool:
        """Check if the URI is stored."""
        pass

    def read_text(self, uri: str, encoding: str = "utf-8") -> str:
        """Read the whole artifact and decode it."""
        with self.open(uri) as stream:
            return stream.read().decode(encoding)


class MemoryBackend(StorageBackend):
    """In-memory storage keyed by internal storage key."""

    def __init__(self, files: Optional[Dict[str, bytes]] = None):
        self._files: Dict[str, bytes] = {}
        for uri, data in (files or {}).items():
            self.put(uri, data)

    @contextmanager
    def open(self, uri: str) -> Iterator[BinaryIO]:
        key = internal_key(uri)
        if key not in self._files:
            raise InvalidInputError(f"Internal storage file not found: {uri}", uri=uri)
        stream = io.BytesIO(self._files[key])
        try:
            yield stream
        finally:
            stream.close()

    def put(self, uri: str, data: bytes) -> str:
        key = internal_key(uri)
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._files[key] = bytes(data)
        logger.debug(f"[MEMORY] Stored {key} ({len(data)} bytes)")
        return f"{INTERNAL_PREFIX}{key}"

    def exists(self, uri: str) -> bool:
        return internal_key(uri) in self._files


class FilesystemBackend(StorageBackend):
    """Files under a root directory; kestra://a/b.txt maps to <root>/a/b.txt."""

    def __init__(self, root: str):
        self.root = Path(os.path.expanduser(root)).resolve()

    def _path(self, uri: str) -> Path:
        path = (self.root / internal_key(uri)).resolve()
        if path != self.root and self.root not in path.parents:
            raise InvalidInputError(f"Internal storage URI escapes storage root: {uri}", uri=uri)
        return path

    @contextmanager
    def open(self, uri: str) -> Iterator[BinaryIO]:
        path = self._path(uri)
        if not path.is_file():
            raise InvalidInputError(f"Internal storage file not found: {uri}", uri=uri)
        logger.debug(f"Loading internal storage file from filesystem: {path}")
        with open(path, "rb") as stream:
            yield stream

    def put(self, uri: str, data: bytes) -> str:
        path = self._path(uri)
        if isinstance(data, str):
            data = data.encode("utf-8")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug(f"[FS] Stored {path} ({len(data)} bytes)")
        return f"{INTERNAL_PREFIX}{internal_key(uri)}"

    def exists(self, uri: str) -> bool:
        return self._path(uri).is_file()
