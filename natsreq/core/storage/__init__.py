"""
Internal storage access for kestra:// artifact references.

Backends:
- filesystem: files under NATSREQ_STORAGE_ROOT (default)
- memory: in-process bytes
"""

from natsreq.core.config import get_settings
from natsreq.core.storage.backends import (
    INTERNAL_SCHEME,
    INTERNAL_PREFIX,
    internal_key,
    StorageBackend,
    MemoryBackend,
    FilesystemBackend,
)


def get_default_storage() -> StorageBackend:
    """Filesystem storage rooted at the configured storage root."""
    return FilesystemBackend(get_settings().storage_root)


__all__ = [
    "INTERNAL_SCHEME",
    "INTERNAL_PREFIX",
    "internal_key",
    "StorageBackend",
    "MemoryBackend",
    "FilesystemBackend",
    "get_default_storage",
]
