"""
Cache stores for resolved domains (memory) and icons (disk).

Entries are written once per key and never evicted.
"""

import contextlib
import logging
import os
import tempfile
import threading
from pathlib import Path

logger = logging.getLogger(__name__)


class MemoryCache:
    """Process-wide key -> value cache shared by concurrent requests."""

    def __init__(self):
        self._entries: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, value: str) -> bool:
        """
        Store a value for key if none is stored yet.

        Returns True if the value was written, False if the key already had one.
        """
        with self._lock:
            if key in self._entries:
                return False
            self._entries[key] = value
            return True

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class DiskIconCache:
    """
    Icon blobs on disk, keyed by (domain, size).

    Files are named ``{domain}_{size}.png`` under the cache directory.
    """

    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)

    def path_for(self, domain: str, size: int) -> Path:
        return self.cache_dir / f"{domain}_{size}.png"

    def read(self, domain: str, size: int) -> bytes | None:
        """Return cached bytes. Missing, empty and unreadable files count as misses."""
        path = self.path_for(domain, size)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Could not read cached icon {path}: {e}")
            return None

        if not data:
            logger.warning(f"Ignoring empty cached icon {path}")
            return None
        return data

    def write(self, domain: str, size: int, data: bytes) -> Path:
        """
        Persist icon bytes. Raises OSError if the file cannot be written.

        Bytes go to a temporary file in the cache directory that is renamed
        onto the final name, so readers never see a partial icon.
        """
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(domain, size)

        fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except OSError:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise
        return path
