#!/usr/bin/env python3
"""
Render Cache Store
Filesystem-backed page cache with read-time TTL

Implements:
- get(key, ttl) → payload | None
- put(key, payload)
- remove(key), remove_all_for_page(page_id), expire_all()
- exists(key)
- get_stats() → {hits, misses, writes, evictions, errors}

Layout:
    <cache_dir>/<page_id>/<variant file>

Each file holds a one-line JSON header followed by the raw payload.
"""

import errno
import json
import logging
import math
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from jsonschema import Draft7Validator

from .errors import ConfigurationError, StorageReadFailure, StorageWriteFailure
from .key_builder import FILENAME_SUFFIX, CacheKey

logger = logging.getLogger(__name__)

TMP_PREFIX = ".tmp_"

ENTRY_HEADER_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["page_id", "variant", "created_at", "size"],
    "properties": {
        "page_id": {"type": "integer"},
        "variant": {"type": "string"},
        "created_at": {"type": "number", "minimum": 0},
        "size": {"type": "integer", "minimum": 0},
    },
}

_header_validator = Draft7Validator(ENTRY_HEADER_SCHEMA)


class CorruptEntry(StorageReadFailure):
    """Entry exists but its header or payload is unusable."""


def _reject_constant(name: str) -> None:
    raise ValueError(f"{name} is not allowed in an entry header")


class CacheStore:
    """
    Per-page directory cache with atomic writes.

    Design principles:
    - Readers never see partial writes: temp file + os.replace
    - TTL is checked at read time against the caller's current TTL
    - Graceful degradation: read errors are misses, never exceptions
    - Write/remove errors surface as StorageWriteFailure for the caller
      to log and continue uncached
    """

    def __init__(
        self,
        cache_dir: str,
        dir_mode: int = 0o755,
        file_mode: int = 0o644,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_dir = Path(cache_dir)
        self.dir_mode = dir_mode
        self.file_mode = file_mode
        self._clock = clock

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Cannot create cache directory {self.cache_dir}: {e}") from e
        if not os.access(self.cache_dir, os.W_OK | os.X_OK):
            raise ConfigurationError(f"Cache directory {self.cache_dir} is not writable")

        self._stats_lock = threading.Lock()
        self.stats = {
            "hits": 0,
            "misses": 0,
            "writes": 0,
            "evictions": 0,
            "errors": 0,
            "start_time": time.time(),
        }

        logger.info(f"CacheStore initialized at {self.cache_dir}")

    def _count(self, name: str, amount: int = 1) -> None:
        with self._stats_lock:
            self.stats[name] += amount

    def _page_dir(self, page_id: int) -> Path:
        return self.cache_dir / str(int(page_id))

    def _entry_path(self, key: CacheKey) -> Path:
        return self._page_dir(key.page_id) / key.filename

    # ── Reads ────────────────────────────────────────────────────

    def get(self, key: CacheKey, ttl: int) -> Optional[bytes]:
        """
        Return the cached payload, or None on a miss.

        Args:
            key: Composite page/variant key
            ttl: The template's current TTL in seconds. An entry whose
                 age is >= ttl is a miss even if it was written under a
                 longer TTL.
        """
        path = self._entry_path(key)
        try:
            header, payload = self._read_entry(path, key)
        except FileNotFoundError:
            self._count("misses")
            logger.debug(f"Cache miss for {key}")
            return None
        except CorruptEntry as e:
            self._count("misses")
            logger.warning(f"Corrupt cache entry {path}: {e}")
            self._discard(path)
            return None
        except OSError as e:
            self._count("misses")
            self._count("errors")
            logger.warning(f"Cache read error for {key}: {e}")
            return None

        age = self._clock() - header["created_at"]
        if ttl <= 0 or age >= ttl:
            self._count("misses")
            logger.debug(f"Cache entry expired for {key} (age={age:.0f}s, ttl={ttl}s)")
            self._discard(path)
            return None

        self._count("hits")
        logger.debug(f"Cache hit for {key} (age={age:.0f}s)")
        return payload

    def _read_entry(self, path: Path, key: CacheKey) -> Tuple[Dict[str, Any], bytes]:
        with open(path, "rb") as f:
            raw = f.read()

        header_line, sep, payload = raw.partition(b"\n")
        if not sep:
            raise CorruptEntry("missing header terminator")
        try:
            header = json.loads(header_line.decode("utf-8"), parse_constant=_reject_constant)
        except (UnicodeDecodeError, ValueError) as e:
            raise CorruptEntry(f"unreadable header: {e}") from e

        errors = sorted(_header_validator.iter_errors(header), key=lambda e: e.path)
        if errors:
            raise CorruptEntry(", ".join(error.message for error in errors))
        if not math.isfinite(header["created_at"]):
            raise CorruptEntry(f"non-finite created_at: {header['created_at']}")
        if header["page_id"] != key.page_id or header["variant"] != key.variant:
            raise CorruptEntry("header does not match key")
        if header["size"] != len(payload):
            raise CorruptEntry(f"expected {header['size']} bytes, found {len(payload)}")
        return header, payload

    def exists(self, key: CacheKey) -> bool:
        """Existence probe for diagnostics; does not read or validate the payload."""
        try:
            return self._entry_path(key).is_file()
        except OSError:
            return False

    # ── Writes ───────────────────────────────────────────────────

    def put(self, key: CacheKey, payload: bytes) -> None:
        """
        Write an entry atomically.

        Raises:
            StorageWriteFailure: the entry could not be written. Nothing
            partial is left at the entry path.
        """
        page_dir = self._page_dir(key.page_id)
        header = {
            "page_id": key.page_id,
            "variant": key.variant,
            "created_at": self._clock(),
            "size": len(payload),
        }
        data = json.dumps(header, separators=(",", ":")).encode("utf-8") + b"\n" + payload

        try:
            self._ensure_dir(page_dir)
            tmp_fd, tmp_path = tempfile.mkstemp(prefix=TMP_PREFIX, dir=page_dir)
            try:
                with os.fdopen(tmp_fd, "wb") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.chmod(tmp_path, self.file_mode)
                os.replace(tmp_path, page_dir / key.filename)
            except BaseException:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
                raise
        except OSError as e:
            self._count("errors")
            raise StorageWriteFailure(f"Cache write failed for {key}: {e}") from e

        self._count("writes")
        logger.debug(f"Cached {key} ({len(payload)} bytes)")

    def _ensure_dir(self, page_dir: Path) -> None:
        if page_dir.is_dir():
            return
        page_dir.mkdir(exist_ok=True)
        os.chmod(page_dir, self.dir_mode)

    # ── Removal ──────────────────────────────────────────────────

    def _discard(self, path: Path) -> None:
        """Best-effort removal of a stale or corrupt entry found while reading."""
        try:
            path.unlink()
            self._count("evictions")
        except FileNotFoundError:
            pass
        except OSError as e:
            self._count("errors")
            logger.warning(f"Could not remove stale entry {path}: {e}")

    def remove(self, key: CacheKey) -> bool:
        """Delete one entry. Returns False if it was not there."""
        try:
            self._entry_path(key).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            self._count("errors")
            raise StorageWriteFailure(f"Cache remove failed for {key}: {e}") from e
        self._count("evictions")
        logger.debug(f"Removed {key}")
        return True

    def _clear_dir(self, page_dir: Path) -> int:
        """
        Unlink every file in a page directory, then the directory itself.

        Files that vanish meanwhile (a reader discarding a stale entry, a
        writer renaming its temp file) are skipped, not treated as a missing
        directory. A directory refilled by a racing put is left in place;
        that entry is newer than the removal. Returns the entries removed.
        """
        try:
            children = list(page_dir.iterdir())
        except FileNotFoundError:
            return 0

        cleared = 0
        for child in children:
            try:
                child.unlink()
            except FileNotFoundError:
                continue
            if child.name.endswith(FILENAME_SUFFIX) and not child.name.startswith(TMP_PREFIX):
                cleared += 1

        try:
            page_dir.rmdir()
        except FileNotFoundError:
            pass
        except OSError as e:
            if e.errno not in (errno.ENOTEMPTY, errno.EEXIST):
                raise
            logger.debug(f"{page_dir} refilled during removal, keeping it")
        return cleared

    def remove_all_for_page(self, page_id: int) -> int:
        """Delete every variant cached for a page. Returns the number removed."""
        page_dir = self._page_dir(page_id)
        try:
            cleared = self._clear_dir(page_dir)
        except OSError as e:
            self._count("errors")
            raise StorageWriteFailure(f"Cache clear failed for page {page_id}: {e}") from e

        if cleared:
            self._count("evictions", cleared)
            logger.info(f"Cleared {cleared} cache entries for page {page_id}")
        return cleared

    def expire_all(self) -> int:
        """Site-wide flush. Returns the number of entries removed."""
        cleared = 0
        failures = []
        for page_dir in self._page_dirs():
            try:
                cleared += self._clear_dir(page_dir)
            except OSError as e:
                failures.append(f"{page_dir.name}: {e}")

        self._count("evictions", cleared)
        logger.info(f"Expired {cleared} cache entries site-wide")
        if failures:
            self._count("errors", len(failures))
            raise StorageWriteFailure(f"Site-wide flush incomplete: {'; '.join(failures)}")
        return cleared

    # ── Enumeration ──────────────────────────────────────────────

    def _page_dirs(self) -> Iterator[Path]:
        try:
            children = list(self.cache_dir.iterdir())
        except FileNotFoundError:
            return
        for child in children:
            if child.is_dir() and child.name.isdigit():
                yield child

    def _entries_in(self, page_dir: Path) -> Iterator[Path]:
        for child in page_dir.iterdir():
            if child.name.endswith(FILENAME_SUFFIX) and not child.name.startswith(TMP_PREFIX):
                yield child

    def count_cached_pages(self) -> int:
        """Number of pages with at least one cached variant."""
        total = 0
        for page_dir in self._page_dirs():
            try:
                if any(True for _ in self._entries_in(page_dir)):
                    total += 1
            except FileNotFoundError:
                continue
        return total

    def count_entries(self) -> int:
        total = 0
        for page_dir in self._page_dirs():
            try:
                total += sum(1 for _ in self._entries_in(page_dir))
            except FileNotFoundError:
                continue
        return total

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._stats_lock:
            stats = dict(self.stats)
        total_requests = stats["hits"] + stats["misses"]
        hit_rate = (stats["hits"] / total_requests * 100) if total_requests > 0 else 0

        return {
            "hits": stats["hits"],
            "misses": stats["misses"],
            "hit_rate_percent": round(hit_rate, 1),
            "total_requests": total_requests,
            "writes": stats["writes"],
            "evictions": stats["evictions"],
            "errors": stats["errors"],
            "uptime_seconds": int(time.time() - stats["start_time"]),
        }
