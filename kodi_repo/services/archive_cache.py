"""
On-disk cache of packaged addon archives.

The cache builds an archive the first time it is requested and serves the
file from disk afterwards. Concurrent requests for an archive that is being
built wait on the in-flight build instead of starting another one:

    request A ──fetch──► absent ──► building ──► ready ──► A, B, C get the file
    request B ──fetch──────────────► (wait) ─────┘
    request C ──fetch──────────────► (wait) ─────┘

A failed build is reported to every waiter and leaves the entry "failed";
the next request starts exactly one new attempt.

Builds run as their own asyncio tasks. Waiters await them through
asyncio.shield, so a client that disconnects mid-build never cancels the
build for everybody else.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Callable, Dict, Optional

import aiofiles

from kodi_repo.domain.errors import BuildError
from kodi_repo.domain.models import ArchiveState, ArchiveStatus

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".zip"

# (key, destination) -> None. Runs in a worker thread.
Packager = Callable[[str, Path], object]
# key -> newest modification time of the key's sources in ns. Runs in a worker thread.
SourceMtime = Callable[[str], int]

DEFAULT_RECHECK_INTERVAL = 30.0


class ArchiveHandle:
    """A fully written archive in the cache directory."""

    def __init__(self, key: str, path: Path):
        self.key = key
        self.path = path

    @property
    def filename(self) -> str:
        return self.path.name

    async def read_bytes(self) -> bytes:
        async with aiofiles.open(self.path, "rb") as f:
            return await f.read()

    def __repr__(self) -> str:
        return f"ArchiveHandle({self.key!r}, {str(self.path)!r})"


class ArchiveCacheEntry:
    """Mutable state of one cache key. Only ArchiveCache changes it."""

    def __init__(self, key: str):
        self.key = key
        self.state: ArchiveState = "absent"
        self.path: Optional[Path] = None
        self.build: Optional[asyncio.Task] = None
        self.waiters = 0
        self.attempts = 0
        # Freshness of a "ready" archive, see ArchiveCache._fresh().
        self.stale = False
        self.checked_at = 0.0
        self.lock = asyncio.Lock()

    def status(self) -> ArchiveStatus:
        return ArchiveStatus(
            key=self.key,
            state=self.state,
            path=self.path,
            waiters=self.waiters,
            attempts=self.attempts,
        )


class ArchiveCache:
    """
    Key-addressed store of archives with at most one concurrent build per key.

    Args:
        cache_dir: Directory the archives are written to. Created if missing.
        packager: Writes the archive for a key to the given path.
        source_mtime: Optional newest source modification time (ns) of a key.
            Each archive is stamped with the value taken just before its build
            started; a cached archive whose sources are newer than its stamp is
            rebuilt. Without it, a cached archive is kept for the process
            lifetime.
        recheck_interval: Minimum number of seconds between two freshness
            checks of the same ready archive.
    """

    def __init__(
        self,
        cache_dir: Path,
        packager: Packager,
        source_mtime: Optional[SourceMtime] = None,
        recheck_interval: float = DEFAULT_RECHECK_INTERVAL,
    ):
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._packager = packager
        self._source_mtime = source_mtime
        self.recheck_interval = recheck_interval
        self._entries: Dict[str, ArchiveCacheEntry] = {}

    # ========================================================================
    # Lookup
    # ========================================================================

    def archive_path(self, key: str) -> Path:
        """Final location of the archive for `key`."""
        if not key or key in (".", "..") or Path(key).name != key:
            raise BuildError(key, "key is not usable as a file name")
        return self.cache_dir / f"{key}{ARCHIVE_SUFFIX}"

    def _entry(self, key: str) -> ArchiveCacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = ArchiveCacheEntry(key)
            self._entries[key] = entry
        return entry

    def status(self, key: str) -> ArchiveStatus:
        entry = self._entries.get(key)
        if entry is None:
            return ArchiveStatus(key=key, state="absent")
        return entry.status()

    # ========================================================================
    # Freshness
    # ========================================================================

    def _is_stale(self, key: str, path: Path) -> bool:
        try:
            built = path.stat().st_mtime_ns
        except FileNotFoundError:
            return True
        return self._source_mtime(key) > built

    async def _fresh(self, entry: ArchiveCacheEntry, path: Path) -> bool:
        """
        Whether a "ready" archive can be served as is.

        Sources are scanned at most once per recheck_interval per key, and
        never while holding the entry lock.
        """
        if entry.stale or not path.is_file():
            return False
        if self._source_mtime is None:
            return True

        now = time.monotonic()
        if now - entry.checked_at < self.recheck_interval:
            return True
        # Claimed before the scan so concurrent fetches skip it.
        entry.checked_at = now

        stale = await asyncio.to_thread(self._is_stale, entry.key, path)
        if stale and entry.state == "ready":
            logger.info(f"Cached archive for {entry.key} is stale, rebuilding")
            entry.stale = True
        return not stale

    async def _adoptable(self, key: str, path: Path) -> bool:
        """Whether an archive left by a previous run can be reused."""
        if not path.is_file():
            return False
        if self._source_mtime is None:
            return True
        return not await asyncio.to_thread(self._is_stale, key, path)

    # ========================================================================
    # Fetch
    # ========================================================================

    async def fetch(self, key: str) -> ArchiveHandle:
        """
        Return the archive for `key`, building it if needed.

        Raises:
            BuildError: the build this call started or joined failed.
        """
        path = self.archive_path(key)
        entry = self._entry(key)

        if entry.state == "ready" and await self._fresh(entry, path):
            return ArchiveHandle(key, path)

        adoptable = False
        if entry.state == "absent":
            adoptable = await self._adoptable(key, path)

        async with entry.lock:
            if entry.state == "ready" and not entry.stale and path.is_file():
                # Rebuilt by a concurrent fetch, or still fresh.
                return ArchiveHandle(key, path)

            if entry.state == "absent" and adoptable:
                logger.info(f"Using existing archive for {key}: {path}")
                entry.state = "ready"
                entry.path = path
                entry.checked_at = time.monotonic()
                return ArchiveHandle(key, path)

            if entry.state != "building":
                self._start_build(entry, path)
            task = entry.build
            entry.waiters += 1

        try:
            built = await asyncio.shield(task)
        finally:
            entry.waiters -= 1
        return ArchiveHandle(key, built)

    # ========================================================================
    # Build
    # ========================================================================

    def _start_build(self, entry: ArchiveCacheEntry, path: Path) -> None:
        entry.state = "building"
        entry.path = None
        entry.attempts += 1
        entry.build = asyncio.create_task(
            self._run_build(entry, path, entry.attempts),
            name=f"archive-build:{entry.key}",
        )
        entry.build.add_done_callback(self._on_build_done)

    async def _run_build(self, entry: ArchiveCacheEntry, path: Path, attempt: int) -> Path:
        key = entry.key
        # One temp name per attempt; a retry never sees an earlier attempt's file.
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        logger.info(f"Building archive for {key} (attempt {attempt})")

        try:
            # Taken before packaging starts: an edit made while the packager
            # runs is newer than the stamp and marks the archive stale.
            snapshot = 0
            if self._source_mtime is not None:
                snapshot = await asyncio.to_thread(self._source_mtime, key)
            await asyncio.to_thread(self._packager, key, tmp_path)
            if not tmp_path.is_file():
                raise FileNotFoundError(f"packager did not produce {tmp_path.name}")
            if snapshot:
                os.utime(tmp_path, ns=(snapshot, snapshot))
            tmp_path.replace(path)
        except asyncio.CancelledError:
            # Only happens when the event loop shuts down.
            tmp_path.unlink(missing_ok=True)
            entry.state = "failed"
            entry.build = None
            raise
        except Exception as e:
            tmp_path.unlink(missing_ok=True)
            async with entry.lock:
                entry.state = "failed"
                entry.build = None
            logger.error(f"Archive build for {key} failed (attempt {attempt}): {e}")
            raise BuildError(key, str(e), attempt=attempt) from e

        async with entry.lock:
            entry.state = "ready"
            entry.path = path
            entry.build = None
            entry.stale = False
            entry.checked_at = time.monotonic()
        logger.info(f"Archive for {key} ready: {path}")
        return path

    @staticmethod
    def _on_build_done(task: asyncio.Task) -> None:
        # Every waiter may have gone away; consume the outcome so asyncio
        # does not report it as never retrieved.
        if not task.cancelled():
            task.exception()
