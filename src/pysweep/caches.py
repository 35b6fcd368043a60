"""Cache directory inventory and cleaning for pysweep."""

import logging
import os
import shutil
from collections.abc import Callable, Iterable
from datetime import datetime

import psutil

from pysweep.config import DEFAULT_CACHE_CATALOG, PROTECTED_NAMES, CacheLocation
from pysweep.models import CacheEntry, CacheFileEntry, CleanResult, DiskUsage

logger = logging.getLogger(__name__)


class CacheNotFoundError(FileNotFoundError):
    """Raised when asked to clean a directory that does not exist."""


def directory_size(path: str) -> int:
    """
    Recursive size of the files under ``path`` in bytes.

    Directories count only their contents. Symlinks are not followed and
    unreadable entries count as zero. A missing path has size 0.
    """
    try:
        st = os.lstat(path)
    except OSError:
        return 0
    if not os.path.isdir(path) or os.path.islink(path):
        return st.st_size

    total = 0
    for dirpath, _, filenames in os.walk(path, followlinks=False):
        for filename in filenames:
            try:
                total += os.lstat(os.path.join(dirpath, filename)).st_size
            except OSError:
                continue
    return total


def remove_path(path: str) -> None:
    """Delete a file, symlink or directory tree. Raises OSError on failure."""
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.unlink(path)


class CacheInventory:
    """Scans the cache catalog and cleans individual cache directories."""

    def __init__(
        self,
        catalog: Iterable[CacheLocation] = DEFAULT_CACHE_CATALOG,
        remove: Callable[[str], None] = remove_path,
        protected: frozenset[str] = PROTECTED_NAMES,
    ) -> None:
        self._catalog = tuple(catalog)
        self._remove = remove
        self._protected = protected

    @property
    def catalog(self) -> tuple[CacheLocation, ...]:
        return self._catalog

    def scan(self) -> list[CacheEntry]:
        """Catalog locations holding data, largest first. Empty or missing ones are left out."""
        entries: list[CacheEntry] = []
        for location in self._catalog:
            path = os.path.expanduser(location.path)
            # The location itself may be a symlink, as /tmp is on macOS
            size = directory_size(os.path.realpath(path))
            if size > 0:
                entries.append(CacheEntry(location.name, path, size, location.category))
        return sorted(entries, key=lambda entry: entry.size_bytes, reverse=True)

    def total_size(self) -> int:
        return sum(entry.size_bytes for entry in self.scan())

    def clean(self, path: str) -> CleanResult:
        """
        Delete the contents of ``path``, keeping the directory itself.

        Protected names are skipped. A child that cannot be removed is counted
        and skipped; only removed children add to ``bytes_freed``.

        Raises:
            CacheNotFoundError: ``path`` does not exist.
        """
        if not os.path.exists(path):
            raise CacheNotFoundError(path)

        try:
            children = os.listdir(path)
        except OSError as exc:
            logger.warning("Cannot list %s: %s", path, exc)
            return CleanResult(path, success=False, bytes_freed=0, detail=str(exc))

        freed = 0
        removed = 0
        failed = 0
        for child in children:
            if child in self._protected:
                continue
            child_path = os.path.join(path, child)
            size = directory_size(child_path)
            try:
                self._remove(child_path)
            except OSError as exc:
                failed += 1
                logger.debug("Could not remove %s: %s", child_path, exc)
                continue
            freed += size
            removed += 1

        if failed:
            logger.warning("Cleaning %s: %d item(s) could not be removed", path, failed)
        logger.info("Cleaned %s: removed %d item(s), freed %d bytes", path, removed, freed)
        return CleanResult(path, success=removed > 0, bytes_freed=freed, removed=removed, failed=failed)

    def clean_all(self, entries: Iterable[CacheEntry]) -> list[CleanResult]:
        """Clean every entry; entries whose directory vanished report failure."""
        results: list[CleanResult] = []
        for entry in entries:
            try:
                results.append(self.clean(entry.path))
            except CacheNotFoundError:
                results.append(CleanResult(entry.path, success=False, bytes_freed=0, detail="not found"))
        return results

    def files(self, path: str, limit: int = 100) -> list[CacheFileEntry]:
        """Immediate children of ``path`` with their sizes, largest first."""
        try:
            names = sorted(os.listdir(path))
        except OSError:
            return []

        files: list[CacheFileEntry] = []
        for name in names[:limit]:
            child_path = os.path.join(path, name)
            try:
                st = os.lstat(child_path)
            except OSError:
                continue
            is_dir = os.path.isdir(child_path) and not os.path.islink(child_path)
            files.append(
                CacheFileEntry(
                    name=name,
                    path=child_path,
                    size_bytes=directory_size(child_path) if is_dir else st.st_size,
                    is_directory=is_dir,
                    modification_time=datetime.fromtimestamp(st.st_mtime),
                )
            )
        return sorted(files, key=lambda entry: entry.size_bytes, reverse=True)


def disk_usage(path: str = "/") -> DiskUsage:
    """Capacity of the volume holding ``path``; zeros when it cannot be read."""
    try:
        usage = psutil.disk_usage(path)
    except OSError:
        return DiskUsage(0, 0, 0)
    return DiskUsage(total_bytes=usage.total, used_bytes=usage.total - usage.free, free_bytes=usage.free)
