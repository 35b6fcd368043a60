"""The inventory-and-reclamation engine behind the pysweep front-end."""

import logging
from collections.abc import Callable

from pysweep.caches import CacheInventory, CacheNotFoundError, disk_usage
from pysweep.config import InspectorConfig
from pysweep.inventory import (
    AppInventory,
    MemoryGauge,
    PortInventory,
    ProcessInventory,
    RunningApplication,
    ScanResult,
    physical_memory,
    running_applications,
)
from pysweep.models import (
    AppRecord,
    CacheEntry,
    CacheFileEntry,
    CleanResult,
    DiskUsage,
    MemorySnapshot,
    PortRecord,
    ProcessRecord,
    TerminationResult,
)
from pysweep.reclaim import KillCommand, Reclaimer, SignalSender
from pysweep.shell import CommandResult, CommandRunner

logger = logging.getLogger(__name__)


class InspectorEngine:
    """
    Read and reclaim operations over one host.

    Scans are blocking and return fresh lists on every call. Reclaim operations
    never raise for a missing target; they report failure in their result.
    """

    def __init__(
        self,
        config: InspectorConfig | None = None,
        runner: Callable[[str], CommandResult] | None = None,
        send_signal: SignalSender | None = None,
        app_source: Callable[[], list[RunningApplication]] = running_applications,
        total_memory: Callable[[], int] = physical_memory,
        cache_inventory: CacheInventory | None = None,
    ) -> None:
        self.config = config or InspectorConfig()
        runner = runner or CommandRunner(self.config.shell)

        self.processes = ProcessInventory(runner, self.config)
        self.ports = PortInventory(runner, self.config)
        self.memory = MemoryGauge(runner, self.config, total_memory=total_memory)
        self.apps = AppInventory(runner, self.config, app_source=app_source)
        self.caches = cache_inventory or CacheInventory(self.config.cache_catalog)
        self.reclaimer = Reclaimer(send_signal or KillCommand(runner))

    # -- reads --------------------------------------------------------------

    def scan_processes(self) -> list[ProcessRecord]:
        return self.processes.scan()

    def scan_ports(self) -> list[PortRecord]:
        return self.ports.scan()

    def scan_memory(self) -> MemorySnapshot:
        return self.memory.scan()

    def scan_apps(self) -> list[AppRecord]:
        return self.apps.scan()

    def scan_caches(self) -> list[CacheEntry]:
        return self.caches.scan()

    def collect_caches(self) -> ScanResult[CacheEntry]:
        return ScanResult(self.caches.scan())

    def cache_files(self, path: str, limit: int | None = None) -> list[CacheFileEntry]:
        return self.caches.files(path, self.config.cache_file_limit if limit is None else limit)

    def total_cache_size(self) -> int:
        return self.caches.total_size()

    def disk_usage(self, path: str = "/") -> DiskUsage:
        return disk_usage(path)

    # -- reclaims -----------------------------------------------------------

    def terminate(self, pid: int, force: bool = False) -> TerminationResult:
        return self.reclaimer.terminate(pid, force)

    def release_port(self, record: PortRecord, force: bool = True) -> TerminationResult:
        return self.reclaimer.release_port(record, force)

    def terminate_app(self, record: AppRecord, force: bool = False) -> TerminationResult:
        return self.reclaimer.terminate_app(record, force)

    def clean_cache(self, path: str) -> CleanResult:
        """Clean one cache directory; a missing directory is a failed result."""
        try:
            return self.caches.clean(path)
        except CacheNotFoundError:
            logger.warning("Cache directory %s does not exist", path)
            return CleanResult(path, success=False, bytes_freed=0, detail="not found")

    def clean_all_caches(self, entries: list[CacheEntry] | None = None) -> list[CleanResult]:
        """Clean the given entries, or everything a fresh scan finds."""
        if entries is None:
            entries = self.scan_caches()
        return self.caches.clean_all(entries)
