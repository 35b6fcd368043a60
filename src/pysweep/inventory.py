"""Process, port, memory and application inventories for pysweep."""

import logging
import plistlib
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Generic, TypeVar

import psutil

from pysweep.config import InspectorConfig
from pysweep.models import AppRecord, MemorySnapshot, PortRecord, ProcessRecord
from pysweep.parsers import parse_ports, parse_processes, parse_usage, parse_vm_stat
from pysweep.shell import CommandResult, CommandRunner

logger = logging.getLogger(__name__)

Runner = Callable[[str], CommandResult]
T = TypeVar("T")

APP_BUNDLE_MARKER = ".app/Contents/MacOS/"


@dataclass(slots=True, frozen=True)
class ScanResult(Generic[T]):
    """Records from one scan plus the command failure, if any."""

    records: list[T]
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error


def _failure(command: str, result: CommandResult) -> str:
    detail = result.stderr.strip() or f"exit status {result.exit_code}"
    return f"{command.split()[0]}: {detail}"


class ProcessInventory:
    """Lists processes ordered by resident memory, largest first."""

    def __init__(self, runner: Runner | None = None, config: InspectorConfig | None = None) -> None:
        self._config = config or InspectorConfig()
        self._runner = runner or CommandRunner(self._config.shell)

    def collect(self) -> ScanResult[ProcessRecord]:
        command = self._config.process_command
        result = self._runner(command)
        if not result.ok:
            error = _failure(command, result)
            logger.warning("Process scan failed: %s", error)
            return ScanResult([], error)
        records = parse_processes(result.stdout)
        logger.debug("Process scan found %d processes", len(records))
        return ScanResult(records)

    def scan(self) -> list[ProcessRecord]:
        return self.collect().records


class PortInventory:
    """
    Lists sockets in the LISTEN or ESTABLISHED state.

    One record per (port, pid), ordered by port ascending.
    """

    def __init__(self, runner: Runner | None = None, config: InspectorConfig | None = None) -> None:
        self._config = config or InspectorConfig()
        self._runner = runner or CommandRunner(self._config.shell)

    def collect(self) -> ScanResult[PortRecord]:
        command = self._config.port_command
        result = self._runner(command)
        # lsof exits non-zero when some descriptors could not be read; its
        # output is still usable then.
        if result.spawn_failed or (not result.ok and not result.stdout.strip()):
            error = _failure(command, result)
            logger.warning("Port scan failed: %s", error)
            return ScanResult([], error)
        records = parse_ports(result.stdout)
        logger.debug("Port scan found %d sockets", len(records))
        return ScanResult(records)

    def scan(self) -> list[PortRecord]:
        return self.collect().records


def physical_memory() -> int:
    """Total installed memory in bytes."""
    return psutil.virtual_memory().total


class MemoryGauge:
    """Reads total, used and free memory from the page statistics utility."""

    def __init__(
        self,
        runner: Runner | None = None,
        config: InspectorConfig | None = None,
        total_memory: Callable[[], int] = physical_memory,
    ) -> None:
        self._config = config or InspectorConfig()
        self._runner = runner or CommandRunner(self._config.shell)
        self._total_memory = total_memory

    def collect(self) -> ScanResult[MemorySnapshot]:
        total = self._total_memory()
        command = self._config.memory_command
        result = self._runner(command)
        if not result.ok:
            error = _failure(command, result)
            logger.warning("Memory statistics unavailable: %s", error)
            return ScanResult([MemorySnapshot(total, 0, total)], error)

        pages = parse_vm_stat(result.stdout)
        page_size = self._config.page_size
        snapshot = MemorySnapshot(
            total_bytes=total,
            used_bytes=pages.used_bytes(page_size),
            free_bytes=pages.free_bytes(page_size),
        )
        return ScanResult([snapshot])

    def scan(self) -> MemorySnapshot:
        return self.collect().records[0]


@dataclass(slots=True, frozen=True)
class RunningApplication:
    """A user-facing application as reported by the OS."""

    name: str
    bundle_identifier: str | None
    pid: int


@lru_cache(maxsize=256)
def _bundle_info(bundle: str) -> tuple[str | None, str | None]:
    """(display name, bundle identifier) from a bundle's Info.plist."""
    try:
        with open(Path(bundle) / "Contents" / "Info.plist", "rb") as f:
            info = plistlib.load(f)
    except (OSError, plistlib.InvalidFileException, ValueError):
        return None, None
    name = info.get("CFBundleDisplayName") or info.get("CFBundleName")
    return name, info.get("CFBundleIdentifier")


def application_bundle(exe: str) -> str | None:
    """
    Path of the top-level ``.app`` bundle an executable lives in.

    Helpers nested inside another bundle are not user-facing and yield None.
    """
    head, marker, _ = exe.partition(APP_BUNDLE_MARKER)
    if not marker or ".app/" in head:
        return None
    return head + ".app"


def running_applications() -> list[RunningApplication]:
    """Processes whose executable is the main binary of an application bundle."""
    apps: list[RunningApplication] = []
    for proc in psutil.process_iter(attrs=["pid", "name", "exe"]):
        try:
            info = proc.info
            bundle = application_bundle(info.get("exe") or "")
            if bundle is None:
                continue
            name, identifier = _bundle_info(bundle)
            apps.append(
                RunningApplication(
                    name=name or Path(bundle).stem,
                    bundle_identifier=identifier,
                    pid=info["pid"],
                )
            )
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return apps


class AppInventory:
    """
    Lists running applications with their CPU and memory usage.

    Usage comes from a fresh ps scan joined on pid. Apps missing from that scan
    are reported with zero usage. If the scan itself fails the apps are still
    listed, and the failure is carried in the result's ``error``.
    """

    def __init__(
        self,
        runner: Runner | None = None,
        config: InspectorConfig | None = None,
        app_source: Callable[[], list[RunningApplication]] = running_applications,
    ) -> None:
        self._config = config or InspectorConfig()
        self._runner = runner or CommandRunner(self._config.shell)
        self._app_source = app_source

    def _usage(self) -> tuple[dict[int, tuple[int, float]], str]:
        result = self._runner(self._config.usage_command)
        if not result.ok:
            error = _failure(self._config.usage_command, result)
            logger.warning("Usage scan failed: %s", error)
            return {}, error
        return parse_usage(result.stdout), ""

    def _frontmost_pid(self) -> int | None:
        result = self._runner(self._config.frontmost_command)
        text = result.stdout.strip()
        if not result.ok or not text.isdigit():
            return None
        return int(text)

    def _join(
        self,
        apps: list[RunningApplication],
        usage: dict[int, tuple[int, float]],
        frontmost: int | None,
    ) -> Iterator[AppRecord]:
        seen: set[int] = set()
        for app in apps:
            if app.pid in seen:
                continue
            seen.add(app.pid)
            memory, cpu = usage.get(app.pid, (0, 0.0))
            yield AppRecord(
                name=app.name,
                bundle_identifier=app.bundle_identifier,
                pid=app.pid,
                is_foreground_active=app.pid == frontmost,
                memory_bytes=memory,
                cpu_percent=cpu,
            )

    def collect(self) -> ScanResult[AppRecord]:
        usage, error = self._usage()
        joined = self._join(self._app_source(), usage, self._frontmost_pid())
        records = sorted(joined, key=lambda app: app.memory_bytes, reverse=True)
        logger.debug("App scan found %d applications", len(records))
        return ScanResult(records, error)

    def scan(self) -> list[AppRecord]:
        return self.collect().records
