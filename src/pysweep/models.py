"""Data models for pysweep."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Protocol(Enum):
    """Transport protocol of a socket."""

    TCP = "TCP"
    UDP = "UDP"


class CacheCategory(Enum):
    """Grouping of catalog cache locations."""

    BROWSER = "browser"
    SYSTEM = "system"
    APPLICATION = "application"


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable snapshot of one process. Identity is the pid."""

    pid: int
    name: str = field(compare=False)
    memory_bytes: int = field(compare=False)  # Resident set size
    cpu_percent: float = field(compare=False)
    user: str = field(compare=False)


@dataclass(slots=True, frozen=True)
class PortRecord:
    """Immutable snapshot of one socket. Identity is (port, pid)."""

    port: int
    pid: int
    process_name: str = field(compare=False)
    protocol: Protocol = field(compare=False)
    state: str = field(compare=False)  # 'LISTEN', 'ESTABLISHED' or ''
    local_address: str = field(compare=False)

    @property
    def is_listening(self) -> bool:
        """True for sockets in the LISTEN state."""
        return self.state.upper() == "LISTEN"


@dataclass(slots=True, frozen=True)
class MemorySnapshot:
    """System memory counters in bytes.

    used + free need not add up to total; some page classes are in neither bucket.
    """

    total_bytes: int
    used_bytes: int
    free_bytes: int

    @property
    def usage_fraction(self) -> float:
        """Used memory as a fraction of total (0.0 when total is unknown)."""
        if self.total_bytes <= 0:
            return 0.0
        return self.used_bytes / self.total_bytes


@dataclass(slots=True, frozen=True)
class AppRecord:
    """A user-facing running application joined with its process usage."""

    name: str = field(compare=False)
    bundle_identifier: str | None = field(compare=False)
    pid: int
    is_foreground_active: bool = field(compare=False)
    memory_bytes: int = field(compare=False)
    cpu_percent: float = field(compare=False)


@dataclass(slots=True, frozen=True)
class CacheEntry:
    """A catalog cache location with its recursive size."""

    name: str
    path: str
    size_bytes: int
    category: CacheCategory


@dataclass(slots=True, frozen=True)
class CacheFileEntry:
    """One immediate child of a cache directory."""

    name: str
    path: str
    size_bytes: int
    is_directory: bool
    modification_time: datetime | None


@dataclass(slots=True, frozen=True)
class DiskUsage:
    """Capacity of the volume holding a path."""

    total_bytes: int
    used_bytes: int
    free_bytes: int

    @property
    def usage_fraction(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return self.used_bytes / self.total_bytes


@dataclass(slots=True, frozen=True)
class TerminationResult:
    """
    Outcome of sending a termination signal.

    ``delivered`` only means the signal-sending command exited zero. It does not
    prove the process has stopped; re-scan to observe that.
    """

    pid: int
    signal: int
    delivered: bool
    detail: str = ""

    def __bool__(self) -> bool:
        return self.delivered


@dataclass(slots=True, frozen=True)
class CleanResult:
    """
    Outcome of cleaning one cache directory.

    ``success`` is true when at least one child was removed. ``bytes_freed``
    counts only children that were actually removed.
    """

    path: str
    success: bool
    bytes_freed: int
    removed: int = 0
    failed: int = 0
    detail: str = ""


@dataclass(slots=True, frozen=True)
class Snapshot:
    """One published inventory result."""

    kind: str
    records: tuple[Any, ...]
    taken_at: float
    sequence: int
    error: str = ""  # Set when the underlying command failed
