"""Background refresh scheduling for pysweep."""

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from queue import Queue

from pysweep.engine import InspectorEngine
from pysweep.inventory import ScanResult
from pysweep.models import Snapshot

logger = logging.getLogger(__name__)

PROCESSES = "processes"
MEMORY = "memory"
PORTS = "ports"
APPS = "apps"
CACHES = "caches"

MIN_POLL_RATE = 0.1


class InventoryMonitor:
    """
    Keeps the latest snapshot of one inventory fresh.

    A daemon thread requests a refresh every ``poll_rate`` seconds (never, when
    ``poll_rate`` is None). Refreshes run on the shared executor. While one is in
    flight, further requests share its Future. The latest snapshot is replaced
    whole, and results older than the published one are dropped.
    """

    def __init__(
        self,
        kind: str,
        collect: Callable[[], ScanResult],
        executor: ThreadPoolExecutor,
        update_queue: Queue[Snapshot] | None = None,
        poll_rate: float | None = 2.0,
    ) -> None:
        self.kind = kind
        self._collect = collect
        self._executor = executor
        self._queue = update_queue
        self._poll_rate = None if poll_rate is None else max(MIN_POLL_RATE, poll_rate)
        self._lock = threading.Lock()
        self._latest: Snapshot | None = None
        self._pending: Future[Snapshot] | None = None
        self._sequence = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def poll_rate(self) -> float | None:
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float | None) -> None:
        self._poll_rate = None if value is None else max(MIN_POLL_RATE, value)

    @property
    def latest(self) -> Snapshot | None:
        """The most recently published snapshot."""
        with self._lock:
            return self._latest

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_refreshing(self) -> bool:
        with self._lock:
            return self._pending is not None and not self._pending.done()

    def start(self) -> None:
        """Start periodic refreshing. Without a poll rate, refresh once."""
        if self._poll_rate is None:
            self.refresh()
            return
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name=f"InventoryMonitor-{self.kind}",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def refresh(self) -> "Future[Snapshot]":
        """Request a refresh, joining the one in flight if there is one."""
        with self._lock:
            if self._pending is not None and not self._pending.done():
                return self._pending
            self._sequence += 1
            future = self._executor.submit(self._collect_snapshot, self._sequence)
            self._pending = future
        return future

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.refresh().result()
            except Exception:
                # Logged in _collect_snapshot; keep polling
                pass

            self._stop_event.wait(timeout=self._poll_rate)

    def _collect_snapshot(self, sequence: int) -> Snapshot:
        try:
            result = self._collect()
        except Exception:
            logger.exception("Refreshing %s failed", self.kind)
            raise

        snapshot = Snapshot(
            kind=self.kind,
            records=tuple(result.records),
            taken_at=time.time(),
            sequence=sequence,
            error=result.error,
        )
        with self._lock:
            if self._latest is not None and self._latest.sequence >= sequence:
                logger.debug("Discarding stale %s snapshot %d", self.kind, sequence)
                return self._latest
            self._latest = snapshot
        if self._queue is not None:
            self._queue.put(snapshot)
        return snapshot


class RefreshScheduler:
    """
    Owns one monitor per inventory kind and the worker pool they share.

    Caches are refreshed on request only; the other kinds poll at the intervals
    set in the engine's config.
    """

    def __init__(
        self,
        engine: InspectorEngine,
        update_queue: Queue[Snapshot] | None = None,
        max_workers: int = 4,
    ) -> None:
        self.engine = engine
        self.update_queue: Queue[Snapshot] = update_queue if update_queue is not None else Queue()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pysweep")
        config = engine.config
        schedule: dict[str, tuple[Callable[[], ScanResult], float | None]] = {
            PROCESSES: (engine.processes.collect, config.process_refresh),
            MEMORY: (engine.memory.collect, config.process_refresh),
            PORTS: (engine.ports.collect, config.port_refresh),
            APPS: (engine.apps.collect, config.app_refresh),
            CACHES: (engine.collect_caches, None),
        }
        self.monitors: dict[str, InventoryMonitor] = {
            kind: InventoryMonitor(kind, collect, self._executor, self.update_queue, poll_rate)
            for kind, (collect, poll_rate) in schedule.items()
        }

    def __getitem__(self, kind: str) -> InventoryMonitor:
        return self.monitors[kind]

    def latest(self, kind: str) -> Snapshot | None:
        return self.monitors[kind].latest

    def refresh(self, kind: str) -> "Future[Snapshot]":
        return self.monitors[kind].refresh()

    def start(self) -> None:
        for monitor in self.monitors.values():
            monitor.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        for monitor in self.monitors.values():
            monitor.stop(timeout=timeout)
        self._executor.shutdown(wait=False, cancel_futures=True)
