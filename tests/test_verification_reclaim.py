"""Verification Test: real signals against real processes.

Spawns dummy processes and terminates them through the Reclaimer's default
``kill`` command, checking which signal actually ended each one. Then keeps a
scheduler refreshing while processes are killed, to make sure refreshes
survive processes disappearing underneath them.
"""

import multiprocessing
import random
import time

import psutil
import pytest

from pysweep.engine import InspectorEngine
from pysweep.inventory import ScanResult
from pysweep.models import ProcessRecord
from pysweep.reclaim import Reclaimer
from pysweep.scheduler import PROCESSES, RefreshScheduler


def dummy_worker(duration: float = 60.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


@pytest.fixture
def dummy_processes():
    """Spawn a handful of sleeping processes and clean them up afterwards."""
    processes = []
    try:
        for _ in range(6):
            p = multiprocessing.Process(target=dummy_worker, args=(60.0,))
            p.start()
            processes.append(p)
        yield processes
    finally:
        for p in processes:
            if p.is_alive():
                p.kill()
        for p in processes:
            p.join(timeout=1.0)


def psutil_processes() -> ScanResult[ProcessRecord]:
    """Process scan that does not depend on the host's ps flavour."""
    records = []
    for proc in psutil.process_iter(attrs=["pid", "name", "username", "cpu_percent", "memory_info"]):
        info = proc.info
        mem = info.get("memory_info")
        if not mem or not mem.rss:
            continue
        records.append(
            ProcessRecord(
                pid=info["pid"],
                name=info.get("name") or "",
                memory_bytes=mem.rss,
                cpu_percent=info.get("cpu_percent") or 0.0,
                user=info.get("username") or "",
            )
        )
    return ScanResult(sorted(records, key=lambda r: r.memory_bytes, reverse=True))


class TestRealSignals:
    """Reclaimer against live processes."""

    def test_graceful_termination(self, dummy_processes):
        """Test a graceful terminate ends the process with SIGTERM."""
        target = dummy_processes[0]
        result = Reclaimer().terminate(target.pid)
        target.join(timeout=5.0)

        assert result.delivered
        assert target.exitcode == -15

    def test_forced_termination(self, dummy_processes):
        """Test a forced terminate ends the process with SIGKILL."""
        target = dummy_processes[1]
        result = Reclaimer().terminate(target.pid, force=True)
        target.join(timeout=5.0)

        assert result.delivered
        assert target.exitcode == -9

    def test_repeat_on_reaped_process_fails_cleanly(self, dummy_processes):
        """Test signalling a pid that is already gone reports failure."""
        target = dummy_processes[2]
        reclaimer = Reclaimer()
        assert reclaimer.terminate(target.pid, force=True).delivered
        target.join(timeout=5.0)

        assert not reclaimer.terminate(target.pid, force=True).delivered

    def test_refresh_survives_terminations(self, dummy_processes):
        """Test the scheduler keeps publishing while processes die mid-scan."""
        engine = InspectorEngine(app_source=lambda: [])
        engine.processes.collect = psutil_processes
        scheduler = RefreshScheduler(engine)
        monitor = scheduler[PROCESSES]
        monitor.poll_rate = 0.2

        monitor.start()
        try:
            victims = random.sample(dummy_processes, 3)
            for p in victims:
                engine.terminate(p.pid, force=True)
                time.sleep(0.05)
            for p in victims:
                p.join(timeout=5.0)

            assert monitor.is_running
            monitor.refresh().result(timeout=5.0)
            snapshot = monitor.refresh().result(timeout=5.0)

            alive = {r.pid for r in snapshot.records}
            assert not alive & {p.pid for p in victims}
        finally:
            scheduler.stop()
