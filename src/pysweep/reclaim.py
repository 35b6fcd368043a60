"""Process termination for pysweep."""

import logging
import signal
from collections.abc import Callable

from pysweep.models import AppRecord, PortRecord, ProcessRecord, TerminationResult
from pysweep.shell import CommandResult, CommandRunner

logger = logging.getLogger(__name__)

GRACEFUL = int(signal.SIGTERM)  # 15
FORCED = int(signal.SIGKILL)  # 9

SignalSender = Callable[[int, int], CommandResult]


class KillCommand:
    """Sends signals with the ``kill`` utility."""

    def __init__(self, runner: Callable[[str], CommandResult] | None = None) -> None:
        self._runner = runner or CommandRunner()

    def __call__(self, pid: int, signum: int) -> CommandResult:
        return self._runner(f"kill -{signum} {pid}")


class Reclaimer:
    """
    Terminates processes, and with them the ports and apps they hold.

    Nothing checks that the target actually exits. Re-scan the inventory to see
    whether the pid is gone.
    """

    def __init__(self, send_signal: SignalSender | None = None) -> None:
        self._send_signal = send_signal or KillCommand()

    def terminate(self, pid: int, force: bool = False) -> TerminationResult:
        """
        Send SIGTERM (or SIGKILL when ``force``) to ``pid``.

        Only the process itself is signalled, not the process group it may
        lead; children that ignore their parent's exit keep running. Pids of
        zero or below are refused without sending anything.

        Returns a ``TerminationResult`` whose truth value is ``delivered``.
        """
        signum = FORCED if force else GRACEFUL
        if pid <= 0:
            # 0 and negative pids address process groups
            return TerminationResult(pid, signum, delivered=False, detail="invalid pid")

        result = self._send_signal(pid, signum)
        if not result.ok:
            detail = result.stderr.strip() or f"exit status {result.exit_code}"
            logger.warning("Signal %d to pid %d failed: %s", signum, pid, detail)
            return TerminationResult(pid, signum, delivered=False, detail=detail)

        logger.info("Sent signal %d to pid %d", signum, pid)
        return TerminationResult(pid, signum, delivered=True)

    def terminate_process(self, record: ProcessRecord, force: bool = False) -> TerminationResult:
        return self.terminate(record.pid, force)

    def release_port(self, record: PortRecord, force: bool = True) -> TerminationResult:
        """Free a port by terminating the process that owns it."""
        return self.terminate(record.pid, force)

    def terminate_app(self, record: AppRecord, force: bool = False) -> TerminationResult:
        return self.terminate(record.pid, force)
