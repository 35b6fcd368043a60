"""Shell command execution for pysweep."""

import logging
import os
import subprocess
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SPAWN_FAILED = -1


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Captured output of one command."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def spawn_failed(self) -> bool:
        return self.exit_code == SPAWN_FAILED


class CommandRunner:
    """
    Runs command lines through the host shell and captures their output.

    Blocks the calling thread until the command exits. There is no timeout and no
    retry; a command that cannot be started yields empty stdout, the error text in
    stderr and exit code -1.
    """

    def __init__(self, shell: str = "/bin/sh") -> None:
        self._shell = shell

    @property
    def shell(self) -> str:
        return self._shell

    def run(self, command: str) -> CommandResult:
        """Run ``command`` and return its stdout, stderr and exit status."""
        logger.debug("Running %r", command)
        try:
            completed = subprocess.run(
                [self._shell, "-c", command],
                capture_output=True,
                env=os.environ.copy(),
                check=False,
            )
        except OSError as exc:
            logger.warning("Could not start %r: %s", command, exc)
            return CommandResult("", str(exc), SPAWN_FAILED)

        return CommandResult(
            stdout=completed.stdout.decode("utf-8", errors="replace"),
            stderr=completed.stderr.decode("utf-8", errors="replace"),
            exit_code=completed.returncode,
        )

    __call__ = run
