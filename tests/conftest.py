"""Shared fixtures: canned command output and fake OS primitives."""

import pytest

from pysweep.config import CacheLocation, InspectorConfig
from pysweep.caches import CacheInventory
from pysweep.engine import InspectorEngine
from pysweep.inventory import RunningApplication
from pysweep.models import CacheCategory
from pysweep.shell import CommandResult

PS_OUTPUT = """\
  123 alice            12.5   2048 /Applications/Safari.app/Contents/MacOS/Safari
  789 alice             1.0   1024 /Applications/Google Chrome.app/Contents/MacOS/Google Chrome
  456 root              0.0      0 kernel_task
   88 _windowserver     3.2    512 WindowServer
"""

LSOF_OUTPUT = """\
COMMAND     PID   USER   FD   TYPE             DEVICE SIZE/OFF NODE NAME
rapportd    512  alice    4u  IPv4 0x1a2b3c4d5e6f7081      0t0  TCP *:49152 (LISTEN)
rapportd    512  alice    5u  IPv6 0x1a2b3c4d5e6f7082      0t0  TCP *:49152 (LISTEN)
node       4242  alice   23u  IPv6 0x1a2b3c4d5e6f7083      0t0  TCP [::1]:3000 (LISTEN)
postgres    880  alice    7u  IPv4 0x1a2b3c4d5e6f7084      0t0  TCP 127.0.0.1:5432 (LISTEN)
Google     1999  alice   30u  IPv4 0x1a2b3c4d5e6f7085      0t0  TCP 192.168.1.10:52100->142.250.80.46:443 (ESTABLISHED)
mDNSRespo   301  _mdns    8u  IPv4 0x1a2b3c4d5e6f7086      0t0  UDP *:5353
Slack      2001  alice   40u  IPv4 0x1a2b3c4d5e6f7087      0t0  TCP 10.0.0.2:52200->10.0.0.9:443 (CLOSE_WAIT)
"""

VM_STAT_OUTPUT = """\
Mach Virtual Memory Statistics: (page size of 4096 bytes)
Pages free:                               100.
Pages active:                             200.
Pages inactive:                            50.
Pages speculative:                         20.
Pages throttled:                            0.
Pages wired down:                         300.
Pages purgeable:                            5.
"Translation faults":                 1234567.
Pages copy-on-write:                    12345.
Pages stored in compressor:               999.
Pages occupied by compressor:              10.
"""

USAGE_OUTPUT = """\
  PID  %CPU      RSS
  123  12.5     2048
  789   1.0     4096
"""

TOTAL_MEMORY = 16 * 1024**3


class FakeRunner:
    """
    Stands in for CommandRunner.

    Returns the result registered for the first key found in the command line,
    and records every command it was asked to run.
    """

    def __init__(self, results: dict[str, CommandResult] | None = None) -> None:
        self.results: dict[str, CommandResult] = dict(results or {})
        self.commands: list[str] = []

    def __call__(self, command: str) -> CommandResult:
        self.commands.append(command)
        for key, result in self.results.items():
            if key in command:
                return result
        return CommandResult("", f"{command.split()[0]}: command not found", 127)


class RecordingSender:
    """Fake signal sender that records (pid, signal) pairs."""

    def __init__(self, exit_code: int = 0, stderr: str = "") -> None:
        self.calls: list[tuple[int, int]] = []
        self._exit_code = exit_code
        self._stderr = stderr

    def __call__(self, pid: int, signum: int) -> CommandResult:
        self.calls.append((pid, signum))
        return CommandResult("", self._stderr, self._exit_code)


def ok(stdout: str) -> CommandResult:
    return CommandResult(stdout, "", 0)


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Runner answering ps, lsof, vm_stat and the frontmost query."""
    return FakeRunner(
        {
            "ps -axo pid,user": ok(PS_OUTPUT),
            "ps -axo pid,%cpu,rss": ok(USAGE_OUTPUT),
            "lsof": ok(LSOF_OUTPUT),
            "vm_stat": ok(VM_STAT_OUTPUT),
            "osascript": ok("123\n"),
        }
    )


@pytest.fixture
def recording_sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def cache_root(tmp_path):
    """Two populated cache directories, one empty and one missing."""
    big = tmp_path / "big"
    big.mkdir()
    (big / "blob.bin").write_bytes(b"x" * 4000)
    (big / "nested").mkdir()
    (big / "nested" / "part.bin").write_bytes(b"y" * 1000)

    small = tmp_path / "small"
    small.mkdir()
    (small / "index").write_bytes(b"z" * 300)

    (tmp_path / "empty").mkdir()
    return tmp_path


@pytest.fixture
def cache_inventory(cache_root) -> CacheInventory:
    return CacheInventory(
        [
            CacheLocation("Small", str(cache_root / "small"), CacheCategory.APPLICATION),
            CacheLocation("Big", str(cache_root / "big"), CacheCategory.BROWSER),
            CacheLocation("Empty", str(cache_root / "empty"), CacheCategory.SYSTEM),
            CacheLocation("Missing", str(cache_root / "missing"), CacheCategory.SYSTEM),
        ]
    )


@pytest.fixture
def engine(fake_runner, recording_sender, cache_inventory) -> InspectorEngine:
    """Engine wired to fakes only."""
    return InspectorEngine(
        config=InspectorConfig(),
        runner=fake_runner,
        send_signal=recording_sender,
        app_source=lambda: [
            RunningApplication("Safari", "com.apple.Safari", 123),
            RunningApplication("Notes", "com.apple.Notes", 555),
        ],
        total_memory=lambda: TOTAL_MEMORY,
        cache_inventory=cache_inventory,
    )
