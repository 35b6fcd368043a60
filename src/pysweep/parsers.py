"""
Parsers that turn utility text output into pysweep records.

Every ``parse_*_line`` function is pure: it returns a record, or ``None`` when the
line does not have the expected shape. Malformed lines are skipped, never
reported, because the utilities' formats vary between OS releases.
"""

import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TypeVar

from pysweep.models import PortRecord, ProcessRecord, Protocol

T = TypeVar("T")

PORT_HEADER = "COMMAND"
PORT_STATES = ("LISTEN", "ESTABLISHED")
MIN_PORT_FIELDS = 9  # COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME
MAX_PORT = 65535

_STATE_TOKEN = re.compile(r"^\((\w+)\)$")


def parse_lines(output: str, parse_line: Callable[[str], T | None]) -> Iterator[T]:
    """Apply ``parse_line`` to each line of ``output``, keeping non-None results."""
    for line in output.splitlines():
        record = parse_line(line)
        if record is not None:
            yield record


def _parse_int(text: str) -> int | None:
    if not text.isascii() or not text.isdigit():
        return None
    return int(text)


# -- ps ---------------------------------------------------------------------


def parse_process_line(line: str) -> ProcessRecord | None:
    """
    Parse one ``ps -axo pid,user,%cpu,rss,comm`` line.

    The command is the remainder of the line and may contain spaces; only its
    final path component is kept. Lines reporting zero resident memory are
    dropped.
    """
    fields = line.split(maxsplit=4)
    if len(fields) < 5:
        return None

    pid = _parse_int(fields[0])
    rss_kb = _parse_int(fields[3])
    if pid is None or rss_kb is None:
        return None
    try:
        cpu = float(fields[2])
    except ValueError:
        return None

    memory_bytes = rss_kb * 1024
    if memory_bytes == 0:
        return None

    command = fields[4].strip()
    name = PurePosixPath(command).name or command

    return ProcessRecord(
        pid=pid,
        name=name,
        memory_bytes=memory_bytes,
        cpu_percent=cpu,
        user=fields[1],
    )


def parse_processes(output: str) -> list[ProcessRecord]:
    """Parse ps output, keeping the order the command produced."""
    return list(parse_lines(output, parse_process_line))


def parse_usage_line(line: str) -> tuple[int, int, float] | None:
    """Parse one ``ps -axo pid,%cpu,rss`` line into (pid, memory bytes, cpu%)."""
    fields = line.split()
    if len(fields) < 3:
        return None
    pid = _parse_int(fields[0])
    rss_kb = _parse_int(fields[2])
    if pid is None or rss_kb is None:
        return None
    try:
        cpu = float(fields[1])
    except ValueError:
        return None
    return pid, rss_kb * 1024, cpu


def parse_usage(output: str) -> dict[int, tuple[int, float]]:
    """Build a pid -> (memory bytes, cpu%) map from ps output."""
    return {pid: (memory, cpu) for pid, memory, cpu in parse_lines(output, parse_usage_line)}


# -- lsof -------------------------------------------------------------------


def locate_state_field(fields: list[str]) -> int | None:
    """
    First pass: index of the state token, scanning from the end.

    The state is the last field shaped like ``(WORD)``.
    """
    for index in range(len(fields) - 1, -1, -1):
        if _STATE_TOKEN.match(fields[index]):
            return index
    return None


def locate_address_field(fields: list[str], state_index: int | None) -> int | None:
    """Second pass: index of the last field containing a colon, skipping the state."""
    for index in range(len(fields) - 1, -1, -1):
        if index != state_index and ":" in fields[index]:
            return index
    return None


def extract_port(address: str) -> int:
    """
    Port number of an ``host:port`` endpoint, or 0 when there is none.

    The port is the text after the final colon, which for bracketed IPv6 is the
    text after ``]:``. For ``local->remote`` pairs this is the remote port.
    """
    port_text = address.rsplit(":", 1)[-1]
    port = _parse_int(port_text)
    if port is None or port > MAX_PORT:
        return 0
    return port


def parse_port_line(line: str) -> PortRecord | None:
    """Parse one line of ``lsof -i -P -n`` output."""
    stripped = line.strip()
    if not stripped or stripped.startswith(PORT_HEADER):
        return None
    if not any(state in stripped for state in PORT_STATES):
        return None

    fields = stripped.split()
    if len(fields) < MIN_PORT_FIELDS:
        return None

    pid = _parse_int(fields[1])
    if pid is None:
        return None

    state_index = locate_state_field(fields)
    address_index = locate_address_field(fields, state_index)
    if address_index is None:
        return None

    # Connections read "local->remote"; the port is the one after the final colon
    address = fields[address_index]
    port = extract_port(address)
    if port <= 0:
        return None

    state = ""
    if state_index is not None:
        state = fields[state_index][1:-1]

    # A line mentioning both protocols is counted as TCP
    if "TCP" not in stripped and "UDP" in stripped:
        protocol = Protocol.UDP
    else:
        protocol = Protocol.TCP

    return PortRecord(
        port=port,
        pid=pid,
        process_name=fields[0],
        protocol=protocol,
        state=state,
        local_address=address,
    )


def dedupe_ports(records: Iterable[PortRecord]) -> list[PortRecord]:
    """Keep the first record for each (port, pid)."""
    seen: set[tuple[int, int]] = set()
    unique: list[PortRecord] = []
    for record in records:
        key = (record.port, record.pid)
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


def parse_ports(output: str) -> list[PortRecord]:
    """Parse lsof output into deduplicated records, port ascending (stable)."""
    unique = dedupe_ports(parse_lines(output, parse_port_line))
    return sorted(unique, key=lambda record: record.port)


# -- vm_stat ----------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class PageCounts:
    """Page counters read from vm_stat."""

    free: int = 0
    active: int = 0
    inactive: int = 0
    wired: int = 0
    compressed: int = 0

    def used_bytes(self, page_size: int) -> int:
        return (self.active + self.wired + self.compressed) * page_size

    def free_bytes(self, page_size: int) -> int:
        return (self.free + self.inactive) * page_size


# Label substring -> PageCounts field. Order matters: first match wins.
_PAGE_LABELS = (
    ("Pages free", "free"),
    ("Pages active", "active"),
    ("Pages inactive", "inactive"),
    ("Pages wired", "wired"),
    ("Pages occupied by compressor", "compressed"),
)


def extract_page_count(line: str) -> int:
    """Numeric value after the colon, ignoring thousands separators."""
    _, sep, value = line.partition(":")
    if not sep:
        return 0
    digits = value.strip().replace(".", "").replace(",", "")
    return _parse_int(digits) or 0


def parse_vm_stat(output: str) -> PageCounts:
    """Extract the five page counters from vm_stat output; missing ones are 0."""
    counts: dict[str, int] = {}
    for line in output.splitlines():
        for label, attr in _PAGE_LABELS:
            if label in line:
                counts[attr] = extract_page_count(line)
                break
    return PageCounts(**counts)
