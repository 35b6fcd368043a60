"""pysweep - Main Textual application."""

import argparse
import logging
from collections.abc import Sequence
from queue import Empty, Queue
from typing import Any, ClassVar

from textual import work
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.coordinate import Coordinate
from textual.widgets import DataTable, Footer, Input, Static, TabbedContent, TabPane

from pysweep.config import InspectorConfig
from pysweep.engine import InspectorEngine
from pysweep.models import (
    AppRecord,
    CacheEntry,
    MemorySnapshot,
    PortRecord,
    ProcessRecord,
    Snapshot,
    TerminationResult,
)
from pysweep.scheduler import APPS, CACHES, MEMORY, PORTS, PROCESSES, RefreshScheduler

logger = logging.getLogger(__name__)


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


class MemoryHeader(Static):
    """Header widget showing system memory usage."""

    DEFAULT_CSS = """
    MemoryHeader {
        height: auto;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._memory: MemorySnapshot | None = None

    def on_mount(self) -> None:
        self.update(self._get_mem_info())

    def update_memory(self, memory: MemorySnapshot) -> None:
        """Show a new memory snapshot."""
        self._memory = memory
        self.update(self._get_mem_info())

    def _get_mem_info(self) -> str:
        memory = self._memory
        if memory is None or memory.total_bytes == 0:
            return "Loading memory info..."

        bar_len = min(int(memory.usage_fraction * 20), 20)
        bar = "[cyan]█[/cyan]" * bar_len + "[dim]░[/dim]" * (20 - bar_len)
        gib = 1024**3
        return (
            f"Mem\\[{bar}] {memory.used_bytes / gib:.1f}G used / "
            f"{memory.total_bytes / gib:.1f}G  ({memory.free_bytes / gib:.1f}G free)"
        )


class RecordTable(Container):
    """A data table showing one inventory, filtered by a search query."""

    DEFAULT_CSS = """
    RecordTable {
        height: 1fr;
    }
    """

    # (label, key, width)
    COLUMNS: ClassVar[tuple[tuple[str, str, int | None], ...]] = ()

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._records: tuple[Any, ...] = ()
        self._by_key: dict[str, Any] = {}
        self._row_keys: list[str] = []
        self._query = ""

    @property
    def shown_keys(self) -> list[str]:
        """Row keys currently displayed, in order."""
        return list(self._row_keys)

    def compose(self) -> ComposeResult:
        yield DataTable()

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        for label, key, width in self.COLUMNS:
            table.add_column(label, key=key, width=width)

    def row_key(self, record: Any) -> str:
        raise NotImplementedError

    def row(self, record: Any) -> tuple[str, ...]:
        raise NotImplementedError

    def matches(self, record: Any, query: str) -> bool:
        return True

    def set_query(self, query: str) -> None:
        self._query = query.strip().lower()
        self._render_rows()

    def update_records(self, records: Sequence[Any]) -> None:
        """Replace the displayed records with a new snapshot."""
        self._records = tuple(records)
        self._render_rows()

    def visible_records(self) -> list[Any]:
        return [r for r in self._records if not self._query or self.matches(r, self._query)]

    def selected_record(self) -> Any | None:
        """Record under the cursor, if any."""
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        try:
            cell_key = table.coordinate_to_cell_key(Coordinate(table.cursor_row, 0))
        except Exception:
            return None
        return self._by_key.get(cell_key.row_key.value)

    def _render_rows(self) -> None:
        table = self.query_one(DataTable)
        records = self.visible_records()
        keys = [self.row_key(record) for record in records]
        self._by_key = dict(zip(keys, records))

        if keys == self._row_keys:
            # Same rows in the same order: update cells in place
            for key, record in zip(keys, records):
                for (_, column, _), value in zip(self.COLUMNS, self.row(record)):
                    table.update_cell(key, column, value)
            return

        cursor = table.cursor_row
        table.clear()
        for key, record in zip(keys, records):
            table.add_row(*self.row(record), key=key)
        self._row_keys = keys
        if keys:
            table.move_cursor(row=min(cursor, len(keys) - 1))


class ProcessTable(RecordTable):
    """Processes by resident memory."""

    COLUMNS = (
        ("PID", "pid", 8),
        ("USER", "user", 12),
        ("CPU%", "cpu", 7),
        ("RES", "rss", 8),
        ("Name", "name", None),
    )

    def row_key(self, record: ProcessRecord) -> str:
        return str(record.pid)

    def row(self, record: ProcessRecord) -> tuple[str, ...]:
        return (
            str(record.pid),
            record.user[:12],
            f"{record.cpu_percent:5.1f}",
            format_bytes(record.memory_bytes),
            record.name[:50],
        )

    def matches(self, record: ProcessRecord, query: str) -> bool:
        return query in record.name.lower()


class PortTable(RecordTable):
    """Listening and established sockets by port."""

    COLUMNS = (
        ("PORT", "port", 7),
        ("PROTO", "protocol", 6),
        ("STATE", "state", 12),
        ("PID", "pid", 8),
        ("Process", "process", 20),
        ("Address", "address", None),
    )

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.listening_only = True

    def toggle_listening_only(self) -> bool:
        self.listening_only = not self.listening_only
        self._render_rows()
        return self.listening_only

    def visible_records(self) -> list[PortRecord]:
        records = super().visible_records()
        if self.listening_only:
            records = [r for r in records if r.is_listening]
        return records

    def row_key(self, record: PortRecord) -> str:
        return f"{record.port}-{record.pid}"

    def row(self, record: PortRecord) -> tuple[str, ...]:
        return (
            str(record.port),
            record.protocol.value,
            record.state or "-",
            str(record.pid),
            record.process_name[:20],
            record.local_address,
        )

    def matches(self, record: PortRecord, query: str) -> bool:
        return query in record.process_name.lower() or query in str(record.port)


class AppTable(RecordTable):
    """Running applications by memory."""

    COLUMNS = (
        ("PID", "pid", 8),
        ("", "active", 2),
        ("CPU%", "cpu", 7),
        ("RES", "rss", 8),
        ("Application", "name", 28),
        ("Bundle", "bundle", None),
    )

    def row_key(self, record: AppRecord) -> str:
        return str(record.pid)

    def row(self, record: AppRecord) -> tuple[str, ...]:
        return (
            str(record.pid),
            "*" if record.is_foreground_active else "",
            f"{record.cpu_percent:5.1f}",
            format_bytes(record.memory_bytes),
            record.name[:28],
            record.bundle_identifier or "",
        )

    def matches(self, record: AppRecord, query: str) -> bool:
        return query in record.name.lower()


class CacheTable(RecordTable):
    """Cache locations by size."""

    COLUMNS = (
        ("SIZE", "size", 8),
        ("Category", "category", 12),
        ("Name", "name", 20),
        ("Path", "path", None),
    )

    def row_key(self, record: CacheEntry) -> str:
        return record.path

    def row(self, record: CacheEntry) -> tuple[str, ...]:
        return (
            format_bytes(record.size_bytes),
            record.category.value,
            record.name,
            record.path,
        )

    def matches(self, record: CacheEntry, query: str) -> bool:
        return query in record.name.lower() or query in record.path.lower()


TABLES: dict[str, type[RecordTable]] = {
    PROCESSES: ProcessTable,
    PORTS: PortTable,
    APPS: AppTable,
    CACHES: CacheTable,
}


class PysweepApp(App):
    """Main pysweep application."""

    TITLE = "pysweep"
    SUB_TITLE = "Resource Inspector"
    AUTO_FOCUS = "#process-table DataTable"

    CSS = """
    Screen {
        layout: vertical;
    }

    #search {
        dock: top;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh", "Refresh"),
        ("k", "terminate", "Terminate"),
        ("K", "terminate(True)", "Kill"),
        ("c", "clean", "Clean cache"),
        ("l", "toggle_listening", "Listening only"),
        ("slash", "search", "Search"),
    ]

    def __init__(self, engine: InspectorEngine | None = None) -> None:
        super().__init__()
        self._engine = engine or InspectorEngine(InspectorConfig.from_env())
        self._update_queue: Queue[Snapshot] = Queue()
        self._scheduler = RefreshScheduler(self._engine, self._update_queue)
        self._errors: dict[str, str] = {}

    def compose(self) -> ComposeResult:
        yield MemoryHeader(id="memory-header")
        yield Input(placeholder="Search by name or port", id="search")
        with TabbedContent(initial=PROCESSES):
            with TabPane("Processes", id=PROCESSES):
                yield ProcessTable(id="process-table")
            with TabPane("Ports", id=PORTS):
                yield PortTable(id="port-table")
            with TabPane("Apps", id=APPS):
                yield AppTable(id="app-table")
            with TabPane("Caches", id=CACHES):
                yield CacheTable(id="cache-table")
        yield Footer()

    def on_mount(self) -> None:
        """Start refreshing when the app is mounted."""
        self._scheduler.start()
        self.set_interval(0.5, self._check_for_updates)

    def on_unmount(self) -> None:
        self._scheduler.stop()

    def on_input_changed(self, event: Input.Changed) -> None:
        for table in self.query(RecordTable):
            table.set_query(event.value)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.query_one(TABLES[self._active_kind()]).query_one(DataTable).focus()

    def _check_for_updates(self) -> None:
        """Apply the newest snapshot of each kind waiting in the queue."""
        newest: dict[str, Snapshot] = {}
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break
            newest[snapshot.kind] = snapshot

        for snapshot in newest.values():
            try:
                self.apply_snapshot(snapshot)
            except Exception:
                logger.exception("Could not display %s snapshot", snapshot.kind)

    def apply_snapshot(self, snapshot: Snapshot) -> None:
        """Show a snapshot in the widget for its kind."""
        if snapshot.error and self._errors.get(snapshot.kind) != snapshot.error:
            self.notify(snapshot.error, title=f"{snapshot.kind} refresh failed", severity="warning")
        self._errors[snapshot.kind] = snapshot.error

        if snapshot.kind == MEMORY:
            if snapshot.records:
                self.query_one(MemoryHeader).update_memory(snapshot.records[0])
            return
        self.query_one(TABLES[snapshot.kind]).update_records(snapshot.records)

    def _active_kind(self) -> str:
        return self.query_one(TabbedContent).active

    def action_refresh(self) -> None:
        kind = self._active_kind()
        self._scheduler.refresh(kind)
        if kind == PROCESSES:
            self._scheduler.refresh(MEMORY)

    def action_search(self) -> None:
        self.query_one("#search", Input).focus()

    def action_toggle_listening(self) -> None:
        listening = self.query_one(PortTable).toggle_listening_only()
        self.notify("Ports: listening only" if listening else "Ports: all connections")

    def action_terminate(self, force: bool = False) -> None:
        """Signal the owner of the selected process, port or app."""
        kind = self._active_kind()
        if kind == CACHES:
            return
        record = self.query_one(TABLES[kind]).selected_record()
        if record is None:
            return
        self._terminate(kind, record, force)

    @work(thread=True, exclusive=False)
    def _terminate(self, kind: str, record: Any, force: bool) -> None:
        if kind == PORTS:
            result = self._engine.release_port(record, force=force)
        elif kind == APPS:
            result = self._engine.terminate_app(record, force=force)
        else:
            result = self._engine.terminate(record.pid, force=force)
        self.call_from_thread(self._report_termination, kind, result)

    def _report_termination(self, kind: str, result: TerminationResult) -> None:
        if result.delivered:
            self.notify(f"Sent signal {result.signal} to {result.pid}")
            self._scheduler.refresh(kind)
        else:
            self.notify(f"Could not signal {result.pid}: {result.detail}", severity="error")

    def action_clean(self) -> None:
        """Clean the selected cache directory."""
        if self._active_kind() != CACHES:
            return
        entry = self.query_one(CacheTable).selected_record()
        if entry is not None:
            self._clean(entry)

    @work(thread=True, exclusive=True)
    def _clean(self, entry: CacheEntry) -> None:
        result = self._engine.clean_cache(entry.path)
        if result.success:
            message = f"Freed {format_bytes(result.bytes_freed).strip()} from {entry.name}"
            if result.failed:
                message += f" ({result.failed} item(s) in use)"
            self.call_from_thread(self.notify, message)
        else:
            self.call_from_thread(self.notify, f"Nothing removed from {entry.name}", severity="warning")
        self.call_from_thread(self._scheduler.refresh, CACHES)

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._scheduler.stop()
        self.exit()


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for pysweep application."""
    parser = argparse.ArgumentParser(prog="pysweep", description="Inspect and reclaim local resources.")
    parser.add_argument("--log-file", help="write logs to this file")
    parser.add_argument("--debug", action="store_true", help="log debug messages")
    args = parser.parse_args(argv)

    if args.log_file:
        logging.basicConfig(
            filename=args.log_file,
            level=logging.DEBUG if args.debug else logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    app = PysweepApp()
    app.run()


if __name__ == "__main__":
    main()
