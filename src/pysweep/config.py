"""Configuration for pysweep."""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace

from pysweep.models import CacheCategory

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CacheLocation:
    """A catalog entry: display label, path template and category."""

    name: str
    path: str  # May start with '~'
    category: CacheCategory


DEFAULT_CACHE_CATALOG: tuple[CacheLocation, ...] = (
    CacheLocation("Chrome cache", "~/Library/Caches/Google/Chrome", CacheCategory.BROWSER),
    CacheLocation("Safari cache", "~/Library/Caches/com.apple.Safari", CacheCategory.BROWSER),
    CacheLocation("Firefox cache", "~/Library/Caches/Firefox", CacheCategory.BROWSER),
    CacheLocation("Edge cache", "~/Library/Caches/Microsoft Edge", CacheCategory.BROWSER),
    CacheLocation("User caches", "~/Library/Caches", CacheCategory.SYSTEM),
    CacheLocation("User logs", "~/Library/Logs", CacheCategory.SYSTEM),
    CacheLocation("Temporary files", "/tmp", CacheCategory.SYSTEM),
    CacheLocation("Xcode DerivedData", "~/Library/Developer/Xcode/DerivedData", CacheCategory.APPLICATION),
    CacheLocation("npm cache", "~/.npm/_cacache", CacheCategory.APPLICATION),
    CacheLocation("Homebrew cache", "~/Library/Caches/Homebrew", CacheCategory.APPLICATION),
)

# Children of a cache directory that cleaning never touches
PROTECTED_NAMES: frozenset[str] = frozenset({".", "..", ".DS_Store", ".Trash", ".localized"})


@dataclass(slots=True, frozen=True)
class InspectorConfig:
    """
    Settings shared by the inventories, the engine and the refresh scheduler.

    The command lines are run through the host shell, so they may use pipes.
    """

    shell: str = "/bin/sh"
    process_limit: int = 100
    page_size: int = 4096
    process_refresh: float = 5.0
    port_refresh: float = 10.0
    app_refresh: float = 3.0
    cache_file_limit: int = 100
    port_command: str = "lsof -i -P -n 2>/dev/null"
    memory_command: str = "vm_stat"
    usage_command: str = "ps -axo pid,%cpu,rss"
    frontmost_command: str = (
        "osascript -e 'tell application \"System Events\" to get unix id of "
        "first process whose frontmost is true'"
    )
    cache_catalog: tuple[CacheLocation, ...] = field(default=DEFAULT_CACHE_CATALOG)

    @property
    def process_command(self) -> str:
        """ps invocation returning processes ordered by memory, capped."""
        return (
            "ps -axo pid,user,%cpu,rss,comm | tail -n +2 | sort -k4 -rn | "
            f"head -{self.process_limit}"
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "InspectorConfig":
        """
        Build a config with overrides from ``PYSWEEP_*`` environment variables.

        Recognised: PYSWEEP_SHELL, PYSWEEP_PROCESS_LIMIT, PYSWEEP_PROCESS_REFRESH,
        PYSWEEP_PORT_REFRESH, PYSWEEP_APP_REFRESH. Invalid values are ignored.
        """
        env = os.environ if environ is None else environ
        config = cls()
        overrides: dict[str, object] = {}

        if env.get("PYSWEEP_SHELL"):
            overrides["shell"] = env["PYSWEEP_SHELL"]

        numeric = {
            "PYSWEEP_PROCESS_LIMIT": ("process_limit", int),
            "PYSWEEP_PROCESS_REFRESH": ("process_refresh", float),
            "PYSWEEP_PORT_REFRESH": ("port_refresh", float),
            "PYSWEEP_APP_REFRESH": ("app_refresh", float),
        }
        for var, (attr, convert) in numeric.items():
            raw = env.get(var)
            if raw is None:
                continue
            try:
                value = convert(raw)
            except ValueError:
                logger.warning("Ignoring %s=%r: not a number", var, raw)
                continue
            if value <= 0:
                logger.warning("Ignoring %s=%r: must be positive", var, raw)
                continue
            overrides[attr] = value

        return replace(config, **overrides) if overrides else config
