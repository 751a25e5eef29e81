"""Polling detection of external edits to the tools' active files."""

import logging
import threading
from collections.abc import Callable
from enum import Enum

from .adapters import ToolAdapter
from .change_queue import ChangeQueue
from .changelog import ChangeLog
from .diff import diff_files
from .exceptions import ConfigError
from .fieldpath import FieldPath
from .fieldpath import matches_any
from .fieldpath import overlaps_any
from .fieldpath import parse_patterns
from .models import ConfigChangeRecord
from .models import ExternalConfigChange
from .models import Tool
from .models import WatchConfig
from .models import WatchMode
from .profiles import ToolLocks
from .snapshots import SnapshotTracker

logger = logging.getLogger(__name__)

WatchConfigProvider = Callable[[Tool], WatchConfig]


class WatcherState(Enum):
    """Per-tool state of the watcher."""

    DISABLED = "disabled"
    IDLE = "idle"
    SCANNING = "scanning"


class ConfigWatcher:
    """Compares each tool's active files with its snapshot on a timer.

    The watcher reads snapshots but never replaces one, except to record the
    first baseline for a tool; only allow/block decisions move the baseline.
    Drift that is still pending is not reported again on later ticks.

    Args:
        adapters: Adapter per tool
        snapshots: Snapshot tracker to diff against
        locks: Per-tool locks shared with the profile store
        queue: Receives detected changes
        changelog: Receives a record for every reported change
        watch_config: Returns the current WatchConfig for a tool
    """

    def __init__(
        self,
        adapters: dict[Tool, ToolAdapter],
        snapshots: SnapshotTracker,
        locks: ToolLocks,
        queue: ChangeQueue,
        changelog: ChangeLog,
        watch_config: WatchConfigProvider,
    ):
        self.adapters = adapters
        self.snapshots = snapshots
        self.locks = locks
        self.queue = queue
        self.changelog = changelog
        self.watch_config = watch_config
        self._lock = threading.Lock()
        self._loops: dict[Tool, _ScanLoop] = {}
        self._states = {tool: WatcherState.DISABLED for tool in Tool}

    # ===== Scanning =====

    def scan(self, tool: Tool) -> ExternalConfigChange | None:
        """Run one tick for a tool.

        Returns:
            The change that was reported, or None

        Raises:
            ConfigParseError: An active file doesn't parse
            ConfigFileError: An active file can't be read
        """
        config = self.watch_config(tool)
        with self.locks[tool]:
            self._set_state(tool, WatcherState.SCANNING)
            try:
                change = self._detect(tool, config)
                if change is None:
                    return None

                pending = self.queue.pending(tool)
                if pending is not None and pending.changed_fields == change.changed_fields:
                    return None

                self.changelog.add_record(ConfigChangeRecord.from_change(change))
                self.queue.push(change)
            finally:
                self._finish_scan(tool)

        logger.info(
            f"Detected external change in {tool.value} ({len(change.changed_fields)} fields, "
            f"sensitive={change.is_sensitive})"
        )
        return change

    def _detect(self, tool: Tool, config: WatchConfig) -> ExternalConfigChange | None:
        adapter = self.adapters[tool]
        current = adapter.load()

        snapshot = self.snapshots.get(tool)
        if snapshot is None:
            logger.debug(f"No snapshot for {tool.value} yet, recording current state as baseline")
            self.snapshots.set(tool, current)
            return None

        blacklist = self._patterns(adapter, config.blacklist)
        sensitive = self._patterns(adapter, config.sensitive_fields)

        changes = diff_files(snapshot.files, current, adapter.primary.name)
        # Blacklist wins over sensitivity and mode
        changes = [change for change in changes if not matches_any(change.path, blacklist)]
        if config.mode is WatchMode.DEFAULT:
            changes = [change for change in changes if overlaps_any(change.path, sensitive)]
        if not changes:
            return None

        is_sensitive = config.mode is WatchMode.FULL or any(overlaps_any(change.path, sensitive) for change in changes)
        changed_file = changes[0].path.file or adapter.primary.name
        return ExternalConfigChange(
            tool=tool,
            file_path=adapter.config_dir / changed_file,
            changed_fields=changes,
            is_sensitive=is_sensitive,
        )

    def _patterns(self, adapter: ToolAdapter, patterns: list[str]) -> list[FieldPath]:
        return [adapter.normalize_path(pattern) for pattern in parse_patterns(patterns)]

    # ===== Loop lifecycle =====

    def start(self, tools: list[Tool] | None = None) -> None:
        """Start polling loops for the given (default: all) enabled tools."""
        for tool in tools or list(Tool):
            config = self.watch_config(tool)
            with self._lock:
                if not config.enabled:
                    self._states[tool] = WatcherState.DISABLED
                    continue
                if tool in self._loops:
                    continue
                loop = _ScanLoop(self, tool, config.scan_interval)
                self._loops[tool] = loop
                self._states[tool] = WatcherState.IDLE
            loop.start()
            logger.info(f"Started watching {tool.value} every {config.scan_interval}s ({config.mode.value} mode)")

    def stop(self, tools: list[Tool] | None = None) -> None:
        """Cancel polling loops; no tick runs after this returns."""
        for tool in tools or list(Tool):
            with self._lock:
                loop = self._loops.pop(tool, None)
                self._states[tool] = WatcherState.DISABLED
            if loop is not None:
                loop.cancel()
                logger.info(f"Stopped watching {tool.value}")

    def restart(self, tool: Tool) -> None:
        """Pick up a changed WatchConfig for one tool."""
        self.stop([tool])
        self.start([tool])

    def state(self, tool: Tool) -> WatcherState:
        with self._lock:
            return self._states[tool]

    def is_running(self, tool: Tool) -> bool:
        with self._lock:
            return tool in self._loops

    def _set_state(self, tool: Tool, state: WatcherState) -> None:
        with self._lock:
            self._states[tool] = state

    def _finish_scan(self, tool: Tool) -> None:
        with self._lock:
            self._states[tool] = WatcherState.IDLE if tool in self._loops else WatcherState.DISABLED


class _ScanLoop(threading.Thread):
    """Background thread ticking one tool until cancelled."""

    def __init__(self, watcher: ConfigWatcher, tool: Tool, interval: float):
        super().__init__(name=f"config-watch-{tool.value}", daemon=True)
        self.watcher = watcher
        self.tool = tool
        self.interval = interval
        self._cancelled = threading.Event()

    def run(self) -> None:
        while not self._cancelled.wait(self.interval):
            try:
                self.watcher.scan(self.tool)
            except ConfigError as e:
                logger.warning(f"Scan of {self.tool.value} failed: {e}")

    def cancel(self) -> None:
        self._cancelled.set()
        # A listener may stop the watcher from inside a tick
        if self is not threading.current_thread():
            self.join()
