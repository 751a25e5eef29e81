"""Profile switching and drift guarding for the supported CLI tools."""

import dataclasses
import logging
from collections.abc import Callable
from typing import Any

from .adapters import ToolAdapter
from .adapters import create_adapters
from .change_queue import ChangeListener
from .change_queue import ChangeQueue
from .change_queue import QueueState
from .changelog import CHANGE_LOG_FILE
from .changelog import ChangeLog
from .exceptions import ConfigError
from .exceptions import ConfigValidationError
from .exceptions import SnapshotNotFoundError
from .fieldpath import parse_patterns
from .models import ChangeAction
from .models import ConfigChangeRecord
from .models import ExternalConfigChange
from .models import Profile
from .models import Tool
from .models import ToolPaths
from .models import WatchConfig
from .models import WatchMode
from .profiles import PROFILES_FILE
from .profiles import ProfileStore
from .profiles import ToolLocks
from .snapshots import SNAPSHOTS_FILE
from .snapshots import SnapshotTracker
from .storage import read_yaml
from .storage import update_yaml
from .utils import deep_merge
from .watcher import ConfigWatcher
from .watcher import WatcherState

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.yaml"

ToolRef = Tool | str


class ToolConfigManager:
    """Manages profiles and external-change detection for all tools.

    Applications inject paths via ToolPaths; everything the manager persists
    for itself goes to ``paths.state_dir``.

    Args:
        paths: Tool config directories and the state directory
    """

    def __init__(self, paths: ToolPaths):
        """Initialize the manager with injected paths.

        Args:
            paths: ToolPaths defining where config files are located
        """
        self.paths = paths
        self.settings_path = paths.state_dir / SETTINGS_FILE
        self.adapters = create_adapters(paths)
        self.locks = ToolLocks()
        self.snapshots = SnapshotTracker(paths.state_dir / SNAPSHOTS_FILE)
        self.changelog = ChangeLog(paths.state_dir / CHANGE_LOG_FILE)
        self.queue = ChangeQueue()
        self.profiles = ProfileStore(self.adapters, self.snapshots, self.locks, paths.state_dir / PROFILES_FILE)
        self.watcher = ConfigWatcher(
            self.adapters,
            self.snapshots,
            self.locks,
            self.queue,
            self.changelog,
            self.get_watch_config,
        )
        self._started = False

    # ===== Profile Management =====

    def save_profile(self, tool: ToolRef, name: str, values: dict[str, Any]) -> Profile:
        """Write managed values to the active config and save them as a profile.

        Args:
            tool: Target tool
            name: Profile name
            values: Managed field path -> value

        Returns:
            The saved profile
        """
        return self.profiles.save(_as_tool(tool), name, values)

    def save_credentials(
        self,
        tool: ToolRef,
        name: str,
        api_key: str,
        base_url: str,
        model: str | None = None,
    ) -> Profile:
        """Save a profile from credentials, filling the other managed fields.

        Optional fields keep their current value from the active config.

        Args:
            tool: Target tool
            name: Profile name
            api_key: API key or auth token
            base_url: API endpoint
            model: Model override (tools that manage one)

        Returns:
            The saved profile
        """
        tool = _as_tool(tool)
        adapter = self.adapters[tool]
        with self.locks[tool]:
            values = adapter.build_values(api_key, base_url, model, current=adapter.load())
            return self.profiles.save(tool, name, values)

    def activate_profile(self, tool: ToolRef, name: str) -> Profile:
        """Merge a saved profile into the active config."""
        return self.profiles.activate(_as_tool(tool), name)

    def list_profiles(self, tool: ToolRef) -> list[str]:
        """Names of the saved profiles for a tool, sorted."""
        return self.profiles.list_profiles(_as_tool(tool))

    def get_profile(self, tool: ToolRef, name: str) -> Profile:
        """Load a saved profile."""
        return self.profiles.get(_as_tool(tool), name)

    def delete_profile(self, tool: ToolRef, name: str) -> None:
        """Delete a saved profile's backup files."""
        self.profiles.delete(_as_tool(tool), name)

    def adapter(self, tool: ToolRef) -> ToolAdapter:
        """Adapter for a tool."""
        return self.adapters[_as_tool(tool)]

    def get_active_values(self, tool: ToolRef) -> dict[str, Any]:
        """Managed values currently in the tool's active config."""
        adapter = self.adapters[_as_tool(tool)]
        return adapter.extract_managed(adapter.load())

    # ===== Watch Configuration =====

    def default_watch_config(self, tool: ToolRef) -> WatchConfig:
        """Watch settings used when the user hasn't changed anything."""
        adapter = self.adapters[_as_tool(tool)]
        return WatchConfig(sensitive_fields=list(adapter.default_sensitive_fields))

    def get_watch_config(self, tool: ToolRef) -> WatchConfig:
        """Get the effective watch settings for a tool.

        Stored settings are merged over the defaults; unreadable stored
        settings fall back to the defaults.
        """
        tool = _as_tool(tool)
        default = self.default_watch_config(tool)
        settings = read_yaml(self.settings_path) or {}
        try:
            stored = (settings.get("watch") or {}).get(tool.value)
            if not stored:
                return default
            return WatchConfig.from_dict(deep_merge(default.to_dict(), stored))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Invalid watch settings for {tool.value} in {self.settings_path}: {e}")
            return default

    def update_watch_config(self, tool: ToolRef, **changes: Any) -> WatchConfig:
        """Update watch settings for a tool.

        Args:
            tool: Target tool
            **changes: WatchConfig fields to change

        Returns:
            The new effective settings

        Raises:
            ConfigValidationError: Unknown field or invalid value
        """
        tool = _as_tool(tool)
        if "mode" in changes and not isinstance(changes["mode"], WatchMode):
            try:
                changes["mode"] = WatchMode(changes["mode"])
            except ValueError as e:
                raise ConfigValidationError(f"Unknown watch mode '{changes['mode']}'") from e

        try:
            updated = dataclasses.replace(self.get_watch_config(tool), **changes)
        except TypeError as e:
            raise ConfigValidationError(f"Invalid watch setting: {e}") from e
        _validate_watch_config(updated)

        update_yaml(self.settings_path, {"watch": {tool.value: updated.to_dict()}})
        logger.info(f"Updated watch settings for {tool.value}")

        if self._started:
            self.watcher.restart(tool)
        return updated

    def update_sensitive_fields(self, tool: ToolRef, fields: list[str]) -> WatchConfig:
        """Replace a tool's sensitive field patterns."""
        return self.update_watch_config(tool, sensitive_fields=list(fields))

    def update_blacklist(self, tool: ToolRef, fields: list[str]) -> WatchConfig:
        """Replace a tool's blacklist patterns."""
        return self.update_watch_config(tool, blacklist=list(fields))

    # ===== Change Log =====

    def get_change_log_page(self, page: int = 0, page_size: int = 20) -> tuple[list[ConfigChangeRecord], int]:
        """Page through the change log, newest first.

        Returns:
            (records on the page, total number of records)
        """
        return self.changelog.get_page(page, page_size)

    def get_change_logs(self, tool: ToolRef | None = None, limit: int = 50) -> list[ConfigChangeRecord]:
        """Latest change log records, optionally for one tool."""
        return self.changelog.get_recent(_as_tool(tool) if tool is not None else None, limit)

    def clear_change_logs(self, tool: ToolRef | None = None) -> int:
        """Delete change log records for one tool, or all of them."""
        return self.changelog.clear(_as_tool(tool) if tool is not None else None)

    # ===== External Changes =====

    def pending_change(self, tool: ToolRef) -> ExternalConfigChange | None:
        """The newest unresolved external change for a tool."""
        return self.queue.pending(_as_tool(tool))

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Get notified of detected external changes.

        Listeners run on the watcher thread.

        Returns:
            A callable that unsubscribes the listener
        """
        return self.queue.subscribe(listener)

    def scan(self, tool: ToolRef) -> ExternalConfigChange | None:
        """Check one tool for external changes right now."""
        return self.watcher.scan(_as_tool(tool))

    def change_state(self, tool: ToolRef) -> QueueState:
        """Whether the tool has no, a pending or a resolved external change."""
        return self.queue.state(_as_tool(tool))

    def allow(self, tool: ToolRef) -> None:
        """Accept the tool's current on-disk config as the new baseline."""
        tool = _as_tool(tool)
        with self.locks[tool]:
            self.snapshots.set(tool, self.adapters[tool].load())
            self._resolve(tool, ChangeAction.ALLOW)
        logger.info(f"Allowed external change for {tool.value}")

    def block(self, tool: ToolRef) -> None:
        """Restore the managed fields from the last accepted snapshot.

        Managed fields the snapshot lacks are removed. Unmanaged settings
        edited externally are kept.

        Raises:
            SnapshotNotFoundError: No snapshot exists for the tool
        """
        tool = _as_tool(tool)
        with self.locks[tool]:
            snapshot = self.snapshots.get(tool)
            if snapshot is None:
                raise SnapshotNotFoundError(f"No snapshot recorded for {tool.value}")
            self.profiles.restore(tool, snapshot.files)
            self._resolve(tool, ChangeAction.BLOCK)
        logger.info(f"Blocked external change for {tool.value}")

    # ===== Lifecycle =====

    def watcher_state(self, tool: ToolRef) -> WatcherState:
        """Current state of the tool's watcher loop."""
        return self.watcher.state(_as_tool(tool))

    def is_watching(self, tool: ToolRef) -> bool:
        """Whether a polling loop runs for the tool."""
        return self.watcher.is_running(_as_tool(tool))

    def initialize_snapshots(self) -> None:
        """Record every tool's current config as its accepted baseline."""
        for tool, adapter in self.adapters.items():
            with self.locks[tool]:
                try:
                    self.snapshots.set(tool, adapter.load())
                except ConfigError as e:
                    logger.warning(f"Failed to record snapshot for {tool.value}: {e}")

    def start(self) -> None:
        """Expire stale records, take fresh snapshots and start watching."""
        expired = self.changelog.mark_pending_as_expired()
        if expired:
            logger.info(f"Expired {expired} change log records left pending by a previous run")
        self.initialize_snapshots()
        self.watcher.start()
        self._started = True

    def stop(self) -> None:
        """Stop every watcher loop."""
        self._started = False
        self.watcher.stop()

    def __enter__(self) -> "ToolConfigManager":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()

    # ===== Private Helpers =====

    def _resolve(self, tool: Tool, action: ChangeAction) -> None:
        if not self.changelog.update_action(tool, action):
            logger.warning(f"No pending change log record for {tool.value}")
        self.queue.resolve(tool)


def _as_tool(tool: ToolRef) -> Tool:
    if isinstance(tool, Tool):
        return tool
    try:
        return Tool(tool)
    except ValueError as e:
        raise ConfigValidationError(f"Unknown tool '{tool}'") from e


def _validate_watch_config(config: WatchConfig) -> None:
    if not isinstance(config.enabled, bool):
        raise ConfigValidationError("enabled must be a boolean")
    if not isinstance(config.scan_interval, (int, float)) or isinstance(config.scan_interval, bool):
        raise ConfigValidationError("scan_interval must be a number")
    if config.scan_interval <= 0:
        raise ConfigValidationError("scan_interval must be positive")
    parse_patterns(config.blacklist)
    parse_patterns(config.sensitive_fields)
