"""Named profiles of managed field values."""

import logging
import threading
from datetime import datetime
from datetime import timezone
from pathlib import Path
from typing import Any

from .adapters import ToolAdapter
from .exceptions import ProfileNotFoundError
from .models import Profile
from .models import Tool
from .models import parse_datetime
from .models import utc_now
from .snapshots import SnapshotTracker
from .storage import read_yaml
from .storage import write_yaml

logger = logging.getLogger(__name__)

PROFILES_FILE = "profiles.yaml"


class ToolLocks:
    """One re-entrant lock per tool.

    Everything that touches a tool's active files, snapshot or backups holds
    the tool's lock, so a profile switch can never interleave with a scan or a
    block/allow decision for the same tool. Different tools never contend.
    """

    def __init__(self):
        self._locks = {tool: threading.RLock() for tool in Tool}

    def __getitem__(self, tool: Tool) -> threading.RLock:
        return self._locks[tool]


class ProfileStore:
    """Saves, activates, lists and deletes profiles.

    Profiles live next to the active files as backup files named
    ``<basename>.<profile><ext>``, holding only the managed fields. Writing a
    profile to the active files merges the managed values into whatever is on
    disk, so settings the user added by hand are kept.

    Args:
        adapters: Adapter per tool
        snapshots: Snapshot tracker updated after every write
        locks: Per-tool locks shared with the watcher
        index_path: YAML file holding profile timestamps
    """

    def __init__(
        self,
        adapters: dict[Tool, ToolAdapter],
        snapshots: SnapshotTracker,
        locks: ToolLocks,
        index_path: Path,
    ):
        self.adapters = adapters
        self.snapshots = snapshots
        self.locks = locks
        self.index_path = index_path
        self._index_lock = threading.Lock()

    # ===== Profile operations =====

    def save(self, tool: Tool, name: str, values: dict[str, Any]) -> Profile:
        """Write values to the active files and save them as a profile.

        Args:
            tool: Target tool
            name: Profile name
            values: Managed field path -> value (may be partial)

        Returns:
            The saved profile

        Raises:
            ConfigValidationError: Bad name, unmanaged path, or the merged
                result lacks required fields
            ConfigParseError: The active files don't parse
            ConfigFileError: A write failed (PartialWriteError if only some
                active files were written)
        """
        adapter = self.adapters[tool]
        adapter.validate_profile_name(name)

        with self.locks[tool]:
            merged = adapter.store_managed_fields(adapter.load(), values)
            adapter.validate_managed(adapter.extract_managed(merged))
            on_disk = self._write_active(tool, merged)
            managed = adapter.extract_managed(on_disk)
            adapter.write_backup(name, managed)
            created_at, updated_at = self._touch(tool, name)

        logger.info(f"Saved profile '{name}' for {tool.value}")
        return Profile(tool, name, managed, created_at, updated_at)

    def activate(self, tool: Tool, name: str) -> Profile:
        """Merge a saved profile into the active files.

        Only managed fields are written; every other setting in the active
        files stays as it is.

        Raises:
            ProfileNotFoundError: No backup exists for the name
            ConfigValidationError: The backup lacks required managed fields
            ConfigParseError: A backup or active file doesn't parse
            ConfigFileError: A write failed
        """
        adapter = self.adapters[tool]

        with self.locks[tool]:
            values = adapter.extract_managed(adapter.load_backup(name))
            adapter.validate_managed(values)
            merged = adapter.store_managed_fields(adapter.load(), values)
            self._write_active(tool, merged)

        logger.info(f"Activated profile '{name}' for {tool.value}")
        return self._profile(tool, name, values)

    def restore(self, tool: Tool, baseline: dict[str, Any]) -> dict[str, Any]:
        """Make the active managed fields equal those of a baseline file set.

        Managed fields added since the baseline are removed; unmanaged
        settings stay as they are on disk.

        Returns:
            The active file set as written
        """
        adapter = self.adapters[tool]
        with self.locks[tool]:
            restored = adapter.restore_managed_fields(adapter.load(), baseline)
            return self._write_active(tool, restored)

    def list_profiles(self, tool: Tool) -> list[str]:
        """Names of the saved profiles, sorted."""
        return self.adapters[tool].list_backup_names()

    def get(self, tool: Tool, name: str) -> Profile:
        """Load a saved profile.

        Raises:
            ProfileNotFoundError: No backup exists for the name
        """
        adapter = self.adapters[tool]
        with self.locks[tool]:
            values = adapter.extract_managed(adapter.load_backup(name))
        return self._profile(tool, name, values)

    def delete(self, tool: Tool, name: str) -> None:
        """Remove a profile's backup files.

        The active files and the snapshot are not touched.

        Raises:
            ProfileNotFoundError: No backup exists for the name
        """
        adapter = self.adapters[tool]
        with self.locks[tool]:
            removed = adapter.remove_backup(name)
            if not removed:
                raise ProfileNotFoundError(f"Profile '{name}' not found for {tool.value}")
            self._forget(tool, name)
        logger.info(f"Deleted profile '{name}' for {tool.value}")

    # ===== Private Helpers =====

    def _write_active(self, tool: Tool, files: dict[str, Any]) -> dict[str, Any]:
        # Snapshot is only updated once every file is on disk
        on_disk = self.adapters[tool].write(files)
        self.snapshots.set(tool, on_disk)
        return on_disk

    def _profile(self, tool: Tool, name: str, values: dict[str, Any]) -> Profile:
        entry = self._read_index().get(tool.value, {}).get(name) or {}
        fallback = self._backup_mtime(tool, name)
        created_at = parse_datetime(entry["created_at"]) if "created_at" in entry else fallback
        updated_at = parse_datetime(entry["updated_at"]) if "updated_at" in entry else fallback
        return Profile(tool, name, values, created_at, updated_at)

    def _backup_mtime(self, tool: Tool, name: str) -> datetime:
        adapter = self.adapters[tool]
        path = adapter.backup_path(adapter.primary, name)
        try:
            return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        except OSError:
            return utc_now()

    def _touch(self, tool: Tool, name: str) -> tuple[datetime, datetime]:
        now = utc_now()
        with self._index_lock:
            index = self._read_index()
            entries = index.setdefault(tool.value, {})
            entry = entries.get(name) or {}
            created_at = parse_datetime(entry["created_at"]) if "created_at" in entry else now
            entries[name] = {"created_at": created_at.isoformat(), "updated_at": now.isoformat()}
            write_yaml(self.index_path, index)
        return created_at, now

    def _forget(self, tool: Tool, name: str) -> None:
        with self._index_lock:
            index = self._read_index()
            entries = index.get(tool.value) or {}
            if entries.pop(name, None) is not None:
                if not entries:
                    del index[tool.value]
                write_yaml(self.index_path, index)

    def _read_index(self) -> dict[str, Any]:
        return read_yaml(self.index_path) or {}
