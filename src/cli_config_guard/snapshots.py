"""Last accepted state of each tool's active files."""

import copy
import logging
import threading
from pathlib import Path
from typing import Any

from .models import Snapshot
from .models import Tool
from .models import parse_datetime
from .models import utc_now
from .storage import read_yaml
from .storage import write_yaml

logger = logging.getLogger(__name__)

SNAPSHOTS_FILE = "config_snapshots.yaml"


class SnapshotTracker:
    """Keeps one snapshot per tool in memory and in a YAML state file.

    The in-memory copy is the source of truth for this process; every update
    is written through to disk so snapshots survive a restart.

    Args:
        path: YAML file the snapshots are persisted to
    """

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()
        self._snapshots = self._load()

    def get(self, tool: Tool) -> Snapshot | None:
        """Return a copy of the tool's snapshot, None if there is none."""
        with self._lock:
            snapshot = self._snapshots.get(tool)
            return copy.deepcopy(snapshot) if snapshot else None

    def set(self, tool: Tool, files: dict[str, Any]) -> Snapshot:
        """Replace the tool's snapshot.

        Args:
            tool: Tool to update
            files: File name -> tree as it is on disk now

        Returns:
            The new snapshot

        Raises:
            ConfigFileError: If the state file can't be written
        """
        snapshot = Snapshot(tool=tool, files=copy.deepcopy(files), updated_at=utc_now())
        with self._lock:
            self._snapshots[tool] = snapshot
            self._save()
        logger.debug(f"Updated snapshot for {tool.value}")
        return copy.deepcopy(snapshot)

    def _load(self) -> dict[Tool, Snapshot]:
        data = read_yaml(self.path) or {}
        snapshots = {}
        for tool_id, entry in (data.get("snapshots") or {}).items():
            try:
                tool = Tool(tool_id)
            except ValueError:
                logger.warning(f"Ignoring snapshot for unknown tool '{tool_id}' in {self.path}")
                continue
            snapshots[tool] = Snapshot(
                tool=tool,
                files=dict(entry.get("files") or {}),
                updated_at=parse_datetime(entry.get("updated_at") or utc_now()),
            )
        return snapshots

    def _save(self) -> None:
        data = {
            "snapshots": {
                tool.value: {
                    "files": snapshot.files,
                    "updated_at": snapshot.updated_at.isoformat(),
                }
                for tool, snapshot in self._snapshots.items()
            }
        }
        write_yaml(self.path, data)
