"""Bounded history of detected drift and the decisions taken on it."""

import copy
import logging
import threading
from pathlib import Path

from .exceptions import ConfigValidationError
from .models import ChangeAction
from .models import ConfigChangeRecord
from .models import Tool
from .storage import read_yaml
from .storage import write_yaml

logger = logging.getLogger(__name__)

CHANGE_LOG_FILE = "config_watch_logs.yaml"
MAX_RECORDS = 100


class ChangeLog:
    """Append-only change log, newest record first.

    Holds at most ``max_records`` entries; the oldest are evicted first. Each
    mutation is written through to the YAML file.

    Args:
        path: YAML file the records are persisted to
        max_records: Maximum number of records kept
    """

    def __init__(self, path: Path, max_records: int = MAX_RECORDS):
        self.path = path
        self.max_records = max_records
        self._lock = threading.Lock()
        self._records = self._load()

    def add_record(self, record: ConfigChangeRecord) -> ConfigChangeRecord | None:
        """Append a record for newly detected drift.

        A record for the same tool that is still waiting for a decision is
        marked ``superseded``.

        Returns:
            The superseded record, if any
        """
        with self._lock:
            superseded = self._latest_pending(record.tool)
            if superseded is not None:
                superseded.action = ChangeAction.SUPERSEDED

            self._records.insert(0, copy.deepcopy(record))
            del self._records[self.max_records :]
            self._save()
        return copy.deepcopy(superseded)

    def update_action(self, tool: Tool, action: ChangeAction) -> bool:
        """Record the decision for the tool's pending record.

        Returns:
            True if a pending record was found and updated
        """
        with self._lock:
            record = self._latest_pending(tool)
            if record is None:
                return False
            record.action = action
            self._save()
        return True

    def mark_pending_as_expired(self) -> int:
        """Expire every record still waiting for a decision.

        Returns:
            Number of records expired
        """
        with self._lock:
            pending = [record for record in self._records if record.action is None]
            for record in pending:
                record.action = ChangeAction.EXPIRED
            if pending:
                self._save()
        return len(pending)

    def get_page(self, page: int, page_size: int) -> tuple[list[ConfigChangeRecord], int]:
        """Page through the log, newest first.

        Args:
            page: Zero-based page number
            page_size: Records per page

        Returns:
            (records on the page, total number of records)
        """
        if page < 0 or page_size <= 0:
            raise ConfigValidationError("page must be >= 0 and page_size > 0")
        with self._lock:
            start = page * page_size
            records = self._records[start : start + page_size]
            return copy.deepcopy(records), len(self._records)

    def get_recent(self, tool: Tool | None = None, limit: int = 50) -> list[ConfigChangeRecord]:
        """Latest records, optionally for a single tool."""
        with self._lock:
            records = [record for record in self._records if tool is None or record.tool == tool]
            return copy.deepcopy(records[:limit])

    def clear(self, tool: Tool | None = None) -> int:
        """Delete records for one tool, or all of them.

        Returns:
            Number of records deleted
        """
        with self._lock:
            before = len(self._records)
            if tool is None:
                self._records.clear()
            else:
                self._records = [record for record in self._records if record.tool != tool]
            removed = before - len(self._records)
            self._save()
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _latest_pending(self, tool: Tool) -> ConfigChangeRecord | None:
        for record in self._records:
            if record.tool == tool and record.action is None:
                return record
        return None

    def _load(self) -> list[ConfigChangeRecord]:
        data = read_yaml(self.path) or {}
        records = []
        for entry in data.get("records") or []:
            try:
                records.append(ConfigChangeRecord.from_dict(entry))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed change log record in {self.path}: {e}")
        return records[: self.max_records]

    def _save(self) -> None:
        write_yaml(self.path, {"records": [record.to_dict() for record in self._records]})
