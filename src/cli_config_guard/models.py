"""Data models for cli-config-guard."""

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timezone
from enum import Enum
from pathlib import Path
from typing import Any

from .fieldpath import FieldPath


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class Tool(Enum):
    """Supported CLI tools.

    The set is closed: every tool has exactly one adapter describing its
    on-disk layout.
    """

    CLAUDE_CODE = "claude-code"
    CODEX = "codex"
    GEMINI_CLI = "gemini-cli"


class WatchMode(Enum):
    """How much external drift the watcher reports.

    DEFAULT only reports changes to sensitive fields, FULL reports every
    change that is not blacklisted.
    """

    DEFAULT = "default"
    FULL = "full"


class ChangeKind(Enum):
    """Kind of a single field change."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


class ChangeAction(Enum):
    """Final state of a change log record."""

    ALLOW = "allow"
    BLOCK = "block"
    SUPERSEDED = "superseded"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ToolPaths:
    """Config directories of the managed tools and the engine's state dir.

    Immutable configuration for where files are located. Applications inject
    these paths to define their configuration policy.

    Attributes:
        claude_code: Claude Code config directory (holds settings.json)
        codex: Codex config directory (holds config.toml and auth.json)
        gemini_cli: Gemini CLI config directory (holds .env and settings.json)
        state_dir: Directory for snapshots, change logs and watch settings
    """

    claude_code: Path
    codex: Path
    gemini_cli: Path
    state_dir: Path

    @classmethod
    def default(cls, home: Path | None = None) -> "ToolPaths":
        """Standard locations under the user's home directory."""
        home = home or Path.home()
        return cls(
            claude_code=home / ".claude",
            codex=home / ".codex",
            gemini_cli=home / ".gemini",
            state_dir=home / ".cli-config-guard",
        )

    def config_dir(self, tool: Tool) -> Path:
        """Config directory for a tool."""
        dir_map = {
            Tool.CLAUDE_CODE: self.claude_code,
            Tool.CODEX: self.codex,
            Tool.GEMINI_CLI: self.gemini_cli,
        }
        return dir_map[tool]


@dataclass
class Profile:
    """A named set of managed field values saved for one tool."""

    tool: Tool
    name: str
    managed_field_values: dict[str, Any]
    created_at: datetime
    updated_at: datetime


@dataclass
class Snapshot:
    """Last accepted content of a tool's active files.

    Attributes:
        tool: Tool the snapshot belongs to
        files: File name -> parsed tree
        updated_at: When the snapshot was last replaced
    """

    tool: Tool
    files: dict[str, Any]
    updated_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class FieldChange:
    """A single difference between two config trees."""

    path: FieldPath
    kind: ChangeKind
    old_value: Any = None
    new_value: Any = None

    def reversed(self) -> "FieldChange":
        """The same change seen from the other side."""
        flipped = {
            ChangeKind.ADDED: ChangeKind.DELETED,
            ChangeKind.DELETED: ChangeKind.ADDED,
            ChangeKind.MODIFIED: ChangeKind.MODIFIED,
        }
        return FieldChange(
            path=self.path,
            kind=flipped[self.kind],
            old_value=self.new_value,
            new_value=self.old_value,
        )


@dataclass
class ExternalConfigChange:
    """Drift detected on disk and reported to subscribers."""

    tool: Tool
    file_path: Path
    changed_fields: list[FieldChange]
    is_sensitive: bool
    detected_at: datetime = field(default_factory=utc_now)

    @property
    def changed_paths(self) -> list[str]:
        return [str(change.path) for change in self.changed_fields]


@dataclass
class ConfigChangeRecord:
    """Persisted change log entry.

    ``action`` stays None until the change is allowed, blocked, superseded by
    newer drift or expired.
    """

    tool: Tool
    timestamp: datetime
    changed_fields: list[str]
    is_sensitive: bool
    before_values: dict[str, Any] = field(default_factory=dict)
    after_values: dict[str, Any] = field(default_factory=dict)
    action: ChangeAction | None = None

    @classmethod
    def from_change(cls, change: ExternalConfigChange) -> "ConfigChangeRecord":
        before_values = {}
        after_values = {}
        for field_change in change.changed_fields:
            key = str(field_change.path)
            if field_change.kind is not ChangeKind.ADDED:
                before_values[key] = field_change.old_value
            if field_change.kind is not ChangeKind.DELETED:
                after_values[key] = field_change.new_value
        return cls(
            tool=change.tool,
            timestamp=change.detected_at,
            changed_fields=change.changed_paths,
            is_sensitive=change.is_sensitive,
            before_values=before_values,
            after_values=after_values,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "tool": self.tool.value,
            "timestamp": self.timestamp.isoformat(),
            "changed_fields": list(self.changed_fields),
            "is_sensitive": self.is_sensitive,
        }
        if self.before_values:
            data["before_values"] = self.before_values
        if self.after_values:
            data["after_values"] = self.after_values
        data["action"] = self.action.value if self.action else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConfigChangeRecord":
        action = data.get("action")
        return cls(
            tool=Tool(data["tool"]),
            timestamp=parse_datetime(data["timestamp"]),
            changed_fields=list(data.get("changed_fields") or []),
            is_sensitive=bool(data.get("is_sensitive", False)),
            before_values=dict(data.get("before_values") or {}),
            after_values=dict(data.get("after_values") or {}),
            action=ChangeAction(action) if action else None,
        )


@dataclass
class WatchConfig:
    """Per-tool drift detection settings.

    Attributes:
        enabled: Whether the polling loop runs for this tool
        mode: DEFAULT (sensitive drift only) or FULL
        scan_interval: Seconds between scans
        blacklist: Patterns whose drift is never reported
        sensitive_fields: Patterns whose drift is always reported
    """

    enabled: bool = True
    mode: WatchMode = WatchMode.DEFAULT
    scan_interval: float = 5.0
    blacklist: list[str] = field(default_factory=list)
    sensitive_fields: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "mode": self.mode.value,
            "scan_interval": self.scan_interval,
            "blacklist": list(self.blacklist),
            "sensitive_fields": list(self.sensitive_fields),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WatchConfig":
        return cls(
            enabled=bool(data["enabled"]),
            mode=WatchMode(data["mode"]),
            scan_interval=float(data["scan_interval"]),
            blacklist=list(data.get("blacklist") or []),
            sensitive_fields=list(data.get("sensitive_fields") or []),
        )


def parse_datetime(value: Any) -> datetime:
    # PyYAML turns unquoted ISO timestamps into datetimes already
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
