"""Format adapters for the supported CLI tools.

An adapter knows a tool's file set, the formats of those files and the fixed
set of managed field paths, the only paths this library ever writes. Trees
passed around by adapters are "file sets": dicts mapping file name to the
parsed tree of that file.
"""

import copy
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .diff import values_equal
from .exceptions import ConfigParseError
from .exceptions import ConfigValidationError
from .exceptions import ProfileNotFoundError
from .fieldpath import FieldPath
from .fieldpath import parse_patterns
from .formats import ConfigFormat
from .formats import EnvFormat
from .formats import JsonFormat
from .formats import TomlFormat
from .models import Tool
from .models import ToolPaths
from .storage import read_text
from .storage import remove_files
from .storage import write_files
from .utils import MISSING
from .utils import deep_merge
from .utils import get_value
from .utils import remove_value
from .utils import set_value

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigFile:
    """One file of a tool's file set."""

    name: str
    format: ConfigFormat

    @property
    def basename(self) -> str:
        return Path(self.name).stem

    @property
    def extension(self) -> str:
        return Path(self.name).suffix

    def backup_name(self, profile: str) -> str:
        """File name of this file's backup for a profile.

        ``settings.json`` -> ``settings.<profile>.json``,
        ``.env`` -> ``.env.<profile>``.
        """
        return f"{self.basename}.{profile}{self.extension}"


class ToolAdapter:
    """Reads, merges and writes one tool's config files.

    Subclasses declare the file set and the managed fields; the read, write
    and merge mechanics are shared.
    """

    tool: Tool
    files: tuple[ConfigFile, ...] = ()
    # Text patterns; a trailing ``.*`` admits exactly one level below the prefix
    managed_fields: tuple[str, ...] = ()
    required_fields: tuple[str, ...] = ()
    default_sensitive_fields: tuple[str, ...] = ()
    reserved_names: frozenset[str] = frozenset()

    def __init__(self, config_dir: Path):
        self.config_dir = config_dir
        self._managed_patterns = parse_patterns(list(self.managed_fields))

    @property
    def primary(self) -> ConfigFile:
        return self.files[0]

    def active_path(self, config_file: ConfigFile) -> Path:
        return self.config_dir / config_file.name

    def backup_path(self, config_file: ConfigFile, name: str) -> Path:
        return self.config_dir / config_file.backup_name(name)

    # ===== Reading and writing =====

    def load(self) -> dict[str, Any]:
        """Read the active file set.

        Returns:
            File name -> tree; a missing file reads as an empty tree

        Raises:
            ConfigParseError: If a file doesn't parse
            ConfigFileError: If a file exists but can't be read
        """
        files = {}
        for config_file in self.files:
            path = self.active_path(config_file)
            text = read_text(path)
            files[config_file.name] = config_file.format.parse(text, path) if text is not None else {}
        return files

    def write(self, files: dict[str, Any]) -> dict[str, Any]:
        """Write a file set to the active files.

        Files whose content would not change are left untouched, and empty
        trees for files that don't exist yet are not created.

        Args:
            files: File name -> tree

        Returns:
            The file set as it now reads back from disk

        Raises:
            ConfigFileError: If nothing was written
            PartialWriteError: If only some files were written
        """
        pending = []
        result = {}
        for config_file in self.files:
            path = self.active_path(config_file)
            previous = read_text(path)
            tree = files.get(config_file.name, {})
            if self._unchanged(config_file, path, previous, tree):
                result[config_file.name] = copy.deepcopy(tree)
                continue
            text = config_file.format.render(tree, previous)
            result[config_file.name] = config_file.format.parse(text, path)
            pending.append((path, text))

        if pending:
            write_files(pending)
            logger.debug(f"Wrote {', '.join(path.name for path, _ in pending)} for {self.tool.value}")
        return result

    def _unchanged(self, config_file: ConfigFile, path: Path, previous: str | None, tree: dict[str, Any]) -> bool:
        if previous is None:
            return not tree
        try:
            return values_equal(config_file.format.parse(previous, path), tree)
        except ConfigParseError:
            return False

    def load_backup(self, name: str) -> dict[str, Any]:
        """Read the backup files of a profile.

        Raises:
            ProfileNotFoundError: If none of the backup files exist
            ConfigParseError: If a backup file doesn't parse
        """
        files = {}
        for config_file in self.files:
            path = self.backup_path(config_file, name)
            text = read_text(path)
            if text is not None:
                files[config_file.name] = config_file.format.parse(text, path)
        if not files:
            raise ProfileNotFoundError(f"Profile '{name}' not found for {self.tool.value}")
        return files

    def write_backup(self, name: str, values: dict[str, Any]) -> None:
        """Write a minimal backup holding only the managed values."""
        files = self.store_managed_fields({}, values)
        pending = []
        for config_file in self.files:
            if config_file.name in files:
                text = config_file.format.render(files[config_file.name])
                pending.append((self.backup_path(config_file, name), text))
        write_files(pending)

    def remove_backup(self, name: str) -> list[Path]:
        """Delete every backup file of a profile."""
        return remove_files([self.backup_path(config_file, name) for config_file in self.files])

    def list_backup_names(self) -> list[str]:
        """Profile names found next to the primary file, sorted."""
        if not self.config_dir.is_dir():
            return []

        prefix = f"{self.primary.basename}."
        suffix = self.primary.extension
        names = set()
        for entry in self.config_dir.iterdir():
            filename = entry.name
            if filename == self.primary.name or not entry.is_file():
                continue
            if not filename.startswith(prefix) or not filename.endswith(suffix):
                continue
            name = filename[len(prefix) : len(filename) - len(suffix)] if suffix else filename[len(prefix) :]
            if name and not name.startswith(".") and not self.is_reserved(name):
                names.add(name)
        return sorted(names)

    def validate_profile_name(self, name: str) -> None:
        """Reject names that can't be embedded in a backup file name.

        Raises:
            ConfigValidationError: If the name is unusable
        """
        if not name or name != name.strip():
            raise ConfigValidationError("Profile name must be non-empty without surrounding whitespace")
        if any(char in name for char in "/\\:") or name.startswith("."):
            raise ConfigValidationError(f"Invalid profile name '{name}'")
        if self.is_reserved(name) or name in {config_file.basename for config_file in self.files}:
            raise ConfigValidationError(f"Profile name '{name}' is reserved for {self.tool.value}")

    def is_reserved(self, name: str) -> bool:
        # Variants such as ``local.bak`` count too
        return name.split(".", 1)[0] in self.reserved_names

    # ===== Managed fields =====

    def is_managed(self, path: FieldPath) -> bool:
        """Check whether a concrete path is one of the managed fields."""
        path = self.normalize_path(path)
        for pattern in self._managed_patterns:
            pattern = self.normalize_path(pattern)
            if pattern.wildcard:
                if path.is_within(pattern) and len(path.segments) == len(pattern.segments) + 1:
                    return True
            elif path == pattern:
                return True
        return False

    def managed_paths(self, files: dict[str, Any]) -> list[FieldPath]:
        """Concrete managed paths for a file set."""
        return [pattern for pattern in self._managed_patterns if not pattern.wildcard]

    def extract_managed(self, files: dict[str, Any]) -> dict[str, Any]:
        """Collect the managed values present in a file set.

        Returns:
            Path text -> value, only for paths that exist
        """
        values = {}
        for path in self.managed_paths(files):
            tree = files.get(path.file or self.primary.name, {})
            value = get_value(tree, path.segments)
            if value is not MISSING:
                values[str(path)] = copy.deepcopy(value)
        return values

    def store_managed_fields(self, files: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
        """Overlay managed values on a file set.

        Pure: the input is not modified and every unmanaged path of the result
        equals the input. A map value landing on an existing map is merged so
        keys the user added inside a managed map survive.

        Args:
            files: File name -> tree
            values: Path text -> value

        Returns:
            New file set

        Raises:
            ConfigValidationError: If a path is not managed by this tool
        """
        result = copy.deepcopy(files)
        for key, value in values.items():
            path = FieldPath.parse(key)
            if not self.is_managed(path):
                raise ConfigValidationError(f"'{key}' is not a managed field of {self.tool.value}")
            file_name = path.file or self.primary.name
            tree = result.setdefault(file_name, {})
            existing = get_value(tree, path.segments, None)
            if isinstance(value, dict) and isinstance(existing, dict):
                value = deep_merge(existing, value)
            set_value(tree, path.segments, copy.deepcopy(value))
        return result

    def restore_managed_fields(self, files: dict[str, Any], baseline: dict[str, Any]) -> dict[str, Any]:
        """Give a file set exactly the managed values of a baseline file set.

        Managed values missing from the baseline are put back to whatever the
        baseline holds at that path, or removed when it holds nothing. Maps
        the removal empties are dropped too unless the baseline has them.
        Unmanaged paths keep their value from ``files``.

        Args:
            files: File name -> tree, typically the active files
            baseline: File name -> tree to take the managed values from

        Returns:
            New file set
        """
        target = self.extract_managed(baseline)
        result = copy.deepcopy(files)
        for key, value in self.extract_managed(files).items():
            path = FieldPath.parse(key)
            file_name = path.file or self.primary.name
            tree = result.setdefault(file_name, {})
            baseline_tree = baseline.get(file_name, {})

            if key in target:
                # Managed map keys the baseline lacks would survive the merge
                if isinstance(value, dict) and isinstance(target[key], dict):
                    for child in value.keys() - target[key].keys():
                        remove_value(tree, path.segments + (child,))
                continue

            original = get_value(baseline_tree, path.segments)
            if original is not MISSING:
                set_value(tree, path.segments, copy.deepcopy(original))
                continue

            remove_value(tree, path.segments)
            for depth in range(len(path.segments) - 1, 0, -1):
                parent = path.segments[:depth]
                if get_value(tree, parent) != {} or get_value(baseline_tree, parent) is not MISSING:
                    break
                remove_value(tree, parent)

        return self.store_managed_fields(result, target)

    def required_paths(self, values: dict[str, Any]) -> list[str]:
        return list(self.required_fields)

    def validate_managed(self, values: dict[str, Any]) -> None:
        """Check that a set of managed values is complete enough to activate.

        Raises:
            ConfigValidationError: If a required field is missing or empty
        """
        missing = [path for path in self.required_paths(values) if values.get(path) in (None, "")]
        if missing:
            raise ConfigValidationError(f"Missing required fields for {self.tool.value}: {', '.join(missing)}")

    def build_values(
        self,
        api_key: str,
        base_url: str,
        model: str | None = None,
        current: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Derive a complete set of managed values from credentials.

        Optional fields keep their value from ``current`` and otherwise fall
        back to the tool's defaults.
        """
        raise NotImplementedError

    def normalize_path(self, path: FieldPath) -> FieldPath:
        # A qualifier naming the primary file is the same as no qualifier
        if path.file == self.primary.name:
            return path.qualified(None)
        return path


class ClaudeCodeAdapter(ToolAdapter):
    """Claude Code: a single JSON settings file."""

    tool = Tool.CLAUDE_CODE
    files = (ConfigFile("settings.json", JsonFormat()),)
    managed_fields = ("environment.auth-token", "environment.base-url")
    required_fields = managed_fields
    default_sensitive_fields = managed_fields
    # settings.local.json is a native Claude Code file, not a profile
    reserved_names = frozenset({"local"})

    def build_values(self, api_key, base_url, model=None, current=None):
        return {
            "environment.auth-token": api_key,
            "environment.base-url": base_url,
        }


PROVIDER_MARKER = "duckcoding"
CUSTOM_PROVIDER = "custom"
PROVIDER_DESCRIPTOR_KEYS = ("name", "base_url", "wire_api", "requires_openai_auth")


class CodexAdapter(ToolAdapter):
    """Codex: TOML settings plus a JSON credentials file."""

    tool = Tool.CODEX
    files = (
        ConfigFile("config.toml", TomlFormat()),
        ConfigFile("auth.json", JsonFormat()),
    )
    managed_fields = (
        "model_provider",
        "model",
        "model_reasoning_effort",
        "network_access",
        "disable_response_storage",
        "model_providers.*",
        "auth.json:OPENAI_API_KEY",
    )
    default_sensitive_fields = ("model_provider", "model_providers.*", "auth.json:OPENAI_API_KEY")

    default_model = "gpt-5-codex"
    default_reasoning_effort = "high"
    default_network_access = "enabled"

    def managed_paths(self, files):
        paths = super().managed_paths(files)
        provider = get_value(files.get("config.toml", {}), ("model_provider",), None)
        if isinstance(provider, str) and provider:
            paths.append(FieldPath(segments=("model_providers", provider)))
        return paths

    def extract_managed(self, files):
        values = super().extract_managed(files)
        for key, value in list(values.items()):
            if key.startswith("model_providers") and isinstance(value, dict):
                values[key] = {k: value[k] for k in PROVIDER_DESCRIPTOR_KEYS if k in value}
        return values

    def required_paths(self, values):
        required = ["model_provider", "auth.json:OPENAI_API_KEY"]
        provider = values.get("model_provider")
        if isinstance(provider, str) and provider:
            required.append(str(FieldPath(segments=("model_providers", provider))))
        return required

    def build_values(self, api_key, base_url, model=None, current=None):
        config = (current or {}).get("config.toml", {})
        provider = PROVIDER_MARKER if PROVIDER_MARKER in base_url else CUSTOM_PROVIDER
        provider_url = base_url.rstrip("/")
        if not provider_url.endswith("/v1"):
            provider_url = f"{provider_url}/v1"
        return {
            "model_provider": provider,
            "model": model or config.get("model", self.default_model),
            "model_reasoning_effort": config.get("model_reasoning_effort", self.default_reasoning_effort),
            "network_access": config.get("network_access", self.default_network_access),
            "disable_response_storage": config.get("disable_response_storage", True),
            str(FieldPath(segments=("model_providers", provider))): {
                "name": provider,
                "base_url": provider_url,
                "wire_api": "responses",
                "requires_openai_auth": True,
            },
            "auth.json:OPENAI_API_KEY": api_key,
        }


class GeminiCliAdapter(ToolAdapter):
    """Gemini CLI: a KEY=VALUE env file plus JSON settings."""

    tool = Tool.GEMINI_CLI
    files = (
        ConfigFile(".env", EnvFormat()),
        ConfigFile("settings.json", JsonFormat()),
    )
    managed_fields = (
        "GOOGLE_GEMINI_BASE_URL",
        "GEMINI_API_KEY",
        "GEMINI_MODEL",
        "settings.json:ide.enabled",
        "settings.json:security.auth.selectedType",
    )
    required_fields = ("GOOGLE_GEMINI_BASE_URL", "GEMINI_API_KEY")
    # Native .env siblings kept by projects and editors
    reserved_names = frozenset({"local", "example", "sample", "template", "defaults", "bak", "backup", "orig", "old"})
    default_sensitive_fields = ("GOOGLE_GEMINI_BASE_URL", "GEMINI_API_KEY", "GEMINI_MODEL")

    default_model = "gemini-2.5-pro"
    default_auth_type = "gemini-api-key"

    def build_values(self, api_key, base_url, model=None, current=None):
        current = current or {}
        env = current.get(".env", {})
        settings = current.get("settings.json", {})
        return {
            "GOOGLE_GEMINI_BASE_URL": base_url,
            "GEMINI_API_KEY": api_key,
            "GEMINI_MODEL": model or env.get("GEMINI_MODEL") or self.default_model,
            "settings.json:ide.enabled": get_value(settings, ("ide", "enabled"), True),
            "settings.json:security.auth.selectedType": self.default_auth_type,
        }


ADAPTER_CLASSES: dict[Tool, type[ToolAdapter]] = {
    Tool.CLAUDE_CODE: ClaudeCodeAdapter,
    Tool.CODEX: CodexAdapter,
    Tool.GEMINI_CLI: GeminiCliAdapter,
}


def create_adapters(paths: ToolPaths) -> dict[Tool, ToolAdapter]:
    """Build one adapter per tool from injected paths."""
    return {tool: adapter_class(paths.config_dir(tool)) for tool, adapter_class in ADAPTER_CLASSES.items()}
