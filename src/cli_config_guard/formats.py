"""Codecs for the file formats the supported tools use.

Each codec parses text into a plain tree (dicts, lists and scalars) and renders
a tree back to text. Rendering takes the previous file text so that content a
tree cannot carry (TOML comments and table layout, comments in ``.env`` files)
survives a rewrite.
"""

import json
from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import TOMLKitError

from .diff import values_equal
from .exceptions import ConfigParseError


class ConfigFormat:
    """Base class for file codecs."""

    name = "text"

    def parse(self, text: str, path: Path) -> dict[str, Any]:
        raise NotImplementedError

    def render(self, tree: dict[str, Any], previous: str | None = None) -> str:
        raise NotImplementedError


class JsonFormat(ConfigFormat):
    """JSON documents with an object at the top level."""

    name = "json"

    def parse(self, text: str, path: Path) -> dict[str, Any]:
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except ValueError as e:
            raise ConfigParseError(f"Invalid JSON in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigParseError(f"Expected a JSON object at the top of {path}, got {type(data).__name__}")
        return data

    def render(self, tree: dict[str, Any], previous: str | None = None) -> str:
        return json.dumps(tree, indent=2, ensure_ascii=False) + "\n"


class TomlFormat(ConfigFormat):
    """TOML documents, rewritten in place to keep comments and layout."""

    name = "toml"

    def parse(self, text: str, path: Path) -> dict[str, Any]:
        try:
            return tomlkit.parse(text).unwrap()
        except TOMLKitError as e:
            raise ConfigParseError(f"Invalid TOML in {path}: {e}") from e

    def render(self, tree: dict[str, Any], previous: str | None = None) -> str:
        document = tomlkit.document()
        if previous:
            try:
                document = tomlkit.parse(previous)
            except TOMLKitError:
                document = tomlkit.document()
        _merge_table(document, tree)
        return tomlkit.dumps(document)


class EnvFormat(ConfigFormat):
    """Line-oriented ``KEY=VALUE`` files.

    Blank lines and lines starting with ``#`` are ignored, the first ``=``
    splits key from value and both sides are trimmed. Lines without ``=`` are
    ignored. When a key repeats, the last assignment wins.
    """

    name = "env"

    def parse(self, text: str, path: Path) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for line in text.splitlines():
            assignment = _env_assignment(line)
            if assignment:
                key, value = assignment
                values[key] = value
        return values

    def render(self, tree: dict[str, Any], previous: str | None = None) -> str:
        lines: list[str] = []
        written: set[str] = set()

        for line in (previous or "").splitlines():
            assignment = _env_assignment(line)
            if assignment is None:
                lines.append(line)
                continue
            key = assignment[0]
            if key in tree and key not in written:
                lines.append(f"{key}={_env_value(tree[key])}")
                written.add(key)

        for key, value in tree.items():
            if key not in written:
                lines.append(f"{key}={_env_value(value)}")

        return "\n".join(lines) + "\n" if lines else ""


def _env_assignment(line: str) -> tuple[str, str] | None:
    stripped = line.strip()
    if not stripped or stripped.startswith("#") or "=" not in stripped:
        return None
    key, value = stripped.split("=", 1)
    key = key.strip()
    if not key:
        return None
    return key, value.strip()


def _env_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _plain(value: Any) -> Any:
    unwrap = getattr(value, "unwrap", None)
    return unwrap() if callable(unwrap) else value


def _merge_table(target: Any, source: dict[str, Any]) -> None:
    """Make a tomlkit table hold ``source`` while touching as little as possible.

    Keys missing from ``source`` are removed, nested tables are merged
    recursively and values that did not change are left alone so their
    comments and formatting survive.
    """
    for key in [key for key in target if key not in source]:
        del target[key]

    for key, value in source.items():
        existing = target.get(key)
        if isinstance(value, dict) and isinstance(existing, dict):
            _merge_table(existing, value)
        elif existing is not None and values_equal(_plain(existing), value):
            continue
        else:
            target[key] = value
