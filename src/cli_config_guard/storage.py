"""File helpers shared by the stores.

YAML helpers back the engine's own state files. ``write_files`` is the
two-phase writer used for tool config files and profile backups.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigFileError
from .exceptions import PartialWriteError
from .utils import deep_merge

logger = logging.getLogger(__name__)

PRIVATE_FILE_MODE = 0o600


def read_yaml(path: Path) -> dict[str, Any] | None:
    """Read YAML file.

    Args:
        path: Path to YAML file

    Returns:
        Dictionary from YAML or None if file doesn't exist or can't be read
    """
    if not path.exists():
        return None

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if data else {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to read state from {path}: {e}")
        return None


def write_yaml(path: Path, data: dict[str, Any]) -> None:
    """Write YAML file.

    Args:
        path: Path to YAML file
        data: Dictionary to write

    Raises:
        ConfigFileError: If write fails
    """
    text = yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
    write_files([(path, text)], mode=None)


def update_yaml(path: Path, updates: dict[str, Any]) -> dict[str, Any]:
    """Update YAML file with deep merge.

    Args:
        path: Path to YAML file
        updates: Updates to merge into existing data

    Returns:
        The merged content that was written
    """
    existing = read_yaml(path) or {}
    merged = deep_merge(existing, updates)
    write_yaml(path, merged)
    return merged


def read_text(path: Path) -> str | None:
    """Read a text file, None if it does not exist.

    Raises:
        ConfigFileError: If the file exists but can't be read
    """
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigFileError(f"Failed to read {path}: {e}") from e


def write_files(files: list[tuple[Path, str]], mode: int | None = PRIVATE_FILE_MODE) -> None:
    """Write several files so that a failure leaves as little damage as possible.

    Every file is first written to a temporary sibling. If any of those writes
    fails nothing on disk has changed. The temporaries are then renamed over
    their targets in order; a rename failure after at least one success is a
    partial write.

    Args:
        files: (target path, text) pairs
        mode: Permission bits for the written files (None keeps the default)

    Raises:
        ConfigFileError: If no target was replaced
        PartialWriteError: If some targets were replaced and others were not
    """
    staged: list[tuple[Path, Path]] = []
    try:
        for target, text in files:
            staged.append((target, _stage(target, text, mode)))
    except OSError as e:
        _discard(temp for _, temp in staged)
        raise ConfigFileError(f"Failed to write {target}: {e}") from e

    written: list[str] = []
    for index, (target, temp) in enumerate(staged):
        try:
            os.replace(temp, target)
        except OSError as e:
            _discard(temp for _, temp in staged[index:])
            failed = [t.name for t, _ in staged[index:]]
            if written:
                raise PartialWriteError(
                    f"Wrote {', '.join(written)} but failed on {target}: {e}",
                    written=written,
                    failed=failed,
                ) from e
            raise ConfigFileError(f"Failed to write {target}: {e}") from e
        written.append(target.name)


def remove_files(paths: list[Path]) -> list[Path]:
    """Delete files that exist.

    Returns:
        The paths that were removed

    Raises:
        ConfigFileError: If an existing file can't be removed
    """
    removed = []
    for path in paths:
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            raise ConfigFileError(f"Failed to remove {path}: {e}") from e
        removed.append(path)
    return removed


def _stage(target: Path, text: str, mode: int | None) -> Path:
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    temp = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        if mode is not None and os.name == "posix":
            os.chmod(temp, mode)
    except OSError:
        temp.unlink(missing_ok=True)
        raise
    return temp


def _discard(temps) -> None:
    for temp in temps:
        try:
            temp.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove temporary file {temp}: {e}")
