"""Exceptions for cli-config-guard."""


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigFileError(ConfigError):
    """Error reading or writing configuration file."""

    pass


class PartialWriteError(ConfigFileError):
    """Only some files of a multi-file write reached the disk.

    The tool is left with a mix of old and new files. ``written`` lists the
    files that were replaced, ``failed`` the ones that kept their old content.
    """

    def __init__(self, message: str, written: list[str], failed: list[str]):
        super().__init__(message)
        self.written = written
        self.failed = failed


class ConfigParseError(ConfigError):
    """File content does not match the structure expected for its format."""

    pass


class ConfigValidationError(ConfigError):
    """Error validating configuration data."""

    pass


class ConfigNotFoundError(ConfigError):
    """A required backup, snapshot or active file is missing."""

    pass


class ProfileNotFoundError(ConfigNotFoundError):
    """No backup files exist for the requested profile."""

    pass


class SnapshotNotFoundError(ConfigNotFoundError):
    """No accepted snapshot has been recorded for the tool yet."""

    pass
