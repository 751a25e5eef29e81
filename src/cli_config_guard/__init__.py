"""cli-config-guard: Profile switching and drift detection for AI coding CLIs.

This library manages the configuration files of three command-line tools
(Claude Code, Codex and Gemini CLI):
- Named profiles of the fields the library manages (credentials, endpoints, models)
- Merge-don't-clobber writes that keep every setting the user added by hand
- A polling watcher that reports external edits for the user to allow or block
- A bounded change log of every detected edit and the decision taken on it

Applications inject paths to define where each tool keeps its files. The
library provides the mechanism for reading, merging, writing and watching them.

Public API:
    ToolConfigManager: Main class for profile and watch operations
    ToolPaths: Dataclass defining the tool config directories and state dir
    Tool: Enum of the supported tools
    WatchConfig, WatchMode: Per-tool drift detection settings
    FieldPath: Addressing of values inside config files
    ConfigError and subclasses: Exception types

Example:
    ```python
    from cli_config_guard import Tool, ToolConfigManager, ToolPaths

    # Application injects paths (policy)
    manager = ToolConfigManager(ToolPaths.default())

    # Save and switch profiles
    manager.save_credentials(Tool.CLAUDE_CODE, "work", api_key="sk-...", base_url="https://api.example.com")
    manager.activate_profile(Tool.CLAUDE_CODE, "work")

    # Watch for external edits
    manager.subscribe(lambda change: print(change.tool, change.changed_paths))
    with manager:
        ...
    ```
"""

from .exceptions import ConfigError
from .exceptions import ConfigFileError
from .exceptions import ConfigNotFoundError
from .exceptions import ConfigParseError
from .exceptions import ConfigValidationError
from .exceptions import PartialWriteError
from .exceptions import ProfileNotFoundError
from .exceptions import SnapshotNotFoundError
from .fieldpath import FieldPath
from .manager import ToolConfigManager
from .models import ChangeAction
from .models import ChangeKind
from .models import ConfigChangeRecord
from .models import ExternalConfigChange
from .models import FieldChange
from .models import Profile
from .models import Snapshot
from .models import Tool
from .models import ToolPaths
from .models import WatchConfig
from .models import WatchMode
from .utils import deep_merge

__version__ = "0.1.0"

__all__ = [
    "ToolConfigManager",
    "ToolPaths",
    "Tool",
    "WatchConfig",
    "WatchMode",
    "Profile",
    "Snapshot",
    "FieldPath",
    "FieldChange",
    "ChangeKind",
    "ChangeAction",
    "ExternalConfigChange",
    "ConfigChangeRecord",
    "deep_merge",
    "ConfigError",
    "ConfigFileError",
    "ConfigNotFoundError",
    "ConfigParseError",
    "ConfigValidationError",
    "PartialWriteError",
    "ProfileNotFoundError",
    "SnapshotNotFoundError",
]
