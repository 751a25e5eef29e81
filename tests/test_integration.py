"""Integration tests for ToolConfigManager."""

import json
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
from cli_config_guard import ChangeAction
from cli_config_guard import ChangeKind
from cli_config_guard import Tool
from cli_config_guard import ToolConfigManager
from cli_config_guard import ToolPaths
from cli_config_guard import WatchMode


class TestProfileIntegration:
    """Profile switching against realistic config files."""

    @pytest.fixture
    def temp_paths(self):
        """Create temporary paths for testing."""
        with TemporaryDirectory() as tmpdir:
            yield ToolPaths.default(home=Path(tmpdir))

    @pytest.fixture
    def manager(self, temp_paths):
        """Create ToolConfigManager with temp paths."""
        return ToolConfigManager(temp_paths)

    def test_activate_keeps_unmanaged_fields(self, manager, temp_paths):
        """Test switching profiles never clobbers settings the user owns."""
        manager.save_credentials(Tool.CLAUDE_CODE, "a", api_key="k-a", base_url="https://a")
        manager.save_credentials(Tool.CLAUDE_CODE, "b", api_key="k-b", base_url="https://b")

        path = temp_paths.claude_code / "settings.json"
        settings = json.loads(path.read_text())
        settings["permissions"] = {"allow": ["Bash(ls)"]}
        settings["environment"]["EXTRA"] = "v"
        path.write_text(json.dumps(settings))

        manager.activate_profile(Tool.CLAUDE_CODE, "a")
        settings = json.loads(path.read_text())
        assert settings["permissions"] == {"allow": ["Bash(ls)"]}
        assert settings["environment"] == {"auth-token": "k-a", "base-url": "https://a", "EXTRA": "v"}

    def test_codex_switch_keeps_toml_comments(self, manager, temp_paths):
        """Test a Codex switch keeps the user's TOML content."""
        temp_paths.codex.mkdir(parents=True)
        config = temp_paths.codex / "config.toml"
        config.write_text('# personal settings\napproval_policy = "never"\n\n[mcp_servers.docs]\ncommand = "docs"\n')

        manager.save_credentials(Tool.CODEX, "duck", api_key="k1", base_url="https://jp.duckcoding.com")
        manager.save_credentials(Tool.CODEX, "mine", api_key="k2", base_url="https://llm.example.com/v1")
        manager.activate_profile(Tool.CODEX, "duck")

        text = config.read_text()
        assert "# personal settings" in text
        assert 'approval_policy = "never"' in text
        values = manager.get_active_values(Tool.CODEX)
        assert values["model_provider"] == "duckcoding"
        assert values["auth.json:OPENAI_API_KEY"] == "k1"
        assert values["model_providers.duckcoding"]["base_url"] == "https://jp.duckcoding.com/v1"

    @pytest.mark.parametrize("tool", list(Tool))
    def test_no_drift_after_own_writes(self, manager, tool):
        """Test the engine's own writes are never reported as drift."""
        manager.update_watch_config(tool, mode=WatchMode.FULL)
        manager.save_credentials(tool, "a", api_key="k-a", base_url="https://a.example.com")
        assert manager.scan(tool) is None

        manager.save_credentials(tool, "b", api_key="k-b", base_url="https://b.example.com")
        manager.activate_profile(tool, "a")
        assert manager.scan(tool) is None
        assert manager.get_change_logs(tool) == []


class TestWatchIntegration:
    """External edits, notifications and allow/block decisions."""

    @pytest.fixture
    def temp_paths(self):
        """Create temporary paths for testing."""
        with TemporaryDirectory() as tmpdir:
            yield ToolPaths.default(home=Path(tmpdir))

    @pytest.fixture
    def manager(self, temp_paths):
        """Create ToolConfigManager with a saved Claude Code profile."""
        manager = ToolConfigManager(temp_paths)
        manager.save_credentials(Tool.CLAUDE_CODE, "work", api_key="k1", base_url="https://a")
        return manager

    @pytest.fixture
    def settings_path(self, temp_paths):
        return temp_paths.claude_code / "settings.json"

    def edit(self, path, **environment):
        settings = json.loads(path.read_text())
        settings["environment"].update(environment)
        return settings

    def test_hand_edit_then_block(self, manager, settings_path):
        """Test the token edit is reported alone and block restores it."""
        notifications = []
        manager.subscribe(notifications.append)

        settings = self.edit(settings_path, **{"auth-token": "k2"})
        settings["theme"] = "dark"
        settings_path.write_text(json.dumps(settings))

        change = manager.scan(Tool.CLAUDE_CODE)
        assert notifications == [change]
        assert len(change.changed_fields) == 1
        field_change = change.changed_fields[0]
        assert str(field_change.path) == "environment.auth-token"
        assert field_change.kind is ChangeKind.MODIFIED
        assert (field_change.old_value, field_change.new_value) == ("k1", "k2")

        manager.block(Tool.CLAUDE_CODE)
        settings = json.loads(settings_path.read_text())
        assert settings["environment"]["auth-token"] == "k1"
        assert settings["theme"] == "dark"
        assert manager.pending_change(Tool.CLAUDE_CODE) is None
        assert manager.get_change_logs()[0].action is ChangeAction.BLOCK
        assert manager.scan(Tool.CLAUDE_CODE) is None

    def test_block_restores_all_managed_fields(self, manager, settings_path):
        """Test block puts every managed value back and keeps added fields."""
        settings = self.edit(settings_path, **{"auth-token": "x", "base-url": "https://evil"})
        settings["environment"]["NEW"] = "1"
        settings_path.write_text(json.dumps(settings))
        manager.scan(Tool.CLAUDE_CODE)

        manager.block(Tool.CLAUDE_CODE)
        assert manager.get_active_values(Tool.CLAUDE_CODE) == {
            "environment.auth-token": "k1",
            "environment.base-url": "https://a",
        }
        assert json.loads(settings_path.read_text())["environment"]["NEW"] == "1"

    def test_allow_accepts_edit(self, manager, settings_path):
        """Test allow makes the edit the new baseline."""
        settings_path.write_text(json.dumps(self.edit(settings_path, **{"auth-token": "k2"})))
        manager.scan(Tool.CLAUDE_CODE)

        manager.allow(Tool.CLAUDE_CODE)
        assert manager.scan(Tool.CLAUDE_CODE) is None
        assert manager.get_change_logs()[0].action is ChangeAction.ALLOW
        assert manager.get_active_values(Tool.CLAUDE_CODE)["environment.auth-token"] == "k2"

    def test_blacklist_beats_sensitive_in_both_modes(self, manager, settings_path):
        """Test a blacklisted sensitive field is never reported."""
        manager.update_blacklist(Tool.CLAUDE_CODE, ["environment.auth-token"])
        settings_path.write_text(json.dumps(self.edit(settings_path, **{"auth-token": "k2"})))

        assert manager.scan(Tool.CLAUDE_CODE) is None
        manager.update_watch_config(Tool.CLAUDE_CODE, mode=WatchMode.FULL)
        assert manager.scan(Tool.CLAUDE_CODE) is None
        assert manager.get_change_logs() == []

    def test_mode_controls_insensitive_edits(self, manager, settings_path):
        """Test default mode ignores an insensitive edit and full mode reports it."""
        settings = json.loads(settings_path.read_text())
        settings["theme"] = "dark"
        settings_path.write_text(json.dumps(settings))

        assert manager.scan(Tool.CLAUDE_CODE) is None
        assert manager.get_change_logs() == []

        manager.update_watch_config(Tool.CLAUDE_CODE, mode="full")
        change = manager.scan(Tool.CLAUDE_CODE)
        assert change.changed_paths == ["theme"]
        assert len(manager.get_change_logs()) == 1

    def test_rapid_edits_supersede(self, manager, settings_path):
        """Test two edits before a decision leave one pending change."""
        notifications = []
        manager.subscribe(notifications.append)

        settings_path.write_text(json.dumps(self.edit(settings_path, **{"auth-token": "k2"})))
        manager.scan(Tool.CLAUDE_CODE)
        settings_path.write_text(json.dumps(self.edit(settings_path, **{"auth-token": "k3"})))
        latest = manager.scan(Tool.CLAUDE_CODE)

        assert manager.pending_change(Tool.CLAUDE_CODE) is latest
        assert latest.changed_fields[0].new_value == "k3"
        assert [r.action for r in manager.get_change_logs()] == [None, ChangeAction.SUPERSEDED]
        assert len(notifications) == 2

        manager.block(Tool.CLAUDE_CODE)
        assert manager.get_active_values(Tool.CLAUDE_CODE)["environment.auth-token"] == "k1"

    def test_codex_auth_drift(self, temp_paths):
        """Test drift in the Codex credentials file is blocked back."""
        manager = ToolConfigManager(temp_paths)
        manager.save_credentials(Tool.CODEX, "duck", api_key="k1", base_url="https://jp.duckcoding.com")
        auth = temp_paths.codex / "auth.json"
        auth.write_text(json.dumps({"OPENAI_API_KEY": "stolen", "tokens": {"id": "x"}}))

        change = manager.scan(Tool.CODEX)
        assert change.file_path == auth
        assert change.changed_paths == ["auth.json:OPENAI_API_KEY"]

        manager.block(Tool.CODEX)
        assert json.loads(auth.read_text()) == {"OPENAI_API_KEY": "k1", "tokens": {"id": "x"}}

    def test_block_removes_injected_managed_field(self, temp_paths):
        """Test a managed field added to a baseline without it is removed by block."""
        manager = ToolConfigManager(temp_paths)
        temp_paths.claude_code.mkdir(parents=True)
        settings_path = temp_paths.claude_code / "settings.json"
        settings_path.write_text(json.dumps({"theme": "dark"}))
        manager.initialize_snapshots()

        settings_path.write_text(json.dumps({"theme": "dark", "environment": {"auth-token": "stolen"}}))
        change = manager.scan(Tool.CLAUDE_CODE)
        assert change.changed_paths == ["environment"]

        manager.block(Tool.CLAUDE_CODE)
        assert json.loads(settings_path.read_text()) == {"theme": "dark"}
        assert "stolen" not in json.dumps(manager.snapshots.get(Tool.CLAUDE_CODE).files)
        assert manager.scan(Tool.CLAUDE_CODE) is None

    def test_block_removes_injected_codex_provider(self, temp_paths):
        """Test block drops a provider table pointed at by an edited model_provider."""
        manager = ToolConfigManager(temp_paths)
        manager.save_credentials(Tool.CODEX, "mine", api_key="k1", base_url="https://llm.example.com")
        config = temp_paths.codex / "config.toml"
        text = config.read_text().replace('model_provider = "custom"', 'model_provider = "evil"')
        config.write_text(text + '\n[model_providers.evil]\nname = "evil"\nbase_url = "https://evil.example.com"\n')

        change = manager.scan(Tool.CODEX)
        assert "model_provider" in change.changed_paths

        manager.block(Tool.CODEX)
        active = manager.adapter(Tool.CODEX).load()["config.toml"]
        assert active["model_provider"] == "custom"
        assert set(active["model_providers"]) == {"custom"}
        assert manager.scan(Tool.CODEX) is None

    def test_nan_setting_is_not_drift(self, temp_paths):
        """Test a NaN value in config.toml never reports a change against itself."""
        manager = ToolConfigManager(temp_paths)
        temp_paths.codex.mkdir(parents=True)
        (temp_paths.codex / "config.toml").write_text("temperature = nan\n")
        manager.update_watch_config(Tool.CODEX, mode=WatchMode.FULL)
        manager.save_credentials(Tool.CODEX, "mine", api_key="k1", base_url="https://llm.example.com")

        assert manager.scan(Tool.CODEX) is None
        assert manager.scan(Tool.CODEX) is None
        manager.allow(Tool.CODEX)
        assert manager.scan(Tool.CODEX) is None
        assert manager.get_change_logs() == []
