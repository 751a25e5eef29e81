"""Tests for the per-tool adapters."""

import json
import os
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
from cli_config_guard import ConfigValidationError
from cli_config_guard import FieldPath
from cli_config_guard import ProfileNotFoundError
from cli_config_guard.adapters import ClaudeCodeAdapter
from cli_config_guard.adapters import CodexAdapter
from cli_config_guard.adapters import GeminiCliAdapter


@pytest.fixture
def config_dir():
    """Create a temporary tool config directory."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestClaudeCodeAdapter:
    """Test the single-file JSON adapter."""

    @pytest.fixture
    def adapter(self, config_dir):
        return ClaudeCodeAdapter(config_dir)

    def test_load_missing_file(self, adapter):
        """Test a missing file loads as an empty tree."""
        assert adapter.load() == {"settings.json": {}}

    def test_store_managed_fields_keeps_user_settings(self, adapter):
        """Test only managed paths change."""
        files = {"settings.json": {"theme": "dark", "environment": {"auth-token": "old", "EXTRA": "1"}}}
        result = adapter.store_managed_fields(files, {"environment.auth-token": "new"})

        assert result == {"settings.json": {"theme": "dark", "environment": {"auth-token": "new", "EXTRA": "1"}}}
        assert files["settings.json"]["environment"]["auth-token"] == "old"

    def test_store_unmanaged_field_rejected(self, adapter):
        """Test writing an unmanaged path is refused."""
        with pytest.raises(ConfigValidationError):
            adapter.store_managed_fields({}, {"theme": "light"})

    def test_extract_managed(self, adapter):
        """Test only present managed values are extracted."""
        files = {"settings.json": {"theme": "dark", "environment": {"auth-token": "t"}}}
        assert adapter.extract_managed(files) == {"environment.auth-token": "t"}

    def test_validate_managed(self, adapter):
        """Test missing or empty required fields are rejected."""
        adapter.validate_managed({"environment.auth-token": "t", "environment.base-url": "u"})
        with pytest.raises(ConfigValidationError):
            adapter.validate_managed({"environment.auth-token": "t"})
        with pytest.raises(ConfigValidationError):
            adapter.validate_managed({"environment.auth-token": "", "environment.base-url": "u"})

    def test_write_and_reload(self, adapter, config_dir):
        """Test written files read back and are private."""
        files = {"settings.json": {"environment": {"auth-token": "t", "base-url": "u"}}}
        assert adapter.write(files) == files
        assert adapter.load() == files
        if os.name == "posix":
            assert (config_dir / "settings.json").stat().st_mode & 0o777 == 0o600

    def test_write_skips_unchanged_file(self, adapter, config_dir):
        """Test a file whose content would not change keeps its formatting."""
        path = config_dir / "settings.json"
        path.write_text('{"a":1}')
        adapter.write({"settings.json": {"a": 1}})
        assert path.read_text() == '{"a":1}'

    def test_backups(self, adapter, config_dir):
        """Test backup files hold only managed values and are listed."""
        adapter.write_backup("work", {"environment.auth-token": "t", "environment.base-url": "u"})

        backup = config_dir / "settings.work.json"
        assert json.loads(backup.read_text()) == {"environment": {"auth-token": "t", "base-url": "u"}}
        assert adapter.list_backup_names() == ["work"]
        assert adapter.load_backup("work") == {"settings.json": {"environment": {"auth-token": "t", "base-url": "u"}}}

        assert adapter.remove_backup("work") == [backup]
        assert adapter.list_backup_names() == []

    def test_load_missing_backup(self, adapter):
        """Test loading an unknown profile raises ProfileNotFoundError."""
        with pytest.raises(ProfileNotFoundError):
            adapter.load_backup("nope")

    def test_listing_ignores_native_files(self, adapter, config_dir):
        """Test the tool's own files are not mistaken for profiles."""
        (config_dir / "settings.json").write_text("{}")
        (config_dir / "settings.local.json").write_text("{}")
        (config_dir / "settings.dev.json").write_text("{}")
        (config_dir / ".settings.json.x.tmp").write_text("{}")
        assert adapter.list_backup_names() == ["dev"]

    @pytest.mark.parametrize("name", ["", " a", "a/b", "a\\b", "a:b", ".hidden", "local", "settings"])
    def test_invalid_profile_names(self, adapter, name):
        """Test names that can't be embedded in a file name are rejected."""
        with pytest.raises(ConfigValidationError):
            adapter.validate_profile_name(name)

    def test_build_values(self, adapter):
        """Test credentials map to the managed fields."""
        assert adapter.build_values("sk-1", "https://api.example.com") == {
            "environment.auth-token": "sk-1",
            "environment.base-url": "https://api.example.com",
        }


class TestCodexAdapter:
    """Test the TOML plus JSON adapter."""

    @pytest.fixture
    def adapter(self, config_dir):
        return CodexAdapter(config_dir)

    def test_build_values_duckcoding(self, adapter):
        """Test the provider key follows the endpoint and /v1 is appended."""
        values = adapter.build_values("key", "https://jp.duckcoding.com/")
        assert values["model_provider"] == "duckcoding"
        assert values["model_providers.duckcoding"] == {
            "name": "duckcoding",
            "base_url": "https://jp.duckcoding.com/v1",
            "wire_api": "responses",
            "requires_openai_auth": True,
        }
        assert values["auth.json:OPENAI_API_KEY"] == "key"
        assert values["model"] == "gpt-5-codex"
        assert values["model_reasoning_effort"] == "high"

    def test_build_values_custom_keeps_current(self, adapter):
        """Test optional fields keep their current values."""
        current = {"config.toml": {"model": "o3", "network_access": "restricted"}, "auth.json": {}}
        values = adapter.build_values("key", "https://example.com/v1", current=current)
        assert values["model_provider"] == "custom"
        assert values["model_providers.custom"]["base_url"] == "https://example.com/v1"
        assert values["model"] == "o3"
        assert values["network_access"] == "restricted"

    def test_write_splits_files(self, adapter, config_dir):
        """Test managed values land in their own files."""
        values = adapter.build_values("key", "https://example.com")
        adapter.write(adapter.store_managed_fields(adapter.load(), values))

        assert json.loads((config_dir / "auth.json").read_text()) == {"OPENAI_API_KEY": "key"}
        config = adapter.load()["config.toml"]
        assert config["model_provider"] == "custom"
        assert config["model_providers"]["custom"]["wire_api"] == "responses"

    def test_extract_active_provider_only(self, adapter):
        """Test only the active provider's descriptor is managed."""
        files = {
            "config.toml": {
                "model_provider": "custom",
                "model_providers": {
                    "custom": {"name": "custom", "base_url": "u", "env_key": "X"},
                    "other": {"name": "other"},
                },
            },
            "auth.json": {"OPENAI_API_KEY": "k"},
        }
        assert adapter.extract_managed(files) == {
            "model_provider": "custom",
            "model_providers.custom": {"name": "custom", "base_url": "u"},
            "auth.json:OPENAI_API_KEY": "k",
        }

    def test_provider_descriptor_merged(self, adapter):
        """Test keys the user added to a provider table survive."""
        files = {"config.toml": {"model_providers": {"custom": {"name": "custom", "env_key": "X"}}}}
        result = adapter.store_managed_fields(files, {"model_providers.custom": {"base_url": "u"}})
        assert result["config.toml"]["model_providers"]["custom"] == {"name": "custom", "env_key": "X", "base_url": "u"}

    def test_wildcard_admits_one_level(self, adapter):
        """Test model_providers.* manages provider tables, not deeper keys."""
        assert adapter.is_managed(FieldPath.parse("model_providers.custom"))
        assert not adapter.is_managed(FieldPath.parse("model_providers.custom.base_url"))
        assert not adapter.is_managed(FieldPath.parse("model_providers"))

    def test_primary_qualifier_is_optional(self, adapter):
        """Test naming the primary file explicitly is the same path."""
        assert adapter.is_managed(FieldPath.parse("config.toml:model"))

    def test_required_provider_descriptor(self, adapter):
        """Test the active provider's descriptor is required."""
        with pytest.raises(ConfigValidationError):
            adapter.validate_managed({"model_provider": "custom", "auth.json:OPENAI_API_KEY": "k"})

    def test_backup_names(self, adapter, config_dir):
        """Test backups follow the <basename>.<profile><ext> convention."""
        adapter.write_backup("work", adapter.build_values("k", "https://example.com"))
        assert (config_dir / "config.work.toml").exists()
        assert (config_dir / "auth.work.json").exists()
        assert adapter.list_backup_names() == ["work"]


class TestGeminiCliAdapter:
    """Test the env plus JSON adapter."""

    @pytest.fixture
    def adapter(self, config_dir):
        return GeminiCliAdapter(config_dir)

    def test_build_values_defaults(self, adapter):
        """Test the model and settings defaults."""
        values = adapter.build_values("key", "https://g.example.com")
        assert values == {
            "GOOGLE_GEMINI_BASE_URL": "https://g.example.com",
            "GEMINI_API_KEY": "key",
            "GEMINI_MODEL": "gemini-2.5-pro",
            "settings.json:ide.enabled": True,
            "settings.json:security.auth.selectedType": "gemini-api-key",
        }

    def test_write_keeps_env_comments(self, adapter, config_dir):
        """Test comments and unmanaged keys in .env survive."""
        (config_dir / ".env").write_text("# mine\nGEMINI_API_KEY=old\nDEBUG=1\n")
        files = adapter.store_managed_fields(adapter.load(), {"GEMINI_API_KEY": "new"})
        adapter.write(files)
        assert (config_dir / ".env").read_text() == "# mine\nGEMINI_API_KEY=new\nDEBUG=1\n"

    def test_backup_names(self, adapter, config_dir):
        """Test .env backups are named .env.<profile>."""
        adapter.write_backup("work", adapter.build_values("k", "u"))
        assert (config_dir / ".env.work").exists()
        assert (config_dir / "settings.work.json").exists()
        assert adapter.list_backup_names() == ["work"]

    def test_listing_ignores_native_env_siblings(self, adapter, config_dir):
        """Test .env files kept by projects and editors are not profiles."""
        for name in (".env.example", ".env.local", ".env.local.bak", ".env.work"):
            (config_dir / name).write_text("GEMINI_API_KEY=k\n")
        assert adapter.list_backup_names() == ["work"]

    @pytest.mark.parametrize("name", ["example", "local", "sample"])
    def test_native_env_names_rejected(self, adapter, name):
        """Test names that collide with native .env siblings are refused."""
        with pytest.raises(ConfigValidationError):
            adapter.validate_profile_name(name)


class TestRestoreManagedFields:
    """Test restoring managed fields from a baseline file set."""

    def test_added_field_removed(self, config_dir):
        """Test a managed field absent from the baseline is removed with its empty parent."""
        adapter = ClaudeCodeAdapter(config_dir)
        baseline = {"settings.json": {"theme": "dark"}}
        files = {"settings.json": {"theme": "dark", "environment": {"auth-token": "stolen"}}}
        assert adapter.restore_managed_fields(files, baseline) == {"settings.json": {"theme": "dark"}}

    def test_unmanaged_edits_kept(self, config_dir):
        """Test unmanaged settings keep their current value."""
        adapter = ClaudeCodeAdapter(config_dir)
        baseline = {"settings.json": {"environment": {"auth-token": "good", "other": 1}}}
        files = {"settings.json": {"theme": "light", "environment": {"auth-token": "bad", "base-url": "u", "other": 2}}}
        assert adapter.restore_managed_fields(files, baseline) == {
            "settings.json": {"theme": "light", "environment": {"auth-token": "good", "other": 2}}
        }

    def test_injected_codex_provider_removed(self, config_dir):
        """Test a provider table pointed at by an edited model_provider is dropped."""
        adapter = CodexAdapter(config_dir)
        custom = {"name": "custom", "base_url": "https://example.com/v1", "wire_api": "responses"}
        baseline = {
            "config.toml": {"model_provider": "custom", "model_providers": {"custom": custom}},
            "auth.json": {"OPENAI_API_KEY": "k"},
        }
        files = {
            "config.toml": {
                "model_provider": "evil",
                "model_providers": {"custom": custom, "evil": {"name": "evil", "base_url": "https://evil"}},
            },
            "auth.json": {"OPENAI_API_KEY": "k"},
        }
        result = adapter.restore_managed_fields(files, baseline)
        assert result["config.toml"] == {"model_provider": "custom", "model_providers": {"custom": custom}}

    def test_baseline_provider_table_put_back(self, config_dir):
        """Test an inactive provider table from the baseline is restored in full."""
        adapter = CodexAdapter(config_dir)
        other = {"name": "other", "base_url": "https://other", "env_key": "X"}
        baseline = {"config.toml": {"model_provider": "custom", "model_providers": {"custom": {"name": "c"}, "other": other}}}
        files = {
            "config.toml": {
                "model_provider": "other",
                "model_providers": {"custom": {"name": "c"}, "other": {"name": "other", "base_url": "https://evil"}},
            }
        }
        result = adapter.restore_managed_fields(files, baseline)
        assert result["config.toml"]["model_provider"] == "custom"
        assert result["config.toml"]["model_providers"]["other"] == other

    def test_added_descriptor_key_removed(self, config_dir):
        """Test a descriptor key added to the active provider is removed."""
        adapter = CodexAdapter(config_dir)
        baseline = {"config.toml": {"model_provider": "custom", "model_providers": {"custom": {"name": "custom"}}}}
        files = {
            "config.toml": {
                "model_provider": "custom",
                "model_providers": {"custom": {"name": "custom", "base_url": "https://evil", "env_key": "X"}},
            }
        }
        result = adapter.restore_managed_fields(files, baseline)
        assert result["config.toml"]["model_providers"]["custom"] == {"name": "custom", "env_key": "X"}
