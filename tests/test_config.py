"""Tests for configuration management."""

import pytest
import yaml

from review_poster.config import ConfigError


class TestConfigManager:
    """Test ConfigManager functionality."""

    def test_default_config_creation(self, isolated_config_manager, temp_home):
        config_path = isolated_config_manager.create_default_config(user_level=True)

        assert config_path == temp_home / ".review-poster" / "config.yaml"
        with open(config_path) as f:
            data = yaml.safe_load(f)
        assert data["version"] == "1.0"
        assert data["posting"]["batch_size"] == 5
        assert "azure_devops" in data

    def test_existing_config_is_kept(self, isolated_config_manager):
        config_path = isolated_config_manager.create_default_config(user_level=True)
        config_path.write_text("posting:\n  batch_size: 9\n")

        assert isolated_config_manager.create_default_config(user_level=True) == config_path
        assert "batch_size: 9" in config_path.read_text()

    def test_project_overrides_user(self, isolated_config_manager, mock_git_root):
        isolated_config_manager.set_config_value("posting.batch_size", 7)
        isolated_config_manager.set_config_value("posting.max_retries", 2)
        isolated_config_manager.set_config_value("posting.batch_size", 3, user_level=False)

        config = isolated_config_manager.reload_config()

        assert config.posting.batch_size == 3
        assert config.posting.max_retries == 2
        assert (mock_git_root / ".review-poster" / "config.yaml").exists()

    def test_env_overrides(self, isolated_config_manager, monkeypatch):
        isolated_config_manager.set_config_value("posting.batch_size", 7)
        monkeypatch.setenv("REVIEW_POSTER_POSTING__BATCH_SIZE", "11")
        monkeypatch.setenv("REVIEW_POSTER_WORKFLOW__SKIP_PREVIEW", "true")
        monkeypatch.setenv("REVIEW_POSTER_AZURE_DEVOPS__DEFAULT_PROJECT", "Web")

        config = isolated_config_manager.reload_config()

        assert config.posting.batch_size == 11
        assert config.workflow.skip_preview is True
        assert config.azure_devops.default_project == "Web"

    def test_env_var_expansion(self, isolated_config_manager, monkeypatch):
        monkeypatch.setenv("TEST_ADO_ORG", "https://dev.azure.com/fabrikam")
        monkeypatch.delenv("MISSING_PROJECT", raising=False)
        path = isolated_config_manager._user_config_path
        path.parent.mkdir(parents=True)
        path.write_text(
            "azure_devops:\n"
            "  organization_url: ${TEST_ADO_ORG}\n"
            "  default_project: ${MISSING_PROJECT:-Platform}\n"
        )

        config = isolated_config_manager.reload_config()

        assert config.azure_devops.organization_url == "https://dev.azure.com/fabrikam"
        assert config.azure_devops.default_project == "Platform"

    def test_invalid_yaml(self, isolated_config_manager):
        path = isolated_config_manager._user_config_path
        path.parent.mkdir(parents=True)
        path.write_text("posting: [unclosed\n")

        with pytest.raises(ConfigError):
            isolated_config_manager.reload_config()

    def test_invalid_values(self, isolated_config_manager):
        path = isolated_config_manager._user_config_path
        path.parent.mkdir(parents=True)
        path.write_text("posting:\n  batch_size: 0\n")

        with pytest.raises(ConfigError, match="Invalid configuration"):
            isolated_config_manager.reload_config()

    def test_get_config_value(self, isolated_config_manager):
        assert isolated_config_manager.get_config_value("posting.max_retries") == 3
        assert isolated_config_manager.get_config_value("azure_devops.command") == "az"

    def test_get_unknown_key(self, isolated_config_manager):
        with pytest.raises(ConfigError, match="Configuration key not found"):
            isolated_config_manager.get_config_value("posting.nope")

    def test_list_config_files(self, isolated_config_manager):
        assert isolated_config_manager.list_config_files() == {"user": None, "project": None}

        isolated_config_manager.create_default_config(user_level=True)

        assert isolated_config_manager.list_config_files()["user"] is not None


class TestValidate:
    """Test configuration validation."""

    def test_missing_organization(self, isolated_config_manager):
        result = isolated_config_manager.validate()

        assert not result.is_valid
        assert result.error == "Organization URL is not configured"

    def test_non_http_organization(self, isolated_config_manager):
        isolated_config_manager.set_config_value("azure_devops.organization_url", "contoso")

        result = isolated_config_manager.validate()

        assert not result.is_valid
        assert "must be an http(s) URL" in result.error

    def test_missing_project(self, isolated_config_manager):
        isolated_config_manager.set_config_value(
            "azure_devops.organization_url", "https://dev.azure.com/contoso"
        )

        result = isolated_config_manager.validate()

        assert result.error == "Default project is not configured"

    def test_valid(self, configured):
        assert configured.validate().is_valid

    def test_broken_file(self, isolated_config_manager):
        path = isolated_config_manager._user_config_path
        path.parent.mkdir(parents=True)
        path.write_text("posting:\n  max_retries: 50\n")
        isolated_config_manager._config = None

        result = isolated_config_manager.validate()

        assert not result.is_valid
        assert "Invalid configuration" in result.error
