"""
Unit tests for ConfigManager YAML loading and lookups.
"""

import pytest

from src.core.config.manager import BUILTIN_DEFAULTS, ConfigManager
from src.core.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_config():
    ConfigManager.clear_cache()
    yield
    ConfigManager.clear_cache()


@pytest.mark.unit
class TestLoadDefaults:

    def test_builtins_without_directory(self, tmp_path):
        ConfigManager.load_defaults(tmp_path / "missing")

        assert ConfigManager.get("community.invitations.expiry_days") == 7
        assert ConfigManager.get("community.parties.default_max_members") == 6

    def test_yaml_is_deep_merged_over_builtins(self, tmp_path):
        (tmp_path / "community.yaml").write_text(
            "community:\n  invitations:\n    expiry_days: 3\n", encoding="utf-8"
        )

        ConfigManager.load_defaults(tmp_path)

        assert ConfigManager.get("community.invitations.expiry_days") == 3
        # Sibling keys survive the merge
        assert ConfigManager.get("community.join_requests.expiry_days") == 14

    def test_nested_directories_are_scanned(self, tmp_path):
        nested = tmp_path / "overrides"
        nested.mkdir()
        (nested / "guilds.yml").write_text("community:\n  guilds:\n    default_max_members: 80\n", encoding="utf-8")

        ConfigManager.load_defaults(tmp_path)

        assert ConfigManager.get("community.guilds.default_max_members") == 80

    def test_invalid_yaml_raises(self, tmp_path):
        (tmp_path / "broken.yaml").write_text("community: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            ConfigManager.load_defaults(tmp_path)

    def test_non_mapping_root_raises(self, tmp_path):
        (tmp_path / "list.yaml").write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            ConfigManager.load_defaults(tmp_path)

    def test_builtins_are_not_mutated(self, tmp_path):
        (tmp_path / "community.yaml").write_text(
            "community:\n  stash:\n    max_tags: 3\n", encoding="utf-8"
        )

        ConfigManager.load_defaults(tmp_path)

        assert BUILTIN_DEFAULTS["community"]["stash"]["max_tags"] == 10


@pytest.mark.unit
class TestGet:

    def test_missing_key_returns_default(self, tmp_path):
        ConfigManager.load_defaults(tmp_path)

        assert ConfigManager.get("community.unknown.key", "fallback") == "fallback"

    def test_repository_yaml_matches_builtins(self, community_config):
        assert community_config.get("community.invitations.expiry_days") == 7
        assert community_config.get("community.join_requests.expiry_days") == 14
        assert community_config.get("core.event.listener_timeout.high_seconds") == 5
