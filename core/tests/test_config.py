"""Tests for configuration loading from ~/.flowguard/configuration.json."""

import json
from pathlib import Path

import pytest

from flowguard import config as config_module
from flowguard.config import (
    DEFAULT_REPLAY_INTERVAL_S,
    EngineConfig,
    get_config_path,
    get_default_retry_policy,
    get_flowguard_config,
    get_registry_path,
    get_replay_interval,
    get_storage_path,
)


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch):
    """Point FLOWGUARD_CONFIG at a temp file and return a writer for it."""
    path = tmp_path / "configuration.json"
    monkeypatch.setenv("FLOWGUARD_CONFIG", str(path))

    def write(data):
        path.write_text(data if isinstance(data, str) else json.dumps(data))
        return path

    return write


class TestConfigFile:
    def test_env_override(self, config_file, tmp_path: Path):
        assert get_config_path() == tmp_path / "configuration.json"

    def test_default_path(self, monkeypatch):
        monkeypatch.delenv("FLOWGUARD_CONFIG", raising=False)
        assert get_config_path() == config_module.FLOWGUARD_CONFIG_FILE

    def test_missing_file_means_defaults(self, config_file):
        assert get_flowguard_config() == {}
        assert get_default_retry_policy().max_attempts == 3
        assert get_replay_interval() == DEFAULT_REPLAY_INTERVAL_S
        assert get_registry_path() is None

    def test_unreadable_file_means_defaults(self, config_file):
        config_file("{broken")
        assert get_flowguard_config() == {}

    def test_non_object_file_means_defaults(self, config_file):
        config_file("[1, 2, 3]")
        assert get_flowguard_config() == {}


class TestDerivedSettings:
    def test_sections_applied(self, config_file, tmp_path: Path):
        config_file(
            {
                "retry": {"maxAttempts": 5, "initial_delay_ms": 200, "jitterEnabled": False},
                "storage": {"path": str(tmp_path / "store")},
                "dlq": {"replay_interval_s": 2.5},
                "registry": {"path": str(tmp_path / "registry.json")},
            }
        )

        config = EngineConfig()

        assert config.default_policy.max_attempts == 5
        assert config.default_policy.initial_delay_ms == 200
        assert config.default_policy.jitter_enabled is False
        assert config.storage_path == tmp_path / "store"
        assert config.replay_interval_s == 2.5
        assert config.registry_path == tmp_path / "registry.json"
        assert config.prune_after_s == 7 * 24 * 60 * 60

    def test_invalid_retry_section_falls_back(self, config_file):
        config_file({"retry": {"max_attempts": 0}})
        assert get_default_retry_policy().max_attempts == 3

    def test_invalid_replay_interval_falls_back(self, config_file):
        config_file({"dlq": {"replay_interval_s": -1}})
        assert get_replay_interval() == DEFAULT_REPLAY_INTERVAL_S

    def test_non_dict_section_ignored(self, config_file):
        config_file({"storage": "nowhere"})
        assert get_storage_path() == config_module.FLOWGUARD_HOME / "executions"

    def test_explicit_values_skip_file(self, config_file, tmp_path: Path):
        config_file({"dlq": {"replay_interval_s": 9}})

        config = EngineConfig(replay_interval_s=0.0)

        assert config.replay_interval_s == 0.0
