"""
Unit tests for Config.

Tests environment parsing with fallback to defaults, and the YAML overlay.
"""

import pytest

from eventchain.core.config import Config, ConfigValidationError, Environment


@pytest.mark.unit
class TestEnvironmentLoading:
    """Test Config.load() from EVENTCHAIN_* variables."""

    def test_reads_prefixed_variables(self, monkeypatch, restore_config):
        monkeypatch.setenv("EVENTCHAIN_MAX_LISTENERS", "25")
        monkeypatch.setenv("EVENTCHAIN_METRICS_ENABLED", "off")
        monkeypatch.setenv("EVENTCHAIN_LOG_LEVEL", "warning")

        Config.load()

        assert Config.MAX_LISTENERS == 25
        assert Config.METRICS_ENABLED is False
        assert Config.LOG_LEVEL == "WARNING"

    def test_invalid_integer_falls_back(self, monkeypatch, restore_config):
        monkeypatch.setenv("EVENTCHAIN_MAX_LISTENERS", "lots")

        Config.load()

        assert Config.MAX_LISTENERS == 10
        assert "MAX_LISTENERS" in Config.get_metrics().validation_errors

    def test_negative_capacity_falls_back(self, monkeypatch, restore_config):
        monkeypatch.setenv("EVENTCHAIN_MAX_LISTENERS", "-3")

        Config.load()

        assert Config.MAX_LISTENERS == 10

    def test_invalid_boolean_falls_back(self, monkeypatch, restore_config):
        monkeypatch.setenv("EVENTCHAIN_METRICS_ENABLED", "maybe")

        Config.load()

        assert Config.METRICS_ENABLED is True

    def test_invalid_log_level_falls_back(self, monkeypatch, restore_config):
        monkeypatch.setenv("EVENTCHAIN_LOG_LEVEL", "LOUD")

        Config.load()

        assert Config.LOG_LEVEL == "INFO"

    def test_environment_parsing(self):
        assert Environment.from_string("Production") is Environment.PRODUCTION
        assert Environment.from_string("nonsense") is Environment.DEVELOPMENT

    def test_testing_environment_from_conftest(self):
        assert Config.is_testing()

    def test_summary(self, restore_config):
        Config.MAX_LISTENERS = 4

        summary = Config.get_config_summary()

        assert summary["max_listeners"] == 4
        assert summary["environment"] == "testing"


@pytest.mark.unit
class TestYamlOverlay:
    """Test Config.load_yaml()."""

    def test_applies_settings(self, tmp_path, restore_config):
        path = tmp_path / "eventchain.yaml"
        path.write_text("max_listeners: 0\nmetrics_enabled: false\nlog_level: debug\n")

        Config.load_yaml(path)

        assert Config.MAX_LISTENERS == 0
        assert Config.METRICS_ENABLED is False
        assert Config.LOG_LEVEL == "DEBUG"

    def test_empty_file_is_noop(self, tmp_path, restore_config):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        Config.load_yaml(path)

        assert Config.MAX_LISTENERS == 10

    def test_unknown_key_rejected(self, tmp_path, restore_config):
        path = tmp_path / "bad.yaml"
        path.write_text("max_listners: 5\n")

        with pytest.raises(ConfigValidationError, match="unknown setting"):
            Config.load_yaml(path)

    @pytest.mark.parametrize(
        "content",
        [
            "max_listeners: '5'\n",
            "max_listeners: true\n",
            "metrics_enabled: 1\n",
        ],
    )
    def test_wrong_type_rejected(self, tmp_path, restore_config, content):
        path = tmp_path / "bad.yaml"
        path.write_text(content)

        with pytest.raises(ConfigValidationError):
            Config.load_yaml(path)

    def test_negative_capacity_rejected(self, tmp_path, restore_config):
        path = tmp_path / "bad.yaml"
        path.write_text("max_listeners: -1\n")

        with pytest.raises(ConfigValidationError):
            Config.load_yaml(path)

    def test_non_mapping_rejected(self, tmp_path, restore_config):
        path = tmp_path / "list.yaml"
        path.write_text("- max_listeners\n")

        with pytest.raises(ConfigValidationError, match="mapping"):
            Config.load_yaml(path)

    def test_nothing_applied_when_validation_fails(self, tmp_path, restore_config):
        path = tmp_path / "partial.yaml"
        path.write_text("max_listeners: 3\nbogus: 1\n")

        with pytest.raises(ConfigValidationError):
            Config.load_yaml(path)

        assert Config.MAX_LISTENERS == 10
