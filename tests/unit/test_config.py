"""
Tests for configuration loading.

Covers:
  - Defaults without a config file
  - YAML values, env var shortcuts and nested env overrides
  - pass_threshold range validation
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from truthforge.config import TruthForgeConfig, load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in (
        "TRUTHFORGE_CONFIG_PATH",
        "TRUTHFORGE_ROOT",
        "TRUTHFORGE_LOG_LEVEL",
        "TRUTHFORGE_API_ENDPOINTS",
        "TRUTHFORGE_GATE__PASS_THRESHOLD",
    ):
        monkeypatch.delenv(var, raising=False)


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.yaml")
        assert config.gate.pass_threshold == 60
        assert config.gate.test_suite_points == 20
        assert config.gate.claim_check_points == 15
        assert config.paths.token_file == ".truthforge/validation-passed"
        assert config.validator_name == "TruthForge Core"
        assert 3000 in config.probes.ui_ports

    def test_yaml_values(self, tmp_path):
        path = tmp_path / "truthforge.yaml"
        path.write_text(
            "gate:\n"
            "  pass_threshold: 75\n"
            "probes:\n"
            "  api_endpoints:\n"
            "    - http://localhost:9999/health\n"
            "backup:\n"
            "  enabled: false\n"
        )
        config = load_config(path)
        assert config.gate.pass_threshold == 75
        assert config.gate.test_suite_points == 20
        assert config.probes.api_endpoints == ["http://localhost:9999/health"]
        assert config.backup.enabled is False

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "tf.yaml"
        path.write_text("validator_name: CI Gate\n")
        monkeypatch.setenv("TRUTHFORGE_CONFIG_PATH", str(path))
        assert load_config().validator_name == "CI Gate"

    def test_env_shortcuts_override_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "truthforge.yaml"
        path.write_text("paths:\n  root: /srv/app\n  report_dir: out\n")
        monkeypatch.setenv("TRUTHFORGE_ROOT", str(tmp_path))
        monkeypatch.setenv("TRUTHFORGE_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("TRUTHFORGE_API_ENDPOINTS", "http://a/health, http://b/health,")

        config = load_config(path)
        assert config.paths.root == str(tmp_path)
        assert config.paths.report_dir == "out"
        assert config.logging.level == "DEBUG"
        assert config.probes.api_endpoints == ["http://a/health", "http://b/health"]

    def test_nested_env_override(self, monkeypatch):
        monkeypatch.setenv("TRUTHFORGE_GATE__PASS_THRESHOLD", "80")
        assert TruthForgeConfig().gate.pass_threshold == 80

    @pytest.mark.parametrize("threshold", [-1, 101])
    def test_threshold_out_of_range(self, threshold):
        with pytest.raises(ValidationError):
            TruthForgeConfig(gate={"pass_threshold": threshold})

    def test_paths_resolve(self, tmp_path):
        config = TruthForgeConfig(paths={"root": str(tmp_path)})
        assert config.paths.resolve("validation") == tmp_path / "validation"
        assert str(config.paths.resolve("/abs/file")) == "/abs/file"
