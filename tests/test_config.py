"""
Tests for the configuration loader — fabprov.yml + environment overrides.
"""

import textwrap
from pathlib import Path

import pytest

from fabprov.core.config.loader import (
    ConfigError,
    find_config_file,
    load_settings,
)


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "fabprov.yml"
    path.write_text(textwrap.dedent(content))
    return path


class TestFindConfigFile:
    def test_found_in_start_dir(self, tmp_path: Path):
        path = _write(tmp_path, "org_name: Org2\n")
        assert find_config_file(tmp_path) == path.resolve()

    def test_found_walking_up(self, tmp_path: Path):
        path = _write(tmp_path, "org_name: Org2\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == path.resolve()

    def test_not_found(self, tmp_path: Path):
        assert find_config_file(tmp_path) is None


class TestLoadSettings:
    def test_defaults_without_file(self, tmp_path: Path):
        settings = load_settings(env={}, start_dir=tmp_path / "nowhere")
        assert settings.org_name == "Org1"
        assert settings.samples_dir == Path.home() / "fabric-samples"
        assert settings.setup_dir == Path.home() / "peer-org-setup"

    def test_values_from_file(self, tmp_path: Path):
        path = _write(tmp_path, """\
            org_name: Org2
            org_domain: org2.example.com
            num_peers: 2
            ca_port: 8054
            ca_operations_port: 18054
            readiness:
              retries: 4
        """)
        settings = load_settings(path, env={})
        assert settings.org_name == "Org2"
        assert settings.ca_name == "ca-org2"
        assert settings.num_peers == 2
        assert settings.ca_port == 8054
        assert settings.readiness.retries == 4
        assert settings.readiness.interval == 6.0

    def test_relative_dirs_resolve_against_file(self, tmp_path: Path):
        path = _write(tmp_path, """\
            samples_dir: samples
            setup_dir: ./setup
        """)
        settings = load_settings(path, env={})
        assert settings.samples_dir == tmp_path.resolve() / "samples"
        assert settings.setup_dir == tmp_path.resolve() / "setup"

    def test_env_overrides_file(self, tmp_path: Path):
        path = _write(tmp_path, "samples_dir: /from/file\n")
        settings = load_settings(
            path,
            env={"FABRIC_SAMPLES_DIR": "/from/env", "PEER_ORG_SETUP_DIR": "/setup/env"},
        )
        assert settings.samples_dir == Path("/from/env")
        assert settings.setup_dir == Path("/setup/env")

    def test_empty_env_value_ignored(self, tmp_path: Path):
        path = _write(tmp_path, "samples_dir: /from/file\n")
        settings = load_settings(path, env={"FABRIC_SAMPLES_DIR": ""})
        assert settings.samples_dir == Path("/from/file")

    def test_empty_file_is_defaults(self, tmp_path: Path):
        path = _write(tmp_path, "")
        assert load_settings(path, env={}).org_name == "Org1"


class TestConfigErrors:
    def test_missing_explicit_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "missing.yml", env={})

    def test_invalid_yaml(self, tmp_path: Path):
        path = _write(tmp_path, "org_name: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(path, env={})

    def test_not_a_mapping(self, tmp_path: Path):
        path = _write(tmp_path, "- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(path, env={})

    def test_validation_failure(self, tmp_path: Path):
        path = _write(tmp_path, "num_peers: 0\n")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_settings(path, env={})

    def test_port_collision(self, tmp_path: Path):
        path = _write(tmp_path, "ca_port: 7051\n")
        with pytest.raises(ConfigError):
            load_settings(path, env={})

    def test_config_error_kind(self):
        assert ConfigError("x").to_dict() == {"kind": "config", "error": "x"}
