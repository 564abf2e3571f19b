"""Tests for configuration discovery, parsing and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from lambda_deploy.config.loader import ConfigLoader
from lambda_deploy.lib.errors import ConfigError, FileNotFoundError
from lambda_deploy.models.deployment import RollbackStrategy, RuntimeType

VALID_CONFIG = """
project:
  name: orders
  runtime: python
aws:
  region: us-east-1
  s3_bucket: orders-artifacts
  function_name: orders-api
"""


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


class TestFindConfigFile:
    """Tests for configuration file discovery."""

    def test_github_config_dir_is_preferred(self, tmp_path: Path) -> None:
        """Test that .github/config wins over the project root."""
        preferred = _write(
            tmp_path / ".github" / "config" / "lambda-deploy-config.yml", VALID_CONFIG
        )
        _write(tmp_path / "lambda-deploy-config.yml", VALID_CONFIG)

        assert ConfigLoader().find_config_file(tmp_path) == preferred

    def test_yaml_extension_is_found(self, tmp_path: Path) -> None:
        """Test that the .yaml extension is accepted."""
        path = _write(tmp_path / "config" / "lambda-deploy-config.yaml", VALID_CONFIG)

        assert ConfigLoader().find_config_file(tmp_path) == path

    def test_missing_file_lists_searched_paths(self, tmp_path: Path) -> None:
        """Test that the error names every searched location."""
        with pytest.raises(FileNotFoundError) as exc_info:
            ConfigLoader().find_config_file(tmp_path)

        assert ".github/config/lambda-deploy-config.yml" in exc_info.value.message
        assert "lambda-deploy-config.yaml" in exc_info.value.message


class TestParseYaml:
    """Tests for ConfigLoader.parse_yaml."""

    def test_empty_file_is_empty_mapping(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "empty.yml", "")

        assert ConfigLoader().parse_yaml(path) == {}

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "bad.yml", "project: [unclosed\n")

        with pytest.raises(ConfigError) as exc_info:
            ConfigLoader().parse_yaml(path)

        assert exc_info.value.field == "yaml_parse"

    def test_top_level_list_is_rejected(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "list.yml", "- one\n- two\n")

        with pytest.raises(ConfigError, match="mapping"):
            ConfigLoader().parse_yaml(path)

    def test_unreadable_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            ConfigLoader().parse_yaml(tmp_path / "missing.yml")

    def test_env_vars_are_substituted(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("ARTIFACT_BUCKET", "team-artifacts")
        path = _write(
            tmp_path / "env.yml",
            "bucket: ${ARTIFACT_BUCKET}\nregion: ${AWS_REGION_UNSET:-eu-west-1}\n",
        )

        data = ConfigLoader().parse_yaml(path)

        assert data == {"bucket": "team-artifacts", "region": "eu-west-1"}


class TestLoad:
    """Tests for ConfigLoader.load."""

    def test_load_discovered_config(self, tmp_path: Path) -> None:
        _write(tmp_path / "lambda-deploy-config.yml", VALID_CONFIG)

        config = ConfigLoader().load(project_root=tmp_path)

        assert config.project.runtime == RuntimeType.PYTHON
        assert config.aws.function_name == "orders-api"
        assert config.deployment.health_check.enabled is True
        assert config.deployment.auto_rollback.enabled is False

    def test_load_explicit_path(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "custom.yml",
            VALID_CONFIG
            + """
deployment:
  auto_rollback:
    enabled: true
    strategy: previous_stable
""",
        )

        config = ConfigLoader().load(str(path))

        assert config.deployment.auto_rollback.strategy == RollbackStrategy.PREVIOUS_STABLE

    def test_invalid_region_reports_field(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "lambda-deploy-config.yml",
            VALID_CONFIG.replace("us-east-1", "moon-base"),
        )

        with pytest.raises(ConfigError) as exc_info:
            ConfigLoader().load(path)

        assert exc_info.value.field == "aws.region"
        assert "Invalid AWS region" in exc_info.value.message

    def test_unknown_keys_are_rejected(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "extra.yml", VALID_CONFIG + "surprise: true\n")

        with pytest.raises(ConfigError) as exc_info:
            ConfigLoader().load(path)

        assert exc_info.value.field == "surprise"

    def test_missing_env_var_is_config_error(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "env.yml",
            VALID_CONFIG.replace("orders-api", "${LAMBDA_DEPLOY_TEST_UNSET_FN}"),
        )

        with pytest.raises(ConfigError) as exc_info:
            ConfigLoader().load(path)

        assert "LAMBDA_DEPLOY_TEST_UNSET_FN" in exc_info.value.message
