"""Unit tests for shared CLI plumbing."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import click
import pytest
from click.testing import CliRunner

from lambda_deploy.cli.context import (
    build_run_context,
    handle_deployment_errors,
    load_runtime,
)
from lambda_deploy.cli.main import cli
from lambda_deploy.lib.errors import ConfigError, DeploymentError, FileNotFoundError


def _command(exc: Exception) -> click.Command:
    @click.command()
    def failing() -> None:
        with handle_deployment_errors():
            raise exc

    return failing


class TestHandleDeploymentErrors:
    """Tests for error-to-exit-code mapping."""

    @pytest.mark.parametrize(
        ("exc", "code"),
        [
            (ConfigError("aws.region", "bad region"), 2),
            (FileNotFoundError("config.yml", "missing"), 2),
            (DeploymentError("UpdatingCode", "denied"), 3),
            (ValueError("unexpected"), 3),
        ],
    )
    def test_exit_codes(self, exc: Exception, code: int) -> None:
        result = CliRunner().invoke(_command(exc))

        assert result.exit_code == code

    def test_success_passes_through(self) -> None:
        @click.command()
        def ok() -> None:
            with handle_deployment_errors():
                click.echo("done")

        result = CliRunner().invoke(ok)

        assert result.exit_code == 0
        assert result.output == "done\n"


class TestBuildRunContext:
    """Tests for build_run_context."""

    def test_ci_variables_win(self, tmp_path: Path) -> None:
        env = {
            "GITHUB_SHA": "0123456789abcdef",
            "GITHUB_REF_NAME": "release/1.2",
            "GITHUB_ACTOR": "octocat",
            "GITHUB_REPOSITORY": "acme/orders",
            "GITHUB_RUN_ID": "42",
        }

        with patch("lambda_deploy.cli.context.git_revision") as git_revision:
            context = build_run_context(tmp_path, env)

        git_revision.assert_not_called()
        assert context.revision == "0123456"
        assert context.branch == "release/1.2"
        assert context.actor == "octocat"
        assert context.repository == "acme/orders"
        assert context.run_id == "42"

    def test_falls_back_to_git_and_local_user(self, tmp_path: Path) -> None:
        with (
            patch("lambda_deploy.cli.context.git_revision", return_value="fedcba9"),
            patch("lambda_deploy.cli.context.git_branch", return_value="feature/x"),
            patch("lambda_deploy.cli.context.getpass.getuser", return_value="dev"),
        ):
            context = build_run_context(tmp_path, {})

        assert context.revision == "fedcba9"
        assert context.branch == "feature/x"
        assert context.actor == "dev"
        assert context.repository is None

    def test_unknown_when_nothing_available(self, tmp_path: Path) -> None:
        with (
            patch("lambda_deploy.cli.context.git_revision", return_value=None),
            patch("lambda_deploy.cli.context.git_branch", return_value=None),
            patch("lambda_deploy.cli.context.getpass.getuser", side_effect=KeyError),
        ):
            context = build_run_context(tmp_path, {})

        assert (context.actor, context.revision, context.branch) == (
            "unknown",
            "unknown",
            "unknown",
        )


class TestLoadRuntime:
    """Tests for load_runtime."""

    def test_loads_env_file_and_config(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("LAMBDA_DEPLOY_TEST_FN", raising=False)
        (tmp_path / ".env").write_text("LAMBDA_DEPLOY_TEST_FN=orders-api\n")
        (tmp_path / "lambda-deploy-config.yml").write_text(
            """
project:
  name: orders
  runtime: node
aws:
  region: eu-west-1
  s3_bucket: orders-artifacts
  function_name: ${LAMBDA_DEPLOY_TEST_FN}
"""
        )

        try:
            with patch(
                "lambda_deploy.cli.context.build_run_context"
            ) as build_context:
                config, context, root = load_runtime(None, tmp_path)
        finally:
            monkeypatch.delenv("LAMBDA_DEPLOY_TEST_FN", raising=False)

        assert config.aws.function_name == "orders-api"
        assert root == tmp_path.resolve()
        assert context is build_context.return_value


class TestMainGroup:
    """Tests for the top-level command group."""

    def test_help_without_command(self) -> None:
        result = CliRunner().invoke(cli, [])

        assert result.exit_code == 0
        for command in ("deploy", "rollback", "history", "status"):
            assert command in result.output

    def test_version(self) -> None:
        result = CliRunner().invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output
