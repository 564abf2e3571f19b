"""Unit tests for the lambda-deploy deploy CLI command.

Tests cover:
- Option parsing and orchestrator invocation
- Text, quiet and JSON output
- Exit codes for success, failure, configuration and deployment errors
"""

from __future__ import annotations

import json
from collections.abc import Generator
from pathlib import Path
from unittest.mock import ANY, MagicMock, patch

import pytest
from click.testing import CliRunner

from lambda_deploy.cli.commands.deploy import deploy
from lambda_deploy.lib.errors import ConfigError, VersionConflictError
from lambda_deploy.models.deployment import LambdaDeployConfig
from lambda_deploy.models.deployment_state import (
    ArtifactLocation,
    DeploymentOutcome,
    DeploymentRecord,
    DeploymentStage,
    OutcomeStatus,
    RunContext,
    StageFailure,
)

CONTEXT = RunContext(actor="octocat", revision="abc1234", branch="main")


def _outcome(status: OutcomeStatus = OutcomeStatus.SUCCESS) -> DeploymentOutcome:
    record = DeploymentRecord(
        version="1.0.0",
        environment="pre",
        outcome=status,
        remote_version_id="4",
        artifact_location=ArtifactLocation(
            bucket="orders-artifacts", key="orders-api/pre/1.0.0.zip"
        ),
    )
    if status == OutcomeStatus.FAILURE:
        record.failure = StageFailure(
            stage=DeploymentStage.UPDATING_CODE,
            message="InvalidZip",
            error_type="RemoteServiceError",
            next_steps=["Rebuild the package"],
        )
    return DeploymentOutcome(
        function_name="orders-api", record=record, version_source="explicit"
    )


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def mock_runtime(
    base_config: LambdaDeployConfig, tmp_path: Path
) -> Generator[MagicMock]:
    """Patch configuration loading."""
    with patch(
        "lambda_deploy.cli.commands.deploy.load_runtime",
        return_value=(base_config, CONTEXT, tmp_path),
    ) as mock:
        yield mock


@pytest.fixture
def mock_orchestrator() -> Generator[MagicMock]:
    """Patch the orchestrator class; the instance returns a successful outcome."""
    with patch("lambda_deploy.deploy.orchestrator.DeploymentOrchestrator") as cls:
        cls.return_value.deploy.return_value = _outcome()
        yield cls


class TestDeployCommand:
    """Tests for 'lambda-deploy deploy'."""

    def test_successful_deploy(
        self,
        runner: CliRunner,
        mock_runtime: MagicMock,
        mock_orchestrator: MagicMock,
        artifact_file: Path,
        tmp_path: Path,
    ) -> None:
        """Test a successful deploy exits 0 and prints a summary."""
        result = runner.invoke(
            deploy, ["staging", str(artifact_file), "--version", "1.0.0"]
        )

        assert result.exit_code == 0, result.output
        assert "Deploy: success" in result.output
        assert "s3://orders-artifacts/orders-api/pre/1.0.0.zip" in result.output
        mock_orchestrator.return_value.deploy.assert_called_once_with(
            "pre",
            ANY,
            explicit_version="1.0.0",
            force=False,
            project_root=tmp_path,
        )

    def test_force_flag_is_passed(
        self,
        runner: CliRunner,
        mock_runtime: MagicMock,
        mock_orchestrator: MagicMock,
        artifact_file: Path,
    ) -> None:
        """Test that --force reaches the orchestrator and is announced."""
        result = runner.invoke(deploy, ["prod", str(artifact_file), "--force"])

        assert result.exit_code == 0, result.output
        assert "conflict checks bypassed" in result.output
        kwargs = mock_orchestrator.return_value.deploy.call_args.kwargs
        assert kwargs["force"] is True

    def test_auto_environment_on_main_is_dev(
        self,
        runner: CliRunner,
        mock_runtime: MagicMock,
        mock_orchestrator: MagicMock,
        artifact_file: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that 'auto' resolves from the branch."""
        monkeypatch.delenv("GITHUB_EVENT_NAME", raising=False)

        result = runner.invoke(deploy, ["auto", str(artifact_file)])

        assert result.exit_code == 0, result.output
        assert mock_orchestrator.return_value.deploy.call_args.args[0] == "dev"

    def test_json_output(
        self,
        runner: CliRunner,
        mock_runtime: MagicMock,
        mock_orchestrator: MagicMock,
        artifact_file: Path,
    ) -> None:
        """Test machine-readable output."""
        result = runner.invoke(
            deploy, ["pre", str(artifact_file), "--output", "json", "-q"]
        )

        assert result.exit_code == 0, result.output
        summary = json.loads(result.stdout)
        assert summary["outcome"] == "success"
        assert summary["remote_version_id"] == "4"

    def test_quiet_prints_status_only(
        self,
        runner: CliRunner,
        mock_runtime: MagicMock,
        mock_orchestrator: MagicMock,
        artifact_file: Path,
    ) -> None:
        """Test that --quiet reduces output to the outcome."""
        result = runner.invoke(deploy, ["pre", str(artifact_file), "-q"])

        assert result.exit_code == 0
        assert result.stdout.strip() == "success"

    def test_failed_outcome_exits_3(
        self,
        runner: CliRunner,
        mock_runtime: MagicMock,
        mock_orchestrator: MagicMock,
        artifact_file: Path,
    ) -> None:
        """Test that a failed run exits 3 and shows the failed stage."""
        mock_orchestrator.return_value.deploy.return_value = _outcome(
            OutcomeStatus.FAILURE
        )

        result = runner.invoke(deploy, ["pre", str(artifact_file)])

        assert result.exit_code == 3
        assert "Failed at UpdatingCode: InvalidZip" in result.output
        assert "Rebuild the package" in result.output

    def test_config_error_exits_2(
        self,
        runner: CliRunner,
        mock_orchestrator: MagicMock,
        artifact_file: Path,
    ) -> None:
        """Test that configuration errors exit 2."""
        with patch(
            "lambda_deploy.cli.commands.deploy.load_runtime",
            side_effect=ConfigError("aws.region", "Invalid AWS region: moon"),
        ):
            result = runner.invoke(deploy, ["pre", str(artifact_file)])

        assert result.exit_code == 2
        assert "Configuration error" in result.output
        assert "Invalid AWS region: moon" in result.output
        mock_orchestrator.assert_not_called()

    def test_missing_artifact_exits_2(
        self,
        runner: CliRunner,
        mock_runtime: MagicMock,
        mock_orchestrator: MagicMock,
        tmp_path: Path,
    ) -> None:
        """Test that a missing package is reported as a file error."""
        result = runner.invoke(deploy, ["pre", str(tmp_path / "missing.zip")])

        assert result.exit_code == 2
        assert "Build the deployment package" in result.output

    def test_version_conflict_exits_3_with_next_steps(
        self,
        runner: CliRunner,
        mock_runtime: MagicMock,
        mock_orchestrator: MagicMock,
        artifact_file: Path,
    ) -> None:
        """Test that a blocked version exits 3 and lists next steps."""
        mock_orchestrator.return_value.deploy.side_effect = VersionConflictError(
            "1.0.0", "prod", ["1.0.1"], ["Bump the version (e.g. 1.0.1)"]
        )

        result = runner.invoke(deploy, ["prod", str(artifact_file)])

        assert result.exit_code == 3
        assert "ConflictCheck failed" in result.output
        assert "Next steps:" in result.output
        assert "Bump the version (e.g. 1.0.1)" in result.output

    def test_unexpected_error_exits_3(
        self,
        runner: CliRunner,
        mock_runtime: MagicMock,
        mock_orchestrator: MagicMock,
        artifact_file: Path,
    ) -> None:
        """Test that unexpected errors are caught and exit 3."""
        mock_orchestrator.return_value.deploy.side_effect = RuntimeError("kaboom")

        result = runner.invoke(deploy, ["pre", str(artifact_file)])

        assert result.exit_code == 3
        assert "kaboom" in result.output
