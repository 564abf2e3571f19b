"""CLI command for deploying a packaged function.

Implements 'lambda-deploy deploy ENVIRONMENT ARTIFACT'.
"""

from __future__ import annotations

import json
import os
import sys

import click

from lambda_deploy.cli.context import handle_deployment_errors, load_runtime
from lambda_deploy.deploy.builder import BuildArtifact, format_size
from lambda_deploy.deploy.environment import detect_environment
from lambda_deploy.lib.logging_config import get_logger, setup_logging
from lambda_deploy.models.deployment_state import DeploymentOutcome, OutcomeStatus

logger = get_logger(__name__)

_STATUS_COLORS = {
    OutcomeStatus.SUCCESS: "green",
    OutcomeStatus.SUCCESS_WITH_WARNING: "yellow",
    OutcomeStatus.FAILURE: "red",
}


@click.command()
@click.argument("environment", type=str)
@click.argument("artifact", type=click.Path(dir_okay=False))
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Configuration file (default: discovered under the project root)",
)
@click.option(
    "--version",
    "explicit_version",
    type=str,
    default=None,
    help="Version to deploy (overrides project files and git)",
)
@click.option(
    "--force",
    is_flag=True,
    help="Bypass version conflict checks (emergency use only)",
)
@click.option(
    "--project-root",
    type=click.Path(exists=True, file_okay=False),
    default=".",
    help="Project directory probed for configuration and version files",
)
@click.option(
    "--output",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format for the deployment summary",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose debug logging",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress progress output",
)
def deploy(
    environment: str,
    artifact: str,
    config_path: str | None,
    explicit_version: str | None,
    force: bool,
    project_root: str,
    output: str,
    verbose: bool,
    quiet: bool,
) -> None:
    """Deploy a packaged artifact to an environment.

    ENVIRONMENT is dev, pre, prod (or an alias such as staging), or 'auto'
    to pick from the current branch. ARTIFACT is the packaged .zip file.

    Example:

        lambda-deploy deploy dev dist/function.zip

        lambda-deploy deploy prod dist/function.zip --version 1.4.0
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        from lambda_deploy.deploy.orchestrator import DeploymentOrchestrator

        config, context, root = load_runtime(config_path, project_root)
        env_name = detect_environment(
            environment, context.branch, os.environ.get("GITHUB_EVENT_NAME")
        )
        package = BuildArtifact.from_path(artifact, config.project.runtime)

        if not quiet and output == "text":
            click.echo()
            click.secho("Deployment Configuration:", bold=True)
            click.echo(f"  Function:     {config.aws.function_name}")
            click.echo(f"  Environment:  {env_name}")
            click.echo(f"  Artifact:     {package.path} ({format_size(package.size)})")
            click.echo(f"  Bucket:       {config.aws.s3_bucket}")
            if force:
                click.secho("  Force:        conflict checks bypassed", fg="yellow")
            click.echo()

        orchestrator = DeploymentOrchestrator(config, context)
        outcome = orchestrator.deploy(
            env_name,
            package,
            explicit_version=explicit_version,
            force=force,
            project_root=root,
        )

    _display_outcome(outcome, output, quiet)
    sys.exit(0 if outcome.succeeded else 3)


def _display_outcome(outcome: DeploymentOutcome, output: str, quiet: bool) -> None:
    """Print the outcome of a deploy or rollback run."""
    if output == "json":
        click.echo(json.dumps(outcome.to_summary(), indent=2, default=str))
        return

    record = outcome.record
    if quiet:
        click.echo(record.outcome.value)
        return

    color = _STATUS_COLORS.get(record.outcome, "white")
    click.echo()
    click.secho("=" * 60, fg=color)
    click.secho(
        f"  {record.mode.value.capitalize()}: {record.outcome.value}",
        fg=color,
        bold=True,
    )
    click.secho("=" * 60, fg=color)
    click.echo(f"  Version:         {record.version}")
    if outcome.version_source:
        click.echo(f"  Version source:  {outcome.version_source}")
    click.echo(f"  Environment:     {record.environment}")
    if record.remote_version_id:
        click.echo(f"  Lambda version:  {record.remote_version_id}")
    if record.artifact_location:
        click.echo(f"  Artifact:        {record.artifact_location.uri}")
    if record.duration_seconds is not None:
        click.echo(f"  Duration:        {record.duration_seconds:.1f}s")
    if outcome.health_check is not None:
        verdict = "passed" if outcome.health_check.passed else "FAILED"
        click.echo(f"  Health check:    {verdict}")

    for warning in record.warnings:
        click.secho(f"  Warning: {warning}", fg="yellow")

    if record.failure:
        click.secho(
            f"  Failed at {record.failure.stage.value}: {record.failure.message}",
            fg="red",
        )
        for step in record.failure.next_steps:
            click.echo(f"    - {step}")

    if outcome.rollback is not None:
        rollback = outcome.rollback
        click.secho(
            f"  Rolled back to {rollback.version}: {rollback.outcome.value}",
            fg=_STATUS_COLORS.get(rollback.outcome, "white"),
        )
    if outcome.rollback_error:
        click.secho(f"  Automatic rollback failed: {outcome.rollback_error}", fg="red")
    click.echo()
