"""CLI commands for rolling back and inspecting version history.

Implements 'lambda-deploy rollback' and 'lambda-deploy history'.
"""

from __future__ import annotations

import json
import sys

import click

from lambda_deploy.cli.commands.deploy import _display_outcome
from lambda_deploy.cli.context import handle_deployment_errors, load_runtime
from lambda_deploy.deploy.environment import canonical_environment, policy_for
from lambda_deploy.lib.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def _common_options(func):  # type: ignore[no-untyped-def]
    """Options shared by rollback and history."""
    options = [
        click.option(
            "--config",
            "config_path",
            type=click.Path(exists=True, dir_okay=False),
            default=None,
            help="Configuration file (default: discovered under the project root)",
        ),
        click.option(
            "--project-root",
            type=click.Path(exists=True, file_okay=False),
            default=".",
            help="Project directory holding the configuration",
        ),
        click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging"),
        click.option("--quiet", "-q", is_flag=True, help="Suppress progress output"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.command()
@click.argument("environment", type=str)
@click.option(
    "--to-version",
    "target_version",
    type=str,
    default=None,
    help="Version to restore (default: the version before the current one)",
)
@click.option(
    "--reason",
    type=str,
    default="manual",
    help="Reason recorded in the version description and tags",
)
@click.option(
    "--output",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format for the rollback summary",
)
@_common_options
def rollback(
    environment: str,
    target_version: str | None,
    reason: str,
    output: str,
    config_path: str | None,
    project_root: str,
    verbose: bool,
    quiet: bool,
) -> None:
    """Roll ENVIRONMENT back to a previously stored version.

    The stored artifact is redeployed as-is; nothing is rebuilt.

    Example:

        lambda-deploy rollback prod --to-version 1.3.2 --reason "error spike"
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        from lambda_deploy.deploy.orchestrator import DeploymentOrchestrator

        config, context, _ = load_runtime(config_path, project_root)
        orchestrator = DeploymentOrchestrator(config, context)
        outcome = orchestrator.rollback(
            canonical_environment(environment), target_version, reason
        )

    _display_outcome(outcome, output, quiet)
    sys.exit(0 if outcome.succeeded else 3)


@click.command()
@click.argument("environment", type=str)
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=20,
    help="Maximum number of versions to show",
)
@click.option("--json", "as_json", is_flag=True, help="Print versions as JSON")
@_common_options
def history(
    environment: str,
    limit: int,
    as_json: bool,
    config_path: str | None,
    project_root: str,
    verbose: bool,
    quiet: bool,
) -> None:
    """List versions stored for ENVIRONMENT, newest first."""
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        from lambda_deploy.deploy.orchestrator import DeploymentOrchestrator

        config, context, _ = load_runtime(config_path, project_root)
        orchestrator = DeploymentOrchestrator(config, context)
        policy = policy_for(environment)
        versions = orchestrator.store.list_versions(policy)[:limit]
        current = orchestrator.rollback_manager.last_successful_version()

    if as_json:
        click.echo(json.dumps({"environment": policy.name, "versions": versions}))
        return
    if not versions:
        click.echo(f"No artifacts stored for {policy.name}")
        return
    if not quiet:
        click.secho(f"Stored versions for {policy.name}:", bold=True)
    for version in versions:
        marker = "*" if version == current else " "
        click.echo(f"  {marker} {version}")
