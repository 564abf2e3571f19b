"""CLI command for reporting the deployed state of the function."""

from __future__ import annotations

import json

import click

from lambda_deploy.cli.context import handle_deployment_errors, load_runtime
from lambda_deploy.lib.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Configuration file (default: discovered under the project root)",
)
@click.option(
    "--project-root",
    type=click.Path(exists=True, file_okay=False),
    default=".",
    help="Project directory holding the configuration",
)
@click.option("--json", "as_json", is_flag=True, help="Print status as JSON")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Suppress progress output")
def status(
    config_path: str | None,
    project_root: str,
    as_json: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Show the remote state and recorded version of the function."""
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        from lambda_deploy.deploy.orchestrator import DeploymentOrchestrator

        config, context, _ = load_runtime(config_path, project_root)
        orchestrator = DeploymentOrchestrator(config, context)
        state = orchestrator.service.get_state(config.aws.function_name)
        tags = orchestrator.service.list_tags(config.aws.function_name)

    if as_json:
        payload = {
            "function_name": config.aws.function_name,
            "state": _value(state.lifecycle_state),
            "last_update_status": _value(state.last_update_status),
            "description": state.description,
            "tags": tags,
        }
        click.echo(json.dumps(payload, indent=2))
        return

    if quiet:
        click.echo(tags.get("Version", "unknown"))
        return

    click.echo()
    click.secho("Function Status", bold=True)
    click.echo(f"  Function:     {config.aws.function_name}")
    click.echo(f"  State:        {_value(state.lifecycle_state)}")
    click.echo(f"  Last update:  {_value(state.last_update_status)}")
    if state.reason:
        click.echo(f"  Reason:       {state.reason}")
    click.echo(f"  Version:      {tags.get('Version', 'unknown')}")
    click.echo(f"  Environment:  {tags.get('Environment', 'unknown')}")
    if state.description:
        click.echo(f"  Description:  {state.description}")
    click.echo()


def _value(enum_value: object) -> str:
    return getattr(enum_value, "value", None) or "unknown"
