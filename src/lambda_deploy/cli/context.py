"""Shared CLI plumbing: error handling, config loading and run context."""

from __future__ import annotations

import getpass
import os
import sys
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from pathlib import Path

import click

from lambda_deploy.config.env_loader import load_env_file
from lambda_deploy.config.loader import ConfigLoader
from lambda_deploy.deploy.version import git_branch, git_revision
from lambda_deploy.lib.errors import ConfigError, DeploymentError, FileNotFoundError
from lambda_deploy.lib.logging_config import get_logger
from lambda_deploy.models.deployment import LambdaDeployConfig
from lambda_deploy.models.deployment_state import RunContext

logger = get_logger(__name__)


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in CLI commands.

    Exit codes:
        2: Configuration error
        3: Deployment, conflict or rollback error, or anything unexpected
    """
    try:
        yield
    except (ConfigError, FileNotFoundError) as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(2)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        _echo_next_steps(e.next_steps)
        sys.exit(3)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(3)


def _echo_next_steps(next_steps: list[str]) -> None:
    if not next_steps:
        return
    click.secho("  Next steps:", bold=True, err=True)
    for step in next_steps:
        click.echo(f"    - {step}", err=True)


def build_run_context(
    project_root: Path,
    env: Mapping[str, str] | None = None,
) -> RunContext:
    """Collect actor and revision facts from CI variables and git.

    GitHub Actions variables win; git and the local user fill the gaps.
    """
    variables = os.environ if env is None else env

    revision = variables.get("GITHUB_SHA", "")[:7] or git_revision(project_root)
    branch = variables.get("GITHUB_REF_NAME") or git_branch(project_root)
    actor = variables.get("GITHUB_ACTOR")
    if not actor:
        try:
            actor = getpass.getuser()
        except (KeyError, OSError):
            actor = None

    return RunContext(
        actor=actor or "unknown",
        revision=revision or "unknown",
        branch=branch or "unknown",
        repository=variables.get("GITHUB_REPOSITORY"),
        run_id=variables.get("GITHUB_RUN_ID"),
    )


def load_runtime(
    config_path: str | None,
    project_root: str | Path,
) -> tuple[LambdaDeployConfig, RunContext, Path]:
    """Load ``.env``, the configuration file and the run context.

    Returns:
        Tuple of (config, run context, resolved project root)
    """
    root = Path(project_root).resolve()
    load_env_file(root)
    config = ConfigLoader().load(config_path, root)
    return config, build_run_context(root), root
