"""Entry point for the lambda-deploy command line interface."""

import click

from lambda_deploy import __version__
from lambda_deploy.cli.commands.deploy import deploy
from lambda_deploy.cli.commands.rollback import history, rollback
from lambda_deploy.cli.commands.status import status


@click.group(name="lambda-deploy", invoke_without_command=True)
@click.version_option(__version__, prog_name="lambda-deploy")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Versioned deployments of serverless functions.

    Commands:

        deploy    Upload an artifact and roll it out to an environment
        rollback  Restore a previously stored version
        history   List stored versions of an environment
        status    Show the remote state of the function
    """
    ctx.ensure_object(dict)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(deploy)
cli.add_command(rollback)
cli.add_command(history)
cli.add_command(status)


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
