"""Main CLI entry point using click framework."""

import logging

import click

from stepflow import __version__
from stepflow.cli.commands.list import list_cmd
from stepflow.cli.commands.run import run
from stepflow.cli.commands.server import server
from stepflow.cli.commands.validate import validate


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output")
@click.pass_context
def cli(ctx, verbose, quiet):
    """Stepflow CLI for validating and running YAML workflows.

    \b
    Examples:
        # Validate a workflow document
        $ stepflow validate --workflow flows/report.yaml

        # Run a workflow with inputs
        $ stepflow run -w flows/increment.yaml -p x=41

        # List workflow documents in a directory
        $ stepflow list --dir flows

        # Start the HTTP server
        $ stepflow server start --workflows-dir flows
    """
    ctx.ensure_object(dict)
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet


cli.add_command(validate)
cli.add_command(run)
cli.add_command(list_cmd)
cli.add_command(server)


def main():
    """Entry point for console script."""
    cli(obj={})


if __name__ == "__main__":
    main()
