"""Server command implementation."""

from pathlib import Path

import click

from stepflow.exceptions import WorkflowLoadError


@click.group()
def server():
    """Manage the stepflow HTTP server."""
    pass


@server.command("start")
@click.option(
    "--host",
    default="0.0.0.0",
    help="Host to bind to (default: 0.0.0.0)",
)
@click.option(
    "--port",
    default=8080,
    type=int,
    help="Port to bind to (default: 8080)",
)
@click.option(
    "--workflows-dir",
    multiple=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directories whose workflow documents are loaded at startup",
)
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error", "critical"]),
    help="Log level for uvicorn (default: info)",
)
@click.pass_context
def start(ctx, host, port, workflows_dir, log_level):
    """Start the stepflow HTTP server.

    Workflow documents found in --workflows-dir are loaded before the server
    accepts requests; invalid ones are reported and skipped.
    """
    quiet = ctx.obj.get("quiet", False)

    from stepflow.server.dependencies import get_engine
    from stepflow.server.main import run_server

    engine = get_engine()
    for directory in workflows_dir:
        for path in sorted(directory.glob("*.y*ml")) + sorted(directory.glob("*.json")):
            try:
                name = engine.load_workflow_file(path)
            except WorkflowLoadError as e:
                click.echo(f"Skipping {path}: {e}", err=True)
                continue
            if not quiet:
                click.echo(f"Loaded workflow {name} from {path}")

    if not quiet:
        click.echo(f"Starting stepflow server on {host}:{port}")

    try:
        run_server(host=host, port=port, log_level=log_level)
    except KeyboardInterrupt:
        if not quiet:
            click.echo("\nServer stopped")
