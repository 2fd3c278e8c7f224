"""List command implementation."""

import json
from pathlib import Path
from typing import Optional

import click

from stepflow.dsl.parser import parse_document, read_document
from stepflow.exceptions import ParseError

DOCUMENT_PATTERNS = ("*.yaml", "*.yml", "*.json")


@click.command("list")
@click.option(
    "--dir",
    "-d",
    "directory",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory to scan for workflow documents (default: ./flows and .)",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json", "plain"]),
    default="table",
    help="Output format (default: table)",
)
@click.pass_context
def list_cmd(ctx, directory, output_format):
    """List workflow documents and the workflow names they declare."""
    quiet = ctx.obj.get("quiet", False)
    workflows = _find_workflows(directory)

    if output_format == "json":
        click.echo(json.dumps(workflows, indent=2))
    elif output_format == "plain":
        for workflow in workflows:
            click.echo(workflow["name"])
    else:  # table
        if not workflows:
            if not quiet:
                click.echo("No workflows found.")
            return

        click.echo(f"{'Name':<30} {'Version':<10} {'File'}")
        click.echo("-" * 80)
        for workflow in workflows:
            click.echo(f"{workflow['name'][:30]:<30} {workflow['version'][:10]:<10} {workflow['file']}")


def _find_workflows(directory: Optional[Path]) -> list:
    """Scan directories for workflow documents."""
    dirs = [directory] if directory else [Path.cwd() / "flows", Path.cwd()]

    workflows = []
    for flow_dir in dirs:
        if not flow_dir.exists():
            continue
        for pattern in DOCUMENT_PATTERNS:
            for flow_file in sorted(flow_dir.glob(pattern)):
                try:
                    data = parse_document(read_document(flow_file))
                except ParseError:
                    workflows.append(
                        {"name": f"<parse error: {flow_file.stem}>", "version": "", "file": str(flow_file)}
                    )
                    continue
                metadata = data.get("metadata") if isinstance(data, dict) else None
                if not isinstance(metadata, dict):
                    # Not a workflow document
                    continue
                workflows.append(
                    {
                        "name": str(metadata.get("name", flow_file.stem)),
                        "version": str(metadata.get("version", "")),
                        "file": str(flow_file),
                    }
                )
    return workflows
