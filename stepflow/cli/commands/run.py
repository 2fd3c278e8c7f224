"""Run workflow command implementation."""

import json
from pathlib import Path

import click
import yaml

from stepflow.exceptions import InputValidationError, WorkflowLoadError


@click.command()
@click.option(
    "--workflow",
    "-w",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to workflow document (YAML or JSON)",
)
@click.option(
    "--param",
    "-p",
    multiple=True,
    help="Workflow inputs (KEY=VALUE format, values parsed as YAML scalars)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Output file for results (default: stdout)",
)
@click.pass_context
def run(ctx, workflow, param, output):
    """Run a workflow from a document file.

    Loads and validates the document, runs it once with the given inputs and
    prints the ExecutionResult as JSON.
    """
    from stepflow.engine import WorkflowEngine
    from stepflow.registry import WorkflowRegistry

    quiet = ctx.obj.get("quiet", False)

    if not quiet:
        click.echo(f"Loading workflow: {workflow}")

    engine = WorkflowEngine(registry=WorkflowRegistry())
    try:
        name = engine.load_workflow_file(workflow)
    except WorkflowLoadError as e:
        click.echo(f"Error loading workflow: {e}", err=True)
        if e.result is not None:
            for issue in e.result.errors:
                click.echo(f"  ✗ {issue}", err=True)
        raise click.Abort(1)

    if not quiet:
        click.echo(f"Running workflow: {name}")

    try:
        result = engine.run(name, _parse_params(param))
    except InputValidationError as e:
        click.echo(f"Invalid input: {e}", err=True)
        raise click.Abort(1)

    result_str = json.dumps(result.to_dict(), indent=2, default=str)
    if output:
        output.write_text(result_str)
        if not quiet:
            click.echo(f"Results written to {output}")
    else:
        if not quiet:
            click.echo("\nResults:")
        click.echo(result_str)

    if not quiet:
        click.echo(f"Status: {'completed' if result.success else 'failed'}")
        click.echo(f"Execution time: {result.execution_time_ms:.0f}ms")

    if not result.success:
        click.echo(f"Error: {result.error}", err=True)
        raise click.Abort(1)


def _parse_params(param_list: tuple) -> dict:
    """Parse KEY=VALUE parameters into a dictionary.

    Values are parsed as YAML scalars, so ``x=41`` is an integer and
    ``flag=true`` a boolean; anything unparsable is kept as a string.

    Args:
        param_list: Tuple of KEY=VALUE strings

    Returns:
        Dictionary of parameters
    """
    params = {}
    for param in param_list:
        if "=" not in param:
            raise click.BadParameter(f"Expected KEY=VALUE, got '{param}'", param_hint="--param")
        key, value = param.split("=", 1)
        try:
            params[key.strip()] = yaml.safe_load(value) if value else ""
        except yaml.YAMLError:
            params[key.strip()] = value
    return params
