"""Validate command implementation."""

import json
from pathlib import Path

import click

from stepflow.dsl.parser import read_document
from stepflow.dsl.validation import ValidationResult, parse_error_result, validate_document
from stepflow.exceptions import ParseError


@click.command()
@click.option(
    "--workflow",
    "-w",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to workflow document to validate",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format (default: text)",
)
@click.pass_context
def validate(ctx, workflow, output_format):
    """Validate a workflow document.

    Runs the schema, semantic and best-practice checks without registering
    or running anything.
    """
    quiet = ctx.obj.get("quiet", False)
    verbose = ctx.obj.get("verbose", False)

    if not quiet and output_format == "text":
        click.echo(f"Validating: {workflow}")

    try:
        result, _ = validate_document(read_document(workflow))
    except ParseError as e:
        result = parse_error_result(e)

    if output_format == "json":
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.valid:
            # Exit without click's "Aborted!" line so stdout stays valid JSON
            ctx.exit(1)
        return

    _print_validation_result(result, quiet, verbose)
    if not result.valid:
        raise click.Abort(1)


def _print_validation_result(result: ValidationResult, quiet: bool, verbose: bool = False):
    """Print validation results."""
    if quiet:
        return

    if not result.errors and not result.warnings:
        click.echo("✓ Validation passed")
        return

    if result.warnings:
        click.echo("\nWarnings:")
        for warning in result.warnings:
            click.echo(f"  ⚠ {warning}")
            if verbose and warning.suggestion:
                click.echo(f"      → {warning.suggestion}")

    if result.errors:
        click.echo("\nErrors:")
        for error in result.errors:
            location = f" (line {error.line}, column {error.column})" if error.line else ""
            click.echo(f"  ✗ {error}{location}")
        click.echo("\n✗ Validation failed")
    else:
        click.echo("\n✓ Validation passed (with warnings)")
