"""
Document parser for the workflow DSL.

Turns raw YAML (or JSON, which is a YAML subset) text into plain Python data.
"""

from pathlib import Path
from typing import Any, Union

import yaml

from stepflow.exceptions import ParseError


def parse_document(text: str) -> Any:
    """Parse workflow document text.

    Args:
        text: YAML or JSON document text.

    Returns:
        Parsed document (normally a dictionary; structural checks happen later).

    Raises:
        ParseError: If the text is not well-formed. Line and column are 1-based
            and set whenever the YAML parser reports a position.
    """
    if not isinstance(text, str):
        raise ParseError(f"Workflow document must be text, got {type(text).__name__}")

    try:
        return yaml.safe_load(text)
    except yaml.MarkedYAMLError as e:
        mark = e.problem_mark or e.context_mark
        line = mark.line + 1 if mark is not None else None
        column = mark.column + 1 if mark is not None else None
        raise ParseError(f"YAML parsing failed: {e.problem or e}", line=line, column=column) from e
    except yaml.YAMLError as e:
        raise ParseError(f"YAML parsing failed: {e}") from e


def read_document(path: Union[str, Path]) -> str:
    """Read a workflow document from disk.

    Raises:
        ParseError: If the file cannot be read.
    """
    file_path = Path(path)
    try:
        return file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ParseError(f"Failed to read workflow file {file_path}: {e}") from e
