"""
FastAPI dependency injection for the stepflow API.
"""

from functools import lru_cache
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stepflow.engine import WorkflowEngine


@lru_cache
def get_engine() -> "WorkflowEngine":
    """Get the process-wide WorkflowEngine.

    Uses the process-wide registry and configuration, so workflows loaded
    through the CLI before the server starts are visible to the routes.

    Returns:
        WorkflowEngine instance
    """
    from stepflow.engine import WorkflowEngine

    return WorkflowEngine()
