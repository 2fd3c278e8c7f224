"""
Execution history API routes.
"""

from typing import Optional

from fastapi import APIRouter, Query

from stepflow.server.dependencies import get_engine
from stepflow.server.models.workflow import ExecutionListResponse

router = APIRouter()


@router.get("/executions", response_model=ExecutionListResponse)
def list_executions(
    workflow: Optional[str] = Query(None, description="Only runs of this workflow"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Most recent N runs"),
):
    """List recent runs, oldest first."""
    history = get_engine().get_execution_history()
    if workflow is not None:
        history = [result for result in history if result.workflow_name == workflow]
    if limit is not None:
        history = history[-limit:]
    return ExecutionListResponse(
        executions=[result.to_dict() for result in history],
        total=len(history),
        limit=limit,
    )
