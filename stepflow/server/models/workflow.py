"""
Pydantic models for the Workflow API.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class WorkflowDocumentRequest(BaseModel):
    """Request model carrying a workflow document.

    Used by both ``POST /workflows`` (validate and register) and
    ``POST /workflows/validate`` (validate only).

    **Example**:
    ```json
    {
      "content": "metadata:\\n  name: increment\\nworkflow:\\n  steps: ..."
    }
    ```
    """

    content: str = Field(
        ...,
        description="Workflow document text (YAML, or JSON which is a YAML subset).",
        min_length=1,
    )


class WorkflowLoadResponse(BaseModel):
    """Response model for a registered workflow."""

    name: str = Field(..., description="Registry key of the loaded workflow.")
    version: str = Field(..., description="Declared workflow version.")
    steps: int = Field(..., description="Number of steps.")
    warnings: List[Dict[str, Any]] = Field(
        default_factory=list, description="Non-blocking findings of the validators."
    )


class WorkflowSummary(BaseModel):
    """Short description of a registered workflow."""

    name: str
    version: str
    description: str = ""
    steps: int = 0
    inputs: List[str] = Field(default_factory=list)
    outputs: List[str] = Field(default_factory=list)


class WorkflowListResponse(BaseModel):
    """Response model for the workflow list."""

    workflows: List[WorkflowSummary]
    total: int


class RunRequest(BaseModel):
    """Request model for running a workflow.

    **Example**:
    ```json
    {
      "inputs": {"x": 41}
    }
    ```
    """

    inputs: Dict[str, Any] = Field(
        default_factory=dict,
        description="Run inputs keyed by declared input name. Undeclared keys are ignored.",
    )


class ExecutionListResponse(BaseModel):
    """Response model for the execution history."""

    executions: List[Dict[str, Any]]
    total: int
    limit: Optional[int] = None
