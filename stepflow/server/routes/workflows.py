"""
Workflow management and execution API routes.

Route handlers are plain ``def`` functions: FastAPI runs them in its
threadpool, so a long workflow run does not block the event loop.
"""

import logging

from fastapi import APIRouter, status

from stepflow.dsl.models import WorkflowDefinition
from stepflow.server.dependencies import get_engine
from stepflow.server.models.workflow import (
    RunRequest,
    WorkflowDocumentRequest,
    WorkflowListResponse,
    WorkflowLoadResponse,
    WorkflowSummary,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _summary(definition: WorkflowDefinition) -> WorkflowSummary:
    return WorkflowSummary(
        name=definition.name,
        version=definition.metadata.version,
        description=definition.metadata.description,
        steps=len(definition.steps),
        inputs=list(definition.inputs),
        outputs=list(definition.outputs),
    )


@router.post("/workflows", response_model=WorkflowLoadResponse, status_code=status.HTTP_201_CREATED)
def load_workflow(request: WorkflowDocumentRequest):
    """Validate a workflow document and register it.

    A document with the name of a registered workflow replaces it.

    **Error Responses**:
    - `422 Unprocessable Entity`: The document was rejected. ``error.details``
      holds the full validation result (every error and warning).
    """
    engine = get_engine()
    definition, result = engine.loader.load_with_result(request.content)
    return WorkflowLoadResponse(
        name=definition.name,
        version=definition.metadata.version,
        steps=len(definition.steps),
        warnings=[issue.to_dict() for issue in result.warnings],
    )


@router.post("/workflows/validate")
def validate_workflow(request: WorkflowDocumentRequest):
    """Validate a workflow document without registering it.

    Always returns 200; check ``valid`` in the body.
    """
    return get_engine().validate(request.content).to_dict()


@router.get("/workflows", response_model=WorkflowListResponse)
def list_workflows():
    """List registered workflows."""
    engine = get_engine()
    summaries = [_summary(engine.get_workflow_detail(name)) for name in engine.list_workflows()]
    return WorkflowListResponse(workflows=summaries, total=len(summaries))


@router.get("/workflows/{name}")
def get_workflow(name: str):
    """Get the full definition of a registered workflow.

    **Error Responses**:
    - `404 Not Found`: No workflow is registered under ``name``.
    """
    return get_engine().get_workflow_detail(name).to_dict()


@router.delete("/workflows/{name}", status_code=status.HTTP_204_NO_CONTENT)
def delete_workflow(name: str):
    """Unregister a workflow.

    **Error Responses**:
    - `404 Not Found`: No workflow is registered under ``name``.
    """
    engine = get_engine()
    engine.get_workflow_detail(name)
    engine.registry.unregister(name)
    logger.info(f"Unregistered workflow: {name}")


@router.post("/workflows/{name}/run")
def run_workflow(name: str, request: RunRequest):
    """Run a registered workflow and wait for the result.

    Step failures do not change the status code: a failed run returns 200
    with ``success: false``.

    **Error Responses**:
    - `404 Not Found`: No workflow is registered under ``name``.
    - `422 Unprocessable Entity`: The inputs were rejected.
    """
    return get_engine().run(name, request.inputs).to_dict()
