"""
Health check API routes.
"""

from fastapi import APIRouter

from stepflow import __version__
from stepflow.server.dependencies import get_engine

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness probe.

    **Response**:
    ```json
    {"status": "ok", "version": "0.1.0", "workflows": 2}
    ```
    """
    return {
        "status": "ok",
        "version": __version__,
        "workflows": len(get_engine().list_workflows()),
    }
