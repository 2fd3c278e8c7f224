"""Pytest configuration and fixtures for stepflow tests."""

import copy

import httpx
import pytest
import yaml

from stepflow.config import EngineConfig, reset_config
from stepflow.engine import WorkflowEngine
from stepflow.registry import WorkflowRegistry, get_workflow_registry
from stepflow.steps import StepDispatcher
from stepflow.steps.sandbox import ProcessSandbox

INCREMENT_WORKFLOW = """
metadata:
  name: increment
  description: Adds one to the integer input and returns it
  version: 1.0.0
inputs:
  x:
    type: integer
    required: true
workflow:
  steps:
    - id: start
      type: start
    - id: fetch
      type: code
      depends_on: [start]
      config:
        language: python3
        code: |
          def main(x):
              return x + 1
    - id: end
      type: end
      depends_on: [fetch]
outputs:
  answer:
    source: "${fetch}"
    type: integer
"""


@pytest.fixture(autouse=True)
def reset_state(monkeypatch):
    """Reset global state before each test."""
    monkeypatch.delenv("STEPFLOW_LLM_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    reset_config()
    get_workflow_registry().clear()

    from stepflow.server.dependencies import get_engine

    get_engine.cache_clear()

    yield

    reset_config()
    get_workflow_registry().clear()
    get_engine.cache_clear()


@pytest.fixture
def increment_yaml():
    """Document text of the start -> fetch -> end increment workflow."""
    return INCREMENT_WORKFLOW


@pytest.fixture
def make_workflow():
    """Build workflow document data around a list of steps."""

    def _make(steps, inputs=None, outputs=None, name="test_flow", description=None):
        return {
            "metadata": {
                "name": name,
                "description": description or "Workflow document used by the test suite",
                "version": "1.0.0",
            },
            "inputs": copy.deepcopy(inputs or {}),
            "workflow": {"steps": copy.deepcopy(steps)},
            "outputs": copy.deepcopy(outputs or {}),
        }

    return _make


@pytest.fixture
def make_document(make_workflow):
    """Like make_workflow, but returns YAML document text."""

    def _make(steps, **kwargs):
        return yaml.safe_dump(make_workflow(steps, **kwargs), sort_keys=False)

    return _make


@pytest.fixture
def registry():
    """An isolated WorkflowRegistry."""
    return WorkflowRegistry()


@pytest.fixture
def mock_http():
    """Routes for an httpx.MockTransport.

    Map ``(method, host)`` to a callable taking the request and returning an
    ``httpx.Response`` (or raising an httpx error). Every request is recorded
    in ``routes.calls``.
    """

    class Routes(dict):
        def __init__(self):
            super().__init__()
            self.calls = []

        def __call__(self, request: httpx.Request) -> httpx.Response:
            self.calls.append(request)
            handler = self.get((request.method, request.url.host))
            if handler is None:
                return httpx.Response(404, json={"error": "no route"})
            return handler(request)

    return Routes()


@pytest.fixture
def http_client(mock_http):
    client = httpx.Client(transport=httpx.MockTransport(mock_http))
    yield client
    client.close()


@pytest.fixture
def dispatcher(http_client):
    """Dispatcher with a mocked network and no text generator (fallback mode)."""
    return StepDispatcher(
        sandbox=ProcessSandbox(memory_limit_mb=256, timeout_ms=10000),
        text_generator=None,
        http_client=http_client,
    )


@pytest.fixture
def engine(registry, dispatcher):
    """WorkflowEngine over an isolated registry and the mocked dispatcher."""
    return WorkflowEngine(
        registry=registry,
        dispatcher=dispatcher,
        config=EngineConfig(history_limit=5),
    )
