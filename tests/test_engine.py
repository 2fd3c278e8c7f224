"""Tests for WorkflowEngine: loading, running, policies and history."""

import threading

import httpx
import pytest

from stepflow.dsl.models import StepSpec
from stepflow.engine import coerce_output, fallback_targets, prune_branches
from stepflow.exceptions import (
    InputValidationError,
    SemanticValidationError,
    WorkflowNotFoundError,
)
from stepflow.flow.context import CancellationToken
from stepflow.status import StepStatus
from stepflow.steps.builtin import EndStepHandler

MODEL = "claude-3-5-haiku-latest"


class RecordingEndHandler(EndStepHandler):
    """End handler that captures the scope visible to the end step."""

    def __init__(self):
        self.variables = None

    def execute(self, step, context):
        self.variables = dict(context.variables)
        return super().execute(step, context)


def llm(step_id, prompt, depends_on, **extra):
    return {
        "id": step_id,
        "type": "llm",
        "depends_on": depends_on,
        "config": {"model": MODEL, "prompt": prompt},
        **extra,
    }


def http(step_id, url, depends_on, **extra):
    return {
        "id": step_id,
        "type": "http",
        "depends_on": depends_on,
        "config": {"url": url, "method": "GET"},
        **extra,
    }


START = {"id": "start", "type": "start"}


def end(*depends_on):
    return {"id": "end", "type": "end", "depends_on": list(depends_on)}


@pytest.fixture
def minimal_yaml(make_document):
    return make_document([START, end("start")], name="minimal")


@pytest.mark.slow
class TestCodeWorkflows:
    def test_increment(self, engine, increment_yaml):
        name = engine.load_workflow(increment_yaml)

        result = engine.run(name, {"x": 41})

        assert result.success
        assert result.error is None
        assert result.outputs == {"answer": 42}
        assert list(result.step_results) == ["start", "fetch", "end"]
        assert all(r.status == StepStatus.COMPLETED for r in result.step_results.values())
        assert result.metadata["workflow_name"] == "increment"
        assert result.metadata["total_steps"] == 3
        assert result.metadata["completed_steps"] == 3

    def test_runs_are_idempotent(self, engine, increment_yaml):
        name = engine.load_workflow(increment_yaml)

        first = engine.run(name, {"x": 1})
        second = engine.run(name, {"x": 1})

        assert first.outputs == second.outputs == {"answer": 2}
        assert first.execution_id != second.execution_id

    def test_skipped_step_is_failed_and_out_of_scope(self, engine, make_document):
        recorder = RecordingEndHandler()
        engine.dispatcher.register(recorder)
        broken = {
            "id": "broken",
            "type": "code",
            "depends_on": ["start"],
            "config": {"language": "python3", "code": "def main():\n    raise ValueError('boom')\n"},
            "error_handling": {"on_error": "skip"},
        }
        name = engine.load_workflow(make_document([START, broken, end("broken")]))

        result = engine.run(name)

        assert result.success
        skipped = result.step_results["broken"]
        assert skipped.status == StepStatus.FAILED
        assert not skipped.success
        assert "ValueError: boom" in skipped.error
        assert result.step_results["end"].status == StepStatus.COMPLETED
        assert "broken" not in recorder.variables
        assert "start" in recorder.variables

    def test_reference_to_skipped_step_fails_run(self, engine, make_document):
        broken = {
            "id": "broken",
            "type": "code",
            "depends_on": ["start"],
            "config": {"language": "python3", "code": "def main():\n    raise ValueError('boom')\n"},
            "error_handling": {"on_error": "skip"},
        }
        report = llm("report", "Report on ${broken.value} for the team", ["broken"])
        name = engine.load_workflow(make_document([START, broken, report, end("report")]))

        result = engine.run(name)

        assert not result.success
        assert "Unresolved reference" in result.error
        assert result.step_results["report"].status == StepStatus.FAILED
        assert "end" not in result.step_results

    def test_cancel_during_sandbox_run(self, engine, make_document):
        spin = {
            "id": "spin",
            "type": "code",
            "depends_on": ["start"],
            "config": {"language": "python3", "code": "def main():\n    while True:\n        pass\n"},
        }
        name = engine.load_workflow(make_document([START, spin, end("spin")]))
        token = CancellationToken()
        threading.Timer(0.5, token.cancel).start()

        result = engine.run(name, cancel_token=token)

        assert result.cancelled
        assert not result.success
        assert result.step_results["start"].status == StepStatus.COMPLETED
        assert result.step_results["spin"].status == StepStatus.FAILED
        assert "end" not in result.step_results


class TestErrorPolicies:
    def test_fail_policy_stops_run(self, engine, make_document, mock_http):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        mock_http[("GET", "api.example.com")] = refuse
        name = engine.load_workflow(
            make_document([START, http("fetch", "https://api.example.com/data", ["start"]), end("fetch")])
        )

        result = engine.run(name)

        assert not result.success
        assert result.error.startswith("Step fetch failed: HTTP request failed")
        assert result.outputs == {}
        assert result.step_results["start"].status == StepStatus.COMPLETED
        assert result.step_results["fetch"].status == StepStatus.FAILED
        assert "end" not in result.step_results
        assert engine.get_execution_history() == [result]

    def test_retry_recovers(self, engine, make_document, mock_http):
        attempts = []

        def flaky(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, json={"value": 7})

        mock_http[("GET", "flaky.example.com")] = flaky
        fetch = http(
            "fetch",
            "https://flaky.example.com/data",
            ["start"],
            error_handling={"on_error": "retry", "retry_count": 2, "retry_delay": 0},
        )
        name = engine.load_workflow(
            make_document([START, fetch, end("fetch")], outputs={"value": {"source": "${fetch.data.value}"}})
        )

        result = engine.run(name)

        assert result.success
        assert result.outputs == {"value": 7}
        assert result.step_results["fetch"].retry_count == 1
        assert len(attempts) == 2

    def test_fallback_replaces_result(self, engine, make_document, mock_http):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        mock_http[("GET", "primary.example.com")] = refuse
        mock_http[("GET", "backup.example.com")] = lambda request: httpx.Response(200, json={"value": "cached"})
        fetch = http(
            "fetch",
            "https://primary.example.com/data",
            ["start"],
            error_handling={"on_error": "fallback", "fallback_step": "backup"},
        )
        backup = http("backup", "https://backup.example.com/data", ["start"])
        name = engine.load_workflow(
            make_document(
                [START, fetch, backup, end("fetch")],
                outputs={"value": {"source": "${fetch.data.value}"}},
            )
        )

        result = engine.run(name)

        assert result.success
        assert result.outputs == {"value": "cached"}
        assert result.step_results["fetch"].fallback_step == "backup"
        assert result.step_results["backup"].status == StepStatus.COMPLETED
        backup_calls = [r for r in mock_http.calls if r.url.host == "backup.example.com"]
        assert len(backup_calls) == 1

    def test_unused_fallback_step_is_skipped(self, engine, make_document, mock_http):
        mock_http[("GET", "primary.example.com")] = lambda request: httpx.Response(200, json={"value": "live"})
        fetch = http(
            "fetch",
            "https://primary.example.com/data",
            ["start"],
            error_handling={"on_error": "fallback", "fallback_step": "backup"},
        )
        backup = http("backup", "https://backup.example.com/data", ["start"])
        name = engine.load_workflow(make_document([START, fetch, backup, end("fetch")]))

        result = engine.run(name)

        assert result.success
        assert result.step_results["backup"].status == StepStatus.SKIPPED
        assert all(r.url.host != "backup.example.com" for r in mock_http.calls)

    def test_reserved_step_type_fails_at_run_time(self, engine, make_document):
        steps = [START, {"id": "each", "type": "loop", "depends_on": ["start"]}, end("each")]
        name = engine.load_workflow(make_document(steps))

        result = engine.run(name)

        assert not result.success
        assert "Unsupported step type: loop" in result.error


class TestBranching:
    @pytest.fixture
    def branching(self, engine, make_document):
        steps = [
            START,
            {
                "id": "check",
                "type": "condition",
                "depends_on": ["start"],
                "config": {"condition": "${score} > 0.5", "true_step": "publish", "false_step": "review"},
            },
            llm("publish", "Publish the report, the score was ${score}", ["check"]),
            llm("review", "Review the report, the score was ${score}", ["check"]),
            llm("notify", "Tell the team the report needs review", ["review"]),
            end("publish", "notify"),
        ]
        return engine.load_workflow(
            make_document(
                steps,
                inputs={"score": {"type": "number", "required": True}},
                outputs={"branch": {"source": "${check.branch}"}},
            )
        )

    def test_true_branch(self, engine, branching):
        result = engine.run(branching, {"score": 0.9})

        assert result.success
        assert result.outputs == {"branch": "true"}
        statuses = {step_id: r.status for step_id, r in result.step_results.items()}
        assert statuses["publish"] == StepStatus.COMPLETED
        assert statuses["review"] == StepStatus.SKIPPED
        assert statuses["notify"] == StepStatus.SKIPPED
        assert statuses["end"] == StepStatus.COMPLETED

    def test_false_branch(self, engine, branching):
        result = engine.run(branching, {"score": 0.1})

        assert result.success
        assert result.outputs == {"branch": "false"}
        assert result.step_results["publish"].status == StepStatus.SKIPPED
        assert result.step_results["review"].status == StepStatus.COMPLETED
        assert result.step_results["notify"].status == StepStatus.COMPLETED


class TestOutputs:
    def test_unresolved_output_recorded(self, engine, make_document):
        name = engine.load_workflow(
            make_document([START, end("start")], outputs={"missing": {"source": "${start.nothing}"}})
        )

        result = engine.run(name)

        assert result.success
        assert result.outputs == {"missing": None}
        assert "Path not found" in result.output_errors["missing"]

    def test_declared_type_coerces_strings(self, engine, make_document):
        name = engine.load_workflow(
            make_document(
                [START, llm("echo", "${n}", ["start"]), end("echo")],
                inputs={"n": {"type": "integer", "required": True}},
                outputs={"count": {"source": "${echo.text}", "type": "integer"}},
            )
        )

        assert engine.run(name, {"n": 42}).outputs == {"count": 42}


class TestRunErrors:
    def test_unknown_workflow(self, engine):
        with pytest.raises(WorkflowNotFoundError):
            engine.run("missing")

    def test_invalid_inputs_raise_before_running(self, engine, increment_yaml):
        name = engine.load_workflow(increment_yaml)

        with pytest.raises(InputValidationError):
            engine.run(name, {"x": "forty-one"})

        assert engine.get_execution_history() == []

    def test_cancelled_before_first_step(self, engine, minimal_yaml):
        name = engine.load_workflow(minimal_yaml)
        token = CancellationToken()
        token.cancel()

        result = engine.run(name, cancel_token=token)

        assert result.cancelled
        assert not result.success
        assert result.step_results == {}
        assert result.error == "Run cancelled before step start"


class TestLoading:
    def test_cycle_never_registered(self, engine, make_document):
        steps = [
            {"id": "a", "type": "code", "depends_on": ["b"], "config": {"code": "def main():\n    return 1"}},
            {"id": "b", "type": "code", "depends_on": ["a"], "config": {"code": "def main():\n    return 1"}},
        ]

        with pytest.raises(SemanticValidationError) as exc_info:
            engine.load_workflow(make_document(steps, name="cyclic"))

        assert exc_info.value.result.has_code("CIRCULAR_DEPENDENCY")
        assert "cyclic" not in engine.list_workflows()

    def test_unsupported_language_rejected(self, engine, make_document):
        steps = [
            START,
            {
                "id": "calc",
                "type": "code",
                "depends_on": ["start"],
                "config": {"language": "ruby", "code": "def main; 1; end"},
            },
        ]

        with pytest.raises(SemanticValidationError) as exc_info:
            engine.load_workflow(make_document(steps))

        assert exc_info.value.result.has_code("UNSUPPORTED_LANGUAGE")
        assert engine.list_workflows() == []

    def test_invalid_input_pattern_never_registered(self, engine, make_document):
        document = make_document(
            [START, end("start")],
            name="bad_pattern",
            inputs={"s": {"type": "string", "validation": {"pattern": "["}}},
        )

        with pytest.raises(SemanticValidationError) as exc_info:
            engine.load_workflow(document)

        assert exc_info.value.result.has_code("INVALID_INPUT_PATTERN")
        with pytest.raises(WorkflowNotFoundError):
            engine.run("bad_pattern", {"s": "x"})

    def test_reload_replaces_definition(self, engine, minimal_yaml):
        engine.load_workflow(minimal_yaml)
        first = engine.get_workflow_detail("minimal")

        engine.load_workflow(minimal_yaml)
        second = engine.get_workflow_detail("minimal")

        assert first == second
        assert engine.list_workflows() == ["minimal"]

    def test_validate_does_not_register(self, engine, minimal_yaml):
        result = engine.validate(minimal_yaml)
        assert result.valid
        assert engine.list_workflows() == []


class TestHistory:
    def test_bounded(self, engine, minimal_yaml):
        name = engine.load_workflow(minimal_yaml)

        results = [engine.run(name) for _ in range(7)]

        history = engine.get_execution_history()
        assert len(history) == 5
        assert [r.execution_id for r in history] == [r.execution_id for r in results[2:]]

    def test_clear(self, engine, minimal_yaml):
        engine.run(engine.load_workflow(minimal_yaml))
        engine.clear_history()
        assert engine.get_execution_history() == []

    def test_concurrent_runs(self, engine, minimal_yaml):
        name = engine.load_workflow(minimal_yaml)
        results = []

        def worker():
            results.append(engine.run(name))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert all(r.success for r in results)
        assert len({r.execution_id for r in results}) == 4
        assert len(engine.get_execution_history()) == 4


def test_prune_branches():
    steps = [
        StepSpec.model_validate(data)
        for data in (
            {"id": "check", "type": "condition", "config": {"true_step": "yes", "false_step": "no"}},
            {"id": "yes", "type": "end", "depends_on": ["check"]},
            {"id": "no", "type": "end", "depends_on": ["check"]},
            {"id": "after_no", "type": "end", "depends_on": ["no"]},
            {"id": "join", "type": "end", "depends_on": ["yes", "no"]},
        )
    ]
    condition = steps[0]

    assert prune_branches(steps, condition, {"result": True, "next_step": "yes"}, set()) == {"no", "after_no"}
    assert prune_branches(steps, condition, None, set()) == {"yes", "no", "after_no", "join"}


def test_fallback_targets():
    steps = [
        StepSpec.model_validate(
            {"id": "fetch", "type": "http", "error_handling": {"on_error": "fallback", "fallback_step": "cache"}}
        ),
        StepSpec.model_validate({"id": "other", "type": "http", "error_handling": {"on_error": "skip"}}),
    ]
    assert fallback_targets(steps) == {"cache"}


@pytest.mark.parametrize(
    "value,declared,expected",
    [
        ("42", "integer", 42),
        ("2.5", "number", 2.5),
        ("yes", "boolean", True),
        ("[1, 2]", "array", [1, 2]),
        ('{"a": 1}', "object", {"a": 1}),
        ("not a number", "integer", "not a number"),
        (42, "string", 42),
        ("42", None, "42"),
    ],
)
def test_coerce_output(value, declared, expected):
    assert coerce_output(value, declared) == expected
