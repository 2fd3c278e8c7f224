"""Tests for the code step sandbox."""

import logging
import threading
import time

import pytest

from stepflow.dsl.models import StepSpec, parse_workflow
from stepflow.exceptions import (
    RunCancelledError,
    SandboxError,
    SandboxTimeoutError,
    StepExecutionError,
    UnsupportedLanguageError,
)
from stepflow.flow.context import CancellationToken, ExecutionContext
from stepflow.steps.code import CodeStepHandler, build_main_args, emit_logs
from stepflow.steps.sandbox import ProcessSandbox, check_code

pytestmark = pytest.mark.slow


@pytest.fixture
def sandbox():
    return ProcessSandbox(memory_limit_mb=256, timeout_ms=10000)


class TestCheckCode:
    @pytest.mark.parametrize(
        "code,message",
        [
            ("import os\ndef main():\n    return 1", "Import statements"),
            ("from os import path\ndef main():\n    return 1", "Import statements"),
            ("def main():\n    return ().__class__", "attribute not allowed"),
            ("def main():\n    return __builtins__", "name not allowed"),
            ("counter = 0\ndef main():\n    global counter\n    return counter", "global/nonlocal"),
            ("def main(:\n    return 1", "Invalid code syntax"),
            ("def main():\n    g = (x for x in [1])\n    return g.gi_frame", "attribute not allowed: gi_frame"),
            ("def main():\n    return log.info.f_globals", "attribute not allowed: f_globals"),
        ],
    )
    def test_rejected(self, code, message):
        with pytest.raises(SandboxError, match=message):
            check_code(code, "calc")

    def test_accepted(self):
        check_code("def main(x):\n    return json.dumps({'x': x})")


class TestProcessSandbox:
    def test_main_receives_args(self, sandbox):
        result = sandbox.run("def main(x):\n    return x + 1", {}, [41])
        assert result.value == 42

    def test_bindings_visible(self, sandbox):
        code = "def main():\n    return fetch['status'] * 2"
        assert sandbox.run(code, {"fetch": {"status": 21}}, []).value == 42

    def test_json_and_math_injected(self, sandbox):
        code = "def main():\n    return json.loads('[1, 2]') + [math.floor(2.7)]"
        assert sandbox.run(code, {}, []).value == [1, 2, 2]

    def test_modules_not_reachable_through_json(self, sandbox):
        code = (
            "def main():\n"
            "    os = json.decoder.re.enum.sys.modules['os']\n"
            "    return os.popen('id -u').read()"
        )

        with pytest.raises(SandboxError, match="AttributeError"):
            sandbox.run(code, {}, [])

    def test_math_functions_and_constants(self, sandbox):
        code = "def main():\n    return [math.sqrt(16), math.pi > 3, math.inf > 10]"
        assert sandbox.run(code, {}, []).value == [4.0, True, True]

    def test_logs_returned(self, sandbox):
        code = (
            "def main(a):\n"
            "    log('got', a)\n"
            "    logger.warning('careful')\n"
            "    print('printed')\n"
            "    return a"
        )

        result = sandbox.run(code, {}, [7])

        assert result.logs == [
            {"level": "info", "message": "got 7"},
            {"level": "warning", "message": "careful"},
            {"level": "info", "message": "printed"},
        ]

    def test_exception_in_main(self, sandbox):
        code = "def main():\n    log('before failure')\n    raise ValueError('boom')"

        with pytest.raises(SandboxError) as exc_info:
            sandbox.run(code, {}, [], step_id="calc")

        assert exc_info.value.message == "ValueError: boom"
        assert exc_info.value.step_id == "calc"
        assert exc_info.value.logs == [{"level": "info", "message": "before failure"}]

    def test_missing_main(self, sandbox):
        with pytest.raises(SandboxError, match="must define a main function"):
            sandbox.run("value = 1", {}, [])

    def test_result_must_be_json(self, sandbox):
        with pytest.raises(SandboxError, match="TypeError"):
            sandbox.run("def main():\n    return {1, 2}", {}, [])

    def test_restricted_builtins(self, sandbox):
        with pytest.raises(SandboxError, match="NameError"):
            sandbox.run("def main():\n    return open('/etc/hostname').read()", {}, [])

    def test_timeout(self, sandbox):
        started = time.monotonic()

        with pytest.raises(SandboxTimeoutError, match="timed out after 300ms"):
            sandbox.run("def main():\n    while True:\n        pass", {}, [], timeout_ms=300)

        assert time.monotonic() - started < 5

    def test_cancellation_kills_child(self, sandbox):
        token = CancellationToken()
        threading.Timer(0.3, token.cancel).start()

        with pytest.raises(RunCancelledError):
            sandbox.run("def main():\n    while True:\n        pass", {}, [], cancel_token=token)


class TestCodeStepHandler:
    @pytest.fixture
    def context(self, make_workflow):
        definition = parse_workflow(
            make_workflow(
                [{"id": "start", "type": "start"}],
                inputs={"a": {"type": "integer"}, "b": {"type": "integer"}, "c": {"type": "integer"}},
            )
        )
        return ExecutionContext.create(definition, {"a": 1, "c": 3})

    def code_step(self, **config):
        return StepSpec.model_validate({"id": "calc", "type": "code", "config": config})

    def test_main_args_skip_missing_inputs(self, context):
        assert build_main_args(context) == [1, 3]

    def test_runs_python(self, sandbox, context):
        step = self.code_step(language="python3", code="def main(a, c):\n    return a + c + sys_total", timeout=5000)
        context.record("sys_total", 10)
        assert CodeStepHandler(sandbox).execute(step, context) == 14

    def test_unsupported_language(self, sandbox, context):
        step = self.code_step(language="javascript", code="function main() { return 1 }")
        with pytest.raises(UnsupportedLanguageError):
            CodeStepHandler(sandbox).execute(step, context)

    def test_missing_code(self, sandbox, context):
        with pytest.raises(StepExecutionError, match="missing code"):
            CodeStepHandler(sandbox).execute(self.code_step(language="python3"), context)

    def test_logs_reemitted(self, sandbox, context, caplog):
        step = self.code_step(code="def main(a, c):\n    log('sum is', a + c)\n    return a + c")

        with caplog.at_level(logging.INFO, logger="stepflow.steps.code"):
            CodeStepHandler(sandbox).execute(step, context)

        assert "[Step calc] sum is 4" in caplog.messages


def test_emit_logs_levels(caplog):
    with caplog.at_level(logging.DEBUG, logger="stepflow.steps.code"):
        emit_logs("calc", [{"level": "error", "message": "bad"}, {"level": "debug", "message": "detail"}])

    assert [(r.levelno, r.getMessage()) for r in caplog.records] == [
        (logging.ERROR, "[Step calc] bad"),
        (logging.DEBUG, "[Step calc] detail"),
    ]
