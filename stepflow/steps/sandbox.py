"""
Process sandbox for ``code`` steps.

Step code is checked statically, then executed in a separate isolated
interpreter (``python -I``) with an address-space limit and a wall-clock
timeout. The child only sees what is injected: restricted builtins,
``json.dumps``/``json.loads``, the public ``math`` functions and constants, a
``log``/``logger`` sink and JSON copies of the scope variables.
"""

from __future__ import annotations

import ast
import json
import logging
import subprocess
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from stepflow.exceptions import RunCancelledError, SandboxError, SandboxTimeoutError

if TYPE_CHECKING:
    from stepflow.flow.context import CancellationToken

logger = logging.getLogger(__name__)

RUNNER_PATH = Path(__file__).with_name("_sandbox_runner.py")
POLL_INTERVAL = 0.05

# Frame and code introspection reaches the runner's globals without dunders
FORBIDDEN_ATTRIBUTES = frozenset(
    {
        "ag_code",
        "ag_frame",
        "cr_await",
        "cr_code",
        "cr_frame",
        "f_back",
        "f_builtins",
        "f_code",
        "f_globals",
        "f_locals",
        "gi_code",
        "gi_frame",
        "gi_yieldfrom",
        "tb_frame",
        "tb_next",
    }
)


@dataclass
class SandboxResult:
    """Value returned by ``main`` plus the log lines it emitted."""

    value: Any
    logs: list[dict[str, str]] = field(default_factory=list)


def check_code(code: str, step_id: str = "") -> ast.Module:
    """Reject step code that tries to leave the sandbox.

    Imports, ``global``/``nonlocal``, dunder names and attributes, and frame
    introspection attributes are refused before a process is started.

    Raises:
        SandboxError: If the code does not parse or uses a forbidden construct.
    """
    try:
        tree = ast.parse(code)
    except SyntaxError as e:
        raise SandboxError(f"Invalid code syntax at line {e.lineno}: {e.msg}", step_id=step_id) from e

    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            raise SandboxError("Import statements are not allowed in code steps", step_id=step_id)
        if isinstance(node, (ast.Global, ast.Nonlocal)):
            raise SandboxError("global/nonlocal statements are not allowed in code steps", step_id=step_id)
        if isinstance(node, ast.Attribute) and (
            node.attr.startswith("__") or node.attr in FORBIDDEN_ATTRIBUTES
        ):
            raise SandboxError(f"Access to attribute not allowed: {node.attr}", step_id=step_id)
        if isinstance(node, ast.Name) and node.id.startswith("__"):
            raise SandboxError(f"Access to name not allowed: {node.id}", step_id=step_id)
    return tree


class ProcessSandbox:
    """Runs python step code in a resource-limited child interpreter.

    Examples:
        >>> sandbox = ProcessSandbox(memory_limit_mb=128)
        >>> sandbox.run("def main(x):\\n    return x + 1", {"x": 41}, [41]).value
        42
    """

    def __init__(self, memory_limit_mb: int = 256, timeout_ms: int = 30000):
        """Initialize ProcessSandbox.

        Args:
            memory_limit_mb: Address-space limit of the child (POSIX only).
            timeout_ms: Default wall-clock limit per run.
        """
        self.memory_limit_mb = memory_limit_mb
        self.timeout_ms = timeout_ms

    def run(
        self,
        code: str,
        bindings: dict[str, Any],
        args: list[Any],
        step_id: str = "",
        timeout_ms: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> SandboxResult:
        """Execute ``code`` and call its ``main(*args)``.

        Args:
            code: Step body; must define ``main``.
            bindings: Variables made visible to the code (copied as JSON).
            args: Positional arguments for ``main``.
            step_id: Owning step (error messages).
            timeout_ms: Overrides the default wall-clock limit.
            cancel_token: Kills the child when the run is cancelled.

        Raises:
            SandboxError: Code rejected, raised inside ``main``, or the child
                died.
            SandboxTimeoutError: Wall-clock limit exceeded.
            RunCancelledError: The run was cancelled while the child ran.
        """
        check_code(code, step_id)
        payload = json.dumps(
            {
                "code": code,
                "bindings": bindings,
                "args": args,
                "step_id": step_id,
                "memory_limit_mb": self.memory_limit_mb,
            },
            default=str,
        )
        timeout_s = (timeout_ms or self.timeout_ms) / 1000.0

        process = subprocess.Popen(
            [sys.executable, "-I", str(RUNNER_PATH)],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        deadline = time.monotonic() + timeout_s
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._kill(process)
                raise SandboxTimeoutError(
                    f"Code execution timed out after {timeout_s * 1000:.0f}ms", step_id=step_id
                )
            try:
                stdout, stderr = process.communicate(
                    input=payload, timeout=min(POLL_INTERVAL, remaining)
                )
                break
            except subprocess.TimeoutExpired:
                if cancel_token is not None and cancel_token.cancelled:
                    self._kill(process)
                    raise RunCancelledError(f"Run cancelled during step {step_id}")

        return self._parse_reply(process.returncode, stdout, stderr, step_id)

    @staticmethod
    def _kill(process: subprocess.Popen) -> None:
        process.kill()
        process.communicate()

    @staticmethod
    def _parse_reply(returncode: int, stdout: str, stderr: str, step_id: str) -> SandboxResult:
        try:
            reply = json.loads(stdout) if stdout.strip() else None
        except json.JSONDecodeError:
            reply = None

        if not isinstance(reply, dict):
            detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
            if "MemoryError" in stderr:
                detail = "Memory limit exceeded"
            logger.debug(f"Sandbox for step {step_id} exited with {returncode}: {stderr}")
            raise SandboxError(
                f"Sandbox process failed (exit code {returncode}): {detail}", step_id=step_id
            )

        logs = reply.get("logs") or []
        if not reply.get("ok"):
            raise SandboxError(
                f"{reply.get('error_type', 'Error')}: {reply.get('error', '')}",
                step_id=step_id,
                logs=logs,
            )
        return SandboxResult(value=reply.get("result"), logs=logs)
