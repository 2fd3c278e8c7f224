"""
Child-process entry point for sandboxed code steps.

Started as ``python -I _sandbox_runner.py``. Reads one JSON payload from
stdin, executes the step body with a restricted set of builtins and writes
one JSON object to stdout. Only the standard library is imported here.

Payload: {code, bindings, args, step_id, memory_limit_mb}
Reply:   {ok: true, result, logs} | {ok: false, error, error_type, logs}
"""

import json
import math
import sys
import types

if sys.platform != "win32":
    import resource
else:
    resource = None


def _limit_memory(limit_mb):
    if resource is None or not limit_mb:
        return
    limit = int(limit_mb) * 1024 * 1024
    resource.setrlimit(resource.RLIMIT_AS, (limit, limit))


class _LogSink:
    """``logger`` object exposed to step code."""

    def __init__(self, lines):
        self._lines = lines

    def _emit(self, level, args):
        self._lines.append({"level": level, "message": " ".join(str(a) for a in args)})

    def debug(self, *args):
        self._emit("debug", args)

    def info(self, *args):
        self._emit("info", args)

    def warning(self, *args):
        self._emit("warning", args)

    def error(self, *args):
        self._emit("error", args)

    def __call__(self, *args):
        self._emit("info", args)


def _json_namespace():
    # Module objects would expose their imports (json.decoder.re...) to step code
    return types.SimpleNamespace(dumps=json.dumps, loads=json.loads)


def _math_namespace():
    return types.SimpleNamespace(**{name: getattr(math, name) for name in dir(math) if not name.startswith("_")})


def _safe_builtins(log):
    return {
        "abs": abs,
        "all": all,
        "any": any,
        "bool": bool,
        "dict": dict,
        "divmod": divmod,
        "enumerate": enumerate,
        "filter": filter,
        "float": float,
        "int": int,
        "isinstance": isinstance,
        "len": len,
        "list": list,
        "map": map,
        "max": max,
        "min": min,
        "pow": pow,
        "print": log,
        "range": range,
        "reversed": reversed,
        "round": round,
        "set": set,
        "sorted": sorted,
        "str": str,
        "sum": sum,
        "tuple": tuple,
        "zip": zip,
        "Exception": Exception,
        "KeyError": KeyError,
        "TypeError": TypeError,
        "ValueError": ValueError,
    }


def run(payload):
    lines = []
    log = _LogSink(lines)

    namespace = dict(payload.get("bindings") or {})
    namespace.update(
        {
            "__builtins__": _safe_builtins(log),
            "json": _json_namespace(),
            "math": _math_namespace(),
            "log": log,
            "logger": log,
        }
    )

    try:
        exec(compile(payload["code"], "<step {}>".format(payload.get("step_id", "")), "exec"), namespace)
        entry = namespace.get("main")
        if not callable(entry):
            return {
                "ok": False,
                "error": "Code must define a main function",
                "error_type": "NameError",
                "logs": lines,
            }
        result = entry(*(payload.get("args") or []))
        json.dumps(result)
    except MemoryError:
        return {"ok": False, "error": "Memory limit exceeded", "error_type": "MemoryError", "logs": lines}
    except Exception as e:
        return {"ok": False, "error": str(e), "error_type": type(e).__name__, "logs": lines}
    return {"ok": True, "result": result, "logs": lines}


def main():
    payload = json.loads(sys.stdin.read())
    _limit_memory(payload.get("memory_limit_mb"))
    reply = run(payload)
    sys.stdout.write(json.dumps(reply, default=str))
    sys.stdout.flush()


if __name__ == "__main__":
    main()
