"""
Dependency graph management and execution planning.

Handles building and querying step dependency graphs, cycle detection and
computing the execution order used by the engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Sequence, Set

from stepflow.exceptions import CircularDependencyError

if TYPE_CHECKING:
    from stepflow.dsl.models import StepSpec


def _step_id(step: Any) -> str:
    return step["id"] if isinstance(step, Mapping) else step.id


def _step_depends_on(step: Any) -> List[str]:
    if isinstance(step, Mapping):
        return list(step.get("depends_on") or [])
    return list(step.depends_on)


def build_dependency_graph(steps: Iterable[Any]) -> Dict[str, List[str]]:
    """Build the step dependency graph.

    Accepts either StepSpec objects or raw step dictionaries.

    Args:
        steps: Steps in document order.

    Returns:
        Dependency graph dictionary: {step_id: [ids it depends on]}.
        Later duplicates of an id are merged into the first entry.
    """
    graph: Dict[str, List[str]] = {}
    for step in steps:
        deps = graph.setdefault(_step_id(step), [])
        for dep_id in _step_depends_on(step):
            if dep_id not in deps:
                deps.append(dep_id)
    return graph


def build_dependents_graph(dependencies: Mapping[str, Sequence[str]]) -> Dict[str, List[str]]:
    """Reverse a dependency graph: {step_id: [ids that depend on it]}."""
    dependents: Dict[str, List[str]] = {step_id: [] for step_id in dependencies}
    for step_id, deps in dependencies.items():
        for dep_id in deps:
            if dep_id in dependents:
                dependents[dep_id].append(step_id)
    return dependents


def detect_cycles(dependencies: Mapping[str, Sequence[str]]) -> List[List[str]]:
    """Detect circular dependencies using DFS with a recursion stack.

    Every back-edge into the active recursion stack yields one cycle; the same
    set of steps is reported once even when reached from several roots.
    Dependencies on unknown steps are ignored.

    Args:
        dependencies: Dependency graph.

    Returns:
        List of cycles, each a list of step ids closing on its first element
        (e.g. ``["a", "b", "a"]``). Empty list if the graph is acyclic.
    """
    cycles: List[List[str]] = []
    seen_cycles: Set[frozenset] = set()
    visited: Set[str] = set()
    rec_stack: Set[str] = set()
    path: List[str] = []

    def dfs(step_id: str) -> None:
        visited.add(step_id)
        rec_stack.add(step_id)
        path.append(step_id)

        for dep_id in dependencies.get(step_id, ()):
            if dep_id not in dependencies:
                continue
            if dep_id not in visited:
                dfs(dep_id)
            elif dep_id in rec_stack:
                cycle_start = path.index(dep_id)
                cycle = path[cycle_start:] + [dep_id]
                key = frozenset(cycle)
                if key not in seen_cycles:
                    seen_cycles.add(key)
                    cycles.append(cycle)

        rec_stack.remove(step_id)
        path.pop()

    for step_id in dependencies:
        if step_id not in visited:
            dfs(step_id)

    return cycles


def ancestors(step_id: str, dependencies: Mapping[str, Sequence[str]]) -> Set[str]:
    """All steps that ``step_id`` transitively depends on."""
    found: Set[str] = set()
    stack = list(dependencies.get(step_id, ()))
    while stack:
        current = stack.pop()
        if current in found or current not in dependencies:
            continue
        found.add(current)
        stack.extend(dependencies.get(current, ()))
    return found


def order_steps(steps: Sequence[StepSpec]) -> List[StepSpec]:
    """Compute a valid execution order for the steps.

    Repeatedly takes every remaining step whose dependencies are all placed,
    in document order, until no steps remain. The result is deterministic for
    a given document.

    Args:
        steps: Steps in document order.

    Returns:
        Steps in execution order.

    Raises:
        CircularDependencyError: If a pass finds no ready step while steps
            remain (a cycle, or a dependency on a step that does not exist).
    """
    resolved: List[StepSpec] = []
    placed: Set[str] = set()
    remaining = list(steps)

    while remaining:
        ready = [step for step in remaining if all(dep in placed for dep in step.depends_on)]
        if not ready:
            raise CircularDependencyError(step.id for step in remaining)

        for step in ready:
            resolved.append(step)
            placed.add(step.id)
        remaining = [step for step in remaining if step.id not in placed]

    return resolved
