"""Tests for dependency graphs and execution ordering."""

import pytest

from stepflow.dsl.models import StepSpec
from stepflow.exceptions import CircularDependencyError
from stepflow.flow.planner import (
    ancestors,
    build_dependency_graph,
    build_dependents_graph,
    detect_cycles,
    order_steps,
)


def make_steps(*specs):
    """Build StepSpecs from (id, depends_on) pairs."""
    return [StepSpec.model_validate({"id": step_id, "type": "start", "depends_on": deps}) for step_id, deps in specs]


def ids(steps):
    return [step.id for step in steps]


class TestOrderSteps:
    def test_linear_chain(self):
        steps = make_steps(("end", ["fetch"]), ("fetch", ["start"]), ("start", []))
        assert ids(order_steps(steps)) == ["start", "fetch", "end"]

    def test_ready_steps_keep_document_order(self):
        steps = make_steps(
            ("end", ["b", "c"]),
            ("a", []),
            ("c", ["a"]),
            ("b", ["a"]),
        )
        assert ids(order_steps(steps)) == ["a", "c", "b", "end"]

    def test_every_step_after_its_dependencies(self):
        steps = make_steps(
            ("report", ["merge"]),
            ("merge", ["left", "right"]),
            ("right", ["start"]),
            ("left", ["start"]),
            ("start", []),
            ("audit", ["start"]),
        )

        order = ids(order_steps(steps))

        position = {step_id: index for index, step_id in enumerate(order)}
        for step in steps:
            for dep in step.depends_on:
                assert position[dep] < position[step.id]

    def test_deterministic(self):
        steps = make_steps(("b", []), ("a", []), ("c", ["a", "b"]))
        assert ids(order_steps(steps)) == ids(order_steps(list(steps)))

    def test_cycle_raises(self):
        steps = make_steps(("start", []), ("a", ["b"]), ("b", ["a"]))

        with pytest.raises(CircularDependencyError) as exc_info:
            order_steps(steps)

        assert exc_info.value.step_ids == ["a", "b"]

    def test_missing_dependency_never_becomes_ready(self):
        with pytest.raises(CircularDependencyError):
            order_steps(make_steps(("a", ["ghost"])))

    def test_empty(self):
        assert order_steps([]) == []


class TestGraphs:
    def test_dependency_graph_from_dicts(self):
        graph = build_dependency_graph(
            [{"id": "a"}, {"id": "b", "depends_on": ["a"]}, {"id": "b", "depends_on": ["a", "c"]}]
        )
        assert graph == {"a": [], "b": ["a", "c"]}

    def test_dependents_graph(self):
        dependents = build_dependents_graph({"a": [], "b": ["a"], "c": ["a", "ghost"]})
        assert dependents == {"a": ["b", "c"], "b": [], "c": []}

    def test_detect_cycles(self):
        assert detect_cycles({"a": [], "b": ["a"]}) == []
        assert detect_cycles({"a": ["c"], "b": ["a"], "c": ["b"]}) == [["a", "c", "b", "a"]]

    def test_ancestors(self):
        graph = {"start": [], "a": ["start"], "b": ["a"], "other": []}
        assert ancestors("b", graph) == {"a", "start"}
        assert ancestors("start", graph) == set()
