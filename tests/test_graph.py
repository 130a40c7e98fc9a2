"""Tests for tm2bd.graph."""

import random

import pytest

from tm2bd.graph import (
    CircularDependencyError,
    DuplicateTaskIdError,
    GraphError,
    UnresolvedDependencyError,
    find_cycles,
    tier_count,
    topological_sort,
    validate_circular_dependencies,
    validate_dependency_ids,
    validate_tasks,
)
from tm2bd.schema import Task


def _make_task(task_id: int, deps: list[int] | None = None) -> Task:
    return Task(
        id=task_id,
        title=f"Task {task_id}",
        description="desc",
        status="pending",
        priority="medium",
        dependencies=deps or [],
    )


class TestValidateDependencyIds:
    """Tests for referential integrity checks."""

    def test_valid_references(self):
        result = validate_dependency_ids([_make_task(1), _make_task(2, [1])])
        assert result.valid is True
        assert result.errors == []

    def test_reports_missing_reference(self):
        result = validate_dependency_ids([_make_task(1, [99])])
        assert result.valid is False
        assert result.errors == ["Task 1 depends on non-existent task 99"]

    def test_reports_every_violation(self):
        tasks = [_make_task(1, [98, 99]), _make_task(2, [1, 97])]
        result = validate_dependency_ids(tasks)
        assert len(result.errors) == 3

    def test_does_not_mutate_input(self):
        tasks = [_make_task(2, [1]), _make_task(1)]
        validate_dependency_ids(tasks)
        assert [t.id for t in tasks] == [2, 1]
        assert tasks[0].dependencies == [1]


class TestValidateCircularDependencies:
    """Tests for cycle detection."""

    def test_acyclic_graph_is_valid(self):
        tasks = [_make_task(1), _make_task(2, [1]), _make_task(3, [1, 2])]
        assert validate_circular_dependencies(tasks).valid is True

    def test_three_node_cycle(self):
        tasks = [_make_task(1, [3]), _make_task(2, [1]), _make_task(3, [2])]
        result = validate_circular_dependencies(tasks)
        assert result.valid is False
        assert result.errors == ["Circular dependency: 1 → 3 → 2 → 1"]

    def test_self_dependency_is_a_cycle(self):
        assert find_cycles([_make_task(1, [1])]) == [[1, 1]]

    def test_cycle_slice_excludes_lead_in(self):
        tasks = [_make_task(1, [2]), _make_task(2, [3]), _make_task(3, [2])]
        assert find_cycles(tasks) == [[2, 3, 2]]

    def test_reports_every_cycle(self):
        tasks = [_make_task(1, [2]), _make_task(2, [1]), _make_task(3, [4]), _make_task(4, [3])]
        assert len(validate_circular_dependencies(tasks).errors) == 2

    def test_ignores_missing_references(self):
        assert validate_circular_dependencies([_make_task(1, [99])]).valid is True

    def test_deep_chain_does_not_recurse(self):
        size = 5000
        tasks = [_make_task(i, [i - 1] if i > 1 else []) for i in range(1, size + 1)]
        assert validate_circular_dependencies(tasks).valid is True

    def test_validate_tasks_runs_both_checks(self):
        id_result, cycle_result = validate_tasks([_make_task(1, [1, 99])])
        assert id_result.valid is False
        assert cycle_result.valid is False


class TestTopologicalSort:
    """Tests for tiered topological sort."""

    def test_linear_chain(self):
        tasks = [_make_task(1), _make_task(2, [1]), _make_task(3, [1, 2])]
        result = topological_sort(tasks)
        assert [s.task.id for s in result] == [1, 2, 3]
        assert [s.tier for s in result] == [0, 1, 2]

    def test_no_dependencies_orders_by_id(self):
        tasks = [_make_task(3), _make_task(1), _make_task(2)]
        result = topological_sort(tasks)
        assert [s.task.id for s in result] == [1, 2, 3]
        assert all(s.tier == 0 for s in result)

    def test_tier_is_longest_path(self):
        tasks = [_make_task(1), _make_task(2, [1]), _make_task(3, [2]), _make_task(4, [1])]
        tiers = {s.task.id: s.tier for s in topological_sort(tasks)}
        assert tiers == {1: 0, 2: 1, 3: 2, 4: 1}

    def test_dependencies_precede_dependents(self):
        tasks = [
            _make_task(5, [3, 4]),
            _make_task(4, [1]),
            _make_task(3, [2]),
            _make_task(2),
            _make_task(1),
            _make_task(6, [5, 2]),
        ]
        order = [s.task.id for s in topological_sort(tasks)]
        for task in tasks:
            for dep in task.dependencies:
                assert order.index(dep) < order.index(task.id)

    def test_deterministic_regardless_of_input_order(self):
        tasks = [_make_task(i, [j for j in range(1, i) if (i + j) % 3 == 0]) for i in range(1, 30)]
        expected = [(s.task.id, s.tier) for s in topological_sort(tasks)]
        rng = random.Random(7)
        for _ in range(5):
            shuffled = tasks[:]
            rng.shuffle(shuffled)
            assert [(s.task.id, s.tier) for s in topological_sort(shuffled)] == expected

    def test_cycle_raises_cycle_error(self):
        tasks = [_make_task(1, [3]), _make_task(2, [1]), _make_task(3, [2])]
        with pytest.raises(CircularDependencyError) as excinfo:
            topological_sort(tasks)
        assert set(excinfo.value.cycle) == {1, 2, 3}
        assert not isinstance(excinfo.value, UnresolvedDependencyError)

    def test_self_dependency_raises_cycle_error(self):
        with pytest.raises(CircularDependencyError):
            topological_sort([_make_task(1, [1])])

    def test_missing_reference_raises_unresolved_error(self):
        with pytest.raises(UnresolvedDependencyError) as excinfo:
            topological_sort([_make_task(1, [99])])
        assert excinfo.value.task_id == 1
        assert excinfo.value.missing_id == 99
        assert not isinstance(excinfo.value, CircularDependencyError)
        assert isinstance(excinfo.value, GraphError)

    def test_duplicate_id_raises(self):
        tasks = [_make_task(4), _make_task(2), _make_task(4, [2]), _make_task(2)]
        with pytest.raises(DuplicateTaskIdError) as excinfo:
            topological_sort(tasks)
        assert excinfo.value.task_id == 2
        assert isinstance(excinfo.value, GraphError)

    def test_empty_input(self):
        assert topological_sort([]) == []

    def test_deep_chain_does_not_recurse(self):
        size = 5000
        tasks = [_make_task(i, [i - 1] if i > 1 else []) for i in range(1, size + 1)]
        result = topological_sort(tasks)
        assert result[-1].tier == size - 1


class TestTierCount:
    def test_counts_tiers(self):
        tasks = [_make_task(1), _make_task(2, [1])]
        assert tier_count(topological_sort(tasks)) == 2

    def test_empty(self):
        assert tier_count([]) == 0
