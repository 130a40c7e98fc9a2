"""Dependency graph validation and tiered topological sort.

Both walks use an explicit work stack instead of recursion so that very
deep dependency chains cannot exhaust the interpreter stack. Nodes are
coloured white (unseen), gray (on the current path) and black (finished);
a black node is never descended into again, keeping each walk linear in
nodes + edges.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator, Sequence

import structlog

from tm2bd.models import SortedTask, Tm2bdError, ValidationResult
from tm2bd.schema import Task

logger = structlog.get_logger()

_GRAY = 1
_BLACK = 2


class GraphError(Tm2bdError):
    """Raised when the task dependency graph cannot be ordered."""


class UnresolvedDependencyError(GraphError):
    """Raised when a task depends on an id that is not in the task set."""

    def __init__(self, task_id: int, missing_id: int) -> None:
        self.task_id = task_id
        self.missing_id = missing_id
        super().__init__(f"Task {missing_id} referenced by task {task_id} but not found")


class CircularDependencyError(GraphError):
    """Raised when the dependency graph contains a cycle."""

    def __init__(self, cycle: list[int]) -> None:
        self.cycle = cycle
        super().__init__(f"Circular dependency detected: {format_cycle(cycle)}")


class DuplicateTaskIdError(GraphError):
    """Raised when two tasks share an id."""

    def __init__(self, task_id: int) -> None:
        self.task_id = task_id
        super().__init__(f"Duplicate task id {task_id}")


class GraphValidationError(GraphError):
    """Raised when one or both validators report violations."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("Dependency validation failed:\n" + "\n".join(f"  {e}" for e in errors))


def format_cycle(cycle: Sequence[int]) -> str:
    return " → ".join(str(task_id) for task_id in cycle)


def validate_dependency_ids(tasks: Sequence[Task]) -> ValidationResult:
    """Report every dependency that points at a task id not in ``tasks``."""
    valid_ids = {task.id for task in tasks}
    errors = [
        f"Task {task.id} depends on non-existent task {dep_id}"
        for task in tasks
        for dep_id in task.dependencies
        if dep_id not in valid_ids
    ]
    return ValidationResult(errors=errors)


def find_cycles(tasks: Sequence[Task]) -> list[list[int]]:
    """Return every cycle met during a depth-first walk of ``tasks``.

    Each cycle is the path slice from the first occurrence of the repeated
    task through the repeated task itself, e.g. ``[1, 3, 2, 1]``. Missing
    dependency ids are ignored here; ``validate_dependency_ids`` reports them.
    """
    task_map = {task.id: task for task in tasks}
    colour: dict[int, int] = {}
    cycles: list[list[int]] = []

    for root in tasks:
        if root.id in colour:
            continue

        path: list[int] = [root.id]
        colour[root.id] = _GRAY
        stack: list[Iterator[int]] = [iter(root.dependencies)]

        while stack:
            dep_id = next(stack[-1], None)
            if dep_id is None:
                stack.pop()
                colour[path.pop()] = _BLACK
                continue

            if dep_id not in task_map:
                continue
            state = colour.get(dep_id)
            if state == _BLACK:
                continue
            if state == _GRAY:
                start = path.index(dep_id)
                cycles.append(path[start:] + [dep_id])
                continue

            colour[dep_id] = _GRAY
            path.append(dep_id)
            stack.append(iter(task_map[dep_id].dependencies))

    return cycles


def validate_circular_dependencies(tasks: Sequence[Task]) -> ValidationResult:
    """Report every dependency cycle among ``tasks``."""
    errors = [f"Circular dependency: {format_cycle(cycle)}" for cycle in find_cycles(tasks)]
    return ValidationResult(errors=errors)


def validate_tasks(tasks: Sequence[Task]) -> tuple[ValidationResult, ValidationResult]:
    """Run both graph checks; neither stops at the first violation."""
    return validate_dependency_ids(tasks), validate_circular_dependencies(tasks)


def topological_sort(tasks: Sequence[Task]) -> list[SortedTask]:
    """Assign a dependency tier to every task and order by (tier, id).

    A task's tier is one more than the highest tier among its dependencies,
    or 0 without dependencies. The result does not depend on the order of
    ``tasks``.

    Raises:
        UnresolvedDependencyError: A dependency id is not in ``tasks``.
        CircularDependencyError: The dependencies form a cycle.
        DuplicateTaskIdError: Two tasks share an id.
    """
    task_map = {task.id: task for task in tasks}
    if len(task_map) != len(tasks):
        counts = Counter(task.id for task in tasks)
        raise DuplicateTaskIdError(min(task_id for task_id, n in counts.items() if n > 1))

    colour: dict[int, int] = {}
    tiers: dict[int, int] = {}

    for root_id in sorted(task_map):
        if root_id in colour:
            continue

        path: list[int] = [root_id]
        colour[root_id] = _GRAY
        stack: list[Iterator[int]] = [iter(task_map[root_id].dependencies)]

        while stack:
            current = path[-1]
            dep_id = next(stack[-1], None)
            if dep_id is None:
                stack.pop()
                path.pop()
                deps = task_map[current].dependencies
                tiers[current] = max((tiers[d] for d in deps), default=-1) + 1
                colour[current] = _BLACK
                continue

            if dep_id not in task_map:
                raise UnresolvedDependencyError(current, dep_id)
            state = colour.get(dep_id)
            if state == _BLACK:
                continue
            if state == _GRAY:
                raise CircularDependencyError(path[path.index(dep_id):] + [dep_id])

            colour[dep_id] = _GRAY
            path.append(dep_id)
            stack.append(iter(task_map[dep_id].dependencies))

    ordered = sorted(task_map.values(), key=lambda t: (tiers[t.id], t.id))
    result = [SortedTask(task=task, tier=tiers[task.id]) for task in ordered]
    logger.debug("tasks_sorted", count=len(result), tiers=tier_count(result))
    return result


def tier_count(sorted_tasks: Sequence[SortedTask]) -> int:
    """Number of distinct tiers (highest tier + 1), 0 when empty."""
    if not sorted_tasks:
        return 0
    return max(s.tier for s in sorted_tasks) + 1
