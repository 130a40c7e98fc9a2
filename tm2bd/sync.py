"""Phase-ordered sync of task-master tasks into Beads."""

from __future__ import annotations

import shlex
from collections.abc import Callable, Sequence
from pathlib import Path

import structlog

from tm2bd.beads_client import BeadsGateway
from tm2bd.graph import GraphValidationError, tier_count, topological_sort, validate_tasks
from tm2bd.id_mapper import IdMapper, MappingError
from tm2bd.models import (
    PRIORITY_MAP,
    STATUS_ACTIONS,
    DependencyCounts,
    SortedTask,
    StatusAction,
    SyncSummary,
    TaskPriority,
    TaskStatus,
)
from tm2bd.schema import Subtask, Task

logger = structlog.get_logger()

# (phase, current, total)
ProgressCallback = Callable[[str, int, int], None]


def map_priority(priority: TaskPriority | str) -> int:
    return PRIORITY_MAP[TaskPriority(priority)]


def map_status(status: TaskStatus | str) -> StatusAction:
    """Translate a task-master status into a Beads action.

    ``done`` and ``cancelled`` close the issue, ``pending`` needs nothing,
    the rest set a Beads status. Unknown values map to no action.
    """
    try:
        return STATUS_ACTIONS[TaskStatus(status)]
    except ValueError:
        return StatusAction()


def format_epic_description(task: Task) -> str:
    parts = ["## Description", task.description, ""]

    if task.details:
        parts.extend(["## Implementation Details", task.details, ""])

    if task.testStrategy:
        parts.extend(["## Test Strategy", task.testStrategy, ""])

    parts.append("## Metadata")
    parts.append(f"- Task-Master ID: {task.id}")
    if task.complexity:
        parts.append(f"- Complexity: {task.complexity}/10")
    parts.append(f"- Original Status: {task.status.value}")

    return "\n".join(parts)


def format_child_description(subtask: Subtask) -> str:
    parts = [subtask.description]

    if subtask.details:
        parts.extend(["", "## Implementation Details", subtask.details])

    return "\n".join(parts)


def count_subtasks(tasks: Sequence[Task]) -> int:
    return sum(len(task.subtasks or []) for task in tasks)


def plan_operations(
    sorted_tasks: Sequence[SortedTask], tasks: Sequence[Task], mapper: IdMapper | None = None
) -> list[str]:
    """Describe the bd commands a sync would issue, without running any.

    Epics and children already in ``mapper`` are listed as reused under
    their Beads id. Ids that do not exist yet are shown as ``<epic-N>`` and
    ``<epic-N.M>`` placeholders.
    """
    if mapper is None:
        mapper = IdMapper()

    def epic_ref(task_id: int) -> str:
        return mapper.get_epic_id(task_id) or f"<epic-{task_id}>"

    def child_ref(task_id: int, subtask_id: int) -> str:
        return mapper.get_subtask_id(task_id, subtask_id) or f"<epic-{task_id}.{subtask_id}>"

    lines: list[str] = []

    for entry in sorted_tasks:
        task = entry.task
        existing = mapper.get_epic_id(task.id)
        if existing:
            lines.append(f"[tier {entry.tier}] reuse {existing} ({shlex.quote(task.title)})")
        else:
            lines.append(
                f"[tier {entry.tier}] bd create {shlex.quote(task.title)} "
                f"-t epic -p {map_priority(task.priority)}"
            )
        for subtask in sorted(task.subtasks or [], key=lambda s: s.id):
            existing = mapper.get_subtask_id(task.id, subtask.id)
            if existing:
                lines.append(f"    reuse {existing} ({shlex.quote(subtask.title)})")
            else:
                lines.append(
                    f"    bd create {shlex.quote(subtask.title)} --parent {epic_ref(task.id)}"
                )

    for task in tasks:
        for dep_id in task.dependencies:
            lines.append(f"bd dep add {epic_ref(task.id)} {epic_ref(dep_id)}")
        for subtask in task.subtasks or []:
            for dep_id in subtask.dependencies or []:
                lines.append(
                    f"bd dep add {child_ref(task.id, subtask.id)} {child_ref(task.id, dep_id)}"
                )

    for task in tasks:
        targets = [(epic_ref(task.id), task.status)]
        targets.extend(
            (child_ref(task.id, subtask.id), subtask.status) for subtask in task.subtasks or []
        )
        for ref, status in targets:
            action = map_status(status)
            if action.close:
                lines.append(f"bd close {ref}")
            elif action.status:
                lines.append(f"bd update {ref} -s {action.status}")

    return lines


class SyncEngine:
    """Drives one sync run through its phases, strictly in order.

    Validate -> Sort -> CreateEpics -> CreateChildren -> WireDependencies
    -> SyncStatuses -> Persist. Every Beads call is made one at a time and
    any failure stops the run. Epics and children already present in the
    mapper (a resumed run) are reused instead of created again.
    """

    def __init__(
        self,
        beads: BeadsGateway,
        mapper: IdMapper,
        map_file: str | Path | None = None,
        save_partial: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._beads = beads
        self._mapper = mapper
        self._map_file = map_file
        self._save_partial = save_partial
        self._on_progress = on_progress
        self.summary = SyncSummary()

    @property
    def mapper(self) -> IdMapper:
        return self._mapper

    def run(
        self, tasks: Sequence[Task], sorted_tasks: Sequence[SortedTask] | None = None
    ) -> SyncSummary:
        """Run every phase and save the mapping.

        ``sorted_tasks`` may carry the result of an earlier ``prepare`` call.

        Raises:
            GraphValidationError: The dependency graph is invalid.
            Tm2bdError: Any later phase failed; the run stops there.
        """
        if sorted_tasks is None:
            sorted_tasks = self.prepare(tasks)
        ordered = [entry.task for entry in sorted_tasks]

        try:
            self.create_epics(ordered)
            self.create_all_children(ordered)
            self.summary.dependencies = self.wire_all_dependencies(tasks)
            self.sync_all_statuses(tasks)
        except Exception as e:
            logger.error("sync_failed", error=str(e))
            if self._save_partial and self._map_file is not None:
                logger.warning("saving_partial_mapping", path=str(self._map_file))
                self._mapper.save(self._map_file)
            raise

        if self._map_file is not None:
            self._mapper.save(self._map_file)

        logger.info(
            "sync_complete",
            epics=self.summary.epics_created,
            children=self.summary.children_created,
            reused=self.summary.epics_reused + self.summary.children_reused,
            dependencies=self.summary.dependencies.total,
        )
        return self.summary

    def prepare(self, tasks: Sequence[Task]) -> list[SortedTask]:
        """Validate the dependency graph and return the creation order."""
        self.summary = SyncSummary()
        id_result, cycle_result = validate_tasks(tasks)
        errors = id_result.errors + cycle_result.errors
        if errors:
            for error in errors:
                logger.error("dependency_invalid", error=error)
            raise GraphValidationError(errors)

        sorted_tasks = topological_sort(tasks)
        self.summary.tiers = tier_count(sorted_tasks)
        logger.info("tasks_sorted", count=len(sorted_tasks), tiers=self.summary.tiers)
        return sorted_tasks

    def create_epic(self, task: Task) -> str:
        existing = self._mapper.get_epic_id(task.id)
        if existing:
            logger.info("epic_reused", task_id=task.id, beads_id=existing)
            self.summary.epics_reused += 1
            return existing

        result = self._beads.create_epic(
            task.title, format_epic_description(task), map_priority(task.priority)
        )
        self._mapper.add_epic(task.id, result.id)
        self.summary.epics_created += 1
        logger.info("epic_created", task_id=task.id, beads_id=result.id)
        return result.id

    def create_epics(self, tasks: Sequence[Task]) -> None:
        """Create one epic per task, in the given (sorted) order."""
        for index, task in enumerate(tasks, start=1):
            self.create_epic(task)
            self._progress("epics", index, len(tasks))

    def create_children(self, task: Task, epic_id: str) -> None:
        """Create the task's subtasks under ``epic_id`` in ascending id order."""
        log = logger.bind(task_id=task.id, epic_id=epic_id)

        for subtask in sorted(task.subtasks or [], key=lambda s: s.id):
            existing = self._mapper.get_subtask_id(task.id, subtask.id)
            if existing:
                log.info("child_reused", subtask_id=subtask.id, beads_id=existing)
                self.summary.children_reused += 1
                continue

            result = self._beads.create_child(
                epic_id, subtask.title, format_child_description(subtask)
            )
            self._mapper.add_subtask(task.id, subtask.id, result.id)
            self.summary.children_created += 1
            log.info("child_created", subtask_id=subtask.id, beads_id=result.id)

    def create_all_children(self, tasks: Sequence[Task]) -> None:
        processed = 0
        total = count_subtasks(tasks)

        for task in tasks:
            self.create_children(task, self._require_epic(task.id))
            if task.subtasks:
                processed += len(task.subtasks)
                self._progress("children", processed, total)

    def wire_epic_dependencies(self, tasks: Sequence[Task]) -> int:
        count = 0
        for task in tasks:
            if not task.dependencies:
                continue

            blocked_id = self._require_epic(task.id)
            for dep_id in task.dependencies:
                blocking_id = self._mapper.get_epic_id(dep_id)
                if not blocking_id:
                    raise MappingError(f"Epic ID not found for dependency {dep_id} of task {task.id}")
                self._beads.add_dependency(blocked_id, blocking_id)
                count += 1
        return count

    def wire_subtask_dependencies(self, tasks: Sequence[Task]) -> int:
        """Wire subtask dependencies; ids resolve only among siblings."""
        count = 0
        for task in tasks:
            for subtask in task.subtasks or []:
                if not subtask.dependencies:
                    continue

                blocked_id = self._require_subtask(task.id, subtask.id)
                for dep_id in subtask.dependencies:
                    blocking_id = self._mapper.get_subtask_id(task.id, dep_id)
                    if not blocking_id:
                        raise MappingError(
                            f"Subtask ID not found for dependency {task.id}.{dep_id} "
                            f"of subtask {task.id}.{subtask.id}"
                        )
                    self._beads.add_dependency(blocked_id, blocking_id)
                    count += 1
        return count

    def wire_all_dependencies(self, tasks: Sequence[Task]) -> DependencyCounts:
        counts = DependencyCounts(
            epic_deps=self.wire_epic_dependencies(tasks),
            subtask_deps=self.wire_subtask_dependencies(tasks),
        )
        logger.info("dependencies_wired", epic_deps=counts.epic_deps, subtask_deps=counts.subtask_deps)
        return counts

    def sync_all_statuses(self, tasks: Sequence[Task]) -> None:
        for task in tasks:
            self._apply_status(self._require_epic(task.id), task.status)
            for subtask in task.subtasks or []:
                self._apply_status(self._require_subtask(task.id, subtask.id), subtask.status)

    def _apply_status(self, issue_id: str, status: TaskStatus) -> None:
        action = map_status(status)
        if action.close:
            self._beads.close(issue_id)
            self.summary.closed += 1
        elif action.status:
            self._beads.update_status(issue_id, action.status)
            self.summary.status_updates += 1

    def _require_epic(self, task_id: int) -> str:
        epic_id = self._mapper.get_epic_id(task_id)
        if not epic_id:
            raise MappingError(f"Epic ID not found for task {task_id}")
        return epic_id

    def _require_subtask(self, task_id: int, subtask_id: int) -> str:
        beads_id = self._mapper.get_subtask_id(task_id, subtask_id)
        if not beads_id:
            raise MappingError(f"Subtask ID not found for {task_id}.{subtask_id}")
        return beads_id

    def _progress(self, phase: str, current: int, total: int) -> None:
        if self._on_progress is not None:
            self._on_progress(phase, current, total)
