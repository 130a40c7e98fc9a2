"""Data models for tm2bd."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tm2bd.schema import Task


class Tm2bdError(Exception):
    """Base class for every fatal tm2bd error."""


class TaskStatus(str, Enum):
    """Task-master status values."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    DEFERRED = "deferred"
    CANCELLED = "cancelled"
    BLOCKED = "blocked"


class TaskPriority(str, Enum):
    """Task-master priority values."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Beads priorities: 0 is the most urgent
PRIORITY_MAP: dict[TaskPriority, int] = {
    TaskPriority.HIGH: 0,
    TaskPriority.MEDIUM: 1,
    TaskPriority.LOW: 2,
}


@dataclass(frozen=True)
class StatusAction:
    """What to do in Beads for one task-master status."""

    status: str | None = None
    close: bool = False


# Map: task-master status -> Beads action
STATUS_ACTIONS: dict[TaskStatus, StatusAction] = {
    TaskStatus.PENDING: StatusAction(),
    TaskStatus.IN_PROGRESS: StatusAction(status="in_progress"),
    TaskStatus.DONE: StatusAction(close=True),
    TaskStatus.DEFERRED: StatusAction(status="deferred"),
    TaskStatus.CANCELLED: StatusAction(close=True),
    TaskStatus.BLOCKED: StatusAction(status="blocked"),
}


@dataclass
class ValidationResult:
    """Outcome of a dependency graph check."""

    errors: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass
class SortedTask:
    """A task paired with its dependency tier."""

    task: Task
    tier: int


@dataclass
class DependencyCounts:
    """Number of dependency edges created per pass."""

    epic_deps: int = 0
    subtask_deps: int = 0

    @property
    def total(self) -> int:
        return self.epic_deps + self.subtask_deps


@dataclass
class SyncSummary:
    """Counts collected during one sync run."""

    tiers: int = 0
    epics_created: int = 0
    epics_reused: int = 0
    children_created: int = 0
    children_reused: int = 0
    dependencies: DependencyCounts = field(default_factory=DependencyCounts)
    closed: int = 0
    status_updates: int = 0
