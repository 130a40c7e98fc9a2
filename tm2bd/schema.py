"""Parsing and validation of task-master tasks.json documents."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError

from tm2bd.models import TaskPriority, TaskStatus, Tm2bdError

logger = structlog.get_logger()


class InputError(Tm2bdError):
    """Raised when the tasks document cannot be loaded."""


class TasksFileNotFoundError(InputError):
    """Raised when the tasks document does not exist."""


class TasksFileReadError(InputError):
    """Raised when the tasks document exists but cannot be read."""


class InvalidJsonError(InputError):
    """Raised when the tasks document is not valid JSON."""


class SchemaValidationError(InputError):
    """Raised when the tasks document does not match the task schema."""

    def __init__(self, path: str, issues: list[str]) -> None:
        self.path = path
        self.issues = issues
        lines = "\n".join(f"  {issue}" for issue in issues)
        super().__init__(f"Validation errors in {path}:\n{lines}")


class Subtask(BaseModel):
    """A subtask; its dependencies refer to sibling subtask ids."""

    id: int
    title: str
    description: str
    status: TaskStatus
    dependencies: list[int] | None = None
    details: str | None = None


class Task(BaseModel):
    """A top-level task-master task."""

    id: int
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    dependencies: list[int]
    complexity: int | None = Field(default=None, ge=1, le=10)
    subtasks: list[Subtask] | None = None
    details: str | None = None
    testStrategy: str | None = None


class Project(BaseModel):
    """The tasks document."""

    tasks: list[Task]


def unwrap_tagged_format(raw: Any) -> Any:
    """Unwrap ``{"<tag>": {"tasks": [...]}}`` into ``{"tasks": [...]}``.

    Anything that is neither shape is returned unchanged so that schema
    validation reports it.
    """
    if not isinstance(raw, dict):
        return raw
    if "tasks" in raw:
        return raw
    if len(raw) == 1:
        inner = next(iter(raw.values()))
        if isinstance(inner, dict) and "tasks" in inner:
            return inner
    return raw


def format_validation_issue(error: dict[str, Any]) -> str:
    """Render one pydantic error as ``dotted.path: message``."""
    location = ".".join(str(part) for part in error["loc"]) or "<root>"
    return f"{location}: {error['msg']}"


def parse_project(raw: Any, source: str = "<document>") -> Project:
    """Validate an already-decoded document."""
    try:
        return Project.model_validate(unwrap_tagged_format(raw))
    except ValidationError as e:
        issues = [format_validation_issue(err) for err in e.errors()]
        raise SchemaValidationError(source, issues) from e


def parse_tasks_json(file_path: str | Path) -> Project:
    """Read, decode and validate a tasks.json file."""
    path = Path(file_path)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise TasksFileNotFoundError(f"tasks.json not found: {path}") from e
    except OSError as e:
        raise TasksFileReadError(f"Failed to read tasks.json: {e}") from e

    try:
        raw = json.loads(content)
    except json.JSONDecodeError as e:
        raise InvalidJsonError(f"Invalid JSON in {path}") from e

    project = parse_project(raw, str(path))
    logger.info("tasks_loaded", path=str(path), count=len(project.tasks))
    return project
