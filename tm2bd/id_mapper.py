"""Durable mapping from task-master ids to Beads issue ids."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field, StrictInt, ValidationError

from tm2bd.models import Tm2bdError
from tm2bd.schema import format_validation_issue

logger = structlog.get_logger()

MAPPING_VERSION = "1.0"


class MappingError(Tm2bdError):
    """Raised on mapping contract violations or an unreadable mapping file."""


@dataclass
class SubtaskMapping:
    tm_id: int
    beads_id: str


@dataclass
class TaskMapping:
    tm_id: int
    beads_id: str
    subtasks: list[SubtaskMapping] = field(default_factory=list)


@dataclass(frozen=True)
class MappingStats:
    epic_count: int
    child_count: int


class SubtaskEntry(BaseModel):
    tmId: StrictInt
    beadsId: str = Field(min_length=1)


class TaskEntry(BaseModel):
    tmId: StrictInt
    beadsId: str = Field(min_length=1)
    subtasks: list[SubtaskEntry] = Field(default_factory=list)


class MappingDocument(BaseModel):
    """A saved mapping file; ``version`` and ``generatedAt`` are not checked."""

    tasks: list[TaskEntry]


class IdMapper:
    """Maps task-master task and subtask ids to Beads issue ids.

    Entries are kept in creation order for serialisation, with two dicts
    for constant-time lookups. When an epic id is added twice the first
    mapping wins on lookup, but both entries are kept and saved.
    """

    def __init__(self) -> None:
        self._entries: list[TaskMapping] = []
        self._epics: dict[int, TaskMapping] = {}
        self._subtasks: dict[tuple[int, int], str] = {}

    def add_epic(self, tm_id: int, beads_id: str) -> None:
        entry = TaskMapping(tm_id=tm_id, beads_id=beads_id)
        self._entries.append(entry)
        self._epics.setdefault(tm_id, entry)

    def add_subtask(self, task_tm_id: int, subtask_tm_id: int, beads_id: str) -> None:
        """Record a child issue under an already mapped epic.

        Raises:
            MappingError: The parent task has no epic mapping yet.
        """
        entry = self._epics.get(task_tm_id)
        if entry is None:
            raise MappingError(f"Task {task_tm_id} not found in mapping")
        entry.subtasks.append(SubtaskMapping(tm_id=subtask_tm_id, beads_id=beads_id))
        self._subtasks.setdefault((task_tm_id, subtask_tm_id), beads_id)

    def get_epic_id(self, tm_id: int) -> str | None:
        entry = self._epics.get(tm_id)
        return entry.beads_id if entry else None

    def get_subtask_id(self, task_tm_id: int, subtask_tm_id: int) -> str | None:
        return self._subtasks.get((task_tm_id, subtask_tm_id))

    def get_stats(self) -> MappingStats:
        return MappingStats(
            epic_count=len(self._entries),
            child_count=sum(len(entry.subtasks) for entry in self._entries),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the mapping file document with a fresh timestamp."""
        return {
            "version": MAPPING_VERSION,
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "tasks": [
                {
                    "tmId": entry.tm_id,
                    "beadsId": entry.beads_id,
                    "subtasks": [
                        {"tmId": sub.tm_id, "beadsId": sub.beads_id}
                        for sub in entry.subtasks
                    ],
                }
                for entry in self._entries
            ],
        }

    def save(self, file_path: str | Path) -> None:
        """Write the whole mapping to ``file_path``, replacing its content.

        The document is written to a sibling temp file and renamed into
        place, so an interrupted save never leaves a truncated file.
        """
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        stats = self.get_stats()
        logger.info(
            "mapping_saved",
            path=str(path),
            epics=stats.epic_count,
            children=stats.child_count,
        )

    @classmethod
    def from_dict(cls, data: Any) -> IdMapper:
        """Rebuild a mapper from a decoded mapping document.

        Raises:
            MappingError: The document or one of its entries is malformed.
        """
        try:
            document = MappingDocument.model_validate(data)
        except ValidationError as e:
            issues = "\n".join(f"  {format_validation_issue(err)}" for err in e.errors())
            raise MappingError(f"Invalid mapping document:\n{issues}") from e

        mapper = cls()
        for task in document.tasks:
            mapper.add_epic(task.tmId, task.beadsId)
            for sub in task.subtasks:
                mapper.add_subtask(task.tmId, sub.tmId, sub.beadsId)
        return mapper

    @classmethod
    def load(cls, file_path: str | Path) -> IdMapper:
        """Rebuild a mapper from a file written by ``save``.

        Raises:
            MappingError: The file is unreadable or not a mapping document.
        """
        path = Path(file_path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise MappingError(f"Failed to read mapping file {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise MappingError(f"Invalid JSON in mapping file {path}") from e

        mapper = cls.from_dict(data)
        stats = mapper.get_stats()
        logger.info(
            "mapping_loaded",
            path=str(path),
            epics=stats.epic_count,
            children=stats.child_count,
        )
        return mapper

    @staticmethod
    def exists(file_path: str | Path) -> bool:
        try:
            return Path(file_path).exists()
        except OSError:
            return False
