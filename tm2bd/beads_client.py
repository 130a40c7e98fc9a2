"""Beads CLI gateway for tm2bd."""

from __future__ import annotations

import json
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

from tm2bd.config import Settings
from tm2bd.models import Tm2bdError

logger = structlog.get_logger()


class BeadsError(Tm2bdError):
    """Base class for failures talking to Beads."""


class BeadsCommandError(BeadsError):
    """Raised when the bd process could not run or exited non-zero."""

    def __init__(self, args: list[str], message: str, stderr: str = "") -> None:
        self.args_list = args
        self.stderr = stderr
        super().__init__(f"{message}: {shlex.join(args)}" + (f"\n{stderr}" if stderr else ""))


class BeadsOutputError(BeadsError):
    """Raised when bd ran but its output is not what was expected."""


@dataclass
class CreateResult:
    """Issue created by ``bd create``."""

    id: str
    title: str = ""


class BeadsGateway(Protocol):
    """Protocol for the issue operations the sync needs from Beads."""

    def create_epic(self, title: str, description: str, priority: int) -> CreateResult:
        ...

    def create_child(self, parent_id: str, title: str, description: str) -> CreateResult:
        ...

    def add_dependency(self, blocked_id: str, blocking_id: str) -> None:
        ...

    def update_status(self, issue_id: str, status: str) -> None:
        ...

    def close(self, issue_id: str) -> None:
        ...

    def check_init(self) -> bool:
        ...


class BeadsCli:
    """Runs one ``bd`` process per operation inside the project directory."""

    def __init__(self, settings: Settings, project_path: str | None = None, verbose: bool = False) -> None:
        self._command = settings.bd_command
        self._timeout = settings.bd_timeout
        self._project_path = project_path or settings.project_path
        self._verbose = verbose

    def create_epic(self, title: str, description: str, priority: int) -> CreateResult:
        args = ["create", title, "-t", "epic", "-p", str(priority), "--json"]
        if description:
            args.extend(["-d", description])
        return self._parse_create_output(self._run(args))

    def create_child(self, parent_id: str, title: str, description: str) -> CreateResult:
        args = ["create", title, "--parent", parent_id, "--json"]
        if description:
            args.extend(["-d", description])
        return self._parse_create_output(self._run(args))

    def add_dependency(self, blocked_id: str, blocking_id: str) -> None:
        self._run(["dep", "add", blocked_id, blocking_id])

    def update_status(self, issue_id: str, status: str) -> None:
        self._run(["update", issue_id, "-s", status])

    def close(self, issue_id: str) -> None:
        self._run(["close", issue_id])

    def check_init(self) -> bool:
        """Return True when the project has a ``.beads`` directory."""
        return (Path(self._project_path) / ".beads").exists()

    def _run(self, args: list[str]) -> str:
        """Execute bd and return its stdout."""
        cmd = [self._command, *args]
        if self._verbose:
            logger.debug("running_bd", command=shlex.join(cmd), cwd=self._project_path)

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                cwd=self._project_path,
                timeout=self._timeout,
            )
        except FileNotFoundError as e:
            logger.error("bd_not_found", command=self._command)
            raise BeadsCommandError(cmd, "bd CLI not found") from e
        except subprocess.TimeoutExpired as e:
            logger.error("bd_timeout", timeout=self._timeout)
            raise BeadsCommandError(cmd, f"bd timed out after {self._timeout}s") from e

        if result.returncode != 0:
            logger.error("bd_failed", returncode=result.returncode, stderr=result.stderr)
            raise BeadsCommandError(
                cmd, f"bd exited with code {result.returncode}", result.stderr.strip()
            )

        if self._verbose and result.stdout:
            logger.debug("bd_output", stdout=result.stdout.strip())
        return result.stdout

    @staticmethod
    def _parse_create_output(output: str) -> CreateResult:
        try:
            parsed = json.loads(output)
        except json.JSONDecodeError as e:
            raise BeadsOutputError(f"Failed to parse bd output as JSON: {output}") from e

        if not isinstance(parsed, dict):
            raise BeadsOutputError(f"Failed to parse bd output as JSON object: {output}")

        issue_id = parsed.get("id")
        if not isinstance(issue_id, str) or not issue_id:
            raise BeadsOutputError("Unexpected bd create output: missing id field")

        title = parsed.get("title")
        return CreateResult(id=issue_id, title=title if isinstance(title, str) else "")
