"""
JSONL file store for local tasks (tasks.jsonl).

Reads and writes tasks from ``<storage>/tasks.jsonl``, one JSON object per
line, with atomic writes. This is the authoritative local copy that the
sync engine mirrors to remote services.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from .models import Task, TaskMetadata, TaskStore

logger = logging.getLogger(__name__)


class TaskNotFoundError(Exception):
    """Raised when a task ID is not present in the store."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found")


class TasksFileCorruptedError(Exception):
    """Raised when tasks.jsonl is malformed."""

    def __init__(self, message: str, line_num: int | None = None):
        self.line_num = line_num
        super().__init__(message)


class JsonlTaskStore:
    """
    Task store backed by a tasks.jsonl file.

    File format:
        Each line is a JSON object representing one task:
        {"id": "abc123", "name": "Task name", "completed": false, ...}

    Example:
        >>> store = JsonlTaskStore(Path("."))
        >>> snapshot = store.snapshot()
        >>> store.update_task("abc123", {"completed": True})
    """

    TASKS_FILE = "tasks.jsonl"

    def __init__(self, project_dir: Path | None = None, storage_path: str = ".dex"):
        """
        Initialize the store.

        Args:
            project_dir: Project directory (defaults to current directory)
            storage_path: Directory holding tasks.jsonl, relative to project_dir
        """
        self.project_dir = project_dir or Path.cwd()
        self.storage_dir = self.project_dir / storage_path
        self.tasks_file = self.storage_dir / self.TASKS_FILE

    def _load_raw(self) -> list[dict[str, Any]]:
        """
        Load and parse tasks.jsonl.

        Returns:
            List of task dictionaries (one per line); empty if the file is missing

        Raises:
            TasksFileCorruptedError: If a line is not a JSON object
        """
        if not self.tasks_file.exists():
            return []

        tasks: list[dict[str, Any]] = []
        with open(self.tasks_file, encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError as e:
                    raise TasksFileCorruptedError(
                        f"Line {line_num}: invalid JSON - {e}", line_num=line_num
                    ) from e
                if not isinstance(data, dict):
                    raise TasksFileCorruptedError(
                        f"Line {line_num}: expected JSON object, got {type(data).__name__}",
                        line_num=line_num,
                    )
                tasks.append(data)
        return tasks

    def _save_raw(self, tasks: list[dict[str, Any]]) -> None:
        """
        Save tasks.jsonl atomically.

        Writes to a temporary file in the same directory, validates it, then
        renames it over the original so a failed write never truncates data.
        """
        self.storage_dir.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(dir=self.storage_dir, prefix=".tasks_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for task in tasks:
                    json.dump(task, f, ensure_ascii=False, separators=(",", ":"))
                    f.write("\n")

            self._validate_written_file(Path(temp_path), len(tasks))
            os.replace(temp_path, self.tasks_file)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def _validate_written_file(self, file_path: Path, expected_count: int) -> None:
        actual_count = 0
        with open(file_path, encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    json.loads(line)
                except json.JSONDecodeError as e:
                    raise TasksFileCorruptedError(
                        f"Write validation failed: line {line_num} has invalid JSON - {e}",
                        line_num=line_num,
                    ) from e
                actual_count += 1

        if actual_count != expected_count:
            raise TasksFileCorruptedError(
                f"Write validation failed: expected {expected_count} tasks, got {actual_count}"
            )

    @staticmethod
    def _task_to_dict(task: Task) -> dict[str, Any]:
        return task.model_dump(by_alias=True, exclude_none=True, mode="json")

    def list_tasks(self) -> list[Task]:
        """All tasks in file order."""
        return [Task.model_validate(raw) for raw in self._load_raw()]

    def snapshot(self) -> TaskStore:
        """Read-only snapshot used by the sync engine."""
        return TaskStore(tasks=self.list_tasks())

    def get_task(self, task_id: str) -> Task | None:
        """Get a task by ID, or None."""
        for raw in self._load_raw():
            if raw.get("id") == task_id:
                return Task.model_validate(raw)
        return None

    def add_task(self, task: Task) -> Task:
        """
        Append a new task.

        Raises:
            ValueError: If a task with the same ID already exists
        """
        tasks = self._load_raw()
        if any(raw.get("id") == task.id for raw in tasks):
            raise ValueError(f"Task {task.id} already exists")

        now = datetime.now(timezone.utc)
        if task.created_at is None:
            task.created_at = now
        if task.updated_at is None:
            task.updated_at = task.created_at

        tasks.append(self._task_to_dict(task))
        self._save_raw(tasks)
        return task

    def update_task(self, task_id: str, patch: dict[str, Any]) -> Task:
        """
        Apply a field patch to a task.

        Keys are Task field names. A ``metadata`` patch is merged key by key
        into the existing metadata, so one integration's block never
        clobbers another's.

        Raises:
            TaskNotFoundError: If the task does not exist
        """
        tasks = self._load_raw()
        for index, raw in enumerate(tasks):
            if raw.get("id") == task_id:
                break
        else:
            raise TaskNotFoundError(task_id)

        task = Task.model_validate(raw)
        data = task.model_dump()

        for key, value in patch.items():
            if key == "metadata":
                merged = dict(data.get("metadata") or {})
                merged.update(_dump_block(value))
                data["metadata"] = merged
            else:
                data[key] = value.model_dump() if isinstance(value, BaseModel) else value

        updated = Task.model_validate(data)
        tasks[index] = self._task_to_dict(updated)
        self._save_raw(tasks)
        logger.debug("Updated task %s: %s", task_id, ", ".join(sorted(patch)))
        return updated

    def save_integration_metadata(
        self, task_id: str, integration_id: str, block: BaseModel | dict[str, Any]
    ) -> Task:
        """Store the metadata block an integration produced for a task."""
        return self.update_task(task_id, {"metadata": {integration_id: block}})


def _dump_block(value: Any) -> dict[str, Any]:
    if isinstance(value, TaskMetadata):
        return value.model_dump(exclude_none=True)
    if isinstance(value, BaseModel):
        return value.model_dump()
    return {
        key: item.model_dump() if isinstance(item, BaseModel) else item
        for key, item in dict(value).items()
    }
