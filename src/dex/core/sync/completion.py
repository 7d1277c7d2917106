"""
Completion gate: may a locally completed task close its remote item?

A remote item is closed only once the work behind it is provably on the
remote default branch. The commit check itself sits behind the
``CommitVerifier`` protocol so the gate never shells out directly.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol, runtime_checkable

from dex.core.tasks.models import Task, TaskStore
from dex.core.tasks.tree import TaskTree

logger = logging.getLogger(__name__)

SHORT_SHA_LENGTH = 7


@runtime_checkable
class CommitVerifier(Protocol):
    """Answers whether a commit has reached the remote default branch."""

    def is_commit_on_default_branch(self, sha: str) -> bool: ...


class GitCommitVerifier:
    """
    Commit verifier backed by ``git merge-base --is-ancestor``.

    Any failure (git missing, unknown SHA, no ``origin/HEAD``) counts as
    "not verified". Positive answers are remembered for the lifetime of the
    instance since a pushed commit stays pushed.
    """

    def __init__(self, project_dir: Path | None = None, remote_ref: str = "origin/HEAD") -> None:
        self.project_dir = project_dir or Path.cwd()
        self.remote_ref = remote_ref
        self._verified: set[str] = set()

    def is_commit_on_default_branch(self, sha: str) -> bool:
        if sha in self._verified:
            return True
        try:
            result = subprocess.run(
                ["git", "merge-base", "--is-ancestor", sha, self.remote_ref],
                cwd=self.project_dir,
                capture_output=True,
                text=True,
                check=False,
            )
        except (OSError, FileNotFoundError) as e:
            logger.warning("Could not verify commit %s: %s", sha[:SHORT_SHA_LENGTH], e)
            return False

        if result.returncode == 0:
            self._verified.add(sha)
            return True
        if result.returncode != 1:
            logger.debug(
                "git merge-base failed for %s: %s",
                sha[:SHORT_SHA_LENGTH],
                result.stderr.strip(),
            )
        return False


def _as_tree(store: TaskStore | TaskTree | None) -> TaskTree | None:
    if store is None or isinstance(store, TaskTree):
        return store
    return TaskTree(store.tasks)


class CompletionGate:
    """
    Decides whether a completed task's remote item may be closed.

    Rules:
        - Not completed locally: never.
        - Has a commit reference: only if that commit is on the default branch.
        - No commit but has descendants: only if every descendant qualifies.
        - Leaf without a commit: never.

    Example:
        >>> gate = CompletionGate(GitCommitVerifier())
        >>> gate.should_close(task, store)
        False
        >>> gate.explain_not_closing(task, store)
        'completed without commit reference'
    """

    def __init__(self, verifier: CommitVerifier) -> None:
        self.verifier = verifier
        self._answers: dict[str, bool] = {}

    def _check(self, sha: str) -> bool:
        try:
            return bool(self.verifier.is_commit_on_default_branch(sha))
        except Exception as e:
            logger.warning("Commit verification failed for %s: %s", sha[:SHORT_SHA_LENGTH], e)
            return False

    def _verified(self, sha: str) -> bool:
        if sha in self._answers:
            return self._answers[sha]
        return self._check(sha)

    async def verify_commits(self, tasks: Iterable[Task]) -> None:
        """
        Check the commits of *tasks* without blocking the event loop.

        The verifier runs in a worker thread via ``asyncio.to_thread``. Answers
        are kept for the lifetime of the gate, so ``should_close`` and
        ``explain_not_closing`` on these tasks never call the verifier again.
        """
        for sha in dict.fromkeys(task.commit_sha for task in tasks if task.commit_sha):
            if sha not in self._answers:
                self._answers[sha] = await asyncio.to_thread(self._check, sha)

    def _eligible(self, task: Task, tree: TaskTree | None, memo: dict[str, bool]) -> bool:
        if task.id in memo:
            return memo[task.id]

        if not task.completed:
            eligible = False
        elif task.commit_sha:
            eligible = self._verified(task.commit_sha)
        elif tree is not None and tree.has_descendants(task.id):
            eligible = all(
                self._eligible(item.task, tree, memo) for item in tree.descendants(task.id)
            )
        else:
            eligible = False

        memo[task.id] = eligible
        return eligible

    def should_close(self, task: Task, store: TaskStore | TaskTree | None = None) -> bool:
        """
        Whether *task* may be reflected as closed remotely.

        Args:
            task: Task to check
            store: Snapshot used to find descendants; without it the task is
                judged as a leaf

        Returns:
            True if the remote item may be closed
        """
        return self._eligible(task, _as_tree(store), {})

    def _descendant_reason(self, task: Task) -> str:
        sha = task.commit_sha
        if sha and not self._verified(sha):
            return f"subtask {task.id} commit {sha[:SHORT_SHA_LENGTH]} not pushed"
        if not task.completed:
            return f"subtask {task.id} not completed"
        return f"subtask {task.id} completed without commit"

    def explain_not_closing(
        self, task: Task, store: TaskStore | TaskTree | None = None
    ) -> str | None:
        """
        Human-readable reason a completed task's remote item stays open.

        Returns:
            None when the task is not completed or may close, otherwise the
            reason (one entry per blocking descendant, joined by ``"; "``)
        """
        if not task.completed:
            return None

        tree = _as_tree(store)
        memo: dict[str, bool] = {}
        if self._eligible(task, tree, memo):
            return None

        if tree is not None:
            blocking = [
                item.task
                for item in tree.descendants(task.id)
                if not self._eligible(item.task, tree, memo)
            ]
            if blocking:
                return "; ".join(self._descendant_reason(t) for t in blocking)

        sha = task.commit_sha
        if sha and not self._verified(sha):
            return f"commit {sha[:SHORT_SHA_LENGTH]} not pushed to remote"
        return "completed without commit reference"
