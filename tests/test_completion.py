"""
Tests for the completion gate and commit verification.
"""

import subprocess
import threading
from unittest.mock import MagicMock, patch

import pytest
from helpers import PUSHED_SHA, UNPUSHED_SHA, FakeVerifier, make_task

from dex.core.sync.completion import CommitVerifier, CompletionGate, GitCommitVerifier
from dex.core.tasks.models import TaskStore


class TestShouldClose:
    """Tests for CompletionGate.should_close."""

    def test_incomplete_never_closes(self, gate):
        """Test a task that is not completed is never eligible."""
        assert gate.should_close(make_task("t1", sha=PUSHED_SHA)) is False

    def test_pushed_commit_closes(self, gate):
        """Test a completed task with a pushed commit is eligible."""
        assert gate.should_close(make_task("t1", completed=True, sha=PUSHED_SHA)) is True

    def test_unpushed_commit_stays_open(self, gate):
        """Test a commit missing from the default branch blocks closing."""
        assert gate.should_close(make_task("t1", completed=True, sha=UNPUSHED_SHA)) is False

    def test_leaf_without_commit_never_closes(self, gate):
        """Test a completed leaf with no commit reference is never eligible."""
        task = make_task("t1", completed=True)
        assert gate.should_close(task) is False
        assert gate.should_close(task, TaskStore(tasks=[task])) is False

    def test_parent_closes_when_all_descendants_do(self, gate):
        """Test a commit-less parent closes once every descendant qualifies."""
        parent = make_task("p1", completed=True)
        child = make_task("c1", parent_id="p1", completed=True, sha=PUSHED_SHA)
        grandchild = make_task("g1", parent_id="c1", completed=True, sha=PUSHED_SHA)
        store = TaskStore(tasks=[parent, child, grandchild])

        assert gate.should_close(parent, store) is True

    def test_parent_blocked_by_one_descendant(self, gate):
        """Test one ineligible descendant keeps the parent open."""
        parent = make_task("p1", completed=True)
        good = make_task("c1", parent_id="p1", completed=True, sha=PUSHED_SHA)
        bad = make_task("c2", parent_id="p1", completed=True)
        store = TaskStore(tasks=[parent, good, bad])

        assert gate.should_close(parent, store) is False

    def test_stable_for_same_inputs(self, gate):
        """Test repeated calls with the same inputs agree."""
        task = make_task("t1", completed=True, sha=PUSHED_SHA)
        assert [gate.should_close(task) for _ in range(3)] == [True, True, True]

    def test_verifier_errors_mean_not_verified(self):
        """Test a raising verifier is treated as not pushed."""
        verifier = MagicMock()
        verifier.is_commit_on_default_branch.side_effect = RuntimeError("git exploded")
        gate = CompletionGate(verifier)

        assert gate.should_close(make_task("t1", completed=True, sha=PUSHED_SHA)) is False


class TestExplainNotClosing:
    """Tests for CompletionGate.explain_not_closing."""

    def test_not_completed(self, gate):
        """Test incomplete tasks have no reason."""
        assert gate.explain_not_closing(make_task("t1")) is None

    def test_eligible(self, gate):
        """Test eligible tasks have no reason."""
        assert gate.explain_not_closing(make_task("t1", completed=True, sha=PUSHED_SHA)) is None

    def test_without_commit(self, gate):
        """Test the missing-commit message."""
        reason = gate.explain_not_closing(make_task("t1", completed=True))
        assert reason == "completed without commit reference"

    def test_unpushed_commit(self, gate):
        """Test the unpushed-commit message uses the short SHA."""
        reason = gate.explain_not_closing(make_task("t1", completed=True, sha=UNPUSHED_SHA))
        assert reason == "commit bbbbbbb not pushed to remote"

    def test_names_blocking_descendants(self, gate):
        """Test a blocked parent names each blocking descendant by id."""
        parent = make_task("p1", completed=True)
        good = make_task("c1", parent_id="p1", completed=True, sha=PUSHED_SHA)
        unpushed = make_task("c2", parent_id="p1", completed=True, sha=UNPUSHED_SHA)
        pending = make_task("c3", parent_id="p1")
        store = TaskStore(tasks=[parent, good, unpushed, pending])

        reason = gate.explain_not_closing(parent, store)

        assert reason == "subtask c2 commit bbbbbbb not pushed; subtask c3 not completed"
        assert "c1" not in reason

    def test_descendant_without_commit(self, gate):
        """Test a completed commit-less descendant is reported as such."""
        parent = make_task("p1", completed=True)
        child = make_task("c1", parent_id="p1", completed=True)
        reason = gate.explain_not_closing(parent, TaskStore(tasks=[parent, child]))
        assert reason == "subtask c1 completed without commit"


class TestVerifyCommits:
    """Tests for checking commits ahead of the gate."""

    @pytest.mark.asyncio
    async def test_checks_each_commit_once(self, gate, verifier):
        """Test each distinct SHA is checked once and reused afterwards."""
        parent = make_task("p1", completed=True)
        first = make_task("c1", parent_id="p1", completed=True, sha=PUSHED_SHA)
        second = make_task("c2", parent_id="p1", completed=True, sha=PUSHED_SHA)
        unpushed = make_task("c3", parent_id="p1", sha=UNPUSHED_SHA)
        store = TaskStore(tasks=[parent, first, second, unpushed])

        await gate.verify_commits(store.tasks)

        assert verifier.calls == [PUSHED_SHA, UNPUSHED_SHA]
        assert gate.should_close(parent, store) is False
        assert gate.explain_not_closing(parent, store) == "subtask c3 commit bbbbbbb not pushed"
        assert verifier.calls == [PUSHED_SHA, UNPUSHED_SHA]

    @pytest.mark.asyncio
    async def test_runs_off_the_event_loop(self):
        """Test the verifier is called from a worker thread."""
        loop_thread = threading.get_ident()
        seen: list[int] = []

        class RecordingVerifier:
            def is_commit_on_default_branch(self, sha: str) -> bool:
                seen.append(threading.get_ident())
                return True

        gate = CompletionGate(RecordingVerifier())
        await gate.verify_commits([make_task("t1", completed=True, sha=PUSHED_SHA)])

        assert len(seen) == 1
        assert seen[0] != loop_thread
        assert gate.should_close(make_task("t1", completed=True, sha=PUSHED_SHA)) is True
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_verifier_error_recorded_as_unverified(self):
        """Test a raising verifier is remembered as not pushed."""
        verifier = MagicMock()
        verifier.is_commit_on_default_branch.side_effect = RuntimeError("git exploded")
        gate = CompletionGate(verifier)

        await gate.verify_commits([make_task("t1", completed=True, sha=PUSHED_SHA)])

        assert gate.should_close(make_task("t1", completed=True, sha=PUSHED_SHA)) is False
        assert verifier.is_commit_on_default_branch.call_count == 1


class TestGitCommitVerifier:
    """Tests for the git-backed verifier."""

    def test_satisfies_protocol(self):
        """Test the git verifier and the fake both satisfy CommitVerifier."""
        assert isinstance(GitCommitVerifier(), CommitVerifier)
        assert isinstance(FakeVerifier(), CommitVerifier)

    def test_ancestor_is_verified(self, tmp_path):
        """Test exit code 0 from merge-base means pushed."""
        verifier = GitCommitVerifier(tmp_path)
        with patch("dex.core.sync.completion.subprocess.run") as run:
            run.return_value = subprocess.CompletedProcess([], 0, "", "")
            assert verifier.is_commit_on_default_branch(PUSHED_SHA) is True
            args = run.call_args[0][0]
            assert args == ["git", "merge-base", "--is-ancestor", PUSHED_SHA, "origin/HEAD"]

    def test_positive_answers_are_cached(self, tmp_path):
        """Test a verified SHA is not checked twice."""
        verifier = GitCommitVerifier(tmp_path)
        with patch("dex.core.sync.completion.subprocess.run") as run:
            run.return_value = subprocess.CompletedProcess([], 0, "", "")
            verifier.is_commit_on_default_branch(PUSHED_SHA)
            verifier.is_commit_on_default_branch(PUSHED_SHA)
            assert run.call_count == 1

    def test_not_ancestor(self, tmp_path):
        """Test exit code 1 means not pushed."""
        verifier = GitCommitVerifier(tmp_path)
        with patch("dex.core.sync.completion.subprocess.run") as run:
            run.return_value = subprocess.CompletedProcess([], 1, "", "")
            assert verifier.is_commit_on_default_branch(UNPUSHED_SHA) is False

    def test_git_missing(self, tmp_path):
        """Test a missing git binary counts as not verified."""
        verifier = GitCommitVerifier(tmp_path)
        with patch("dex.core.sync.completion.subprocess.run", side_effect=FileNotFoundError("git")):
            assert verifier.is_commit_on_default_branch(PUSHED_SHA) is False
