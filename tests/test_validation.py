"""Tests for risk checks and per-operation validation."""
from __future__ import annotations

from dataclasses import replace
import unittest

from gitcoach.status_probe import ProbeError, RepositoryStatus
from gitcoach.validation import (
    Abort,
    Add,
    BranchCreate,
    BranchDelete,
    Checkout,
    Commit,
    Merge,
    Pull,
    Push,
    Severity,
    Stash,
    StashPop,
    Undo,
    check_detached_head,
    check_force_push,
    check_not_git_repo,
    check_uncommitted_changes,
    evaluate,
    validate_branch_delete,
    validate_checkout,
    validate_commit,
    validate_pull,
    validate_push,
)


CLEAN = RepositoryStatus(
    is_clean=True,
    current_branch="main",
    tracking_ref="origin/main",
    remotes=("origin",),
)


class FakeProbe:
    def __init__(self, status: RepositoryStatus | None = None,
                 repo: bool = True, fail: bool = False,
                 repo_error: bool = False) -> None:
        self.status     = status or CLEAN
        self.repo       = repo
        self.fail       = fail
        self.repo_error = repo_error
        self.refreshes  = 0

    def refresh(self) -> RepositoryStatus:
        self.refreshes += 1
        if self.fail: raise ProbeError("git status failed")
        return self.status

    def is_git_repo(self) -> bool:
        if self.repo_error: raise ProbeError("git executable not found")
        return self.repo

    def has_remote(self) -> bool:
        if self.fail: raise ProbeError("git remote failed")
        return bool(self.status.remotes)


class Counter:
    def __init__(self) -> None:
        self.count = 0

    def increment_errors_prevented(self) -> None:
        self.count += 1


class AtomicCheckTests(unittest.TestCase):
    def test_not_git_repo_maps_query_failure_to_critical(self) -> None:
        warning = check_not_git_repo(FakeProbe(repo_error=True))
        self.assertIsNotNone(warning)
        self.assertIs(warning.severity, Severity.CRITICAL)
        self.assertIsNone(check_not_git_repo(FakeProbe()))

    def test_query_failure_degrades_to_none(self) -> None:
        self.assertIsNone(check_uncommitted_changes(FakeProbe(fail=True)))
        self.assertIsNone(check_detached_head(FakeProbe(fail=True)))

    def test_prevention_counter_increments_once(self) -> None:
        counter = Counter()
        dirty   = replace(CLEAN, is_clean=False,
                  modified=frozenset({"a.py"}))
        check_uncommitted_changes(FakeProbe(dirty), counter)
        self.assertEqual(counter.count, 1)
        check_uncommitted_changes(FakeProbe(CLEAN), counter)
        self.assertEqual(counter.count, 1)

    def test_force_push_always_fires(self) -> None:
        counter = Counter()
        warning = check_force_push(FakeProbe(), counter)
        self.assertEqual(warning.code, "GC_FORCE_PUSH")
        self.assertEqual(counter.count, 1)

    def test_detached_when_branch_unknown(self) -> None:
        status = replace(CLEAN, current_branch=None)
        self.assertEqual(check_detached_head(FakeProbe(status)).code,
            "GC_DETACHED_HEAD")


class PushTests(unittest.TestCase):
    def test_behind_is_advisory_for_push(self) -> None:
        status = replace(CLEAN, ahead=0, behind=3)
        result = validate_push(status, force=False)
        self.assertIn("GC_BEHIND_REMOTE", result.codes())
        self.assertTrue(result.can_proceed)
        self.assertFalse(result.valid)

    def test_force_push_critical_is_waived(self) -> None:
        result = validate_push(CLEAN, force=True)
        self.assertEqual(result.codes(), ["GC_FORCE_PUSH"])
        self.assertEqual(result.waived, ("GC_FORCE_PUSH",))
        self.assertTrue(result.can_proceed)

    def test_force_does_not_waive_other_criticals(self) -> None:
        status = replace(CLEAN, rebase_in_progress=True)
        result = validate_push(status, force=True)
        self.assertFalse(result.can_proceed)

    def test_repo_state_comes_first(self) -> None:
        status = replace(CLEAN, current_branch=None, detached=True,
                 rebase_in_progress=True, behind=2)
        result = evaluate(Push(force=True), status)
        self.assertEqual(result.codes(), [
            "GC_REBASE_IN_PROGRESS",
            "GC_DETACHED_HEAD",
            "GC_BEHIND_REMOTE",
            "GC_FORCE_PUSH",
        ])

    def test_no_remote_is_info(self) -> None:
        result = evaluate(Push(), replace(CLEAN, remotes=()))
        self.assertEqual(result.highest(), Severity.INFO)
        self.assertTrue(result.can_proceed)

    def test_wrong_branch(self) -> None:
        result = evaluate(Push(expected_branch="release"), CLEAN)
        self.assertEqual(result.codes(), ["GC_WRONG_BRANCH"])
        self.assertTrue(result.can_proceed)


class OtherOperationTests(unittest.TestCase):
    def test_delete_current_branch(self) -> None:
        result = validate_branch_delete(CLEAN, "main")
        self.assertEqual(len(result.warnings), 1)
        self.assertIs(result.warnings[0].severity, Severity.CRITICAL)
        self.assertFalse(result.can_proceed)

    def test_delete_other_branch(self) -> None:
        result = validate_branch_delete(CLEAN, "feature")
        self.assertTrue(result.valid)
        self.assertTrue(result.can_proceed)

    def test_commit_needs_staged_changes(self) -> None:
        blocked = evaluate(Commit(), CLEAN)
        self.assertEqual(blocked.codes(), ["GC_NOTHING_STAGED"])
        self.assertFalse(blocked.can_proceed)
        staged  = replace(CLEAN, is_clean=False,
                  staged=frozenset({"a.py"}))
        self.assertTrue(evaluate(Commit(), staged).can_proceed)

    def test_pull_with_merge_in_progress_blocks(self) -> None:
        status = replace(CLEAN, merge_in_progress=True, is_clean=False,
                 conflicted=frozenset({"x"}))
        result = evaluate(Pull(), status)
        self.assertEqual(result.codes(), ["GC_MERGE_IN_PROGRESS",
            "GC_UNCOMMITTED_CHANGES"])
        self.assertFalse(result.can_proceed)

    def test_checkout_warns_on_uncommitted(self) -> None:
        status = replace(CLEAN, is_clean=False,
                 untracked=frozenset({"new.txt"}))
        result = evaluate(Checkout("feature"), status)
        self.assertEqual(result.codes(), ["GC_UNCOMMITTED_CHANGES"])
        self.assertTrue(result.can_proceed)

    def test_cherry_pick_and_bisect_are_warnings(self) -> None:
        status = replace(CLEAN, cherry_pick_in_progress=True,
                 bisect_in_progress=True)
        result = evaluate(Checkout("x"), status)
        self.assertEqual(result.highest(), Severity.WARNING)
        self.assertTrue(result.can_proceed)


class WorkflowOperationTests(unittest.TestCase):
    MID_MERGE = replace(CLEAN, merge_in_progress=True, is_clean=False,
                conflicted=frozenset({"x"}))

    def test_merge_checks_state_changes_and_head(self) -> None:
        status = replace(CLEAN, is_clean=False, detached=True,
                 current_branch=None, modified=frozenset({"a"}))
        result = evaluate(Merge("feature"), status)
        self.assertEqual(result.codes(), ["GC_UNCOMMITTED_CHANGES",
            "GC_DETACHED_HEAD"])
        self.assertTrue(result.can_proceed)
        self.assertFalse(evaluate(Merge("f"), self.MID_MERGE).can_proceed)

    def test_staging_is_allowed_mid_merge(self) -> None:
        result = evaluate(Add(), self.MID_MERGE)
        self.assertTrue(result.valid)
        self.assertEqual(evaluate(Abort(), self.MID_MERGE).codes(), [])

    def test_stash_blocked_mid_merge(self) -> None:
        result = evaluate(Stash("wip"), self.MID_MERGE)
        self.assertEqual(result.codes(), ["GC_MERGE_IN_PROGRESS"])
        self.assertFalse(result.can_proceed)

    def test_stash_pop_warns_on_uncommitted(self) -> None:
        status = replace(CLEAN, is_clean=False,
                 modified=frozenset({"a"}))
        self.assertEqual(evaluate(StashPop(), status).codes(),
            ["GC_UNCOMMITTED_CHANGES"])

    def test_undo_warns_on_detached_head(self) -> None:
        status = replace(CLEAN, detached=True, current_branch=None)
        result = evaluate(Undo(hard=True), status)
        self.assertEqual(result.codes(), ["GC_DETACHED_HEAD"])
        self.assertTrue(result.can_proceed)

    def test_branch_create_outside_repository(self) -> None:
        result = evaluate(BranchCreate("x"), FakeProbe(repo=False))
        self.assertEqual(result.codes(), ["GC_NOT_A_REPOSITORY"])

    def test_destructive_flags(self) -> None:
        self.assertTrue(Undo(hard=True).destructive)
        self.assertFalse(Undo().destructive)
        self.assertTrue(Abort().destructive)
        self.assertFalse(Merge("x").destructive)


class ProbeSourceTests(unittest.TestCase):
    def test_not_a_repository_blocks(self) -> None:
        result = evaluate(Pull(), FakeProbe(repo=False, fail=True))
        self.assertEqual(result.codes(), ["GC_NOT_A_REPOSITORY"])
        self.assertFalse(result.can_proceed)

    def test_status_read_once_per_evaluation(self) -> None:
        probe = FakeProbe()
        evaluate(Push(), probe)
        self.assertEqual(probe.refreshes, 1)
        evaluate(Push(), probe)
        self.assertEqual(probe.refreshes, 2)

    def test_failed_read_is_not_retried_within_evaluation(self) -> None:
        probe = FakeProbe(fail=True)
        result = evaluate(Checkout("x"), probe)
        self.assertTrue(result.can_proceed)
        self.assertEqual(probe.refreshes, 1)

    def test_counter_counts_prevention_events(self) -> None:
        counter = Counter()
        status  = replace(CLEAN, is_clean=False, detached=True,
                  current_branch=None, modified=frozenset({"a"}))
        evaluate(Push(force=True), status, counter)
        # detached head + force push
        self.assertEqual(counter.count, 2)

    def test_result_serializes(self) -> None:
        payload = evaluate(BranchDelete("main"), CLEAN).as_dict()
        self.assertEqual(payload["operation"], "branch-delete")
        self.assertEqual(payload["warnings"][0]["severity"], "critical")
        self.assertEqual(payload["highest"], "critical")
        self.assertIsNone(evaluate(Pull(), CLEAN).as_dict()["highest"])

    def test_unknown_operation_rejected(self) -> None:
        with self.assertRaises(TypeError):
            evaluate(object(), CLEAN)  # type: ignore[arg-type]


class WrapperTests(unittest.TestCase):
    def test_wrappers_match_evaluate(self) -> None:
        dirty = replace(CLEAN, is_clean=False,
                modified=frozenset({"a.py"}))
        self.assertEqual(validate_commit(CLEAN, expected_branch="dev"
            ).codes(), ["GC_NOTHING_STAGED", "GC_WRONG_BRANCH"])
        self.assertEqual(validate_pull(dirty).codes(),
            ["GC_UNCOMMITTED_CHANGES"])
        self.assertEqual(validate_checkout(dirty, "x").operation,
            "checkout")
        self.assertEqual(validate_pull(CLEAN).operation, "pull")


if __name__ == "__main__":
    unittest.main()
