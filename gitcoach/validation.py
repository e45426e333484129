"""
Risk classification for mutating git operations.

Atomic checks each answer one question about the repository
and return a `RiskWarning` or None. `evaluate` composes them
per operation in a fixed order: repository state first, then
uncommitted changes, then checks specific to the operation.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Callable, ClassVar, Protocol, Union
from enum import IntEnum
import logging as log

from .status_probe import (
    ProbeError,
    RepositoryStatus,
    SnapshotProbe,
    StatusSource,
)
from . import telemetry


logger = log.getLogger("gitcoach.validation")


class Severity(IntEnum):
    INFO     = 1
    WARNING  = 2
    CRITICAL = 3

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class RiskWarning:
    """One risk surfaced to the operator."""
    code: str
    severity: Severity
    title: str
    message: str
    suggested_action: str = ""

    def as_dict(self) -> dict[str, str]:
        payload = asdict(self)
        payload["severity"] = self.severity.label
        return payload


@dataclass(frozen=True)
class ValidationResult:
    operation: str
    warnings: tuple[RiskWarning, ...] = ()
    can_proceed: bool = True
    waived: tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.warnings

    def codes(self) -> list[str]:
        return [w.code for w in self.warnings]

    def highest(self) -> Severity | None:
        if not self.warnings: return None
        return max(w.severity for w in self.warnings)

    def as_dict(self) -> dict[str, object]:
        top = self.highest()
        return {
            "operation": self.operation,
            "valid": self.valid,
            "highest": top.label if top else None,
            "can_proceed": self.can_proceed,
            "waived": list(self.waived),
            "warnings": [w.as_dict() for w in self.warnings],
        }


class PreventionCounter(Protocol):
    """External store counting prevented mistakes."""
    def increment_errors_prevented(self) -> None: ...


# ---------- operations ----------
@dataclass(frozen=True)
class Commit:
    kind: ClassVar[str] = "commit"
    expected_branch: str | None = None

    @property
    def destructive(self) -> bool: return False


@dataclass(frozen=True)
class Push:
    kind: ClassVar[str] = "push"
    force: bool = False
    expected_branch: str | None = None

    @property
    def destructive(self) -> bool: return self.force


@dataclass(frozen=True)
class Pull:
    kind: ClassVar[str] = "pull"

    @property
    def destructive(self) -> bool: return False


@dataclass(frozen=True)
class Checkout:
    target: str
    kind: ClassVar[str] = "checkout"

    @property
    def destructive(self) -> bool: return False


@dataclass(frozen=True)
class BranchDelete:
    target: str
    kind: ClassVar[str] = "branch-delete"

    @property
    def destructive(self) -> bool: return True


@dataclass(frozen=True)
class BranchCreate:
    target: str
    kind: ClassVar[str] = "branch-create"

    @property
    def destructive(self) -> bool: return False


@dataclass(frozen=True)
class Add:
    """Stage `paths`, or everything when empty."""
    paths: tuple[str, ...] = ()
    kind: ClassVar[str] = "add"

    @property
    def destructive(self) -> bool: return False


@dataclass(frozen=True)
class Stash:
    message: str | None = None
    kind: ClassVar[str] = "stash"

    @property
    def destructive(self) -> bool: return False


@dataclass(frozen=True)
class StashPop:
    kind: ClassVar[str] = "stash-pop"

    @property
    def destructive(self) -> bool: return False


@dataclass(frozen=True)
class Undo:
    """Drop the last commit; `hard` also discards its changes."""
    hard: bool = False
    kind: ClassVar[str] = "undo"

    @property
    def destructive(self) -> bool: return self.hard


@dataclass(frozen=True)
class Merge:
    target: str
    kind: ClassVar[str] = "merge"

    @property
    def destructive(self) -> bool: return False


@dataclass(frozen=True)
class Abort:
    """Back out of an in-progress merge or rebase."""
    kind: ClassVar[str] = "abort"

    @property
    def destructive(self) -> bool: return True


Operation = Union[Commit, Push, Pull, Checkout, BranchDelete, BranchCreate,
                  Add, Stash, StashPop, Undo, Merge, Abort]


# ---------- atomic checks ----------
def _prevented(counter: PreventionCounter | None, code: str) -> None:
    telemetry.emit_event(
        event_type="error_prevented",
        step_id=code,
        payload={"code": code},
    )
    if counter is None: return
    counter.increment_errors_prevented()


def _status(source: StatusSource, check: str) -> RepositoryStatus | None:
    try: return source.refresh()
    except ProbeError as e:
        logger.debug("%s skipped: %s", check, e)
        return None


def check_not_git_repo(source: StatusSource,
                       counter: PreventionCounter | None = None
                      ) -> RiskWarning | None:
    warning = RiskWarning(
        code="GC_NOT_A_REPOSITORY",
        severity=Severity.CRITICAL,
        title="Not a git repository",
        message="This directory is not inside a git repository.",
        suggested_action="Move into a repository or run `git init`.",
    )
    try:
        if source.is_git_repo(): return None
    except ProbeError as e:
        logger.debug("repository query failed: %s", e)
    return warning


def check_merge_in_progress(source: StatusSource,
                            counter: PreventionCounter | None = None
                           ) -> RiskWarning | None:
    status = _status(source, "merge check")
    if status is None or not status.merge_in_progress: return None
    _prevented(counter, "GC_MERGE_IN_PROGRESS")
    return RiskWarning(
        code="GC_MERGE_IN_PROGRESS",
        severity=Severity.CRITICAL,
        title="Merge in progress",
        message="A merge is in progress. Finish or abort it first.",
        suggested_action="Resolve conflicts and commit, or run "
                         "`git merge --abort`.",
    )


def check_rebase_in_progress(source: StatusSource,
                             counter: PreventionCounter | None = None
                            ) -> RiskWarning | None:
    status = _status(source, "rebase check")
    if status is None or not status.rebase_in_progress: return None
    _prevented(counter, "GC_REBASE_IN_PROGRESS")
    return RiskWarning(
        code="GC_REBASE_IN_PROGRESS",
        severity=Severity.CRITICAL,
        title="Rebase in progress",
        message="A rebase is in progress. Finish or abort it first.",
        suggested_action="Run `git rebase --continue` or "
                         "`git rebase --abort`.",
    )


def check_cherry_pick_in_progress(source: StatusSource,
                                  counter: PreventionCounter | None = None
                                 ) -> RiskWarning | None:
    status = _status(source, "cherry-pick check")
    if status is None or not status.cherry_pick_in_progress:
        return None
    _prevented(counter, "GC_CHERRY_PICK_IN_PROGRESS")
    return RiskWarning(
        code="GC_CHERRY_PICK_IN_PROGRESS",
        severity=Severity.WARNING,
        title="Cherry-pick in progress",
        message="A cherry-pick has not been completed.",
        suggested_action="Run `git cherry-pick --continue` or "
                         "`git cherry-pick --abort`.",
    )


def check_bisect_in_progress(source: StatusSource,
                             counter: PreventionCounter | None = None
                            ) -> RiskWarning | None:
    status = _status(source, "bisect check")
    if status is None or not status.bisect_in_progress: return None
    _prevented(counter, "GC_BISECT_IN_PROGRESS")
    return RiskWarning(
        code="GC_BISECT_IN_PROGRESS",
        severity=Severity.WARNING,
        title="Bisect in progress",
        message="A bisect session is active; HEAD may not be where "
                "you expect.",
        suggested_action="Run `git bisect reset` when you are done.",
    )


def check_uncommitted_changes(source: StatusSource,
                              counter: PreventionCounter | None = None
                             ) -> RiskWarning | None:
    status = _status(source, "uncommitted check")
    if status is None or status.is_clean: return None
    _prevented(counter, "GC_UNCOMMITTED_CHANGES")
    return RiskWarning(
        code="GC_UNCOMMITTED_CHANGES",
        severity=Severity.WARNING,
        title="Uncommitted changes",
        message="You have uncommitted changes that could be "
                "overwritten or carried along.",
        suggested_action="Commit or stash your changes first.",
    )


def check_detached_head(source: StatusSource,
                        counter: PreventionCounter | None = None
                       ) -> RiskWarning | None:
    status = _status(source, "detached check")
    if status is None: return None
    if not (status.detached or status.current_branch is None):
        return None
    _prevented(counter, "GC_DETACHED_HEAD")
    return RiskWarning(
        code="GC_DETACHED_HEAD",
        severity=Severity.WARNING,
        title="Detached HEAD",
        message="You are not on a branch. New commits can be lost "
                "when you switch away.",
        suggested_action="Create a branch here with "
                         "`git switch -c <name>`.",
    )


def check_no_remote(source: StatusSource,
                    counter: PreventionCounter | None = None
                   ) -> RiskWarning | None:
    try:
        if source.has_remote(): return None
    except ProbeError as e:
        logger.debug("remote check skipped: %s", e)
        return None
    return RiskWarning(
        code="GC_NO_REMOTE",
        severity=Severity.INFO,
        title="No remote",
        message="No remote repository is configured.",
        suggested_action="Add one with `git remote add origin <url>`.",
    )


def check_behind_remote(source: StatusSource,
                        counter: PreventionCounter | None = None
                       ) -> RiskWarning | None:
    status = _status(source, "behind check")
    if status is None or status.behind <= 0: return None
    return RiskWarning(
        code="GC_BEHIND_REMOTE",
        severity=Severity.WARNING,
        title="Behind remote",
        message=f"The remote has {status.behind} commit(s) you do "
                "not have yet.",
        suggested_action="Pull first, then push.",
    )


def check_nothing_staged(source: StatusSource,
                         counter: PreventionCounter | None = None
                        ) -> RiskWarning | None:
    status = _status(source, "staged check")
    if status is None or status.staged: return None
    return RiskWarning(
        code="GC_NOTHING_STAGED",
        severity=Severity.CRITICAL,
        title="Nothing staged",
        message="There are no staged changes to commit.",
        suggested_action="Stage files with `git add` first.",
    )


def check_force_push(source: StatusSource | None = None,
                     counter: PreventionCounter | None = None
                    ) -> RiskWarning:
    _prevented(counter, "GC_FORCE_PUSH")
    return RiskWarning(
        code="GC_FORCE_PUSH",
        severity=Severity.CRITICAL,
        title="Force push",
        message="Force pushing rewrites remote history and can "
                "destroy other people's work.",
        suggested_action="Prefer pulling and pushing normally.",
    )


def check_wrong_branch(source: StatusSource, expected: str,
                       counter: PreventionCounter | None = None
                      ) -> RiskWarning | None:
    status = _status(source, "branch check")
    if status is None: return None
    current = status.current_branch
    if not current or current == expected: return None
    _prevented(counter, "GC_WRONG_BRANCH")
    return RiskWarning(
        code="GC_WRONG_BRANCH",
        severity=Severity.WARNING,
        title="Unexpected branch",
        message=f"You are on {current!r}, not {expected!r}.",
        suggested_action=f"Switch with `git checkout {expected}` if "
                         "this is a mistake.",
    )


def check_delete_current_branch(source: StatusSource, target: str,
                                counter: PreventionCounter | None = None
                               ) -> RiskWarning | None:
    status = _status(source, "delete check")
    if status is None or status.current_branch != target: return None
    return RiskWarning(
        code="GC_DELETE_CURRENT_BRANCH",
        severity=Severity.CRITICAL,
        title="Cannot delete current branch",
        message=f"{target!r} is checked out; git cannot delete the "
                "branch you are on.",
        suggested_action="Switch to another branch first.",
    )


REPO_STATE_CHECKS: tuple[Callable[..., RiskWarning | None], ...] = (
    check_merge_in_progress,
    check_rebase_in_progress,
    check_cherry_pick_in_progress,
    check_bisect_in_progress,
)

FORCE_WAIVABLE: frozenset[str] = frozenset({"GC_FORCE_PUSH"})


class _SinglePass:
    """
    Share one status read between the checks of a single
    evaluation. Discarded when the evaluation returns.
    """

    def __init__(self, source: StatusSource) -> None:
        self._source = source
        self._status: RepositoryStatus | None = None
        self._error: ProbeError | None = None

    def refresh(self) -> RepositoryStatus:
        if self._error is not None: raise self._error
        if self._status is None:
            try: self._status = self._source.refresh()
            except ProbeError as e:
                self._error = e; raise
        return self._status

    def is_git_repo(self) -> bool:
        return self._source.is_git_repo()

    def has_remote(self) -> bool:
        return self._source.has_remote()


Plan = list[Callable[[], RiskWarning | None]]


def _plan(operation: Operation, src: StatusSource,
          counter: PreventionCounter | None) -> Plan:
    def repo_state() -> Plan:
        return [lambda c=c: c(src, counter) for c in REPO_STATE_CHECKS]

    def commit(op: Commit) -> Plan:
        plan: Plan = [
            lambda: check_detached_head(src, counter),
            lambda: check_nothing_staged(src, counter),
        ]
        if op.expected_branch:
            expected = op.expected_branch
            plan.append(lambda: check_wrong_branch(src, expected, counter))
        return plan

    def push(op: Push) -> Plan:
        plan = repo_state() + [
            lambda: check_detached_head(src, counter),
            lambda: check_no_remote(src, counter),
            lambda: check_behind_remote(src, counter),
        ]
        if op.expected_branch:
            expected = op.expected_branch
            plan.append(lambda: check_wrong_branch(src, expected, counter))
        if op.force:
            plan.append(lambda: check_force_push(src, counter))
        return plan

    def pull(op: Pull) -> Plan:
        return repo_state() + [
            lambda: check_uncommitted_changes(src, counter),
            lambda: check_no_remote(src, counter),
        ]

    def checkout(op: Checkout) -> Plan:
        return repo_state() + [
            lambda: check_uncommitted_changes(src, counter),
        ]

    def branch_delete(op: BranchDelete) -> Plan:
        target = op.target
        return [
            lambda: check_delete_current_branch(src, target, counter),
        ]

    def merge(op: Merge) -> Plan:
        return repo_state() + [
            lambda: check_uncommitted_changes(src, counter),
            lambda: check_detached_head(src, counter),
        ]

    def stash_pop(op: StashPop) -> Plan:
        return repo_state() + [
            lambda: check_uncommitted_changes(src, counter),
        ]

    def undo(op: Undo) -> Plan:
        return repo_state() + [
            lambda: check_detached_head(src, counter),
        ]

    def bare(op: Operation) -> Plan:
        return []

    dispatch_map: dict[type, Callable[..., Plan]] = {
        Commit: commit,
        Push: push,
        Pull: pull,
        Checkout: checkout,
        BranchDelete: branch_delete,
        BranchCreate: bare,
        Add: bare,
        Stash: lambda op: repo_state(),
        StashPop: stash_pop,
        Undo: undo,
        Merge: merge,
        Abort: bare,
    }
    build = dispatch_map.get(type(operation))
    if build is None:
        raise TypeError(f"unsupported operation: {operation!r}")
    return [lambda: check_not_git_repo(src, counter)] + build(operation)


def evaluate(operation: Operation,
             source: StatusSource | RepositoryStatus,
             counter: PreventionCounter | None = None
            ) -> ValidationResult:
    """Run every check `operation` cares about and decide."""
    if isinstance(source, RepositoryStatus):
        source = SnapshotProbe(source)
    src = _SinglePass(source)

    warnings: list[RiskWarning] = []
    for check in _plan(operation, src, counter):
        warning = check()
        if warning is not None: warnings.append(warning)

    force  = isinstance(operation, Push) and operation.force
    waived = tuple(w.code for w in warnings
             if force and w.code in FORCE_WAIVABLE)
    blocking = [w for w in warnings
               if w.severity is Severity.CRITICAL
               and w.code not in waived]

    result = ValidationResult(
        operation=operation.kind,
        warnings=tuple(warnings),
        can_proceed=not blocking,
        waived=waived,
    )
    telemetry.emit_validation(operation.kind, result.codes(),
        result.can_proceed)
    logger.debug("validated %s: %s proceed=%s", operation.kind,
        result.codes(), result.can_proceed)
    return result


def validate_commit(source: StatusSource | RepositoryStatus,
                    counter: PreventionCounter | None = None,
                    expected_branch: str | None = None
                   ) -> ValidationResult:
    return evaluate(Commit(expected_branch), source, counter)


def validate_push(source: StatusSource | RepositoryStatus,
                  force: bool = False,
                  counter: PreventionCounter | None = None,
                  expected_branch: str | None = None
                 ) -> ValidationResult:
    return evaluate(Push(force, expected_branch), source, counter)


def validate_pull(source: StatusSource | RepositoryStatus,
                  counter: PreventionCounter | None = None
                 ) -> ValidationResult:
    return evaluate(Pull(), source, counter)


def validate_checkout(source: StatusSource | RepositoryStatus,
                      target: str,
                      counter: PreventionCounter | None = None
                     ) -> ValidationResult:
    return evaluate(Checkout(target), source, counter)


def validate_branch_delete(source: StatusSource | RepositoryStatus,
                           target: str,
                           counter: PreventionCounter | None = None
                          ) -> ValidationResult:
    return evaluate(BranchDelete(target), source, counter)
