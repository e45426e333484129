"""
Guarded git operations.

Every mutation goes through the same gate: validate against
a fresh repository read, show what the operator's tier
should see, stop on unwaived criticals, confirm when the
policy asks for it, and only then call git.
"""
from __future__ import annotations

# ======================= STANDARDS =======================
from dataclasses import dataclass
import logging as log

# ======================== LOCALS =========================
from .validation import (
    Abort,
    Add,
    BranchCreate,
    BranchDelete,
    Checkout,
    Commit,
    Merge,
    Operation,
    PreventionCounter,
    Pull,
    Push,
    Stash,
    StashPop,
    Undo,
    ValidationResult,
    evaluate,
)
from .assistant import (
    AssistantCapability,
    explain_git_error,
    suggest_commit_message,
)
from .conflict_session import ConflictSession, Prompter
from .error_mapper import MappedError, map_git_error
from .status_probe import (
    ProbeError,
    RepositoryStatus,
    StatusProbe,
    StatusSource,
)
from .config import Preferences
from .gitutils import GitCommandError
from .utils import Output, StepResult, intent
from ._constants import CURSOR
from . import _constants as const
from . import gitutils, panels, telemetry


logger = log.getLogger("gitcoach.coach")

GUIDED      = "guided"
ABORT_MERGE = "abort"
MANUAL      = "manual"


def _highest(validation: ValidationResult | None) -> str | None:
    top = validation.highest() if validation else None
    return top.label if top else None


@dataclass
class OperationOutcome:
    operation: str
    result: StepResult
    validation: ValidationResult | None = None
    error: MappedError | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.result in (StepResult.OK, StepResult.DONE,
               StepResult.SKIP)


class ConsolePrompter:
    """Prompter reading answers from stdin."""

    def confirm(self, question: str, default: bool = True) -> bool:
        hint = "[Y/n]" if default else "[y/N]"
        try: return intent(f"{question} {hint}", "y", default)
        except EOFError: return False

    def select(self, question: str,
               options: list[tuple[str, str]]) -> str:
        values = [value for value, _ in options]
        # non-interactive runs and closed stdin back out
        fallback = "back" if "back" in values else values[-1]
        out = Output()
        while True:
            out.prompt(question)
            for i, (_, label) in enumerate(options, 1):
                out.raw(f"    {i}. {label}")
            try: answer = input(CURSOR).strip().lower()
            except EOFError: return fallback
            if answer.isdigit() and 1 <= int(answer) <= len(values):
                return values[int(answer) - 1]
            if answer in values: return answer
            out.warn(f"Pick a number between 1 and {len(values)}.")

    def wait(self, message: str) -> None:
        Output().prompt(message)
        try: input(CURSOR)
        except EOFError: return


class Coach:
    def __init__(self, repo: str, prefs: Preferences,
                 prompter: Prompter | None = None,
                 probe: StatusSource | None = None,
                 counter: PreventionCounter | None = None,
                 assistant: AssistantCapability | None = None,
                 out: Output | None = None) -> None:
        self.repo      = repo
        self.prefs     = prefs
        self.policy    = prefs.policy
        self.prompter  = prompter or ConsolePrompter()
        self.probe     = probe or StatusProbe(repo)
        self.counter   = counter
        self.assistant = assistant
        self.out       = out or Output(quiet=const.QUIET)

    # ---------- gate ----------
    def check(self, operation: Operation) -> ValidationResult:
        return evaluate(operation, self.probe, self.counter)

    def guard(self, operation: Operation
             ) -> tuple[OperationOutcome | None, ValidationResult]:
        """The outcome is None when the mutation may run."""
        result  = self.check(operation)
        explain = self.policy.should_show_explanation()
        visible = self.policy.visible(result.warnings)
        if visible: panels.show(panels.warnings_group(visible, explain))

        if not result.can_proceed:
            self.out.warn(f"{operation.kind} blocked.")
            return self._finish(operation, StepResult.FAIL, result,
                   detail="blocked by validation"), result

        if self.policy.should_confirm(operation.destructive):
            question = f"Proceed with {operation.kind}?"
            if not self.prompter.confirm(question,
                   not operation.destructive):
                self.out.muted("cancelled")
                return self._finish(operation, StepResult.ABORT, result,
                       detail="cancelled by operator"), result
        return None, result

    def _finish(self, operation: Operation, result: StepResult,
                validation: ValidationResult | None = None,
                error: MappedError | None = None, detail: str = ""
               ) -> OperationOutcome:
        telemetry.emit_event("operation", operation.kind, {
            "result": result.name,
            "codes": validation.codes() if validation else [],
            "highest": _highest(validation),
            "error": error.code if error else None,
        })
        logger.info("%s finished: %s %s", operation.kind, result.name,
            detail)
        return OperationOutcome(operation.kind, result, validation,
               error, detail)

    def _failed(self, operation: Operation, exc: GitCommandError,
                validation: ValidationResult | None
               ) -> OperationOutcome:
        mapped = map_git_error(exc.reason)
        self.out.warn(f"{mapped.message} {mapped.suggestion}")
        if mapped.raw: self.out.muted(mapped.raw)
        if (self.assistant is not None
                and self.policy.should_show_explanation()):
            with panels.thinking("asking the assistant..."):
                hint = explain_git_error(self.assistant, exc.reason,
                       " ".join(["git", *exc.git_args]))
            if hint: self.out.info(hint)
        return self._finish(operation, StepResult.FAIL, validation,
               mapped, detail=mapped.raw)

    def _bump(self, name: str) -> None:
        bump = getattr(self.counter, "increment", None)
        if callable(bump): bump(name)

    def _current_branch(self) -> str | None:
        try: return self.probe.refresh().current_branch
        except ProbeError as e:
            logger.debug("branch lookup failed: %s", e)
            return None

    def _on_conflict(self, operation: Operation,
                     validation: ValidationResult) -> OperationOutcome:
        """Let the operator pick how a conflicted merge continues."""
        self.out.warn(f"The {operation.kind} stopped on merge conflicts.")
        choice = self.prompter.select("How do you want to continue?", [
            (GUIDED, "Resolve the conflicts step by step"),
            (ABORT_MERGE, "Abort the merge and go back"),
            (MANUAL, "Resolve them myself later"),
        ])
        if choice == ABORT_MERGE:
            try: gitutils.abort_merge(self.repo)
            except GitCommandError as e:
                return self._failed(operation, e, validation)
            self.out.muted("merge aborted")
            return self._finish(operation, StepResult.ABORT, validation,
                   detail="merge aborted")
        if choice != GUIDED:
            self.out.info("Edit the conflicted files, then run "
                          "`gitcoach resolve` or commit them yourself.")
            return self._finish(operation, StepResult.FAIL, validation,
                   detail="conflicts left for manual resolution")
        session = self.resolve()
        return self._finish(operation, session.result, validation,
               detail="conflicts")

    def _refresh(self) -> RepositoryStatus | None:
        try: return self.probe.refresh()
        except ProbeError as e:
            self.out.warn(f"Cannot read repository state: {e}")
            return None

    # ---------- operations ----------
    def commit(self, message: str | None = None,
               expected_branch: str | None = None) -> OperationOutcome:
        operation = Commit(expected_branch)
        stopped, validation = self.guard(operation)
        if stopped: return stopped

        suggested = False
        if not message and self.assistant is not None:
            with panels.thinking("drafting a commit message..."):
                message = suggest_commit_message(self.assistant,
                          gitutils.staged_diff(self.repo))
            if message:
                self.out.info(f"Suggested message: {message}")
                if not self.prompter.confirm("Use this message?", True):
                    message = None
                else: suggested = True
        if not message:
            self.out.warn("A commit message is required (-m).")
            return self._finish(operation, StepResult.ABORT, validation,
                   detail="no commit message")

        try: sha = gitutils.commit(self.repo, message)
        except GitCommandError as e:
            return self._failed(operation, e, validation)
        self._bump("commits")
        if suggested: self._bump("assistant_commits")
        self.out.success(f"Committed {sha}: {message}")
        return self._finish(operation, StepResult.OK, validation,
               detail=sha)

    def push(self, force: bool = False,
             expected_branch: str | None = None) -> OperationOutcome:
        operation = Push(force, expected_branch)
        stopped, validation = self.guard(operation)
        if stopped: return stopped

        status = self._refresh()
        if status is None:
            return self._finish(operation, StepResult.FAIL, validation,
                   detail="repository state unavailable")
        try:
            gitutils.push(self.repo, self.prefs.remote,
                status.current_branch, force=force,
                set_upstream=status.tracking_ref is None)
        except GitCommandError as e:
            return self._failed(operation, e, validation)
        self._bump("pushes")
        self.out.success(f"Pushed {status.current_branch} to "
                         f"{self.prefs.remote}")
        return self._finish(operation, StepResult.OK, validation)

    def pull(self) -> OperationOutcome:
        operation = Pull()
        stopped, validation = self.guard(operation)
        if stopped: return stopped

        branch = self._current_branch()
        try: gitutils.pull(self.repo, self.prefs.remote, branch)
        except GitCommandError as e:
            if not gitutils.conflicted_files(self.repo):
                return self._failed(operation, e, validation)
            return self._on_conflict(operation, validation)
        self._bump("pulls")
        self.out.success(f"Pulled {self.prefs.remote}/{branch}")
        return self._finish(operation, StepResult.OK, validation)

    def checkout(self, target: str) -> OperationOutcome:
        operation = Checkout(target)
        stopped, validation = self.guard(operation)
        if stopped: return stopped
        try: gitutils.checkout(self.repo, target)
        except GitCommandError as e:
            return self._failed(operation, e, validation)
        self._bump("checkouts")
        self.out.success(f"Switched to {target}")
        return self._finish(operation, StepResult.OK, validation)

    def delete_branch(self, target: str, force: bool = False
                     ) -> OperationOutcome:
        operation = BranchDelete(target)
        stopped, validation = self.guard(operation)
        if stopped: return stopped
        try: gitutils.delete_branch(self.repo, target, force=force)
        except GitCommandError as e:
            return self._failed(operation, e, validation)
        self._bump("branches_deleted")
        self.out.success(f"Deleted branch {target}")
        return self._finish(operation, StepResult.OK, validation)

    def create_branch(self, target: str) -> OperationOutcome:
        operation = BranchCreate(target)
        stopped, validation = self.guard(operation)
        if stopped: return stopped
        if target in gitutils.local_branches(self.repo):
            mapped = map_git_error(f"a branch named '{target}' already "
                     "exists")
            self.out.warn(f"{mapped.message} {mapped.suggestion}")
            return self._finish(operation, StepResult.FAIL, validation,
                   mapped, detail=target)
        try: gitutils.create_branch(self.repo, target)
        except GitCommandError as e:
            return self._failed(operation, e, validation)
        self._bump("branches_created")
        self.out.success(f"Created and switched to {target}")
        return self._finish(operation, StepResult.OK, validation)

    def merge(self, target: str) -> OperationOutcome:
        operation = Merge(target)
        stopped, validation = self.guard(operation)
        if stopped: return stopped
        try: gitutils.merge(self.repo, target)
        except GitCommandError as e:
            if not gitutils.conflicted_files(self.repo):
                return self._failed(operation, e, validation)
            return self._on_conflict(operation, validation)
        self._bump("merges")
        self.out.success(f"Merged {target}")
        return self._finish(operation, StepResult.OK, validation)

    def add(self, paths: list[str] | None = None) -> OperationOutcome:
        operation = Add(tuple(paths or ()))
        stopped, validation = self.guard(operation)
        if stopped: return stopped
        try:
            if operation.paths:
                gitutils.stage(self.repo, list(operation.paths))
            else: gitutils.stage_all(self.repo)
        except GitCommandError as e:
            return self._failed(operation, e, validation)
        self.out.success("Staged " + (", ".join(operation.paths)
                         or "all changes"))
        return self._finish(operation, StepResult.OK, validation)

    def stash(self, message: str | None = None) -> OperationOutcome:
        operation = Stash(message)
        stopped, validation = self.guard(operation)
        if stopped: return stopped

        status = self._refresh()
        if status is None:
            return self._finish(operation, StepResult.FAIL, validation,
                   detail="repository state unavailable")
        # untracked files are not stashed
        if not (status.staged or status.modified or status.deleted):
            self.out.info("Nothing to stash.")
            return self._finish(operation, StepResult.SKIP, validation,
                   detail="nothing to stash")
        try: gitutils.stash(self.repo, message)
        except GitCommandError as e:
            return self._failed(operation, e, validation)
        self.out.success("Changes stashed; the working tree is clean.")
        return self._finish(operation, StepResult.OK, validation)

    def unstash(self) -> OperationOutcome:
        operation = StashPop()
        stopped, validation = self.guard(operation)
        if stopped: return stopped
        if not gitutils.stash_list(self.repo):
            self.out.info("There are no stashed changes.")
            return self._finish(operation, StepResult.SKIP, validation,
                   detail="no stash entries")
        try: gitutils.stash_pop(self.repo)
        except GitCommandError as e:
            return self._failed(operation, e, validation)
        self.out.success("Stashed changes restored.")
        return self._finish(operation, StepResult.OK, validation)

    def undo(self, hard: bool = False) -> OperationOutcome:
        """Move the branch back one commit (soft keeps the changes)."""
        operation = Undo(hard)
        stopped, validation = self.guard(operation)
        if stopped: return stopped
        if not gitutils.has_parent_commit(self.repo):
            self.out.info("There is no earlier commit to go back to.")
            return self._finish(operation, StepResult.SKIP, validation,
                   detail="no parent commit")
        if hard and not self.prompter.confirm(
                "The last commit and every uncommitted change will be "
                "lost. Really discard them?", False):
            self.out.muted("cancelled")
            return self._finish(operation, StepResult.ABORT, validation,
                   detail="cancelled by operator")
        mode = "hard" if hard else "soft"
        try: gitutils.reset(self.repo, mode, "HEAD~1")
        except GitCommandError as e:
            return self._failed(operation, e, validation)
        if hard: self.out.success("Last commit discarded.")
        else: self.out.success("Last commit undone; its changes are "
                               "still staged.")
        return self._finish(operation, StepResult.OK, validation,
               detail=mode)

    def abort(self) -> OperationOutcome:
        operation = Abort()
        stopped, validation = self.guard(operation)
        if stopped: return stopped

        status = self._refresh()
        if status is None:
            return self._finish(operation, StepResult.FAIL, validation,
                   detail="repository state unavailable")
        if status.merge_in_progress:
            what, run = "merge", gitutils.abort_merge
        elif status.rebase_in_progress:
            what, run = "rebase", gitutils.abort_rebase
        else:
            self.out.info("No merge or rebase is in progress.")
            return self._finish(operation, StepResult.SKIP, validation,
                   detail="nothing to abort")
        try: run(self.repo)
        except GitCommandError as e:
            return self._failed(operation, e, validation)
        self.out.success(f"The {what} was aborted.")
        return self._finish(operation, StepResult.OK, validation,
               detail=what)

    def resolve(self) -> OperationOutcome:
        session = ConflictSession(
            self.repo,
            self.prompter,
            policy=self.policy,
            assistant=self.assistant,
            out=self.out,
            on_resolved=lambda _: self._bump("conflicts_resolved"),
        ).run()
        detail = f"{len(session.resolved)}/{session.total} resolved"
        telemetry.emit_event("operation", "resolve", {
            "result": session.result.name,
            "resolved": session.resolved,
            "unresolved": session.unresolved,
        })
        return OperationOutcome("resolve", session.result, detail=detail)
