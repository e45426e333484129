"""
Interactive walk through every conflicted file of a merge.

Blocks are resolved in memory from the last one to the
first, then the file is written back atomically and staged.
Choosing "back" stops the session and leaves untouched files
as they were.
"""
from __future__ import annotations

# ======================= STANDARDS =======================
from dataclasses import dataclass, field
from typing import Callable, Protocol
from pathlib import Path
import logging as log
import tempfile
import os

# ======================== LOCALS =========================
from .conflicts import (
    ConflictBlock,
    ResolutionChoice,
    has_conflict_markers,
    normalize,
    parse_conflict_blocks,
    resolve_conflict_block,
)
from .assistant import AssistantCapability, suggest_conflict_resolution
from .gitutils import GitCommandError
from .error_mapper import map_git_error
from .policy import AdaptivePolicy
from .utils import Output, StepResult
from . import gitutils, panels, telemetry


logger = log.getLogger("gitcoach.conflicts")

EDIT      = "edit"
ASSISTANT = "assistant"
BACK      = "back"


class Prompter(Protocol):
    """Blocking operator interaction."""
    def confirm(self, question: str, default: bool = True) -> bool: ...
    def select(self, question: str,
               options: list[tuple[str, str]]) -> str: ...
    def wait(self, message: str) -> None: ...


@dataclass
class SessionResult:
    result: StepResult
    total: int = 0
    resolved: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)
    commit: str | None = None

    @property
    def all_resolved(self) -> bool:
        return self.total == len(self.resolved)


def write_atomic(path: Path, text: str) -> None:
    """Replace `path` with LF `text` without partial writes."""
    mode = path.stat().st_mode if path.exists() else None
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.",
              suffix=".gitcoach")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        if mode is not None: os.chmod(tmp, mode)
        os.replace(tmp, path)
    except OSError:
        Path(tmp).unlink(missing_ok=True)
        raise


def _read(path: Path) -> str:
    with path.open(encoding="utf-8", newline="") as f:
        return f.read()


class ConflictSession:
    def __init__(self, repo: str, prompter: Prompter,
                 policy: AdaptivePolicy | None = None,
                 assistant: AssistantCapability | None = None,
                 out: Output | None = None,
                 on_resolved: Callable[[str], None] | None = None
                ) -> None:
        self.repo        = repo
        self.prompter    = prompter
        self.policy      = policy or AdaptivePolicy()
        self.assistant   = assistant
        self.out         = out or Output()
        self.on_resolved = on_resolved

    def _options(self) -> list[tuple[str, str]]:
        options = [
            (ResolutionChoice.LOCAL.value, "Keep my version (local)"),
            (ResolutionChoice.REMOTE.value, "Keep their version (remote)"),
            (ResolutionChoice.BOTH.value, "Keep both (local, then remote)"),
            (EDIT, "Edit the file myself"),
        ]
        if self.assistant is not None and self.assistant.check():
            options.append((ASSISTANT, "Ask the assistant"))
        options.append((BACK, "Back"))
        return options

    def _advise(self, rel: str, block: ConflictBlock) -> str | None:
        """Ask the assistant; returns an accepted choice or None."""
        if self.assistant is None: return None
        with panels.thinking("asking the assistant..."):
            advice = suggest_conflict_resolution(self.assistant, rel,
                     block.local_text, block.remote_text)
        if advice is None:
            self.out.warn("The assistant has no suggestion for this "
                          "block.")
            return None
        self.out.info(f"Assistant suggests: "
                      f"{advice.recommendation.upper()}")
        if advice.explanation: self.out.muted(advice.explanation)
        if self.prompter.confirm("Accept this suggestion?", True):
            return advice.recommendation
        return None

    def _edit(self, path: Path, rel: str, text: str) -> str | None:
        """
        Flush in-memory progress, let the operator edit, and
        return the re-read content (None if unreadable).
        """
        write_atomic(path, text)
        self.out.prompt(f"Open {rel}, remove every <<<<<<<, ======= "
                        "and >>>>>>> marker and keep the lines you "
                        "want.")
        self.prompter.wait("Press Enter when you are done")
        try: return normalize(_read(path))
        except (OSError, UnicodeDecodeError) as e:
            self.out.warn(f"Cannot read {rel}: {e}")
            return None

    def resolve_file(self, rel: str) -> str:
        """
        Walk one file. Returns "resolved", "unresolved" or
        BACK when the operator cancels.
        """
        path = Path(self.repo) / rel
        try: text = normalize(_read(path))
        except (OSError, UnicodeDecodeError) as e:
            self.out.warn(f"Cannot read {rel}: {e}")
            return "unresolved"

        while True:
            blocks = parse_conflict_blocks(text)
            if not blocks: break
            edited = False
            for block in reversed(blocks):
                while True:
                    panels.show(panels.conflict_table(block, rel))
                    choice = self.prompter.select(
                             "How do you want to resolve this block?",
                             self._options())
                    if choice == BACK: return BACK
                    if choice == ASSISTANT:
                        choice = self._advise(rel, block) or ""
                        if not choice: continue
                    if choice == EDIT:
                        reread = self._edit(path, rel, text)
                        if reread is None: return "unresolved"
                        text, edited = reread, True
                        break
                    logger.debug("%s lines %d-%d: %s", rel,
                        block.start_line, block.end_line, choice)
                    text = resolve_conflict_block(text, block, choice)
                    break
                if edited: break
            if not edited: break
            if not has_conflict_markers(text): break
            self.out.warn(f"{rel} still has conflict markers.")

        if has_conflict_markers(text):
            self.out.warn(f"{rel} needs manual resolution.")
            return "unresolved"
        write_atomic(path, text)
        return "resolved"

    def run(self) -> SessionResult:
        files = gitutils.conflicted_files(self.repo)
        if not files:
            self.out.info("No conflicted files.")
            return SessionResult(StepResult.SKIP)

        if self.policy.should_show_explanation():
            self.out.info("Git could not merge some lines on its own. "
                          "For each conflict pick the version to keep; "
                          "'local' is yours, 'remote' is the incoming "
                          "one.")

        session = SessionResult(StepResult.OK, total=len(files))
        for i, rel in enumerate(files, 1):
            self.out.prompt(f"File {i}/{len(files)}: {rel}")
            outcome = self.resolve_file(rel)
            if outcome == BACK:
                session.result = StepResult.ABORT
                session.unresolved.extend(files[i - 1:])
                return session
            if outcome != "resolved":
                session.unresolved.append(rel)
                continue
            try: gitutils.stage(self.repo, [rel])
            except GitCommandError as e:
                self.out.warn(map_git_error(e.reason).message)
                session.unresolved.append(rel)
                continue
            session.resolved.append(rel)
            telemetry.emit_event("conflict_resolved", rel,
                {"file": rel})
            if self.on_resolved: self.on_resolved(rel)
            self.out.success(f"Resolved {rel} "
                             f"({len(session.resolved)}/{len(files)})")

        if not session.all_resolved:
            session.result = StepResult.FAIL
            self.out.warn(f"{len(session.resolved)}/{len(files)} files "
                          "resolved. The rest need manual resolution.")
            return session

        self.out.success(f"All {len(files)} conflicted file(s) resolved.")
        return self._finalize(session)

    def _finalize(self, session: SessionResult) -> SessionResult:
        if not gitutils.merge_in_progress(self.repo): return session
        if not self.prompter.confirm("Create the merge commit now?",
               True):
            return session
        try: session.commit = gitutils.commit_no_edit(self.repo)
        except GitCommandError as e:
            mapped = map_git_error(e.reason)
            self.out.warn(f"{mapped.message} {mapped.suggestion}")
            session.result = StepResult.FAIL
            return session
        self.out.success(f"Merge commit: {session.commit}")
        return session
