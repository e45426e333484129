"""
Read-only repository state queries.

A `StatusProbe` never mutates the repository and never
caches: every call re-reads git so validation never acts on
stale ahead/behind counts.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Protocol
from pathlib import Path
import logging as log

from . import gitutils


logger = log.getLogger("gitcoach.probe")

Runner = Callable[[list[str], str], tuple[int, str]]

# return codes run_git uses for failures of git itself rather
# than of the repository query
_TOOL_FAILURE_CODES = {124, 127, 130}


class ProbeError(RuntimeError):
    """A read-only query against git could not be answered."""


@dataclass(frozen=True)
class RepositoryStatus:
    """Immutable snapshot of repository state."""
    is_clean: bool = True
    current_branch: str | None = None
    tracking_ref: str | None = None
    staged: frozenset[str] = field(default_factory=frozenset)
    modified: frozenset[str] = field(default_factory=frozenset)
    deleted: frozenset[str] = field(default_factory=frozenset)
    untracked: frozenset[str] = field(default_factory=frozenset)
    conflicted: frozenset[str] = field(default_factory=frozenset)
    ahead: int = 0
    behind: int = 0
    detached: bool = False
    merge_in_progress: bool = False
    rebase_in_progress: bool = False
    cherry_pick_in_progress: bool = False
    bisect_in_progress: bool = False
    remotes: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.ahead < 0 or self.behind < 0:
            raise ValueError("ahead/behind must be non-negative")

    def as_dict(self) -> dict[str, object]:
        return {
            "is_clean": self.is_clean,
            "current_branch": self.current_branch,
            "tracking_ref": self.tracking_ref,
            "staged": sorted(self.staged),
            "modified": sorted(self.modified),
            "deleted": sorted(self.deleted),
            "untracked": sorted(self.untracked),
            "conflicted": sorted(self.conflicted),
            "ahead": self.ahead,
            "behind": self.behind,
            "detached": self.detached,
            "merge_in_progress": self.merge_in_progress,
            "rebase_in_progress": self.rebase_in_progress,
            "cherry_pick_in_progress": self.cherry_pick_in_progress,
            "bisect_in_progress": self.bisect_in_progress,
            "remotes": list(self.remotes),
        }


class StatusSource(Protocol):
    """What validation checks read from."""
    def refresh(self) -> RepositoryStatus: ...
    def is_git_repo(self) -> bool: ...
    def has_remote(self) -> bool: ...


def parse_porcelain_v2(text: str) -> dict[str, object]:
    """
    Parse `git status --porcelain=v2 --branch -z` output.

    Returns the keyword arguments for `RepositoryStatus`
    that the status output alone can answer.
    """
    staged: set[str]     = set()
    modified: set[str]   = set()
    deleted: set[str]    = set()
    untracked: set[str]  = set()
    conflicted: set[str] = set()
    branch: str | None   = None
    upstream: str | None = None
    detached = False
    ahead = behind = 0

    entries = text.split("\0")
    i = 0
    while i < len(entries):
        entry = entries[i]
        i += 1
        if not entry: continue
        if entry.startswith("# branch.head "):
            head = entry[len("# branch.head "):]
            if head == "(detached)": detached = True
            else: branch = head
        elif entry.startswith("# branch.upstream "):
            upstream = entry[len("# branch.upstream "):]
        elif entry.startswith("# branch.ab "):
            for token in entry[len("# branch.ab "):].split():
                if token.startswith("+"): ahead = int(token[1:])
                elif token.startswith("-"): behind = int(token[1:])
        elif entry.startswith("? "):
            untracked.add(entry[2:])
        elif entry.startswith("u "):
            conflicted.add(entry.split(" ", 10)[10])
        elif entry.startswith(("1 ", "2 ")):
            kind = entry[0]
            xy   = entry[2:4]
            # ordinary entries have 8 fields before the path,
            # renames/copies 9 and carry the origin path in the
            # following NUL-separated entry
            path = entry.split(" ", 8 if kind == "1" else 9)[-1]
            if kind == "2": i += 1
            x, y = xy[0], xy[1]
            if x != ".": staged.add(path)
            if y in "MT": modified.add(path)
            if "D" in (x, y): deleted.add(path)

    is_clean = not (staged or modified or deleted or untracked
               or conflicted)
    return {
        "is_clean": is_clean,
        "current_branch": branch,
        "tracking_ref": upstream,
        "staged": frozenset(staged),
        "modified": frozenset(modified),
        "deleted": frozenset(deleted),
        "untracked": frozenset(untracked),
        "conflicted": frozenset(conflicted),
        "ahead": ahead,
        "behind": behind,
        "detached": detached,
    }


class StatusProbe:
    """Live probe over a working directory."""

    def __init__(self, path: str, runner: Runner | None = None
                ) -> None:
        self.path   = path
        self._run   = runner or gitutils.run_git

    def _query(self, args: list[str]) -> str:
        rc, out = self._run(args, self.path)
        if rc != 0:
            logger.debug("query failed: git %s -> %s", " ".join(args), out)
            raise ProbeError(out or f"git {' '.join(args)} failed")
        return out

    def is_git_repo(self) -> bool:
        """False outside a work tree; ProbeError if git itself failed."""
        rc, out = self._run(["rev-parse", "--is-inside-work-tree"],
                  self.path)
        if rc in _TOOL_FAILURE_CODES: raise ProbeError(out)
        return rc == 0 and out.strip() == "true"

    def has_remote(self) -> bool:
        return bool(self._query(["remote"]).strip())

    def _git_dir(self) -> Path:
        return Path(self._query(["rev-parse", "--absolute-git-dir"]))

    def refresh(self) -> RepositoryStatus:
        """Take a fresh snapshot; raises ProbeError on failure."""
        rc, out = self._run(["status", "--porcelain=v2", "--branch",
                  "-z"], self.path)
        if rc != 0: raise ProbeError(out or "git status failed")
        fields  = parse_porcelain_v2(out)
        git_dir = self._git_dir()
        remotes = tuple(self._query(["remote"]).split())
        return RepositoryStatus(
            merge_in_progress=(git_dir / "MERGE_HEAD").exists(),
            rebase_in_progress=(git_dir / "rebase-merge").exists()
                or (git_dir / "rebase-apply").exists(),
            cherry_pick_in_progress=(git_dir / "CHERRY_PICK_HEAD"
                ).exists(),
            bisect_in_progress=(git_dir / "BISECT_LOG").exists(),
            remotes=remotes,
            **fields,  # type: ignore[arg-type]
        )


class SnapshotProbe:
    """Serve an already-taken snapshot through the probe interface."""

    def __init__(self, status: RepositoryStatus) -> None:
        self.status = status

    def refresh(self) -> RepositoryStatus:
        return self.status

    def is_git_repo(self) -> bool:
        return True

    def has_remote(self) -> bool:
        return bool(self.status.remotes)
