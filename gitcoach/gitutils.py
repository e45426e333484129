"""
Small helpers for interacting with git. All operations use
the git CLI via subprocess.

Mutating helpers raise GitCommandError carrying the raw
reason reported by git; callers decide how to present it.
Nothing here prompts.
"""
# ======================= STANDARDS =======================
from pathlib import Path
import logging as log
import subprocess
import os

# ======================== LOCALS =========================
from ._constants import APP
from . import telemetry


logger = log.getLogger("gitcoach.git")
logger.setLevel(log.DEBUG)
def configure_logger(log_dir: Path) -> None:
    """Configure the gitcoach logger once per process."""
    telemetry.init_event_stream(Path(log_dir))
    root = log.getLogger("gitcoach")
    if root.handlers: return
    os.makedirs(log_dir, exist_ok=True)
    file_handler = log.FileHandler(str(Path(log_dir) / "debug.log"))
    fmt          = log.Formatter("%(asctime)s - %(name)s - "
                 + "%(levelname)s - %(message)s")
    file_handler.setFormatter(fmt)
    root.setLevel(log.DEBUG)
    root.addHandler(file_handler)


class GitCommandError(RuntimeError):
    """A git invocation exited non-zero."""

    def __init__(self, args: list[str], returncode: int,
                 reason: str) -> None:
        self.git_args   = list(args)
        self.returncode = returncode
        self.reason     = reason.strip()
        cmd = " ".join(["git", *args])
        super().__init__(f"{cmd} failed: {self.reason or 'no output'}")


def run_git(args: list[str], cwd: str, timeout: float = 120.0
           ) -> tuple[int, str]:
    """Run a git command, returning (returncode, output)."""
    logger.debug("RUN: git %s (cwd=%s)", " ".join(args), cwd)
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=cwd,
            text=True,
            capture_output=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return 124, "git step timed out"
    except FileNotFoundError:
        return 127, "git executable not found"
    except KeyboardInterrupt: return 130, "cancelled by user"
    stdout = (proc.stdout or "").strip()
    stderr = (proc.stderr or "").strip()
    logger.debug("RC=%s stdout=%r stderr=%r", proc.returncode,
        stdout[:500], stderr[:500])
    if proc.returncode == 0: return 0, stdout or stderr
    # prefer stderr for failures; fall back to stdout which
    # is where merge conflicts are reported
    return proc.returncode, "\n".join(x for x in (stderr, stdout) if x)


def _must(args: list[str], cwd: str) -> str:
    rc, out = run_git(args, cwd)
    if rc != 0:
        telemetry.emit_event(
            event_type="git_failure",
            step_id=args[0] if args else "git",
            payload={"args": list(args), "returncode": rc,
                     "stderr_excerpt": out[:300]},
        )
        raise GitCommandError(args, rc, out)
    return out


# ---------- read helpers ----------
def rev_parse(path: str, *args: str) -> str | None:
    rc, out = run_git(["rev-parse", *args], cwd=path)
    return out if rc == 0 and out else None


def git_dir(path: str) -> Path | None:
    out = rev_parse(path, "--absolute-git-dir")
    return Path(out) if out else None


def head_hash(path: str, short: bool = True) -> str | None:
    args = ["--short", "HEAD"] if short else ["HEAD"]
    return rev_parse(path, *args)


def staged_diff(path: str) -> str:
    rc, out = run_git(["diff", "--cached"], cwd=path)
    return out if rc == 0 else ""


def remotes(path: str) -> list[str]:
    rc, out = run_git(["remote"], cwd=path)
    if rc == 0 and out.strip(): return out.splitlines()
    return []


def local_branches(path: str) -> list[str]:
    rc, out = run_git(["for-each-ref", "--format=%(refname:short)",
              "refs/heads"], cwd=path)
    if rc == 0 and out.strip(): return out.splitlines()
    return []


def conflicted_files(path: str) -> list[str]:
    """Paths git still reports as unmerged."""
    rc, out = run_git(["diff", "--name-only", "--diff-filter=U"],
              cwd=path)
    if rc == 0 and out.strip(): return out.splitlines()
    return []


def merge_in_progress(path: str) -> bool:
    gdir = git_dir(path)
    return bool(gdir and (gdir / "MERGE_HEAD").exists())


def stash_list(path: str) -> list[str]:
    rc, out = run_git(["stash", "list", "--format=%gs"], cwd=path)
    if rc == 0 and out.strip(): return out.splitlines()
    return []


def has_parent_commit(path: str) -> bool:
    return rev_parse(path, "--verify", "--quiet", "HEAD~1") is not None


# ---------- mutations ----------
def stage(path: str, files: list[str]) -> None:
    if not files: return
    _must(["add", "--", *files], path)


def stage_all(path: str) -> None:
    _must(["add", "-A"], path)


def commit(path: str, message: str | None) -> str:
    if not message: message = f"{APP} commit"
    _must(["commit", "-m", message], path)
    return head_hash(path) or ""


def commit_no_edit(path: str) -> str:
    """Conclude an in-progress merge with git's prepared message."""
    _must(["commit", "--no-edit"], path)
    return head_hash(path) or ""


def push(path: str, remote: str = "origin",
         branch: str | None = None, force: bool = False,
         set_upstream: bool = False) -> None:
    if not branch:
        raise GitCommandError(["push"], 1,
            "cannot push: no branch specified and HEAD is detached")
    args = ["push"]
    if force: args.append("--force")
    if set_upstream: args.append("-u")
    _must(args + [remote, branch], path)


def pull(path: str, remote: str = "origin",
         branch: str | None = None) -> str:
    if not branch:
        raise GitCommandError(["pull"], 1,
            "cannot pull: no branch specified and HEAD is detached")
    return _must(["pull", "--no-rebase", remote, branch], path)


def checkout(path: str, branch: str) -> None:
    _must(["checkout", branch], path)


def create_branch(path: str, name: str, checkout: bool = True) -> None:
    if checkout: _must(["checkout", "-b", name], path)
    else: _must(["branch", name], path)


def delete_branch(path: str, name: str, force: bool = False) -> None:
    _must(["branch", "-D" if force else "-d", name], path)


def merge(path: str, branch: str) -> str:
    return _must(["merge", "--no-edit", branch], path)


def abort_merge(path: str) -> None:
    _must(["merge", "--abort"], path)


def abort_rebase(path: str) -> None:
    _must(["rebase", "--abort"], path)


def stash(path: str, message: str | None = None) -> None:
    args = ["stash", "push"]
    if message: args += ["-m", message]
    _must(args, path)


def stash_pop(path: str) -> None:
    _must(["stash", "pop"], path)


def reset(path: str, mode: str = "mixed", ref: str = "HEAD") -> None:
    if mode not in ("soft", "mixed", "hard"):
        raise ValueError(f"unknown reset mode: {mode!r}")
    _must(["reset", f"--{mode}", ref], path)
