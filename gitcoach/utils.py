"""Module to keep communication with the terminal isolated."""
# ======================= STANDARDS ========================
from enum import Enum, auto as auto_enum
from dataclasses import dataclass
from pathlib import Path
import os

# ===================== THIRD-PARTIES ======================
from tuikit.textools import wrap_text, style_text as color
from tuikit.textools import transmit as _transmit

# ======================== LOCALS ==========================
from . import _constants as const
from ._constants import APP, COACH, CURSOR, GOOD, BAD, INFO
from ._constants import PROMPT, MUTED, SPEED, HOLD, I

__all__ = [
    "Output",
    "StepResult",
    "color",
    "find_repo",
    "get_log_dir",
    "intent",
    "transmit",
    "wrap",
]

def find_repo(path: str) -> str:
    """Walks up until .git present else raises RuntimeError"""
    cur = os.path.abspath(path)
    if os.path.isfile(cur): cur = os.path.dirname(cur)
    while True:
        if os.path.exists(os.path.join(cur, ".git")): return cur
        parent = os.path.dirname(cur)
        if parent == cur: break
        cur = parent
    raise RuntimeError("[404] repo not found")

def get_log_dir(repo: str) -> Path:
    """Log directory kept inside the git dir so the worktree stays clean."""
    git_dir = Path(repo) / ".git"
    base    = git_dir if git_dir.is_dir() else Path(repo)
    log_dir = base / "gitcoach"
    os.makedirs(log_dir, exist_ok=True)
    return log_dir

def wrap(text: str) -> str:
    return wrap_text(text, I, inline=True, order=APP)

def transmit(*text: str | tuple[str], fg: str = PROMPT,
             quiet: bool = False, prfx: bool = True) -> None:
    if quiet: return

    msg = " ".join(map(str, text))
    if prfx: print(COACH, end="")
    if const.NO_TRANSMISSION:
        print(color(msg, fg))
        return
    _transmit(msg, speed=SPEED, hold=HOLD, hue=fg)

def intent(prompt: str, condition: str = "y",
           default: bool = False, space: bool = True) -> bool:
    """
    Ask a yes/no question on stdin.

    Returns True when the first character of the answer
    equals `condition`. An empty answer yields `default`.
    """
    if const.ASSUME_YES: return True
    transmit(prompt)
    answer = input(CURSOR).strip().lower()
    if space: print()
    if not answer: return default
    return answer[0] == condition

@dataclass
class Output:
    quiet: bool = False

    def success(self, msg: str) -> None:
        transmit(wrap(msg), fg=GOOD, quiet=self.quiet)

    def info(self, msg: str, prefix: bool = True) -> None:
        msg = wrap(msg) if const.PLAIN else msg
        transmit(msg, fg=INFO, quiet=self.quiet, prfx=prefix)

    def muted(self, msg: str) -> None:
        transmit(msg, fg=MUTED, quiet=self.quiet, prfx=False)

    def prompt(self, msg: str, fit: bool = True) -> None:
        if fit: msg = wrap(msg)
        transmit(msg, quiet=self.quiet)

    def warn(self, msg: str, fit: bool = True) -> None:
        if fit: msg = wrap(msg)
        transmit(msg, fg=BAD)

    def raw(self, *args: object, **kwargs: object) -> None:
        if not self.quiet: print(*args, **kwargs)  # type: ignore[call-overload]

class StepResult(Enum):
    OK    = auto_enum()
    DONE  = auto_enum()
    SKIP  = auto_enum()
    FAIL  = auto_enum()
    ABORT = auto_enum()
