"""
Optional AI assistant backed by the `copilot` CLI.

Every helper returns None when the assistant is missing,
times out or answers with noise, so no caller ever depends
on it. Availability lives on an explicit capability value.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable
import logging as log
import subprocess
import time
import os
import re


logger = log.getLogger("gitcoach.assistant")

TIMEOUT_S         = 30.0
RETRY_DELAY_S     = 1.0
MAX_RETRIES       = 1
MAX_DIFF_FILES    = 5
MAX_COMMIT_LENGTH = 100
MIN_COMMIT_LENGTH = 10
MIN_LINE_LENGTH   = 5

_VERSION_PATTERN = re.compile(r"\d+\.\d+")
_NOISE_PATTERNS  = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"^\s*$",
    r"tokens?",
    r"model",
    r"session",
    r"^\d+\s*(tokens?|ms|s)\b",
    r"^time:",
    r"^cost:",
    r"^input:",
    r"^output:",
))
_COMMIT_NOISE    = _NOISE_PATTERNS + tuple(re.compile(p) for p in (
    r"^#", r"^\$", r"^>"))
_CONVENTIONAL    = re.compile(
    r"^(feat|fix|docs|style|refactor|perf|test|build|ci|chore|revert)"
    r"(\(.+\))?!?:\s*.+", re.IGNORECASE)
_COMMIT_VERBS    = re.compile(
    r"^(add|update|fix|remove|refactor|implement|create|delete|"
    r"change|improve|move|rename)", re.IGNORECASE)
_RECOMMENDATION  = re.compile(r"^\s*recommendation\s*:\s*(\w+)",
                   re.IGNORECASE | re.MULTILINE)

Runner = Callable[[list[str], float], tuple[int, str, str]]


def assistant_command() -> str:
    return os.environ.get("COPILOT_CLI_PATH") or "copilot"


def _run(argv: list[str], timeout: float) -> tuple[int, str, str]:
    try:
        proc = subprocess.run(argv, text=True, capture_output=True,
               timeout=timeout)
    except subprocess.TimeoutExpired:
        return 124, "", "assistant timed out"
    except OSError as e:
        return 127, "", str(e)
    return proc.returncode, proc.stdout or "", proc.stderr or ""


@dataclass
class AssistantCapability:
    """
    Whether the assistant CLI can be used.

    `available` stays None until `check()` runs; `reset()`
    forgets the answer, e.g. after installing the CLI.
    """
    command: str = ""
    available: bool | None = None
    version: str = ""
    enabled: bool = True

    def __post_init__(self) -> None:
        if not self.command: self.command = assistant_command()

    def check(self, runner: Runner | None = None) -> bool:
        if not self.enabled: return False
        if self.available is not None: return self.available
        rc, out, err = (runner or _run)([self.command, "--version"],
                       TIMEOUT_S)
        match          = _VERSION_PATTERN.search(out)
        missing        = "not found" in err or "not recognized" in err
        self.available = rc == 0 and bool(match) and not missing
        self.version   = match.group(0) if match else ""
        logger.debug("assistant check: rc=%s available=%s", rc,
            self.available)
        return self.available

    def reset(self) -> None:
        self.available = None
        self.version   = ""


def _ask(capability: AssistantCapability, prompt: str,
         runner: Runner | None = None) -> tuple[str, str] | None:
    if not capability.check(runner): return None
    run  = runner or _run
    argv = [capability.command, "-p", prompt, "-s"]
    for attempt in range(MAX_RETRIES + 1):
        rc, out, err = run(argv, TIMEOUT_S)
        if rc == 0: return out, err
        logger.debug("assistant attempt %d failed: rc=%s %s",
            attempt + 1, rc, err[:200])
        if attempt < MAX_RETRIES: time.sleep(RETRY_DELAY_S)
    return None


def _strip_quotes(line: str) -> str:
    return re.sub(r"^[\"'`]|[\"'`]$", "", line)


def _clean_lines(out: str, err: str,
                 noise: tuple[re.Pattern[str], ...]) -> list[str]:
    lines = f"{out}\n{err}".strip().split("\n")
    kept  = []
    for line in lines:
        line = line.strip()
        if any(p.search(line) for p in noise): continue
        kept.append(line)
    return kept


def parse_answer(out: str, err: str = "") -> str | None:
    lines = [line for line in _clean_lines(out, err, _NOISE_PATTERNS)
            if len(line) >= MIN_LINE_LENGTH]
    return "\n".join(lines) if lines else None


def parse_commit_message(out: str, err: str = "") -> str | None:
    lines = [_strip_quotes(line)
            for line in _clean_lines(out, err, _COMMIT_NOISE)]
    for line in lines:
        if _CONVENTIONAL.match(line): return line[:MAX_COMMIT_LENGTH]
    for line in lines:
        if not MIN_COMMIT_LENGTH <= len(line) <= MAX_COMMIT_LENGTH:
            continue
        if _COMMIT_VERBS.match(line): return line
    for line in lines:
        if MIN_LINE_LENGTH <= len(line) <= MAX_COMMIT_LENGTH:
            return line
    return None


def summarize_diff(diff: str) -> str:
    """Metadata-only summary: file names and line counts, no code."""
    files: list[str] = []
    additions = deletions = 0
    for line in diff.split("\n"):
        if line.startswith("diff --git"):
            match = re.search(r"b/(.+)$", line)
            if match: files.append(match.group(1))
        elif line.startswith("+") and not line.startswith("+++"):
            additions += 1
        elif line.startswith("-") and not line.startswith("---"):
            deletions += 1
    parts = []
    if files:
        clean = [re.sub(r"[^a-zA-Z0-9._/-]", "", f)
                for f in files[:MAX_DIFF_FILES]]
        parts.append(f"Files: {', '.join(clean)}")
    if additions or deletions:
        parts.append(f"{additions} additions, {deletions} deletions")
    return ". ".join(parts)


def suggest_commit_message(capability: AssistantCapability, diff: str,
                           runner: Runner | None = None) -> str | None:
    if not diff.strip(): return None
    prompt = ("Generate a conventional commit message for these file "
              f"changes: {summarize_diff(diff)}. Use format type: "
              "description where type is feat fix docs refactor test "
              "or chore. Reply with only the commit message.")
    reply  = _ask(capability, prompt, runner)
    return parse_commit_message(*reply) if reply else None


def ask_question(capability: AssistantCapability, question: str,
                 runner: Runner | None = None) -> str | None:
    if not question.strip(): return None
    prompt = ("You are a Git expert assistant. Answer this Git "
              "question clearly and concisely. If it involves "
              "commands, show the exact command to use.\n\n"
              f"Question: {question}\n\nProvide a helpful answer in "
              "2-4 sentences.")
    reply  = _ask(capability, prompt, runner)
    return parse_answer(*reply) if reply else None


def explain_git_error(capability: AssistantCapability, error: str,
                      command: str | None = None,
                      runner: Runner | None = None) -> str | None:
    if not error.strip(): return None
    context = f"Command executed: {command}\n" if command else ""
    prompt  = ("You are a Git expert. Explain this Git error simply "
               f"and provide a solution.\n\n{context}Error message: "
               f"{error}\n\n1. Explain what this error means in simple "
               "terms (1 sentence)\n2. Provide the solution or command "
               "to fix it (1-2 sentences)")
    reply   = _ask(capability, prompt, runner)
    return parse_answer(*reply) if reply else None


@dataclass(frozen=True)
class ConflictAdvice:
    recommendation: str
    explanation: str


def suggest_conflict_resolution(capability: AssistantCapability,
                                path: str, local: str, remote: str,
                                runner: Runner | None = None
                               ) -> ConflictAdvice | None:
    """Ask which side of a conflict block to keep."""
    prompt = ("You are a Git expert. A merge conflict in "
              f"{path} has two versions.\n\nLOCAL:\n{local}\n\n"
              f"REMOTE:\n{remote}\n\nStart your reply with "
              "'Recommendation: local', 'Recommendation: remote' or "
              "'Recommendation: both', then explain why in one or two "
              "sentences.")
    reply  = _ask(capability, prompt, runner)
    if not reply: return None
    answer = parse_answer(*reply)
    if not answer: return None
    match  = _RECOMMENDATION.search(answer)
    choice = match.group(1).lower() if match else ""
    if choice not in ("local", "remote", "both"): return None
    explanation = _RECOMMENDATION.sub("", answer).strip()
    return ConflictAdvice(recommendation=choice, explanation=explanation)
