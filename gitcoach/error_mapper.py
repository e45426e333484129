"""Map raw git failure text to stable codes and friendly text."""
from dataclasses import asdict, dataclass
from typing import Callable
import re


@dataclass(frozen=True)
class MappedError:
    """Operator-facing interpretation of a git failure."""
    code: str
    message: str
    suggestion: str
    raw: str = ""

    def as_dict(self) -> dict[str, str]: return asdict(self)


@dataclass(frozen=True)
class MappingRule:
    code: str
    message: str
    suggestion: str
    matcher: Callable[[str], bool]


def _match_any(needles: tuple[str, ...]) -> Callable[[str], bool]:
    def _matcher(text: str) -> bool:
        return any(needle in text for needle in needles)
    return _matcher


# order matters: the first matching rule wins
MAPPING_RULES: tuple[MappingRule, ...] = (
    MappingRule(
        code="GC_GIT_LOCKED",
        message="Another git process is using this repository.",
        suggestion="Wait for it to finish, or delete .git/index.lock "
                   "if no git process is running.",
        matcher=_match_any(("index.lock", "lock file",
                "another git process")),
    ),
    MappingRule(
        code="GC_RATE_LIMITED",
        message="The remote is rate limiting requests.",
        suggestion="Wait a few minutes and try again.",
        matcher=_match_any(("rate limit",)),
    ),
    MappingRule(
        code="GC_DISK_FULL",
        message="There is no space left on the device.",
        suggestion="Free up disk space and retry.",
        matcher=_match_any(("no space", "disk full", "enospc")),
    ),
    MappingRule(
        code="GC_DETACHED_HEAD",
        message="You are not on a branch.",
        suggestion="Create a branch with `git switch -c <name>`.",
        matcher=_match_any(("detached head", "not currently on a "
                "branch")),
    ),
    MappingRule(
        code="GC_NON_FAST_FORWARD",
        message="The remote has changes you do not have yet.",
        suggestion="Pull first, then push again.",
        matcher=_match_any(("non-fast-forward", "rejected",
                "fetch first")),
    ),
    MappingRule(
        code="GC_ALREADY_EXISTS",
        message="That name already exists.",
        suggestion="Pick a different name.",
        matcher=_match_any(("already exists",)),
    ),
    MappingRule(
        code="GC_NOT_FOUND",
        message="That branch, file or reference does not exist.",
        suggestion="Check the spelling, or list branches with "
                   "`git branch -a`.",
        matcher=_match_any(("does not exist", "did not match any",
                "pathspec", "not found")),
    ),
    MappingRule(
        code="GC_MERGE_CONFLICT",
        message="Git could not merge the changes automatically.",
        suggestion="Run `gitcoach resolve` to walk through the "
                   "conflicts.",
        matcher=_match_any(("conflict",)),
    ),
    MappingRule(
        code="GC_NETWORK",
        message="Could not reach the remote.",
        suggestion="Check your internet connection and the remote "
                   "URL.",
        matcher=_match_any(("could not resolve host", "unable to "
                "access", "network", "could not connect",
                "failed to connect")),
    ),
    MappingRule(
        code="GC_AUTH",
        message="The remote rejected your credentials.",
        suggestion="Check your SSH key or access token.",
        matcher=_match_any(("authentication", "could not read",
                "permission denied (publickey)")),
    ),
    MappingRule(
        code="GC_PERMISSION",
        message="Permission denied on a local file.",
        suggestion="Check file ownership and permissions.",
        matcher=_match_any(("permission denied", "eacces")),
    ),
    MappingRule(
        code="GC_NOT_A_REPOSITORY",
        message="This directory is not a git repository.",
        suggestion="Move into a repository or run `git init`.",
        matcher=_match_any(("not a git repository",)),
    ),
    MappingRule(
        code="GC_TIMEOUT",
        message="The git command took too long.",
        suggestion="Retry; if it keeps happening check the network.",
        matcher=_match_any(("timed out", "timeout")),
    ),
)

GENERIC = MappingRule(
    code="GC_GIT_FAILED",
    message="Git reported an error.",
    suggestion="Read the details below and retry.",
    matcher=lambda _: True,
)

_PREFIX_PATTERN = re.compile(r"^(error|fatal|warning|hint):\s*",
                  re.IGNORECASE | re.MULTILINE)


def clean_error_message(raw: str) -> str:
    """Strip git's `error:`/`fatal:` prefixes and blank lines."""
    text  = _PREFIX_PATTERN.sub("", raw or "")
    lines = [line.strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def map_git_error(raw: str) -> MappedError:
    lowered = re.sub(r"\s+", " ", (raw or "").lower())
    rule    = next((r for r in MAPPING_RULES if r.matcher(lowered)),
              GENERIC)
    return MappedError(
        code=rule.code,
        message=rule.message,
        suggestion=rule.suggestion,
        raw=clean_error_message(raw),
    )
