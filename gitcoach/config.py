"""Layered runtime configuration for gitcoach.

Precedence order (low -> high):
1) argparse defaults
2) pyproject.toml ([tool.gitcoach])
3) git config (global, then local repository)
4) environment variables
5) explicit CLI options
"""
from __future__ import annotations

from argparse import Namespace, ArgumentParser, Action
from dataclasses import dataclass
from pathlib import Path
import subprocess
import os

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

from .policy import AdaptivePolicy, ExperienceTier


@dataclass(frozen=True)
class OptionSpec:
    dest: str
    git_key: str
    env_key: str
    kind: str  # "bool" | "str"
    choices: tuple[str, ...] | None = None


TIERS = tuple(t.value for t in ExperienceTier)

SPECS: tuple[OptionSpec, ...] = (
    OptionSpec("experience_level", "experience-level",
               "GITCOACH_EXPERIENCE_LEVEL", "str", choices=TIERS),
    OptionSpec("confirm_destructive", "confirm-destructive",
               "GITCOACH_CONFIRM_DESTRUCTIVE", "bool"),
    OptionSpec("remote", "remote", "GITCOACH_REMOTE", "str"),
    OptionSpec("default_branch", "default-branch",
               "GITCOACH_DEFAULT_BRANCH", "str"),
    OptionSpec("assistant", "assistant", "GITCOACH_ASSISTANT", "bool"),
    OptionSpec("quiet", "quiet", "GITCOACH_QUIET", "bool"),
    OptionSpec("plain", "plain", "GITCOACH_PLAIN", "bool"),
    OptionSpec("debug", "debug", "GITCOACH_DEBUG", "bool"),
    OptionSpec("yes", "yes", "GITCOACH_YES", "bool"),
)

Diagnostic = dict[str, str]


@dataclass(frozen=True)
class Preferences:
    """Operator preferences after every layer has been applied."""
    experience_level: ExperienceTier = ExperienceTier.BEGINNER
    confirm_destructive: bool = True
    remote: str = "origin"
    default_branch: str = "main"
    assistant: bool = True

    @property
    def policy(self) -> AdaptivePolicy:
        return AdaptivePolicy(self.experience_level,
               self.confirm_destructive)


def _parse_bool(raw: str) -> bool | None:
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}: return True
    if value in {"0", "false", "no", "off"}: return False
    return None


def _parse_bool_like(raw: object) -> bool | None:
    if isinstance(raw, bool): return raw
    if isinstance(raw, str): return _parse_bool(raw)
    return None


def _repo_root(path: str) -> str | None:
    cur = os.path.abspath(path)
    while True:
        if os.path.exists(os.path.join(cur, ".git")): return cur
        parent = os.path.dirname(cur)
        if parent == cur: return None
        cur = parent


def _find_pyproject(path: str) -> Path | None:
    cur = Path(path).expanduser().resolve()
    if cur.is_file(): cur = cur.parent
    while True:
        candidate = cur / "pyproject.toml"
        if candidate.is_file(): return candidate
        if cur.parent == cur: return None
        cur = cur.parent


def _diag(level: str, source: str, key: str, raw: object,
          message: str) -> Diagnostic:
    return {
        "level": level,
        "source": source,
        "key": key,
        "raw": str(raw),
        "message": message,
    }


def _load_pyproject_overrides(path: str
                             ) -> tuple[dict[str, object],
                                        list[Diagnostic], str | None]:
    pyproject = _find_pyproject(path)
    if pyproject is None: return {}, [], None
    try:
        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        msg = f"failed to parse pyproject.toml: {exc}"
        return {}, [_diag("error", "pyproject", "tool.gitcoach", "",
               msg)], str(pyproject)

    table = data.get("tool", {}).get("gitcoach")
    if table is None: return {}, [], str(pyproject)
    if not isinstance(table, dict):
        msg = "tool.gitcoach must be a TOML table, e.g. [tool.gitcoach]"
        return {}, [_diag("error", "pyproject", "tool.gitcoach",
               type(table).__name__, msg)], str(pyproject)

    key_to_spec = {spec.git_key: spec for spec in SPECS}
    values: dict[str, object]   = {}
    diagnostics: list[Diagnostic] = []
    for raw_key, raw_val in table.items():
        key  = str(raw_key).strip().lower().replace("_", "-")
        spec = key_to_spec.get(key)
        if spec is None:
            msg = "unknown key in [tool.gitcoach]"
            diagnostics.append(_diag("warning", "pyproject",
                str(raw_key), raw_val, msg))
            continue
        values[spec.dest] = raw_val
    return values, diagnostics, str(pyproject)


def _read_git_scope(scope_args: list[str], repo: str | None = None
                   ) -> dict[str, str]:
    cmd = ["git"]
    if repo: cmd += ["-C", repo]
    cmd += ["config", *scope_args, "--get-regexp", r"^gitcoach\."]
    try:
        cp = subprocess.run(cmd, check=False, capture_output=True,
             text=True)
    except FileNotFoundError: return {}
    if cp.returncode != 0: return {}
    out: dict[str, str] = {}
    for line in cp.stdout.splitlines():
        if not line.strip(): continue
        key, _, value = line.partition(" ")
        out[key.strip()] = value.strip()
    return out


def _load_git_overrides(path: str) -> dict[str, str]:
    values = _read_git_scope(["--global"])
    repo   = _repo_root(path)
    if repo: values.update(_read_git_scope(["--local"], repo=repo))
    mapped: dict[str, str] = {}
    for spec in SPECS:
        key = f"gitcoach.{spec.git_key}"
        if key in values: mapped[spec.dest] = values[key]
    return mapped


def _load_env_overrides() -> dict[str, str]:
    out: dict[str, str] = {}
    for spec in SPECS:
        raw = os.environ.get(spec.env_key)
        if raw is not None: out[spec.dest] = raw
    return out


def _coerce(dest: str, raw: object, source: str,
            diagnostics: list[Diagnostic]) -> object | None:
    spec = next((s for s in SPECS if s.dest == dest), None)
    if spec is None: return None
    if spec.kind == "bool":
        value = _parse_bool_like(raw)
        if value is None:
            msg = f"invalid boolean value for {dest}; use true/false"
            diagnostics.append(_diag("warning", source, dest, raw, msg))
        return value
    if not isinstance(raw, str):
        msg = f"invalid value type for {dest}; expected string"
        diagnostics.append(_diag("warning", source, dest, raw, msg))
        return None
    value = raw.strip()
    if spec.choices:
        value = value.lower()
        if value not in spec.choices:
            choices = ", ".join(spec.choices)
            msg = f"invalid value for {dest}; expected one of: {choices}"
            diagnostics.append(_diag("warning", source, dest, raw, msg))
            return None
    if not value:
        msg = f"empty value for {dest}"
        diagnostics.append(_diag("warning", source, dest, raw, msg))
        return None
    return value


def _option_actions(parser: ArgumentParser) -> dict[str, Action]:
    """Option strings of `parser` and all of its subparsers."""
    mapping = dict(parser._option_string_actions)
    for action in parser._actions:
        for sub in (getattr(action, "choices", None) or {}).values():
            if isinstance(sub, ArgumentParser):
                mapping.update(_option_actions(sub))
    return mapping


def _explicit_cli_dests(argv: list[str], parser: ArgumentParser
                       ) -> set[str]:
    mapping  = _option_actions(parser)
    explicit: set[str] = set()
    i = 0
    while i < len(argv):
        token = argv[i]
        if token == "--": break
        if not token.startswith("-"):
            i += 1
            continue
        action = mapping.get(token.split("=", 1)[0])
        if action is None:
            i += 1
            continue
        explicit.add(action.dest)
        takes_value = action.nargs != 0
        if "=" not in token and takes_value and i + 1 < len(argv):
            i += 2
            continue
        i += 1
    return explicit


def apply_layered_config(args: Namespace, argv: list[str],
                         parser: ArgumentParser) -> Namespace:
    """Apply file/git/env overrides unless set explicitly by CLI."""
    merged   = Namespace(**vars(args))
    explicit = _explicit_cli_dests(argv, parser)
    path     = getattr(merged, "path", ".")
    py_vals, py_diags, pyproject_path = _load_pyproject_overrides(path)
    layers   = (
        ("pyproject", py_vals),
        ("git", _load_git_overrides(path)),
        ("env", _load_env_overrides()),
    )
    sources: dict[str, str]       = {k: "default" for k in vars(merged)}
    diagnostics: list[Diagnostic] = list(py_diags)
    for dest in explicit: sources[dest] = "cli"

    for spec in SPECS:
        if spec.dest in explicit: continue
        for source, values in layers:
            if spec.dest not in values: continue
            value = _coerce(spec.dest, values[spec.dest], source,
                    diagnostics)
            if value is None: continue
            setattr(merged, spec.dest, value)
            sources[spec.dest] = source
    setattr(merged, "_gitcoach_config_sources", sources)
    setattr(merged, "_gitcoach_config_diagnostics", diagnostics)
    setattr(merged, "_gitcoach_config_files",
            {"pyproject": pyproject_path})
    return merged


def preferences_from_args(args: Namespace) -> Preferences:
    defaults = Preferences()
    level    = getattr(args, "experience_level", None)
    return Preferences(
        experience_level=ExperienceTier.parse(level) if level
                         else defaults.experience_level,
        confirm_destructive=bool(getattr(args, "confirm_destructive",
                            defaults.confirm_destructive)),
        remote=getattr(args, "remote", None) or defaults.remote,
        default_branch=getattr(args, "default_branch", None)
                       or defaults.default_branch,
        assistant=bool(getattr(args, "assistant", defaults.assistant)),
    )


def config_report(args: Namespace) -> dict[str, object]:
    """Effective values with their source layer, for show-config."""
    sources = getattr(args, "_gitcoach_config_sources", {})
    return {
        "values": {
            spec.git_key: {
                "value": getattr(args, spec.dest, None),
                "source": sources.get(spec.dest, "default"),
            } for spec in SPECS
        },
        "diagnostics": getattr(args, "_gitcoach_config_diagnostics", []),
        "files": getattr(args, "_gitcoach_config_files", {}),
    }
