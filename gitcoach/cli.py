#!/usr/bin/env python3
"""
Primary CLI entry point for the `gitcoach` tool.

Each subcommand wraps one git operation in the safety gate
from `coach.Coach`: the repository is inspected, risks are
shown according to the operator's experience level, and
blocking problems stop the operation before git runs.

Exit code 0 means the operation succeeded (or there was
nothing to do); 1 means it was blocked, cancelled or failed.
"""


# ======================= STANDARDS =======================
import argparse
import json
import sys
import os

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
    Pull,
    Push,
    Stash,
    StashPop,
    Undo,
)
from .assistant import AssistantCapability, ask_question
from .coach import Coach, OperationOutcome
from .status_probe import ProbeError, StatusProbe
from .gitutils import configure_logger
from .stats import CounterStore
from . import _constants as const
from . import __version__
from . import config
from . import panels
from . import telemetry
from . import utils


CHECK_OPERATIONS = ("commit", "push", "force-push", "pull", "checkout",
                    "branch-create", "branch-delete", "merge", "add",
                    "stash", "stash-pop", "undo", "hard-undo", "abort")
TARGETED = ("checkout", "branch-create", "branch-delete", "merge")


def _common() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("--path", "-C", default=".")
    p.add_argument("--level", dest="experience_level", default=None,
                   choices=config.TIERS)
    p.add_argument("--no-confirm-destructive",
                   dest="confirm_destructive", action="store_false")
    p.add_argument("--no-assistant", dest="assistant",
                   action="store_false")
    p.add_argument("--remote", "-r", default=None)
    p.add_argument("--default-branch", default=None)
    p.add_argument("--quiet", "-q", action="store_true")
    p.add_argument("--plain", action="store_true")
    p.add_argument("--debug", "-d", action="store_true")
    p.add_argument("--yes", "-y", action="store_true")
    return p


def _build_parser() -> argparse.ArgumentParser:
    common = _common()
    p = argparse.ArgumentParser(prog="gitcoach",
        description="A safety net and guide for everyday git.")
    p.add_argument("--version", action="version",
        version=f"{const.APP} {__version__}")
    sub = p.add_subparsers(dest="command", required=True)

    status = sub.add_parser("status", parents=[common],
             help="show repository state")
    status.add_argument("--json", action="store_true")

    check = sub.add_parser("check", parents=[common],
            help="validate an operation without running it")
    check.add_argument("operation", choices=CHECK_OPERATIONS)
    check.add_argument("target", nargs="?", default=None)
    check.add_argument("--expect", default=None)
    check.add_argument("--json", action="store_true")

    commit = sub.add_parser("commit", parents=[common],
             help="commit staged changes")
    commit.add_argument("--message", "-m", default=None)
    commit.add_argument("--expect", default=None)

    push = sub.add_parser("push", parents=[common],
           help="push the current branch")
    push.add_argument("--force", "-f", action="store_true")
    push.add_argument("--expect", default=None)

    sub.add_parser("pull", parents=[common],
        help="pull the current branch")

    checkout = sub.add_parser("checkout", parents=[common],
               help="switch branches")
    checkout.add_argument("target")

    delete = sub.add_parser("delete-branch", parents=[common],
             help="delete a local branch")
    delete.add_argument("target")
    delete.add_argument("--force", "-f", action="store_true")

    branch = sub.add_parser("branch", parents=[common],
             help="create a branch and switch to it")
    branch.add_argument("target")

    merge = sub.add_parser("merge", parents=[common],
            help="merge a branch into the current one")
    merge.add_argument("target")

    add = sub.add_parser("add", parents=[common],
          help="stage files (everything when none are given)")
    add.add_argument("paths", nargs="*")

    stash = sub.add_parser("stash", parents=[common],
            help="set uncommitted changes aside")
    stash.add_argument("--message", "-m", default=None)
    sub.add_parser("unstash", parents=[common],
        help="restore the latest stashed changes")

    undo = sub.add_parser("undo", parents=[common],
           help="undo the last commit")
    undo.add_argument("--hard", action="store_true",
        help="also discard its changes")
    sub.add_parser("abort", parents=[common],
        help="abort an in-progress merge or rebase")

    stats = sub.add_parser("stats", parents=[common],
            help="show usage counters")
    stats.add_argument("--json", action="store_true")

    sub.add_parser("resolve", parents=[common],
        help="walk through merge conflicts")
    sub.add_parser("show-config", parents=[common],
        help="print effective configuration")

    ask = sub.add_parser("ask", parents=[common],
          help="ask the assistant a git question")
    ask.add_argument("question", nargs="+")
    return p


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Add and parse arguments."""
    parser = _build_parser()
    parsed = parser.parse_args(argv)
    return config.apply_layered_config(parsed, argv, parser)


def _operation(args: argparse.Namespace) -> Operation:
    kind   = args.operation
    target = args.target or ""
    if kind in TARGETED and not target:
        raise ValueError(f"{kind} needs a target branch")
    simple: dict[str, Operation] = {
        "commit": Commit(args.expect),
        "push": Push(False, args.expect),
        "force-push": Push(True, args.expect),
        "pull": Pull(),
        "add": Add(),
        "stash": Stash(),
        "stash-pop": StashPop(),
        "undo": Undo(),
        "hard-undo": Undo(hard=True),
        "abort": Abort(),
    }
    if kind in simple: return simple[kind]
    if kind == "checkout": return Checkout(target)
    if kind == "branch-create": return BranchCreate(target)
    if kind == "merge": return Merge(target)
    return BranchDelete(target)


def _run_check(coach: Coach, args: argparse.Namespace,
               out: utils.Output) -> int:
    result = coach.check(_operation(args))
    if args.json:
        print(json.dumps(result.as_dict(), indent=2))
        return 0 if result.can_proceed else 1
    visible = coach.policy.visible(result.warnings)
    explain = coach.policy.should_show_explanation()
    if visible: panels.show(panels.warnings_group(visible, explain))
    if result.can_proceed: out.success(f"{result.operation} can proceed")
    else: out.warn(f"{result.operation} would be blocked")
    return 0 if result.can_proceed else 1


def _run_status(repo: str, args: argparse.Namespace,
                out: utils.Output) -> int:
    try: status = StatusProbe(repo).refresh()
    except ProbeError as e:
        out.warn(f"cannot read repository state: {e}")
        return 1
    if args.json:
        print(json.dumps(status.as_dict(), indent=2))
        return 0
    panels.show(panels.status_table(status))
    return 0


def _run_stats(args: argparse.Namespace) -> int:
    summary = CounterStore().summary()
    if args.json:
        print(json.dumps(summary, indent=2))
        return 0
    panels.show(panels.stats_table(summary))
    return 0


def _run_ask(assistant: AssistantCapability,
             args: argparse.Namespace, out: utils.Output) -> int:
    if not assistant.check():
        out.warn("The assistant is not available. Install the "
                 "copilot CLI or set COPILOT_CLI_PATH.")
        return 1
    with panels.thinking("thinking..."):
        answer = ask_question(assistant, " ".join(args.question))
    if not answer:
        out.warn("No answer available.")
        return 1
    out.info(answer)
    return 0


def _dispatch(args: argparse.Namespace, out: utils.Output) -> int:
    if args.command == "show-config":
        print(json.dumps(config.config_report(args), indent=2,
              default=str))
        return 0
    if args.command == "stats": return _run_stats(args)

    repo = os.path.abspath(args.path)
    try:
        repo = utils.find_repo(repo)
        configure_logger(utils.get_log_dir(repo))
    except RuntimeError:
        # validation reports the missing repository itself
        pass

    prefs     = config.preferences_from_args(args)
    assistant = AssistantCapability(enabled=prefs.assistant)
    # dry runs do not count as prevented mistakes
    counter   = None if args.command == "check" else CounterStore()
    coach     = Coach(repo, prefs, counter=counter,
                assistant=assistant if prefs.assistant else None,
                out=out)

    if args.command == "status": return _run_status(repo, args, out)
    if args.command == "check": return _run_check(coach, args, out)
    if args.command == "ask": return _run_ask(assistant, args, out)

    outcome: OperationOutcome
    if args.command == "commit":
        outcome = coach.commit(args.message, args.expect)
    elif args.command == "push":
        outcome = coach.push(args.force, args.expect)
    elif args.command == "pull":
        outcome = coach.pull()
    elif args.command == "checkout":
        outcome = coach.checkout(args.target)
    elif args.command == "delete-branch":
        outcome = coach.delete_branch(args.target, args.force)
    elif args.command == "branch":
        outcome = coach.create_branch(args.target)
    elif args.command == "merge":
        outcome = coach.merge(args.target)
    elif args.command == "add":
        outcome = coach.add(args.paths)
    elif args.command == "stash":
        outcome = coach.stash(args.message)
    elif args.command == "unstash":
        outcome = coach.unstash()
    elif args.command == "undo":
        outcome = coach.undo(args.hard)
    elif args.command == "abort":
        outcome = coach.abort()
    else: outcome = coach.resolve()
    return 0 if outcome.ok else 1


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point for the `gitcoach` tool.

    Parses arguments, applies layered configuration and
    dispatches to the chosen subcommand. Unexpected errors
    are reported as one line unless --debug is set, in which
    case they propagate with a traceback.
    """
    args = parse_args(sys.argv[1:] if argv is None else argv)
    telemetry.set_run_id()
    const.sync_runtime_flags(args)
    out  = utils.Output(quiet=args.quiet)
    code = 0
    try:
        for diag in getattr(args, "_gitcoach_config_diagnostics", []):
            out.muted(f"config {diag['source']}: {diag['message']}")
        code = _dispatch(args, out)
    except (KeyboardInterrupt, EOFError):
        code = 1
        out.raw("\n" + const.COACH, end="")
        out.raw(utils.color("forced exit", const.BAD))
    except Exception as e:
        if const.DEBUG: raise
        code = 1
        out.warn(f"ERROR: {e}")
    finally:
        telemetry.close_event_stream()
    sys.exit(code)
