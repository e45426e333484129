"""Rich renderables for warnings, conflicts, status and stats."""
from __future__ import annotations

# ======================= STANDARDS =======================
from contextlib import contextmanager
from collections.abc import Iterator

# ==================== THIRD-PARTIES ======================
from rich.console import Console, RenderableType, Group
from rich.spinner import Spinner
from rich.panel import Panel
from rich.table import Table
from rich.box import MINIMAL, ROUNDED
from rich.live import Live
from rich.text import Text

# ======================== LOCALS =========================
from .validation import RiskWarning, Severity
from .status_probe import RepositoryStatus
from .conflicts import ConflictBlock
from . import _constants as const


SEVERITY_STYLE: dict[Severity, str] = {
    Severity.INFO: "cyan",
    Severity.WARNING: "yellow",
    Severity.CRITICAL: "bold red",
}

_console: Console | None = None


def console() -> Console:
    global _console
    if _console is None:
        _console = Console(stderr=True, no_color=const.PLAIN,
                   highlight=False)
    return _console


def show(renderable: RenderableType) -> None:
    if const.QUIET: return
    console().print(renderable)


def warning_panel(warning: RiskWarning, explain: bool = False
                 ) -> Panel:
    style = SEVERITY_STYLE[warning.severity]
    body  = Text(warning.message)
    if explain and warning.suggested_action:
        body.append("\n\n")
        body.append("→ ", style="magenta")
        body.append(warning.suggested_action, style="dim")
    title = f"{warning.severity.label.upper()}: {warning.title}"
    return Panel(body, title=title, title_align="left",
           border_style=style, box=ROUNDED, padding=(0, 1))


def warnings_group(warnings: list[RiskWarning], explain: bool = False
                  ) -> RenderableType:
    return Group(*(warning_panel(w, explain) for w in warnings))


def _side(lines: tuple[str, ...]) -> Text:
    if not lines: return Text("(empty)", style="dim italic")
    if not any(lines):
        return Text(f"({len(lines)} blank line(s))", style="dim italic")
    return Text("\n".join(lines))


def conflict_table(block: ConflictBlock, path: str = "") -> Table:
    """Both sides of a conflict block next to each other."""
    local  = "local" + (f" ({block.local_label})"
             if block.local_label else "")
    remote = "remote" + (f" ({block.remote_label})"
             if block.remote_label else "")
    table  = Table(title=path or None, box=ROUNDED, expand=True,
             title_justify="left")
    table.add_column(local, style="cyan", ratio=1)
    table.add_column(remote, style="yellow", ratio=1)
    table.add_row(_side(block.local_lines), _side(block.remote_lines))
    table.caption = f"lines {block.start_line + 1}-{block.end_line + 1}"
    return table


def status_table(status: RepositoryStatus) -> Table:
    table = Table(show_header=False, box=MINIMAL, pad_edge=False)
    table.add_column(style="dim")
    table.add_column()

    branch = status.current_branch or Text("(detached)", style="red")
    table.add_row("branch", branch)
    if status.tracking_ref:
        table.add_row("tracking", f"{status.tracking_ref} "
            f"(+{status.ahead} -{status.behind})")
    for label, files, style in (
        ("staged", status.staged, "green"),
        ("modified", status.modified, "yellow"),
        ("deleted", status.deleted, "red"),
        ("untracked", status.untracked, "dim"),
        ("conflicted", status.conflicted, "bold red"),
    ):
        if files: table.add_row(label, Text("\n".join(sorted(files)),
            style=style))
    flags = [name for name, on in (
        ("merge", status.merge_in_progress),
        ("rebase", status.rebase_in_progress),
        ("cherry-pick", status.cherry_pick_in_progress),
        ("bisect", status.bisect_in_progress),
    ) if on]
    if flags:
        table.add_row("in progress", Text(", ".join(flags), style="red"))
    if status.is_clean: table.add_row("", Text("clean", style="green"))
    return table


STAT_LABELS: tuple[tuple[str, str], ...] = (
    ("errors_prevented", "mistakes avoided"),
    ("commits", "commits"),
    ("pushes", "pushes"),
    ("pulls", "pulls"),
    ("merges", "merges"),
    ("checkouts", "checkouts"),
    ("branches_created", "branches created"),
    ("branches_deleted", "branches deleted"),
    ("conflicts_resolved", "conflicts resolved"),
)


def stats_table(summary: dict[str, object]) -> Table:
    table = Table(title="gitcoach stats", show_header=False, box=MINIMAL,
            pad_edge=False, title_justify="left")
    table.add_column(style="dim")
    table.add_column(justify="right")
    for key, label in STAT_LABELS:
        style = "green" if key == "errors_prevented" else ""
        table.add_row(label, Text(str(summary.get(key, 0)), style=style))
    table.add_row("assistant commits",
        f"{summary.get('assistant_commits', 0)} "
        f"({summary.get('assistant_share', 0)}%)")
    if summary.get("first_used"):
        table.add_row("since", str(summary["first_used"]))
    return table


@contextmanager
def thinking(label: str) -> Iterator[None]:
    """Spinner shown while waiting on the assistant."""
    if const.QUIET or const.PLAIN:
        yield
        return
    with Live(Spinner("dots", text=label), console=console(),
              transient=True, refresh_per_second=10):
        yield
