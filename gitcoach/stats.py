"""Persisted usage counters (errors prevented, commits, ...)."""
from datetime import datetime, timezone
from pathlib import Path
import logging as log
import tempfile
import json
import os


logger = log.getLogger("gitcoach.stats")

COUNTERS: tuple[str, ...] = (
    "errors_prevented",
    "commits",
    "pushes",
    "pulls",
    "checkouts",
    "branches_created",
    "branches_deleted",
    "merges",
    "conflicts_resolved",
    "assistant_commits",
)


def stats_home() -> Path:
    raw = os.environ.get("GITCOACH_HOME")
    return Path(raw).expanduser() if raw else Path.home() / ".gitcoach"


def _now() -> str:
    stamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
    return stamp.replace("+00:00", "Z")


class CounterStore:
    """
    JSON-backed counters. Every increment is a read, bump and
    atomic rewrite, so concurrent runs lose at most a count.
    Unreadable files start over from zero.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = Path(path) if path else stats_home() / "stats.json"

    def load(self) -> dict[str, object]:
        data: dict[str, object] = {name: 0 for name in COUNTERS}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError: return data
        except (OSError, ValueError) as e:
            logger.warning("ignoring unreadable stats file %s: %s",
                self.path, e)
            return data
        if isinstance(raw, dict): data.update(raw)
        return data

    def _save(self, data: dict[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent,
                  prefix=".stats-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise

    def increment(self, name: str, by: int = 1) -> int:
        if name not in COUNTERS:
            raise KeyError(f"unknown counter: {name}")
        data  = self.load()
        value = int(data.get(name, 0) or 0) + by
        data[name] = value
        data.setdefault("first_used", _now())
        data["last_used"] = _now()
        try: self._save(data)
        except OSError as e:
            logger.warning("could not persist %s: %s", name, e)
        return value

    def increment_errors_prevented(self) -> None:
        self.increment("errors_prevented")

    def summary(self) -> dict[str, object]:
        """Every counter plus the share of assistant-written commits."""
        data   = self.load()
        counts = {name: int(data.get(name, 0) or 0) for name in COUNTERS}
        total  = counts["commits"]
        share  = counts["assistant_commits"] * 100 // total if total else 0
        return {
            **counts,
            "assistant_share": share,
            "first_used": data.get("first_used"),
            "last_used": data.get("last_used"),
        }
