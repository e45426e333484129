"""Structured JSONL telemetry for guarded operations."""
from datetime import datetime, timezone
from pathlib import Path
import hashlib
import json
import os
import re


_RUN_ID: str | None = None
_EVENTS_FILE: Path | None = None

_AUTH_URL_PATTERN = re.compile(r"(https?://)([^/\s@]+)@")
_SECRET_PATTERN   = re.compile(
    r"(?i)\b(token|password|secret|passwd|api[_-]?key)\s*[:=]\s*([^\s,'\"]+)")


def _now() -> str:
    stamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
    return stamp.replace("+00:00", "Z")


def set_run_id(run_id: str | None = None) -> str:
    """Set and return the active run id."""
    global _RUN_ID
    if isinstance(run_id, str) and run_id.strip():
        _RUN_ID = run_id.strip()
    else:
        seed    = f"{os.getpid()}:{_now()}".encode("utf-8")
        _RUN_ID = hashlib.sha1(seed).hexdigest()[:12]
    return _RUN_ID


def run_id() -> str:
    if not _RUN_ID: return set_run_id()
    return _RUN_ID


def init_event_stream(log_dir: str | Path) -> Path:
    """Point the event stream at `<log_dir>/events.jsonl`."""
    global _EVENTS_FILE
    path = Path(log_dir).expanduser().resolve()
    path.mkdir(parents=True, exist_ok=True)
    _EVENTS_FILE = path / "events.jsonl"
    return _EVENTS_FILE


def close_event_stream() -> None:
    global _EVENTS_FILE
    _EVENTS_FILE = None


def events_file() -> Path | None:
    return _EVENTS_FILE


def redact(value: object) -> object:
    """Recursively mask credentials in event payloads."""
    if isinstance(value, str):
        text = _AUTH_URL_PATTERN.sub(r"\1<redacted>@", value)
        return _SECRET_PATTERN.sub(r"\1=<redacted>", text)
    if isinstance(value, (list, tuple)):
        return [redact(v) for v in value]
    if isinstance(value, dict):
        return {str(k): redact(v) for k, v in value.items()}
    return value


def emit_event(event_type: str, step_id: str,
               payload: dict[str, object]) -> None:
    """Append one event; no-op until a stream is initialized."""
    if _EVENTS_FILE is None: return
    event = {
        "ts": _now(),
        "run_id": run_id(),
        "event_type": event_type,
        "step_id": step_id,
        "payload": redact(payload),
    }
    try:
        with _EVENTS_FILE.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event, separators=(",", ":")) + "\n")
    # telemetry must never break core flow
    except OSError: return


def emit_validation(operation: str, codes: list[str],
                    can_proceed: bool) -> None:
    emit_event(
        event_type="validation",
        step_id=operation,
        payload={"codes": codes, "can_proceed": can_proceed},
    )
