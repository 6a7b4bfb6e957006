"""Telemetry event log for pipeline runs (JSON lines, one file per day)."""

from __future__ import annotations

import json
import os
import threading
import time
from pathlib import Path

LOG_DIR = Path(os.getenv("SYNTHRACE_TELEMETRY_DIR", ".synthrace/telemetry"))
ENABLED = os.getenv("SYNTHRACE_TELEMETRY", "1").lower() not in {"0", "false", "no"}

_LOCK = threading.Lock()


def configure(cfg: dict | None) -> None:
    """Apply the ``telemetry`` section of the loaded config."""
    global LOG_DIR, ENABLED
    section = (cfg or {}).get("telemetry") or {}
    if "dir" in section:
        LOG_DIR = Path(section["dir"])
    if "enabled" in section:
        ENABLED = bool(section["enabled"])


def _day_stamp() -> str:
    return time.strftime("%Y%m%d", time.gmtime())


def _active_path() -> Path:
    return LOG_DIR / f"events-{_day_stamp()}.jsonl"


def log_event(ev: dict) -> None:
    """Append a telemetry event; never raises on serialization problems."""
    if not ENABLED:
        return
    ev = dict(ev)
    ev.setdefault("ts", time.time())
    try:
        line = json.dumps(ev, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return
    with _LOCK:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        with _active_path().open("a", encoding="utf-8", errors="ignore") as f:
            f.write(line + "\n")
            f.flush()


def read_events(day: str | None = None) -> list[dict]:
    p = LOG_DIR / f"events-{day or _day_stamp()}.jsonl"
    if not p.exists():
        return []
    out = []
    for line in p.read_text(encoding="utf-8").splitlines():
        if line.strip():
            out.append(json.loads(line))
    return out
