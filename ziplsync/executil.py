"""Subprocess runner with dry-run support and JSONL event logging."""

from __future__ import annotations

import datetime as _dt
import json
import os
import shlex
import subprocess
import time
from typing import Sequence

from .errors import SubprocessError
from .paths import logs_dir


LOG_DIRS: list[str] | None = None
LOG_PATH: str | None = None
LOG_NAME = "ziplsync.jsonl"


def _log_dirs() -> list[str]:
    if LOG_DIRS:
        return list(LOG_DIRS)
    return [
        logs_dir(),
        "/var/log/ziplsync",
        "/tmp/ziplsync-logs",
    ]


def _ensure_logger() -> str | None:
    global LOG_PATH
    if LOG_PATH:
        return LOG_PATH
    for d in _log_dirs():
        d_expanded = os.path.expanduser(d)
        try:
            os.makedirs(d_expanded, exist_ok=True)
            LOG_PATH = os.path.join(d_expanded, LOG_NAME)
            return LOG_PATH
        except OSError:
            continue
    LOG_PATH = None
    return None


def resolve_log_path() -> str | None:
    """Return the active log path, creating directories when possible."""

    return _ensure_logger()


class Result:
    def __init__(self, rc: int, out: str, err: str, duration: float):
        self.rc, self.out, self.err, self.duration = rc, out, err, duration


LEVELS = {"TRACE": 10, "INFO": 20, "WARN": 30, "ERROR": 40, "NONE": 100}
LOG_LEVEL = os.environ.get("ZIPLSYNC_LOG_LEVEL", "INFO").upper()


def _utc_now() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat().replace("+00:00", "Z")


def append_jsonl(path: str, obj: dict):
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(obj, ensure_ascii=False) + "\n")
    except OSError:
        pass


def log(level: str, event: str, **fields):
    lvl = LEVELS.get(level.upper(), 100)
    cur = LEVELS.get(LOG_LEVEL, 100)
    if lvl < cur:
        return
    rec = {"ts": _utc_now(), "level": level.upper(), "event": event}
    rec.update(fields)
    path = _ensure_logger()
    if path:
        append_jsonl(path, rec)


def trace(event: str, **fields):
    log("TRACE", event, **fields)


def _text(data) -> str | None:
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def run(
    cmd: Sequence[str],
    check: bool = True,
    dry_run: bool = False,
    timeout: float | None = 60.0,
    env: dict | None = None,
) -> Result:
    argv = list(cmd)
    tool = os.path.basename(argv[0]) if argv else ""
    trace("exec.start", cmd=argv)
    if dry_run:
        log("INFO", "exec.dry_run", cmd=argv)
        return Result(0, "DRY-RUN: " + shlex.join(argv), "", 0.0)
    started = time.time()
    try:
        proc = subprocess.run(argv, capture_output=True, text=True, timeout=timeout, env=env)
    except subprocess.TimeoutExpired as exc:
        log("ERROR", "exec.timeout", cmd=argv, timeout=timeout)
        raise SubprocessError(
            tool,
            f"`{tool}` timed out after {timeout}s",
            out=_text(exc.stdout),
            err=_text(exc.stderr),
            timed_out=True,
        ) from exc
    except OSError as exc:
        log("ERROR", "exec.spawn_failed", cmd=argv, error=str(exc))
        raise SubprocessError(tool, f"spawning {tool}: {exc}") from exc
    dur = time.time() - started
    log("INFO", "exec.done", cmd=argv, rc=proc.returncode, dur=dur, out=proc.stdout, err=proc.stderr)
    if check and proc.returncode != 0:
        raise SubprocessError(
            tool,
            f"`{tool}` failed (exit {proc.returncode})",
            rc=proc.returncode,
            out=proc.stdout,
            err=proc.stderr,
        )
    return Result(proc.returncode, proc.stdout, proc.stderr, dur)
