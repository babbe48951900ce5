"""Persisted "zipl needs to run" marker under the managed root."""

from __future__ import annotations

import os

from .errors import SyncIOError
from .executil import log
from .paths import STAMP_RELPATH


def stamp_path(sysroot: str) -> str:
    return os.path.join(sysroot, STAMP_RELPATH)


def mark_sync_required(sysroot: str) -> str:
    path = stamp_path(sysroot)
    tmp_path = path + ".tmp"
    try:
        with open(tmp_path, "wb"):
            pass
        os.replace(tmp_path, path)
    except OSError as exc:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise SyncIOError(f"writing {path}: {exc}", path=path) from exc
    log("INFO", "stamp.marked", path=path)
    return path


def is_sync_required(sysroot: str) -> bool:
    path = stamp_path(sysroot)
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise SyncIOError(f"checking {path}: {exc}", path=path) from exc
    return True


def clear_sync_required(sysroot: str) -> None:
    path = stamp_path(sysroot)
    try:
        os.unlink(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        raise SyncIOError(f"removing {path}: {exc}", path=path) from exc
    log("INFO", "stamp.cleared", path=path)
