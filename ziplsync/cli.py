"""CLI entrypoint for the zipl / Secure Execution loader sync."""

from __future__ import annotations

import argparse
import json
import sys
import time
from typing import Any, Dict, Optional

from . import executil
from .bootloader import bootloader_for
from .errors import (
    ConfigError,
    KeyDiscoveryError,
    SubprocessError,
    SyncCancelled,
    SyncError,
    SyncIOError,
)
from .executil import append_jsonl, resolve_log_path
from .hostkeys import list_host_keys
from .luks import luks_key_present
from .model import SecureExecutionPaths, SyncContext
from .stamp import is_sync_required, stamp_path

RESULT_CODES: Dict[str, int] = {
    "SYNC_OK": 0,
    "SYNC_NOOP": 0,
    "WRITE_OK": 0,
    "STATUS_OK": 0,
    "KEYS_OK": 0,
    "FAIL_CONFIG": 3,
    "FAIL_KEYS": 4,
    "FAIL_TOOL": 5,
    "FAIL_IO": 6,
    "FAIL_CANCELLED": 7,
    "FAIL_UNHANDLED": 9,
}

_FAILURE_KINDS = (
    (ConfigError, "FAIL_CONFIG"),
    (KeyDiscoveryError, "FAIL_KEYS"),
    (SubprocessError, "FAIL_TOOL"),
    (SyncIOError, "FAIL_IO"),
    (SyncCancelled, "FAIL_CANCELLED"),
)


def _emit_result(kind: str, extra: Optional[Dict[str, Any]] = None) -> None:
    payload: Dict[str, Any] = {"result": kind, "ts": int(time.time())}
    if extra:
        payload.update(extra)
    log_path = resolve_log_path()
    if log_path:
        payload.setdefault("log_path", log_path)
        append_jsonl(log_path, payload)
    print(json.dumps(payload, sort_keys=True, separators=(",", ":")))
    raise SystemExit(RESULT_CODES.get(kind, 1))


def _failure_kind(exc: SyncError) -> str:
    for exc_type, kind in _FAILURE_KINDS:
        if isinstance(exc, exc_type):
            return kind
    return "FAIL_UNHANDLED"


def _failure_payload(exc: SyncError) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"error": str(exc), "why": exc.why, "stage": exc.stage}
    if isinstance(exc, SubprocessError):
        payload.update({"tool": exc.tool, "rc": exc.rc, "out": exc.out, "err": exc.err})
    elif isinstance(exc, ConfigError) and exc.key:
        payload["key"] = exc.key
    return payload


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ziplsync", add_help=True)
    parser.add_argument("--sysroot", default="/")
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--bootloader", default="zipl")
    parser.add_argument("--log-level", default=None, choices=sorted(executil.LEVELS))
    sub = parser.add_subparsers(dest="command", required=True)

    write = sub.add_parser("write-config", help="record that zipl must run")
    write.add_argument("--bootversion", type=int, required=True)

    sync = sub.add_parser("sync", help="run zipl (or build the SE image) if required")
    sync.add_argument("--bootversion", type=int, required=True)

    sub.add_parser("status", help="show stamp, host key and LUKS state")
    sub.add_parser("keys", help="list discovered SE host keys")
    return parser


def _context(args: argparse.Namespace) -> SyncContext:
    return SyncContext(
        sysroot=args.sysroot,
        se_paths=SecureExecutionPaths.from_env(),
        dry_run=args.dry_run,
    )


def _main_impl(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.log_level:
        executil.LOG_LEVEL = args.log_level
    ctx = _context(args)

    try:
        if args.command == "write-config":
            bootloader_for(args.bootloader, ctx).write_config(args.bootversion)
            _emit_result("WRITE_OK", {"bootversion": args.bootversion, "stamp": stamp_path(ctx.sysroot)})

        if args.command == "sync":
            outcome = bootloader_for(args.bootloader, ctx).post_bls_sync(args.bootversion)
            kind = "SYNC_NOOP" if outcome.path == "noop" else "SYNC_OK"
            _emit_result(
                kind,
                {
                    "bootversion": outcome.bootversion,
                    "path": outcome.path,
                    "state": outcome.state,
                    "transitions": outcome.transitions,
                    "keys": outcome.keys,
                    "image": outcome.image,
                    "stamp_cleared": outcome.stamp_cleared,
                    "dry_run": ctx.dry_run,
                },
            )

        if args.command == "keys":
            keys = list_host_keys(ctx.se_paths)
            _emit_result("KEYS_OK", {"directory": ctx.se_paths.hostkey_dir, "keys": keys})

        if args.command == "status":
            try:
                keys: Any = list_host_keys(ctx.se_paths)
            except KeyDiscoveryError as exc:
                keys = {"error": str(exc)}
            _emit_result(
                "STATUS_OK",
                {
                    "stamp": stamp_path(ctx.sysroot),
                    "sync_required": is_sync_required(ctx.sysroot),
                    "keys": keys,
                    "luks_key": luks_key_present(ctx.se_paths),
                },
            )
    except SyncError as exc:
        _emit_result(_failure_kind(exc), _failure_payload(exc))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    try:
        return _main_impl(argv)
    except SystemExit:
        raise
    except Exception as exc:  # noqa: BLE001
        _emit_result("FAIL_UNHANDLED", {"error": str(exc), "error_type": type(exc).__name__})
    return 0


if __name__ == "__main__":
    sys.exit(main())
