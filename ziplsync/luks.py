"""Fold the LUKS root key into the SE initrd when the host is set up for it."""

from __future__ import annotations

import os
from typing import Any, Callable

from .errors import SE_STAGE, SubprocessError
from .executil import log
from .model import SecureExecutionPaths

RAMDISK_TIMEOUT = 300


def luks_key_present(se_paths: SecureExecutionPaths) -> bool:
    return os.path.exists(se_paths.luks_root_key) and os.path.exists(se_paths.luks_config)


def try_augment_initrd(
    initrd: str,
    se_paths: SecureExecutionPaths,
    runner: Callable[..., Any],
    dry_run: bool = False,
) -> str:
    if not luks_key_present(se_paths):
        return initrd

    tool = se_paths.ramdisk_tool
    try:
        res = runner(
            [tool, initrd, se_paths.augmented_initrd],
            check=False,
            dry_run=dry_run,
            timeout=RAMDISK_TIMEOUT,
        )
    except SubprocessError as exc:
        raise exc.restage(SE_STAGE) from exc
    if res.rc != 0:
        log("ERROR", "se.luks.failed", tool=tool, rc=res.rc, out=res.out, err=res.err)
        raise SubprocessError(
            tool,
            f"`{tool}` failed (exit {res.rc})",
            rc=res.rc,
            out=res.out,
            err=res.err,
            stage=SE_STAGE,
        )
    log("INFO", "se.luks", msg="luks key added to initrd", initrd=se_paths.augmented_initrd)
    return se_paths.augmented_initrd
