"""Build the sealed Secure Execution boot image with ``genprotimg``."""

from __future__ import annotations

import os
import tempfile
from typing import Any, Callable, Sequence

from .errors import SE_STAGE, SubprocessError
from .executil import log
from .model import SecureExecutionPaths
from .paths import SE_CMDLINE_PREFIX

GENPROTIMG = "genprotimg"
GENPROTIMG_TIMEOUT = 600


def write_cmdline_file(options: str, tmp_dir: str) -> str:
    """Write the kernel arguments verbatim (no trailing newline) to a fresh file."""

    fd, path = tempfile.mkstemp(prefix=SE_CMDLINE_PREFIX, dir=tmp_dir)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(options.encode("utf-8"))
    except OSError:
        os.unlink(path)
        raise
    return path


def genprotimg_argv(
    kernel: str,
    initrd: str,
    cmdline_path: str,
    keys: Sequence[str],
    image: str,
) -> list[str]:
    argv = [GENPROTIMG, "-i", kernel, "-r", initrd, "-p", cmdline_path]
    for key in keys:
        argv += ["-k", key]
    argv += ["--no-verify", "-o", image]
    return argv


def build(
    kernel: str,
    initrd: str,
    options: str,
    keys: Sequence[str],
    se_paths: SecureExecutionPaths,
    runner: Callable[..., Any],
    dry_run: bool = False,
) -> str:
    if not keys:
        raise ValueError("genprotimg needs at least one host key")

    log("INFO", "se.kernel", path=kernel)
    log("INFO", "se.initrd", path=initrd)
    log("INFO", "se.kargs", options=options)
    for idx, key in enumerate(keys, start=1):
        log("INFO", "se.key", index=idx, path=key)

    cmdline_path = write_cmdline_file(options, se_paths.tmp_dir)
    try:
        argv = genprotimg_argv(kernel, initrd, cmdline_path, keys, se_paths.image)
        try:
            res = runner(argv, check=False, dry_run=dry_run, timeout=GENPROTIMG_TIMEOUT)
        except SubprocessError as exc:
            raise exc.restage(SE_STAGE) from exc
        if res.rc != 0:
            raise SubprocessError(
                GENPROTIMG,
                f"`{GENPROTIMG}` failed (exit {res.rc})",
                rc=res.rc,
                out=res.out,
                err=res.err,
                stage=SE_STAGE,
            )
    finally:
        try:
            os.unlink(cmdline_path)
        except FileNotFoundError:
            pass

    log("INFO", "se.image", msg=f"`{se_paths.image}` generated", path=se_paths.image)
    return se_paths.image
