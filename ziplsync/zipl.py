from __future__ import annotations

from typing import Any, Callable, Optional

from .errors import SE_STAGE, SubprocessError
from .executil import log
from .model import SecureExecutionPaths

ZIPL = "zipl"
ZIPL_TIMEOUT = 300


def _run_zipl(argv: list[str], runner: Callable[..., Any], dry_run: bool, stage: Optional[str]):
    try:
        res = runner(argv, check=False, dry_run=dry_run, timeout=ZIPL_TIMEOUT)
    except SubprocessError as exc:
        raise exc.restage(stage or ZIPL) from exc
    if res.rc != 0:
        raise SubprocessError(
            ZIPL,
            f"`{ZIPL}` failed (exit {res.rc})",
            rc=res.rc,
            out=res.out,
            err=res.err,
            stage=stage or ZIPL,
        )
    return res


def install_secure_image(
    image: str,
    se_paths: SecureExecutionPaths,
    runner: Callable[..., Any],
    dry_run: bool = False,
) -> None:
    _run_zipl([ZIPL, "-V", "-t", se_paths.boot_dir, "-i", image], runner, dry_run, SE_STAGE)
    log("INFO", "se.zipl", msg="`sd-boot` zipled", image=image)


def install_fallback(runner: Callable[..., Any], dry_run: bool = False) -> None:
    """Plain zipl run; it reads its own config from the standard boot directory."""

    _run_zipl([ZIPL], runner, dry_run, None)
    log("INFO", "zipl.done")
