"""Post-BLS-sync state machine for the zipl backend.

IDLE -> CHECK_STAMP -> NOOP
                    -> DISCOVERING -> SECURE_PATH   -> CLEARED
                                   -> FALLBACK_PATH -> CLEARED

Any exception moves to FAILED and propagates; the stamp is only removed in
CLEARED, so the next invocation retries the whole sequence.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence

from .bls import FilesystemBlsStore, read_entry
from .errors import SyncCancelled
from .executil import log, trace
from .genprotimg import build
from .hostkeys import list_host_keys
from .luks import try_augment_initrd
from .model import SyncContext, SyncOutcome
from .stamp import clear_sync_required, is_sync_required
from .zipl import install_fallback, install_secure_image


class SyncState(str, Enum):
    IDLE = "idle"
    CHECK_STAMP = "check_stamp"
    NOOP = "noop"
    DISCOVERING = "discovering"
    SECURE_PATH = "secure_path"
    FALLBACK_PATH = "fallback_path"
    CLEARED = "cleared"
    FAILED = "failed"


class SyncOrchestrator:
    def __init__(self, ctx: SyncContext):
        self.ctx = ctx
        self.store = ctx.store if ctx.store is not None else FilesystemBlsStore(ctx.sysroot)
        self.state = SyncState.IDLE
        self.last_outcome: Optional[SyncOutcome] = None

    def _enter(self, outcome: SyncOutcome, state: SyncState) -> None:
        self.state = state
        outcome.state = state.value
        outcome.transitions.append(state.value)
        trace("sync.state", state=state.value, bootversion=outcome.bootversion)

    def _checkpoint(self, step: str) -> None:
        if self.ctx.cancel is not None and self.ctx.cancel.is_set():
            raise SyncCancelled(f"cancelled before {step}", stage="sync")

    def sync(self, bootversion: int) -> SyncOutcome:
        outcome = SyncOutcome(bootversion=bootversion)
        self.last_outcome = outcome
        self._enter(outcome, SyncState.IDLE)
        try:
            self._run(bootversion, outcome)
        except Exception as exc:  # noqa: BLE001
            self._enter(outcome, SyncState.FAILED)
            log(
                "ERROR",
                "sync.failed",
                bootversion=bootversion,
                error=str(exc),
                error_type=type(exc).__name__,
                transitions=outcome.transitions,
            )
            raise
        log("INFO", "sync.done", bootversion=bootversion, path=outcome.path, state=outcome.state)
        return outcome

    def _run(self, bootversion: int, outcome: SyncOutcome) -> None:
        ctx = self.ctx
        self._enter(outcome, SyncState.CHECK_STAMP)
        if not is_sync_required(ctx.sysroot):
            outcome.path = "noop"
            self._enter(outcome, SyncState.NOOP)
            return

        self._checkpoint("key discovery")
        self._enter(outcome, SyncState.DISCOVERING)
        keys = list_host_keys(ctx.se_paths)
        outcome.keys = list(keys)

        if keys:
            outcome.path = "secure"
            self._enter(outcome, SyncState.SECURE_PATH)
            outcome.image = self._secure(bootversion, keys)
        else:
            outcome.path = "fallback"
            self._enter(outcome, SyncState.FALLBACK_PATH)
            self._checkpoint("zipl")
            install_fallback(ctx.runner, dry_run=ctx.dry_run)

        if ctx.dry_run:
            log("INFO", "sync.dry_run", msg="stamp left in place", path=outcome.path)
            return
        clear_sync_required(ctx.sysroot)
        outcome.stamp_cleared = True
        self._enter(outcome, SyncState.CLEARED)

    def _secure(self, bootversion: int, keys: Sequence[str]) -> str:
        ctx = self.ctx
        se = ctx.se_paths
        entry = read_entry(self.store, bootversion, se)
        self._checkpoint("ramdisk tool")
        initrd = try_augment_initrd(entry.initrd, se, ctx.runner, dry_run=ctx.dry_run)
        self._checkpoint("genprotimg")
        image = build(entry.kernel, initrd, entry.options, keys, se, ctx.runner, dry_run=ctx.dry_run)
        self._checkpoint("zipl")
        install_secure_image(image, se, ctx.runner, dry_run=ctx.dry_run)
        return image
