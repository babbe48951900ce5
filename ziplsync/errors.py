"""Failure types raised while synchronizing the zipl boot loader."""

from __future__ import annotations

from typing import Optional

SE_STAGE = "s390x SE"


class SyncError(RuntimeError):
    def __init__(self, why: str, *, stage: Optional[str] = None):
        super().__init__(f"{stage}: {why}" if stage else why)
        self.why = why
        self.stage = stage


class ConfigError(SyncError):
    def __init__(self, why: str, *, key: Optional[str] = None, stage: Optional[str] = SE_STAGE):
        super().__init__(why, stage=stage)
        self.key = key


class KeyDiscoveryError(SyncError):
    pass


class SubprocessError(SyncError):
    """A tool could not be spawned, timed out, or exited non-zero."""

    def __init__(
        self,
        tool: str,
        why: str,
        *,
        rc: Optional[int] = None,
        out: Optional[str] = None,
        err: Optional[str] = None,
        timed_out: bool = False,
        stage: Optional[str] = None,
    ):
        super().__init__(why, stage=stage)
        self.tool = tool
        self.rc = rc
        self.out = out
        self.err = err
        self.timed_out = timed_out

    def restage(self, stage: str) -> "SubprocessError":
        return SubprocessError(
            self.tool,
            self.why,
            rc=self.rc,
            out=self.out,
            err=self.err,
            timed_out=self.timed_out,
            stage=stage,
        )


class SyncIOError(SyncError):
    def __init__(self, why: str, *, path: Optional[str] = None, stage: Optional[str] = "stamp"):
        super().__init__(why, stage=stage)
        self.path = path


class SyncCancelled(SyncError):
    pass
