"""Boot loader backends as seen by the deployment code."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Protocol, Sequence

from .errors import ConfigError
from .model import SyncContext, SyncOutcome
from .stamp import mark_sync_required
from .sync import SyncOrchestrator


class Bootloader(Protocol):
    def query(self) -> bool:
        ...

    def get_name(self) -> str:
        ...

    def write_config(self, bootversion: int, new_deployments: Optional[Sequence[Any]] = None) -> None:
        ...

    def post_bls_sync(self, bootversion: int) -> Any:
        ...


class ZiplBootloader:
    name = "zipl"

    def __init__(self, ctx: SyncContext):
        self.ctx = ctx

    def query(self) -> bool:
        # Never auto-detected; zipl has to be configured explicitly.
        return False

    def get_name(self) -> str:
        return self.name

    def write_config(self, bootversion: int, new_deployments: Optional[Sequence[Any]] = None) -> None:
        # The BLS entries are already written; zipl itself runs in post_bls_sync.
        mark_sync_required(self.ctx.sysroot)

    def post_bls_sync(self, bootversion: int) -> SyncOutcome:
        return SyncOrchestrator(self.ctx).sync(bootversion)


BOOTLOADERS: Dict[str, Callable[[SyncContext], Bootloader]] = {
    ZiplBootloader.name: ZiplBootloader,
}


def bootloader_for(name: str, ctx: SyncContext) -> Bootloader:
    try:
        factory = BOOTLOADERS[name]
    except KeyError:
        raise ConfigError(f"unsupported bootloader {name!r}", stage="bootloader") from None
    return factory(ctx)
