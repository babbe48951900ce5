from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from . import paths
from .executil import run


@dataclass
class SecureExecutionPaths:
    boot_dir: str = paths.BOOT_DIR
    tmp_dir: str = paths.TMP_DIR
    image: str = paths.SE_BOOT_IMAGE
    hostkey_dir: str = paths.SE_HOSTKEY_DIR
    hostkey_prefix: str = paths.SE_HOSTKEY_PREFIX
    augmented_initrd: str = paths.SE_INITRD_IMAGE
    luks_root_key: str = paths.SE_LUKS_ROOT_KEY
    luks_config: str = paths.SE_LUKS_CONFIG
    ramdisk_tool: str = paths.SE_RAMDISK_TOOL_NAME

    @classmethod
    def from_env(cls) -> "SecureExecutionPaths":
        return cls(ramdisk_tool=paths.ramdisk_tool())


@dataclass
class BlsEntry:
    kernel: str
    initrd: str
    options: str


@dataclass
class SyncContext:
    sysroot: str
    se_paths: SecureExecutionPaths = field(default_factory=SecureExecutionPaths.from_env)
    runner: Callable[..., Any] = run
    store: Any = None
    dry_run: bool = False
    cancel: Optional[threading.Event] = None


@dataclass
class SyncOutcome:
    bootversion: int
    state: str = "idle"
    path: Optional[str] = None
    transitions: List[str] = field(default_factory=list)
    keys: List[str] = field(default_factory=list)
    image: Optional[str] = None
    stamp_cleared: bool = False
