from __future__ import annotations

import os
from pathlib import Path

_DEFAULT_BASE = "/var/lib/ziplsync"
_DEFAULT_LIBEXECDIR = "/usr/libexec/libostree"

STAMP_RELPATH = "boot/ostree-bootloader-update.stamp"

BOOT_DIR = "/boot"
TMP_DIR = "/tmp"
SE_BOOT_IMAGE = "/boot/sd-boot"
SE_HOSTKEY_DIR = "/etc/se-hostkeys"
SE_HOSTKEY_PREFIX = "ibm-z-hostkey"
SE_INITRD_IMAGE = "/tmp/sd-initrd.img"
SE_LUKS_ROOT_KEY = "/etc/luks/root"
SE_LUKS_CONFIG = "/etc/crypttab"
SE_RAMDISK_TOOL_NAME = "s390x-se-luks-gencpio"
SE_CMDLINE_PREFIX = "sd_boot.parmfile."


def _expand(path: str) -> str:
    candidate = Path(path).expanduser()
    try:
        return str(candidate.resolve())
    except FileNotFoundError:
        return str(candidate)


def base_path() -> str:
    """Return the state directory for ziplsync artifacts.

    Overridable via ``ZIPLSYNC_BASE_PATH``; logs land under ``logs/`` there.
    """

    override = os.environ.get("ZIPLSYNC_BASE_PATH")
    if override:
        return _expand(override)
    return _expand(_DEFAULT_BASE)


def logs_dir() -> str:
    return str(Path(base_path()) / "logs")


def libexec_dir() -> str:
    return os.environ.get("ZIPLSYNC_LIBEXECDIR") or _DEFAULT_LIBEXECDIR


def ramdisk_tool() -> str:
    return os.path.join(libexec_dir(), SE_RAMDISK_TOOL_NAME)
