"""Boot Loader Specification entries: parsing, ordering, and the SE view of them."""

from __future__ import annotations

import glob
import os
import re
from typing import Dict, List, Protocol

from .errors import ConfigError
from .executil import log
from .model import BlsEntry, SecureExecutionPaths

REQUIRED_KEYS = ("linux", "initrd", "options")

_VERSION_CHUNK_RE = re.compile(r"(\d+)")


class BlsStore(Protocol):
    def read_configs(self, bootversion: int) -> List[Dict[str, str]]:
        ...


def parse_bls(text: str) -> Dict[str, str]:
    """Parse one BLS snippet into a key/value dict.

    Later keys replace earlier ones, except ``initrd`` where the first line
    wins (further initrd lines are overlays we do not consume). A key with
    no value is not recorded.
    """

    config: Dict[str, str] = {}
    for raw in text.splitlines():
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        parts = stripped.split(None, 1)
        if len(parts) < 2:
            continue
        key, value = parts[0], parts[1].strip()
        if key == "initrd" and key in config:
            continue
        config[key] = value
    return config


def _version_key(version: str) -> list:
    key = []
    for chunk in _VERSION_CHUNK_RE.split(version):
        if chunk.isdigit():
            key.append((0, int(chunk)))
        elif chunk:
            key.append((1, chunk))
    return key


def sort_configs(configs: List[Dict[str, str]]) -> List[Dict[str, str]]:
    versioned = [c for c in configs if c.get("version")]
    unversioned = [c for c in configs if not c.get("version")]
    versioned.sort(key=lambda c: _version_key(c["version"]), reverse=True)
    return versioned + unversioned


class FilesystemBlsStore:
    """Reads ``boot/loader.<N>/entries/*.conf`` below a sysroot."""

    def __init__(self, sysroot: str):
        self.sysroot = sysroot

    def entries_dir(self, bootversion: int) -> str:
        return os.path.join(self.sysroot, "boot", f"loader.{bootversion}", "entries")

    def read_configs(self, bootversion: int) -> List[Dict[str, str]]:
        entries = self.entries_dir(bootversion)
        if not os.path.isdir(entries):
            return []
        configs = []
        for path in sorted(glob.glob(os.path.join(entries, "*.conf"))):
            with open(path, "r", encoding="utf-8") as fh:
                configs.append(parse_bls(fh.read()))
        return sort_configs(configs)


def _boot_path(boot_dir: str, value: str) -> str:
    return os.path.join(boot_dir, value.lstrip("/"))


def read_entry(store: BlsStore, bootversion: int, se_paths: SecureExecutionPaths) -> BlsEntry:
    try:
        configs = store.read_configs(bootversion)
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"loading bls configs: {exc}") from exc

    if not configs:
        raise ConfigError("no bls config")

    config = configs[0]
    for key in REQUIRED_KEYS:
        if config.get(key) is None:
            raise ConfigError(f'no "{key}" key in bootloader config', key=key)

    entry = BlsEntry(
        kernel=_boot_path(se_paths.boot_dir, config["linux"]),
        initrd=_boot_path(se_paths.boot_dir, config["initrd"]),
        options=config["options"],
    )
    log("INFO", "se.bls", bootversion=bootversion, title=config.get("title"))
    return entry
