from __future__ import annotations

import os

from .errors import SE_STAGE, KeyDiscoveryError
from .executil import log
from .model import SecureExecutionPaths


def list_host_keys(se_paths: SecureExecutionPaths) -> list[str]:
    """Return SE host key paths in directory-iteration order."""

    keys: list[str] = []
    try:
        with os.scandir(se_paths.hostkey_dir) as it:
            for entry in it:
                if entry.name.startswith(se_paths.hostkey_prefix):
                    keys.append(os.path.join(se_paths.hostkey_dir, entry.name))
    except OSError as exc:
        raise KeyDiscoveryError(f"looking for SE keys: {exc}", stage=SE_STAGE) from exc
    log("INFO", "se.keys", directory=se_paths.hostkey_dir, count=len(keys))
    return keys
