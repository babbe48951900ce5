from __future__ import annotations

from types import SimpleNamespace

import pytest

from ziplsync import executil
from ziplsync.model import SecureExecutionPaths, SyncContext
from ziplsync.stamp import mark_sync_required


class RunRecorder:
    """Stands in for ``executil.run``; replays canned results in call order.

    A response may be a callable, which is invoked with the command (handy for
    peeking at files that only exist while the tool runs) and may raise.
    """

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []
        self.kwargs = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        self.kwargs.append(kwargs)
        if not self.responses:
            return SimpleNamespace(rc=0, out="", err="")
        res = self.responses.pop(0)
        if callable(res):
            res = res(list(cmd))
        return res if res is not None else SimpleNamespace(rc=0, out="", err="")

    @property
    def tools(self):
        return [cmd[0] for cmd in self.calls]


@pytest.fixture(autouse=True)
def isolated_logs(tmp_path, monkeypatch):
    log_dir = tmp_path / "logs"
    monkeypatch.setattr(executil, "LOG_DIRS", [str(log_dir)])
    monkeypatch.setattr(executil, "LOG_PATH", None)
    monkeypatch.setattr(executil, "LOG_LEVEL", "TRACE")
    return log_dir


@pytest.fixture
def recorder_cls():
    return RunRecorder


@pytest.fixture
def se_paths(tmp_path) -> SecureExecutionPaths:
    boot = tmp_path / "host" / "boot"
    scratch = tmp_path / "host" / "tmp"
    keys = tmp_path / "host" / "etc" / "se-hostkeys"
    for d in (boot, scratch, keys):
        d.mkdir(parents=True)
    return SecureExecutionPaths(
        boot_dir=str(boot),
        tmp_dir=str(scratch),
        image=str(boot / "sd-boot"),
        hostkey_dir=str(keys),
        augmented_initrd=str(scratch / "sd-initrd.img"),
        luks_root_key=str(tmp_path / "host" / "etc" / "luks" / "root"),
        luks_config=str(tmp_path / "host" / "etc" / "crypttab"),
        ramdisk_tool="/usr/libexec/libostree/s390x-se-luks-gencpio",
    )


@pytest.fixture
def sysroot(tmp_path):
    root = tmp_path / "sysroot"
    (root / "boot").mkdir(parents=True)
    return root


@pytest.fixture
def write_bls(sysroot):
    def _write(bootversion, name, text):
        entries = sysroot / "boot" / f"loader.{bootversion}" / "entries"
        entries.mkdir(parents=True, exist_ok=True)
        path = entries / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def add_host_keys(se_paths):
    def _add(*names):
        created = []
        for name in names:
            path = f"{se_paths.hostkey_dir}/{name}"
            with open(path, "w", encoding="utf-8") as fh:
                fh.write("-----BEGIN CERTIFICATE-----\n")
            created.append(path)
        return created

    return _add


@pytest.fixture
def make_ctx(sysroot, se_paths):
    def _make(runner, *, stamped=True, **kwargs):
        if stamped:
            mark_sync_required(str(sysroot))
        return SyncContext(sysroot=str(sysroot), se_paths=se_paths, runner=runner, **kwargs)

    return _make
