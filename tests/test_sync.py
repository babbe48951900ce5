import os
import threading
from types import SimpleNamespace

import pytest

from ziplsync import stamp
from ziplsync.errors import ConfigError, KeyDiscoveryError, SubprocessError, SyncCancelled
from ziplsync.sync import SyncOrchestrator, SyncState

ENTRY = (
    "version 1\n"
    "options root=/dev/mapper/ostree\n"
    "linux /vmlinuz-5.10\n"
    "initrd /initramfs-5.10.img\n"
)


def _tree(*roots):
    found = set()
    for root in roots:
        for dirpath, dirnames, filenames in os.walk(root):
            for name in dirnames + filenames:
                found.add(os.path.join(dirpath, name))
    return found


def _stamped(sysroot):
    return stamp.is_sync_required(str(sysroot))


def test_no_stamp_is_noop(make_ctx, recorder_cls, sysroot, se_paths, add_host_keys):
    add_host_keys("ibm-z-hostkey-1.crt")
    recorder = recorder_cls()
    ctx = make_ctx(recorder, stamped=False)
    before = _tree(str(sysroot), se_paths.boot_dir, se_paths.tmp_dir)
    for _ in range(3):
        outcome = SyncOrchestrator(ctx).sync(0)
        assert outcome.path == "noop"
        assert outcome.transitions == ["idle", "check_stamp", "noop"]
    assert recorder.calls == []
    assert _tree(str(sysroot), se_paths.boot_dir, se_paths.tmp_dir) == before


def test_fallback_runs_zipl_and_clears_stamp(make_ctx, recorder_cls, sysroot):
    recorder = recorder_cls()
    ctx = make_ctx(recorder)
    orchestrator = SyncOrchestrator(ctx)
    outcome = orchestrator.sync(1)
    assert recorder.calls == [["zipl"]]
    assert outcome.path == "fallback"
    assert outcome.stamp_cleared is True
    assert outcome.transitions == ["idle", "check_stamp", "discovering", "fallback_path", "cleared"]
    assert orchestrator.state is SyncState.CLEARED
    assert not _stamped(sysroot)


def test_fallback_failure_keeps_stamp(make_ctx, recorder_cls, sysroot):
    recorder = recorder_cls([SimpleNamespace(rc=1, out="", err="zipl: error")])
    orchestrator = SyncOrchestrator(make_ctx(recorder))
    with pytest.raises(SubprocessError) as excinfo:
        orchestrator.sync(1)
    assert excinfo.value.tool == "zipl"
    assert "zipl" in str(excinfo.value)
    assert _stamped(sysroot)
    assert orchestrator.state is SyncState.FAILED
    assert orchestrator.last_outcome.transitions[-1] == "failed"


def test_secure_path_pipeline(make_ctx, recorder_cls, sysroot, se_paths, add_host_keys, write_bls):
    keys = add_host_keys("ibm-z-hostkey-1.crt", "ibm-z-hostkey-2.crt")
    write_bls(0, "ostree-1.conf", ENTRY)
    recorder = recorder_cls()
    outcome = SyncOrchestrator(make_ctx(recorder)).sync(0)

    assert recorder.tools == ["genprotimg", "zipl"]
    gen = recorder.calls[0]
    assert gen[gen.index("-i") + 1] == os.path.join(se_paths.boot_dir, "vmlinuz-5.10")
    assert gen[gen.index("-r") + 1] == os.path.join(se_paths.boot_dir, "initramfs-5.10.img")
    assert [gen[i + 1] for i, arg in enumerate(gen) if arg == "-k"] == outcome.keys
    assert sorted(outcome.keys) == sorted(keys)
    assert recorder.calls[1] == ["zipl", "-V", "-t", se_paths.boot_dir, "-i", se_paths.image]
    assert outcome.path == "secure"
    assert outcome.image == se_paths.image
    assert outcome.transitions == ["idle", "check_stamp", "discovering", "secure_path", "cleared"]
    assert not _stamped(sysroot)


def test_secure_path_with_luks(make_ctx, recorder_cls, se_paths, add_host_keys, write_bls):
    add_host_keys("ibm-z-hostkey-1.crt")
    write_bls(0, "ostree-1.conf", ENTRY)
    for path in (se_paths.luks_root_key, se_paths.luks_config):
        os.makedirs(os.path.dirname(path), exist_ok=True)
        open(path, "w", encoding="utf-8").close()
    recorder = recorder_cls()
    SyncOrchestrator(make_ctx(recorder)).sync(0)
    assert recorder.tools == [se_paths.ramdisk_tool, "genprotimg", "zipl"]
    gen = recorder.calls[1]
    assert gen[gen.index("-r") + 1] == se_paths.augmented_initrd


def test_keys_select_secure_path_even_if_fallback_would_work(make_ctx, recorder_cls, sysroot, add_host_keys):
    add_host_keys("ibm-z-hostkey-1.crt")
    recorder = recorder_cls()
    with pytest.raises(ConfigError):
        SyncOrchestrator(make_ctx(recorder)).sync(0)
    assert recorder.calls == []
    assert _stamped(sysroot)


@pytest.mark.parametrize("failing_tool", ["ramdisk", "genprotimg", "zipl"])
def test_secure_failure_keeps_stamp(make_ctx, recorder_cls, sysroot, se_paths, add_host_keys, write_bls, failing_tool):
    add_host_keys("ibm-z-hostkey-1.crt")
    write_bls(0, "ostree-1.conf", ENTRY)
    for path in (se_paths.luks_root_key, se_paths.luks_config):
        os.makedirs(os.path.dirname(path), exist_ok=True)
        open(path, "w", encoding="utf-8").close()
    if failing_tool == "ramdisk":
        failing_tool = se_paths.ramdisk_tool

    def respond(cmd):
        return SimpleNamespace(rc=1 if cmd[0] == failing_tool else 0, out="", err="")

    recorder = recorder_cls([respond, respond, respond])
    with pytest.raises(SubprocessError) as excinfo:
        SyncOrchestrator(make_ctx(recorder)).sync(0)
    assert excinfo.value.tool == failing_tool
    assert _stamped(sysroot)
    assert os.listdir(se_paths.tmp_dir) == []
    if failing_tool == se_paths.ramdisk_tool:
        assert recorder.tools == [se_paths.ramdisk_tool]


def test_key_discovery_failure_keeps_stamp(make_ctx, recorder_cls, sysroot, se_paths, tmp_path):
    se_paths.hostkey_dir = str(tmp_path / "missing")
    with pytest.raises(KeyDiscoveryError):
        SyncOrchestrator(make_ctx(recorder_cls())).sync(0)
    assert _stamped(sysroot)


def test_retry_after_failure_runs_whole_sequence(make_ctx, recorder_cls, sysroot):
    recorder = recorder_cls([SimpleNamespace(rc=1, out="", err="")])
    ctx = make_ctx(recorder)
    with pytest.raises(SubprocessError):
        SyncOrchestrator(ctx).sync(0)
    outcome = SyncOrchestrator(ctx).sync(0)
    assert outcome.path == "fallback"
    assert recorder.calls == [["zipl"], ["zipl"]]
    assert not _stamped(sysroot)


def test_dry_run_leaves_stamp(make_ctx, recorder_cls, sysroot):
    recorder = recorder_cls()
    outcome = SyncOrchestrator(make_ctx(recorder, dry_run=True)).sync(0)
    assert recorder.kwargs[0]["dry_run"] is True
    assert outcome.path == "fallback"
    assert outcome.stamp_cleared is False
    assert _stamped(sysroot)


def test_cancel_before_discovery(make_ctx, recorder_cls, sysroot):
    cancel = threading.Event()
    cancel.set()
    recorder = recorder_cls()
    with pytest.raises(SyncCancelled):
        SyncOrchestrator(make_ctx(recorder, cancel=cancel)).sync(0)
    assert recorder.calls == []
    assert _stamped(sysroot)


def test_cancel_between_stages(make_ctx, recorder_cls, sysroot, add_host_keys, write_bls):
    add_host_keys("ibm-z-hostkey-1.crt")
    write_bls(0, "ostree-1.conf", ENTRY)
    cancel = threading.Event()

    def build_then_cancel(cmd):
        cancel.set()
        return SimpleNamespace(rc=0, out="", err="")

    recorder = recorder_cls([build_then_cancel])
    with pytest.raises(SyncCancelled) as excinfo:
        SyncOrchestrator(make_ctx(recorder, cancel=cancel)).sync(0)
    assert recorder.tools == ["genprotimg"]
    assert "zipl" in str(excinfo.value)
    assert _stamped(sysroot)


def test_uses_injected_store(make_ctx, recorder_cls, add_host_keys):
    add_host_keys("ibm-z-hostkey-1.crt")

    class Store:
        def read_configs(self, bootversion):
            return [{"linux": "/vmlinuz", "initrd": "/initrd.img", "options": "quiet"}]

    recorder = recorder_cls()
    outcome = SyncOrchestrator(make_ctx(recorder, store=Store())).sync(3)
    assert outcome.path == "secure"
    assert recorder.tools == ["genprotimg", "zipl"]
