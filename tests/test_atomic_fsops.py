from __future__ import annotations

import os
import stat

import pytest

from foundry.core import fsops
from foundry.core.errors import FilesystemError
from foundry.core.fsops import atomic_copy, atomic_output, atomic_swap, atomic_write_text, is_temp_artifact


def _write(path, text: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)


def _read(path) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def test_atomic_copy_copies_content_and_mode(tmp_path):
    src = tmp_path / "src.sh"
    _write(src, "#!/bin/sh\necho hi\n")
    os.chmod(src, 0o750)
    dst = tmp_path / "out" / "dst.sh"

    atomic_copy(str(src), str(dst))

    assert _read(dst) == "#!/bin/sh\necho hi\n"
    assert stat.S_IMODE(os.stat(dst).st_mode) == 0o750
    assert not os.path.exists(str(dst) + ".tmp")


def test_atomic_copy_falls_back_when_hard_link_fails(tmp_path, monkeypatch):
    src = tmp_path / "a.txt"
    _write(src, "payload")
    dst = tmp_path / "b.txt"

    def _no_link(*_a, **_k):
        raise OSError("cross-device link")

    monkeypatch.setattr(fsops.os, "link", _no_link)
    atomic_copy(str(src), str(dst))
    assert _read(dst) == "payload"


def test_atomic_copy_failed_rename_leaves_destination_untouched(tmp_path, monkeypatch):
    src = tmp_path / "new.txt"
    _write(src, "new contents")
    dst = tmp_path / "live.txt"
    _write(dst, "old contents")

    def _boom(*_a, **_k):
        raise OSError("rename failed")

    monkeypatch.setattr(fsops.os, "replace", _boom)
    with pytest.raises(FilesystemError):
        atomic_copy(str(src), str(dst))

    assert _read(dst) == "old contents"
    assert not os.path.exists(str(dst) + ".tmp")


def test_atomic_copy_missing_source_is_typed(tmp_path):
    with pytest.raises(FilesystemError) as ei:
        atomic_copy(str(tmp_path / "nope"), str(tmp_path / "dst"))
    assert ei.value.code == "io_error"
    assert not os.path.exists(str(tmp_path / "dst.tmp"))


def test_atomic_write_text_replaces_whole_file(tmp_path):
    p = tmp_path / "cfg.yaml"
    _write(p, "a: 1\n")
    atomic_write_text(str(p), "b: 2\n")
    assert _read(p) == "b: 2\n"
    leftovers = [n for n in os.listdir(tmp_path) if n.endswith(".tmp")]
    assert leftovers == []


def test_atomic_output_publishes_only_on_clean_exit(tmp_path):
    p = tmp_path / "archive.bin"
    p.write_bytes(b"old")

    with pytest.raises(RuntimeError):
        with atomic_output(str(p)) as f:
            f.write(b"half")
            raise RuntimeError("writer failed")
    assert p.read_bytes() == b"old"
    assert not [n for n in os.listdir(tmp_path) if is_temp_artifact(n)]

    with atomic_output(str(p), mode=0o600) as f:
        f.write(b"new")
    assert p.read_bytes() == b"new"
    if os.name != "nt":
        assert stat.S_IMODE(os.stat(p).st_mode) == 0o600


@pytest.mark.parametrize(
    "name,expected",
    [(".tmp_abc123.tmp", True), ("notes.tmp", False), (".tmp_x", False), ("config.yaml", False)],
)
def test_is_temp_artifact(name, expected):
    assert is_temp_artifact(name) is expected


def test_atomic_swap_replaces_directory_and_drops_backup(tmp_path):
    live = tmp_path / "live"
    staged = tmp_path / "staged"
    live.mkdir()
    staged.mkdir()
    _write(live / "f", "old")
    _write(staged / "f", "new")

    atomic_swap(str(live), str(staged))

    assert _read(live / "f") == "new"
    assert not staged.exists()
    assert not os.path.exists(str(live) + ".bak")


def test_atomic_swap_rolls_back_when_second_rename_fails(tmp_path):
    live = tmp_path / "live"
    live.mkdir()
    _write(live / "f", "old")
    missing = tmp_path / "does-not-exist"

    with pytest.raises(FilesystemError):
        atomic_swap(str(live), str(missing))

    assert _read(live / "f") == "old"
    assert not os.path.exists(str(live) + ".bak")


def test_atomic_swap_refuses_stale_backup(tmp_path):
    live = tmp_path / "live"
    live.mkdir()
    (tmp_path / "live.bak").mkdir()
    staged = tmp_path / "staged"
    staged.mkdir()
    with pytest.raises(FilesystemError):
        atomic_swap(str(live), str(staged))
    assert live.exists()
    assert staged.exists()
