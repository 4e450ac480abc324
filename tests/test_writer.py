import os
import threading

import pytest

from certd_core.storage.writer import AtomicWriter


def test_commit_creates_missing_shard_dirs(tmp_path):
    path = tmp_path / "ab" / "cdef"
    AtomicWriter().commit(path, b"hello")
    assert path.read_bytes() == b"hello"
    assert oct(path.stat().st_mode & 0o777) == oct(0o644)


def test_commit_replaces_content(tmp_path):
    path = tmp_path / "entry"
    w = AtomicWriter(fsync=False)
    w.commit(path, b"old")
    w.commit(path, b"new")
    assert path.read_bytes() == b"new"
    assert os.listdir(tmp_path) == ["entry"]


def test_failure_before_rename_leaves_old_content(tmp_path, monkeypatch):
    path = tmp_path / "entry"
    w = AtomicWriter(fsync=False)
    w.commit(path, b"old")

    def boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", boom)
    with pytest.raises(OSError):
        w.commit(path, b"new")
    assert path.read_bytes() == b"old"
    # temp file discarded
    assert os.listdir(tmp_path) == ["entry"]


def test_concurrent_first_writers_to_one_shard(tmp_path):
    w = AtomicWriter(fsync=False)
    errors = []

    def write(i):
        try:
            w.commit(tmp_path / "ab" / f"entry{i}", b"x")
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=write, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(5)
    assert errors == []
    assert len(os.listdir(tmp_path / "ab")) == 8


def test_discard_stale_only_touches_own_temp_files(tmp_path):
    w = AtomicWriter(fsync=False)
    path = tmp_path / "entry"
    w.commit(path, b"data")
    (tmp_path / ".entry.k1l2m3.tmp").write_bytes(b"half")
    (tmp_path / ".entry.x9y8z7.tmp").write_bytes(b"half")
    (tmp_path / ".other.a1b2c3.tmp").write_bytes(b"half")
    (tmp_path / "entry.lock").write_bytes(b"")

    assert w.discard_stale(path) == 2
    assert sorted(os.listdir(tmp_path)) == [".other.a1b2c3.tmp", "entry", "entry.lock"]
