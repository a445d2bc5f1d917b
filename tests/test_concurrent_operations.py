"""Tests for concurrent writers sharing one backup repository."""

import threading

from file_history.pathcodec import encode_path
from file_history.repository import BackupRepository

KEY = encode_path("/tmp/shared.txt")


def _run_threads(targets):
    errors = []

    def wrap(fn):
        def runner():
            try:
                fn()
            except Exception as e:  # collected and asserted below
                errors.append(e)
        return runner

    threads = [threading.Thread(target=wrap(fn)) for fn in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return errors


class TestConcurrentSnapshots:

    def test_same_key_keeps_linear_chain(self, repo):
        """Concurrent saves of one file never fork or lose snapshots."""
        contents = [f"writer {i}\n".encode() for i in range(8)]

        errors = _run_threads([
            (lambda c=c: repo.create_snapshot(KEY, c, "concurrent")) for c in contents
        ])

        assert errors == []
        snapshots = repo.snapshots(KEY)
        assert len(snapshots) == len(contents)
        # Each snapshot's parent is the next one in the listing
        for newer, older in zip(snapshots, snapshots[1:]):
            assert newer.parent == older.id
        assert snapshots[-1].parent is None
        recorded = {repo.get_snapshot_content(KEY, s.id) for s in snapshots}
        assert recorded == set(contents)

    def test_separate_instances(self, repo):
        """Instances in one process coordinate through the file lock."""
        instances = [BackupRepository(repo.config) for _ in range(4)]

        errors = _run_threads([
            (lambda r=r, i=i: r.create_snapshot(KEY, f"instance {i}".encode(), "m"))
            for i, r in enumerate(instances)
        ])

        assert errors == []
        assert len(repo.list_snapshots(KEY)) == 4

    def test_different_keys_in_parallel(self, repo):
        keys = [encode_path(f"/data/file{i}.txt") for i in range(6)]

        errors = _run_threads([
            (lambda k=k: repo.create_snapshot(k, k.encode(), "m")) for k in keys
        ])

        assert errors == []
        assert repo.list_all_storage_keys() == sorted(keys)
        for key in keys:
            assert repo.get_head_content(key) == key.encode()

    def test_delete_while_saving_other_key(self, repo):
        other = encode_path("/tmp/other.txt")
        repo.create_snapshot(KEY, b"doomed", "m")

        errors = _run_threads([
            lambda: repo.delete_history(KEY),
            lambda: [repo.create_snapshot(other, f"v{i}".encode(), "m") for i in range(3)],
        ])

        assert errors == []
        assert repo.list_all_storage_keys() == [other]
        assert len(repo.list_snapshots(other)) == 3
