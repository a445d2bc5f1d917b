"""Tests for diff rendering and restore."""

import os

import pytest

from file_history.diffing import (
    BINARY_NOTICE,
    diff_contents,
    open_as_new_document,
    render_diff,
    restore,
)
from file_history.errors import StaleSelectionError
from file_history.pathcodec import encode_path

KEY = encode_path("/tmp/a.txt")


class TestDiffContents:
    """Pure diff rendering."""

    def test_equal_contents(self):
        assert diff_contents(b"same\n", b"same\n", "a", "b") == ""

    def test_unified_diff(self):
        text = diff_contents(b"one\ntwo\nthree\n", b"one\n2\nthree\n", "a/f", "b/f")

        assert text.startswith("--- a/f\n+++ b/f\n")
        assert "-two\n" in text
        assert "+2\n" in text
        assert " one\n" in text

    def test_missing_trailing_newline_marked(self):
        text = diff_contents(b"v2", b"v3", "a", "b")
        assert "-v2\n\\ No newline at end of file\n" in text
        assert "+v3\n\\ No newline at end of file\n" in text

    def test_context_lines(self):
        old = b"".join(f"line {i}\n".encode() for i in range(20))
        new = old.replace(b"line 10\n", b"changed\n")

        text = diff_contents(old, new, "a", "b", context=1)

        assert " line 9\n" in text
        assert " line 8\n" not in text

    @pytest.mark.parametrize("old,new", [
        (b"text\n", b"\x00\x01binary"),
        (b"\xff\xfe invalid utf-8", b"text\n"),
    ])
    def test_binary_content(self, old, new):
        text = diff_contents(old, new, "a", "b")
        assert BINARY_NOTICE in text
        assert text.startswith("--- a\n+++ b\n")


class TestRenderDiff:

    def test_diff_against_predecessor(self, repo):
        """The newest of v1, v2, v3 shows the v2 -> v3 change."""
        repo.create_snapshot(KEY, b"v1\n", "one")
        v2 = repo.create_snapshot(KEY, b"v2\n", "two")
        v3 = repo.create_snapshot(KEY, b"v3\n", "three")

        text = render_diff(repo, KEY, v3)

        assert f"--- a/tmp/a.txt@{v2[:12]}" in text
        assert f"+++ b/tmp/a.txt@{v3[:12]}" in text
        assert "-v2\n" in text
        assert "+v3\n" in text
        assert "v1" not in text

    def test_first_snapshot_diffs_against_empty(self, repo):
        first = repo.create_snapshot(KEY, b"hello\n", "one")

        text = render_diff(repo, KEY, first)

        assert text.startswith("--- /dev/null\n")
        assert "+hello\n" in text

    def test_abbreviated_id(self, repo):
        repo.create_snapshot(KEY, b"v1\n", "one")
        v2 = repo.create_snapshot(KEY, b"v2\n", "two")
        assert render_diff(repo, KEY, v2[:10]) == render_diff(repo, KEY, v2)

    def test_deleted_history_is_stale(self, repo):
        snapshot_id = repo.create_snapshot(KEY, b"v1\n", "one")
        repo.delete_history(KEY)

        with pytest.raises(StaleSelectionError) as exc_info:
            render_diff(repo, KEY, snapshot_id)
        assert exc_info.value.snapshot_id is None

    def test_unknown_snapshot_is_stale(self, repo):
        repo.create_snapshot(KEY, b"v1\n", "one")
        with pytest.raises(StaleSelectionError) as exc_info:
            render_diff(repo, KEY, "deadbeef")
        assert exc_info.value.snapshot_id == "deadbeef"


class TestOpenAndRestore:

    def test_open_as_new_document(self, repo):
        first = repo.create_snapshot(KEY, b"v1", "one")
        repo.create_snapshot(KEY, b"v2", "two")
        assert open_as_new_document(repo, KEY, first) == b"v1"

    def test_restore_overwrites_destination(self, repo, tmp_path):
        first = repo.create_snapshot(KEY, b"v1 \x00 exact bytes", "one")
        repo.create_snapshot(KEY, b"v2", "two")
        live = tmp_path / "a.txt"
        live.write_bytes(b"edited since")

        written = restore(repo, KEY, first, live)

        assert written == live
        assert live.read_bytes() == b"v1 \x00 exact bytes"

    @pytest.mark.skipif(os.name != "posix", reason="symlinks need POSIX")
    def test_restore_through_symlink(self, repo, tmp_path):
        first = repo.create_snapshot(KEY, b"v1", "one")
        repo.create_snapshot(KEY, b"v2", "two")
        real = tmp_path / "real.txt"
        real.write_bytes(b"current")
        link = tmp_path / "link.txt"
        link.symlink_to(real)

        restore(repo, KEY, first, link)

        assert link.is_symlink()
        assert real.read_bytes() == b"v1"

    def test_restore_does_not_create_snapshot(self, repo, tmp_path):
        first = repo.create_snapshot(KEY, b"v1", "one")
        repo.create_snapshot(KEY, b"v2", "two")

        restore(repo, KEY, first, tmp_path / "a.txt")

        assert len(repo.list_snapshots(KEY)) == 2

    def test_restore_stale_selection_leaves_file_alone(self, repo, tmp_path):
        snapshot_id = repo.create_snapshot(KEY, b"v1", "one")
        repo.delete_history(KEY)
        live = tmp_path / "a.txt"
        live.write_text("current")

        with pytest.raises(StaleSelectionError):
            restore(repo, KEY, snapshot_id, live)
        assert live.read_text() == "current"
