"""Tests for the record store."""

import json

import pytest

from opencode_console.errors import InvalidIdentifierError
from opencode_console.storage import MoveOutcome, RecordStore


class TestListings:
    def test_list_session_records(self, store, tmp_storage):
        paths = store.list_session_records()
        assert paths == [tmp_storage / "session" / "proj1" / "ses_001.json"]

    def test_list_session_records_without_root(self, tmp_path):
        assert RecordStore(tmp_path / "missing").list_session_records() == []

    def test_find_session_record(self, store, tmp_storage):
        assert store.find_session_record("ses_001") == tmp_storage / "session" / "proj1" / "ses_001.json"

    def test_find_session_record_absent(self, store):
        assert store.find_session_record("ses_nope") is None

    def test_list_message_records(self, store):
        names = [p.name for p in store.list_message_records("ses_001")]
        assert names == ["msg_001.json", "msg_002.json", "msg_003.json"]

    def test_list_message_records_absent_subtree(self, store):
        assert store.list_message_records("ses_nope") == []

    def test_list_part_records_absent_subtree(self, store):
        assert store.list_part_records("msg_003") == []

    def test_read_part_records_ordered_by_start(self, store):
        parts = store.read_part_records("msg_002")
        assert [p["type"] for p in parts] == ["step-start", "text", "tool"]

    def test_corrupt_message_is_skipped(self, store, tmp_storage):
        (tmp_storage / "message" / "ses_001" / "msg_999.json").write_text("{not json", encoding="utf-8")
        records = store.read_message_records("ses_001")
        assert len(records) == 3

    @pytest.mark.parametrize("bad", ["../ses_001", "..", "a/b", "ses_*", ""])
    def test_rejects_path_like_ids(self, store, bad):
        with pytest.raises(InvalidIdentifierError):
            store.find_session_record(bad)


class TestReadWrite:
    def test_write_record_pretty_with_trailing_newline(self, store, tmp_path):
        path = tmp_path / "rec.json"
        store.write_record(path, {"id": "ses_x", "title": "Démo"})
        raw = path.read_text(encoding="utf-8")
        assert raw == '{\n  "id": "ses_x",\n  "title": "Démo"\n}\n'
        assert store.read_record(path) == {"id": "ses_x", "title": "Démo"}

    def test_ensure_directory_is_idempotent(self, store, tmp_path):
        target = tmp_path / "a" / "b"
        store.ensure_directory(target)
        store.ensure_directory(target)
        assert target.is_dir()


class TestMoves:
    def test_move_existing_file(self, store, tmp_path):
        source = tmp_path / "src.json"
        source.write_text("{}", encoding="utf-8")
        destination = tmp_path / "dst.json"

        assert store.rename(source, destination) is MoveOutcome.MOVED
        assert destination.exists() and not source.exists()

    def test_move_missing_source(self, store, tmp_path):
        assert store.rename(tmp_path / "nope", tmp_path / "dst") is MoveOutcome.MISSING
        assert store.move_if_present(tmp_path / "nope", tmp_path / "dst") is False

    def test_move_creates_missing_destination_parent(self, store, tmp_path):
        source = tmp_path / "tree"
        source.mkdir()
        (source / "f.json").write_text("[]", encoding="utf-8")
        destination = tmp_path / "deep" / "er" / "tree"

        assert store.move_if_present(source, destination) is True
        assert json.loads((destination / "f.json").read_text(encoding="utf-8")) == []

    def test_other_errors_propagate(self, store, tmp_path):
        source = tmp_path / "dir_a"
        source.mkdir()
        destination = tmp_path / "dir_b"
        destination.mkdir()
        (destination / "occupied.json").write_text("{}", encoding="utf-8")

        with pytest.raises(OSError):
            store.rename(source, destination)

    def test_remove_tree_tolerates_absence(self, store, tmp_path):
        store.remove_tree(tmp_path / "never-existed")
