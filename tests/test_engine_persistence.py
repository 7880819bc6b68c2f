"""Tests for snapshot persistence."""

import json
import os
from datetime import datetime

import pytest

from hyperevolve.engine.core import Atom, Relation
from hyperevolve.engine.persistence import (
    InvalidPathError,
    InvalidSnapshotError,
    PersistenceError,
    PersistenceManager,
    SaveConfig,
    SnapshotExistsError,
    SnapshotNotFoundError,
    default_filename,
    dumps_state,
    loads_state,
)
from hyperevolve.engine.state import HypergraphState


@pytest.fixture()
def state():
    return HypergraphState(
        atoms=[Atom(0), Atom(1), Atom(2, "hub")],
        relations=[Relation(0, [0, 1]), Relation(1, [1, 2], "tail")],
        step_number=5,
        next_atom_id=3,
        next_relation_id=2,
    )


@pytest.fixture()
def manager(tmp_path):
    return PersistenceManager(tmp_path / "saves")


class TestSaveAndLoad:
    """Tests for save_state / load_state."""

    def test_save_and_load(self, manager, state):
        path = manager.save_state(state)
        assert path.exists()
        assert path.parent == (manager.save_directory).resolve()
        assert path.name.startswith("hypergraph_step_5_")
        assert manager.load_state(path) == state

    def test_file_layout(self, manager, state, tmp_path):
        path = manager.save_state(state, tmp_path / "snap.json")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data == {
            "atoms": [
                {"id": 0, "metadata": None},
                {"id": 1, "metadata": None},
                {"id": 2, "metadata": "hub"},
            ],
            "relations": [
                {"id": 0, "atoms": [0, 1], "metadata": None},
                {"id": 1, "atoms": [1, 2], "metadata": "tail"},
            ],
            "step_number": 5,
            "next_atom_id": 3,
            "next_relation_id": 2,
        }

    def test_overwrite_refused_by_default(self, manager, state, tmp_path):
        target = tmp_path / "snap.json"
        manager.save_state(state, target)
        with pytest.raises(SnapshotExistsError, match="overwrite is disabled"):
            manager.save_state(state, target)

    def test_overwrite_allowed(self, manager, state, tmp_path):
        target = tmp_path / "snap.json"
        manager.save_state(state, target)
        state.step_number = 6
        manager.save_state(state, target, SaveConfig(overwrite_existing=True))
        assert manager.load_state(target).step_number == 6

    def test_compact_output(self, manager, state, tmp_path):
        path = manager.save_state(state, tmp_path / "c.json", SaveConfig(pretty_print=False))
        assert "\n" not in path.read_text(encoding="utf-8")

    def test_creates_directories(self, manager, state, tmp_path):
        path = manager.save_state(state, tmp_path / "a" / "b" / "snap.json")
        assert path.exists()

    def test_no_directory_creation(self, manager, state, tmp_path):
        config = SaveConfig(create_directories=False)
        with pytest.raises(PersistenceError):
            manager.save_state(state, tmp_path / "missing" / "snap.json", config)

    def test_load_missing_file(self, manager, tmp_path):
        with pytest.raises(SnapshotNotFoundError):
            manager.load_state(tmp_path / "nope.json")

    def test_null_byte_path_rejected(self, manager, state):
        with pytest.raises(InvalidPathError):
            manager.save_state(state, "bad\x00name.json")

    def test_error_kinds(self):
        assert SnapshotExistsError("x").kind == "exists"
        assert InvalidSnapshotError("x").kind == "invalid_data"
        assert issubclass(SnapshotNotFoundError, PersistenceError)


class TestValidationOnLoad:
    """Inconsistent snapshot files are rejected, never repaired."""

    def _write(self, tmp_path, data):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def test_dangling_reference(self, manager, state, tmp_path):
        data = state.to_dict()
        data["relations"].append({"id": 2, "atoms": [0, 9], "metadata": None})
        data["next_relation_id"] = 3
        with pytest.raises(InvalidSnapshotError, match="Relation 2 references non-existent atom 9"):
            manager.load_state(self._write(tmp_path, data))

    def test_stale_atom_counter(self, manager, state, tmp_path):
        data = state.to_dict()
        data["next_atom_id"] = 2
        with pytest.raises(InvalidSnapshotError, match="next_atom_id"):
            manager.load_state(self._write(tmp_path, data))

    def test_stale_relation_counter(self, manager, state, tmp_path):
        data = state.to_dict()
        data["next_relation_id"] = 1
        with pytest.raises(InvalidSnapshotError, match="next_relation_id"):
            manager.load_state(self._write(tmp_path, data))

    def test_missing_field(self, manager, state, tmp_path):
        data = state.to_dict()
        del data["step_number"]
        with pytest.raises(InvalidSnapshotError, match="step_number"):
            manager.load_state(self._write(tmp_path, data))

    def test_invalid_json(self, manager, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(InvalidSnapshotError, match="Failed to parse JSON"):
            manager.load_state(path)

    def test_loads_and_dumps(self, state):
        assert loads_state(dumps_state(state, pretty_print=False)) == state

    def test_loads_rejects_non_object(self):
        with pytest.raises(InvalidSnapshotError):
            loads_state("[1, 2]")

    def test_non_utf8_file(self, manager, tmp_path):
        path = tmp_path / "binary.json"
        path.write_bytes(b"\xff\xfe\x00garbage")
        with pytest.raises(InvalidSnapshotError, match="not valid UTF-8"):
            manager.load_state(path)

    def test_deeply_nested_json(self):
        with pytest.raises(InvalidSnapshotError, match="nesting too deep"):
            loads_state("[" * 200_000)


class TestListingAndQuickOperations:
    def test_list_saved_newest_first(self, manager, state):
        older = manager.quick_save(state, "older.json")
        newer = manager.quick_save(state, "newer.json")
        os.utime(older, (1_000_000, 1_000_000))
        os.utime(newer, (2_000_000, 2_000_000))
        (manager.save_directory / "notes.txt").write_text("ignored", encoding="utf-8")
        assert [p.name for p in manager.list_saved()] == ["newer.json", "older.json"]

    def test_list_saved_missing_directory(self, tmp_path):
        assert PersistenceManager(tmp_path / "absent").list_saved() == []

    def test_quick_save_and_load(self, manager, state):
        manager.quick_save(state, "test_hypergraph.json")
        assert manager.quick_load("test_hypergraph.json") == state

    def test_quick_save_rejects_traversal(self, manager, state):
        with pytest.raises(InvalidPathError, match="Path traversal"):
            manager.quick_save(state, "../escape.json")

    def test_delete_saved(self, manager, state):
        path = manager.quick_save(state, "gone.json")
        manager.delete_saved(path)
        assert not path.exists()
        with pytest.raises(SnapshotNotFoundError):
            manager.delete_saved(path)

    def test_default_filename(self, state):
        name = default_filename(state, datetime(2024, 3, 1, 12, 30, 5))
        assert name == "hypergraph_step_5_20240301_123005.json"
