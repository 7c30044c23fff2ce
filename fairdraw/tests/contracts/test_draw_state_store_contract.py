"""
Contract tests for DrawStateStore and DrawSnapshot.

Covers:
- Missing, corrupt and non-object state files
- Atomic whole-file writes and upsert semantics
- Deterministic ID lookup
- Engine save/load round trips
- Grid lookups by dimensions
"""

import json
import os
from datetime import timezone

import pytest

from fairdraw.draw_logic.balanced_draw import BalancedDraw
from fairdraw.draw_logic.identifier_space import RANGE_TYPE_TAG
from fairdraw.errors import PersistenceError, SnapshotNotFound
from fairdraw.state.draw_state_store import DrawStateStore
from fairdraw.state.snapshot import DrawSnapshot, parse_timestamp
from fairdraw.tests.contracts.conftest import SEED


class TestLoading:
    """Tests for reading the state file."""

    def test_missing_file_loads_empty(self, file_store):
        assert file_store.load() == {}, "A missing state file means no saved state"

    def test_corrupt_file_raises(self, file_store, state_path):
        state_path.write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceError):
            file_store.load()

    def test_non_object_file_raises(self, file_store, state_path):
        state_path.write_text("[]", encoding="utf-8")
        with pytest.raises(PersistenceError):
            file_store.load()

    @pytest.mark.parametrize("entry", [
        {"draw_counts": [1]},
        {"last_draw_round": "x"},
        {"last_updated": 5},
        {"whitelist_only_mode": "false"},
    ])
    def test_wrongly_typed_field_raises(self, file_store, state_path, entry):
        """A field of the wrong type fails the whole load as a PersistenceError."""
        state_path.write_text(json.dumps({"k": entry}), encoding="utf-8")
        with pytest.raises(PersistenceError):
            file_store.load()

    def test_partial_entry_loads_with_defaults(self, file_store, state_path):
        """Entries missing optional fields still load."""
        state_path.write_text(json.dumps({"abc": {"draw_counts": {"1": 4}}}), encoding="utf-8")

        snapshot = file_store.get("abc")
        assert snapshot.id == "abc"
        assert snapshot.draw_counts == {1: 4}
        assert snapshot.min_pool_size == 3
        assert snapshot.whitelist_only_mode is False

    def test_engine_without_saved_state_keeps_fresh_state(self, engine, file_store):
        assert engine.load_data(file_store) is False
        assert engine.total_draws == 0


class TestSaving:
    """Tests for writing the state file."""

    def test_save_writes_json_object_keyed_by_id(self, engine, file_store, state_path):
        engine.draw(file_store)

        raw = json.loads(state_path.read_text(encoding="utf-8"))
        assert list(raw) == [engine.data_id]
        entry = raw[engine.data_id]
        assert entry["data_type"] == RANGE_TYPE_TAG
        assert entry["number_range_start"] == 1
        assert entry["number_range_end"] == 5
        assert entry["total_draws"] == 1
        assert set(entry["draw_counts"]) == {"1", "2", "3", "4", "5"}, "Map keys are stringified ids"
        assert entry["last_updated"].endswith("Z")

    def test_no_temp_file_left_behind(self, engine, file_store, state_path):
        engine.save_data(file_store)
        assert not os.path.exists(str(state_path) + ".tmp")

    def test_upsert_keeps_other_entries(self, file_store):
        first = BalancedDraw.from_range(1, 5, rng=SEED)
        second = BalancedDraw.from_range(1, 9, rng=SEED)
        first.save_data(file_store)
        second.save_data(file_store)

        assert set(file_store.load()) == {first.data_id, second.data_id}

    def test_unwritable_location_raises(self, engine, tmp_path):
        store = DrawStateStore(str(tmp_path / "missing_dir" / "state.json"))
        with pytest.raises(PersistenceError):
            engine.save_data(store)

    def test_upsert_over_corrupt_file_raises(self, engine, file_store, state_path):
        """A corrupt file is not silently overwritten by an explicit save."""
        state_path.write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceError):
            engine.save_data(file_store)
        assert state_path.read_text(encoding="utf-8") == "{not json"


class TestLookup:
    """Tests for deterministic ID lookup."""

    def test_find_matching_uses_deterministic_id(self, engine, file_store):
        engine.save_data(file_store)

        snapshot = file_store.find_matching(RANGE_TYPE_TAG, ["1", "5", "3", "5", "2", "0.7"])
        assert snapshot is not None
        assert snapshot.id == "BalancedRand_Range_1_5_3_5_2_0.7"

    def test_find_matching_misses_other_tuning(self, engine, file_store):
        engine.save_data(file_store)
        assert file_store.find_matching(RANGE_TYPE_TAG, ["1", "5", "4", "5", "2", "0.7"]) is None

    def test_different_tuning_is_stored_separately(self, file_store):
        a = BalancedDraw.from_range(1, 5, rng=SEED)
        b = BalancedDraw.from_range(1, 5, decay_factor=0.5, rng=SEED)
        a.draw(file_store)
        b.load_data(file_store)

        assert b.total_draws == 0, "Engines with different tuning must not share state"


class TestRoundTrip:
    """Tests for engine save/load."""

    def test_reload_restores_every_counter(self, file_store):
        engine = BalancedDraw.from_range(1, 8, rng=SEED)
        engine.set_blacklist([2])
        engine.add_to_whitelist([20])
        for _ in range(7):
            engine.draw(file_store)

        restored = BalancedDraw.from_range(1, 8, rng=SEED)
        assert restored.load_data(file_store) is True

        assert restored.current_round == engine.current_round
        assert restored.total_draws == engine.total_draws
        assert restored.get_statistics() == engine.get_statistics()
        assert restored.get_blacklist() == [2]
        assert restored.get_whitelist() == [20]
        for number in engine.active_ids:
            assert restored.get_last_draw_round(number) == engine.get_last_draw_round(number)
            assert restored.get_probability(number) == pytest.approx(engine.get_probability(number))

    def test_save_load_save_is_idempotent(self, engine, file_store):
        for _ in range(5):
            engine.draw()
        engine.save_data(file_store)
        first = file_store.get(engine.data_id).to_dict()

        restored = BalancedDraw.from_range(1, 5, rng=SEED)
        restored.load_data(file_store)
        restored.save_data(file_store)
        second = file_store.get(engine.data_id).to_dict()

        first.pop("last_updated")
        second.pop("last_updated")
        assert first == second

    def test_unknown_ids_in_snapshot_are_ignored(self, engine):
        snapshot = engine.to_snapshot()
        snapshot.draw_counts[99] = 7
        snapshot.last_draw_round[99] = 3
        engine.apply_snapshot(snapshot)

        assert 99 not in engine.active_ids
        assert engine.get_draw_count(99) == 0

    def test_invalid_stored_pool_size_is_ignored(self, engine):
        snapshot = engine.to_snapshot()
        snapshot.min_pool_size = 0
        engine.apply_snapshot(snapshot)
        assert engine.min_pool_size == 3


class TestPlaneLookup:
    """Tests for grid lookups by dimensions."""

    def test_plane_lookups(self, plane, file_store):
        plane.set_blacklist_positions([(1, 1)])
        for _ in range(6):
            plane.draw_position(file_store)

        counts = file_store.get_plane_draw_counts(3, 4)
        probabilities = file_store.get_plane_probabilities(3, 4)

        assert counts == plane.get_position_draw_counts()
        assert counts[(1, 1)] == 0
        assert probabilities[(1, 1)] == 0.0
        assert sum(probabilities.values()) == pytest.approx(1.0)

    def test_missing_plane_raises(self, plane, file_store):
        plane.save_data(file_store)
        with pytest.raises(SnapshotNotFound):
            file_store.find_plane(5, 5)

    def test_missing_plane_is_lookup_error(self, file_store):
        with pytest.raises(LookupError):
            file_store.get_plane_draw_counts(2, 2)


class TestTimestamps:
    """Tests for snapshot timestamp parsing."""

    def test_nanosecond_precision_is_truncated(self):
        parsed = parse_timestamp("2024-05-01T12:00:00.123456789Z")
        assert parsed.microsecond == 123456
        assert parsed.tzinfo == timezone.utc

    def test_non_object_entry_is_rejected(self):
        with pytest.raises(TypeError):
            DrawSnapshot.from_dict(["not", "an", "object"])
