import json
import logging
from pathlib import Path

import pytest

from maplewood.photos import NearbyElement, Position
from maplewood.puzzles import PuzzleDefinition, PuzzleStatus
from maplewood.relationships import Character
from maplewood.save_manager import (
    VERSION_MISMATCH_WARNING,
    JsonFileStore,
    MemoryStore,
    SaveCorruptError,
    SaveError,
    SaveManager,
)
from maplewood.save_migrations import SaveMigrationError, migrate_save_payload
from maplewood.settings import Settings


def puzzle(puzzle_id: str) -> PuzzleDefinition:
    return PuzzleDefinition.from_dict(
        {
            "type": "timeline",
            "activationConditions": {"requiredClues": ["A"]},
            "activationEffects": {"trust": 3},
            "solution": {"order": ["x", "y"]},
        },
        puzzle_id,
    )


@pytest.fixture
def saved_state(make_state):
    state = make_state(
        characters=[Character("mrs_finch", "Mrs. Finch"), Character("camille", "Camille")],
        puzzles=[puzzle("p1"), puzzle("p2")],
    )
    state.trust.set_level("mrs_finch", 42)
    state.clues.add("A")
    state.clues.add("B")
    state.clues.annotate("B", "ask Arnold")
    state.puzzles.import_state({"solved": ["p1"]})
    state.flags["met_camille"] = True
    state.clock.set_time(1300, 3)
    state.photos.capture(Position(0, 0), state.time_of_day, [NearbyElement("house", 0)])
    return state


def test_export_then_import_restores_state(saved_state, make_state) -> None:
    blob = SaveManager(saved_state, MemoryStore()).export_blob()

    fresh = make_state(
        characters=[Character("mrs_finch", "Mrs. Finch"), Character("camille", "Camille")],
        puzzles=[puzzle("p1"), puzzle("p2")],
    )
    SaveManager(fresh, MemoryStore()).import_blob(json.loads(json.dumps(blob)))

    assert fresh.trust.get_level("mrs_finch") == 42
    assert fresh.clues.found() == ["A", "B"]
    assert fresh.clues.annotation("B") == "ask Arnold"
    assert fresh.puzzles.is_solved("p1")
    assert fresh.flags == {"met_camille": True}
    assert (fresh.clock.minutes, fresh.clock.day, fresh.time_of_day) == (1300, 3, "night")
    assert [p.type for p in fresh.photos] == ["flickerPhoto"]


def test_import_fires_no_effects(saved_state, make_state) -> None:
    blob = SaveManager(saved_state, MemoryStore()).export_blob()
    blob["puzzleState"] = {"active": ["p2"], "solved": ["p1"]}
    blob["trust"] = {}

    fresh = make_state(puzzles=[puzzle("p1"), puzzle("p2")])
    SaveManager(fresh, MemoryStore()).import_blob(blob)

    assert fresh.puzzles.status("p2") is PuzzleStatus.ACTIVE
    assert fresh.trust.get_level("mrs_finch") == 0


def test_import_defaults_missing_fields(make_state) -> None:
    state = make_state()
    state.clues.add("C")
    state.flags["old"] = 1
    SaveManager(state, MemoryStore()).import_blob({"version": 1, "gameVersion": "1.0.0"})

    assert state.clues.found() == []
    assert state.flags == {}
    assert state.act == 1
    assert state.clock.minutes == 360


def test_export_flags_are_a_snapshot(saved_state) -> None:
    saved_state.flags["nested"] = {"count": 1}
    blob = SaveManager(saved_state, MemoryStore()).export_blob()
    saved_state.flags["nested"]["count"] = 2
    assert blob["flags"]["nested"] == {"count": 1}
    assert blob["version"] == 1
    assert blob["timeOfDay"] == "night"


def test_version_mismatch_warns_and_notifies(make_state, events, caplog) -> None:
    state = make_state()
    with caplog.at_level(logging.WARNING, logger="maplewood"):
        SaveManager(state, MemoryStore()).import_blob({"version": 1, "gameVersion": "0.9.0"})
    assert VERSION_MISMATCH_WARNING in events.notifications
    assert "differs" in caplog.text


def test_import_rejects_non_objects(make_state) -> None:
    manager = SaveManager(make_state(), MemoryStore())
    with pytest.raises(SaveCorruptError):
        manager.import_blob(["not", "a", "save"])
    with pytest.raises(SaveCorruptError):
        manager.import_blob({"version": 99})


def test_slots_round_trip_and_keep_backup(saved_state, make_state, events) -> None:
    store = MemoryStore()
    manager = SaveManager(saved_state, store)

    key = manager.save("Slot One!")
    assert key == "maplewood_save:slotone"
    assert f"{key}.bak" not in store.data

    manager.save("slotone")
    assert f"{key}.bak" in store.data
    assert "Game saved!" in events.notifications

    fresh = make_state(puzzles=[puzzle("p1"), puzzle("p2")])
    assert SaveManager(fresh, store).load("slotone")
    assert fresh.trust.get_level("mrs_finch") == 42


def test_load_falls_back_to_backup_after_confirmation(saved_state, make_state) -> None:
    store = MemoryStore()
    manager = SaveManager(saved_state, store)
    manager.save("quick")
    manager.save("quick")
    store.set("maplewood_save:quick", "{broken json")

    declined = make_state()
    assert not SaveManager(declined, store, confirm_restore=lambda slot: False).load("quick")

    fresh = make_state()
    assert SaveManager(fresh, store).load("quick")
    assert fresh.clues.found() == ["A", "B"]
    assert json.loads(store.get("maplewood_save:quick"))["version"] == 1


def test_load_missing_slot_returns_false(make_state, events) -> None:
    assert not SaveManager(make_state(), MemoryStore()).load("nothing")
    assert "No saved game found!" in events.notifications


def test_autosave_uses_reserved_slot(make_state) -> None:
    store = MemoryStore()
    SaveManager(make_state(), store).autosave()
    assert "maplewood_save:autosave" in store.data


def test_slot_names_need_letters(make_state) -> None:
    with pytest.raises(SaveError):
        SaveManager(make_state(), MemoryStore()).save("!!!")


def test_key_prefix_comes_from_settings(make_state) -> None:
    store = MemoryStore()
    manager = SaveManager(make_state(settings=Settings(save_key_prefix="test")), store)
    assert manager.save() == "test:quick"


def test_json_file_store_persists_atomically(tmp_path: Path, saved_state, make_state) -> None:
    path = tmp_path / "saves" / "maplewood.json"
    SaveManager(saved_state, JsonFileStore(path)).save("disk")

    assert not list(path.parent.glob("*.tmp"))
    fresh = make_state()
    assert SaveManager(fresh, JsonFileStore(path)).load("disk")
    assert fresh.trust.get_level("mrs_finch") == 42


def test_json_file_store_rejects_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    path.write_text("[1, 2]")
    with pytest.raises(SaveCorruptError):
        JsonFileStore(path).get("anything")


def test_migrates_browser_layout() -> None:
    legacy = {
        "relationships": {"characterTrust": {"mrs_finch": {"level": 42, "tier": "Confiding"}}},
        "foundClues": ["A", "B"],
        "activePuzzles": ["p2"],
        "solvedPuzzles": ["p1"],
        "timeData": {"time": 1300, "dayCount": 2},
        "currentAct": 2,
    }
    migrated = migrate_save_payload(legacy, 1)

    assert migrated["version"] == 1
    assert migrated["trust"] == {"mrs_finch": 42}
    assert migrated["puzzleState"] == {"active": ["p2"], "solved": ["p1"]}
    assert (migrated["time"], migrated["day"], migrated["timeOfDay"]) == (1300, 2, "night")
    assert migrated["act"] == 2
    assert "relationships" in legacy


def test_legacy_save_loads_into_state(make_state) -> None:
    state = make_state(puzzles=[puzzle("p1"), puzzle("p2")])
    SaveManager(state, MemoryStore()).import_blob(
        {"trust": {"mrs_finch": 42}, "foundClues": ["A", "B"], "puzzleState": {"solved": ["p1"]}}
    )
    assert state.trust.get_level("mrs_finch") == 42
    assert state.puzzles.is_solved("p1")


@pytest.mark.parametrize("payload", [{"version": 5}, {"version": "1"}, {"version": True}])
def test_migration_rejects_bad_versions(payload) -> None:
    with pytest.raises(SaveMigrationError):
        migrate_save_payload(payload, 1)


def test_migration_failures_surface_as_corrupt_saves(make_state) -> None:
    with pytest.raises(SaveCorruptError) as excinfo:
        SaveManager(make_state(), MemoryStore()).import_blob({"version": 5})
    assert isinstance(excinfo.value, SaveError)
    assert isinstance(excinfo.value.__cause__, SaveMigrationError)
