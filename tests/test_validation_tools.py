import json
import subprocess
import sys
from pathlib import Path

import pytest

from maplewood.content import DEFAULT_WORLD_PATH, build_game, load_world
from maplewood.save_manager import MemoryStore, SaveManager
from maplewood.settings import Settings
from maplewood.world_schema import path, validate_world
from tools.softlock import analyze_softlocks, obtainable_clues
from tools.validate import group_by_section


REPO_ROOT = Path(__file__).resolve().parents[1]


def write_world(tmp_path: Path, world: dict) -> Path:
    world_path = tmp_path / "world.json"
    world_path.write_text(json.dumps(world))
    return world_path


def minimal_world(**overrides) -> dict:
    world = {
        "title": "Test Lane",
        "characters": {"mrs_finch": {"name": "Mrs. Finch"}},
        "clues": [{"id": "A"}],
        "endings": {"silence": {"name": "Silence", "default": True}},
    }
    world.update(overrides)
    return world


def test_sample_world_is_clean() -> None:
    with DEFAULT_WORLD_PATH.open("r", encoding="utf-8") as handle:
        raw = json.load(handle)
    assert validate_world(raw) == []
    assert analyze_softlocks(raw) == []


def test_minimal_world_validates() -> None:
    assert validate_world(minimal_world()) == []


@pytest.mark.parametrize(
    ("overrides", "match"),
    [
        ({"title": ""}, "title"),
        ({"characters": {}}, "characters"),
        ({"endings": {"a": {"name": "A"}}}, "found 0"),
        (
            {"endings": {"a": {"name": "A", "default": True}, "b": {"name": "B", "default": True}}},
            "found 2",
        ),
        (
            {"puzzles": {"p": {"type": "riddle", "solution": {}}}},
            "timeline",
        ),
        (
            {"puzzles": {"p": {"type": "timeline", "solution": {"order": ["x"]},
                               "activationConditions": {"moonPhase": "full"}}}},
            "unknown requirement key 'moonPhase'",
        ),
        (
            {"dialogues": {"mrs_finch": {"nodes": {"default": {"choices": [{"text": "Go", "next": "nowhere"}]}}}}},
            "unknown node 'nowhere'",
        ),
        (
            {"dialogues": {"stranger": {"nodes": {"default": {}}}}},
            "does not match any character",
        ),
        ({"clues": [{"id": "A", "related": ["ghost"]}]}, "unknown clue 'ghost'"),
        ({"characters": {"mrs_finch": {"thresholds": [50, 10, 20, 30]}}}, "ascending"),
        (
            {"endings": {"silence": {"name": "S", "default": True}, "x": {"name": "X", "requirements": {"requiredFlag": "y"}}}},
            "unknown requirement key 'requiredFlag'",
        ),
    ],
)
def test_load_world_rejects_invalid_content(tmp_path: Path, overrides: dict, match: str) -> None:
    world_path = write_world(tmp_path, minimal_world(**overrides))
    with pytest.raises(ValueError, match=match):
        load_world(world_path)


def test_load_world_rejects_non_object(tmp_path: Path) -> None:
    world_path = tmp_path / "world.json"
    world_path.write_text("[]")
    with pytest.raises(ValueError, match="JSON object"):
        load_world(world_path)


def test_path_formats_identifiers_and_indexes() -> None:
    assert path("dialogues", "mrs_finch", "nodes", "a b", "choices", 2) == (
        'dialogues.mrs_finch.nodes["a b"].choices[2]'
    )


def test_softlock_flags_unobtainable_clues_and_orphan_nodes() -> None:
    world = minimal_world(
        puzzles={
            "p": {
                "type": "timeline",
                "solution": {"order": ["x"]},
                "activationConditions": {"requiredClues": ["ghost"]},
            },
            "self": {
                "type": "timeline",
                "solution": {"order": ["x"]},
                "activationConditions": {"requiredClues": ["prize"]},
                "solutionEffects": {"unlockClue": "prize"},
            },
        },
        dialogues={
            "mrs_finch": {
                "nodes": {
                    "default": {"choices": [{"text": "Hi", "next": "exit"}]},
                    "orphan": {"lines": ["No one comes here."]},
                }
            }
        },
    )
    warnings = analyze_softlocks(world)

    assert obtainable_clues(world) == {"A", "prize"}
    assert any("'ghost'" in w and "never activate" in w for w in warnings)
    assert any("only solving 'self'" in w for w in warnings)
    assert any("orphan" in w and "not reachable" in w for w in warnings)


def test_validate_tool_passes_sample_world() -> None:
    result = subprocess.run(
        [sys.executable, str(REPO_ROOT / "tools" / "validate.py")],
        capture_output=True,
        text=True,
        check=False,
    )
    assert result.returncode == 0, result.stdout
    assert "is consistent" in result.stdout


def test_validate_tool_reports_errors(tmp_path: Path) -> None:
    world_path = write_world(tmp_path, minimal_world(endings={}))
    result = subprocess.run(
        [sys.executable, str(REPO_ROOT / "tools" / "validate.py"), str(world_path)],
        capture_output=True,
        text=True,
        check=False,
    )
    assert result.returncode == 1
    assert "Structural errors in world.json" in result.stdout
    assert "[endings]" in result.stdout


def test_validate_tool_strict_fails_on_warnings(tmp_path: Path) -> None:
    world = minimal_world(
        puzzles={"p": {"type": "timeline", "solution": {"order": ["x"]},
                       "activationConditions": {"requiredClues": ["ghost"]}}}
    )
    world_path = write_world(tmp_path, world)
    args = [sys.executable, str(REPO_ROOT / "tools" / "validate.py"), str(world_path)]

    relaxed = subprocess.run(args, capture_output=True, text=True, check=False)
    strict = subprocess.run(args + ["--strict"], capture_output=True, text=True, check=False)

    assert relaxed.returncode == 0
    assert "Progression warnings (1):" in relaxed.stdout
    assert strict.returncode == 1


def test_sample_world_playthrough(events) -> None:
    state = build_game(load_world(), Settings(rng_seed=1), events)

    resolved = state.talk_to("mr_arnold")
    assert [option.text for option in resolved.options] == [
        "Where were you the night Iris disappeared?",
        "Never mind.",
    ]
    state.choose(0)
    assert state.clues.has(["arnold_statement", "store_receipt"])
    assert state.choose(0) is None
    assert state.trust.get_level("mr_arnold") == 2

    assert state.skip_to("afternoon")
    resolved = state.talk_to("mr_arnold")
    assert "About the storm..." in [option.text for option in resolved.options]
    assert state.conclude().id == "community_silence"

    store = MemoryStore()
    SaveManager(state, store).save("quick")
    reloaded = build_game(load_world(), Settings(rng_seed=1))
    assert SaveManager(reloaded, store).load("quick")
    assert reloaded.clues.found() == state.clues.found()
    assert reloaded.time_of_day == "afternoon"


def test_report_groups_messages_by_world_section() -> None:
    grouped = group_by_section(
        [
            "endings: World data: must define at least one ending.",
            "dialogues.mrs_finch.nodes.orphan: not reachable.",
            "dialogues.camille: Dialogues: does not match any character.",
        ]
    )
    assert sorted(grouped) == ["dialogues", "endings"]
    assert len(grouped["dialogues"]) == 2
