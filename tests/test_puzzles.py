import logging

import pytest

from maplewood.puzzles import PuzzleDefinition, PuzzleEngine, PuzzleKind, PuzzleStatus


def timeline(puzzle_id: str = "p1", **extra) -> PuzzleDefinition:
    data = {
        "type": "timeline",
        "activationConditions": {"requiredClues": ["A"]},
        "solution": {"order": ["e1", "e2", "e3"]},
    }
    data.update(extra)
    return PuzzleDefinition.from_dict(data, puzzle_id)


def test_activation_effects_apply_exactly_once(make_state) -> None:
    state = make_state(puzzles=[timeline(activationEffects={"trust": 10})])

    state.collect_clue("A")
    assert state.puzzles.status("p1") is PuzzleStatus.ACTIVE
    assert state.trust.get_level("mrs_finch") == 10

    state.collect_clue("B")
    state.refresh()
    state.puzzles.check_activations()
    assert state.trust.get_level("mrs_finch") == 10


@pytest.mark.parametrize(
    "order",
    [
        ["e1", "e3", "e2"],
        ["e1", "e2"],
        ["e1", "e2", "e3", "e4"],
        "e1 e2 e3",
    ],
)
def test_timeline_requires_exact_order(make_state, order) -> None:
    state = make_state(puzzles=[timeline()])
    state.collect_clue("A")
    assert not state.submit_solution("p1", {"order": order})
    assert state.puzzles.status("p1") is PuzzleStatus.ACTIVE


def test_timeline_solution_applies_effects_and_cannot_repeat(make_state, events) -> None:
    state = make_state(
        puzzles=[timeline(solutionEffects={"unlockClue": "C", "trust": 5, "notification": "Solved!"})]
    )
    state.collect_clue("A")

    assert state.submit_solution("p1", {"order": ["e1", "e2", "e3"]})
    assert state.puzzles.is_solved("p1")
    assert "C" in state.clues
    assert state.trust.get_level("mrs_finch") == 5
    assert "Solved!" in events.notifications

    assert not state.submit_solution("p1", {"order": ["e1", "e2", "e3"]})
    assert state.trust.get_level("mrs_finch") == 5


def test_photo_assembly_ignores_order(make_state) -> None:
    puzzle = PuzzleDefinition.from_dict(
        {
            "type": "photoAssembly",
            "solution": {"requiredPhotos": ["p1", "p2", "p3"]},
        },
        "photos",
    )
    state = make_state(puzzles=[puzzle])
    state.refresh()

    assert not state.submit_solution("photos", {"requiredPhotos": ["p1", "p2"]})
    assert state.submit_solution("photos", {"requiredPhotos": ["p3", "p1", "p2"]})


def test_contradiction_needs_character_and_evidence(make_state) -> None:
    puzzle = PuzzleDefinition.from_dict(
        {
            "type": "contradiction",
            "solution": {"character": "mr_arnold", "evidence": "finch_sighting"},
        },
        "alibi",
    )
    state = make_state(puzzles=[puzzle])
    state.refresh()

    assert not state.submit_solution("alibi", {"character": "mr_arnold", "evidence": "store_receipt"})
    assert not state.submit_solution("alibi", {"character": "mrs_finch", "evidence": "finch_sighting"})
    assert state.submit_solution("alibi", {"character": "mr_arnold", "evidence": "finch_sighting"})


def test_submitting_locked_puzzle_is_rejected(make_state, caplog) -> None:
    state = make_state(puzzles=[timeline()])
    with caplog.at_level(logging.WARNING, logger="maplewood.puzzles"):
        assert not state.submit_solution("p1", {"order": ["e1", "e2", "e3"]})
        assert not state.submit_solution("nope", {})
    assert "inactive puzzle" in caplog.text
    assert state.puzzles.status("p1") is PuzzleStatus.LOCKED


def test_solving_cascades_into_later_puzzles(make_state) -> None:
    first = timeline(solutionEffects={"unlockClue": "B"})
    second = timeline("p2", activationConditions={"requiredClues": ["B"]})
    state = make_state(puzzles=[first, second])

    state.collect_clue("A")
    assert state.puzzles.status("p2") is PuzzleStatus.LOCKED
    state.submit_solution("p1", {"order": ["e1", "e2", "e3"]})
    assert state.puzzles.status("p2") is PuzzleStatus.ACTIVE


def test_activation_runs_until_nothing_changes(make_state) -> None:
    late = timeline("late", activationConditions={"requiredClues": ["B"]})
    early = timeline("early", activationEffects={"unlockClue": "B"})
    state = make_state(puzzles=[late, early])

    state.collect_clue("A")

    assert [p.id for p in state.puzzles.active_puzzles()] == ["late", "early"]


def test_callbacks_fire_on_transitions(make_state) -> None:
    state = make_state(puzzles=[timeline()])
    activated, solved = [], []
    state.puzzles.register_callbacks(
        on_activated=lambda p: activated.append(p.id),
        on_solved=lambda p: solved.append(p.id),
    )

    state.collect_clue("A")
    state.submit_solution("p1", {"order": ["e1", "e2", "e3"]})

    assert activated == ["p1"]
    assert solved == ["p1"]


def test_import_state_restores_without_effects(make_state) -> None:
    state = make_state(puzzles=[timeline(activationEffects={"trust": 10}), timeline("p2")])

    state.puzzles.import_state({"activePuzzles": ["p2"], "solvedPuzzles": ["p1", "ghost"]})

    assert state.puzzles.export_state() == {"active": ["p2"], "solved": ["p1"]}
    assert state.trust.get_level("mrs_finch") == 0


def test_definitions_reject_unknown_types_and_duplicates() -> None:
    with pytest.raises(ValueError, match="unknown type"):
        PuzzleDefinition.from_dict({"type": "riddle", "solution": {}}, "bad")
    with pytest.raises(ValueError, match="order"):
        PuzzleDefinition.from_dict({"type": "timeline", "solution": {}}, "bad")
    with pytest.raises(ValueError, match="Duplicate"):
        PuzzleEngine([timeline(), timeline()], state=None, effects=None)
    assert timeline().kind is PuzzleKind.TIMELINE


def test_act_reached_by_activation_opens_act_gated_puzzles(make_state) -> None:
    opener = timeline("opener", activationEffects={"trust": 25})
    gated = timeline("gated", activationConditions={"actMin": 2})
    state = make_state(puzzles=[opener, gated])

    state.collect_clue("A")

    assert state.act == 2
    assert state.puzzles.status("gated") is PuzzleStatus.ACTIVE
