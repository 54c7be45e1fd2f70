import pytest

from maplewood.conditions import ConditionEvaluator, meets_requirement, unknown_requirement_keys
from maplewood.photos import NearbyElement, Position
from maplewood.relationships import Character


def test_empty_requirement_is_met(make_state) -> None:
    state = make_state()
    assert meets_requirement({}, state)
    assert meets_requirement(None, state)


def test_unknown_key_fails_closed(make_state) -> None:
    state = make_state()
    state.clues.add("A")
    assert not meets_requirement({"requiredClues": ["A"], "moonPhase": "full"}, state)
    assert unknown_requirement_keys({"moonPhase": "full", "minClues": 1}) == ["moonPhase"]


def test_non_mapping_requirement_is_unmet(make_state) -> None:
    assert not meets_requirement("trustMin", make_state())


def test_malformed_values_fail_instead_of_raising(make_state) -> None:
    assert not meets_requirement({"trustMin": "lots"}, make_state())


def test_trust_requirements_use_global_or_scoped_trust(make_state) -> None:
    state = make_state(characters=[Character("mrs_finch"), Character("mr_arnold")])
    state.trust.set_level("mrs_finch", 40)

    assert meets_requirement({"trustMin": 20}, state)
    assert not meets_requirement({"trustMin": 21}, state)
    assert meets_requirement({"trustMin": 40, "character": "mrs_finch"}, state)
    assert meets_requirement({"trustMax": 0, "character": "mr_arnold"}, state)
    assert meets_requirement({"tier": "Confiding", "character": "mrs_finch"}, state)
    assert not meets_requirement({"tier": "Confiding"}, state)


@pytest.mark.parametrize(
    ("requirement", "expected"),
    [
        ({"timeOfDay": "morning"}, True),
        ({"timeOfDay": ["evening", "night"]}, False),
        ({"requiredClues": ["A", "B"]}, False),
        ({"requiresClue": "A"}, True),
        ({"minClues": 1}, True),
        ({"flags": {"met_camille": True}}, True),
        ({"variables": {"met_camille": False}}, False),
        ({"actMin": 2}, False),
        ([{"minClues": 1}, {"requiredClues": "A"}], True),
    ],
)
def test_requirement_keys(make_state, requirement, expected: bool) -> None:
    state = make_state()
    state.clues.add("A")
    state.flags["met_camille"] = True
    assert meets_requirement(requirement, state) is expected


def test_photo_requirement_matches_aliases(make_state) -> None:
    state = make_state()
    state.clock.set_time(1300)
    state.take_photo(Position(10, 10), [NearbyElement("house", 0)])

    assert meets_requirement({"requiredPhotoType": "flickerPhoto"}, state)
    assert meets_requirement({"requiresPhoto": "flickering_light"}, state)
    assert not meets_requirement({"requiredPhotoType": "wellPhoto"}, state)


def test_previous_node_requirement(make_state) -> None:
    state = make_state()
    state.previous_node = "finch_intro"
    assert meets_requirement({"previousNode": "finch_intro"}, state)
    assert not meets_requirement({"previousNode": "finch_iris"}, state)


def test_condition_evaluator_needs_a_state(make_state) -> None:
    evaluator = ConditionEvaluator()
    with pytest.raises(ValueError):
        evaluator.evaluate({"minClues": 0})
    assert ConditionEvaluator(make_state()).evaluate({"minClues": 0})
