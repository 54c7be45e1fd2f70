import random

from maplewood.clues import Clue, ClueStore, auto_tag


def test_discovering_a_clue_twice_notifies_once(make_state, events) -> None:
    state = make_state()

    assert state.collect_clue("A") is True
    assert state.collect_clue("A") is False

    assert state.clues.found() == ["A"]
    assert events.notifications.count('New clue: "A"') == 1
    assert events.sounds.count("clue") == 1


def test_store_keeps_discovery_order_and_membership() -> None:
    store = ClueStore()
    for clue_id in ("storm_newspaper", "finch_sighting", "storm_newspaper"):
        store.add(clue_id)

    assert store.found() == ["storm_newspaper", "finch_sighting"]
    assert len(store) == 2
    assert "finch_sighting" in store
    assert store.has(["storm_newspaper", "finch_sighting"])
    assert not store.has("arnold_statement")
    assert store.has_all([])
    assert not store.add("")


def test_connections_only_link_discovered_clues() -> None:
    store = ClueStore.from_catalogue(
        [
            Clue("storm_newspaper", related=("arnold_power_outage",)),
            Clue("arnold_power_outage"),
            Clue("finch_sighting"),
        ]
    )
    store.add("arnold_power_outage")
    assert store.connections_of("arnold_power_outage") == set()

    store.add("storm_newspaper")
    assert store.connections_of("arnold_power_outage") == {"storm_newspaper"}
    assert store.connected_clues() == {"storm_newspaper", "arnold_power_outage"}


def test_display_subset_prunes_without_losing_clues() -> None:
    store = ClueStore.from_catalogue([Clue("c0", related=("c1",)), Clue("c1")])
    for index in range(60):
        store.add(f"c{index}")
    store.annotate("c5", "Check the well.")

    shown = store.display_subset(limit=50, keep_recent=30)

    assert len(store) == 60
    assert shown[:3] == ["c0", "c1", "c5"]
    assert shown[3:] == [f"c{index}" for index in range(30, 60)]


def test_annotations_require_a_found_clue() -> None:
    store = ClueStore()
    assert not store.annotate("missing", "note")
    store.add("finch_sighting")
    assert store.annotate("finch_sighting", "  saw him at 7:15  ")
    assert store.annotation("finch_sighting") == "saw him at 7:15"
    store.annotate("finch_sighting", "")
    assert store.annotations() == {}


def test_auto_tag_finds_keyword_categories() -> None:
    tags = auto_tag("Mrs. Finch saw a shadow near the well at midnight")
    assert ("people", "mrs. finch") in tags
    assert ("supernatural", "shadow") in tags
    assert ("places", "well") in tags
    assert ("times", "midnight") in tags


def test_random_award_respects_time_and_trust() -> None:
    store = ClueStore.from_catalogue(
        [
            Clue("morning_only", time_of_day="morning"),
            Clue("trusted", trust_required=50),
            Clue("night_only", time_of_day="night"),
        ]
    )
    rng = random.Random(3)

    assert store.award_random_clue("morning", 10, rng) == "morning_only"
    assert store.award_random_clue("morning", 10, rng) is None
    assert store.award_random_clue("night", 60, rng) in {"trusted", "night_only"}


def test_restore_replaces_found_set() -> None:
    store = ClueStore()
    store.add("old")
    store.restore(["A", "B", 7, "A"], {"B": "note", "Z": "dropped"})
    assert store.found() == ["A", "B"]
    assert store.annotations() == {"B": "note"}


def test_clue_from_dict_accepts_text_and_connections() -> None:
    clue = Clue.from_dict({"text": "Iris's journal", "connections": ["well"], "time": "night"})
    assert clue.id == "Iris's journal"
    assert clue.related == ("well",)
    assert clue.time_of_day == "night"
