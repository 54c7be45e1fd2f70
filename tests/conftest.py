import random
from typing import Callable, List, Optional, Tuple

import pytest

from maplewood.clues import Clue
from maplewood.endings import Ending
from maplewood.relationships import Character
from maplewood.settings import Settings
from maplewood.state import GameState, NarrativeEvents


class RecordingEvents(NarrativeEvents):
    def __init__(self) -> None:
        self.notifications: List[str] = []
        self.sounds: List[str] = []
        self.dialogue_triggers: List[Tuple[str, Optional[str]]] = []
        self.time_changes: List[Tuple[str, str]] = []

    def notify(self, message: str) -> None:
        self.notifications.append(message)

    def play(self, effect_name: str) -> None:
        self.sounds.append(effect_name)

    def trigger_dialogue(self, character_id: str, node_id: Optional[str]) -> None:
        self.dialogue_triggers.append((character_id, node_id))

    def time_changed(self, previous: str, current: str) -> None:
        self.time_changes.append((previous, current))


DEFAULT_ENDING = Ending(id="silence", name="Community Silence", default=True)


@pytest.fixture
def events() -> RecordingEvents:
    return RecordingEvents()


@pytest.fixture
def make_state(events: RecordingEvents) -> Callable[..., GameState]:
    def _make(**kwargs) -> GameState:
        kwargs.setdefault("characters", [Character("mrs_finch", "Mrs. Finch")])
        kwargs.setdefault("clues", [Clue(cid) for cid in ("A", "B", "C")])
        kwargs.setdefault("endings", [DEFAULT_ENDING])
        kwargs.setdefault("settings", Settings(rng_seed=7))
        kwargs.setdefault("events", events)
        kwargs.setdefault("rng", random.Random(7))
        return GameState(**kwargs)

    return _make
