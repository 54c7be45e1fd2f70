"""Load world files and build a ready-to-play game state from them."""

from __future__ import annotations

import json
import logging
import random
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .clues import Clue
from .dialogue import CharacterDialogue
from .endings import Ending
from .puzzles import PuzzleDefinition
from .relationships import Character, Personality
from .settings import Settings, parse_thresholds
from .state import GameState, NarrativeEvents
from .world_schema import entries, validate_world

logger = logging.getLogger(__name__)

_BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_WORLD_PATH = _BASE_DIR / "world" / "maplewood.json"


def _raise_world_validation(errors: List[str]) -> None:
    raise ValueError("Invalid world data:\n- " + "\n- ".join(errors))


def load_world(path: Path | str = DEFAULT_WORLD_PATH) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        try:
            world = json.load(handle)
        except json.JSONDecodeError as exc:
            _raise_world_validation([f"{path}: not valid JSON ({exc})."])
    if not isinstance(world, dict):
        _raise_world_validation(["World data must be a JSON object."])

    errors = validate_world(world)
    if errors:
        _raise_world_validation(errors)

    world.setdefault("clues", [])
    world.setdefault("puzzles", {})
    world.setdefault("dialogues", {})
    world.setdefault("actClueMinimums", {})
    logger.info("Loaded world %r from %s.", world.get("title"), path)
    return world


def characters_from_world(world: Mapping[str, Any], settings: Settings) -> List[Character]:
    characters = []
    for char_id, body, _ in entries(world.get("characters")):
        body = body if isinstance(body, Mapping) else {}
        thresholds = parse_thresholds(body.get("thresholds")) or settings.trust_thresholds
        characters.append(
            Character(
                id=char_id,
                name=str(body.get("name") or char_id),
                thresholds=thresholds,
                personality=Personality.from_dict(body.get("personality")),
            )
        )
    return characters


def clues_from_world(world: Mapping[str, Any]) -> List[Clue]:
    clues = []
    for clue_id, body, _ in entries(world.get("clues")):
        if isinstance(world.get("clues"), Mapping):
            body = {"id": clue_id, **body}
        clues.append(Clue.from_dict(body))
    return clues


def build_game(
    world: Mapping[str, Any],
    settings: Optional[Settings] = None,
    events: Optional[NarrativeEvents] = None,
    rng: Optional[random.Random] = None,
) -> GameState:
    """Turn a validated world mapping into a fresh :class:`GameState`."""
    settings = (settings or Settings()).copy().clamp()
    dialogues = {
        char_id: CharacterDialogue.from_dict(char_id, body)
        for char_id, body in (world.get("dialogues") or {}).items()
    }
    puzzles = [
        PuzzleDefinition.from_dict(body, puzzle_id)
        for puzzle_id, body, _ in entries(world.get("puzzles"))
    ]
    endings = [Ending.from_dict(ending_id, body) for ending_id, body, _ in entries(world.get("endings"))]
    minimums = {int(act): int(count) for act, count in (world.get("actClueMinimums") or {}).items()}

    state = GameState(
        characters=characters_from_world(world, settings),
        clues=clues_from_world(world),
        puzzles=puzzles,
        dialogues=dialogues,
        endings=endings,
        settings=settings,
        events=events,
        rng=rng,
        act_clue_minimums=minimums,
    )
    state.refresh()
    return state
