"""Save migration registry for Maplewood Lane."""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, List

from .timekeeping import DEFAULT_START_TIME, normalize_minutes, time_of_day_for


class SaveMigrationError(Exception):
    """Raised when a save cannot be migrated to the latest schema."""


Migration = Callable[[Dict], Dict]


def _legacy_trust(payload: Dict) -> Dict[str, Any]:
    trust = payload.get("trust")
    if isinstance(trust, dict):
        return dict(trust)
    relationships = payload.get("relationships")
    if not isinstance(relationships, dict):
        return {}
    character_trust = relationships.get("characterTrust")
    if not isinstance(character_trust, dict):
        return {}
    levels: Dict[str, Any] = {}
    for character_id, record in character_trust.items():
        if isinstance(record, dict) and "level" in record:
            levels[character_id] = record["level"]
    return levels


def _id_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _legacy_puzzles(payload: Dict) -> Dict[str, List[str]]:
    block = payload.get("puzzleState")
    if not isinstance(block, dict):
        block = payload
    active = block.get("active", block.get("activePuzzles"))
    solved = block.get("solved", block.get("solvedPuzzles"))
    return {"active": _id_list(active), "solved": _id_list(solved)}


def _migrate_v0_to_v1(payload: Dict) -> Dict:
    time_data = payload.get("timeData")
    if not isinstance(time_data, dict):
        time_data = {}
    minutes = payload.get("time", time_data.get("time", DEFAULT_START_TIME))
    minutes = normalize_minutes(minutes)
    day = payload.get("day", time_data.get("dayCount", 1))

    photos = payload.get("photos")
    flags = payload.get("flags")
    upgraded = {
        "version": 1,
        "gameVersion": payload.get("gameVersion"),
        "trust": _legacy_trust(payload),
        "foundClues": _id_list(payload.get("foundClues")),
        "clueAnnotations": payload.get("clueAnnotations") or {},
        "puzzleState": _legacy_puzzles(payload),
        "photos": [p for p in photos if isinstance(p, dict)] if isinstance(photos, list) else [],
        "flags": flags if isinstance(flags, dict) else {},
        "time": minutes,
        "day": day,
        "timeOfDay": payload.get("timeOfDay") or time_of_day_for(minutes),
        "act": payload.get("act", payload.get("currentAct", 1)),
        "queuedReactions": payload.get("queuedReactions") or {},
        "savedAt": payload.get("savedAt"),
    }
    return upgraded


MIGRATIONS: Dict[int, Migration] = {
    0: _migrate_v0_to_v1,
}


def migrate_save_payload(payload: Dict, target_version: int) -> Dict:
    if not isinstance(payload, dict):
        raise SaveMigrationError("Save payload was not an object.")

    version = payload.get("version", 0)
    if version is None:
        version = 0
    if not isinstance(version, int) or isinstance(version, bool):
        raise SaveMigrationError("Save version missing or invalid.")
    if version > target_version:
        raise SaveMigrationError(
            f"Save schema {version} is newer than supported {target_version}."
        )

    current = copy.deepcopy(payload)
    while version < target_version:
        migrator = MIGRATIONS.get(version)
        if migrator is None:
            raise SaveMigrationError(
                f"No migration available for save schema {version}."
            )
        current = migrator(current)
        version = current.get("version", version + 1)
        if not isinstance(version, int):
            raise SaveMigrationError("Migration produced an invalid schema version.")

    return current
