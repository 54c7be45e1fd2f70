"""Requirement evaluation shared by puzzles, dialogue, acts and endings.

A requirement is a mapping of checks that must all hold, for example::

    {"character": "mrs_finch", "trustMin": 30, "timeOfDay": "night",
     "requiredClues": ["storm_newspaper"], "requiredPhotoType": "flickerPhoto"}

An empty requirement always passes. A key the evaluator does not know makes
the requirement fail, so malformed content stays locked.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

TRUST_TIERS = ("Suspicious", "Cautious", "Confiding", "Vulnerable")

HOUSE_FINCH = 0
HOUSE_JAKE_LILA = 1
HOUSE_ARNOLD = 2
HOUSE_ABANDONED = 3
NEIGHBOR_JAKE_LILA = 1
WELL_POSITION = (400, 300)
WELL_RADIUS = 100
ABANDONED_HOUSE_POSITION = (700, 100)


# ---------- Photo type equivalence ----------
# Capture-context rules take (position, time_of_day, nearby); photos classify with them too.
def nearby_has(nearby: Iterable[Any], kind: str, index: int) -> bool:
    for element in nearby or ():
        if getattr(element, "type", None) == kind and getattr(element, "index", None) == index:
            return True
    return False


def near_well(position: Any) -> bool:
    if position is None:
        return False
    x, y = getattr(position, "x", None), getattr(position, "y", None)
    if x is None or y is None:
        return False
    return abs(x - WELL_POSITION[0]) < WELL_RADIUS and abs(y - WELL_POSITION[1]) < WELL_RADIUS


def is_flicker_shot(position: Any, time_of_day: Optional[str], nearby: Iterable[Any]) -> bool:
    return time_of_day == "night" and nearby_has(nearby, "house", HOUSE_FINCH)


def is_shadow_shot(position: Any, time_of_day: Optional[str], nearby: Iterable[Any]) -> bool:
    return time_of_day == "night" and nearby_has(nearby, "house", HOUSE_ABANDONED)


def is_well_shot(position: Any, time_of_day: Optional[str], nearby: Iterable[Any]) -> bool:
    return time_of_day == "evening" and near_well(position)


def _from_capture(rule: Callable[[Any, Optional[str], Iterable[Any]], bool]) -> Callable[[Any], bool]:
    def check(photo: Any) -> bool:
        return rule(
            getattr(photo, "position", None),
            getattr(photo, "time_of_day", None),
            getattr(photo, "nearby", ()) or (),
        )

    return check


def _well_meeting(photo: Any) -> bool:
    return getattr(photo, "type", None) == "well_meeting"


_flicker = _from_capture(is_flicker_shot)
_shadow = _from_capture(is_shadow_shot)
_well = _from_capture(is_well_shot)

# Requests that predate explicit photo typing match on capture context instead.
PHOTO_TYPE_RULES: Mapping[str, Callable[[Any], bool]] = {
    "flickering_light": _flicker,
    "flickerPhoto": _flicker,
    "shadow": _shadow,
    "shadowPhoto": _shadow,
    "well": _well,
    "wellPhoto": _well,
    "well_meeting": _well_meeting,
    "well_meeting_photo": _well_meeting,
}


def photo_matches_type(photo: Any, requested: str) -> bool:
    if getattr(photo, "type", None) == requested:
        return True
    rule = PHOTO_TYPE_RULES.get(requested)
    return bool(rule and rule(photo))


def any_photo_matches(photos: Iterable[Any], requested: str | Sequence[str]) -> bool:
    wanted = [requested] if isinstance(requested, str) else list(requested or [])
    if not wanted:
        return False
    return any(photo_matches_type(photo, kind) for photo in photos for kind in wanted)


# ---------- Requirement checks ----------
def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _scoped_trust(requirement: Mapping[str, Any], state: Any) -> int:
    ledger = state.trust
    character = requirement.get("character")
    if isinstance(character, str) and character:
        return ledger.get_level(character)
    return ledger.global_trust()


def _check_trust_min(value: Any, requirement: Mapping[str, Any], state: Any) -> bool:
    return _scoped_trust(requirement, state) >= int(value)


def _check_trust_max(value: Any, requirement: Mapping[str, Any], state: Any) -> bool:
    return _scoped_trust(requirement, state) <= int(value)


def _check_tier(value: Any, requirement: Mapping[str, Any], state: Any) -> bool:
    character = requirement.get("character")
    if not isinstance(character, str) or not character:
        logger.debug("Tier requirement %r has no character scope.", value)
        return False
    return state.trust.is_at_tier_or_higher(character, str(value))


def _check_time_of_day(value: Any, requirement: Mapping[str, Any], state: Any) -> bool:
    return state.clock.time_of_day in _as_list(value)


def _check_required_clues(value: Any, requirement: Mapping[str, Any], state: Any) -> bool:
    return state.clues.has_all(_as_list(value))


def _check_photo_type(value: Any, requirement: Mapping[str, Any], state: Any) -> bool:
    return state.photos.check_photo_requirement(value)


def _check_previous_node(value: Any, requirement: Mapping[str, Any], state: Any) -> bool:
    return getattr(state, "previous_node", None) == value


def _check_flags(value: Any, requirement: Mapping[str, Any], state: Any) -> bool:
    if not isinstance(value, Mapping):
        return False
    flags = state.flags
    return all(flags.get(flag) == expected for flag, expected in value.items())


def _check_act_min(value: Any, requirement: Mapping[str, Any], state: Any) -> bool:
    return getattr(state, "act", 1) >= int(value)


def _check_min_clues(value: Any, requirement: Mapping[str, Any], state: Any) -> bool:
    return len(state.clues) >= int(value)


def _scope_only(value: Any, requirement: Mapping[str, Any], state: Any) -> bool:
    return True


RequirementCheck = Callable[[Any, Mapping[str, Any], Any], bool]

REQUIREMENT_CHECKS: Dict[str, RequirementCheck] = {
    "character": _scope_only,
    "trustMin": _check_trust_min,
    "minTrust": _check_trust_min,
    "trustMax": _check_trust_max,
    "tier": _check_tier,
    "timeOfDay": _check_time_of_day,
    "requiredClues": _check_required_clues,
    "requiresClue": _check_required_clues,
    "requiredPhotoType": _check_photo_type,
    "requiresPhoto": _check_photo_type,
    "previousNode": _check_previous_node,
    "flags": _check_flags,
    "variables": _check_flags,
    "actMin": _check_act_min,
    "minClues": _check_min_clues,
}


def unknown_requirement_keys(requirement: Any) -> List[str]:
    if not isinstance(requirement, Mapping):
        return []
    return [key for key in requirement if key not in REQUIREMENT_CHECKS]


def meets_requirement(requirement: Any, state: Any) -> bool:
    if not requirement:
        return True
    if isinstance(requirement, list):
        return all(meets_requirement(entry, state) for entry in requirement)
    if not isinstance(requirement, Mapping):
        logger.debug("Requirement %r is not a mapping; treating as unmet.", requirement)
        return False

    unknown = unknown_requirement_keys(requirement)
    if unknown:
        logger.debug("Unrecognised requirement keys %s; treating as unmet.", unknown)
        return False

    for key, value in requirement.items():
        try:
            passed = REQUIREMENT_CHECKS[key](value, requirement, state)
        except (TypeError, ValueError) as exc:
            logger.debug("Requirement %s=%r could not be evaluated: %s", key, value, exc)
            return False
        if not passed:
            return False
    return True


class ConditionEvaluator:
    """Evaluate requirement mappings against a game state."""

    def __init__(self, state: Optional[Any] = None) -> None:
        self.state = state

    def evaluate(self, requirement: Any, state: Optional[Any] = None) -> bool:
        target = state if state is not None else self.state
        if target is None:
            raise ValueError("ConditionEvaluator needs a state to evaluate against.")
        return meets_requirement(requirement, target)
