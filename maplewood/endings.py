"""Ending selection."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .theory import TheorySignals, analyze_theory

logger = logging.getLogger(__name__)

THEORY_KEYS = frozenset({"supernaturalFocus", "contradictoryNotes", "redHerrings"})
ENDING_REQUIREMENT_KEYS = frozenset(
    {
        "minTrust",
        "maxTrust",
        "maxTrustAverage",
        "trustRequirements",
        "minClues",
        "maxClues",
        "cluePercentage",
        "minCluePercentage",
        "maxCluePercentage",
        "requiredClues",
        "keyClues",
        "missingKeyClues",
        "requiredPhotoTypes",
        "keyPhotos",
        "minPhotos",
        "flags",
        "theory",
        *THEORY_KEYS,
    }
)


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)


def _str_tuple(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(v) for v in value)


@dataclass(frozen=True)
class EndingRequirements:
    min_trust: Optional[int] = None
    max_trust: Optional[int] = None
    character_min_trust: Dict[str, int] = field(default_factory=dict)
    character_max_trust: Dict[str, int] = field(default_factory=dict)
    min_clues: Optional[int] = None
    max_clues: Optional[int] = None
    min_clue_percentage: Optional[int] = None
    max_clue_percentage: Optional[int] = None
    required_clues: Tuple[str, ...] = ()
    missing_any_clues: Tuple[str, ...] = ()
    required_photo_types: Tuple[str, ...] = ()
    min_photos: Optional[int] = None
    max_trust_average: Optional[int] = None
    flags: Dict[str, Any] = field(default_factory=dict)
    theory: Dict[str, bool] = field(default_factory=dict)
    unknown_keys: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "EndingRequirements":
        data = data or {}
        char_min: Dict[str, int] = {}
        char_max: Dict[str, int] = {}
        for character, bound in (data.get("trustRequirements") or {}).items():
            if isinstance(bound, Mapping):
                if bound.get("min") is not None:
                    char_min[character] = int(bound["min"])
                if bound.get("max") is not None:
                    char_max[character] = int(bound["max"])
            else:
                char_min[character] = int(bound)

        theory = dict(data.get("theory") or {})
        for key in THEORY_KEYS:
            if key in data:
                theory[key] = bool(data[key])

        return cls(
            min_trust=_optional_int(data.get("minTrust")),
            max_trust=_optional_int(data.get("maxTrust")),
            character_min_trust=char_min,
            character_max_trust=char_max,
            min_clues=_optional_int(data.get("minClues")),
            max_clues=_optional_int(data.get("maxClues")),
            min_clue_percentage=_optional_int(data.get("cluePercentage", data.get("minCluePercentage"))),
            max_clue_percentage=_optional_int(data.get("maxCluePercentage")),
            required_clues=_str_tuple(data.get("requiredClues", data.get("keyClues"))),
            missing_any_clues=_str_tuple(data.get("missingKeyClues")),
            required_photo_types=_str_tuple(data.get("requiredPhotoTypes", data.get("keyPhotos"))),
            min_photos=_optional_int(data.get("minPhotos")),
            max_trust_average=_optional_int(data.get("maxTrustAverage")),
            flags=dict(data.get("flags") or {}),
            theory=theory,
            unknown_keys=tuple(sorted(str(key) for key in data if key not in ENDING_REQUIREMENT_KEYS)),
        )

    @property
    def required_clue_count(self) -> int:
        return max(self.min_clues or 0, len(self.required_clues))

    @property
    def required_trust(self) -> int:
        return max([self.min_trust or 0, *self.character_min_trust.values()])


@dataclass(frozen=True)
class Ending:
    id: str
    name: str
    description: str = ""
    tone: str = ""
    requirements: EndingRequirements = field(default_factory=EndingRequirements)
    epilogue: Dict[str, str] = field(default_factory=dict)
    default: bool = False

    @classmethod
    def from_dict(cls, ending_id: str, data: Mapping[str, Any]) -> "Ending":
        return cls(
            id=ending_id,
            name=str(data.get("name") or ending_id),
            description=str(data.get("description") or ""),
            tone=str(data.get("tone") or ""),
            requirements=EndingRequirements.from_dict(data.get("requirements")),
            epilogue={str(k): str(v) for k, v in (data.get("epilogue") or {}).items()},
            default=bool(data.get("default", False)),
        )


def clue_percentage(found: int, total: int) -> int:
    if total <= 0:
        return 0
    return (found * 100) // total


class EndingEvaluator:
    """Pick the single best ending for a run.

    Qualifying endings rank by required clue count, then required trust,
    then declaration order. With nothing qualifying, the default ending wins.
    """

    def __init__(self, endings: Iterable[Ending], total_clues: int = 0) -> None:
        self.endings: List[Ending] = list(endings)
        defaults = [ending for ending in self.endings if ending.default]
        if len(defaults) != 1:
            raise ValueError(
                f"Exactly one default ending is required, found {len(defaults)}."
            )
        self.default_ending = defaults[0]
        self.total_clues = max(int(total_clues), 0)

    def qualifies(self, ending: Ending, state: Any, signals: Optional[TheorySignals] = None) -> bool:
        req = ending.requirements
        if req.unknown_keys:
            logger.debug(
                "Ending %s has unrecognised requirement keys %s; treating as unmet.",
                ending.id,
                list(req.unknown_keys),
            )
            return False
        ledger = state.trust
        clue_count = len(state.clues)
        trust = ledger.global_trust()
        if signals is None:
            signals = analyze_theory(getattr(state, "final_theory", ""))

        if req.min_trust is not None and trust < req.min_trust:
            return False
        if req.max_trust is not None and trust > req.max_trust:
            return False
        if req.max_trust_average is not None and trust > req.max_trust_average:
            return False
        if any(ledger.get_level(cid) < level for cid, level in req.character_min_trust.items()):
            return False
        if any(ledger.get_level(cid) > level for cid, level in req.character_max_trust.items()):
            return False

        if req.min_clues is not None and clue_count < req.min_clues:
            return False
        if req.max_clues is not None and clue_count > req.max_clues:
            return False
        percentage = clue_percentage(clue_count, self.total_clues)
        if req.min_clue_percentage is not None and percentage < req.min_clue_percentage:
            return False
        if req.max_clue_percentage is not None and percentage > req.max_clue_percentage:
            return False
        if not state.clues.has_all(req.required_clues):
            return False
        if req.missing_any_clues and state.clues.has_all(req.missing_any_clues):
            return False

        if req.min_photos is not None and len(state.photos) < req.min_photos:
            return False
        if any(not state.photos.check_photo_requirement(kind) for kind in req.required_photo_types):
            return False

        if any(state.flags.get(flag) != value for flag, value in req.flags.items()):
            return False

        observed = signals.as_dict()
        for key, expected in req.theory.items():
            if key not in observed:
                logger.debug("Ending %s uses unknown theory signal %r.", ending.id, key)
                return False
            if observed[key] != expected:
                return False
        return True

    def ranked(self, state: Any) -> List[Ending]:
        signals = analyze_theory(getattr(state, "final_theory", ""))
        matches = [
            (index, ending)
            for index, ending in enumerate(self.endings)
            if not ending.default and self.qualifies(ending, state, signals)
        ]
        matches.sort(
            key=lambda item: (
                -item[1].requirements.required_clue_count,
                -item[1].requirements.required_trust,
                item[0],
            )
        )
        return [ending for _, ending in matches]

    def evaluate(self, state: Any) -> Ending:
        ranked = self.ranked(state)
        ending = ranked[0] if ranked else self.default_ending
        logger.info("Determined ending: %s", ending.id)
        return ending

    def epilogue_for(self, ending: Ending, character_ids: Sequence[str]) -> List[Tuple[str, str]]:
        return [(cid, ending.epilogue[cid]) for cid in character_ids if cid in ending.epilogue]
