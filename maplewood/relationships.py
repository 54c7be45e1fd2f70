"""Per-character trust tracking for Maplewood Lane."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .conditions import TRUST_TIERS
from .settings import DEFAULT_TRUST_THRESHOLDS

logger = logging.getLogger(__name__)

Thresholds = Tuple[int, int, int, int]
TrustListener = Callable[["TrustChange"], None]

RECENT_CHANGE_WINDOW = 5


def tier_for_level(level: int, thresholds: Thresholds = DEFAULT_TRUST_THRESHOLDS) -> str:
    """Map a trust level to its tier; the first threshold is only the nominal floor."""
    for index in range(len(TRUST_TIERS) - 1, 0, -1):
        if level >= thresholds[index]:
            return TRUST_TIERS[index]
    return TRUST_TIERS[0]


def tier_rank(tier: str) -> int:
    lowered = str(tier).lower()
    for index, name in enumerate(TRUST_TIERS):
        if name.lower() == lowered:
            return index
    return -1


def round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


@dataclass(frozen=True)
class Personality:
    forgiveness: float = 0.5
    memory: float = 0.5
    emotionality: float = 0.5
    description: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, object] | None) -> Optional["Personality"]:
        if not isinstance(data, Mapping):
            return None

        def _unit(key: str) -> float:
            try:
                value = float(data.get(key, 0.5))  # type: ignore[arg-type]
            except (TypeError, ValueError):
                value = 0.5
            return max(0.0, min(1.0, value))

        return cls(
            forgiveness=_unit("forgiveness"),
            memory=_unit("memory"),
            emotionality=_unit("emotionality"),
            description=str(data.get("description") or ""),
        )


@dataclass
class Character:
    id: str
    name: str = ""
    thresholds: Thresholds = DEFAULT_TRUST_THRESHOLDS
    personality: Optional[Personality] = None

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.id


@dataclass(frozen=True)
class TrustChange:
    character_id: str
    previous_level: int
    new_level: int
    previous_tier: str
    new_tier: str
    applied_delta: int
    reason: str = ""

    @property
    def tier_changed(self) -> bool:
        return self.previous_tier != self.new_tier


@dataclass
class _CharacterRecord:
    character: Character
    level: int = 0
    history: List[TrustChange] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)


class TrustLedger:
    """Trust levels keyed by character id.

    Levels are unbounded in both directions. Unknown characters read as level 0
    in the lowest tier and are registered with default thresholds the first
    time they are adjusted.
    """

    def __init__(
        self,
        characters: Iterable[Character] = (),
        *,
        notify: Optional[Callable[[str], None]] = None,
        notify_threshold: int = 5,
    ) -> None:
        self._records: Dict[str, _CharacterRecord] = {}
        self._listeners: List[TrustListener] = []
        self.notify = notify
        self.notify_threshold = notify_threshold
        for character in characters:
            self.register(character)

    # ---------- registry ----------
    def register(self, character: Character, level: int = 0) -> None:
        record = self._records.get(character.id)
        if record is None:
            self._records[character.id] = _CharacterRecord(character, int(level))
        else:
            record.character = character

    def character(self, character_id: str) -> Optional[Character]:
        record = self._records.get(character_id)
        return record.character if record else None

    def character_ids(self) -> List[str]:
        return list(self._records)

    def display_name(self, character_id: str) -> str:
        character = self.character(character_id)
        return character.name if character else character_id

    def add_listener(self, callback: TrustListener) -> None:
        self._listeners.append(callback)

    # ---------- reads ----------
    def get_level(self, character_id: str) -> int:
        record = self._records.get(character_id)
        return record.level if record else 0

    def get_tier(self, character_id: str) -> str:
        record = self._records.get(character_id)
        if record is None:
            return TRUST_TIERS[0]
        return tier_for_level(record.level, record.character.thresholds)

    def is_at_tier_or_higher(self, character_id: str, tier: str) -> bool:
        wanted = tier_rank(tier)
        if wanted < 0:
            logger.debug("Unknown trust tier %r requested for %s.", tier, character_id)
            return False
        return tier_rank(self.get_tier(character_id)) >= wanted

    def global_trust(self) -> int:
        if not self._records:
            return 0
        total = sum(record.level for record in self._records.values())
        return round_half_away(total / len(self._records))

    def levels(self) -> Dict[str, int]:
        return {cid: record.level for cid, record in self._records.items()}

    def history(self, character_id: str, count: Optional[int] = None) -> List[TrustChange]:
        record = self._records.get(character_id)
        if record is None:
            return []
        if count is None:
            return list(record.history)
        return record.history[-count:] if count > 0 else []

    # ---------- writes ----------
    def adjust(self, character_id: str, delta: int, reason: str = "") -> TrustChange:
        record = self._records.get(character_id)
        if record is None:
            logger.debug("Registering unknown character %s on first trust change.", character_id)
            record = _CharacterRecord(Character(character_id))
            self._records[character_id] = record

        applied = self._apply_personality(record, delta)
        previous_level = record.level
        previous_tier = tier_for_level(previous_level, record.character.thresholds)
        record.level = previous_level + applied
        change = TrustChange(
            character_id=character_id,
            previous_level=previous_level,
            new_level=record.level,
            previous_tier=previous_tier,
            new_tier=tier_for_level(record.level, record.character.thresholds),
            applied_delta=applied,
            reason=reason,
        )
        record.history.append(change)
        logger.debug(
            "Trust %s %+d (%s): %d -> %d", character_id, applied, reason or "-",
            previous_level, record.level,
        )

        if self.notify and (abs(applied) >= self.notify_threshold or change.tier_changed):
            message = f"{record.character.name}: {applied:+d} Trust"
            if change.tier_changed:
                message += f" (Now: {change.new_tier})"
            self.notify(message)

        for listener in list(self._listeners):
            listener(change)
        return change

    def set_level(self, character_id: str, level: int) -> None:
        """Restore a level directly, bypassing modifiers, history and listeners."""
        record = self._records.get(character_id)
        if record is None:
            self._records[character_id] = _CharacterRecord(Character(character_id), int(level))
        else:
            record.level = int(level)

    def restore(self, levels: Mapping[str, object]) -> None:
        """Replace every level from saved data; unreadable entries read as 0."""
        for record in self._records.values():
            record.level = 0
            record.history = []
        for character_id, level in levels.items():
            try:
                value = int(level)  # type: ignore[arg-type]
            except (TypeError, ValueError):
                logger.warning("Ignoring unreadable trust level %r for %s.", level, character_id)
                continue
            self.set_level(str(character_id), value)

    def add_note(self, character_id: str, note: str) -> bool:
        record = self._records.get(character_id)
        if record is None or not note:
            return False
        record.notes.append(note)
        return True

    def notes(self, character_id: str) -> List[str]:
        record = self._records.get(character_id)
        return list(record.notes) if record else []

    def _apply_personality(self, record: _CharacterRecord, delta: int) -> int:
        personality = record.character.personality
        if personality is None:
            return int(delta)
        modified = float(delta)
        if delta < 0:
            modified = delta * (2 - personality.forgiveness)
        elif delta > 0:
            recent = record.history[-RECENT_CHANGE_WINDOW:]
            negatives = sum(1 for change in recent if change.applied_delta < 0)
            if negatives:
                modified = delta * (1 - personality.memory * negatives / 10)
        modified *= 1 + (personality.emotionality - 0.5) / 2
        return round_half_away(modified)
