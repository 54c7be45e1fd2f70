"""Reading the player's final theory for ending selection."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict

SUPERNATURAL_TERMS = (
    "shadow",
    "shadows",
    "ghost",
    "spirit",
    "supernatural",
    "entity",
    "entities",
    "paranormal",
    "vanished",
    "disappeared",
    "watcher",
    "watchers",
    "flowing",
    "dark figure",
)
SUPERNATURAL_MIN_MENTIONS = 3

CONTRADICTION_PHRASES = (
    "but this contradicts",
    "however",
    "on the other hand",
    "this doesn't make sense",
    "inconsistent",
    "conflicting",
    "doesn't add up",
    "confused",
    "unsure",
    "puzzling",
)

RED_HERRINGS = (
    "Jake and Lila's financial troubles",
    "Mrs. Finch's medication",
    "Old town legends",
)

_TERM_PATTERNS = [re.compile(rf"\b{re.escape(term)}\b", re.IGNORECASE) for term in SUPERNATURAL_TERMS]


@dataclass(frozen=True)
class TheorySignals:
    supernatural_focus: bool = False
    contradictory_notes: bool = False
    red_herrings: bool = False

    def as_dict(self) -> Dict[str, bool]:
        return {
            "supernaturalFocus": self.supernatural_focus,
            "contradictoryNotes": self.contradictory_notes,
            "redHerrings": self.red_herrings,
        }


def count_supernatural_mentions(text: str) -> int:
    return sum(len(pattern.findall(text)) for pattern in _TERM_PATTERNS)


def analyze_theory(text: str | None) -> TheorySignals:
    if not text:
        return TheorySignals()
    lowered = text.lower()
    return TheorySignals(
        supernatural_focus=count_supernatural_mentions(text) >= SUPERNATURAL_MIN_MENTIONS,
        contradictory_notes=any(phrase in lowered for phrase in CONTRADICTION_PHRASES),
        red_herrings=any(herring.lower() in lowered for herring in RED_HERRINGS),
    )
