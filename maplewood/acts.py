"""Narrative act progression and the time-of-day gates it controls."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .settings import DEFAULT_ACT_THRESHOLDS

logger = logging.getLogger(__name__)

FIRST_ACT = 1
FINAL_ACT = 4

ACT_TITLES: Mapping[int, str] = {
    1: "Act 1: Arrival",
    2: "Act 2: Cracks in the Surface",
    3: "Act 3: Echoes in the Dark",
    4: "Act 4: The Decision",
}

ACT_MESSAGES: Mapping[int, str] = {
    2: (
        "As you gain the neighbors' trust, new aspects of the mystery begin to emerge. "
        "The evening hours are now open for exploration."
    ),
    3: (
        "You've uncovered enough to access deeper secrets. "
        "The night hours are now open for exploration."
    ),
    4: (
        "You know enough about Iris's disappearance to make a choice. "
        "How will you resolve this mystery?"
    ),
}

REACHABLE_TIMES: Mapping[int, Tuple[str, ...]] = {
    1: ("morning", "afternoon"),
    2: ("morning", "afternoon", "evening"),
    3: ("morning", "afternoon", "evening", "night"),
    4: ("morning", "afternoon", "evening", "night"),
}


class NarrativeActController:
    """Advance the story act as global trust crosses each act's threshold.

    ``clue_minimums`` optionally adds a discovered-clue floor per act. The
    act never moves backwards.
    """

    def __init__(
        self,
        state: Any,
        thresholds: Optional[Mapping[int, int]] = None,
        *,
        clue_minimums: Optional[Mapping[int, int]] = None,
        notify: Optional[Callable[[str], None]] = None,
        act: int = FIRST_ACT,
    ) -> None:
        self.state = state
        self.thresholds: Dict[int, int] = dict(thresholds or DEFAULT_ACT_THRESHOLDS)
        self.clue_minimums: Dict[int, int] = dict(clue_minimums or {})
        self.notify = notify
        self.act = max(FIRST_ACT, min(FINAL_ACT, int(act)))

    def _ready_for(self, act: int) -> bool:
        if act not in self.thresholds:
            return False
        if self.state.trust.global_trust() < self.thresholds[act]:
            return False
        return len(self.state.clues) >= self.clue_minimums.get(act, 0)

    def check_progression(self) -> List[int]:
        """Advance as far as the thresholds allow; return the acts entered."""
        entered: List[int] = []
        while self.act < FINAL_ACT and self._ready_for(self.act + 1):
            self.act += 1
            entered.append(self.act)
            logger.info("Advanced to %s", ACT_TITLES[self.act])
            if self.notify:
                self.notify(f"{ACT_TITLES[self.act]}\n\n{ACT_MESSAGES[self.act]}")
        return entered

    def reachable_times(self) -> Tuple[str, ...]:
        return REACHABLE_TIMES[self.act]

    def is_time_reachable(self, time_of_day: str) -> bool:
        return time_of_day in REACHABLE_TIMES[self.act]

    def can_conclude(self) -> bool:
        return self.act >= FINAL_ACT

    def restore(self, act: Any) -> None:
        try:
            value = int(act)
        except (TypeError, ValueError):
            value = FIRST_ACT
        self.act = max(FIRST_ACT, min(FINAL_ACT, value))

    @property
    def title(self) -> str:
        return ACT_TITLES[self.act]
