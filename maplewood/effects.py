"""Effect vocabulary shared by puzzles and dialogue."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

EFFECT_KEYS = frozenset(
    {
        "trust",
        "character",
        "unlockClue",
        "setFlag",
        "setVariable",
        "notification",
        "triggerDialogue",
        "unlockArea",
        "sound",
    }
)


@dataclass
class EffectResult:
    trust_changes: List[Any] = field(default_factory=list)
    new_clues: List[str] = field(default_factory=list)
    flags: List[str] = field(default_factory=list)
    dialogue: Optional[Tuple[str, Optional[str]]] = None


def _clue_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, (list, tuple)):
        return [v for v in value if isinstance(v, str) and v]
    return []


class EffectApplier:
    """Apply an effect mapping to a game state.

    Effects run in a fixed order: trust, clue unlocks, flags, notification,
    dialogue trigger. A trust effect without a ``character`` key falls back to
    the character the effect belongs to, or to every known character when the
    effect is not tied to anyone.
    """

    def __init__(self, state: Any) -> None:
        self.state = state

    def apply(
        self,
        effects: Optional[Mapping[str, Any]],
        *,
        character_id: Optional[str] = None,
        reason: str = "",
    ) -> EffectResult:
        result = EffectResult()
        if not effects:
            return result
        if not isinstance(effects, Mapping):
            logger.warning("Ignoring malformed effect block %r.", effects)
            return result

        unknown = sorted(set(effects) - EFFECT_KEYS)
        if unknown:
            logger.warning("Ignoring unknown effect keys %s.", unknown)

        state = self.state
        delta = effects.get("trust")
        if delta:
            try:
                amount = int(delta)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-integer trust effect %r.", delta)
                amount = 0
            if amount:
                target = effects.get("character") or character_id
                targets = [target] if target else state.trust.character_ids()
                for cid in targets:
                    result.trust_changes.append(state.trust.adjust(cid, amount, reason))

        for clue_id in _clue_list(effects.get("unlockClue")):
            if state.discover_clue(clue_id):
                result.new_clues.append(clue_id)

        for key in ("setFlag", "setVariable"):
            assignments = effects.get(key)
            if isinstance(assignments, Mapping):
                for flag, value in assignments.items():
                    state.flags[str(flag)] = value
                    result.flags.append(str(flag))

        notification = effects.get("notification")
        if isinstance(notification, str) and notification:
            state.events.notify(notification)

        sound = effects.get("sound")
        if isinstance(sound, str) and sound:
            state.events.play(sound)

        trigger = effects.get("triggerDialogue")
        if isinstance(trigger, Mapping) and trigger.get("character"):
            node_id = trigger.get("dialogueId") or trigger.get("node")
            result.dialogue = (str(trigger["character"]), node_id)
            state.pending_dialogue = result.dialogue
            state.events.trigger_dialogue(*result.dialogue)

        if effects.get("unlockArea"):
            logger.debug("Area unlock %r has no handler yet.", effects.get("unlockArea"))

        return result
