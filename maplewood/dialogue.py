"""Dialogue trees, trust variants and queued reactions."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from .conditions import meets_requirement
from .relationships import TrustChange

logger = logging.getLogger(__name__)

END_SENTINELS = frozenset({"exit", "end"})
_VARIABLE_RE = re.compile(r"\{(\w+)\}")
_SCOPED_KEYS = ("trustMin", "minTrust", "trustMax", "tier")


@dataclass(frozen=True)
class DialogueOption:
    text: str
    next: Optional[str] = None
    requirement: Dict[str, Any] = field(default_factory=dict)
    effects: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DialogueOption":
        requirement = dict(data.get("requirement") or data.get("requirements") or {})
        for key in ("minTrust", "trustMin", "requiresClue", "requiresPhoto", "previousNode"):
            if key in data:
                requirement[key] = data[key]

        effects = dict(data.get("effects") or {})
        for key in ("setFlag", "setVariable"):
            if isinstance(effects.get(key), Mapping):
                effects[key] = dict(effects[key])
        if "trustChange" in data:
            effects.setdefault("trust", data["trustChange"])
        if "givesClue" in data:
            effects.setdefault("unlockClue", data["givesClue"])
        flag = data.get("setFlag")
        if isinstance(flag, str) and flag:
            name, _, value = flag.partition("=")
            effects.setdefault("setFlag", {})[name.strip()] = value.strip() if value else True
        elif isinstance(flag, Mapping):
            effects.setdefault("setFlag", {}).update(flag)

        target = data.get("next")
        if data.get("end"):
            target = "exit"
        return cls(
            text=str(data.get("text") or ""),
            next=target if isinstance(target, str) and target else None,
            requirement=requirement,
            effects=effects,
        )


@dataclass(frozen=True)
class DialogueVariant:
    node_id: str
    trust_tier: Optional[str] = None
    min_trust: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DialogueVariant":
        node_id = data.get("nodeId")
        if not isinstance(node_id, str) or not node_id:
            raise ValueError("Dialogue variants need a 'nodeId'.")
        min_trust = data.get("minTrust")
        tier = data.get("trustTier")
        return cls(
            node_id=node_id,
            trust_tier=tier if isinstance(tier, str) and tier else None,
            min_trust=int(min_trust) if min_trust is not None else None,
        )


@dataclass(frozen=True)
class DialogueNode:
    id: str
    lines: Tuple[str, ...] = ()
    options: Tuple[DialogueOption, ...] = ()
    effects: Dict[str, Any] = field(default_factory=dict)
    variants: Tuple[DialogueVariant, ...] = ()
    mood: Optional[str] = None

    @classmethod
    def from_dict(cls, node_id: str, data: Mapping[str, Any]) -> "DialogueNode":
        lines = data.get("lines", data.get("text", ()))
        if isinstance(lines, str):
            lines = (lines,)
        options = data.get("choices", data.get("options")) or ()
        mood = data.get("mood")
        return cls(
            id=node_id,
            lines=tuple(str(line) for line in lines),
            options=tuple(DialogueOption.from_dict(o) for o in options if isinstance(o, Mapping)),
            effects=dict(data.get("effects") or {}),
            variants=tuple(
                DialogueVariant.from_dict(v) for v in data.get("variants") or () if isinstance(v, Mapping)
            ),
            mood=mood if isinstance(mood, str) else None,
        )


@dataclass
class CharacterDialogue:
    character_id: str
    name: str
    nodes: Dict[str, DialogueNode]
    default_node: str = "default"
    reactions: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, character_id: str, data: Mapping[str, Any]) -> "CharacterDialogue":
        raw_nodes = data.get("nodes") or {}
        if isinstance(raw_nodes, list):
            raw_nodes = {n.get("id"): n for n in raw_nodes if isinstance(n, Mapping)}
        nodes = {
            nid: DialogueNode.from_dict(nid, body)
            for nid, body in raw_nodes.items()
            if isinstance(nid, str) and isinstance(body, Mapping)
        }
        default = data.get("defaultNode") or ("default" if "default" in nodes else next(iter(nodes), ""))
        return cls(
            character_id=character_id,
            name=str(data.get("name") or character_id),
            nodes=nodes,
            default_node=default,
            reactions={str(k): str(v) for k, v in (data.get("trustReactions") or {}).items()},
        )


@dataclass(frozen=True)
class ResolvedNode:
    character_id: str
    node: DialogueNode
    lines: Tuple[str, ...]
    options: Tuple[DialogueOption, ...]

    @property
    def node_id(self) -> str:
        return self.node.id


@dataclass
class _Session:
    character_id: str
    node_id: str
    resolved: ResolvedNode


class DialogueResolver:
    """Resolve and run conversations against a game state.

    ``resolve`` is side-effect free. ``engage``, ``enter`` and ``choose`` drive
    a conversation and apply effects through ``effects`` (an ``EffectApplier``).
    Options whose requirement fails are left out of the resolved node. Trust
    requirements without an explicit ``character`` read the speaker's trust.
    """

    def __init__(
        self,
        dialogues: Mapping[str, CharacterDialogue],
        state: Any,
        effects: Any,
        *,
        reaction_threshold: int = 5,
    ) -> None:
        self.dialogues = dict(dialogues)
        self.state = state
        self.effects = effects
        self.reaction_threshold = reaction_threshold
        self.queued_reactions: Dict[str, str] = {}
        self._session: Optional[_Session] = None

    @property
    def active(self) -> Optional[ResolvedNode]:
        return self._session.resolved if self._session else None

    # ---------- resolution ----------
    def select_variant(self, character_id: str, variants: Tuple[DialogueVariant, ...]) -> DialogueVariant:
        ledger = self.state.trust
        tier = ledger.get_tier(character_id).lower()
        for variant in variants:
            if variant.trust_tier and variant.trust_tier.lower() == tier:
                return variant
        level = ledger.get_level(character_id)
        eligible = [v for v in variants if v.min_trust is None or v.min_trust <= level]
        if eligible:
            # max() keeps the first of equal candidates
            return max(eligible, key=lambda v: v.min_trust or 0)
        return variants[0]

    def resolve(self, character_id: str, node_id: Optional[str] = None) -> Optional[ResolvedNode]:
        dialogue = self.dialogues.get(character_id)
        if dialogue is None:
            logger.warning("No dialogue defined for character %r.", character_id)
            return None
        requested = node_id or dialogue.default_node
        node = dialogue.nodes.get(requested)
        if node is None:
            logger.warning("Unknown dialogue node %r for %s; using default.", requested, character_id)
            node = dialogue.nodes.get(dialogue.default_node)
            if node is None:
                return None

        if node.variants:
            variant = self.select_variant(character_id, node.variants)
            target = dialogue.nodes.get(variant.node_id)
            if target is None:
                logger.warning("Variant node %r for %s does not exist.", variant.node_id, character_id)
            else:
                node = target

        options = tuple(
            replace(option, text=self._substitute(option.text, character_id))
            for option in node.options
            if meets_requirement(self._scoped(option.requirement, character_id), self.state)
        )
        lines = tuple(self._substitute(line, character_id) for line in node.lines)
        return ResolvedNode(character_id, node, lines, options)

    def _scoped(self, requirement: Mapping[str, Any], character_id: str) -> Mapping[str, Any]:
        if requirement and "character" not in requirement and any(k in requirement for k in _SCOPED_KEYS):
            return {**requirement, "character": character_id}
        return requirement

    def _substitute(self, text: str, character_id: str) -> str:
        values = {
            "trust": str(self.state.trust.get_level(character_id)),
            "timeOfDay": self.state.clock.time_of_day,
        }

        def _value(match: re.Match[str]) -> str:
            key = match.group(1)
            if key in values:
                return values[key]
            if key in self.state.flags:
                return str(self.state.flags[key])
            return match.group(0)

        return _VARIABLE_RE.sub(_value, text)

    # ---------- conversation flow ----------
    def engage(self, character_id: str) -> Optional[ResolvedNode]:
        """Start talking to a character; a queued reaction replaces the greeting once."""
        node_id = self.queued_reactions.pop(character_id, None)
        if node_id:
            logger.info("Playing queued reaction %s for %s.", node_id, character_id)
        self._session = None
        return self._visit(character_id, node_id)

    def enter(self, character_id: str, node_id: Optional[str] = None) -> Optional[ResolvedNode]:
        session = self._session
        if session and session.character_id == character_id and node_id in (None, session.node_id):
            # same visit, no effects
            session.resolved = self.resolve(character_id, session.node_id) or session.resolved
            return session.resolved
        return self._visit(character_id, node_id)

    def choose(self, index: int) -> Optional[ResolvedNode]:
        session = self._session
        if session is None:
            raise RuntimeError("No conversation in progress.")
        options = session.resolved.options
        if not 0 <= index < len(options):
            raise IndexError(f"Option {index} is not available (have {len(options)}).")
        option = options[index]
        self.effects.apply(
            option.effects,
            character_id=session.character_id,
            reason=f"dialogue:{session.node_id}",
        )
        if option.next is None or option.next in END_SENTINELS:
            self.end()
            return None
        return self._visit(session.character_id, option.next)

    def end(self) -> None:
        self._session = None

    def _visit(self, character_id: str, node_id: Optional[str]) -> Optional[ResolvedNode]:
        session = self._session
        previous = session.node_id if session and session.character_id == character_id else None
        self.state.previous_node = previous
        resolved = self.resolve(character_id, node_id)
        if resolved is None:
            self._session = None
            return None
        self._session = _Session(character_id, resolved.node_id, resolved)
        if resolved.node.effects:
            self.effects.apply(
                resolved.node.effects,
                character_id=character_id,
                reason=f"dialogue:{resolved.node_id}",
            )
            # effects can change trust, clues or flags the options depend on
            self._session.resolved = self.resolve(character_id, resolved.node_id) or resolved
        return self._session.resolved

    # ---------- reactions ----------
    def queue_reaction(self, change: TrustChange) -> Optional[str]:
        if abs(change.new_level - change.previous_level) < self.reaction_threshold:
            return None
        dialogue = self.dialogues.get(change.character_id)
        if dialogue is None or not dialogue.reactions:
            return None
        if change.tier_changed:
            reaction = f"tier_{change.new_tier.lower()}"
        elif change.new_level > change.previous_level:
            reaction = "trust_gained"
        else:
            reaction = "trust_lost"
        node_id = dialogue.reactions.get(reaction)
        if node_id is None:
            return None
        self.queued_reactions[change.character_id] = node_id
        logger.debug("Queued %s reaction for %s.", reaction, change.character_id)
        return reaction

    def restore_reactions(self, queued: Mapping[str, str] | None) -> None:
        self.queued_reactions = {
            str(cid): str(node) for cid, node in (queued or {}).items() if cid in self.dialogues
        }
