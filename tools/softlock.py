"""Soft-lock analysis helpers for Maplewood Lane validation."""

from __future__ import annotations

from collections import deque
from typing import Any, Dict, Iterable, List, Mapping, Set, Tuple

from maplewood.dialogue import END_SENTINELS
from maplewood.world_schema import entries, path

CLUE_REQUIREMENT_KEYS = ("requiredClues", "requiresClue")


def _clue_ids(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, (list, tuple)):
        return [v for v in value if isinstance(v, str) and v]
    return []


def _effect_clues(effects: Any) -> List[str]:
    if not isinstance(effects, Mapping):
        return []
    return _clue_ids(effects.get("unlockClue"))


def _requirement_clues(requirement: Any) -> List[str]:
    if isinstance(requirement, list):
        return [clue for entry in requirement for clue in _requirement_clues(entry)]
    if not isinstance(requirement, Mapping):
        return []
    return [clue for key in CLUE_REQUIREMENT_KEYS for clue in _clue_ids(requirement.get(key))]


def _dialogue_nodes(body: Any) -> Dict[str, Mapping[str, Any]]:
    if not isinstance(body, Mapping):
        return {}
    raw = body.get("nodes")
    if isinstance(raw, list):
        return {n["id"]: n for n in raw if isinstance(n, Mapping) and isinstance(n.get("id"), str)}
    if isinstance(raw, Mapping):
        return {k: v for k, v in raw.items() if isinstance(v, Mapping)}
    return {}


def _options(node: Mapping[str, Any]) -> Iterable[Tuple[int, Mapping[str, Any]]]:
    options = node.get("choices", node.get("options")) or []
    for index, option in enumerate(options):
        if isinstance(option, Mapping):
            yield index, option


def _option_requirement(option: Mapping[str, Any]) -> Dict[str, Any]:
    requirement = dict(option.get("requirement") or option.get("requirements") or {})
    if "requiresClue" in option:
        requirement["requiresClue"] = option["requiresClue"]
    return requirement


def obtainable_clues(world: Mapping[str, Any]) -> Set[str]:
    """Every clue the world can award: the catalogue plus all unlock effects."""
    clues_section = world.get("clues")
    obtainable: Set[str] = set()
    for clue_id, body, _ in entries(clues_section):
        if isinstance(clues_section, list) and isinstance(body, Mapping):
            clue_id = body.get("id") or body.get("text")
        if isinstance(clue_id, str) and clue_id:
            obtainable.add(clue_id)

    for _, puzzle, _ in entries(world.get("puzzles")):
        if isinstance(puzzle, Mapping):
            obtainable.update(_effect_clues(puzzle.get("activationEffects")))
            obtainable.update(_effect_clues(puzzle.get("solutionEffects")))

    for body in (world.get("dialogues") or {}).values():
        for node in _dialogue_nodes(body).values():
            obtainable.update(_effect_clues(node.get("effects")))
            for _, option in _options(node):
                obtainable.update(_effect_clues(option.get("effects")))
                obtainable.update(_clue_ids(option.get("givesClue")))
    return obtainable


def _reachable_nodes(body: Mapping[str, Any], nodes: Mapping[str, Mapping[str, Any]]) -> Set[str]:
    starts = [body.get("defaultNode") or "default"]
    starts.extend(str(v) for v in (body.get("trustReactions") or {}).values())
    visited: Set[str] = set()
    queue: deque[str] = deque(node_id for node_id in starts if node_id in nodes)
    while queue:
        node_id = queue.popleft()
        if node_id in visited:
            continue
        visited.add(node_id)
        node = nodes[node_id]
        targets = [v.get("nodeId") for v in node.get("variants") or [] if isinstance(v, Mapping)]
        targets.extend(option.get("next") for _, option in _options(node))
        for target in targets:
            if isinstance(target, str) and target not in END_SENTINELS and target in nodes:
                queue.append(target)
    return visited


def analyze_softlocks(world: Mapping[str, Any]) -> List[str]:
    obtainable = obtainable_clues(world)
    warnings: List[str] = []

    for puzzle_id, puzzle, parts in entries(world.get("puzzles")):
        if not isinstance(puzzle, Mapping):
            continue
        own_rewards = set(_effect_clues(puzzle.get("solutionEffects")))
        for clue in _requirement_clues(puzzle.get("activationConditions")):
            if clue not in obtainable:
                warnings.append(
                    f"{path('puzzles', *parts, 'activationConditions')}: requires clue '{clue}' "
                    "that nothing can award; the puzzle can never activate."
                )
            elif clue in own_rewards:
                warnings.append(
                    f"{path('puzzles', *parts, 'activationConditions')}: requires clue '{clue}' "
                    f"that only solving '{puzzle_id}' awards."
                )

    for char_id, body in (world.get("dialogues") or {}).items():
        nodes = _dialogue_nodes(body)
        for node_id, node in nodes.items():
            for index, option in _options(node):
                for clue in _requirement_clues(_option_requirement(option)):
                    if clue not in obtainable:
                        warnings.append(
                            f"{path('dialogues', char_id, 'nodes', node_id, 'choices', index)}: "
                            f"requires clue '{clue}' that nothing can award; the option is never shown."
                        )
        if isinstance(body, Mapping):
            reachable = _reachable_nodes(body, nodes)
            for node_id in nodes:
                if node_id not in reachable:
                    warnings.append(
                        f"{path('dialogues', char_id, 'nodes', node_id)}: not reachable from the "
                        "default node or any trust reaction."
                    )

    for _, ending, parts in entries(world.get("endings")):
        if not isinstance(ending, Mapping):
            continue
        requirements = ending.get("requirements")
        if not isinstance(requirements, Mapping):
            continue
        required = _clue_ids(requirements.get("requiredClues", requirements.get("keyClues")))
        for clue in required:
            if clue not in obtainable:
                warnings.append(
                    f"{path('endings', *parts, 'requirements')}: requires clue '{clue}' "
                    "that nothing can award; the ending is unreachable."
                )

    return warnings
