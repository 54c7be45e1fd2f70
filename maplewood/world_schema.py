"""Structural validation for Maplewood Lane world files."""

from __future__ import annotations

import json
from collections import Counter
from typing import Any, Iterable, List, Mapping, Sequence

from .conditions import TRUST_TIERS, unknown_requirement_keys
from .dialogue import END_SENTINELS
from .effects import EFFECT_KEYS
from .endings import ENDING_REQUIREMENT_KEYS
from .puzzles import SOLUTION_PARSERS, PuzzleKind
from .theory import TheorySignals
from .timekeeping import TIMES_OF_DAY

REACTION_KEYS = frozenset(
    {"trust_gained", "trust_lost", *(f"tier_{tier.lower()}" for tier in TRUST_TIERS)}
)
PERSONALITY_TRAITS = ("forgiveness", "memory", "emotionality")
THEORY_SIGNALS = frozenset(TheorySignals().as_dict())


def path(*parts: object) -> str:
    path_str = ""
    for part in parts:
        if isinstance(part, int):
            path_str = f"{path_str}[{part}]"
            continue
        if not isinstance(part, str):
            part = str(part)
        if part.isidentifier():
            path_str = f"{path_str}.{part}" if path_str else part
        else:
            path_str = f"{path_str}[{json.dumps(part)}]"
    return path_str


def format_validation_message(path_str: str, context: str, message: str) -> str:
    if context:
        return f"{path_str}: {context}: {message}"
    return f"{path_str}: {message}"


def is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def str_or_str_list(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, list) and value:
        return all(is_non_empty_str(item) for item in value)
    return False


def is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class ValidationContext:
    """Utility container for accumulating validation errors."""

    def __init__(self) -> None:
        self.errors: List[str] = []

    def add(self, context: str, path_str: str, message: str) -> None:
        self.errors.append(format_validation_message(path_str, context, message))

    def extend(self, messages: Iterable[str]) -> None:
        self.errors.extend(messages)

    def ok(self) -> bool:
        return not self.errors


def require(condition: bool, context: str, path_str: str, message: str, ctx: ValidationContext) -> None:
    if not condition:
        ctx.add(context, path_str, message)


def entries(section: Any) -> List[tuple]:
    """Return ``(id, body, path_parts)`` for a section given as a mapping or a list."""
    if isinstance(section, Mapping):
        return [(key, body, (key,)) for key, body in section.items()]
    if isinstance(section, list):
        result = []
        for index, body in enumerate(section):
            entry_id = body.get("id") if isinstance(body, Mapping) else None
            result.append((entry_id, body, (index,)))
        return result
    return []


def validate_requirement(requirement: Any, context: str, path_parts: Sequence[object], ctx: ValidationContext) -> None:
    if requirement in (None, {}, []):
        return
    if isinstance(requirement, list):
        for index, entry in enumerate(requirement):
            validate_requirement(entry, context, (*path_parts, index), ctx)
        return
    if not isinstance(requirement, Mapping):
        ctx.add(context, path(*path_parts), "requirement must be an object.")
        return
    for key in unknown_requirement_keys(requirement):
        ctx.add(context, path(*path_parts, key), f"unknown requirement key '{key}'.")
    for key in ("trustMin", "minTrust", "trustMax", "actMin", "minClues"):
        if key in requirement and not is_int(requirement[key]):
            ctx.add(context, path(*path_parts, key), "must be an integer.")
    if "tier" in requirement:
        require(
            str(requirement["tier"]) in TRUST_TIERS,
            context,
            path(*path_parts, "tier"),
            f"must be one of {', '.join(TRUST_TIERS)}.",
            ctx,
        )
    if "timeOfDay" in requirement:
        times = requirement["timeOfDay"]
        times = times if isinstance(times, list) else [times]
        for time_of_day in times:
            require(
                time_of_day in TIMES_OF_DAY,
                context,
                path(*path_parts, "timeOfDay"),
                f"unknown time of day {time_of_day!r}.",
                ctx,
            )
    for key in ("requiredClues", "requiresClue", "requiredPhotoType", "requiresPhoto"):
        if key in requirement:
            require(
                str_or_str_list(requirement[key]),
                context,
                path(*path_parts, key),
                "must be a string or a non-empty list of strings.",
                ctx,
            )
    for key in ("flags", "variables"):
        if key in requirement:
            require(
                isinstance(requirement[key], Mapping),
                context,
                path(*path_parts, key),
                "must be an object of flag values.",
                ctx,
            )


def validate_effects(
    effects: Any,
    context: str,
    path_parts: Sequence[object],
    ctx: ValidationContext,
    character_ids: Iterable[str],
) -> None:
    if effects in (None, {}):
        return
    if not isinstance(effects, Mapping):
        ctx.add(context, path(*path_parts), "effects must be an object.")
        return
    known_characters = set(character_ids)
    for key in effects:
        if key not in EFFECT_KEYS:
            ctx.add(context, path(*path_parts, key), f"unknown effect key '{key}'.")
    if "trust" in effects:
        require(is_int(effects["trust"]), context, path(*path_parts, "trust"), "must be an integer.", ctx)
    if "character" in effects:
        require(
            effects["character"] in known_characters,
            context,
            path(*path_parts, "character"),
            f"unknown character {effects['character']!r}.",
            ctx,
        )
    if "unlockClue" in effects:
        require(
            str_or_str_list(effects["unlockClue"]),
            context,
            path(*path_parts, "unlockClue"),
            "must be a clue id or a list of clue ids.",
            ctx,
        )
    for key in ("setFlag", "setVariable"):
        if key in effects:
            require(
                isinstance(effects[key], Mapping),
                context,
                path(*path_parts, key),
                "must be an object of flag assignments.",
                ctx,
            )
    trigger = effects.get("triggerDialogue")
    if trigger is not None:
        if not isinstance(trigger, Mapping) or not is_non_empty_str(trigger.get("character")):
            ctx.add(context, path(*path_parts, "triggerDialogue"), "needs a 'character'.")
        elif trigger["character"] not in known_characters:
            ctx.add(
                context,
                path(*path_parts, "triggerDialogue", "character"),
                f"unknown character {trigger['character']!r}.",
            )


def _validate_characters(world: Mapping[str, Any], ctx: ValidationContext) -> List[str]:
    section = world.get("characters")
    if not isinstance(section, (Mapping, list)) or not section:
        ctx.add("World data", path("characters"), "must include at least one character.")
        return []
    ids: List[str] = []
    for char_id, body, parts in entries(section):
        full = ("characters", *parts)
        if not is_non_empty_str(char_id):
            ctx.add("Characters", path(*full), "character ids must be non-empty strings.")
            continue
        ids.append(char_id)
        if not isinstance(body, Mapping):
            ctx.add("Characters", path(*full), "must be an object.")
            continue
        thresholds = body.get("thresholds")
        if thresholds is not None:
            valid = (
                isinstance(thresholds, list)
                and len(thresholds) == len(TRUST_TIERS)
                and all(is_int(value) for value in thresholds)
                and thresholds == sorted(thresholds)
            )
            require(
                valid,
                "Characters",
                path(*full, "thresholds"),
                "must be four ascending integers.",
                ctx,
            )
        personality = body.get("personality")
        if personality is not None:
            if not isinstance(personality, Mapping):
                ctx.add("Characters", path(*full, "personality"), "must be an object.")
                continue
            for trait in PERSONALITY_TRAITS:
                value = personality.get(trait)
                if value is None:
                    continue
                require(
                    isinstance(value, (int, float)) and not isinstance(value, bool) and 0 <= value <= 1,
                    "Characters",
                    path(*full, "personality", trait),
                    "must be a number between 0 and 1.",
                    ctx,
                )
    duplicates = sorted(cid for cid, count in Counter(ids).items() if count > 1)
    if duplicates:
        ctx.add("Characters", path("characters"), f"duplicate character IDs: {', '.join(duplicates)}.")
    return ids


def _validate_clues(world: Mapping[str, Any], ctx: ValidationContext) -> List[str]:
    section = world.get("clues", [])
    if not isinstance(section, (Mapping, list)):
        ctx.add("World data", path("clues"), "must be a list of clue entries.")
        return []
    ids: List[str] = []
    for clue_id, body, parts in entries(section):
        full = ("clues", *parts)
        if not isinstance(body, Mapping):
            ctx.add("Clues", path(*full), "must be an object.")
            continue
        if isinstance(section, list):
            clue_id = body.get("id") or body.get("text")
        if not is_non_empty_str(clue_id):
            ctx.add("Clues", path(*full), "is missing a valid 'id'.")
            continue
        ids.append(clue_id)
        time_of_day = body.get("timeOfDay", body.get("time"))
        if time_of_day is not None:
            require(
                time_of_day in TIMES_OF_DAY,
                "Clues",
                path(*full, "timeOfDay"),
                f"unknown time of day {time_of_day!r}.",
                ctx,
            )
        if "trustRequired" in body:
            require(is_int(body["trustRequired"]), "Clues", path(*full, "trustRequired"), "must be an integer.", ctx)
    duplicates = sorted(cid for cid, count in Counter(ids).items() if count > 1)
    if duplicates:
        ctx.add("Clues", path("clues"), f"duplicate clue IDs: {', '.join(duplicates)}.")

    known = set(ids)
    for clue_id, body, parts in entries(section):
        if not isinstance(body, Mapping):
            continue
        related = body.get("related", body.get("connections")) or []
        if not isinstance(related, list):
            ctx.add("Clues", path("clues", *parts, "related"), "must be a list of clue ids.")
            continue
        for other in related:
            require(
                other in known,
                "Clues",
                path("clues", *parts, "related"),
                f"references unknown clue {other!r}.",
                ctx,
            )
    return ids


def _validate_puzzles(world: Mapping[str, Any], ctx: ValidationContext, character_ids: List[str]) -> None:
    section = world.get("puzzles", {})
    if not isinstance(section, (Mapping, list)):
        ctx.add("World data", path("puzzles"), "must be an object mapping puzzle IDs to definitions.")
        return
    ids: List[str] = []
    kinds = [kind.value for kind in PuzzleKind]
    for puzzle_id, body, parts in entries(section):
        full = ("puzzles", *parts)
        if not is_non_empty_str(puzzle_id):
            ctx.add("Puzzles", path(*full), "is missing a valid 'id'.")
            continue
        ids.append(puzzle_id)
        if not isinstance(body, Mapping):
            ctx.add("Puzzles", path(*full), "must be an object.")
            continue
        try:
            kind = PuzzleKind(body.get("type"))
        except ValueError:
            ctx.add("Puzzles", path(*full, "type"), f"must be one of {', '.join(kinds)}.")
            continue
        solution = body.get("solution")
        if not isinstance(solution, Mapping):
            ctx.add("Puzzles", path(*full, "solution"), "must be an object.")
        else:
            try:
                SOLUTION_PARSERS[kind](solution)
            except ValueError as exc:
                ctx.add("Puzzles", path(*full, "solution"), f"{exc}.")
        validate_requirement(body.get("activationConditions"), "Puzzles", (*full, "activationConditions"), ctx)
        for key in ("activationEffects", "solutionEffects"):
            validate_effects(body.get(key), "Puzzles", (*full, key), ctx, character_ids)
    duplicates = sorted(pid for pid, count in Counter(ids).items() if count > 1)
    if duplicates:
        ctx.add("Puzzles", path("puzzles"), f"duplicate puzzle IDs: {', '.join(duplicates)}.")


def _node_map(raw_nodes: Any) -> Mapping[str, Any]:
    if isinstance(raw_nodes, list):
        return {n.get("id"): n for n in raw_nodes if isinstance(n, Mapping) and is_non_empty_str(n.get("id"))}
    if isinstance(raw_nodes, Mapping):
        return raw_nodes
    return {}


def _validate_dialogue(
    char_id: str,
    body: Any,
    ctx: ValidationContext,
    character_ids: List[str],
) -> None:
    base = ("dialogues", char_id)
    if not isinstance(body, Mapping):
        ctx.add("Dialogues", path(*base), "must be an object.")
        return
    nodes = _node_map(body.get("nodes"))
    if not nodes:
        ctx.add("Dialogues", path(*base, "nodes"), "must define at least one node.")
        return
    default = body.get("defaultNode")
    if default is not None:
        require(default in nodes, "Dialogues", path(*base, "defaultNode"), f"unknown node {default!r}.", ctx)
    elif "default" not in nodes:
        ctx.add("Dialogues", path(*base), "needs a 'default' node or a 'defaultNode'.")

    for node_id, node in nodes.items():
        node_path = (*base, "nodes", node_id)
        if not isinstance(node, Mapping):
            ctx.add("Dialogues", path(*node_path), "must be an object.")
            continue
        validate_effects(node.get("effects"), "Dialogues", (*node_path, "effects"), ctx, character_ids)
        for index, variant in enumerate(node.get("variants") or []):
            variant_path = (*node_path, "variants", index)
            if not isinstance(variant, Mapping):
                ctx.add("Dialogues", path(*variant_path), "must be an object.")
                continue
            require(
                variant.get("nodeId") in nodes,
                "Dialogues",
                path(*variant_path, "nodeId"),
                f"unknown node {variant.get('nodeId')!r}.",
                ctx,
            )
            tier = variant.get("trustTier")
            if tier is not None:
                require(tier in TRUST_TIERS, "Dialogues", path(*variant_path, "trustTier"), "unknown trust tier.", ctx)
        options = node.get("choices", node.get("options")) or []
        for index, option in enumerate(options):
            option_path = (*node_path, "choices", index)
            if not isinstance(option, Mapping):
                ctx.add("Dialogues", path(*option_path), "must be an object.")
                continue
            require(is_non_empty_str(option.get("text")), "Dialogues", path(*option_path, "text"), "must be non-empty.", ctx)
            target = option.get("next")
            if target is not None and target not in END_SENTINELS:
                require(target in nodes, "Dialogues", path(*option_path, "next"), f"unknown node {target!r}.", ctx)
            validate_requirement(
                option.get("requirement", option.get("requirements")),
                "Dialogues",
                (*option_path, "requirement"),
                ctx,
            )
            validate_effects(option.get("effects"), "Dialogues", (*option_path, "effects"), ctx, character_ids)

    for reaction, node_id in (body.get("trustReactions") or {}).items():
        reaction_path = (*base, "trustReactions", reaction)
        require(reaction in REACTION_KEYS, "Dialogues", path(*reaction_path), "unknown reaction kind.", ctx)
        require(node_id in nodes, "Dialogues", path(*reaction_path), f"unknown node {node_id!r}.", ctx)


def _validate_endings(world: Mapping[str, Any], ctx: ValidationContext, clue_ids: List[str]) -> None:
    section = world.get("endings")
    if not isinstance(section, (Mapping, list)) or not section:
        ctx.add("World data", path("endings"), "must define at least one ending.")
        return
    defaults = 0
    for ending_id, body, parts in entries(section):
        full = ("endings", *parts)
        if not is_non_empty_str(ending_id):
            ctx.add("Endings", path(*full), "is missing a valid 'id'.")
            continue
        if not isinstance(body, Mapping):
            ctx.add("Endings", path(*full), "must be an object.")
            continue
        require(is_non_empty_str(body.get("name")), "Endings", path(*full, "name"), "must be non-empty.", ctx)
        if body.get("default"):
            defaults += 1
        requirements = body.get("requirements") or {}
        if not isinstance(requirements, Mapping):
            ctx.add("Endings", path(*full, "requirements"), "must be an object.")
            continue
        for key in requirements:
            if key not in ENDING_REQUIREMENT_KEYS:
                ctx.add("Endings", path(*full, "requirements", key), f"unknown requirement key '{key}'.")
        for key in ("minTrust", "maxTrust", "minClues", "maxClues", "cluePercentage", "minPhotos"):
            if key in requirements:
                require(
                    is_int(requirements[key]),
                    "Endings",
                    path(*full, "requirements", key),
                    "must be an integer.",
                    ctx,
                )
        for clue_id in requirements.get("requiredClues") or requirements.get("keyClues") or []:
            require(
                clue_id in clue_ids,
                "Endings",
                path(*full, "requirements", "requiredClues"),
                f"references unknown clue {clue_id!r}.",
                ctx,
            )
        for signal in requirements.get("theory") or {}:
            require(
                signal in THEORY_SIGNALS,
                "Endings",
                path(*full, "requirements", "theory", signal),
                "unknown theory signal.",
                ctx,
            )
    require(defaults == 1, "Endings", path("endings"), f"exactly one default ending is required, found {defaults}.", ctx)


def validate_world(world: Mapping[str, Any]) -> List[str]:
    ctx = ValidationContext()
    if not isinstance(world, Mapping):
        ctx.add("World data", path("world"), "must be a JSON object.")
        return ctx.errors

    require(is_non_empty_str(world.get("title")), "World data", path("title"), "must include a non-empty 'title'.", ctx)
    character_ids = _validate_characters(world, ctx)
    clue_ids = _validate_clues(world, ctx)
    _validate_puzzles(world, ctx, character_ids)

    dialogues = world.get("dialogues", {})
    if not isinstance(dialogues, Mapping):
        ctx.add("World data", path("dialogues"), "must be an object keyed by character id.")
    else:
        for char_id, body in dialogues.items():
            require(
                char_id in character_ids,
                "Dialogues",
                path("dialogues", char_id),
                "does not match any character.",
                ctx,
            )
            _validate_dialogue(char_id, body, ctx, character_ids)

    _validate_endings(world, ctx, clue_ids)

    minimums = world.get("actClueMinimums", {})
    if not isinstance(minimums, Mapping):
        ctx.add("World data", path("actClueMinimums"), "must be an object keyed by act number.")
    else:
        for act, minimum in minimums.items():
            require(
                str(act).isdigit() and 2 <= int(act) <= 4 and is_int(minimum),
                "World data",
                path("actClueMinimums", str(act)),
                "act must be 2-4 and the minimum an integer.",
                ctx,
            )
    return ctx.errors
