"""Puzzle definitions, lifecycle and solution checking."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .conditions import meets_requirement

logger = logging.getLogger(__name__)


class PuzzleKind(str, Enum):
    TIMELINE = "timeline"
    CONTRADICTION = "contradiction"
    PHOTO_ASSEMBLY = "photoAssembly"


class PuzzleStatus(str, Enum):
    LOCKED = "locked"
    ACTIVE = "active"
    SOLVED = "solved"


@dataclass(frozen=True)
class TimelineSolution:
    order: Tuple[str, ...]


@dataclass(frozen=True)
class ContradictionSolution:
    character: str
    evidence: str


@dataclass(frozen=True)
class PhotoAssemblySolution:
    required_photos: frozenset


Solution = Union[TimelineSolution, ContradictionSolution, PhotoAssemblySolution]


def _timeline_solution(data: Mapping[str, Any]) -> TimelineSolution:
    order = data.get("order")
    if not isinstance(order, list) or not order:
        raise ValueError("timeline solution needs a non-empty 'order' list")
    return TimelineSolution(tuple(str(item) for item in order))


def _contradiction_solution(data: Mapping[str, Any]) -> ContradictionSolution:
    character, evidence = data.get("character"), data.get("evidence")
    if not isinstance(character, str) or not isinstance(evidence, str):
        raise ValueError("contradiction solution needs 'character' and 'evidence' strings")
    return ContradictionSolution(character, evidence)


def _photo_assembly_solution(data: Mapping[str, Any]) -> PhotoAssemblySolution:
    photos = data.get("requiredPhotos")
    if not isinstance(photos, list) or not photos:
        raise ValueError("photoAssembly solution needs a non-empty 'requiredPhotos' list")
    return PhotoAssemblySolution(frozenset(str(p) for p in photos))


SOLUTION_PARSERS: Dict[PuzzleKind, Callable[[Mapping[str, Any]], Any]] = {
    PuzzleKind.TIMELINE: _timeline_solution,
    PuzzleKind.CONTRADICTION: _contradiction_solution,
    PuzzleKind.PHOTO_ASSEMBLY: _photo_assembly_solution,
}


def _check_timeline(solution: TimelineSolution, attempt: Mapping[str, Any]) -> bool:
    order = attempt.get("order")
    if not isinstance(order, (list, tuple)):
        return False
    return tuple(order) == solution.order


def _check_contradiction(solution: ContradictionSolution, attempt: Mapping[str, Any]) -> bool:
    return (
        attempt.get("character") == solution.character
        and attempt.get("evidence") == solution.evidence
    )


def _check_photo_assembly(solution: PhotoAssemblySolution, attempt: Mapping[str, Any]) -> bool:
    photos = attempt.get("requiredPhotos")
    if not isinstance(photos, (list, tuple, set, frozenset)):
        return False
    return set(photos) == set(solution.required_photos)


SOLUTION_CHECKERS: Dict[PuzzleKind, Callable[[Any, Mapping[str, Any]], bool]] = {
    PuzzleKind.TIMELINE: _check_timeline,
    PuzzleKind.CONTRADICTION: _check_contradiction,
    PuzzleKind.PHOTO_ASSEMBLY: _check_photo_assembly,
}


@dataclass
class PuzzleDefinition:
    id: str
    kind: PuzzleKind
    solution: Solution
    title: str = ""
    description: str = ""
    activation: Dict[str, Any] = field(default_factory=dict)
    activation_effects: Dict[str, Any] = field(default_factory=dict)
    solution_effects: Dict[str, Any] = field(default_factory=dict)
    components: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], puzzle_id: Optional[str] = None) -> "PuzzleDefinition":
        pid = puzzle_id or data.get("id")
        if not isinstance(pid, str) or not pid:
            raise ValueError("Puzzle entries need a non-empty 'id'.")
        try:
            kind = PuzzleKind(data.get("type"))
        except ValueError:
            raise ValueError(f"Puzzle {pid!r} has unknown type {data.get('type')!r}.") from None
        raw_solution = data.get("solution")
        if not isinstance(raw_solution, Mapping):
            raise ValueError(f"Puzzle {pid!r} needs a 'solution' object.")
        try:
            solution = SOLUTION_PARSERS[kind](raw_solution)
        except ValueError as exc:
            raise ValueError(f"Puzzle {pid!r}: {exc}") from None
        return cls(
            id=pid,
            kind=kind,
            solution=solution,
            title=str(data.get("title") or pid),
            description=str(data.get("description") or ""),
            activation=dict(data.get("activationConditions") or {}),
            activation_effects=dict(data.get("activationEffects") or {}),
            solution_effects=dict(data.get("solutionEffects") or {}),
            components=dict(data.get("components") or {}),
        )


PuzzleCallback = Callable[[PuzzleDefinition], None]


class PuzzleEngine:
    """Track puzzles through ``locked -> active -> solved``.

    Transitions only move forward, and each transition applies its effects
    exactly once. ``effects`` is anything with an ``apply(effects, reason=...)``
    method; ``state`` is what activation requirements are evaluated against.
    """

    def __init__(self, definitions: Iterable[PuzzleDefinition], state: Any, effects: Any) -> None:
        self.puzzles: Dict[str, PuzzleDefinition] = {}
        for puzzle in definitions:
            if puzzle.id in self.puzzles:
                raise ValueError(f"Duplicate puzzle id {puzzle.id!r}.")
            self.puzzles[puzzle.id] = puzzle
        self.state = state
        self.effects = effects
        self._status: Dict[str, PuzzleStatus] = {pid: PuzzleStatus.LOCKED for pid in self.puzzles}
        self._on_activated: List[PuzzleCallback] = []
        self._on_solved: List[PuzzleCallback] = []

    def register_callbacks(
        self,
        on_activated: Optional[PuzzleCallback] = None,
        on_solved: Optional[PuzzleCallback] = None,
    ) -> None:
        if on_activated is not None:
            self._on_activated.append(on_activated)
        if on_solved is not None:
            self._on_solved.append(on_solved)

    # ---------- queries ----------
    def status(self, puzzle_id: str) -> Optional[PuzzleStatus]:
        return self._status.get(puzzle_id)

    def is_solved(self, puzzle_id: str) -> bool:
        return self._status.get(puzzle_id) is PuzzleStatus.SOLVED

    def active_puzzles(self) -> List[PuzzleDefinition]:
        return [self.puzzles[pid] for pid, s in self._status.items() if s is PuzzleStatus.ACTIVE]

    def solved_puzzles(self) -> List[PuzzleDefinition]:
        return [self.puzzles[pid] for pid, s in self._status.items() if s is PuzzleStatus.SOLVED]

    # ---------- transitions ----------
    def check_activations(self) -> List[str]:
        """Activate every locked puzzle whose requirement now holds.

        Repeats until a pass activates nothing, so activation effects that
        unlock clues can open puzzles declared earlier.
        """
        activated: List[str] = []
        while True:
            batch = [
                pid
                for pid, status in self._status.items()
                if status is PuzzleStatus.LOCKED
                and meets_requirement(self.puzzles[pid].activation, self.state)
            ]
            if not batch:
                return activated
            for pid in batch:
                if self._status[pid] is not PuzzleStatus.LOCKED:
                    continue
                self._activate(self.puzzles[pid])
                activated.append(pid)

    def submit_solution(self, puzzle_id: str, attempt: Mapping[str, Any]) -> bool:
        if self._status.get(puzzle_id) is not PuzzleStatus.ACTIVE:
            logger.warning("Attempt to solve inactive puzzle: %s", puzzle_id)
            return False
        puzzle = self.puzzles[puzzle_id]
        checker = SOLUTION_CHECKERS.get(puzzle.kind)
        if checker is None:
            logger.warning("Unknown puzzle type for %s: %r", puzzle_id, puzzle.kind)
            return False
        if not isinstance(attempt, Mapping) or not checker(puzzle.solution, attempt):
            logger.debug("Incorrect solution submitted for %s.", puzzle_id)
            return False
        self._solve(puzzle)
        self.check_activations()
        return True

    def _activate(self, puzzle: PuzzleDefinition) -> None:
        self._status[puzzle.id] = PuzzleStatus.ACTIVE
        logger.info("Puzzle activated: %s", puzzle.id)
        self.effects.apply(puzzle.activation_effects, reason=f"puzzle:{puzzle.id}:activated")
        for callback in list(self._on_activated):
            callback(puzzle)

    def _solve(self, puzzle: PuzzleDefinition) -> None:
        self._status[puzzle.id] = PuzzleStatus.SOLVED
        logger.info("Puzzle solved: %s", puzzle.id)
        self.effects.apply(puzzle.solution_effects, reason=f"puzzle:{puzzle.id}:solved")
        for callback in list(self._on_solved):
            callback(puzzle)

    # ---------- persistence ----------
    def export_state(self) -> Dict[str, List[str]]:
        return {
            "active": [p.id for p in self.active_puzzles()],
            "solved": [p.id for p in self.solved_puzzles()],
        }

    def import_state(self, blob: Any) -> None:
        """Restore statuses without firing any effects or callbacks."""
        self._status = {pid: PuzzleStatus.LOCKED for pid in self.puzzles}
        if not isinstance(blob, Mapping):
            return
        active = blob.get("active", blob.get("activePuzzles")) or []
        solved = blob.get("solved", blob.get("solvedPuzzles")) or []
        for status, ids in ((PuzzleStatus.ACTIVE, active), (PuzzleStatus.SOLVED, solved)):
            for pid in ids:
                if pid not in self._status:
                    logger.warning("Ignoring saved state for unknown puzzle %r.", pid)
                    continue
                self._status[pid] = status
