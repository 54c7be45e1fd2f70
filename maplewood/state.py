"""The game state object that wires the narrative components together."""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .acts import NarrativeActController
from .clues import Clue, ClueStore
from .dialogue import CharacterDialogue, DialogueResolver, ResolvedNode
from .effects import EffectApplier
from .endings import Ending, EndingEvaluator
from .photos import NearbyElement, Photo, PhotoAlbum, Position
from .puzzles import PuzzleDefinition, PuzzleEngine
from .relationships import Character, TrustChange, TrustLedger
from .settings import Settings
from .timekeeping import MINUTES_PER_DAY, TIME_BLOCKS, GameClock, TickLoop, format_clock

logger = logging.getLogger(__name__)


class NarrativeEvents:
    """Outbound hooks for a UI shell. Every hook is a no-op by default."""

    def notify(self, message: str) -> None:
        pass

    def play(self, effect_name: str) -> None:
        pass

    def trigger_dialogue(self, character_id: str, node_id: Optional[str]) -> None:
        pass

    def time_changed(self, previous: str, current: str) -> None:
        pass


class GameState:
    """One playthrough: trust, clues, photos, flags, puzzles, dialogue and acts.

    Every player action goes through a method here so follow-up checks
    (puzzle activation, act progression) run after the state changes.
    """

    def __init__(
        self,
        *,
        characters: Iterable[Character] = (),
        clues: Iterable[Clue] = (),
        puzzles: Iterable[PuzzleDefinition] = (),
        dialogues: Optional[Mapping[str, CharacterDialogue]] = None,
        endings: Iterable[Ending] = (),
        settings: Optional[Settings] = None,
        events: Optional[NarrativeEvents] = None,
        rng: Optional[random.Random] = None,
        act_clue_minimums: Optional[Mapping[int, int]] = None,
        total_clues: Optional[int] = None,
    ) -> None:
        self.settings = (settings or Settings()).copy().clamp()
        self.events = events or NarrativeEvents()
        self.rng = rng or random.Random(self.settings.rng_seed)

        self.clock = GameClock(self.settings.start_time)
        self.flags: Dict[str, Any] = {}
        self.previous_node: Optional[str] = None
        self.pending_dialogue: Optional[Tuple[str, Optional[str]]] = None
        self.final_theory = ""
        self._refreshing = False

        self.trust = TrustLedger(
            characters,
            notify=self.events.notify,
            notify_threshold=self.settings.notify_trust_threshold,
        )
        self.clues = ClueStore.from_catalogue(clues)
        self.photos = PhotoAlbum(rng=self.rng)
        self.effects = EffectApplier(self)
        self.puzzles = PuzzleEngine(puzzles, self, self.effects)
        self.dialogue = DialogueResolver(
            dialogues or {},
            self,
            self.effects,
            reaction_threshold=self.settings.reaction_threshold,
        )
        self.trust.add_listener(self.dialogue.queue_reaction)
        self.acts = NarrativeActController(
            self,
            self.settings.act_thresholds,
            clue_minimums=act_clue_minimums,
            notify=self.events.notify,
        )
        catalogue_size = total_clues if total_clues is not None else len(self.clues.catalogue)
        self.endings = EndingEvaluator(endings, total_clues=catalogue_size)

    # ---------- derived ----------
    @property
    def act(self) -> int:
        return self.acts.act

    @property
    def time_of_day(self) -> str:
        return self.clock.time_of_day

    def summary(self) -> str:
        trust = ", ".join(
            f"{self.trust.display_name(cid)}: {self.trust.get_level(cid)} ({self.trust.get_tier(cid)})"
            for cid in self.trust.character_ids()
        ) or "-"
        flags = ", ".join(f"{k}={v}" for k, v in sorted(self.flags.items())) or "-"
        return (
            f"Day {self.clock.day} {format_clock(self.clock.minutes)} ({self.clock.time_of_day}) | "
            f"{self.acts.title} | TRUST: {trust} | CLUES: {len(self.clues)} | "
            f"PHOTOS: {len(self.photos)} | FLAGS: {flags}"
        )

    # ---------- follow-up checks ----------
    def refresh(self) -> List[str]:
        """Re-run act progression and puzzle activation; return newly active puzzle ids."""
        if self._refreshing:
            return []
        self._refreshing = True
        activated: List[str] = []
        try:
            # activation effects can move trust into a new act, which can open act-gated puzzles
            while True:
                entered = self.acts.check_progression()
                batch = self.puzzles.check_activations()
                activated.extend(batch)
                if not entered and not batch:
                    return activated
        finally:
            self._refreshing = False

    # ---------- player actions ----------
    def discover_clue(self, clue_id: str) -> bool:
        if not self.clues.add(clue_id):
            return False
        self.events.play("clue")
        self.events.notify(f'New clue: "{clue_id}"')
        return True

    def collect_clue(self, clue_id: str) -> bool:
        added = self.discover_clue(clue_id)
        if added:
            self.refresh()
        return added

    def adjust_trust(self, character_id: str, delta: int, reason: str = "") -> TrustChange:
        change = self.trust.adjust(character_id, delta, reason)
        self.refresh()
        return change

    def set_flag(self, flag: str, value: Any = True) -> None:
        self.flags[flag] = value
        self.refresh()

    def award_random_clue(self) -> Optional[str]:
        clue_id = self.clues.award_random_clue(
            self.clock.time_of_day,
            self.trust.global_trust(),
            self.rng,
            add=self.discover_clue,
        )
        if clue_id:
            self.refresh()
        return clue_id

    def take_photo(
        self,
        position: Position,
        nearby: Iterable[NearbyElement] = (),
        *,
        developed: bool = True,
    ) -> Photo:
        photo = self.photos.capture(position, self.clock.time_of_day, nearby, developed=developed)
        self.events.play("photo")
        self.refresh()
        return photo

    def talk_to(self, character_id: str) -> Optional[ResolvedNode]:
        self.pending_dialogue = None
        if self.dialogue.engage(character_id) is None:
            return None
        self.refresh()
        return self.dialogue.enter(character_id)

    def open_dialogue(self, character_id: str, node_id: Optional[str] = None) -> Optional[ResolvedNode]:
        self.pending_dialogue = None
        if self.dialogue.enter(character_id, node_id) is None:
            return None
        self.refresh()
        return self.dialogue.enter(character_id)

    def choose(self, index: int) -> Optional[ResolvedNode]:
        resolved = self.dialogue.choose(index)
        self.refresh()
        if resolved is None:
            return None
        # re-resolve so options reflect anything the refresh unlocked
        return self.dialogue.enter(resolved.character_id)

    def submit_solution(self, puzzle_id: str, attempt: Mapping[str, Any]) -> bool:
        solved = self.puzzles.submit_solution(puzzle_id, attempt)
        if solved:
            self.refresh()
        return solved

    # ---------- time ----------
    def advance_time(self, minutes: int) -> Optional[Tuple[str, str]]:
        change = self.clock.advance(minutes)
        if change:
            self.events.time_changed(*change)
            self.refresh()
        return change

    def skip_to(self, time_of_day: str) -> bool:
        """Jump forward to the start of a time block the current act allows."""
        if time_of_day not in TIME_BLOCKS or not self.acts.is_time_reachable(time_of_day):
            return False
        start = TIME_BLOCKS[time_of_day][0]
        minutes = (start - self.clock.minutes) % MINUTES_PER_DAY
        if minutes == 0:
            return True
        self.advance_time(minutes)
        return True

    def tick(self) -> None:
        self.advance_time(self.settings.minutes_per_tick)

    def make_tick_loop(self) -> TickLoop:
        return TickLoop(self.tick, self.settings.tick_interval)

    # ---------- conclusion ----------
    def conclude(self, theory: Optional[str] = None) -> Ending:
        if theory is not None:
            self.final_theory = theory
        return self.endings.evaluate(self)
