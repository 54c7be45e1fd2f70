"""Discovered clue tracking and the clue connection graph."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple

logger = logging.getLogger(__name__)

TAG_KEYWORDS: Mapping[str, Tuple[str, ...]] = {
    "people": ("iris", "mrs. finch", "jake", "lila", "mr. arnold", "camille", "someone"),
    "places": ("well", "park", "house", "room", "town", "street", "lane"),
    "times": ("night", "midnight", "morning", "evening", "wednesday", "tuesday", "months ago"),
    "objects": ("photo", "pendant", "journal", "drawing", "page", "newspaper", "letter"),
    "supernatural": ("shadow", "whisper", "flicker", "figure", "no one there", "lived this day"),
}


@dataclass(frozen=True)
class Clue:
    id: str
    time_of_day: Optional[str] = None
    trust_required: int = 0
    related: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Clue":
        clue_id = data.get("id") or data.get("text")
        if not isinstance(clue_id, str) or not clue_id:
            raise ValueError("Clue entries need a non-empty 'id'.")
        related = data.get("related", data.get("connections")) or ()
        tags = data.get("tags") or ()
        try:
            trust_required = int(data.get("trustRequired", 0) or 0)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            raise ValueError(f"Clue {clue_id!r} has a non-integer trustRequired.") from None
        time_of_day = data.get("timeOfDay", data.get("time"))
        return cls(
            id=clue_id,
            time_of_day=time_of_day if isinstance(time_of_day, str) else None,
            trust_required=trust_required,
            related=tuple(str(r) for r in related),  # type: ignore[union-attr]
            tags=tuple(str(t) for t in tags),  # type: ignore[union-attr]
        )


def auto_tag(text: str) -> List[Tuple[str, str]]:
    """Return ``(category, keyword)`` pairs found in ``text``."""
    lowered = text.lower()
    tags: List[Tuple[str, str]] = []
    for category, keywords in TAG_KEYWORDS.items():
        for keyword in keywords:
            if keyword in lowered and (category, keyword) not in tags:
                tags.append((category, keyword))
    return tags


def _build_adjacency(catalogue: Iterable[Clue]) -> Dict[str, Set[str]]:
    adjacency: Dict[str, Set[str]] = {}
    for clue in catalogue:
        for other in clue.related:
            if other == clue.id:
                continue
            adjacency.setdefault(clue.id, set()).add(other)
            adjacency.setdefault(other, set()).add(clue.id)
    return adjacency


@dataclass
class ClueStore:
    """Canonical set of discovered clues, in discovery order.

    Clues are never removed. ``display_subset`` produces the pruned view a
    notebook shows without touching the canonical set.
    """

    catalogue: Dict[str, Clue] = field(default_factory=dict)
    _found: Dict[str, None] = field(default_factory=dict, repr=False)
    _annotations: Dict[str, str] = field(default_factory=dict, repr=False)
    _adjacency: Dict[str, Set[str]] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        self._adjacency = _build_adjacency(self.catalogue.values())

    @classmethod
    def from_catalogue(cls, clues: Iterable[Clue]) -> "ClueStore":
        return cls(catalogue={clue.id: clue for clue in clues})

    # ---------- membership ----------
    def add(self, clue_id: str) -> bool:
        if not isinstance(clue_id, str) or not clue_id:
            return False
        if clue_id in self._found:
            return False
        self._found[clue_id] = None
        if clue_id not in self.catalogue:
            logger.debug("Discovered clue %r is not in the catalogue.", clue_id)
        logger.info("Clue discovered: %s", clue_id)
        return True

    def has(self, clue_ids: str | Iterable[str]) -> bool:
        if isinstance(clue_ids, str):
            return clue_ids in self._found
        return self.has_all(clue_ids)

    def has_all(self, clue_ids: Iterable[str]) -> bool:
        return all(clue_id in self._found for clue_id in clue_ids)

    def count(self) -> int:
        return len(self._found)

    def __len__(self) -> int:
        return len(self._found)

    def __contains__(self, clue_id: object) -> bool:
        return clue_id in self._found

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._found))

    def found(self) -> List[str]:
        return list(self._found)

    # ---------- connections ----------
    def connections_of(self, clue_id: str) -> Set[str]:
        if clue_id not in self._found:
            return set()
        return {other for other in self._adjacency.get(clue_id, ()) if other in self._found}

    def connected_clues(self) -> Set[str]:
        return {clue_id for clue_id in self._found if self.connections_of(clue_id)}

    # ---------- annotations and tags ----------
    def annotate(self, clue_id: str, text: str) -> bool:
        if clue_id not in self._found:
            return False
        text = (text or "").strip()
        if text:
            self._annotations[clue_id] = text
        else:
            self._annotations.pop(clue_id, None)
        return True

    def annotation(self, clue_id: str) -> str:
        return self._annotations.get(clue_id, "")

    def annotations(self) -> Dict[str, str]:
        return dict(self._annotations)

    def tags_for(self, clue_id: str) -> List[Tuple[str, str]]:
        clue = self.catalogue.get(clue_id)
        tags = auto_tag(clue_id)
        if clue is not None:
            for tag in clue.tags:
                if ("custom", tag) not in tags:
                    tags.append(("custom", tag))
        return tags

    def display_subset(self, limit: int = 50, keep_recent: int = 30) -> List[str]:
        found = list(self._found)
        if len(found) <= limit:
            return found
        keep = self.connected_clues()
        keep.update(self._annotations)
        if keep_recent > 0:
            keep.update(found[-keep_recent:])
        return [clue_id for clue_id in found if clue_id in keep]

    # ---------- rewards ----------
    def candidates(self, time_of_day: str, trust: int) -> List[Clue]:
        return [
            clue
            for clue in self.catalogue.values()
            if clue.id not in self._found
            and clue.time_of_day in (None, time_of_day)
            and clue.trust_required <= trust
        ]

    def award_random_clue(
        self,
        time_of_day: str,
        trust: int,
        rng: random.Random,
        add: Optional[Callable[[str], bool]] = None,
    ) -> Optional[str]:
        """Discover one eligible catalogue clue chosen by ``rng``.

        ``add`` replaces :meth:`add` so callers can attach discovery side
        effects.
        """
        candidates = self.candidates(time_of_day, trust)
        if not candidates:
            return None
        clue = rng.choice(candidates)
        (add or self.add)(clue.id)
        return clue.id

    # ---------- persistence ----------
    def restore(self, clue_ids: Sequence[str], annotations: Mapping[str, str] | None = None) -> None:
        """Replace the discovered set from saved data."""
        self._found = {}
        self._annotations = {}
        for clue_id in clue_ids:
            if isinstance(clue_id, str) and clue_id:
                self._found[clue_id] = None
        for clue_id, text in (annotations or {}).items():
            if clue_id in self._found and isinstance(text, str) and text.strip():
                self._annotations[clue_id] = text.strip()
