"""Captured photos and the photo requirement checker."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .conditions import (
    ABANDONED_HOUSE_POSITION,
    HOUSE_ABANDONED,
    NEIGHBOR_JAKE_LILA,
    WELL_POSITION,
    any_photo_matches,
    is_flicker_shot,
    is_shadow_shot,
    is_well_shot,
    nearby_has,
)

logger = logging.getLogger(__name__)

HIDDEN_DETAIL_CHANCE = 0.2
HOUSE_SIDE_MARGIN = 50
WELL_MEETING_BOX = 50


@dataclass(frozen=True)
class Position:
    x: float
    y: float


@dataclass(frozen=True)
class NearbyElement:
    type: str
    index: int


@dataclass(frozen=True)
class Photo:
    id: str
    position: Position
    time_of_day: str
    nearby: Tuple[NearbyElement, ...] = ()
    type: str = "generic"
    developed: bool = True
    caption: Optional[str] = None
    evidence: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "position": {"x": self.position.x, "y": self.position.y},
            "timeOfDay": self.time_of_day,
            "nearbyElements": [{"type": e.type, "index": e.index} for e in self.nearby],
            "type": self.type,
            "developed": self.developed,
        }
        if self.caption is not None:
            data["caption"] = self.caption
        if self.evidence is not None:
            data["evidence"] = self.evidence
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], fallback_id: str = "") -> "Photo":
        raw_position = data.get("position")
        if isinstance(raw_position, Mapping):
            position = Position(float(raw_position.get("x", 0)), float(raw_position.get("y", 0)))
        else:
            position = Position(0.0, 0.0)
        nearby = tuple(
            NearbyElement(str(entry.get("type")), int(entry.get("index", -1)))
            for entry in data.get("nearbyElements") or ()
            if isinstance(entry, Mapping)
        )
        evidence = data.get("evidence")
        if isinstance(evidence, Mapping):
            evidence = evidence.get("id") or evidence.get("description")
        caption = data.get("caption")
        return cls(
            id=str(data.get("id") or fallback_id),
            position=position,
            time_of_day=str(data.get("timeOfDay") or "morning"),
            nearby=nearby,
            type=str(data.get("type") or "generic"),
            developed=bool(data.get("developed", True)),
            caption=caption if isinstance(caption, str) else None,
            evidence=str(evidence) if evidence is not None else None,
        )


def classify_photo(position: Position, time_of_day: str, nearby: Sequence[NearbyElement]) -> str:
    if is_flicker_shot(position, time_of_day, nearby):
        return "flickerPhoto"
    if is_shadow_shot(position, time_of_day, nearby):
        return "shadowPhoto"

    if nearby_has(nearby, "house", HOUSE_ABANDONED):
        hx, hy = ABANDONED_HOUSE_POSITION
        if position.x < hx - HOUSE_SIDE_MARGIN:
            return "house_west"
        if position.x > hx + HOUSE_SIDE_MARGIN:
            return "house_east"
        if position.y < hy - HOUSE_SIDE_MARGIN:
            return "house_north"
        if position.y > hy + HOUSE_SIDE_MARGIN:
            return "house_south"

    if is_well_shot(position, time_of_day, nearby):
        return "wellPhoto"

    wx, wy = WELL_POSITION
    if (
        nearby_has(nearby, "neighbor", NEIGHBOR_JAKE_LILA)
        and abs(position.x - wx) < WELL_MEETING_BOX
        and abs(position.y - wy) < WELL_MEETING_BOX
    ):
        return "well_meeting"

    return "generic"


class PhotoAlbum:
    """Photos taken during a run, in capture order."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._photos: List[Photo] = []
        self.rng = rng or random.Random()

    def __len__(self) -> int:
        return len(self._photos)

    def __iter__(self) -> Iterator[Photo]:
        return iter(list(self._photos))

    def get(self, photo_id: str) -> Optional[Photo]:
        for photo in self._photos:
            if photo.id == photo_id:
                return photo
        return None

    def capture(
        self,
        position: Position,
        time_of_day: str,
        nearby: Iterable[NearbyElement] = (),
        *,
        developed: bool = True,
    ) -> Photo:
        nearby = tuple(nearby)
        kind = classify_photo(position, time_of_day, nearby)
        photo = Photo(
            id=f"{kind}_photo_{len(self._photos) + 1}",
            position=position,
            time_of_day=time_of_day,
            nearby=nearby,
            type=kind,
            developed=developed,
        )
        self._photos.append(photo)
        logger.info("Photo captured: %s", photo.id)
        return photo

    def check_photo_requirement(self, types: str | Sequence[str]) -> bool:
        return any_photo_matches(self._photos, types)

    def set_caption(self, photo_id: str, caption: Optional[str]) -> bool:
        return self._replace(photo_id, caption=caption or None)

    def mark_evidence(self, photo_id: str, evidence: Optional[str]) -> bool:
        return self._replace(photo_id, evidence=evidence or None)

    def develop(self, photo_id: str) -> bool:
        photo = self.get(photo_id)
        if photo is None or photo.developed:
            return False
        evidence = photo.evidence
        if evidence is None and self.rng.random() < HIDDEN_DETAIL_CHANCE:
            evidence = f"developing_revealed_{self.rng.randrange(1000)}"
        return self._replace(photo_id, developed=True, evidence=evidence)

    def to_list(self) -> List[Dict[str, Any]]:
        return [photo.to_dict() for photo in self._photos]

    def restore(self, entries: Iterable[Any]) -> None:
        self._photos = []
        for index, entry in enumerate(entries or (), start=1):
            if not isinstance(entry, Mapping):
                continue
            try:
                self._photos.append(Photo.from_dict(entry, fallback_id=f"photo_{index}"))
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable saved photo #%d: %s", index, exc)

    def _replace(self, photo_id: str, **changes: Any) -> bool:
        for index, photo in enumerate(self._photos):
            if photo.id == photo_id:
                self._photos[index] = replace(photo, **changes)
                return True
        return False
