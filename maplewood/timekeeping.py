"""Timekeeping utilities for Maplewood Lane."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 1440
DEFAULT_START_TIME = 360

TIMES_OF_DAY: Tuple[str, ...] = ("morning", "afternoon", "evening", "night")

# start inclusive, end exclusive; night wraps past midnight
TIME_BLOCKS: Mapping[str, Tuple[int, int]] = {
    "morning": (360, 720),
    "afternoon": (720, 1020),
    "evening": (1020, 1200),
    "night": (1200, 360),
}

TIME_OF_DAY_LABELS: Mapping[str, str] = {
    "morning": "Morning (6 AM - 12 PM)",
    "afternoon": "Afternoon (12 PM - 5 PM)",
    "evening": "Evening (5 PM - 8 PM)",
    "night": "Night (8 PM - 6 AM)",
}


def normalize_minutes(value: object) -> int:
    try:
        minutes = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_START_TIME
    return minutes % MINUTES_PER_DAY


def time_of_day_for(minutes: int) -> str:
    minutes = normalize_minutes(minutes)
    for name in ("morning", "afternoon", "evening"):
        start, end = TIME_BLOCKS[name]
        if start <= minutes < end:
            return name
    return "night"


def format_clock(minutes: int) -> str:
    minutes = normalize_minutes(minutes)
    hours, mins = divmod(minutes, 60)
    suffix = "PM" if hours >= 12 else "AM"
    display = hours % 12 or 12
    return f"{display}:{mins:02d} {suffix}"


def is_time_of_day(value: object) -> bool:
    return isinstance(value, str) and value in TIMES_OF_DAY


class GameClock:
    """In-game clock counted in minutes since the start of the day."""

    def __init__(self, minutes: int = DEFAULT_START_TIME, day: int = 1) -> None:
        self.minutes = normalize_minutes(minutes)
        self.day = max(int(day), 1)
        self.time_of_day = time_of_day_for(self.minutes)

    def advance(self, minutes: int) -> Optional[Tuple[str, str]]:
        """Move the clock forward; return ``(previous, current)`` on a time-of-day change."""
        if minutes <= 0:
            return None
        total = self.minutes + int(minutes)
        days, self.minutes = divmod(total, MINUTES_PER_DAY)
        self.day += days
        previous = self.time_of_day
        self.time_of_day = time_of_day_for(self.minutes)
        if previous != self.time_of_day:
            logger.info("Time of day changed: %s -> %s (day %d)", previous, self.time_of_day, self.day)
            return previous, self.time_of_day
        return None

    def set_time(self, minutes: int, day: Optional[int] = None) -> None:
        self.minutes = normalize_minutes(minutes)
        if day is not None:
            self.day = max(int(day), 1)
        self.time_of_day = time_of_day_for(self.minutes)

    def label(self) -> str:
        return TIME_OF_DAY_LABELS[self.time_of_day]

    def __repr__(self) -> str:
        return f"GameClock(day={self.day}, {format_clock(self.minutes)}, {self.time_of_day})"


TickBody = Callable[[], Optional[Awaitable[None]]]


class TickLoop:
    """Serialised periodic ticker.

    Each tick body runs to completion before the next sleep starts, so ticks
    never overlap. The loop stops when :meth:`stop` is called.
    """

    def __init__(self, body: TickBody, interval: float = 1.0) -> None:
        self.body = body
        self.interval = max(float(interval), 0.0)
        self.ticks = 0
        self._running = False
        self._in_tick = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def tick(self) -> bool:
        if self._in_tick:
            logger.debug("Tick skipped; previous tick still applying effects.")
            return False
        self._in_tick = True
        try:
            result = self.body()
            if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
                await result
            self.ticks += 1
        finally:
            self._in_tick = False
        return True

    async def run(self, max_ticks: Optional[int] = None) -> int:
        self._running = True
        try:
            while self._running:
                await self.tick()
                if max_ticks is not None and self.ticks >= max_ticks:
                    break
                await asyncio.sleep(self.interval)
        finally:
            self._running = False
        return self.ticks

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

