import asyncio

import pytest

from maplewood.acts import ACT_TITLES
from maplewood.settings import Settings
from maplewood.timekeeping import GameClock, TickLoop, format_clock, time_of_day_for


@pytest.mark.parametrize(
    ("minutes", "block"),
    [(0, "night"), (359, "night"), (360, "morning"), (719, "morning"), (720, "afternoon"),
     (1019, "afternoon"), (1020, "evening"), (1199, "evening"), (1200, "night")],
)
def test_time_blocks(minutes: int, block: str) -> None:
    assert time_of_day_for(minutes) == block


def test_clock_reports_block_changes_and_wraps_days() -> None:
    clock = GameClock(710)
    assert clock.advance(0) is None
    assert clock.advance(15) == ("morning", "afternoon")

    late = GameClock(1430)
    assert late.advance(20) is None
    assert (late.minutes, late.day) == (10, 2)
    assert format_clock(late.minutes) == "12:10 AM"
    assert format_clock(780) == "1:00 PM"


def test_acts_advance_through_every_threshold_crossed(make_state, events) -> None:
    state = make_state()
    assert state.acts.title == ACT_TITLES[1]

    state.adjust_trust("mrs_finch", 65)

    assert state.act == 4
    titles = [n.split("\n")[0] for n in events.notifications if n.startswith("Act ")]
    assert titles == [ACT_TITLES[2], ACT_TITLES[3], ACT_TITLES[4]]
    assert state.acts.can_conclude()


def test_acts_never_regress(make_state) -> None:
    state = make_state()
    state.adjust_trust("mrs_finch", 25)
    assert state.act == 2
    state.adjust_trust("mrs_finch", -100)
    assert state.act == 2
    state.acts.restore(9)
    assert state.act == 4


def test_act_clue_minimums_hold_progression(make_state) -> None:
    state = make_state(act_clue_minimums={2: 2})
    state.adjust_trust("mrs_finch", 25)
    assert state.act == 1
    state.collect_clue("A")
    state.collect_clue("B")
    assert state.act == 2


def test_skip_to_respects_act_reachability(make_state, events) -> None:
    state = make_state()
    assert not state.skip_to("night")
    assert state.skip_to("afternoon")
    assert state.clock.minutes == 720
    assert events.time_changes == [("morning", "afternoon")]

    assert state.skip_to("morning")
    assert (state.clock.minutes, state.clock.day) == (360, 2)


def test_tick_loop_runs_serialised_ticks() -> None:
    calls = []
    loop = TickLoop(lambda: calls.append(len(calls)), interval=0)
    assert asyncio.run(loop.run(max_ticks=3)) == 3
    assert calls == [0, 1, 2]
    assert not loop.running


def test_tick_loop_refuses_overlapping_ticks() -> None:
    results = []

    async def body() -> None:
        results.append(await loop.tick())

    loop = TickLoop(body, interval=0)
    asyncio.run(loop.tick())
    assert results == [False]
    assert loop.ticks == 1


def test_tick_loop_stops_on_request() -> None:
    async def scenario() -> int:
        loop = TickLoop(lambda: None, interval=0.01)
        loop.start()
        await asyncio.sleep(0.05)
        await loop.stop()
        return loop.ticks

    assert asyncio.run(scenario()) >= 1


def test_state_ticks_advance_the_clock(make_state, events) -> None:
    state = make_state(settings=Settings(minutes_per_tick=60, tick_interval=0.01))
    asyncio.run(state.make_tick_loop().run(max_ticks=6))
    assert state.clock.minutes == 720
    assert events.time_changes == [("morning", "afternoon")]
