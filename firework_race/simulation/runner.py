"""Run rounds on a virtual clock, without timers or a network."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from firework_race.core.state import Holder
    from firework_race.core.types import WinReason
    from firework_race.engine.round_engine import RoundEngine


@dataclass(slots=True)
class RoundOutcome:
    round: int
    racer_count: int
    winner_id: int
    winner_handle: str
    height_m: int
    reason: WinReason | None
    duration: float
    physics_ticks: int


def run_headless_round(
    engine: RoundEngine,
    roster: Sequence[Holder],
    reward: float,
    *,
    start: float = 0.0,
) -> RoundOutcome | None:
    """
    Play one full round, including its break, as fast as possible.

    Physics ticks at the configured rate and the countdown fires every
    `countdown_interval` of virtual time, matching the live scheduler.
    Returns None when the engine refuses to start the round.
    """
    config = engine.config
    if not engine.start_round(roster, reward, start):
        return None

    rs = engine.round
    assert rs is not None

    dt = config.physics_interval
    ticks_per_countdown = max(1, round(config.countdown_interval / dt))
    now = start
    ticks = 0
    while rs.phase != "ended":
        ticks += 1
        now = start + ticks * dt
        engine.tick(now)
        if ticks % ticks_per_countdown == 0:
            engine.countdown_tick()

    while engine.break_tick() > 0:
        pass

    winner = rs.winner
    assert winner is not None
    return RoundOutcome(
        round=rs.number,
        racer_count=len(rs.racers),
        winner_id=winner.id,
        winner_handle=winner.holder.handle,
        height_m=int(winner.height_m),
        reason=rs.win_reason,
        duration=now - start,
        physics_ticks=ticks,
    )
