from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from firework_race.core.state import RoundState
    from firework_race.engine.pending import PendingActions
    from firework_race.simulation.config import GameConfig

logger = logging.getLogger("firework_race.engine")


def schedule_due_waves(
    round_state: RoundState,
    pending: PendingActions,
    *,
    elapsed: float,
    now: float,
    config: GameConfig,
) -> int:
    """
    Queue staggered explosions for every wave whose start time has passed.

    Each wave fires at most once per round. Racers are ranked by height,
    ties broken by roster order, and everyone below the top `keep` is queued
    lowest first. Returns the number of queued explosions.
    """
    queued = 0
    for idx, wave in enumerate(config.elimination_waves):
        if idx in round_state.waves_fired or elapsed < wave.at:
            continue
        round_state.waves_fired.add(idx)

        alive = round_state.active_racers
        if len(alive) <= wave.keep:
            continue

        # Stable sort keeps roster order among equal heights
        ranked = sorted(alive, key=lambda r: r.progress, reverse=True)
        doomed = list(reversed(ranked[wave.keep :]))
        for step, racer in enumerate(doomed):
            pending.schedule(now + step * wave.stagger, racer.id)
        queued += len(doomed)

        logger.info(
            "Elimination wave %d: keeping %d of %d racers, %d exploding",
            idx + 1,
            wave.keep,
            len(alive),
            len(doomed),
        )
    return queued
