"""
Racer lifecycle: creation, per-tick climb and forced detonation.

The termination threshold drawn in `create_racer` is the only source of
randomness that decides when a racer detonates. Wobble and drift only move
the racer sideways.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from firework_race.core.state import Holder, RacerState

if TYPE_CHECKING:
    import random

    from firework_race.simulation.config import GameConfig

logger = logging.getLogger("firework_race.engine")

WOBBLE_STEP = 0.05


def draw_max_height(rng: random.Random, config: GameConfig) -> float:
    """Pick a detonation height from the contender or the early-exit band."""
    if rng.random() < config.contender_fraction:
        low, high = config.contender_band_m
    else:
        low, high = config.early_band_m
    return rng.uniform(low, high)


def create_racer(
    racer_id: int,
    holder: Holder,
    lane: int,
    total_lanes: int,
    *,
    rng: random.Random,
    config: GameConfig,
) -> RacerState:
    return RacerState(
        id=racer_id,
        holder=holder,
        x=(lane + 0.5) / total_lanes,
        speed=rng.uniform(config.base_speed_min, config.base_speed_max),
        drift=rng.uniform(-config.drift_max, config.drift_max),
        wobble=rng.uniform(0.0, 2 * math.pi),
        launch_delay=rng.uniform(0.0, config.launch_delay_max),
        max_height_m=draw_max_height(rng, config),
    )


def self_destructs(racer: RacerState, config: GameConfig) -> bool:
    """Racers whose threshold sits at or above the finish line never self-explode."""
    return racer.max_height_m < config.finish_height_m


def advance(
    racer: RacerState,
    elapsed: float,
    config: GameConfig,
    *,
    allow_self_destruct: bool = True,
) -> bool:
    """
    Move one racer forward by a single physics tick.

    Returns True when the racer moved. `elapsed` is seconds since the round
    started; nothing happens until the racer's own launch delay has passed.
    A declared winner climbs with `allow_self_destruct=False` so its threshold
    no longer applies.
    """
    if racer.exploded or elapsed < racer.launch_delay:
        return False

    racer.progress += racer.speed
    racer.speed = min(racer.speed * config.acceleration, config.max_speed)

    racer.wobble += WOBBLE_STEP
    x = racer.x + racer.drift + math.sin(racer.wobble) * config.wobble_amplitude
    racer.x = max(config.lane_margin, min(1.0 - config.lane_margin, x))

    racer.height_m = racer.progress * config.meters_per_unit

    if allow_self_destruct and self_destructs(racer, config) and racer.height_m >= racer.max_height_m:
        explode(racer)
        logger.debug(
            "Racer %s exploded at %.0fm (limit %.0fm)",
            racer.repr,
            racer.height_m,
            racer.max_height_m,
        )
    return True


def explode(racer: RacerState) -> bool:
    """Idempotent detonation. Returns True only on the first call."""
    if racer.exploded:
        return False
    racer.exploded = True
    racer.exploded_at_m = racer.height_m
    return True


def has_launched(racer: RacerState) -> bool:
    return racer.progress > 0.0
