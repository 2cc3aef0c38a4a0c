from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from firework_race.core.protocols import NullHooks
from firework_race.core.state import RoundState, WinnerRecord
from firework_race.engine.elimination import schedule_due_waves
from firework_race.engine.pending import PendingActions
from firework_race.engine.racer import advance, create_racer, explode, has_launched

if TYPE_CHECKING:
    import random

    from firework_race.core.protocols import EngineHooks
    from firework_race.core.state import Holder, PersistentStats, RacerState
    from firework_race.core.types import PhaseTag, WinReason
    from firework_race.simulation.config import GameConfig

logger = logging.getLogger("firework_race.engine")


def highest(racers: Sequence[RacerState]) -> RacerState:
    """Greatest height-progress; the first in roster order wins a tie."""
    return max(racers, key=lambda r: r.progress)


class RoundEngine:
    """
    Owns the current round and drives it through racing -> celebrating -> ended.

    Physics advances through `tick`, the round clock through `countdown_tick`
    and the break clock through `break_tick`. Starting the next round is left
    to the caller since it needs a fresh roster.
    """

    def __init__(
        self,
        config: GameConfig,
        stats: PersistentStats,
        rng: random.Random,
        hooks: EngineHooks | None = None,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.config: GameConfig = config
        self.stats: PersistentStats = stats
        self.rng: random.Random = rng
        self.hooks: EngineHooks = hooks or NullHooks()
        self.wall_clock: Callable[[], float] = wall_clock

        self.round: RoundState | None = None
        self.pending: PendingActions = PendingActions()
        self.break_remaining: int = 0

    # ---------- Queries ----------

    @property
    def phase(self) -> PhaseTag:
        if self.round is None:
            return "idle"
        return self.round.phase

    @property
    def round_number(self) -> int | None:
        return self.round.number if self.round else None

    # ---------- Round start ----------

    def start_round(self, roster: Sequence[Holder], reward: float, now: float) -> bool:
        """
        Begin a new round with one racer per holder.

        Returns False without touching the current state when the roster is
        empty or the current round has not ended yet.
        """
        if not roster:
            logger.warning(
                "Refusing to start round %d: roster is empty",
                self.stats.next_round,
            )
            return False

        previous = self.round
        if previous is not None and previous.phase != "ended":
            logger.warning(
                "Refusing to start round %d while round %d is still %s",
                self.stats.next_round,
                previous.number,
                previous.phase,
            )
            return False
        if previous is not None and previous.winner_id is None:
            logger.warning(
                "Round %d ended without a winner; discarding it without payout",
                previous.number,
            )

        holders = list(roster)
        if len(holders) > self.config.max_racers:
            picks = sorted(self.rng.sample(range(len(holders)), self.config.max_racers))
            holders = [holders[i] for i in picks]

        racers = [
            create_racer(idx, holder, idx, len(holders), rng=self.rng, config=self.config)
            for idx, holder in enumerate(holders)
        ]

        number = self.stats.next_round
        self.stats.next_round += 1
        self.round = RoundState(
            number=number,
            started_at=now,
            countdown=self.config.round_duration,
            reward=reward,
            racers=racers,
        )
        self.pending.clear()
        self.break_remaining = 0

        logger.info(
            "Round %d started with %d racers (reward %.4f)",
            number,
            len(racers),
            reward,
        )
        self.hooks.on_round_started(self.round)
        return True

    # ---------- Physics ----------

    def tick(self, now: float) -> None:
        rs = self.round
        if rs is None or rs.phase == "ended":
            return

        elapsed = now - rs.started_at
        if rs.phase == "racing":
            self._tick_racing(rs, now, elapsed)
        else:
            self._tick_celebrating(rs, now, elapsed)

    def _tick_racing(self, rs: RoundState, now: float, elapsed: float) -> None:
        schedule_due_waves(rs, self.pending, elapsed=elapsed, now=now, config=self.config)
        for action in self.pending.drain(now):
            racer = rs.get_racer(action.racer_id)
            if explode(racer):
                logger.info(
                    "Racer %s exploded by %s at %.0fm",
                    racer.repr,
                    action.reason,
                    racer.height_m,
                )

        for racer in rs.racers:
            advance(racer, elapsed, self.config)

        alive = rs.active_racers
        if alive:
            leader = highest(alive)
            rs.leader_id = leader.id
            self._follow(rs, leader, self.config.camera_smoothing)

        self._check_win(rs, alive, now)

    def _tick_celebrating(self, rs: RoundState, now: float, elapsed: float) -> None:
        winner = rs.winner
        if winner is None:
            logger.error("Round %d is celebrating without a winner", rs.number)
            return

        advance(winner, elapsed, self.config, allow_self_destruct=False)
        rs.leader_id = winner.id
        self._follow(rs, winner, self.config.celebration_camera_smoothing)

        started = rs.celebration_started_at if rs.celebration_started_at is not None else now
        if now - started >= self.config.celebration_duration:
            self._finalize(rs)

    def _follow(self, rs: RoundState, target: RacerState, factor: float) -> None:
        rs.camera_height += (target.progress - rs.camera_height) * factor

    # ---------- Win conditions ----------

    def _check_win(self, rs: RoundState, alive: list[RacerState], now: float) -> None:
        finish = self.config.finish_height_m
        finishers = [r for r in alive if r.height_m >= finish]
        if finishers:
            self._celebrate(rs, highest(finishers), now, "finish")
            return

        if len(alive) == 1:
            survivor = alive[0]
            # A lone starter has to get off the ground before it can win
            if len(rs.racers) > 1 or has_launched(survivor):
                self._celebrate(rs, survivor, now, "survivor")
            return

        if not alive:
            self._end_directly(rs, highest(rs.racers), "wipeout")

    def countdown_tick(self) -> None:
        """One second of round clock. Zero always ends the round within this call."""
        rs = self.round
        if rs is None or rs.phase != "racing":
            return

        rs.countdown = max(0, rs.countdown - 1)
        if rs.countdown == 0:
            self.expire()

    def expire(self) -> None:
        """Countdown reached zero: the highest racer so far wins outright."""
        rs = self.round
        if rs is None or rs.phase != "racing":
            return
        rs.countdown = 0
        self._end_directly(rs, highest(rs.racers), "timeout")

    def break_tick(self) -> int:
        """One second of break clock. Returns the seconds left before the next round."""
        if self.phase != "ended":
            return self.break_remaining
        self.break_remaining = max(0, self.break_remaining - 1)
        return self.break_remaining

    # ---------- Transitions ----------

    def _declare(self, rs: RoundState, winner: RacerState, reason: WinReason) -> bool:
        if rs.winner_id is not None:
            logger.warning(
                "Round %d already has winner %d; ignoring %s claim by %s",
                rs.number,
                rs.winner_id,
                reason,
                winner.repr,
            )
            return False
        rs.winner_id = winner.id
        rs.win_reason = reason
        for racer in rs.racers:
            if racer is not winner:
                explode(racer)
        self.pending.clear()
        return True

    def _celebrate(self, rs: RoundState, winner: RacerState, now: float, reason: WinReason) -> None:
        if not self._declare(rs, winner, reason):
            return
        rs.phase = "celebrating"
        rs.celebration_started_at = now
        logger.info(
            "Winner %s at %.0fm (%s); celebrating",
            winner.repr,
            winner.height_m,
            reason,
        )

    def _end_directly(self, rs: RoundState, winner: RacerState, reason: WinReason) -> None:
        if not self._declare(rs, winner, reason):
            return
        logger.info("Winner %s at %.0fm (%s)", winner.repr, winner.height_m, reason)
        self._finalize(rs)

    def _finalize(self, rs: RoundState) -> None:
        winner = rs.winner
        if rs.finalized or winner is None:
            logger.warning("Round %d cannot be finalized twice or without a winner", rs.number)
            return

        for racer in rs.racers:
            explode(racer)
        rs.phase = "ended"
        rs.finalized = True
        self.pending.clear()

        record = WinnerRecord(
            holder=winner.holder,
            round=rs.number,
            reward=rs.reward,
            height_m=int(winner.height_m),
            declared_at=self.wall_clock(),
        )
        self.stats.record_winner(record)
        self.break_remaining = self.config.break_duration

        logger.info(
            "Round %d ended: %s wins %.4f at %dm",
            rs.number,
            winner.holder.handle,
            rs.reward,
            record.height_m,
        )
        self.hooks.on_round_ended(rs, record)
