"""
The process-wide game loop.

Three independent timers share one `RoundEngine` on a single asyncio event
loop: physics, broadcast and the one-second countdown. Callbacks never
overlap, so engine state needs no locking. Payment calls and pushes to
observers run as background tasks and never hold up a tick.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Coroutine
from typing import TYPE_CHECKING, Any

from firework_race.core.errors import RosterUnavailable
from firework_race.engine.views import (
    RoundEndedPayload,
    build_snapshot,
    encode_event,
    snapshot,
    winner_history,
)

if TYPE_CHECKING:
    from firework_race.core.protocols import HolderSource, StateBroadcaster
    from firework_race.core.state import RoundState, WinnerRecord
    from firework_race.core.types import EventName
    from firework_race.engine.round_engine import RoundEngine
    from firework_race.engine.views import GameSnapshot
    from firework_race.persistence.stats_store import StatsStore
    from firework_race.services.payouts import PayoutCoordinator

logger = logging.getLogger("firework_race.scheduler")


class GameScheduler:
    def __init__(
        self,
        engine: RoundEngine,
        holders: HolderSource,
        payouts: PayoutCoordinator,
        broadcaster: StateBroadcaster,
        store: StatsStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.engine: RoundEngine = engine
        self.config = engine.config
        self.holders: HolderSource = holders
        self.payouts: PayoutCoordinator = payouts
        self.broadcaster: StateBroadcaster = broadcaster
        self.store: StatsStore | None = store
        self.clock: Callable[[], float] = clock

        self._tasks: set[asyncio.Task[None]] = set()
        self._starting: bool = False
        engine.hooks = self

    # ---------- Public state ----------

    def snapshot(self) -> GameSnapshot:
        return build_snapshot(self.engine, self.payouts.claim_status)

    def greeting_messages(self) -> list[bytes]:
        """What a freshly connected observer receives before the next broadcast."""
        return [
            encode_event("gameState", self.snapshot()),
            encode_event("winners", winner_history(self.engine)),
        ]

    # ---------- Timers ----------

    def physics_tick(self) -> None:
        self.engine.tick(self.clock())

    async def broadcast_tick(self) -> None:
        if self.engine.phase == "idle":
            return
        # Encode before awaiting so the push reflects one completed physics tick
        message = encode_event("gameState", self.snapshot())
        await self.broadcaster.publish("gameState", message)

    async def countdown_tick(self) -> None:
        phase = self.engine.phase
        if phase == "racing":
            self.engine.countdown_tick()
        elif phase == "idle":
            await self.start_round()
        elif phase == "ended":
            remaining = self.engine.break_tick()
            if remaining == self.config.claim_lead_ticks:
                self._spawn(self._claim(), "reward claim")
            if remaining == 0:
                await self.start_round()

    async def start_round(self) -> bool:
        """Fetch a roster and start the next round. False leaves the engine as it was."""
        if self._starting:
            return False
        self._starting = True
        try:
            try:
                roster = await self.holders.fetch_holders()
            except RosterUnavailable as exc:
                logger.warning(f"Roster unavailable: {exc}; retrying next tick")
                return False
            except Exception:
                logger.exception("Holder source failed; retrying next tick")
                return False

            reward = self.payouts.take_reward()
            started = self.engine.start_round(roster, reward, self.clock())
            if not started:
                # Keep the funds for whichever round does start
                self.payouts.claimed_amount += reward
            return started
        finally:
            self._starting = False

    # ---------- Engine hooks ----------

    def on_round_started(self, round_state: RoundState) -> None:
        _ = round_state
        self._publish("newRound", self.snapshot())

    def on_round_ended(self, round_state: RoundState, record: WinnerRecord) -> None:
        winner = round_state.winner
        if winner is not None:
            self._publish(
                "roundEnded",
                RoundEndedPayload(round=round_state.number, winner=snapshot(winner), reward=record.reward),
            )
        self._publish("winners", winner_history(self.engine))
        self._save()
        self._spawn(self._distribute(record), f"payout for round {record.round}")

    # ---------- Background work ----------

    async def _claim(self) -> None:
        await self.payouts.claim()

    async def _distribute(self, record: WinnerRecord) -> None:
        await self.payouts.distribute(record)
        # The next round may already be running, so only the flag is written
        if self.store is not None:
            self.store.save_payout(record)

    def _save(self) -> None:
        if self.store is not None:
            self.store.save(self.engine.stats)

    def _publish(self, event: EventName, data: object) -> None:
        message = encode_event(event, data)
        self._spawn(self.broadcaster.publish(event, message), f"{event} push")

    def _spawn(self, coro: Coroutine[Any, Any, None], what: str) -> None:
        task = asyncio.get_running_loop().create_task(self._guard(coro, what))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guard(self, coro: Awaitable[None], what: str) -> None:
        try:
            await coro
        except Exception:
            logger.exception(f"Background {what} failed")

    async def drain(self) -> None:
        """Wait for every in-flight background task."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # ---------- Main loop ----------

    async def start(self) -> None:
        """Claim an opening reward and start the first round."""
        await self.payouts.claim()
        await self.start_round()

    async def run(self) -> None:
        await self.start()
        await asyncio.gather(
            self._every(self.config.physics_interval, self._physics),
            self._every(self.config.broadcast_interval, self.broadcast_tick),
            self._every(self.config.countdown_interval, self.countdown_tick),
        )

    async def _physics(self) -> None:
        self.physics_tick()

    async def _every(self, interval: float, callback: Callable[[], Awaitable[None]]) -> None:
        while True:
            try:
                await callback()
            except Exception:
                logger.exception(f"Timer callback {callback.__name__} failed")
            await asyncio.sleep(interval)
