import asyncio
import random

import msgspec

from firework_race.core.errors import PaymentError, RosterUnavailable
from firework_race.core.protocols import ClaimResult
from firework_race.core.state import Holder, PersistentStats
from firework_race.engine.round_engine import RoundEngine
from firework_race.engine.scheduler import GameScheduler
from firework_race.persistence.stats_store import StatsStore
from firework_race.services.holders import StaticHolderSource
from firework_race.services.payouts import PayoutCoordinator
from firework_race.simulation.config import GameConfig
from tests.test_utils import WALL_CLOCK, FakeClock, FakePaymentService, RecordingBroadcaster

CONFIG = GameConfig(break_duration=3, claim_lead_ticks=1, round_duration=5, launch_delay_max=0.0)


class ScriptedHolders:
    """Returns scripted rosters; an exception in the script is raised instead."""

    def __init__(self, *responses: list[Holder] | Exception):
        self.responses = list(responses)
        self.calls = 0

    async def fetch_holders(self) -> list[Holder]:
        self.calls += 1
        outcome = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def roster(*handles: str) -> list[Holder]:
    return [Holder(handle=h, address=f"address-of-{h}") for h in handles]


def build(
    *,
    claims=None,
    transfers=None,
    holders=None,
    store: StatsStore | None = None,
    broadcaster=None,
    service: FakePaymentService | None = None,
):
    engine = RoundEngine(
        CONFIG,
        store.load() if store else PersistentStats(),
        random.Random(0),
        wall_clock=lambda: WALL_CLOCK,
    )
    service = service or FakePaymentService(claims, transfers)
    broadcaster = broadcaster or RecordingBroadcaster()
    scheduler = GameScheduler(
        engine,
        holders or StaticHolderSource(["7xKpAAAABBBB4mNw", "3fRtCCCCDDDD8jKl", "9mNpEEEEFFFF2xWq"]),
        PayoutCoordinator(service),
        broadcaster,
        store=store,
        clock=FakeClock(),
    )
    return scheduler, service, broadcaster


async def run_break(scheduler: GameScheduler) -> None:
    for _ in range(CONFIG.break_duration):
        await scheduler.countdown_tick()
        await scheduler.drain()


def test_start_claims_and_announces_the_first_round():
    async def play():
        scheduler, service, broadcaster = build(claims=[ClaimResult(ok=True, amount=1.5)])
        await scheduler.start()
        await scheduler.drain()
        return scheduler, service, broadcaster

    scheduler, service, broadcaster = asyncio.run(play())

    assert scheduler.engine.phase == "racing"
    assert scheduler.engine.round.reward == 1.5
    assert service.claim_calls == 1
    new_round = broadcaster.last("newRound")
    assert new_round["round"] == 1
    assert new_round["phase"] == "racing"
    assert new_round["claimStatus"] == "claimed"
    assert len(new_round["racers"]) == 3


def test_scenario_d_failed_claim_zeroes_the_next_round():
    async def play():
        scheduler, service, broadcaster = build(
            claims=[ClaimResult(ok=True, amount=1.5), PaymentError("rpc down")],
        )
        await scheduler.start()
        scheduler.engine.expire()
        await scheduler.drain()
        await run_break(scheduler)
        await scheduler.broadcast_tick()
        return scheduler, service, broadcaster

    scheduler, service, broadcaster = asyncio.run(play())

    assert service.claim_calls == 2
    assert scheduler.engine.round.number == 2
    assert scheduler.engine.round.reward == 0.0
    for event in ("newRound", "gameState"):
        state = broadcaster.last(event)
        assert state["round"] == 2
        assert state["claimStatus"] == "failed"
        assert state["reward"] == 0.0


def test_round_end_pushes_results_and_pays_the_winner():
    async def play():
        scheduler, service, broadcaster = build(claims=[ClaimResult(ok=True, amount=1.5)])
        await scheduler.start()
        scheduler.engine.expire()
        await scheduler.drain()
        return scheduler, service, broadcaster

    scheduler, service, broadcaster = asyncio.run(play())

    ended = broadcaster.last("roundEnded")
    assert ended["round"] == 1
    assert ended["reward"] == 1.5
    assert ended["winner"]["handle"] == "7xKp...4mNw"
    assert broadcaster.last("winners")[0]["round"] == 1
    assert service.transfer_calls == [("7xKpAAAABBBB4mNw", 1.5)]
    assert scheduler.engine.stats.recent_winners()[0].paid is True


def test_failed_distribution_is_recorded_and_persisted(tmp_path):
    store = StatsStore(tmp_path / "stats.db")

    async def play():
        scheduler, _, _ = build(
            claims=[ClaimResult(ok=True, amount=1.5)],
            transfers=[PaymentError("hop 2 failed")],
            store=store,
        )
        await scheduler.start()
        scheduler.engine.expire()
        await scheduler.drain()
        return scheduler

    scheduler = asyncio.run(play())

    assert scheduler.engine.phase == "ended"
    saved = StatsStore(tmp_path / "stats.db").load()
    assert saved.next_round == 2
    assert saved.total_distributed == 1.5
    assert saved.recent_winners()[0].paid is False


def test_unavailable_roster_keeps_the_break_and_retries():
    holders = ScriptedHolders(roster("a", "b"), RosterUnavailable("indexer down"), roster("c"))

    async def play():
        scheduler, _, _ = build(holders=holders)
        await scheduler.start()
        first = scheduler.engine.round
        scheduler.engine.expire()
        await run_break(scheduler)
        stuck = (scheduler.engine.round is first, scheduler.engine.phase)
        await scheduler.countdown_tick()
        return scheduler, stuck

    scheduler, stuck = asyncio.run(play())

    assert stuck == (True, "ended")
    assert holders.calls == 3
    assert scheduler.engine.phase == "racing"
    assert scheduler.engine.round.number == 2
    assert [r.holder.handle for r in scheduler.engine.round.racers] == ["c"]


def test_claimed_funds_survive_a_failed_roster_fetch():
    holders = ScriptedHolders(RosterUnavailable("indexer down"), roster("a"))

    async def play():
        scheduler, _, _ = build(claims=[ClaimResult(ok=True, amount=0.8)], holders=holders)
        await scheduler.start()
        idle_phase = scheduler.engine.phase
        await scheduler.countdown_tick()
        return scheduler, idle_phase

    scheduler, idle_phase = asyncio.run(play())

    assert idle_phase == "idle"
    assert scheduler.engine.round.reward == 0.8


def test_countdown_drives_the_round_clock_to_timeout():
    async def play():
        scheduler, _, _ = build()
        await scheduler.start()
        for _ in range(CONFIG.round_duration):
            await scheduler.countdown_tick()
        await scheduler.drain()
        return scheduler

    scheduler = asyncio.run(play())

    assert scheduler.engine.round.countdown == 0
    assert scheduler.engine.phase == "ended"
    assert scheduler.engine.round.win_reason == "timeout"


def test_physics_tick_uses_the_scheduler_clock():
    async def play():
        scheduler, _, _ = build()
        await scheduler.start()
        scheduler.clock.now = 0.5
        scheduler.physics_tick()
        return scheduler

    scheduler = asyncio.run(play())

    assert all(r.progress > 0 for r in scheduler.engine.round.racers)


def test_broadcast_is_skipped_before_the_first_round():
    async def play():
        scheduler, _, broadcaster = build()
        await scheduler.broadcast_tick()
        return broadcaster

    assert asyncio.run(play()).messages == []


def test_greeting_carries_state_and_history():
    async def play():
        scheduler, _, _ = build()
        await scheduler.start()
        return scheduler.greeting_messages()

    greeting = asyncio.run(play())

    assert [msgspec.json.decode(m)["event"] for m in greeting] == ["gameState", "winners"]
    assert all(b"AAAABBBB" not in m for m in greeting)


def test_observer_failures_never_reach_the_engine():
    class BrokenBroadcaster:
        async def publish(self, event, message):
            raise ConnectionError("socket gone")

    async def play():
        scheduler, _, _ = build(broadcaster=BrokenBroadcaster())
        await scheduler.start()
        scheduler.engine.expire()
        await scheduler.drain()
        return scheduler

    scheduler = asyncio.run(play())

    assert scheduler.engine.phase == "ended"
    assert len(scheduler.engine.stats.winners) == 1


class HeldTransfers(FakePaymentService):
    """Transfers wait until the test releases them."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def distribute(self, winner_address: str, amount: float):
        await self.release.wait()
        return await super().distribute(winner_address, amount)


def test_late_payout_does_not_persist_the_running_round(tmp_path):
    store = StatsStore(tmp_path / "stats.db")

    async def play():
        service = HeldTransfers()
        scheduler, _, _ = build(store=store, service=service)
        await scheduler.start()
        scheduler.engine.expire()
        await asyncio.sleep(0)
        assert await scheduler.start_round()
        service.release.set()
        await scheduler.drain()
        return scheduler

    scheduler = asyncio.run(play())

    assert scheduler.engine.round.number == 2
    assert scheduler.engine.phase == "racing"
    saved = StatsStore(tmp_path / "stats.db").load()
    assert saved.next_round == 2
    assert saved.recent_winners()[0].paid is True
