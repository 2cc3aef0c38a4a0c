"""
Wire shapes pushed to observers.

Everything here is a read-only projection of engine state. Holder addresses
never leave the server: only display handles are broadcast.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

import msgspec

from firework_race.core.types import ClaimStatus, EventName, PhaseTag

if TYPE_CHECKING:
    from firework_race.core.state import RacerState, WinnerRecord
    from firework_race.engine.round_engine import RoundEngine


class RacerView(msgspec.Struct, rename="camel", frozen=True):
    id: int
    handle: str
    x: float
    progress: float
    exploded: bool
    height_m: int


class WinnerView(msgspec.Struct, rename="camel", frozen=True):
    handle: str
    round: int
    reward: float
    height_m: int
    timestamp: float
    paid: bool | None = None


class GameSnapshot(msgspec.Struct, rename="camel", frozen=True):
    round: int | None
    countdown: int
    break_remaining: int
    reward: float
    total_distributed: float
    phase: PhaseTag
    racers: list[RacerView]
    winner: RacerView | None
    winners: list[WinnerView]
    camera_height: float
    leader_id: int | None
    claim_status: ClaimStatus


class RoundEndedPayload(msgspec.Struct, rename="camel", frozen=True):
    round: int
    winner: RacerView
    reward: float


class Envelope(msgspec.Struct, frozen=True):
    event: str
    data: Any


def snapshot(racer: RacerState) -> RacerView:
    return RacerView(
        id=racer.id,
        handle=racer.holder.handle,
        x=racer.x,
        progress=racer.progress,
        exploded=racer.exploded,
        height_m=math.floor(racer.height_m),
    )


def winner_view(record: WinnerRecord) -> WinnerView:
    return WinnerView(
        handle=record.holder.handle,
        round=record.round,
        reward=record.reward,
        height_m=record.height_m,
        timestamp=record.declared_at,
        paid=record.paid,
    )


def winner_history(engine: RoundEngine, limit: int | None = None) -> list[WinnerView]:
    return [winner_view(r) for r in engine.stats.recent_winners(limit)]


def build_snapshot(engine: RoundEngine, claim_status: ClaimStatus = "idle") -> GameSnapshot:
    rs = engine.round
    stats = engine.stats
    history = winner_history(engine, engine.config.broadcast_history)

    if rs is None:
        return GameSnapshot(
            round=None,
            countdown=engine.config.round_duration,
            break_remaining=engine.break_remaining,
            reward=0.0,
            total_distributed=stats.total_distributed,
            phase="idle",
            racers=[],
            winner=None,
            winners=history,
            camera_height=0.0,
            leader_id=None,
            claim_status=claim_status,
        )

    winner = rs.winner
    return GameSnapshot(
        round=rs.number,
        countdown=rs.countdown,
        break_remaining=engine.break_remaining,
        reward=rs.reward,
        total_distributed=stats.total_distributed,
        phase=rs.phase,
        racers=[snapshot(r) for r in rs.racers],
        winner=snapshot(winner) if winner else None,
        winners=history,
        camera_height=rs.camera_height,
        leader_id=rs.leader_id,
        claim_status=claim_status,
    )


def encode_event(event: EventName, data: object) -> bytes:
    return msgspec.json.encode(Envelope(event=event, data=data))
