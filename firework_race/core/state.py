from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

from firework_race.core.types import Phase, WinReason


@dataclass(frozen=True, slots=True)
class Holder:
    """A token holder eligible to race. Only `handle` is ever broadcast."""

    handle: str
    address: str

    @classmethod
    def from_address(cls, address: str) -> Holder:
        if len(address) <= 8:
            return cls(handle=address, address=address)
        return cls(handle=f"{address[:4]}...{address[-4:]}", address=address)


@dataclass(slots=True)
class RacerState:
    id: int
    holder: Holder
    x: float
    speed: float
    drift: float
    wobble: float
    launch_delay: float
    max_height_m: float
    progress: float = 0.0
    height_m: float = 0.0
    exploded: bool = False
    exploded_at_m: float | None = None

    @property
    def repr(self) -> str:
        return f"{self.id}:{self.holder.handle}"

    @property
    def active(self) -> bool:
        return not self.exploded


@dataclass(order=True, slots=True)
class ScheduledAction:
    fire_at: float
    serial: int
    racer_id: int = field(compare=False)
    reason: str = field(compare=False, default="elimination")


@dataclass(slots=True)
class RoundState:
    number: int
    started_at: float
    countdown: int
    reward: float
    racers: list[RacerState]
    phase: Phase = "racing"
    winner_id: int | None = None
    win_reason: WinReason | None = None
    celebration_started_at: float | None = None
    camera_height: float = 0.0
    leader_id: int | None = None
    waves_fired: set[int] = field(default_factory=set)
    finalized: bool = False

    @property
    def active_racers(self) -> list[RacerState]:
        return [r for r in self.racers if r.active]

    @property
    def winner(self) -> RacerState | None:
        if self.winner_id is None:
            return None
        return self.get_racer(self.winner_id)

    def get_racer(self, racer_id: int) -> RacerState:
        for racer in self.racers:
            if racer.id == racer_id:
                return racer
        raise KeyError(racer_id)


@dataclass(slots=True)
class WinnerRecord:
    holder: Holder
    round: int
    reward: float
    height_m: int
    declared_at: float
    # None until the transfer resolves
    paid: bool | None = None


@dataclass(slots=True)
class PersistentStats:
    next_round: int = 1
    total_distributed: float = 0.0
    retention: int = 20
    winners: deque[WinnerRecord] = field(default_factory=deque)

    def __post_init__(self) -> None:
        self.winners = deque(self.winners, maxlen=self.retention)

    def record_winner(self, record: WinnerRecord) -> None:
        """Append the newest winner; the oldest falls off once retention is hit."""
        self.winners.append(record)
        self.total_distributed += record.reward

    def recent_winners(self, limit: int | None = None) -> list[WinnerRecord]:
        newest_first = list(reversed(self.winners))
        if limit is None:
            return newest_first
        return newest_first[:limit]
