from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from firework_race.core.state import Holder, RoundState, WinnerRecord
    from firework_race.core.types import EventName


@dataclass(frozen=True, slots=True)
class ClaimResult:
    ok: bool
    amount: float = 0.0


@dataclass(frozen=True, slots=True)
class TransferResult:
    ok: bool
    reference: str | None = None


@runtime_checkable
class HolderSource(Protocol):
    """Supplies the eligible contestants for a round."""

    async def fetch_holders(self) -> list[Holder]: ...


@runtime_checkable
class PaymentService(Protocol):
    """
    Claims reward funds and transfers them to a winner.

    Either call may return a failed result or raise; callers must treat both
    the same way.
    """

    async def claim_reward(self) -> ClaimResult: ...
    async def distribute(self, winner_address: str, amount: float) -> TransferResult: ...


@runtime_checkable
class StateBroadcaster(Protocol):
    """Pushes JSON-serializable state to every connected observer."""

    async def publish(self, event: EventName, message: bytes) -> None: ...


class EngineHooks(Protocol):
    """Notifications the engine emits on round boundaries."""

    def on_round_started(self, round_state: RoundState) -> None: ...
    def on_round_ended(self, round_state: RoundState, record: WinnerRecord) -> None: ...


class NullHooks:
    def on_round_started(self, round_state: RoundState) -> None:
        _ = round_state

    def on_round_ended(self, round_state: RoundState, record: WinnerRecord) -> None:
        _ = round_state, record
