"""
Reward claiming and winner payouts.

The coordinator wraps a `PaymentService` and absorbs every failure it
produces: a failed claim means a zero reward for the next round, a failed
transfer leaves the winner record marked unpaid. Neither ever reaches the
round engine.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING

from firework_race.core.errors import PaymentError
from firework_race.core.protocols import ClaimResult, TransferResult

if TYPE_CHECKING:
    from firework_race.core.protocols import PaymentService
    from firework_race.core.state import WinnerRecord
    from firework_race.core.types import ClaimStatus

logger = logging.getLogger("firework_race.payouts")


class PayoutCoordinator:
    def __init__(self, service: PaymentService) -> None:
        self.service: PaymentService = service
        self.claim_status: ClaimStatus = "idle"
        # Claimed but not yet handed to a round
        self.claimed_amount: float = 0.0

    async def claim(self) -> float:
        """Claim accrued rewards. Returns the amount claimed, 0.0 on failure."""
        if self.claim_status == "claiming":
            logger.warning("Reward claim already in flight; skipping")
            return 0.0

        self.claim_status = "claiming"
        try:
            result = await self.service.claim_reward()
        except Exception:
            logger.exception("Reward claim failed")
            self.claim_status = "failed"
            return 0.0

        if not result.ok:
            logger.warning("Reward claim failed: service reported no funds claimed")
            self.claim_status = "failed"
            return 0.0

        self.claimed_amount += result.amount
        self.claim_status = "claimed"
        logger.info("Claimed %.4f in rewards", result.amount)
        return result.amount

    def take_reward(self) -> float:
        """Hand everything claimed so far to the round that is about to start."""
        amount = self.claimed_amount
        self.claimed_amount = 0.0
        return amount

    async def distribute(self, record: WinnerRecord) -> bool:
        """Transfer a round's reward to its winner and mark the record."""
        if record.reward <= 0:
            logger.info("Round %d had no reward; nothing to transfer", record.round)
            record.paid = True
            return True

        try:
            result = await self.service.distribute(record.holder.address, record.reward)
        except Exception:
            logger.exception(
                "Transfer of %.4f to %s for round %d failed",
                record.reward,
                record.holder.handle,
                record.round,
            )
            record.paid = False
            return False

        record.paid = result.ok
        if result.ok:
            logger.info(
                "Sent %.4f to %s for round %d (%s)",
                record.reward,
                record.holder.handle,
                record.round,
                result.reference,
            )
        else:
            logger.error(
                "Transfer to %s for round %d failed; the record shows an unpaid reward",
                record.holder.handle,
                record.round,
            )
        return result.ok


class SimulatedPaymentService:
    """
    Stand-in for the on-chain payment network.

    Claims return a random amount and transfers hop through a number of
    intermediate wallets before reaching the winner. Either step fails with
    probability `failure_rate`.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        *,
        claim_range: tuple[float, float] = (0.5, 2.0),
        failure_rate: float = 0.0,
        latency: float = 0.2,
        hops: int = 3,
    ) -> None:
        self.rng: random.Random = rng or random.Random()
        self.claim_range: tuple[float, float] = claim_range
        self.failure_rate: float = failure_rate
        self.latency: float = latency
        self.hops: int = hops
        self._transfers: int = 0

    async def claim_reward(self) -> ClaimResult:
        await asyncio.sleep(self.latency)
        if self.rng.random() < self.failure_rate:
            raise PaymentError("claim rejected by payment network")
        return ClaimResult(ok=True, amount=round(self.rng.uniform(*self.claim_range), 4))

    async def distribute(self, winner_address: str, amount: float) -> TransferResult:
        self._transfers += 1
        for hop in range(1, self.hops + 1):
            await asyncio.sleep(self.latency / max(self.hops, 1))
            if self.rng.random() < self.failure_rate:
                raise PaymentError(f"transfer stalled at hop {hop} of {self.hops}")
            logger.debug("Transfer %d: hop %d/%d", self._transfers, hop, self.hops)
        _ = winner_address, amount
        return TransferResult(ok=True, reference=f"sim-{self._transfers:06d}")
