from __future__ import annotations

import logging
from collections.abc import Iterable

from firework_race.core.errors import RosterUnavailable
from firework_race.core.state import Holder

logger = logging.getLogger("firework_race.holders")

DEMO_WALLETS: tuple[str, ...] = (
    "7xKp4mNw", "3fRt8jKl", "9mNp2xWq", "5kLm7yZa",
    "2pQr9sBt", "8tUv3nCd", "4wXy6mEf", "1aZb5hGi",
    "Fm3nJ7kP", "Lx9oW2yA", "Hp6qZ8dB", "Nv4rS3fC",
    "Qy1tU5gD", "Sw8uV6hE", "Ux5vW7iF", "Wz2wX8jG",
    "Bk7mR4pL", "Cn9sT6qN",
)  # fmt: skip


class StaticHolderSource:
    """Serves a fixed list of holder addresses; used for demos and tests."""

    def __init__(self, addresses: Iterable[str] = DEMO_WALLETS) -> None:
        self.holders: list[Holder] = [Holder.from_address(a) for a in addresses]

    async def fetch_holders(self) -> list[Holder]:
        if not self.holders:
            raise RosterUnavailable("no holders configured")
        logger.debug("Serving %d static holders", len(self.holders))
        return list(self.holders)
