"""Command-line interface: run the live server or simulate rounds offline."""

from __future__ import annotations

import asyncio
import logging
import random
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import cappa
import websockets
from tqdm import tqdm

from firework_race.core.state import Holder, PersistentStats
from firework_race.engine.logging import configure_logging
from firework_race.engine.round_engine import RoundEngine
from firework_race.engine.scheduler import GameScheduler
from firework_race.persistence.stats_store import StatsStore
from firework_race.services.broadcast import WebSocketBroadcaster
from firework_race.services.holders import DEMO_WALLETS, StaticHolderSource
from firework_race.services.payouts import PayoutCoordinator, SimulatedPaymentService
from firework_race.simulation.config import GameConfig
from firework_race.simulation.runner import run_headless_round

logger = logging.getLogger("firework_race")


def load_config(path: Path | None) -> GameConfig | None:
    if path is None:
        return GameConfig()
    if not path.exists():
        print(f"Error: Config file not found: {path}", file=sys.stderr)
        return None
    return GameConfig.from_toml(path)


@dataclass
class Serve:
    """Run the game server and push state to browsers over WebSockets."""

    config: Annotated[Path | None, cappa.Arg(long=True)] = None
    """Path to TOML configuration file"""

    host: Annotated[str | None, cappa.Arg(long=True)] = None
    """Override: interface to listen on"""

    port: Annotated[int | None, cappa.Arg(long=True)] = None
    """Override: WebSocket port"""

    log_level: Annotated[str, cappa.Arg(long=True)] = "INFO"
    """Logging level"""

    def __call__(self) -> int:
        config = load_config(self.config)
        if config is None:
            return 1

        try:
            asyncio.run(self.serve(config))
        except KeyboardInterrupt:
            logger.info("Server stopped")
        return 0

    async def serve(self, config: GameConfig) -> None:
        store = StatsStore(config.stats_path, retention=config.winner_retention)
        rng = random.Random(config.seed)
        engine = RoundEngine(config, store.load(), rng)
        configure_logging(self.log_level.upper(), engine)

        broadcaster = WebSocketBroadcaster(send_timeout=config.send_timeout)
        scheduler = GameScheduler(
            engine,
            holders=StaticHolderSource(),
            payouts=PayoutCoordinator(SimulatedPaymentService(random.Random(config.seed))),
            broadcaster=broadcaster,
            store=store,
        )
        broadcaster.greeting = scheduler.greeting_messages

        host = self.host or config.host
        port = self.port or config.port
        async with websockets.serve(broadcaster.handle_client, host, port):
            logger.info(f"Firework race listening on ws://{host}:{port}")
            await scheduler.run()


@dataclass
class Simulate:
    """Play rounds on a virtual clock and report every winner."""

    config: Annotated[Path | None, cappa.Arg(long=True)] = None
    """Path to TOML configuration file"""

    rounds: Annotated[int, cappa.Arg(long=True)] = 10
    """Number of rounds to play"""

    seed: Annotated[int | None, cappa.Arg(long=True)] = None
    """Override: RNG seed"""

    racers: Annotated[int | None, cappa.Arg(long=True)] = None
    """Number of generated holders (default: the demo wallets)"""

    stats: Annotated[Path | None, cappa.Arg(long=True)] = None
    """Stats file to resume from and write to"""

    reward: Annotated[float, cappa.Arg(long=True)] = 1.0
    """Reward credited to every round"""

    def __call__(self) -> int:
        config = load_config(self.config)
        if config is None:
            return 1

        seed = self.seed if self.seed is not None else config.seed
        rng = random.Random(seed)
        roster = self.build_roster(rng)

        store = StatsStore(self.stats, retention=config.winner_retention) if self.stats else None
        stats = store.load() if store else PersistentStats(retention=config.winner_retention)
        engine = RoundEngine(config, stats, rng)

        # Keep engine chatter out of the progress bar
        logging.getLogger("firework_race").setLevel(logging.WARNING)

        reasons: dict[str, int] = {}
        with tqdm(total=self.rounds, desc="Simulating", unit="round") as pbar:
            for idx in range(self.rounds):
                start = idx * (config.round_duration + config.break_duration + config.celebration_duration)
                outcome = run_headless_round(engine, roster, self.reward, start=start)
                if outcome is None:
                    print("Error: engine refused to start a round", file=sys.stderr)
                    return 1

                reasons[str(outcome.reason)] = reasons.get(str(outcome.reason), 0) + 1
                tqdm.write(
                    f"Round #{outcome.round}: {outcome.winner_handle} wins at {outcome.height_m}m "
                    f"({outcome.reason}, {outcome.duration:.1f}s, {outcome.racer_count} racers)",
                )
                if store:
                    store.save(engine.stats)
                pbar.update(1)

        print()
        for reason, count in sorted(reasons.items()):
            print(f"  {reason:<9} {count}")
        print(f"Total distributed: {engine.stats.total_distributed:.4f}")
        print(f"Next round: #{engine.stats.next_round}")
        return 0

    def build_roster(self, rng: random.Random) -> list[Holder]:
        if self.racers is None:
            return [Holder.from_address(a) for a in DEMO_WALLETS]
        return [Holder.from_address(f"{rng.getrandbits(128):032x}") for _ in range(self.racers)]


@dataclass
class FireworkRace:
    """Firework race round engine."""

    command: cappa.Subcommands[Serve | Simulate]


def main():
    """Entry point for CLI."""
    cappa.invoke(FireworkRace)


if __name__ == "__main__":
    sys.exit(main())
