"""Configuration schema for the game engine using msgspec."""

from __future__ import annotations

from pathlib import Path

import msgspec


class EliminationWave(msgspec.Struct, frozen=True):
    """
    Thin the field once the round has run for `at` seconds.

    Everybody below the top `keep` racers is exploded, lowest first,
    `stagger` seconds apart.
    """

    at: float
    keep: int
    stagger: float = 0.25


class GameConfig(msgspec.Struct, kw_only=True):
    """
    TOML-backed configuration for the round engine and its timers.

    Heights in `*_m` fields are display meters; speeds are height units
    per physics tick (one unit is `meters_per_unit` meters).
    """

    # Timers
    round_duration: int = 30
    break_duration: int = 10
    claim_lead_ticks: int = 5
    physics_hz: float = 60.0
    broadcast_hz: float = 30.0
    countdown_interval: float = 1.0

    # Roster
    max_racers: int = 20

    # Kinematics
    base_speed_min: float = 0.003
    base_speed_max: float = 0.005
    acceleration: float = 1.002
    max_speed: float = 0.012
    drift_max: float = 0.0008
    wobble_amplitude: float = 0.001
    lane_margin: float = 0.05
    launch_delay_max: float = 0.5

    # Termination thresholds
    contender_fraction: float = 0.25
    contender_band_m: tuple[float, float] = (1500.0, 3000.0)
    early_band_m: tuple[float, float] = (300.0, 1200.0)
    finish_height_m: float = 2000.0
    meters_per_unit: float = 1000.0

    # Camera and celebration
    camera_smoothing: float = 0.12
    celebration_camera_smoothing: float = 0.1
    celebration_duration: float = 3.0

    # History
    winner_retention: int = 20
    broadcast_history: int = 10

    elimination_waves: list[EliminationWave] = msgspec.field(default_factory=list)

    # Runtime
    stats_path: str = "firework_stats.db"
    host: str = "0.0.0.0"
    port: int = 8765
    send_timeout: float = 0.5
    seed: int | None = None

    def __post_init__(self) -> None:
        if self.round_duration <= 0 or self.break_duration <= 0:
            raise ValueError("round_duration and break_duration must be positive")
        if not 0 <= self.claim_lead_ticks < self.break_duration:
            raise ValueError("claim_lead_ticks must fall inside the break")
        if self.physics_hz <= 0 or self.broadcast_hz <= 0 or self.countdown_interval <= 0:
            raise ValueError("tick rates must be positive")
        if self.max_racers < 1:
            raise ValueError("max_racers must be at least 1")
        if not 0.0 <= self.contender_fraction <= 1.0:
            raise ValueError("contender_fraction must be between 0 and 1")
        if self.base_speed_min <= 0:
            raise ValueError("base_speed_min must be positive")
        if self.base_speed_min > self.base_speed_max:
            raise ValueError("base_speed_min exceeds base_speed_max")
        for name in ("contender_band_m", "early_band_m"):
            low, high = getattr(self, name)
            if low > high:
                raise ValueError(f"{name} is not ordered: {low} > {high}")
        for wave in self.elimination_waves:
            if wave.keep < 1:
                raise ValueError("an elimination wave must keep at least one racer")

    @property
    def physics_interval(self) -> float:
        return 1.0 / self.physics_hz

    @property
    def broadcast_interval(self) -> float:
        return 1.0 / self.broadcast_hz

    @classmethod
    def from_toml(cls, path: str | Path) -> GameConfig:
        """Load configuration from a TOML file path."""
        with Path(path).open("rb") as f:
            return msgspec.toml.decode(f.read(), type=cls)
