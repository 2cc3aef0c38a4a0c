"""Firework race: a tick-driven round engine for token holder races."""

__version__ = "0.1.0"
