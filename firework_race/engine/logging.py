from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, override

from rich.logging import RichHandler

if TYPE_CHECKING:
    from firework_race.engine.round_engine import RoundEngine


# Simple color theme for Rich
COLOR = {
    "winner": "bold green",
    "explode": "bold magenta",
    "phase": "bold blue",
    "warning": "bold red",
    "prefix": "dim",
}

WINNER_PATTERN = re.compile(r"\b(Winner|wins)\b")
EXPLODE_PATTERN = re.compile(r"\b(exploded|exploding|Elimination)\b")
PHASE_PATTERN = re.compile(r"\b(racing|celebrating|ended)\b")
FAILED_PATTERN = re.compile(r"\b(failed|Refusing)\b")


class ContextFilter(logging.Filter):
    """Inject the engine's current round and phase into every log record."""

    def __init__(self, engine: RoundEngine, name: str = "") -> None:
        super().__init__(name)
        self.engine: RoundEngine = engine

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        record.round_number = self.engine.round_number
        record.phase = self.engine.phase
        return True


class RichMarkupFormatter(logging.Formatter):
    @override
    def format(self, record: logging.LogRecord) -> str:
        round_number = getattr(record, "round_number", None)
        phase = getattr(record, "phase", "idle")
        prefix = f"#{round_number if round_number is not None else '-'}:{phase}"

        # Escape brackets coming from holder handles before adding markup
        styled = record.getMessage().replace("[", r"\[")
        styled = WINNER_PATTERN.sub(rf"[{COLOR['winner']}]\1[/{COLOR['winner']}]", styled)
        styled = EXPLODE_PATTERN.sub(rf"[{COLOR['explode']}]\1[/{COLOR['explode']}]", styled)
        styled = PHASE_PATTERN.sub(rf"[{COLOR['phase']}]\1[/{COLOR['phase']}]", styled)
        styled = FAILED_PATTERN.sub(rf"[{COLOR['warning']}]\1[/{COLOR['warning']}]", styled)

        if record.levelno >= logging.WARNING:
            styled = f"[{COLOR['warning']}]{styled}[/{COLOR['warning']}]"

        return f"[{COLOR['prefix']}]{prefix}[/{COLOR['prefix']}]  {styled}"


def configure_logging(level: int | str = logging.INFO, engine: RoundEngine | None = None) -> None:
    logger = logging.getLogger("firework_race")
    logger.setLevel(level)
    handler = RichHandler(markup=True, show_path=False)
    handler.setFormatter(RichMarkupFormatter())
    if engine is not None:
        handler.addFilter(ContextFilter(engine))
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False
