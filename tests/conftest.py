from collections.abc import Callable

import pytest

from firework_race.core.state import PersistentStats
from firework_race.simulation.config import GameConfig
from tests.test_utils import RoundScenario


@pytest.fixture
def scenario() -> Callable[..., RoundScenario]:
    """Factory fixture to create scenarios."""

    def _builder(
        handles: list[str],
        config: GameConfig | None = None,
        seed: int = 0,
        stats: PersistentStats | None = None,
    ) -> RoundScenario:
        return RoundScenario(handles, config, seed, stats)

    return _builder
