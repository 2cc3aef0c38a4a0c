import heapq
import itertools
from collections.abc import Iterator
from dataclasses import dataclass, field

from firework_race.core.state import ScheduledAction


@dataclass(slots=True)
class PendingActions:
    """
    Future racer actions keyed by fire time, drained by the physics tick.

    Cleared on every transition out of racing, so a queued action never
    outlives its round.
    """

    queue: list[ScheduledAction] = field(default_factory=list)
    _serial: Iterator[int] = field(default_factory=itertools.count)

    def __len__(self) -> int:
        return len(self.queue)

    def schedule(self, fire_at: float, racer_id: int, reason: str = "elimination") -> None:
        heapq.heappush(
            self.queue,
            ScheduledAction(fire_at=fire_at, serial=next(self._serial), racer_id=racer_id, reason=reason),
        )

    def drain(self, now: float) -> list[ScheduledAction]:
        """Pop every action due at or before `now`, in fire order."""
        due: list[ScheduledAction] = []
        while self.queue and self.queue[0].fire_at <= now:
            due.append(heapq.heappop(self.queue))
        return due

    def clear(self) -> None:
        self.queue.clear()
