"""WebSocket fan-out of engine state to browser observers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from websockets.exceptions import ConnectionClosed

if TYPE_CHECKING:
    from websockets.asyncio.server import ServerConnection

    from firework_race.core.types import EventName

logger = logging.getLogger("firework_race.broadcast")


def _no_greeting() -> list[bytes]:
    return []


class WebSocketBroadcaster:
    """
    Keeps the set of connected observers and pushes every message to all of them.

    Observers are read-only: anything they send is ignored. Slow observers are
    dropped once a send exceeds `send_timeout` so they cannot back up the
    broadcast loop.
    """

    def __init__(
        self,
        greeting: Callable[[], list[bytes]] = _no_greeting,
        send_timeout: float = 0.5,
    ) -> None:
        self.greeting: Callable[[], list[bytes]] = greeting
        self.send_timeout: float = send_timeout
        self.connections: dict[str, ServerConnection] = {}

    @property
    def observer_count(self) -> int:
        return len(self.connections)

    async def publish(self, event: EventName, message: bytes) -> None:
        disconnected: list[str] = []
        for observer_id, websocket in list(self.connections.items()):
            try:
                await asyncio.wait_for(websocket.send(message), timeout=self.send_timeout)
            except TimeoutError:
                logger.warning("Observer %s send timeout on %s - dropping connection", observer_id, event)
                disconnected.append(observer_id)
            except ConnectionClosed:
                disconnected.append(observer_id)

        for observer_id in disconnected:
            await self._drop(observer_id)

    async def handle_client(self, websocket: ServerConnection) -> None:
        """Register an observer, send it the current state and hold it open."""
        observer_id = f"observer_{id(websocket)}"
        self.connections[observer_id] = websocket
        logger.info("Observer %s connected (%d watching)", observer_id, self.observer_count)

        try:
            for message in self.greeting():
                await websocket.send(message)
            async for _ in websocket:
                pass
        except ConnectionClosed:
            pass
        finally:
            self.connections.pop(observer_id, None)
            logger.info("Observer %s disconnected (%d watching)", observer_id, self.observer_count)

    async def _drop(self, observer_id: str) -> None:
        websocket = self.connections.pop(observer_id, None)
        if websocket is not None:
            await websocket.close()
            logger.info("Observer %s dropped", observer_id)
