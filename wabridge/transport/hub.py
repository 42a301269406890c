"""WebSocket hub: tracks connected dashboards and fans events out to them."""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from wabridge.transport.base import Event, Transport


@dataclass
class _Observer:
    """A connected socket with its own outbound queue."""
    id: str
    socket: Any  # anything with ``closed`` and ``async send_str()``
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    sender: asyncio.Task | None = None


class WebSocketHub(Transport):
    """
    Transport over WebSocket connections.

    Each observer gets a queue and a sender task, so emitting never waits on
    the network and messages to one observer keep their order.
    """

    def __init__(self):
        self._observers: dict[str, _Observer] = {}

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def observer_ids(self) -> list[str]:
        return list(self._observers)

    def register(self, socket: Any) -> str:
        """Register a connected socket. Returns its observer id."""
        observer = _Observer(id=uuid.uuid4().hex[:12], socket=socket)
        observer.sender = asyncio.create_task(self._sender(observer))
        self._observers[observer.id] = observer
        logger.debug(f"Observer connected: {observer.id} ({self.observer_count} total)")
        return observer.id

    def unregister(self, observer_id: str) -> None:
        """Forget an observer and stop its sender."""
        observer = self._observers.pop(observer_id, None)
        if observer is None:
            return
        if observer.sender:
            observer.sender.cancel()
        logger.debug(f"Observer disconnected: {observer_id} ({self.observer_count} total)")

    def emit_to(self, observer_id: str, event: Event) -> None:
        observer = self._observers.get(observer_id)
        if observer is None:
            logger.debug(f"Dropping {event.name} for unknown observer {observer_id}")
            return
        observer.queue.put_nowait(event.to_json())

    def broadcast(self, event: Event) -> None:
        payload = event.to_json()
        for observer in list(self._observers.values()):
            observer.queue.put_nowait(payload)
        logger.debug(f"Broadcast {event.name} to {self.observer_count} observers")

    async def flush(self) -> None:
        """Wait until every queued message has been handed to its socket."""
        await asyncio.gather(
            *(o.queue.join() for o in list(self._observers.values()) if o.sender and not o.sender.done())
        )

    async def close_all(self) -> None:
        """Stop all senders and close every socket."""
        observers = list(self._observers.values())
        for observer in observers:
            self.unregister(observer.id)
        for observer in observers:
            if observer.sender:
                try:
                    await observer.sender
                except asyncio.CancelledError:
                    pass
            if not observer.socket.closed:
                try:
                    await observer.socket.close()
                except Exception as e:
                    logger.warning(f"Error closing observer {observer.id}: {e}")

    async def _sender(self, observer: _Observer) -> None:
        """Drain one observer's queue onto its socket."""
        while True:
            payload = await observer.queue.get()
            try:
                if observer.socket.closed:
                    logger.debug(f"Observer {observer.id} closed, dropping message")
                    continue
                await observer.socket.send_str(payload)
            except Exception as e:
                logger.warning(f"Delivery to observer {observer.id} failed: {e}")
            finally:
                observer.queue.task_done()
