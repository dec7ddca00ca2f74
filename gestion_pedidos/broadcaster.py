"""In-process fan-out of order lifecycle events to the office dashboards.

Delivery is best effort: an observer that raises is dropped from its group,
nothing is persisted or replayed, and publishing never waits on an observer.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("gestion_pedidos.broadcaster")

CREATED = "created"
UPDATED = "updated"
DELETED = "deleted"

# names the dashboards already listen for
EVENT_NAMES = {
    CREATED: "new_order",
    UPDATED: "order_updated",
    DELETED: "order_deleted",
}


@dataclass(frozen=True)
class OrderEvent:
    kind: str
    order: Optional[dict] = None
    order_id: Optional[str] = None

    @classmethod
    def created(cls, order: dict) -> "OrderEvent":
        return cls(CREATED, order=order, order_id=order.get("id"))

    @classmethod
    def updated(cls, order: dict) -> "OrderEvent":
        return cls(UPDATED, order=order, order_id=order.get("id"))

    @classmethod
    def deleted(cls, order_id: str) -> "OrderEvent":
        return cls(DELETED, order_id=order_id)

    @property
    def name(self) -> str:
        return EVENT_NAMES[self.kind]

    def to_message(self) -> dict:
        data = self.order if self.order is not None else {"id": self.order_id}
        return {"event": self.name, "data": data}


class Broadcaster:
    """Named groups of observers.

    An observer is any object with a ``send(event)`` method. Membership is
    explicit: nothing receives events until it joins a group.
    """

    def __init__(self):
        self._groups = {}
        self._lock = threading.Lock()

    def join(self, group: str, observer) -> bool:
        with self._lock:
            members = self._groups.setdefault(group, [])
            if observer in members:
                return False
            members.append(observer)
        logger.info("observer joined %s (%s members)", group, len(members))
        return True

    def leave(self, group: str, observer) -> bool:
        with self._lock:
            members = self._groups.get(group, [])
            if observer not in members:
                return False
            members.remove(observer)
            if not members:
                self._groups.pop(group, None)
        logger.info("observer left %s", group)
        return True

    def members(self, group: str) -> list:
        with self._lock:
            return list(self._groups.get(group, []))

    def publish(self, group: str, event: OrderEvent) -> int:
        """Send ``event`` to every current member of ``group``.

        Returns how many observers accepted it. Failures are logged and the
        failing observer is evicted; they never propagate to the caller.
        """
        delivered = 0
        for observer in self.members(group):
            try:
                observer.send(event)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "dropping observer from %s after failed %s: %s",
                    group,
                    event.name,
                    e,
                )
                self.leave(group, observer)
        logger.debug("%s sent to %s observers of %s", event.name, delivered, group)
        return delivered


class QueueObserver:
    """Hands events to an asyncio consumer (e.g. a websocket) without blocking.

    ``send`` may be called from any thread; the event is queued on the
    consumer's loop. When the queue is full the event is dropped for this
    observer only.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int = 100):
        self.loop = loop
        self.queue = asyncio.Queue(maxsize=maxsize)

    def send(self, event: OrderEvent) -> None:
        # raises RuntimeError once the loop is closed, which evicts us
        self.loop.call_soon_threadsafe(self.offer, event.to_message())

    def offer(self, message: dict) -> bool:
        try:
            self.queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            logger.warning("observer queue full, dropping %s", message.get("event"))
            return False

    async def get(self) -> dict:
        return await self.queue.get()
