import logging
from datetime import datetime
from typing import List, Optional

from gestion_pedidos import config, queries
from gestion_pedidos.broadcaster import Broadcaster, OrderEvent
from gestion_pedidos.errors import (
    InvalidStatusError,
    OrderNotFoundError,
    UniquenessConflictError,
)
from gestion_pedidos.order_number import OrderNumberGenerator
from gestion_pedidos.schemas import (
    ORDER_STATUSES,
    AdminUpdate,
    NormalizedOrder,
    OrderPage,
    OrderStats,
    OrderSummary,
    normalize,
    validate,
)
from gestion_pedidos.store import OrderStore

logger = logging.getLogger("gestion_pedidos.service")


class OrderLifecycleService:
    """The only place where orders are created, changed or removed.

    Every successful write is announced to ``room`` on the broadcaster after
    it has been committed; reads go straight to the query layer.
    """

    def __init__(
        self,
        store: OrderStore,
        broadcaster: Broadcaster,
        order_numbers: OrderNumberGenerator = None,
        room: str = None,
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.order_numbers = order_numbers or OrderNumberGenerator()
        self.room = room or config.ADMIN_ROOM

    def _announce(self, event: OrderEvent) -> None:
        # publish() already swallows observer failures
        self.broadcaster.publish(self.room, event)

    def _create(self, order: NormalizedOrder):
        try:
            return self.store.create(order, self.order_numbers.generate())
        except UniquenessConflictError:
            # a second collision is not retried
            logger.warning("order number collision, retrying once with a new number")
            return self.store.create(order, self.order_numbers.generate())

    def submit(self, raw) -> OrderSummary:
        """Create an order from a customer submission.

        Only a short summary goes back to the customer; the full record is
        sent to the office dashboards.
        """
        order = normalize(raw)
        validate(order)
        created = self._create(order)
        payload = created.to_dict()
        logger.info(
            "order %s created (%s items, total %s)",
            created.order_number,
            len(payload["items"]),
            payload["totalAmount"],
        )
        self._announce(OrderEvent.created(payload))
        return OrderSummary(
            order_number=created.order_number,
            total_amount=payload["totalAmount"],
            estimated_delivery=config.ESTIMATED_DELIVERY_TEXT,
            contact_info=config.SUPPORT_CONTACT,
        )

    def transition_status(
        self,
        order_id: str,
        new_status: Optional[str],
        admin: AdminUpdate = None,
        expected_version: int = None,
    ) -> dict:
        # any status can move to any other one
        if new_status not in ORDER_STATUSES:
            raise InvalidStatusError(
                f"Valid status is required, one of: {', '.join(ORDER_STATUSES)}"
            )
        changes = admin.changes() if admin is not None else {}
        updated = self.store.update(order_id, new_status, changes, expected_version)
        if updated is None:
            raise OrderNotFoundError()
        payload = updated.to_dict()
        logger.info("order %s is now %s", updated.order_number, new_status)
        self._announce(OrderEvent.updated(payload))
        return payload

    def delete(self, order_id: str) -> None:
        if not self.store.delete(order_id):
            raise OrderNotFoundError()
        logger.info("order %s deleted", order_id)
        self._announce(OrderEvent.deleted(order_id))

    def get(self, order_id: str) -> dict:
        o = self.store.get(order_id)
        if o is None:
            raise OrderNotFoundError()
        return o.to_dict()

    def list(self, status: str = None, page: int = 1, page_size: int = None) -> OrderPage:
        with self.store.guard():
            return queries.list_orders(self.store.db, status, page, page_size)

    def search(self, query: str, phone: str = None) -> List[dict]:
        with self.store.guard():
            return queries.search_orders(self.store.db, query, phone)

    def compute_statistics(self, now: datetime = None) -> OrderStats:
        with self.store.guard():
            return queries.order_statistics(self.store.db, now)
