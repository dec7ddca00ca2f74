import logging
import uuid
from contextlib import contextmanager
from typing import Optional

from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from gestion_pedidos.errors import (
    ConcurrentUpdateError,
    StoreUnavailableError,
    UniquenessConflictError,
)
from gestion_pedidos.models import OrderItemORM, OrderORM
from gestion_pedidos.schemas import NormalizedOrder, OrderStatus

logger = logging.getLogger("gestion_pedidos.store")


class OrderStore:
    """Persistence boundary for orders, one instance per database session.

    Database failures come out as the lifecycle errors: a duplicate order
    number as :class:`UniquenessConflictError`, a lost update as
    :class:`ConcurrentUpdateError`, an unreachable database or any other
    driver error as :class:`StoreUnavailableError`. The session is rolled
    back in every case.
    """

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def guard(self):
        try:
            yield
        except IntegrityError as e:
            self._rollback()
            logger.warning("integrity error: %s", e.orig)
            raise UniquenessConflictError() from e
        except StaleDataError as e:
            self._rollback()
            raise ConcurrentUpdateError() from e
        except (OperationalError, InterfaceError, PoolTimeoutError) as e:
            self._rollback()
            logger.error("order store unavailable: %s", e)
            raise StoreUnavailableError() from e
        except (DBAPIError, OverflowError) as e:
            # e.g. numeric out of range
            self._rollback()
            logger.error("order store rejected the request: %s", e)
            raise StoreUnavailableError() from e

    def _rollback(self):
        try:
            self.db.rollback()
        except Exception as e:
            # the connection may already be gone
            logger.debug("rollback failed: %s", e)

    def create(self, order: NormalizedOrder, order_number: str) -> OrderORM:
        loc = order.location
        o = OrderORM(
            id=str(uuid.uuid4()),
            order_number=order_number,
            customer_name=order.customer_name,
            phone_number=order.phone_number,
            address=order.address,
            latitude=loc.latitude if loc else None,
            longitude=loc.longitude if loc else None,
            location_address=loc.address if loc else None,
            total_amount=order.total_amount,
            payment_method=order.payment_method,
            status=OrderStatus.PENDING.value,
        )
        o.items = [
            OrderItemORM(
                position=pos,
                product_id=it.product_id,
                name=it.name,
                quantity=it.quantity,
                price=it.price,
                image=it.image,
            )
            for pos, it in enumerate(order.items)
        ]
        with self.guard():
            self.db.add(o)
            self.db.commit()
            self.db.refresh(o)
        return o

    def get(self, order_id: str) -> Optional[OrderORM]:
        with self.guard():
            return self.db.query(OrderORM).filter(OrderORM.id == order_id).first()

    def update(
        self,
        order_id: str,
        status: str,
        changes: dict = None,
        expected_version: int = None,
    ) -> Optional[OrderORM]:
        """Set the status plus any admin ``changes`` on one order.

        Returns None when the order does not exist. The row is locked for the
        duration of the update where the database supports it.
        """
        with self.guard():
            o = (
                self.db.query(OrderORM)
                .filter(OrderORM.id == order_id)
                .with_for_update()
                .first()
            )
            if o is None:
                self.db.rollback()
                return None
            if expected_version is not None and o.version != expected_version:
                self.db.rollback()
                raise ConcurrentUpdateError(
                    f"Order is at version {o.version}, not {expected_version}"
                )
            o.status = status
            for column, value in (changes or {}).items():
                setattr(o, column, value)
            self.db.commit()
            self.db.refresh(o)
            return o

    def delete(self, order_id: str) -> bool:
        with self.guard():
            o = self.db.query(OrderORM).filter(OrderORM.id == order_id).first()
            if o is None:
                return False
            self.db.delete(o)
            self.db.commit()
            return True
