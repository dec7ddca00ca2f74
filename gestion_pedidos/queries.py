"""Read-only projections over the orders table: listing, search and stats."""

import math
from datetime import datetime, timezone
from typing import List

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from gestion_pedidos import config
from gestion_pedidos.errors import InvalidQueryError
from gestion_pedidos.models import OrderORM
from gestion_pedidos.schemas import OrderPage, OrderStats, OrderStatus, Pagination

# status filter value meaning "no filter"
ALL_STATUSES = "all"


def _newest_first(q):
    return q.order_by(OrderORM.created_at.desc(), OrderORM.id.desc())


def _contains(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def list_orders(
    db: Session, status: str = None, page: int = 1, page_size: int = None
) -> OrderPage:
    page = max(1, int(page))
    page_size = max(1, int(page_size or config.DEFAULT_PAGE_SIZE))

    q = db.query(OrderORM)
    if status and status != ALL_STATUSES:
        q = q.filter(OrderORM.status == status)
    total = q.count()
    rows = _newest_first(q).offset((page - 1) * page_size).limit(page_size).all()
    return OrderPage(
        orders=[o.to_dict() for o in rows],
        pagination=Pagination(
            current=page, pages=math.ceil(total / page_size), total=total
        ),
    )


def search_orders(
    db: Session, query: str, phone: str = None, limit: int = None
) -> List[dict]:
    """Case-insensitive substring search.

    ``query`` is matched against order number, customer name, phone number
    and address (any of them); ``phone`` narrows the result further.
    """
    term = (query or "").strip()
    if not term:
        raise InvalidQueryError()
    limit = limit or config.SEARCH_RESULT_LIMIT

    pattern = _contains(term)
    q = db.query(OrderORM).filter(
        or_(
            OrderORM.order_number.ilike(pattern, escape="\\"),
            OrderORM.customer_name.ilike(pattern, escape="\\"),
            OrderORM.phone_number.ilike(pattern, escape="\\"),
            OrderORM.address.ilike(pattern, escape="\\"),
        )
    )
    phone = (phone or "").strip()
    if phone:
        q = q.filter(OrderORM.phone_number.ilike(_contains(phone), escape="\\"))
    return [o.to_dict() for o in _newest_first(q).limit(limit).all()]


def local_midnight_utc(now: datetime = None) -> datetime:
    """Start of the current local day as naive UTC (the column format)."""
    now = now or datetime.now()
    now = now.astimezone()  # naive values are taken as local time
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc).replace(tzinfo=None)


def order_statistics(db: Session, now: datetime = None) -> OrderStats:
    counts = dict(
        db.query(OrderORM.status, func.count(OrderORM.id))
        .group_by(OrderORM.status)
        .all()
    )
    today = (
        db.query(func.count(OrderORM.id))
        .filter(OrderORM.created_at >= local_midnight_utc(now))
        .scalar()
    )
    # revenue only counts orders that are delivered right now
    revenue = (
        db.query(func.coalesce(func.sum(OrderORM.total_amount), 0))
        .filter(OrderORM.status == OrderStatus.DELIVERED.value)
        .scalar()
    )
    return OrderStats(
        total=sum(counts.values()),
        pending=counts.get(OrderStatus.PENDING.value, 0),
        confirmed=counts.get(OrderStatus.CONFIRMED.value, 0),
        preparing=counts.get(OrderStatus.PREPARING.value, 0),
        on_the_way=counts.get(OrderStatus.ON_THE_WAY.value, 0),
        delivered=counts.get(OrderStatus.DELIVERED.value, 0),
        cancelled=counts.get(OrderStatus.CANCELLED.value, 0),
        today=today or 0,
        revenue=float(revenue or 0),
    )
