"""
Canonical order shapes and the rules that turn a customer submission into one.

Customer apps send the same information in several spellings (flat fields, a
nested ``customer`` object, ``deliveryAddress``, ``total`` instead of
``totalAmount``...). :func:`normalize` resolves every alias with a fixed
precedence, first present non-blank value wins:

=================  =======================================================
canonical field    sources, in order
=================  =======================================================
customerName       ``customerName``, ``customer.name``
phoneNumber        ``phoneNumber``, ``customer.phone``
address            ``address``, ``deliveryAddress``, ``customer.address``,
                   ``location.address``
totalAmount        ``totalAmount``, ``total``
item name          ``name``, ``product``
item productId     ``productId``, ``id`` (converted to string)
paymentMethod      ``paymentMethod``, else ``cash_on_delivery``
=================  =======================================================

Only canonical fields survive normalization, so feeding the output of
``NormalizedOrder.to_payload()`` back into :func:`normalize` gives the same
order. :func:`validate` then checks the business rules in a fixed order.

``totalAmount`` is taken whenever it is a readable number, 0 included, so
``{"totalAmount": 0, "total": 5}`` fails as an invalid total. Older clients
that treated a zero ``totalAmount`` as missing and fell back to ``total`` no
longer get that fallback.
"""

import math
from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from gestion_pedidos.errors import OrderValidationError, ValidationKind


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    ON_THE_WAY = "on_the_way"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


ORDER_STATUSES = tuple(s.value for s in OrderStatus)
PAYMENT_METHODS = ("cash_on_delivery", "online")
DEFAULT_PAYMENT_METHOD = "cash_on_delivery"
# order_items.quantity is a 32-bit INTEGER column
MAX_QUANTITY = 2**31 - 1


class Location(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None


class NormalizedItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: Optional[str] = Field(None, alias="productId")
    name: Optional[str] = None
    quantity: Optional[int] = None
    price: Optional[float] = None
    image: Optional[str] = None


class NormalizedOrder(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_name: Optional[str] = Field(None, alias="customerName")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    address: Optional[str] = None
    location: Optional[Location] = None
    items: List[NormalizedItem] = Field(default_factory=list)
    total_amount: Optional[float] = Field(None, alias="totalAmount")
    payment_method: Optional[str] = Field(
        DEFAULT_PAYMENT_METHOD, alias="paymentMethod"
    )

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


def _text(value) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        # phone numbers and product ids sometimes arrive as numbers
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _number(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float, Decimal)):
            n = float(value)
        elif isinstance(value, str):
            n = float(value.strip())
        else:
            return None
    except (ValueError, OverflowError):
        return None
    if math.isnan(n) or math.isinf(n):
        return None
    return n


def _integer(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    n = _number(value)
    if n is None or not n.is_integer():
        return None
    return int(n)


def _first(*values):
    for v in values:
        if v is not None:
            return v
    return None


def _mapping(value) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _normalize_location(raw) -> Optional[Location]:
    if not isinstance(raw, Mapping):
        return None
    loc = Location(
        latitude=_number(raw.get("latitude")),
        longitude=_number(raw.get("longitude")),
        address=_text(raw.get("address")),
    )
    if loc.latitude is None and loc.longitude is None and loc.address is None:
        return None
    return loc


def _normalize_item(raw) -> NormalizedItem:
    raw = _mapping(raw)
    return NormalizedItem(
        product_id=_first(_text(raw.get("productId")), _text(raw.get("id"))),
        name=_first(_text(raw.get("name")), _text(raw.get("product"))),
        quantity=_integer(raw.get("quantity")),
        price=_number(raw.get("price")),
        image=_text(raw.get("image")),
    )


def normalize(raw) -> NormalizedOrder:
    """Resolve a raw submission into a :class:`NormalizedOrder`.

    Never raises for bad input: values that cannot be read become ``None``
    and are reported later by :func:`validate`.
    """
    if isinstance(raw, NormalizedOrder):
        raw = raw.to_payload()
    raw = _mapping(raw)
    customer = _mapping(raw.get("customer"))
    location = _normalize_location(raw.get("location"))

    items = raw.get("items")
    if not isinstance(items, (list, tuple)):
        items = []

    return NormalizedOrder(
        customer_name=_first(_text(raw.get("customerName")), _text(customer.get("name"))),
        phone_number=_first(_text(raw.get("phoneNumber")), _text(customer.get("phone"))),
        address=_first(
            _text(raw.get("address")),
            _text(raw.get("deliveryAddress")),
            _text(customer.get("address")),
            location.address if location else None,
        ),
        location=location,
        items=[_normalize_item(it) for it in items],
        total_amount=_first(_number(raw.get("totalAmount")), _number(raw.get("total"))),
        payment_method=_text(raw.get("paymentMethod")) or DEFAULT_PAYMENT_METHOD,
    )


def validate(order: NormalizedOrder) -> None:
    """Raise :class:`OrderValidationError` for the first broken rule."""
    if not (order.customer_name and order.phone_number and order.address):
        raise OrderValidationError(
            ValidationKind.MISSING_CUSTOMER_INFO,
            "Please provide customer name, phone number, and address",
        )
    if not order.items:
        raise OrderValidationError(
            ValidationKind.EMPTY_ITEM_LIST,
            "Please add at least one item to the order",
        )
    for pos, item in enumerate(order.items, start=1):
        if not item.name:
            raise OrderValidationError(
                ValidationKind.INVALID_ITEM, f"Item {pos} is missing a product name"
            )
        if item.quantity is None or not 1 <= item.quantity <= MAX_QUANTITY:
            raise OrderValidationError(
                ValidationKind.INVALID_ITEM,
                f"Item {pos} quantity must be a whole number between 1 and {MAX_QUANTITY}",
            )
        if item.price is None or item.price < 0:
            raise OrderValidationError(
                ValidationKind.INVALID_ITEM, f"Item {pos} price must be 0 or greater"
            )
    if order.total_amount is None or order.total_amount <= 0:
        raise OrderValidationError(
            ValidationKind.INVALID_TOTAL, "Total amount must be greater than 0"
        )
    if order.payment_method not in PAYMENT_METHODS:
        raise OrderValidationError(
            ValidationKind.INVALID_PAYMENT_METHOD,
            f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}",
        )


class AdminUpdate(BaseModel):
    """Office-only fields; blank values never overwrite what is stored."""

    model_config = ConfigDict(populate_by_name=True)

    assigned_driver: Optional[str] = Field(None, alias="assignedDriver")
    notes: Optional[str] = None
    estimated_delivery: Optional[datetime] = Field(None, alias="estimatedDelivery")

    def changes(self) -> dict:
        out = {}
        driver = _text(self.assigned_driver)
        if driver is not None:
            out["assigned_driver"] = driver
        if self.notes is not None and self.notes.strip():
            out["notes"] = self.notes
        if self.estimated_delivery is not None:
            eta = self.estimated_delivery
            if eta.tzinfo is not None:
                eta = eta.astimezone(timezone.utc).replace(tzinfo=None)
            out["estimated_delivery"] = eta
        return out


class StatusUpdateIn(AdminUpdate):
    # status is checked by the service so unknown values get a proper error kind
    status: Optional[str] = None
    expected_version: Optional[int] = Field(None, alias="expectedVersion")


class OrderSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_number: str = Field(..., alias="orderNumber")
    total_amount: float = Field(..., alias="totalAmount")
    estimated_delivery: str = Field(..., alias="estimatedDelivery")
    contact_info: str = Field(..., alias="contactInfo")

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


class OrderStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int = 0
    pending: int = 0
    confirmed: int = 0
    preparing: int = 0
    on_the_way: int = Field(0, alias="onTheWay")
    delivered: int = 0
    cancelled: int = 0
    today: int = 0
    revenue: float = 0.0

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


class Pagination(BaseModel):
    current: int
    pages: int
    total: int


class OrderPage(BaseModel):
    orders: List[dict]
    pagination: Pagination
