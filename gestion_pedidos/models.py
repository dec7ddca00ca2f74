from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    # naive UTC, matching the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value is not None else None


class OrderORM(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, index=True)
    order_number = Column(String, nullable=False, unique=True, index=True)
    customer_name = Column(String, nullable=False)
    phone_number = Column(String, nullable=False)
    address = Column(String, nullable=False)
    # optional geolocation sent by the customer app
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    location_address = Column(String, nullable=True)
    total_amount = Column(Float, nullable=False)
    payment_method = Column(String, nullable=False, default="cash_on_delivery")
    status = Column(String, nullable=False, default="pending", index=True)
    # office-only fields
    notes = Column(Text, nullable=True)
    assigned_driver = Column(String, nullable=True)
    estimated_delivery = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    version = Column(Integer, nullable=False)

    items = relationship(
        "OrderItemORM",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemORM.position",
    )

    __mapper_args__ = {"version_id_col": version}

    def location_dict(self):
        if (
            self.latitude is None
            and self.longitude is None
            and self.location_address is None
        ):
            return None
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.location_address,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "customerName": self.customer_name,
            "phoneNumber": self.phone_number,
            "address": self.address,
            "location": self.location_dict(),
            "items": [it.to_dict() for it in self.items],
            "totalAmount": float(self.total_amount),
            "paymentMethod": self.payment_method,
            "status": self.status,
            "notes": self.notes,
            "assignedDriver": self.assigned_driver,
            "estimatedDelivery": _iso(self.estimated_delivery),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "version": self.version,
        }


class OrderItemORM(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String, ForeignKey("orders.id"), index=True)
    position = Column(Integer, nullable=False, default=0)
    product_id = Column(String, nullable=True)
    name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)
    image = Column(String, nullable=True)

    order = relationship("OrderORM", back_populates="items")

    def to_dict(self):
        return {
            "productId": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "price": float(self.price),
            "image": self.image,
        }
