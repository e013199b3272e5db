from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, JSON, Text, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base
from .status_history import StatusMachine, StatusTrackedMixin

ORDER_STATUSES = (
    "pending",
    "confirmed",
    "processing",
    "shipped",
    "out_for_delivery",
    "delivered",
    "cancelled",
)

PAYMENT_METHODS = ("COD", "ONLINE", "WALLET")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
ORDER_SOURCES = ("catalog", "prescription", "manual")

# Statuses a customer may still cancel from
CANCELLABLE_STATUSES = ("pending", "confirmed")

ORDER_MACHINE = StatusMachine(
    entity="order",
    statuses=ORDER_STATUSES,
    initial="pending",
    aliases={"out for delivery": "out_for_delivery", "placed": "confirmed"},
    transitions={
        "pending": {"confirmed", "processing", "cancelled"},
        "confirmed": {"processing", "shipped", "cancelled"},
        "processing": {"shipped", "out_for_delivery", "cancelled"},
        "shipped": {"out_for_delivery", "delivered", "cancelled"},
        "out_for_delivery": {"delivered", "cancelled"},
        "delivered": set(),
        "cancelled": set(),
    },
    timeline_fields={"delivered": "delivered_at", "cancelled": "cancelled_at"},
)


class Order(StatusTrackedMixin, Base):
    __tablename__ = "orders"

    status_machine = ORDER_MACHINE

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(20), unique=True, nullable=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    subtotal = Column(Float, nullable=False, default=0)
    delivery_fee = Column(Float, nullable=False, default=0)
    taxes = Column(Float, nullable=False, default=0)
    total = Column(Float, nullable=False, default=0)

    shipping_address = Column(JSON, nullable=False)
    payment_method = Column(String(20), nullable=False, default="COD")
    payment_status = Column(String(20), nullable=False, default="pending")
    source = Column(String(20), nullable=False, default="catalog")

    prescription_url = Column(String(500), nullable=True)
    prescription_public_id = Column(String(255), nullable=True)
    prescription_id = Column(Integer, ForeignKey("prescriptions.id"), nullable=True, index=True)

    tracking_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    status = Column(String(30), nullable=False, index=True)
    status_history = Column(JSON, nullable=False)
    timeline = Column(JSON, nullable=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id"
    )
    user = relationship("User")
    prescription = relationship("Prescription", foreign_keys=[prescription_id])

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("subtotal >= 0 AND delivery_fee >= 0 AND taxes >= 0 AND total >= 0",
                        name="check_order_amounts"),
    )

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)
    name = Column(String(255), nullable=False)
    image = Column(String(500), nullable=True)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="check_order_item_quantity"),
    )
