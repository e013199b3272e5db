from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, JSON, Text, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base
from .status_history import StatusMachine, StatusTrackedMixin

RETURN_STATUSES = (
    "pending",
    "approved",
    "rejected",
    "pickup_scheduled",
    "picked_up",
    "refund_processed",
    "completed",
    "cancelled",
)

RETURN_REASONS = ("defective", "wrong_item", "damaged", "not_as_described", "expired", "other")
REFUND_METHODS = ("original", "wallet", "bank_transfer")

# Returns in these statuses no longer block a new return for the same order
CLOSED_STATUSES = ("cancelled", "rejected")
USER_CANCELLABLE_STATUSES = ("pending", "approved")
REFUND_STATUSES = ("refund_processed", "completed")

RETURN_MACHINE = StatusMachine(
    entity="return",
    statuses=RETURN_STATUSES,
    initial="pending",
    transitions={
        "pending": {"approved", "rejected", "cancelled"},
        "approved": {"pickup_scheduled", "picked_up", "refund_processed", "rejected", "cancelled"},
        "pickup_scheduled": {"picked_up", "cancelled"},
        "picked_up": {"refund_processed", "completed"},
        "refund_processed": {"completed"},
        "rejected": set(),
        "completed": set(),
        "cancelled": set(),
    },
    timeline_fields={
        "picked_up": "picked_up_at",
        "refund_processed": "refunded_at",
        "completed": "refunded_at",
    },
)


class ReturnRequest(StatusTrackedMixin, Base):
    __tablename__ = "returns"

    status_machine = RETURN_MACHINE

    id = Column(Integer, primary_key=True, index=True)
    return_number = Column(String(20), unique=True, nullable=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    reason = Column(String(30), nullable=False)
    reason_description = Column(Text, nullable=False)
    refund_amount = Column(Float, nullable=False)
    refund_method = Column(String(20), nullable=False, default="original")
    refund_transaction_id = Column(String(100), nullable=True)

    pickup_address = Column(JSON, nullable=True)
    pickup_date = Column(DateTime(timezone=True), nullable=True)
    pickup_time_slot = Column(String(50), nullable=True)
    tracking_number = Column(String(100), nullable=True)
    admin_notes = Column(Text, nullable=True)
    images = Column(JSON, nullable=False, default=list)

    status = Column(String(30), nullable=False, index=True)
    status_history = Column(JSON, nullable=False)
    timeline = Column(JSON, nullable=False)
    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship(
        "ReturnItem",
        back_populates="return_request",
        cascade="all, delete-orphan",
        order_by="ReturnItem.id"
    )
    order = relationship("Order")
    user = relationship("User")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        # at most one open return per order
        Index(
            "uq_returns_active_order",
            "order_id",
            unique=True,
            postgresql_where=text("status NOT IN ('cancelled', 'rejected')"),
            sqlite_where=text("status NOT IN ('cancelled', 'rejected')"),
        ),
    )

    def calculate_refund(self) -> float:
        return sum(item.price * item.quantity for item in self.items)


class ReturnItem(Base):
    __tablename__ = "return_items"

    id = Column(Integer, primary_key=True, index=True)
    return_id = Column(Integer, ForeignKey("returns.id", ondelete="CASCADE"), nullable=False, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)
    name = Column(String(255), nullable=False)
    image = Column(String(500), nullable=True)

    return_request = relationship("ReturnRequest", back_populates="items")
