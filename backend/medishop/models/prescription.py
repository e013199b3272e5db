from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base
from .status_history import StatusMachine, StatusTrackedMixin

PRESCRIPTION_STATUSES = (
    "submitted",
    "in_review",
    "approved",
    "rejected",
    "ordered",
    "fulfilled",
    "delivered",
    "cancelled",
)

# A prescription must be in one of these before an order can be raised from it
ORDERABLE_STATUSES = ("approved", "ordered", "fulfilled")

PRESCRIPTION_MACHINE = StatusMachine(
    entity="prescription",
    statuses=PRESCRIPTION_STATUSES,
    initial="submitted",
    aliases={
        "pending": "submitted",
        "verified": "approved",
        "completed": "fulfilled",
        "reviewing": "in_review",
        "review": "in_review",
    },
    transitions={
        "submitted": {"in_review", "approved", "rejected", "cancelled"},
        "in_review": {"approved", "rejected", "cancelled"},
        "approved": {"ordered", "rejected", "cancelled"},
        "rejected": {"in_review"},
        "ordered": {"fulfilled", "delivered", "cancelled"},
        "fulfilled": {"delivered", "cancelled"},
        "delivered": set(),
        "cancelled": set(),
    },
    timeline_fields={"approved": "processed_at", "rejected": "processed_at"},
)

# Order status -> prescription status it drags along
ORDER_TO_PRESCRIPTION_STATUS = {
    "processing": "ordered",
    "out_for_delivery": "fulfilled",
    "delivered": "delivered",
    "cancelled": "cancelled",
}


class Prescription(StatusTrackedMixin, Base):
    __tablename__ = "prescriptions"

    status_machine = PRESCRIPTION_MACHINE

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    file_name = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    file_url = Column(String(500), nullable=False)
    storage_public_id = Column(String(255), nullable=True)
    storage = Column(String(20), nullable=False, default="local")
    file_type = Column(String(50), nullable=False)
    file_size = Column(Integer, nullable=False)

    description = Column(Text, nullable=True)
    doctor_name = Column(String(255), nullable=True)
    patient_name = Column(String(255), nullable=True)
    pharmacist_notes = Column(Text, nullable=True)

    assigned_to = Column(Integer, ForeignKey("admins.id"), nullable=True)
    processed_by = Column(Integer, ForeignKey("admins.id"), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    order_id = Column(Integer, nullable=True, index=True)  # weak reference, orders.prescription_id is the FK
    shipping_address_snapshot = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    status = Column(String(30), nullable=False, index=True)
    status_history = Column(JSON, nullable=False)
    timeline = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User")

    __mapper_args__ = {"version_id_col": version}

    @property
    def file_extension(self) -> str:
        return self.original_name.rsplit(".", 1)[-1].lower() if "." in self.original_name else ""
