import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Index, CheckConstraint
from sqlalchemy.sql import func

from ..database import Base


class OtpPurpose(str, enum.Enum):
    LOGIN = "LOGIN"
    RESET = "RESET"
    ADMIN_LOGIN = "ADMIN_LOGIN"


class OTP(Base):
    __tablename__ = "otps"

    id = Column(Integer, primary_key=True, index=True)
    phone = Column(String(20), nullable=False, index=True)
    otp_hash = Column(String(255), nullable=False)
    purpose = Column(String(20), nullable=False, default=OtpPurpose.LOGIN.value, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    is_used = Column(Boolean, nullable=False, default=False)
    send_count = Column(Integer, nullable=False, default=0)
    window_started_at = Column(DateTime(timezone=True), nullable=False)
    ip_address = Column(String(45), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_otps_phone_purpose_created", "phone", "purpose", "created_at"),
        CheckConstraint(
            "purpose IN ('LOGIN', 'RESET', 'ADMIN_LOGIN')",
            name="check_otp_purpose"
        ),
        CheckConstraint("attempts >= 0", name="check_otp_attempts"),
    )
