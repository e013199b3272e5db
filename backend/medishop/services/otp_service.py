"""
OTP Service
Handles OTP generation, send-rate limiting, verification and attempt locking
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import (
    InvalidOtp,
    OtpExpired,
    OtpLocked,
    OtpNotFound,
    RateLimitExceeded,
    ValidationFailed,
)
from ..models.otp import OTP, OtpPurpose
from ..utils.helpers import as_utc, mask_phone, utcnow

logger = logging.getLogger(__name__)

SEND_WINDOW = timedelta(hours=1)

# Codes are short lived; a lower bcrypt cost keeps verification cheap
otp_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.OTP_HASH_ROUNDS
)


def _normalize_purpose(purpose) -> str:
    try:
        return OtpPurpose(purpose).value
    except ValueError:
        raise ValidationFailed(f"Unknown OTP purpose: {purpose}")


class OtpService:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.max_attempts = settings.OTP_MAX_ATTEMPTS
        self.max_sends = settings.OTP_MAX_SENDS_PER_HOUR

    def _new_code(self) -> str:
        length = settings.OTP_LENGTH
        return f"{secrets.randbelow(10 ** length):0{length}d}"

    def _latest(self, phone: str, purpose: str, unused_only: bool = False) -> Optional[OTP]:
        query = self.db.query(OTP).filter(OTP.phone == phone, OTP.purpose == purpose)
        if unused_only:
            query = query.filter(OTP.is_used == False)  # noqa: E712
        return query.order_by(OTP.id.desc()).first()

    def generate_otp(self, phone: str, purpose=OtpPurpose.LOGIN, ip_address: str = None) -> str:
        """
        Issue a fresh code for (phone, purpose) and return it in plaintext.

        Only the bcrypt hash is stored. At most OTP_MAX_SENDS_PER_HOUR codes
        are issued per (phone, purpose) inside a trailing one hour window.
        """
        purpose = _normalize_purpose(purpose)
        now = self.clock()

        latest = self._latest(phone, purpose)

        window_started_at, sends_in_window = now, 0
        if latest is not None:
            latest_window = as_utc(latest.window_started_at)
            if latest_window > now - SEND_WINDOW:
                window_started_at, sends_in_window = latest_window, latest.send_count

        if sends_in_window >= self.max_sends:
            retry_after = int((window_started_at + SEND_WINDOW - now).total_seconds()) + 1
            logger.warning(
                f"OTP send limit reached for {mask_phone(phone)} ({purpose}), "
                f"retry in {retry_after}s"
            )
            raise RateLimitExceeded(
                "Too many OTP requests. Please try again after some time.",
                retryAfter=retry_after
            )

        code = self._new_code()
        expires_at = now + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)

        if latest is not None and not latest.is_used:
            # Resend: rotate the code on the active record
            record = latest
            record.otp_hash = otp_context.hash(code)
            record.expires_at = expires_at
            record.attempts = 0
            record.ip_address = ip_address
        else:
            record = OTP(
                phone=phone,
                purpose=purpose,
                otp_hash=otp_context.hash(code),
                expires_at=expires_at,
                attempts=0,
                is_used=False,
                ip_address=ip_address
            )
            self.db.add(record)

        record.send_count = sends_in_window + 1
        record.window_started_at = window_started_at
        self.db.flush()

        # Only one code per (phone, purpose) may stay redeemable
        self.db.query(OTP).filter(
            OTP.phone == phone,
            OTP.purpose == purpose,
            OTP.is_used == False,  # noqa: E712
            OTP.id != record.id
        ).update({OTP.is_used: True}, synchronize_session=False)

        self.db.commit()

        logger.info(
            f"OTP generated for {mask_phone(phone)} ({purpose}), "
            f"send count: {record.send_count}"
        )
        return code

    def verify_otp(self, phone: str, candidate: str, purpose=OtpPurpose.LOGIN) -> OTP:
        """
        Check a candidate code against the latest unused record.

        Each outcome is committed before this returns: failures bump the
        attempt counter and success consumes the record, both with
        conditional updates so concurrent requests cannot exceed the
        attempt ceiling or consume a code twice.
        """
        purpose = _normalize_purpose(purpose)
        now = self.clock()

        record = self._latest(phone, purpose, unused_only=True)
        if record is None:
            raise OtpNotFound()

        if as_utc(record.expires_at) <= now:
            self._consume(record)
            self.db.commit()
            raise OtpExpired()

        if record.attempts >= self.max_attempts:
            raise OtpLocked()

        if not otp_context.verify(candidate or "", record.otp_hash):
            updated = self.db.query(OTP).filter(
                OTP.id == record.id,
                OTP.is_used == False,  # noqa: E712
                OTP.attempts < self.max_attempts
            ).update({OTP.attempts: OTP.attempts + 1}, synchronize_session=False)
            self.db.commit()

            if not updated:
                raise OtpLocked()

            self.db.refresh(record)
            attempts_left = max(self.max_attempts - record.attempts, 0)
            logger.warning(
                f"Invalid OTP for {mask_phone(phone)} ({purpose}), "
                f"{attempts_left} attempt(s) left"
            )
            raise InvalidOtp(attempts_left)

        consumed = self._consume(record, require_attempts_left=True)
        self.db.commit()

        if not consumed:
            self.db.refresh(record)
            if record.is_used:
                raise OtpNotFound("OTP already used. Please request a new OTP.")
            raise OtpLocked()

        self.db.refresh(record)
        logger.info(f"OTP verified for {mask_phone(phone)} ({purpose})")
        return record

    def _consume(self, record: OTP, require_attempts_left: bool = False) -> int:
        query = self.db.query(OTP).filter(
            OTP.id == record.id,
            OTP.is_used == False  # noqa: E712
        )
        if require_attempts_left:
            query = query.filter(OTP.attempts < self.max_attempts)
        return query.update({OTP.is_used: True}, synchronize_session=False)

    def invalidate(self, phone: str, purpose=OtpPurpose.LOGIN) -> int:
        """Mark every outstanding code for (phone, purpose) as used"""
        purpose = _normalize_purpose(purpose)
        count = self.db.query(OTP).filter(
            OTP.phone == phone,
            OTP.purpose == purpose,
            OTP.is_used == False  # noqa: E712
        ).update({OTP.is_used: True}, synchronize_session=False)
        self.db.commit()
        return count
