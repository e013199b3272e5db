import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from ...config import settings
from ...database import get_db
from ...errors import AccountLocked, Forbidden, Unauthenticated, ValidationFailed
from ...limiter import limiter
from ...models.admin import Admin
from ...models.otp import OtpPurpose
from ...schemas.auth import (
    AdminPasswordLogin,
    AdminResponse,
    ChangePasswordRequest,
    ResetPasswordRequest,
    SendOtpRequest,
    VerifyOtpRequest,
)
from ...schemas.base import dump, envelope
from ...services.auth_service import create_admin_tokens
from ...services.otp_service import OtpService
from ...services.sms_provider import SmsProvider, get_sms_provider
from ...utils.helpers import as_utc, client_ip, mask_phone, utcnow
from ...utils.security import get_current_admin, get_password_hash, verify_password
from ..auth import deliver_otp, token_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/auth", tags=["Admin Authentication"])

MAX_LOGIN_ATTEMPTS = 5
LOCKOUT_MINUTES = 30


def find_admin(db: Session, phone: str) -> Admin:
    admin = db.query(Admin).filter(Admin.phone == phone).first()
    if not admin or not admin.is_admin:
        raise Forbidden("Access denied. Admin account not found.")
    return admin


def login_response(db: Session, response: Response, admin: Admin) -> dict:
    result = create_admin_tokens(db, admin)
    data = {"admin": dump(AdminResponse, result["admin"])}
    data.update(token_payload(response, result))
    return envelope(data, "Admin login successful")


# ========== OTP LOGIN ==========

@router.post("/send-otp")
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def send_admin_otp(
    request: Request,
    payload: SendOtpRequest,
    db: Session = Depends(get_db),
    sms: SmsProvider = Depends(get_sms_provider)
):
    """Send an admin login OTP; only registered admins receive one"""
    find_admin(db, payload.phone)
    code = OtpService(db).generate_otp(payload.phone, OtpPurpose.ADMIN_LOGIN, ip_address=client_ip(request))
    data = await deliver_otp(sms, payload.phone, code)
    return envelope(data, "OTP sent successfully")


@router.post("/verify-otp")
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def verify_admin_otp(
    request: Request,
    response: Response,
    payload: VerifyOtpRequest,
    db: Session = Depends(get_db)
):
    """Verify admin OTP and issue admin tokens"""
    admin = find_admin(db, payload.phone)
    OtpService(db).verify_otp(payload.phone, payload.otp, OtpPurpose.ADMIN_LOGIN)
    logger.info(f"Admin {admin.id} logged in with OTP")
    return login_response(db, response, admin)


# ========== PASSWORD LOGIN ==========

@router.post("/login-password")
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def login_password(
    request: Request,
    response: Response,
    payload: AdminPasswordLogin,
    db: Session = Depends(get_db)
):
    """Admin login with phone and password"""
    admin = db.query(Admin).filter(Admin.phone == payload.phone).first()
    if not admin or not admin.is_admin:
        raise Unauthenticated("Incorrect phone or password")

    # Check if account is locked
    if admin.locked_until and as_utc(admin.locked_until) > utcnow():
        raise AccountLocked(f"Account locked until {as_utc(admin.locked_until).isoformat()}")

    if not verify_password(payload.password, admin.password_hash):
        admin.login_attempts = (admin.login_attempts or 0) + 1
        if admin.login_attempts >= MAX_LOGIN_ATTEMPTS:
            admin.locked_until = utcnow() + timedelta(minutes=LOCKOUT_MINUTES)
            logger.warning(f"Admin {mask_phone(admin.phone)} locked after {admin.login_attempts} failed logins")
        db.commit()
        raise Unauthenticated("Incorrect phone or password")

    return login_response(db, response, admin)


@router.post("/change-password")
async def change_password(
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    """Set a new password; the current one is required once a password exists"""
    if current_admin.password_hash and not verify_password(payload.current_password or "", current_admin.password_hash):
        raise ValidationFailed("Current password is incorrect")

    current_admin.password_hash = get_password_hash(payload.new_password)
    db.commit()
    return envelope(message="Password changed successfully")


# ========== PASSWORD RESET ==========

@router.post("/forgot-password")
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def forgot_password(
    request: Request,
    payload: SendOtpRequest,
    db: Session = Depends(get_db),
    sms: SmsProvider = Depends(get_sms_provider)
):
    """Send a password reset OTP to an admin phone"""
    find_admin(db, payload.phone)
    code = OtpService(db).generate_otp(payload.phone, OtpPurpose.RESET, ip_address=client_ip(request))
    data = await deliver_otp(sms, payload.phone, code)
    return envelope(data, "Password reset OTP sent")


@router.post("/reset-password")
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def reset_password(
    request: Request,
    payload: ResetPasswordRequest,
    db: Session = Depends(get_db)
):
    """Reset an admin password with a RESET OTP"""
    admin = find_admin(db, payload.phone)
    OtpService(db).verify_otp(payload.phone, payload.otp, OtpPurpose.RESET)

    admin.password_hash = get_password_hash(payload.new_password)
    admin.login_attempts = 0
    admin.locked_until = None
    db.commit()
    logger.info(f"Admin {admin.id} reset password")
    return envelope(message="Password reset successfully")


@router.get("/me")
async def get_admin_me(current_admin: Admin = Depends(get_current_admin)):
    """Get current admin"""
    return envelope({"admin": dump(AdminResponse, current_admin)})
