from datetime import timedelta

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..errors import InvalidToken
from ..limiter import limiter
from ..models.otp import OtpPurpose
from ..models.user import User
from ..schemas.auth import RefreshTokenRequest, SendOtpRequest, UserResponse, VerifyOtpRequest
from ..schemas.base import dump, envelope
from ..services.auth_service import create_user_and_tokens, refresh_access_token
from ..services.otp_service import OtpService
from ..services.sms_provider import SmsProvider, get_sms_provider, otp_message
from ..utils.helpers import client_ip, mask_phone, utcnow
from ..utils.security import get_current_user

router = APIRouter(prefix="/auth", tags=["Authentication"])

REFRESH_COOKIE = "refreshToken"


# ========== TOKEN TRANSPORT ==========

def uses_refresh_cookie() -> bool:
    return bool(settings.FRONTEND_BASE_URL)


def set_refresh_cookie(response: Response, refresh_token: str):
    response.set_cookie(
        REFRESH_COOKIE,
        refresh_token,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60
    )


def token_payload(response: Response, tokens: dict) -> dict:
    """Access token in the body; refresh token in a cookie or the body"""
    data = {"accessToken": tokens["access_token"]}
    if uses_refresh_cookie():
        set_refresh_cookie(response, tokens["refresh_token"])
    else:
        data["refreshToken"] = tokens["refresh_token"]
    return data


async def deliver_otp(sms: SmsProvider, phone: str, code: str) -> dict:
    """Send the code and build the send-otp response data"""
    result = await sms.send(phone, otp_message(code))

    data = {
        "phone": mask_phone(phone),
        "expiresIn": settings.OTP_EXPIRE_MINUTES * 60,
        "resendCooldown": (utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)).isoformat(),
        "provider": result["provider"]
    }
    if settings.OTP_EXPOSE_IN_RESPONSE and not settings.is_production:
        data["otp"] = code
    return data


# ========== OTP LOGIN ==========

@router.post("/send-otp")
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def send_otp(
    request: Request,
    payload: SendOtpRequest,
    db: Session = Depends(get_db),
    sms: SmsProvider = Depends(get_sms_provider)
):
    """Send a login OTP to a phone number"""
    code = OtpService(db).generate_otp(payload.phone, OtpPurpose.LOGIN, ip_address=client_ip(request))
    data = await deliver_otp(sms, payload.phone, code)
    return envelope(data, "OTP sent successfully")


@router.post("/verify-otp")
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def verify_otp(
    request: Request,
    response: Response,
    payload: VerifyOtpRequest,
    db: Session = Depends(get_db)
):
    """Verify OTP and log in, registering the phone on first use"""
    OtpService(db).verify_otp(payload.phone, payload.otp, OtpPurpose.LOGIN)
    result = create_user_and_tokens(db, payload.phone)

    data = {"user": dump(UserResponse, result["user"])}
    data.update(token_payload(response, result))
    return envelope(data, "Login successful")


# ========== SESSION ==========

@router.post("/refresh-token")
async def refresh_token(
    request: Request,
    response: Response,
    payload: RefreshTokenRequest = None,
    db: Session = Depends(get_db)
):
    """Exchange a refresh token (body or cookie) for a new token pair"""
    token = (payload.refresh_token if payload else None) or request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise InvalidToken("Refresh token is required")

    tokens = refresh_access_token(db, token)
    return envelope(token_payload(response, tokens), "Token refreshed successfully")


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    """Get current customer"""
    return envelope({"user": dump(UserResponse, current_user)})


@router.post("/logout")
async def logout(response: Response, current_user: User = Depends(get_current_user)):
    """Clear the refresh cookie; access tokens simply expire"""
    response.delete_cookie(REFRESH_COOKIE)
    return envelope(message="Logged out successfully")
