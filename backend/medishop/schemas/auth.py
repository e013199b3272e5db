from datetime import datetime
from typing import Optional

from pydantic import Field, validator

from ..utils.validators import validate_indian_mobile
from .base import CamelModel


def _phone(v):
    is_valid, normalized, error = validate_indian_mobile(v)
    if not is_valid:
        raise ValueError(error)
    return normalized


# OTP Request
class SendOtpRequest(CamelModel):
    phone: str

    @validator('phone')
    def validate_phone(cls, v):
        return _phone(v)


# OTP Verify
class VerifyOtpRequest(CamelModel):
    phone: str
    otp: str = Field(..., min_length=4, max_length=8)

    @validator('phone')
    def validate_phone(cls, v):
        return _phone(v)

    @validator('otp')
    def validate_otp(cls, v):
        if not v.isdigit():
            raise ValueError('OTP must be numeric')
        return v


class RefreshTokenRequest(CamelModel):
    refresh_token: Optional[str] = None


class AdminPasswordLogin(CamelModel):
    phone: str
    password: str = Field(..., min_length=1)

    @validator('phone')
    def validate_phone(cls, v):
        return _phone(v)


class ChangePasswordRequest(CamelModel):
    current_password: Optional[str] = None
    new_password: str = Field(..., min_length=8, max_length=128)


class ResetPasswordRequest(CamelModel):
    phone: str
    otp: str
    new_password: str = Field(..., min_length=8, max_length=128)

    @validator('phone')
    def validate_phone(cls, v):
        return _phone(v)


# Responses
class UserResponse(CamelModel):
    id: int
    phone: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: str
    is_verified: bool = False
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class AdminResponse(CamelModel):
    id: int
    name: str
    phone: str
    email: Optional[str] = None
    username: Optional[str] = None
    role: str
    is_admin: bool
    last_login: Optional[datetime] = None
