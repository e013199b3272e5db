from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field, validator

from .base import CamelModel


class NotificationPreferences(CamelModel):
    email: bool = True
    sms: bool = True
    push: bool = False


class Preferences(CamelModel):
    notifications: NotificationPreferences = NotificationPreferences()


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    preferences: Optional[Preferences] = None

    @validator('name', pre=True)
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @validator('email')
    def lower_email(cls, v):
        return v.lower() if v else v


class ProfileResponse(CamelModel):
    id: int
    phone: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: str
    is_verified: bool = False
    preferences: Preferences = Preferences()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    @validator('preferences', pre=True)
    def default_preferences(cls, v):
        return v or {}


class ProfileStats(CamelModel):
    orders_count: int
    prescriptions_count: int
    member_since: Optional[datetime] = None


# Admin view
class AdminUserResponse(CamelModel):
    id: int
    phone: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: str
    is_verified: bool = False
    is_blocked: bool = False
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class BlockUserRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)
