"""
Session token issuing for customers and admins
"""

import logging

from sqlalchemy.orm import Session

from ..errors import Forbidden, PrincipalNotFound
from ..models.admin import Admin
from ..models.user import User
from ..utils.helpers import mask_phone, utcnow
from ..utils.security import REFRESH_TOKEN, create_tokens, decode_token, load_principal

logger = logging.getLogger(__name__)


def create_user_and_tokens(db: Session, phone: str) -> dict:
    """Find or create the customer for a verified phone and issue tokens"""
    user = db.query(User).filter(User.phone == phone).first()

    if user is None:
        user = User(phone=phone, role="USER", is_verified=True)
        db.add(user)
        logger.info(f"New user created: {mask_phone(phone)}")
    else:
        if user.is_blocked:
            raise Forbidden("Account is blocked")
        user.is_verified = True
        logger.info(f"User logged in: {mask_phone(phone)}")

    user.last_login = utcnow()
    db.commit()
    db.refresh(user)

    return {"user": user, **create_tokens(user)}


def create_admin_tokens(db: Session, admin: Admin) -> dict:
    admin.last_login = utcnow()
    admin.login_attempts = 0
    admin.locked_until = None
    db.commit()
    db.refresh(admin)
    return {"admin": admin, **create_tokens(admin)}


def refresh_access_token(db: Session, refresh_token: str) -> dict:
    """Exchange a refresh token for a new token pair"""
    payload = decode_token(refresh_token, expected_type=REFRESH_TOKEN)
    principal = load_principal(db, payload)

    if isinstance(principal, Admin) and not principal.is_admin:
        raise PrincipalNotFound("Invalid token. Admin privileges not granted.")
    if isinstance(principal, User) and principal.is_blocked:
        raise Forbidden("Account is blocked")

    return create_tokens(principal)
