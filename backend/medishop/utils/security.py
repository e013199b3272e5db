from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..errors import (
    Forbidden,
    InvalidToken,
    PrincipalNotFound,
    TokenExpired,
    Unauthenticated,
)
from ..models.admin import Admin
from ..models.user import User

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Bearer scheme; missing credentials are reported by require_principal
bearer_scheme = HTTPBearer(auto_error=False)

ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a plain password against hashed password"""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)


def create_token(data: dict, token_type: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire, "type": token_type})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    return create_token(
        data,
        ACCESS_TOKEN,
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )


def create_refresh_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    return create_token(
        data,
        REFRESH_TOKEN,
        expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    )


def create_tokens(principal) -> dict:
    """Access + refresh pair for a User or Admin"""
    payload = {
        "sub": str(principal.id),
        "phone": principal.phone,
        "role": principal.role,
    }
    return {
        "access_token": create_access_token(payload),
        "refresh_token": create_refresh_token(payload),
    }


def decode_token(token: str, expected_type: str = ACCESS_TOKEN) -> dict:
    """Decode and check a token; expired and otherwise invalid tokens fail differently"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise TokenExpired()
    except JWTError:
        raise InvalidToken()

    if payload.get("type") != expected_type or payload.get("sub") is None:
        raise InvalidToken()
    return payload


def load_principal(db: Session, payload: dict):
    """Look up the account a token was issued for"""
    try:
        principal_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise InvalidToken()

    if payload.get("role") == ROLE_ADMIN:
        principal = db.query(Admin).filter(Admin.id == principal_id).first()
        if principal is None:
            raise PrincipalNotFound("Invalid token. Admin not found.")
    else:
        principal = db.query(User).filter(User.id == principal_id).first()
        if principal is None:
            raise PrincipalNotFound("Invalid token. User not found.")
    return principal


def require_principal(role: str = ROLE_USER):
    """
    Dependency factory shared by customer and admin routes.

    Resolves the bearer token to a User (role USER) or an Admin (role ADMIN)
    and attaches it to request.state.principal.
    """
    async def principal_checker(
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        db: Session = Depends(get_db)
    ):
        if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
            raise Unauthenticated()

        payload = decode_token(credentials.credentials)

        if role == ROLE_ADMIN:
            if payload.get("role") != ROLE_ADMIN:
                raise Forbidden()
            principal = load_principal(db, payload)
            if not principal.is_admin:
                raise Forbidden("Access denied. Admin privileges not granted.")
        else:
            if payload.get("role", ROLE_USER) != ROLE_USER:
                raise Forbidden("Access denied. Customer account required.")
            principal = load_principal(db, payload)
            if principal.is_blocked:
                raise Forbidden("Account is blocked")

        request.state.principal = principal
        return principal

    return principal_checker


get_current_user = require_principal(ROLE_USER)
get_current_admin = require_principal(ROLE_ADMIN)
