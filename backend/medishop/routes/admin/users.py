import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...database import get_db
from ...errors import NotFound, ValidationFailed
from ...models.admin import Admin
from ...models.user import User
from ...schemas.base import dump, envelope
from ...schemas.profile import AdminUserResponse, BlockUserRequest, ProfileStats
from ...services.profile_service import ProfileService
from ...utils.helpers import mask_phone
from ...utils.security import get_current_admin
from ..products import pagination

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/users", tags=["Admin Users"])


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("User not found")
    return user


@router.get("")
async def list_users(
    search: Optional[str] = None,
    role: Optional[str] = None,
    is_blocked: Optional[bool] = Query(None, alias="isBlocked"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    """List customers with search, role and blocked filters, newest first"""
    query = db.query(User)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            User.phone.ilike(pattern),
            User.email.ilike(pattern),
            User.name.ilike(pattern)
        ))
    if role:
        query = query.filter(User.role == role.upper())
    if is_blocked is not None:
        query = query.filter(User.is_blocked == is_blocked)

    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()

    return envelope(
        [dump(AdminUserResponse, u) for u in users],
        pagination=pagination(page, limit, total)
    )


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    user = get_user_or_404(db, user_id)
    return envelope({
        **dump(AdminUserResponse, user),
        "stats": dump(ProfileStats, ProfileService(db).stats(user))
    })


@router.post("/{user_id}/block")
async def block_user(
    user_id: int,
    payload: Optional[BlockUserRequest] = Body(None),
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    """Block a customer; their tokens stop working immediately"""
    user = get_user_or_404(db, user_id)
    if user.is_blocked:
        raise ValidationFailed("User is already blocked")

    user.is_blocked = True
    user.block_reason = payload.reason if payload else None
    db.commit()
    db.refresh(user)

    logger.info(f"User {mask_phone(user.phone)} blocked by admin {current_admin.id}")
    return envelope(dump(AdminUserResponse, user), "User blocked successfully")


@router.post("/{user_id}/unblock")
async def unblock_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    user = get_user_or_404(db, user_id)
    if not user.is_blocked:
        raise ValidationFailed("User is not blocked")

    user.is_blocked = False
    user.block_reason = None
    db.commit()
    db.refresh(user)

    logger.info(f"User {mask_phone(user.phone)} unblocked by admin {current_admin.id}")
    return envelope(dump(AdminUserResponse, user), "User unblocked successfully")
