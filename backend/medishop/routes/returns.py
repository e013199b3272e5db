from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.admin import Admin
from ..models.user import User
from ..schemas.base import dump, envelope
from ..schemas.returns import ReturnCreate, ReturnResponse, ReturnStatusUpdate
from ..services.return_service import ReturnService
from ..utils.security import get_current_admin, get_current_user
from .products import pagination

router = APIRouter(prefix="/returns", tags=["Returns"])


# ========== CUSTOMER ==========

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_return(
    payload: ReturnCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Request a return for a delivered order"""
    return_request = ReturnService(db).create_return(
        current_user,
        payload.order_id,
        items=[i.model_dump() for i in payload.items],
        reason=payload.reason,
        reason_description=payload.reason_description,
        refund_method=payload.refund_method,
        images=payload.images
    )
    return envelope(dump(ReturnResponse, return_request), "Return request created successfully")


@router.get("/my-returns")
async def my_returns(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    returns, total = ReturnService(db).list_returns(user_id=current_user.id, page=page, limit=limit)
    return envelope(
        [dump(ReturnResponse, r) for r in returns],
        pagination=pagination(page, limit, total)
    )


# ========== ADMIN ==========

@router.get("/admin/all")
async def all_returns(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    returns, total = ReturnService(db).list_returns(status=status, page=page, limit=limit)
    return envelope(
        [dump(ReturnResponse, r) for r in returns],
        pagination=pagination(page, limit, total)
    )


@router.get("/admin/{return_id}")
async def get_return_admin(
    return_id: int,
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    return envelope(dump(ReturnResponse, ReturnService(db).get_return(return_id)))


@router.put("/admin/{return_id}/status")
async def update_return_status(
    return_id: int,
    payload: ReturnStatusUpdate,
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    """Admin transition; refunds restore stock once"""
    fields = payload.model_dump(exclude={"status", "note"})
    return_request = ReturnService(db).update_status(
        current_admin, return_id, payload.status, note=payload.note, **fields
    )
    return envelope(dump(ReturnResponse, return_request), "Return status updated successfully")


# ========== CUSTOMER (by id) ==========

@router.get("/{return_id}")
async def get_return(
    return_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return envelope(dump(ReturnResponse, ReturnService(db).get_return(return_id, user_id=current_user.id)))


@router.post("/{return_id}/cancel")
async def cancel_return(
    return_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Cancel a pending or approved return"""
    return_request = ReturnService(db).cancel_return(current_user, return_id)
    return envelope(dump(ReturnResponse, return_request), "Return request cancelled successfully")
